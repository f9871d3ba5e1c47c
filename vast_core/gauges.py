"""
Gauge monitor: four quality gauges over the belief state, plus alerts and trends.

- calibration:          1 − |avg κ − avg(1 − H(π)/log2 n)|
- normative_alignment:  share of (weight / priority) carried by constraints whose
                        principle some justification invokes; +0.1 under high stakes
- coherence:            0.6 · exp(−avg pairwise KL) + 0.4 · (1 − min(1, 4 · var κ))
- reasoning:            depth score from justification size weighted by κ
- overall_vast_score:   weighted sum (GAUGE_WEIGHTS)

Scores are kept in a bounded history (2 × window_size) for trend detection.
Alerts fire per gauge when a score falls below `good` (warning) or `fair`
(critical), at most once per `alert_cooldown_ms` per gauge.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import asdict
from typing import Any, Deque, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Union

from . import metrics
from .beliefs import credence_entropy, kl_divergence
from .clock import Clock, system_clock
from .config import GAUGE_WEIGHTS, GaugeThresholds
from .errors import ValidationError, vast_error, VAST_E_VALIDATION
from .types import (
    GAUGE_NAMES,
    ActionContext,
    AlertSeverity,
    Belief,
    Constraint,
    GaugeAlert,
    GaugeScores,
    GaugeTrend,
    TrendDirection,
)

logger = logging.getLogger("vast_core.gauges")

# Justification components considered "excellent" depth.
REASONING_DEPTH_TARGET = 10.0
HIGH_STAKES = 0.7
HIGH_STAKES_BONUS = 0.1
TREND_MIN_POINTS = 3
TREND_STABLE_SLOPE = 0.01

DISPLAY_NAMES = {
    "calibration": "Calibration",
    "normative_alignment": "Normative Alignment",
    "coherence": "Coherence",
    "reasoning": "Reasoning",
    "overall": "Overall VAST Score",
}

_EXPLANATIONS = {
    "calibration": (
        "Confidence levels don't match predictive accuracy ({pct}%). "
        "The system may be over- or under-confident in its predictions."
    ),
    "normative_alignment": (
        "Moral principles are not sufficiently integrated ({pct}%). "
        "Decisions may not align with established ethical frameworks."
    ),
    "coherence": (
        "Internal beliefs show inconsistency ({pct}%). "
        "Confidence levels or probability distributions are conflicting."
    ),
    "reasoning": (
        "Justifications are insufficient or shallow ({pct}%). "
        "Decisions lack adequate reasoning depth."
    ),
    "overall": (
        "Overall VAST score is {severity} ({pct}%). "
        "Multiple gauges may be underperforming."
    ),
}

_RECOMMENDATIONS = {
    "calibration": (
        "Review confidence assessments. Consider gathering more evidence or "
        "adjusting confidence levels based on actual outcomes."
    ),
    "normative_alignment": (
        "Ensure beliefs explicitly invoke relevant moral principles. "
        "Review constraint priorities and their application."
    ),
    "coherence": (
        "Check for conflicting beliefs. Consider running a belief revision "
        "to harmonize credences and confidences."
    ),
    "reasoning": (
        "Add more facts, rules, and moral principles to justifications. "
        "Ensure each belief has comprehensive reasoning."
    ),
    "overall": (
        "Address specific gauge issues. Focus on normative alignment and "
        "calibration first."
    ),
}

BeliefsLike = Union[Mapping[str, Belief], Sequence[Belief]]


class GaugeReading(NamedTuple):
    scores: GaugeScores
    alerts: List[GaugeAlert]
    trends: List[GaugeTrend]


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def _belief_list(beliefs: BeliefsLike) -> List[Belief]:
    if isinstance(beliefs, Mapping):
        return list(beliefs.values())
    return list(beliefs)


def _constraint_list(constraints: Iterable[Union[Constraint, Mapping[str, Any]]]) -> List[Constraint]:
    return [c if isinstance(c, Constraint) else Constraint.from_dict(c) for c in constraints]


# ---------------------------
# Gauge formulas
# ---------------------------

def calibration_score(beliefs: Sequence[Belief]) -> float:
    if not beliefs:
        return 0.0
    total_confidence = 0.0
    total_accuracy = 0.0
    for b in beliefs:
        total_confidence += b.kappa
        n = len(b.pi)
        max_entropy = math.log2(n) if n > 1 else 0.0
        normalized = credence_entropy(b.pi) / max_entropy if max_entropy > 0 else 0.0
        total_accuracy += 1.0 - normalized
    count = len(beliefs)
    return _clamp01(1.0 - abs(total_confidence / count - total_accuracy / count))


def _invokes(belief: Belief, principle: str) -> bool:
    if principle in belief.J.moral_principles:
        return True
    needle = principle.lower()
    return any(needle in rule.lower() for rule in belief.J.rules)


def normative_alignment_score(
    beliefs: Sequence[Belief],
    constraints: Sequence[Constraint],
    context: Optional[ActionContext] = None,
) -> float:
    if not constraints:
        return 1.0
    total_alignment = 0.0
    total_weight = 0.0
    for c in constraints:
        weight = c.weight / c.priority
        if any(_invokes(b, c.principle) for b in beliefs):
            total_alignment += weight
        total_weight += weight
    alignment = total_alignment / total_weight if total_weight > 0 else 0.5
    stakes = (context.get("moral_stakes") if context is not None else None) or 0.5
    bonus = HIGH_STAKES_BONUS if float(stakes) > HIGH_STAKES else 0.0
    return _clamp01(alignment + bonus)


def coherence_score(beliefs: Sequence[Belief]) -> float:
    if len(beliefs) < 2:
        return 1.0
    kappas = [b.kappa for b in beliefs]
    mean = sum(kappas) / len(kappas)
    variance = sum((k - mean) ** 2 for k in kappas) / len(kappas)
    confidence_coherence = 1.0 - min(1.0, variance * 4)

    total_kl = 0.0
    comparisons = 0
    for i in range(len(beliefs)):
        for j in range(i + 1, len(beliefs)):
            total_kl += max(0.0, kl_divergence(beliefs[i].pi, beliefs[j].pi))
            comparisons += 1
    credence_coherence = math.exp(-(total_kl / comparisons))

    return _clamp01(0.6 * credence_coherence + 0.4 * confidence_coherence)


def reasoning_score(beliefs: Sequence[Belief]) -> float:
    if not beliefs:
        return 0.0
    count = len(beliefs)
    avg_depth = sum(b.J.component_count() * b.kappa for b in beliefs) / count
    avg_confidence = sum(b.kappa for b in beliefs) / count
    depth_score = min(1.0, avg_depth / REASONING_DEPTH_TARGET)
    return _clamp01(depth_score + 0.2 * avg_confidence * depth_score)


def overall_score(calibration: float, normative_alignment: float, coherence: float, reasoning: float) -> float:
    return (
        GAUGE_WEIGHTS["calibration"] * calibration
        + GAUGE_WEIGHTS["normative_alignment"] * normative_alignment
        + GAUGE_WEIGHTS["coherence"] * coherence
        + GAUGE_WEIGHTS["reasoning"] * reasoning
    )


def linear_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope of values against their index."""
    n = len(values)
    if n == 0:
        return 0.0
    x_mean = (n - 1) / 2
    y_mean = sum(values) / n
    num = sum((i - x_mean) * (y - y_mean) for i, y in enumerate(values))
    den = sum((i - x_mean) ** 2 for i in range(n))
    return num / den if den > 0 else 0.0


# ---------------------------
# Monitor
# ---------------------------

class GaugeMonitor:
    def __init__(
        self,
        thresholds: Optional[GaugeThresholds] = None,
        window_size: int = 10,
        alert_cooldown_ms: float = 5000,
        clock: Optional[Clock] = None,
    ) -> None:
        thresholds = thresholds or GaugeThresholds()
        self._validate_thresholds(thresholds)
        if not isinstance(window_size, int) or window_size < 1:
            raise vast_error(ValidationError, VAST_E_VALIDATION, f"window_size must be an integer >= 1, got {window_size}")
        if alert_cooldown_ms < 0:
            raise vast_error(ValidationError, VAST_E_VALIDATION, f"alert_cooldown_ms must be >= 0, got {alert_cooldown_ms}")
        self._thresholds = GaugeThresholds(**asdict(thresholds))
        self.window_size = window_size
        self.alert_cooldown_ms = float(alert_cooldown_ms)
        self._clock: Clock = clock or system_clock
        self._history: Deque[GaugeScores] = deque(maxlen=2 * window_size)
        self._last_alerts: Dict[str, float] = {}

    def calculate(
        self,
        beliefs: BeliefsLike,
        last_decision_proposition: Optional[str] = None,
        constraints: Iterable[Union[Constraint, Mapping[str, Any]]] = (),
        context: Union[ActionContext, Mapping[str, Any], None] = None,
    ) -> GaugeReading:
        """Score the current belief state, record it, and return scores, alerts and trends.

        `last_decision_proposition` is accepted for callers that track the
        decision under review; the gauges themselves read the full state.
        """
        items = _belief_list(beliefs)
        cons = _constraint_list(constraints)
        ctx = context if isinstance(context, ActionContext) else ActionContext.from_dict(context)

        calibration = calibration_score(items)
        normative = normative_alignment_score(items, cons, ctx)
        coherence = coherence_score(items)
        reasoning = reasoning_score(items)
        scores = GaugeScores(
            calibration=calibration,
            normative_alignment=normative,
            coherence=coherence,
            reasoning=reasoning,
            overall_vast_score=overall_score(calibration, normative, coherence, reasoning),
            timestamp=self._clock(),
        )
        self._history.append(scores)
        metrics.set_gauge_scores(scores)

        alerts = self._generate_alerts(scores)
        trends = self.detect_trends()
        return GaugeReading(scores, alerts, trends)

    # ---------------------------
    # Alerts
    # ---------------------------

    def _generate_alerts(self, scores: GaugeScores) -> List[GaugeAlert]:
        now = self._clock()
        alerts: List[GaugeAlert] = []
        for gauge in GAUGE_NAMES:
            last = self._last_alerts.get(gauge)
            if last is not None and now - last < self.alert_cooldown_ms:
                continue
            score = scores.get(gauge)
            if score < self._thresholds.fair:
                severity, threshold, message = AlertSeverity.CRITICAL, self._thresholds.fair, "is critically low"
            elif score < self._thresholds.good:
                severity, threshold, message = AlertSeverity.WARNING, self._thresholds.good, "needs attention"
            else:
                continue
            alert = GaugeAlert(
                gauge=gauge,
                severity=severity,
                message=f"{DISPLAY_NAMES[gauge]} {message}",
                explanation=_EXPLANATIONS[gauge].format(pct=f"{score * 100:.1f}", severity=severity.value),
                score=score,
                threshold=threshold,
                timestamp=now,
                recommendation=_RECOMMENDATIONS[gauge],
            )
            alerts.append(alert)
            self._last_alerts[gauge] = now
            metrics.record_alert(gauge, severity.value)
            level = logging.WARNING if severity is AlertSeverity.CRITICAL else logging.INFO
            logger.log(level, "%s (%.3f < %.2f)", alert.message, score, threshold)
        return alerts

    # ---------------------------
    # Trends
    # ---------------------------

    def detect_trends(self) -> List[GaugeTrend]:
        if len(self._history) < TREND_MIN_POINTS:
            return []
        window = list(self._history)[-self.window_size:]
        trends: List[GaugeTrend] = []
        for gauge in GAUGE_NAMES:
            slope = linear_slope([s.get(gauge) for s in window])
            magnitude = abs(slope)
            if magnitude < TREND_STABLE_SLOPE:
                direction = TrendDirection.STABLE
            elif slope > 0:
                direction = TrendDirection.IMPROVING
            else:
                direction = TrendDirection.DECLINING
            trends.append(
                GaugeTrend(
                    gauge="overall_vast_score" if gauge == "overall" else gauge,
                    direction=direction,
                    magnitude=magnitude,
                    window_size=len(window),
                )
            )
        return trends

    # ---------------------------
    # State
    # ---------------------------

    @property
    def history(self) -> List[GaugeScores]:
        return list(self._history)

    def latest(self) -> Optional[GaugeScores]:
        return self._history[-1] if self._history else None

    def clear_history(self) -> None:
        self._history.clear()
        self._last_alerts.clear()

    @property
    def thresholds(self) -> GaugeThresholds:
        return GaugeThresholds(**asdict(self._thresholds))

    @staticmethod
    def _validate_thresholds(thresholds: GaugeThresholds) -> None:
        errors = thresholds.validate()
        if errors:
            raise vast_error(ValidationError, VAST_E_VALIDATION, "; ".join(errors), thresholds=asdict(thresholds))

    def update_thresholds(self, **changes: float) -> None:
        candidate = GaugeThresholds(**{**asdict(self._thresholds), **changes})
        self._validate_thresholds(candidate)
        self._thresholds = candidate

    def classify(self, score: float) -> str:
        t = self._thresholds
        if score >= t.excellent:
            return "excellent"
        if score >= t.good:
            return "good"
        if score >= t.fair:
            return "fair"
        return "needs_improvement"
