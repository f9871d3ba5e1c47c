"""Core records shared by the VAST components.

Notation follows the belief model: a Belief is the tuple (π, κ, J) where
π is the credence (a probability distribution over outcomes), κ the
confidence in the evidence behind it, and J the structured justification.

Records are frozen dataclasses. Components hand out copies, never the
instances they own, so a caller cannot mutate a store's state in place.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

Credence = Dict[str, float]


# ---------------------------
# Enums
# ---------------------------

class BeliefSource(str, Enum):
    INITIAL = "initial"
    REVISED = "revised"
    EXTERNAL = "external"


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


# Gauge names as used in alerts; "overall" maps to GaugeScores.overall_vast_score.
GAUGE_NAMES = ("calibration", "normative_alignment", "coherence", "reasoning", "overall")

_GAUGE_FIELDS = {
    "calibration": "calibration",
    "normative_alignment": "normative_alignment",
    "coherence": "coherence",
    "reasoning": "reasoning",
    "overall": "overall_vast_score",
    "overall_vast_score": "overall_vast_score",
}


def _str_list(items: Optional[Iterable[Any]]) -> List[str]:
    return [str(x) for x in (items or [])]


# ---------------------------
# Beliefs
# ---------------------------

@dataclass(frozen=True)
class Justification:
    """Structured reasoning (facts, rules, moral principles, context) backing a belief.

    `chain` is derived display text rebuilt by the store on every write.
    `metadata` carries revision bookkeeping (method, moral weight, conflict flags).
    """
    facts: List[str] = field(default_factory=list)
    rules: List[str] = field(default_factory=list)
    moral_principles: List[str] = field(default_factory=list)
    context: str = ""
    chain: Optional[List[str]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def component_count(self) -> int:
        return len(self.facts) + len(self.rules) + len(self.moral_principles)

    def components(self) -> set:
        return set(self.facts) | set(self.rules) | set(self.moral_principles)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "facts": list(self.facts),
            "rules": list(self.rules),
            "moral_principles": list(self.moral_principles),
            "context": self.context,
        }
        if self.chain is not None:
            d["chain"] = list(self.chain)
        if self.metadata:
            d["metadata"] = copy.deepcopy(self.metadata)
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Justification":
        chain = data.get("chain")
        return cls(
            facts=_str_list(data.get("facts")),
            rules=_str_list(data.get("rules")),
            moral_principles=_str_list(data.get("moral_principles")),
            context=str(data.get("context") or ""),
            chain=_str_list(chain) if chain is not None else None,
            metadata=copy.deepcopy(dict(data.get("metadata") or {})),
        )


@dataclass(frozen=True)
class Belief:
    proposition: str
    pi: Credence
    kappa: float
    J: Justification
    timestamp: float
    source: BeliefSource = BeliefSource.INITIAL

    def copy(self) -> "Belief":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposition": self.proposition,
            "pi": dict(self.pi),
            "kappa": self.kappa,
            "J": self.J.to_dict(),
            "timestamp": self.timestamp,
            "source": BeliefSource(self.source).value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Belief":
        return cls(
            proposition=str(data["proposition"]),
            pi={str(k): float(v) for k, v in dict(data["pi"]).items()},
            kappa=float(data["kappa"]),
            J=Justification.from_dict(data.get("J") or {}),
            timestamp=float(data.get("timestamp") or 0.0),
            source=BeliefSource(data.get("source") or BeliefSource.INITIAL.value),
        )


@dataclass(frozen=True)
class Evidence:
    """New evidence about a proposition: a partial belief.

    Any of pi/kappa/J may be omitted; revision then reuses the existing
    belief's value for that component.
    """
    pi: Optional[Credence] = None
    kappa: Optional[float] = None
    J: Optional[Justification] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Evidence":
        pi = data.get("pi", data.get("credence"))
        kappa = data.get("kappa", data.get("confidence"))
        j = data.get("J", data.get("justification"))
        return cls(
            pi={str(k): float(v) for k, v in dict(pi).items()} if pi is not None else None,
            kappa=float(kappa) if kappa is not None else None,
            J=Justification.from_dict(j) if j is not None else None,
        )


@dataclass(frozen=True)
class BeliefDelta:
    proposition: str
    pi_before: Credence
    pi_after: Credence
    kappa_before: float
    kappa_after: float
    moral_weight: float
    stability_factor: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposition": self.proposition,
            "pi_before": dict(self.pi_before),
            "pi_after": dict(self.pi_after),
            "kappa_before": self.kappa_before,
            "kappa_after": self.kappa_after,
            "moral_weight": self.moral_weight,
            "stability_factor": self.stability_factor,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BeliefDelta":
        return cls(
            proposition=str(data["proposition"]),
            pi_before=dict(data.get("pi_before") or {}),
            pi_after=dict(data.get("pi_after") or {}),
            kappa_before=float(data.get("kappa_before", 0.0)),
            kappa_after=float(data.get("kappa_after", 0.0)),
            moral_weight=float(data.get("moral_weight", 0.0)),
            stability_factor=float(data.get("stability_factor", 0.0)),
        )


# ---------------------------
# Constraints and decisions
# ---------------------------

@dataclass(frozen=True)
class Constraint:
    """A prioritized soft constraint. Priority 1 is the highest tier."""
    id: str
    title: str
    principle: str
    priority: int
    threshold: float
    weight: float
    propagation: Optional[float] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "principle": self.principle,
            "priority": self.priority,
            "threshold": self.threshold,
            "weight": self.weight,
        }
        if self.propagation is not None:
            d["propagation"] = self.propagation
        if self.description:
            d["description"] = self.description
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Constraint":
        propagation = data.get("propagation")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or data["id"]),
            principle=str(data["principle"]),
            priority=int(data["priority"]),
            threshold=float(data["threshold"]),
            weight=float(data["weight"]),
            propagation=float(propagation) if propagation is not None else None,
            description=data.get("description"),
        )


@dataclass(frozen=True)
class ConstraintViolation:
    constraint_id: str
    violation_amount: float
    penalty: float
    explanation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "constraint_id": self.constraint_id,
            "violation_amount": self.violation_amount,
            "penalty": self.penalty,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConstraintViolation":
        return cls(
            constraint_id=str(data["constraint_id"]),
            violation_amount=float(data["violation_amount"]),
            penalty=float(data["penalty"]),
            explanation=str(data.get("explanation") or ""),
        )


@dataclass(frozen=True)
class EUBreakdown:
    action_id: str
    eu_base: float
    constraints: List[ConstraintViolation]
    eeu_total: float
    justification_chain: List[str]

    @property
    def total_penalty(self) -> float:
        """Cascaded penalty actually deducted from the base utility."""
        return self.eu_base - self.eeu_total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_id": self.action_id,
            "eu_base": self.eu_base,
            "constraints": [v.to_dict() for v in self.constraints],
            "eeu_total": self.eeu_total,
            "justification_chain": list(self.justification_chain),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EUBreakdown":
        return cls(
            action_id=str(data["action_id"]),
            eu_base=float(data["eu_base"]),
            constraints=[ConstraintViolation.from_dict(v) for v in data.get("constraints") or []],
            eeu_total=float(data["eeu_total"]),
            justification_chain=_str_list(data.get("justification_chain")),
        )


@dataclass
class ActionContext:
    """Decision context. Only a few keys are read by the core; everything else rides in `extra`."""
    scenario: str = ""
    moral_stakes: Optional[float] = None
    stakes: Optional[str] = None
    time_pressure: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        if key in ("scenario", "moral_stakes", "stakes", "time_pressure"):
            value = getattr(self, key)
            return default if value is None else value
        return self.extra.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = dict(self.extra)
        d["scenario"] = self.scenario
        if self.moral_stakes is not None:
            d["moral_stakes"] = self.moral_stakes
        if self.stakes is not None:
            d["stakes"] = self.stakes
        if self.time_pressure is not None:
            d["time_pressure"] = self.time_pressure
        return d

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ActionContext":
        data = dict(data or {})
        moral_stakes = data.pop("moral_stakes", None)
        return cls(
            scenario=str(data.pop("scenario", "") or ""),
            moral_stakes=float(moral_stakes) if moral_stakes is not None else None,
            stakes=data.pop("stakes", None),
            time_pressure=data.pop("time_pressure", None),
            extra=data,
        )


# ---------------------------
# Gauges
# ---------------------------

@dataclass(frozen=True)
class GaugeScores:
    calibration: float
    normative_alignment: float
    coherence: float
    reasoning: float
    overall_vast_score: float
    timestamp: float

    def get(self, gauge: str) -> float:
        return float(getattr(self, _GAUGE_FIELDS[gauge]))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calibration": self.calibration,
            "normative_alignment": self.normative_alignment,
            "coherence": self.coherence,
            "reasoning": self.reasoning,
            "overall_vast_score": self.overall_vast_score,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GaugeScores":
        return cls(
            calibration=float(data.get("calibration", 0.0)),
            normative_alignment=float(data.get("normative_alignment", 0.0)),
            coherence=float(data.get("coherence", 0.0)),
            reasoning=float(data.get("reasoning", 0.0)),
            overall_vast_score=float(data.get("overall_vast_score", 0.0)),
            timestamp=float(data.get("timestamp", 0.0)),
        )


@dataclass(frozen=True)
class GaugeAlert:
    gauge: str
    severity: AlertSeverity
    message: str
    explanation: str
    score: float
    threshold: float
    timestamp: float
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gauge": self.gauge,
            "severity": AlertSeverity(self.severity).value,
            "message": self.message,
            "explanation": self.explanation,
            "score": self.score,
            "threshold": self.threshold,
            "timestamp": self.timestamp,
            "recommendation": self.recommendation,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GaugeAlert":
        return cls(
            gauge=str(data["gauge"]),
            severity=AlertSeverity(data["severity"]),
            message=str(data.get("message") or ""),
            explanation=str(data.get("explanation") or ""),
            score=float(data.get("score", 0.0)),
            threshold=float(data.get("threshold", 0.0)),
            timestamp=float(data.get("timestamp", 0.0)),
            recommendation=str(data.get("recommendation") or ""),
        )


@dataclass(frozen=True)
class GaugeTrend:
    gauge: str
    direction: TrendDirection
    magnitude: float
    window_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gauge": self.gauge,
            "direction": TrendDirection(self.direction).value,
            "magnitude": self.magnitude,
            "window_size": self.window_size,
        }


# ---------------------------
# Audit log
# ---------------------------

@dataclass(frozen=True)
class RevisionMetrics:
    """Revision parameters and the deltas produced during one tick."""
    alpha: float
    beta: float
    gamma: float
    deltas: List[BeliefDelta] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alpha": self.alpha,
            "beta": self.beta,
            "gamma": self.gamma,
            "deltas": [d.to_dict() for d in self.deltas],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RevisionMetrics":
        return cls(
            alpha=float(data.get("alpha", 0.0)),
            beta=float(data.get("beta", 0.0)),
            gamma=float(data.get("gamma", 0.0)),
            deltas=[BeliefDelta.from_dict(d) for d in data.get("deltas") or []],
        )


@dataclass(frozen=True)
class LogEntry:
    tick: int
    timestamp: float
    beliefs_before: List[Belief]
    beliefs_after: List[Belief]
    jwmc_metrics: Optional[RevisionMetrics]
    candidate_actions: List[str]
    eeucc_breakdown: List[EUBreakdown]
    chosen_action: str
    justification_chain: List[str]
    gauge_scores: GaugeScores
    alerts: List[GaugeAlert]
    scenario_id: str
    seed: Optional[int] = None
    perception: Optional[Dict[str, Any]] = None

    def chosen_breakdown(self) -> Optional[EUBreakdown]:
        for b in self.eeucc_breakdown:
            if b.action_id == self.chosen_action:
                return b
        return None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "tick": self.tick,
            "timestamp": self.timestamp,
            "beliefs_before": [b.to_dict() for b in self.beliefs_before],
            "beliefs_after": [b.to_dict() for b in self.beliefs_after],
            "jwmc_metrics": self.jwmc_metrics.to_dict() if self.jwmc_metrics else None,
            "candidate_actions": list(self.candidate_actions),
            "eeucc_breakdown": [b.to_dict() for b in self.eeucc_breakdown],
            "chosen_action": self.chosen_action,
            "justification_chain": list(self.justification_chain),
            "gauge_scores": self.gauge_scores.to_dict(),
            "alerts": [a.to_dict() for a in self.alerts],
            "scenario_id": self.scenario_id,
        }
        if self.seed is not None:
            d["seed"] = self.seed
        if self.perception is not None:
            d["perception"] = copy.deepcopy(self.perception)
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LogEntry":
        jwmc = data.get("jwmc_metrics")
        seed = data.get("seed")
        return cls(
            tick=int(data["tick"]),
            timestamp=float(data.get("timestamp", 0.0)),
            beliefs_before=[Belief.from_dict(b) for b in data.get("beliefs_before") or []],
            beliefs_after=[Belief.from_dict(b) for b in data.get("beliefs_after") or []],
            jwmc_metrics=RevisionMetrics.from_dict(jwmc) if jwmc else None,
            candidate_actions=_str_list(data.get("candidate_actions")),
            eeucc_breakdown=[EUBreakdown.from_dict(b) for b in data.get("eeucc_breakdown") or []],
            chosen_action=str(data.get("chosen_action") or ""),
            justification_chain=_str_list(data.get("justification_chain")),
            gauge_scores=GaugeScores.from_dict(data.get("gauge_scores") or {}),
            alerts=[GaugeAlert.from_dict(a) for a in data.get("alerts") or []],
            scenario_id=str(data.get("scenario_id") or ""),
            seed=int(seed) if seed is not None else None,
            perception=copy.deepcopy(data.get("perception")),
        )


@dataclass(frozen=True)
class AuditSummary:
    total_decisions: int
    action_distribution: Dict[str, int]
    average_gauges: GaugeScores
    alerts_by_severity: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_decisions": self.total_decisions,
            "action_distribution": dict(self.action_distribution),
            "average_gauges": self.average_gauges.to_dict(),
            "alerts_by_severity": dict(self.alerts_by_severity),
        }


@dataclass(frozen=True)
class AuditTrail:
    scenario_id: str
    start_time: float
    end_time: Optional[float]
    total_ticks: int
    logs: List[LogEntry]
    summary: Optional[AuditSummary] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "scenario_id": self.scenario_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "total_ticks": self.total_ticks,
            "logs": [entry.to_dict() for entry in self.logs],
        }
        if self.summary is not None:
            d["summary"] = self.summary.to_dict()
        return d


@dataclass
class LogFilters:
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    actions: Optional[List[str]] = None
    constraint_ids: Optional[List[str]] = None
    priorities: Optional[List[int]] = None
    gauge_drops: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "LogFilters":
        data = dict(data or {})
        return cls(
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            actions=data.get("actions"),
            constraint_ids=data.get("constraint_ids"),
            priorities=data.get("priorities"),
            gauge_drops=bool(data.get("gauge_drops", False)),
        )


@dataclass
class ExportOptions:
    format: str = "json"
    filters: LogFilters = field(default_factory=LogFilters)
