"""Prometheus metrics for the VAST core.

Metrics goals:
- low-cardinality labels (gauge names, severities, principles; never
  proposition or action ids)
- visibility into belief writes, revisions, decisions, violations, alerts
  and audit ticks for hosts that expose a /metrics endpoint

Set VAST_METRICS_ENABLED=0 to turn every recording helper into a no-op.
"""
from __future__ import annotations

import os

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

from .types import GaugeScores


def _env_bool(name: str, default: bool = True) -> bool:
    v = (os.getenv(name, "") or "").strip().lower()
    if not v:
        return default
    return v in ("1", "true", "yes", "on")


def metrics_enabled() -> bool:
    return _env_bool("VAST_METRICS_ENABLED", True)


# ---------------------------
# Core metric objects
# ---------------------------
BELIEFS_WRITTEN_TOTAL = Counter(
    "vast_beliefs_written_total",
    "Belief store writes",
    ["operation"],
)
REVISIONS_TOTAL = Counter(
    "vast_revisions_total",
    "Belief revisions performed",
    ["conflict"],
)
DECISIONS_TOTAL = Counter(
    "vast_decisions_total",
    "Decision cycles evaluated",
)
SKIPPED_ACTIONS_TOTAL = Counter(
    "vast_skipped_actions_total",
    "Candidate actions skipped because no belief existed",
)
CONSTRAINT_VIOLATIONS_TOTAL = Counter(
    "vast_constraint_violations_total",
    "Constraint violations recorded in utility breakdowns",
    ["principle"],
)
GAUGE_ALERTS_TOTAL = Counter(
    "vast_gauge_alerts_total",
    "Gauge alerts emitted",
    ["gauge", "severity"],
)
GAUGE_SCORE = Gauge(
    "vast_gauge_score",
    "Most recent gauge score",
    ["gauge"],
)
AUDIT_TICKS_TOTAL = Counter(
    "vast_audit_ticks_total",
    "Entries appended to audit logs",
)


def record_belief_write(operation: str) -> None:
    if metrics_enabled():
        BELIEFS_WRITTEN_TOTAL.labels(operation=str(operation)).inc()


def record_revision(conflict: bool) -> None:
    if metrics_enabled():
        REVISIONS_TOTAL.labels(conflict="true" if conflict else "false").inc()


def record_decision(skipped: int = 0) -> None:
    if not metrics_enabled():
        return
    DECISIONS_TOTAL.inc()
    if skipped:
        SKIPPED_ACTIONS_TOTAL.inc(skipped)


def record_violation(principle: str) -> None:
    if metrics_enabled():
        CONSTRAINT_VIOLATIONS_TOTAL.labels(principle=str(principle)).inc()


def record_alert(gauge: str, severity: str) -> None:
    if metrics_enabled():
        GAUGE_ALERTS_TOTAL.labels(gauge=str(gauge), severity=str(severity)).inc()


def set_gauge_scores(scores: GaugeScores) -> None:
    if not metrics_enabled():
        return
    for name in ("calibration", "normative_alignment", "coherence", "reasoning", "overall_vast_score"):
        GAUGE_SCORE.labels(gauge=name).set(float(getattr(scores, name)))


def record_audit_tick() -> None:
    if metrics_enabled():
        AUDIT_TICKS_TOTAL.inc()


def render_latest() -> tuple[bytes, str]:
    """Exposition payload and content type for an embedding host's /metrics route."""
    return generate_latest(), CONTENT_TYPE_LATEST
