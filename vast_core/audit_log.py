"""Append-only audit trail of decision ticks.

Each tick records the beliefs before and after revision, the revision
deltas, every candidate's utility breakdown, the chosen action, gauge scores
and alerts. The log assigns `tick` (0-based, monotonic), `timestamp` and
`scenario_id`; callers supply everything else.

Exports:
- json: the full AuditTrail with a computed summary
- csv: one row per (filtered) tick with fixed columns
- pdf: not rendered here; degrades to json with a warning
- golden: the json trail plus `golden_metadata` (integrity hash over
  tick/action/eeu), optionally Ed25519-signed (see signing.py)

Golden logs are regression baselines: `validate_against_golden` compares an
actual run to one and reports human-readable differences.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from . import metrics
from .clock import Clock, ms_to_iso, system_clock
from .errors import (
    UnsupportedFormatError,
    ValidationError,
    vast_error,
    VAST_E_UNSUPPORTED_FORMAT,
    VAST_E_VALIDATION,
)
from .signing import Ed25519KeyPair, sign_golden_document
from .types import (
    AuditSummary,
    AuditTrail,
    Belief,
    Constraint,
    EUBreakdown,
    ExportOptions,
    GaugeAlert,
    GaugeScores,
    LogEntry,
    LogFilters,
    RevisionMetrics,
)

logger = logging.getLogger("vast_core.audit_log")

GOLDEN_VERSION = "1.0.0"
GAUGE_DROP_THRESHOLD = 0.05
EEU_TOLERANCE = 0.001

CSV_HEADERS = (
    "Tick",
    "Timestamp",
    "Chosen Action",
    "Base EU",
    "Total Penalty",
    "Final EEU",
    "Calibration",
    "Normative",
    "Coherence",
    "Reasoning",
    "Overall VAST",
    "Alerts",
    "Violations",
)

_DROP_FIELDS = ("calibration", "normative_alignment", "coherence", "reasoning", "overall_vast_score")

ConstraintCatalog = Union[Mapping[str, int], Iterable[Constraint]]


def _priority_map(catalog: Optional[ConstraintCatalog]) -> Optional[Dict[str, int]]:
    if catalog is None:
        return None
    if isinstance(catalog, Mapping):
        return {str(k): int(v) for k, v in catalog.items()}
    return {c.id: c.priority for c in catalog}


def integrity_hash(entries: Iterable[LogEntry]) -> str:
    """32-bit rolling string hash over (tick, action, eeu) of each entry, hex encoded.

    Detects accidental edits; it is not a cryptographic digest.
    """
    key_data = []
    for e in entries:
        item: Dict[str, Any] = {"tick": e.tick, "action": e.chosen_action}
        chosen = e.chosen_breakdown()
        if chosen is not None:
            item["eeu"] = chosen.eeu_total
        key_data.append(item)
    text = json.dumps(key_data, separators=(",", ":"), ensure_ascii=False)

    h = 0
    for ch in text:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return format(abs(h), "x")


def has_gauge_drop(prev: GaugeScores, current: GaugeScores, threshold: float = GAUGE_DROP_THRESHOLD) -> bool:
    return any(getattr(current, f) < getattr(prev, f) - threshold for f in _DROP_FIELDS)


def _csv_cell(value: Any) -> str:
    return '"' + str(value).replace('"', '""') + '"'


class AuditLog:
    def __init__(
        self,
        scenario_id: str,
        clock: Optional[Clock] = None,
        constraints: Optional[ConstraintCatalog] = None,
    ) -> None:
        self.scenario_id = scenario_id
        self._clock: Clock = clock or system_clock
        self._priorities = _priority_map(constraints)
        self._logs: List[LogEntry] = []
        self._tick_counter = 0
        self.start_time = self._clock()

    # ---------------------------
    # Writing
    # ---------------------------

    def append(
        self,
        *,
        beliefs_before: Iterable[Belief],
        beliefs_after: Iterable[Belief],
        candidate_actions: Iterable[str],
        eeucc_breakdown: Iterable[EUBreakdown],
        chosen_action: str,
        justification_chain: Iterable[str],
        gauge_scores: GaugeScores,
        alerts: Iterable[GaugeAlert] = (),
        jwmc_metrics: Optional[RevisionMetrics] = None,
        seed: Optional[int] = None,
        perception: Optional[Dict[str, Any]] = None,
    ) -> LogEntry:
        entry = LogEntry(
            tick=self._tick_counter,
            timestamp=self._clock(),
            beliefs_before=copy.deepcopy(list(beliefs_before)),
            beliefs_after=copy.deepcopy(list(beliefs_after)),
            jwmc_metrics=copy.deepcopy(jwmc_metrics),
            candidate_actions=list(candidate_actions),
            eeucc_breakdown=copy.deepcopy(list(eeucc_breakdown)),
            chosen_action=chosen_action,
            justification_chain=list(justification_chain),
            gauge_scores=gauge_scores,
            alerts=list(alerts),
            scenario_id=self.scenario_id,
            seed=seed,
            perception=copy.deepcopy(perception),
        )
        self._tick_counter += 1
        self._logs.append(entry)
        metrics.record_audit_tick()
        logger.debug("Appended tick %d (%s): chose %s", entry.tick, self.scenario_id, chosen_action)
        return copy.deepcopy(entry)

    def clear(self) -> None:
        logger.warning("Clearing audit log for %s (%d entries discarded)", self.scenario_id, len(self._logs))
        self._logs = []
        self._tick_counter = 0
        self.start_time = self._clock()

    # ---------------------------
    # Reading
    # ---------------------------

    @property
    def total_ticks(self) -> int:
        return self._tick_counter

    def all_logs(self) -> List[LogEntry]:
        return copy.deepcopy(self._logs)

    def size(self) -> int:
        return len(self._logs)

    def __len__(self) -> int:
        return len(self._logs)

    def get_log_by_tick(self, tick: int) -> Optional[LogEntry]:
        for entry in self._logs:
            if entry.tick == tick:
                return copy.deepcopy(entry)
        return None

    def latest(self) -> Optional[LogEntry]:
        return copy.deepcopy(self._logs[-1]) if self._logs else None

    def logs_by_time_range(self, start_time: float, end_time: float) -> List[LogEntry]:
        return [copy.deepcopy(e) for e in self._logs if start_time <= e.timestamp <= end_time]

    def logs_by_action(self, action: str) -> List[LogEntry]:
        return [copy.deepcopy(e) for e in self._logs if e.chosen_action == action]

    def stats(self) -> Dict[str, Any]:
        total_eeu = 0.0
        for e in self._logs:
            chosen = e.chosen_breakdown()
            if chosen is not None:
                total_eeu += chosen.eeu_total
        return {
            "total_logs": len(self._logs),
            "time_span_ms": self._logs[-1].timestamp - self.start_time if self._logs else 0,
            "unique_actions": sorted({e.chosen_action for e in self._logs}),
            "total_alerts": sum(len(e.alerts) for e in self._logs),
            "avg_eeu": total_eeu / len(self._logs) if self._logs else 0.0,
        }

    # ---------------------------
    # Filtering
    # ---------------------------

    def filter_logs(self, filters: Union[LogFilters, Mapping[str, Any], None] = None) -> List[LogEntry]:
        f = filters if isinstance(filters, LogFilters) else LogFilters.from_dict(filters)
        if f.priorities and self._priorities is None:
            logger.warning("priorities filter ignored: no constraint catalog attached to this log")
        return [copy.deepcopy(e) for e in self._logs if self._matches(e, f)]

    def _matches(self, entry: LogEntry, f: LogFilters) -> bool:
        if f.start_time is not None and entry.timestamp < f.start_time:
            return False
        if f.end_time is not None and entry.timestamp > f.end_time:
            return False
        if f.actions and entry.chosen_action not in f.actions:
            return False
        if f.constraint_ids:
            wanted = set(f.constraint_ids)
            if not any(v.constraint_id in wanted for b in entry.eeucc_breakdown for v in b.constraints):
                return False
        if f.priorities and self._priorities is not None:
            wanted_p = set(f.priorities)
            if not any(
                self._priorities.get(v.constraint_id) in wanted_p
                for b in entry.eeucc_breakdown
                for v in b.constraints
            ):
                return False
        if f.gauge_drops:
            # Previous entry by position in the log, not by tick number.
            idx = entry.tick - 1
            if 0 <= idx < len(self._logs):
                if not has_gauge_drop(self._logs[idx].gauge_scores, entry.gauge_scores):
                    return False
        return True

    # ---------------------------
    # Export
    # ---------------------------

    def build_audit_trail(self, logs: Optional[List[LogEntry]] = None) -> AuditTrail:
        logs = self.all_logs() if logs is None else logs
        now = self._clock()
        action_distribution: Dict[str, int] = {}
        alerts_by_severity: Dict[str, int] = {}
        totals = dict.fromkeys(_DROP_FIELDS, 0.0)
        for e in logs:
            action_distribution[e.chosen_action] = action_distribution.get(e.chosen_action, 0) + 1
            for a in e.alerts:
                sev = a.to_dict()["severity"]
                alerts_by_severity[sev] = alerts_by_severity.get(sev, 0) + 1
            for name in _DROP_FIELDS:
                totals[name] += getattr(e.gauge_scores, name)
        count = len(logs) or 1
        summary = AuditSummary(
            total_decisions=len(logs),
            action_distribution=action_distribution,
            average_gauges=GaugeScores(
                calibration=totals["calibration"] / count,
                normative_alignment=totals["normative_alignment"] / count,
                coherence=totals["coherence"] / count,
                reasoning=totals["reasoning"] / count,
                overall_vast_score=totals["overall_vast_score"] / count,
                timestamp=now,
            ),
            alerts_by_severity=alerts_by_severity,
        )
        return AuditTrail(
            scenario_id=self.scenario_id,
            start_time=self.start_time,
            end_time=now,
            total_ticks=self._tick_counter,
            logs=logs,
            summary=summary,
        )

    def export(self, options: Union[ExportOptions, str, None] = None) -> str:
        if options is None:
            options = ExportOptions()
        elif isinstance(options, str):
            options = ExportOptions(format=options)
        fmt = (options.format or "").lower()
        if fmt not in ("json", "csv", "pdf"):
            raise vast_error(
                UnsupportedFormatError, VAST_E_UNSUPPORTED_FORMAT, f"Unsupported export format: {options.format}",
                format=options.format,
            )
        logs = self.filter_logs(options.filters)
        if fmt == "csv":
            return self.export_csv(logs)
        if fmt == "pdf":
            logger.warning("PDF export is not rendered by the core; returning JSON")
        return json.dumps(self.build_audit_trail(logs).to_dict(), indent=2, ensure_ascii=False)

    @staticmethod
    def export_csv(logs: Iterable[LogEntry]) -> str:
        lines = [",".join(CSV_HEADERS)]
        for e in logs:
            chosen = e.chosen_breakdown()
            if chosen is not None:
                base_eu = f"{chosen.eu_base:.4f}"
                penalty = f"{sum(v.penalty for v in chosen.constraints):.4f}"
                final_eeu = f"{chosen.eeu_total:.4f}"
                violations = len(chosen.constraints)
            else:
                base_eu = penalty = final_eeu = "0"
                violations = 0
            g = e.gauge_scores
            row = [
                e.tick,
                ms_to_iso(e.timestamp),
                e.chosen_action,
                base_eu,
                penalty,
                final_eeu,
                f"{g.calibration:.3f}",
                f"{g.normative_alignment:.3f}",
                f"{g.coherence:.3f}",
                f"{g.reasoning:.3f}",
                f"{g.overall_vast_score:.3f}",
                len(e.alerts),
                violations,
            ]
            lines.append(",".join(_csv_cell(c) for c in row))
        return "\n".join(lines)

    # ---------------------------
    # Golden logs
    # ---------------------------

    def golden_document(self, signer: Optional[Ed25519KeyPair] = None) -> Dict[str, Any]:
        doc = self.build_audit_trail().to_dict()
        doc["golden_metadata"] = {
            "created_at": ms_to_iso(self._clock()),
            "version": GOLDEN_VERSION,
            "total_ticks": self._tick_counter,
            "integrity_hash": integrity_hash(self._logs),
        }
        if signer is not None:
            doc = sign_golden_document(doc, signer)
        return doc

    def export_golden_log(self, signer: Optional[Ed25519KeyPair] = None) -> str:
        return json.dumps(self.golden_document(signer), indent=2, ensure_ascii=False)

    @staticmethod
    def validate_against_golden(actual: "AuditLog", golden_json: str) -> Tuple[bool, List[str]]:
        """Compare `actual` with a golden log. Returns (valid, differences)."""
        differences: List[str] = []
        try:
            golden = json.loads(golden_json)
            actual_doc = actual.golden_document()
            if golden["total_ticks"] != actual_doc["total_ticks"]:
                differences.append(
                    f"Tick count mismatch: expected {golden['total_ticks']}, got {actual_doc['total_ticks']}"
                )
            golden_logs = golden["logs"]
            actual_logs = actual_doc["logs"]
            for i in range(min(len(golden_logs), len(actual_logs))):
                expected_action = golden_logs[i]["chosen_action"]
                got_action = actual_logs[i]["chosen_action"]
                if expected_action != got_action:
                    differences.append(f"Action mismatch at tick {i}: expected {expected_action}, got {got_action}")
            for i in range(min(len(golden_logs), len(actual_logs))):
                g = _chosen_eeu(golden_logs[i])
                a = _chosen_eeu(actual_logs[i])
                if g is not None and a is not None and abs(g - a) > EEU_TOLERANCE:
                    differences.append(f"EEU mismatch at tick {i}: expected {g}, got {a}")
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            differences.append(f"Failed to parse golden log: {e}")
        return not differences, differences

    @classmethod
    def from_golden(cls, golden_json: str, clock: Optional[Clock] = None) -> "AuditLog":
        """Rebuild a log from an exported golden (or json) document."""
        try:
            doc = json.loads(golden_json)
            log = cls(str(doc["scenario_id"]), clock=clock)
            log._logs = [LogEntry.from_dict(e) for e in doc.get("logs") or []]
            log._tick_counter = int(doc.get("total_ticks", len(log._logs)))
            log.start_time = float(doc.get("start_time", log.start_time))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise vast_error(ValidationError, VAST_E_VALIDATION, f"Invalid golden log: {e}") from e
        return log


def _chosen_eeu(entry: Mapping[str, Any]) -> Optional[float]:
    for b in entry.get("eeucc_breakdown") or []:
        if b.get("action_id") == entry.get("chosen_action"):
            return float(b["eeu_total"])
    return None
