from prometheus_client import REGISTRY

from vast_core import metrics
from vast_core.types import GaugeScores


def _value(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_recording_helpers_update_counters(monkeypatch):
    monkeypatch.delenv("VAST_METRICS_ENABLED", raising=False)
    before = _value("vast_decisions_total")
    skipped = _value("vast_skipped_actions_total")

    metrics.record_decision(skipped=2)

    assert _value("vast_decisions_total") == before + 1
    assert _value("vast_skipped_actions_total") == skipped + 2


def test_gauge_scores_exported(monkeypatch):
    monkeypatch.delenv("VAST_METRICS_ENABLED", raising=False)
    metrics.set_gauge_scores(
        GaugeScores(calibration=0.1, normative_alignment=0.2, coherence=0.3, reasoning=0.4,
                    overall_vast_score=0.5, timestamp=0.0)
    )
    assert _value("vast_gauge_score", {"gauge": "coherence"}) == 0.3
    payload, content_type = metrics.render_latest()
    assert b"vast_gauge_score" in payload
    assert content_type.startswith("text/plain")


def test_disabled_metrics_are_noops(monkeypatch):
    monkeypatch.setenv("VAST_METRICS_ENABLED", "0")
    before = _value("vast_audit_ticks_total")
    metrics.record_audit_tick()
    assert _value("vast_audit_ticks_total") == before
