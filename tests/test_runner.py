import json
import logging

import pytest

from vast_core.audit_log import AuditLog
from vast_core.clock import ManualClock
from vast_core.config import create_config
from vast_core.errors import ValidationError
from vast_core.runner import ScenarioRunner
from vast_core.scenarios import (
    TOP_RANKED,
    Scenario,
    builtin_scenario_ids,
    get_builtin_scenario,
    load_scenario,
)


def _survival_utility(action, outcome, context):
    return 1.0 if outcome == "survives" else 0.0


TWO_OPTIONS = {
    "id": "two_options",
    "title": "Two options",
    "constraints": [],
    "actions": [
        {
            "id": "A",
            "credence": {"survives": 0.6, "dies": 0.4},
            "confidence": 0.72,
            "justification": {"facts": ["a1"], "rules": ["r"], "moral_principles": ["preserve_life"]},
        },
        {
            "id": "B",
            "credence": {"survives": 0.7, "dies": 0.3},
            "confidence": 0.85,
            "justification": {"facts": ["b1"], "rules": ["r"], "moral_principles": ["preserve_life"]},
        },
    ],
}


def _run(scenario_id, ticks=None, **config):
    runner = ScenarioRunner(get_builtin_scenario(scenario_id), create_config(config), clock=ManualClock(0.0))
    return runner, runner.run(ticks)


def test_builtin_scenarios_listed():
    assert builtin_scenario_ids() == ["autonomous_vehicle", "healthcare_crisis"]
    with pytest.raises(ValidationError):
        get_builtin_scenario("nope")


def test_healthcare_crisis_run():
    _, log = _run("healthcare_crisis", loop={"max_ticks": None})
    logs = log.all_logs()

    # runs through the last evidence tick
    assert [e.tick for e in logs] == [0, 1, 2]
    assert logs[0].chosen_action == "allocate_to_younger"
    assert logs[0].jwmc_metrics.deltas == []
    assert logs[0].seed == 42
    assert logs[0].perception["patients"][0]["id"] == "patient_a"

    (delta,) = logs[1].jwmc_metrics.deltas
    assert delta.proposition == "allocate_to_younger"
    # revision lowered confidence enough for the elderly allocation to lead
    assert logs[1].chosen_action == "allocate_to_elderly"

    # "*" evidence targets the previous tick's top choice
    (delta,) = logs[2].jwmc_metrics.deltas
    assert delta.proposition == logs[1].chosen_action

    for e in logs:
        assert e.candidate_actions == ["allocate_to_elderly", "allocate_to_younger", "lottery_system"]
        assert len(e.eeucc_breakdown) == 3
        assert e.justification_chain[0] == f"Action: {e.chosen_action}"
        assert len(e.beliefs_after) == 3


def test_runs_are_reproducible():
    _, first = _run("autonomous_vehicle", 3)
    _, second = _run("autonomous_vehicle", 3)
    golden = first.export_golden_log()
    assert AuditLog.validate_against_golden(second, golden) == (True, [])
    assert json.loads(golden)["golden_metadata"]["integrity_hash"] == json.loads(
        second.export_golden_log()
    )["golden_metadata"]["integrity_hash"]


def test_tick_delay_advances_manual_clock():
    _, log = _run("autonomous_vehicle", 3, loop={"tick_delay_ms": 250})
    assert [e.timestamp for e in log.all_logs()] == [0.0, 250.0, 500.0]


def test_custom_utility_prefers_higher_expected_utility():
    scenario = Scenario.from_dict(TWO_OPTIONS)
    runner = ScenarioRunner(scenario, create_config({"eeucc": {"base_utility_fn": _survival_utility}}), clock=ManualClock(0.0))
    log = runner.run(1)
    entry = log.latest()
    assert entry.chosen_action == "B"
    assert [b.action_id for b in entry.eeucc_breakdown] == ["B", "A"]
    assert entry.eeucc_breakdown[0].eu_base == pytest.approx(0.595)
    assert runner.last_result.selected_action == "B"


def test_evidence_for_unknown_target_is_skipped(caplog):
    data = dict(TWO_OPTIONS, evidence=[{"tick": 0, "proposition": "ghost", "confidence": 0.5}])
    runner = ScenarioRunner(Scenario.from_dict(data), create_config(), clock=ManualClock(0.0))
    with caplog.at_level(logging.WARNING, logger="vast_core.runner"):
        entry = runner.step(0)
    assert entry.jwmc_metrics.deltas == []
    assert "unknown proposition ghost" in caplog.text


def test_top_ranked_evidence_before_any_decision_is_skipped(caplog):
    data = dict(TWO_OPTIONS, evidence=[{"tick": 0, "proposition": TOP_RANKED, "confidence": 0.5}])
    runner = ScenarioRunner(Scenario.from_dict(data), create_config(), clock=ManualClock(0.0))
    with caplog.at_level(logging.WARNING, logger="vast_core.runner"):
        entry = runner.step(0)
    assert entry.jwmc_metrics.deltas == []
    assert "none is ranked yet" in caplog.text


def test_invalid_config_rejected():
    with pytest.raises(ValidationError):
        ScenarioRunner(get_builtin_scenario("healthcare_crisis"), create_config({"eeucc": {"lambda": 2}}))


def test_invalid_tick_count_rejected():
    runner = ScenarioRunner(get_builtin_scenario("healthcare_crisis"), clock=ManualClock(0.0))
    with pytest.raises(ValidationError):
        runner.run(0)


def test_scenario_validation():
    with pytest.raises(ValidationError):
        Scenario.from_dict({"id": "empty", "actions": []})
    with pytest.raises(ValidationError):
        Scenario.from_dict({"actions": TWO_OPTIONS["actions"]})


def test_load_scenario_file(tmp_path):
    path = tmp_path / "two.json"
    path.write_text(json.dumps(TWO_OPTIONS), encoding="utf-8")
    scenario = load_scenario(path)
    assert scenario.action_ids == ["A", "B"]
    assert scenario.constraints == []

    path.write_text("{", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_scenario(path)
