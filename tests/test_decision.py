import logging

import pytest

from vast_core.beliefs import BeliefStore
from vast_core.clock import ManualClock
from vast_core.config import DecisionParams
from vast_core.decision import DecisionEngine
from vast_core.errors import ValidationError, VAST_E_CONSTRAINT
from vast_core.rules import DEFAULT_VIOLATION_RULES, default_utility
from vast_core.types import ActionContext, Constraint, Justification


RICH_J = Justification(facts=["f1", "f2"], rules=["r1"], moral_principles=["preserve_life"])


def _life(threshold=0.1, weight=0.9, priority=1, cid="life"):
    return Constraint(
        id=cid, title="Preserve Life", principle="preserve_life",
        priority=priority, threshold=threshold, weight=weight,
    )


def _survival_utility(action, outcome, context):
    return 1.0 if outcome == "survives" else 0.0


@pytest.fixture
def store():
    return BeliefStore(clock=ManualClock(0.0))


def test_higher_expected_utility_ranks_first(store):
    store.create("A", {"survives": 0.6, "dies": 0.4}, 0.72, RICH_J)
    store.create("B", {"survives": 0.7, "dies": 0.3}, 0.85, RICH_J)
    engine = DecisionEngine(DecisionParams(base_utility_fn=_survival_utility))

    ranked = engine.decide(["A", "B"], store, ActionContext(scenario="triage"))

    assert [b.action_id for b in ranked] == ["B", "A"]
    assert ranked[0].eu_base == pytest.approx(0.595)
    assert ranked[1].eu_base == pytest.approx(0.432)
    assert ranked[0].constraints == []


def test_deny_treatment_penalty(store):
    store.create("deny_treatment", {"success": 0.5, "failure": 0.5}, 1.0, RICH_J)
    engine = DecisionEngine(constraints=[_life()])

    (bd,) = engine.decide(["deny_treatment"], store)

    (v,) = bd.constraints
    assert v.constraint_id == "life"
    assert v.violation_amount == pytest.approx(0.8)
    assert v.penalty == pytest.approx(0.441)
    assert bd.eu_base == pytest.approx(0.5)
    assert bd.eeu_total == pytest.approx(0.5 - 0.441)
    assert "  • Preserve Life (priority 1): violation=0.800, penalty=0.4410" in bd.justification_chain
    assert "Total Cascading Penalty: 0.4410" in bd.justification_chain


def test_violation_at_threshold_is_not_recorded(store):
    store.create("deny_treatment", {"success": 0.5, "failure": 0.5}, 1.0, RICH_J)
    engine = DecisionEngine(constraints=[_life(threshold=0.8)])
    (bd,) = engine.decide(["deny_treatment"], store)
    assert bd.constraints == []
    assert bd.eeu_total == pytest.approx(bd.eu_base)


def test_lower_priority_tiers_are_discounted(store):
    store.create("deny_and_harm", {"success": 1.0, "failure": 0.0}, 1.0, RICH_J)
    harm = Constraint(
        id="harm", title="Non-Maleficence", principle="non_maleficence",
        priority=2, threshold=0.1, weight=0.9,
    )
    engine = DecisionEngine(DecisionParams(lambda_=0.6), constraints=[harm, _life()])

    (bd,) = engine.decide(["deny_and_harm"], store)

    # evaluation order follows priority
    assert [v.constraint_id for v in bd.constraints] == ["life", "harm"]
    assert bd.total_penalty == pytest.approx(0.441 + 0.6 * 0.441)


def test_missing_beliefs_are_skipped_with_warning(store, caplog):
    store.create("A", {"success": 0.5, "failure": 0.5}, 0.5, RICH_J)
    engine = DecisionEngine()
    actions = ["ghost", "A"]

    with caplog.at_level(logging.WARNING, logger="vast_core.decision"):
        result = engine.evaluate(actions, store)

    assert [b.action_id for b in result.breakdowns] == ["A"]
    assert result.skipped_actions == ["ghost"]
    assert engine.last_skipped == ["ghost"]
    assert result.selected_action == "A"
    assert result.beliefs_used == ["A"]
    assert actions == ["ghost", "A"]
    assert "No belief found for action: ghost" in caplog.text


def test_nothing_ranked_has_no_selection():
    result = DecisionEngine().evaluate(["ghost"], {})
    assert result.breakdowns == []
    assert result.selected_action is None


def test_ties_keep_input_order(store):
    store.create("first", {"success": 0.5, "failure": 0.5}, 0.5, RICH_J)
    store.create("second", {"success": 0.5, "failure": 0.5}, 0.5, RICH_J)
    ranked = DecisionEngine().decide(["second", "first"], store)
    assert [b.action_id for b in ranked] == ["second", "first"]


def test_chain_without_violations(store):
    store.create("act", {"success": 0.5, "failure": 0.5}, 0.5, RICH_J)
    (bd,) = DecisionEngine().decide(["act"], store)
    chain = bd.justification_chain
    assert chain[:5] == [
        "Action: act",
        "Base Expected Utility: 0.2500",
        "  Confidence (κ): 0.500",
        "  Credence outcomes: 2",
        "No constraint violations detected",
    ]
    assert chain[5] == "Final EEU: 0.2500"
    assert chain[6] == "Justification:"
    assert chain[7:] == ["  Facts:", "    • f1", "    • f2", "  Rules:", "    • r1", "  Moral Principles:", "    • preserve_life"]


def test_transparency_rule_checks_justification_depth(store):
    store.create("act", {"success": 0.5, "failure": 0.5}, 0.5, Justification(facts=["only"]))
    transparency = Constraint(
        id="t", title="Transparency", principle="transparency", priority=3, threshold=0.2, weight=0.4,
    )
    (bd,) = DecisionEngine(constraints=[transparency]).decide(["act"], store)
    (v,) = bd.constraints
    assert v.violation_amount == pytest.approx(0.4)
    assert v.penalty == pytest.approx(0.4 * 0.2 ** 2)
    assert bd.total_penalty == pytest.approx(0.6 ** 2 * v.penalty)


def test_generic_rule_for_unknown_principle(store):
    store.create("not_honesty_plan", {"success": 0.5, "failure": 0.5}, 0.5, RICH_J)
    honesty = Constraint(id="h", title="Honesty", principle="honesty", priority=1, threshold=0.1, weight=1.0)
    (bd,) = DecisionEngine(constraints=[honesty]).decide(["not_honesty_plan"], store)
    (v,) = bd.constraints
    assert v.violation_amount == pytest.approx(0.5)
    assert "conflicts with Honesty" in v.explanation


def test_rule_table_is_swappable(store):
    store.create("deny_treatment", {"success": 0.5, "failure": 0.5}, 1.0, RICH_J)
    lenient = DEFAULT_VIOLATION_RULES.with_rules({"preserve_life": lambda a, b, c, ctx: (0.0, "")})
    engine = DecisionEngine(constraints=[_life()], rules=lenient)
    (bd,) = engine.decide(["deny_treatment"], store)
    assert bd.constraints == []
    # the shared default table is untouched
    assert DEFAULT_VIOLATION_RULES.rule_for("preserve_life") is not lenient.rule_for("preserve_life")


@pytest.mark.parametrize(
    "action,outcome,stakes,expected",
    [
        ("act", "success", None, 1.0),
        ("act", "ineffective", None, 1.0),
        ("act", "failure", None, 0.0),
        ("act", "false_positive", None, 0.0),
        ("act", "partial_recovery", None, 0.5),
        ("preserve_life_now", "unknown", 0.9, 0.8 * 0.9 + 0.2),
        ("preserve_life_now", "unknown", None, 0.6),
        ("act", "unknown", None, 0.5),
    ],
)
def test_default_utility(action, outcome, stakes, expected):
    assert default_utility(action, outcome, ActionContext(moral_stakes=stakes)) == pytest.approx(expected)


@pytest.mark.parametrize("lam", [0.0, 1.0, -0.1, 1.5])
def test_lambda_must_be_inside_open_interval(lam):
    with pytest.raises(ValidationError):
        DecisionEngine(DecisionParams(lambda_=lam))


def test_update_params():
    engine = DecisionEngine()
    engine.update_params(**{"lambda": 0.5})
    assert engine.params.lambda_ == 0.5
    with pytest.raises(ValidationError):
        engine.update_params(lambda_=1.0)
    assert engine.params.lambda_ == 0.5


def test_constraint_validation():
    with pytest.raises(ValidationError) as ei:
        DecisionEngine(constraints=[_life(), _life()])
    assert ei.value.code == VAST_E_CONSTRAINT
    with pytest.raises(ValidationError):
        DecisionEngine(constraints=[_life(priority=0)])
    with pytest.raises(ValidationError):
        DecisionEngine(constraints=[_life(threshold=1.5)])
    with pytest.raises(ValidationError):
        DecisionEngine(constraints=[_life(weight=-1.0)])


def test_constraint_management():
    engine = DecisionEngine(constraints=[_life(priority=2)])
    engine.add_constraint(
        {"id": "harm", "title": "Harm", "principle": "non_maleficence", "priority": 1, "threshold": 0.2, "weight": 0.5}
    )
    assert [c.id for c in engine.constraints] == ["harm", "life"]
    assert engine.priority_of("life") == 2
    assert engine.remove_constraint("life") is True
    assert engine.remove_constraint("life") is False
    engine.update_constraints([])
    assert engine.constraints == []
