"""
Constraint-violation rules and the default outcome utility.

A rule is a pure function

    (action_id, belief, constraint, context) -> (violation_amount, explanation)

keyed by `constraint.principle`. The shipped rules are keyword heuristics over
the action id; they are deliberately swappable: build a table with
`DEFAULT_VIOLATION_RULES.with_rules(...)` (or a fresh `ViolationRuleTable`)
and hand it to the DecisionEngine.

Principles without a registered rule fall back to a generic check for a
`not_<principle>` pattern in the action id.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterator, Mapping, Optional, Tuple

from .types import ActionContext, Belief, Constraint

ViolationRule = Callable[[str, Belief, Constraint, ActionContext], Tuple[float, str]]

NO_VIOLATION: Tuple[float, str] = (0.0, "")

# Justifications with fewer components than this count as opaque.
MIN_TRANSPARENT_COMPONENTS = 3


def _has_any(text: str, needles) -> bool:
    return any(n in text for n in needles)


# ---------------------------
# Default rules
# ---------------------------

def preserve_life_rule(action: str, belief: Belief, constraint: Constraint, context: ActionContext) -> Tuple[float, str]:
    a = action.lower()
    if _has_any(a, ("deny", "abort", "reject")):
        return 0.8, f'Action "{action}" may threaten life preservation'
    if "delay" in a:
        return 0.3, f'Action "{action}" involves delay that may risk life'
    return NO_VIOLATION


def fairness_rule(action: str, belief: Belief, constraint: Constraint, context: ActionContext) -> Tuple[float, str]:
    a = action.lower()
    if "prioritize" in a and _has_any(a, ("younger", "elderly")):
        return 0.5, f'Action "{action}" may violate procedural fairness'
    if "discriminate" in a:
        return 0.9, f'Action "{action}" involves discrimination'
    return NO_VIOLATION


def respect_dignity_rule(action: str, belief: Belief, constraint: Constraint, context: ActionContext) -> Tuple[float, str]:
    if _has_any(action.lower(), ("coerce", "deceive", "manipulate")):
        return 0.7, f'Action "{action}" may violate human dignity'
    return NO_VIOLATION


def transparency_rule(action: str, belief: Belief, constraint: Constraint, context: ActionContext) -> Tuple[float, str]:
    if belief.J.component_count() < MIN_TRANSPARENT_COMPONENTS:
        return 0.4, f'Action "{action}" lacks sufficient justification'
    return NO_VIOLATION


def non_maleficence_rule(action: str, belief: Belief, constraint: Constraint, context: ActionContext) -> Tuple[float, str]:
    if _has_any(action.lower(), ("harm", "damage", "hurt")):
        return 0.8, f'Action "{action}" may cause harm'
    return NO_VIOLATION


def generic_rule(action: str, belief: Belief, constraint: Constraint, context: ActionContext) -> Tuple[float, str]:
    """Fallback for principles without a dedicated rule."""
    if f"not_{constraint.principle.lower()}" in action.lower():
        return 0.5, f'Action "{action}" conflicts with {constraint.title}'
    return NO_VIOLATION


# ---------------------------
# Rule table
# ---------------------------

class ViolationRuleTable:
    """Mapping principle -> rule, with a fallback for unknown principles."""

    def __init__(
        self,
        rules: Optional[Mapping[str, ViolationRule]] = None,
        fallback: ViolationRule = generic_rule,
    ) -> None:
        self._rules: Dict[str, ViolationRule] = {k.lower(): v for k, v in (rules or {}).items()}
        self._fallback = fallback

    def register(self, principle: str, rule: ViolationRule) -> None:
        self._rules[principle.lower()] = rule

    def unregister(self, principle: str) -> None:
        self._rules.pop(principle.lower(), None)

    def with_rules(self, rules: Mapping[str, ViolationRule]) -> "ViolationRuleTable":
        """Return a new table with `rules` layered over this one."""
        merged = dict(self._rules)
        merged.update({k.lower(): v for k, v in rules.items()})
        return ViolationRuleTable(merged, fallback=self._fallback)

    def rule_for(self, principle: str) -> ViolationRule:
        return self._rules.get(principle.lower(), self._fallback)

    def evaluate(
        self,
        action: str,
        belief: Belief,
        constraint: Constraint,
        context: ActionContext,
    ) -> Tuple[float, str]:
        amount, explanation = self.rule_for(constraint.principle)(action, belief, constraint, context)
        return max(0.0, min(1.0, float(amount))), explanation

    def __contains__(self, principle: object) -> bool:
        return isinstance(principle, str) and principle.lower() in self._rules

    def __iter__(self) -> Iterator[str]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)


DEFAULT_VIOLATION_RULES = ViolationRuleTable(
    {
        "preserve_life": preserve_life_rule,
        "fairness": fairness_rule,
        "respect_dignity": respect_dignity_rule,
        "transparency": transparency_rule,
        "non_maleficence": non_maleficence_rule,
    }
)


# ---------------------------
# Default utility
# ---------------------------

_POSITIVE = ("success", "effective", "saves", "accurate")
_NEGATIVE = ("fail", "ineffective", "error", "false_positive")
DEFAULT_MORAL_STAKES = 0.5


def default_utility(action: str, outcome: str, context: ActionContext) -> float:
    """Keyword heuristic over outcome and action names.

    Positive keywords are checked first, so "ineffective" scores 1.0.
    """
    o = outcome.lower()
    a = action.lower()
    if _has_any(o, _POSITIVE):
        return 1.0
    if _has_any(o, _NEGATIVE):
        return 0.0
    if "partial" in o:
        return 0.5
    if "life" in a or "preserve" in a:
        stakes = context.get("moral_stakes") or DEFAULT_MORAL_STAKES
        return 0.8 * float(stakes) + 0.2
    return 0.5
