"""
Decision engine: expected epistemic utility under cascading constraints (EEUCC).

For each candidate action with a belief:

    eu_base  = κ · Σ_o π(o) · U(action, o, context)
    penalty  = weight · (violation_amount − threshold)²     only when amount > threshold
    cascade  = Σ_p λ^(p−1) · Σ(penalties at priority p)
    eeu      = eu_base − cascade

Priority 1 is unattenuated; each lower tier is discounted by another factor
of λ. Actions are ranked by eeu descending (stable by input order).

Violation detection is delegated to a `ViolationRuleTable` (see rules.py).
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from . import metrics
from .beliefs import BeliefStore, build_justification_chain
from .clock import Clock, system_clock
from .config import DecisionParams, UtilityFn
from .errors import ValidationError, vast_error, VAST_E_CONSTRAINT, VAST_E_VALIDATION
from .rules import DEFAULT_VIOLATION_RULES, ViolationRuleTable, default_utility
from .types import ActionContext, Belief, Constraint, ConstraintViolation, EUBreakdown

logger = logging.getLogger("vast_core.decision")

BeliefsLike = Union[Mapping[str, Belief], BeliefStore]
ConstraintLike = Union[Constraint, Mapping[str, Any]]
ContextLike = Union[ActionContext, Mapping[str, Any], None]


@dataclass(frozen=True)
class DecisionResult:
    timestamp: float
    selected_action: Optional[str]
    breakdowns: List[EUBreakdown]
    skipped_actions: List[str] = field(default_factory=list)
    beliefs_used: List[str] = field(default_factory=list)
    context: ActionContext = field(default_factory=ActionContext)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "selected_action": self.selected_action,
            "breakdowns": [b.to_dict() for b in self.breakdowns],
            "skipped_actions": list(self.skipped_actions),
            "beliefs_used": list(self.beliefs_used),
            "context": self.context.to_dict(),
        }


# ---------------------------
# Validation helpers
# ---------------------------

def _finite(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def validate_constraint(c: Constraint) -> List[str]:
    errors: List[str] = []
    if not c.id:
        errors.append("constraint id must be non-empty")
    if not c.principle:
        errors.append(f"constraint {c.id!r}: principle must be non-empty")
    if isinstance(c.priority, bool) or not isinstance(c.priority, int) or c.priority < 1:
        errors.append(f"constraint {c.id!r}: priority must be an integer >= 1, got {c.priority!r}")
    if not _finite(c.threshold) or not (0.0 <= c.threshold <= 1.0):
        errors.append(f"constraint {c.id!r}: threshold must be in [0,1], got {c.threshold!r}")
    if not _finite(c.weight) or c.weight < 0:
        errors.append(f"constraint {c.id!r}: weight must be >= 0, got {c.weight!r}")
    return errors


def _coerce_constraint(c: ConstraintLike) -> Constraint:
    if isinstance(c, Constraint):
        return c
    try:
        return Constraint.from_dict(c)
    except (KeyError, TypeError, ValueError) as e:
        raise vast_error(ValidationError, VAST_E_CONSTRAINT, f"Malformed constraint: {e}", constraint=dict(c)) from e


def _prepare_constraints(constraints: Iterable[ConstraintLike]) -> List[Constraint]:
    prepared = [_coerce_constraint(c) for c in constraints]
    errors: List[str] = []
    seen: set = set()
    for c in prepared:
        errors.extend(validate_constraint(c))
        if c.id in seen:
            errors.append(f"duplicate constraint id {c.id!r}")
        seen.add(c.id)
    if errors:
        raise vast_error(ValidationError, VAST_E_CONSTRAINT, "; ".join(errors))
    return sorted(prepared, key=lambda c: c.priority)


def _coerce_context(context: ContextLike) -> ActionContext:
    if isinstance(context, ActionContext):
        return context
    return ActionContext.from_dict(context)


def _as_map(beliefs: BeliefsLike) -> Mapping[str, Belief]:
    if isinstance(beliefs, BeliefStore):
        return beliefs.as_map()
    return beliefs


# ---------------------------
# Engine
# ---------------------------

class DecisionEngine:
    def __init__(
        self,
        params: Optional[DecisionParams] = None,
        constraints: Iterable[ConstraintLike] = (),
        rules: Optional[ViolationRuleTable] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        params = params or DecisionParams()
        self._validate_params(params)
        self._params = copy.copy(params)
        self._constraints = _prepare_constraints(constraints)
        self._rules = rules if rules is not None else DEFAULT_VIOLATION_RULES
        self._clock: Clock = clock or system_clock
        self.last_skipped: List[str] = []

    # ---------------------------
    # Decisions
    # ---------------------------

    def decide(self, action_ids: Sequence[str], beliefs: BeliefsLike, context: ContextLike = None) -> List[EUBreakdown]:
        """Ranked breakdowns for every action that has a belief."""
        return self.evaluate(action_ids, beliefs, context).breakdowns

    def evaluate(self, action_ids: Sequence[str], beliefs: BeliefsLike, context: ContextLike = None) -> DecisionResult:
        ctx = _coerce_context(context)
        belief_map = _as_map(beliefs)

        breakdowns: List[EUBreakdown] = []
        skipped: List[str] = []
        used: List[str] = []
        for action in list(action_ids):
            belief = belief_map.get(action)
            if belief is None:
                logger.warning("No belief found for action: %s", action)
                skipped.append(action)
                continue
            breakdowns.append(self.breakdown(action, belief, ctx))
            used.append(action)

        ranked = sorted(breakdowns, key=lambda b: -b.eeu_total)
        self.last_skipped = skipped
        metrics.record_decision(len(skipped))

        selected = ranked[0].action_id if ranked else None
        if selected is not None:
            logger.debug("Selected %s (EEU %.4f) from %d candidates", selected, ranked[0].eeu_total, len(ranked))
        return DecisionResult(
            timestamp=self._clock(),
            selected_action=selected,
            breakdowns=ranked,
            skipped_actions=skipped,
            beliefs_used=used,
            context=ctx,
        )

    def breakdown(self, action: str, belief: Belief, context: ContextLike = None) -> EUBreakdown:
        ctx = _coerce_context(context)
        eu_base = self.base_expected_utility(action, belief, ctx)
        violations = self.assess_violations(action, belief, ctx)
        total_penalty = self.cascading_penalty(violations)
        eeu_total = eu_base - total_penalty
        chain = self._build_chain(action, belief, eu_base, violations, total_penalty, eeu_total)
        return EUBreakdown(
            action_id=action,
            eu_base=eu_base,
            constraints=violations,
            eeu_total=eeu_total,
            justification_chain=chain,
        )

    # ---------------------------
    # Steps
    # ---------------------------

    def utility(self, action: str, outcome: str, context: ActionContext) -> float:
        fn: UtilityFn = self._params.base_utility_fn or default_utility
        return float(fn(action, outcome, context))

    def base_expected_utility(self, action: str, belief: Belief, context: ActionContext) -> float:
        eu = sum(p * self.utility(action, outcome, context) for outcome, p in belief.pi.items())
        return eu * belief.kappa

    def assess_violations(self, action: str, belief: Belief, context: ActionContext) -> List[ConstraintViolation]:
        violations: List[ConstraintViolation] = []
        for c in self._constraints:
            amount, explanation = self._rules.evaluate(action, belief, c, context)
            if amount <= c.threshold:
                continue
            excess = amount - c.threshold
            violations.append(
                ConstraintViolation(
                    constraint_id=c.id,
                    violation_amount=amount,
                    penalty=c.weight * excess ** 2,
                    explanation=explanation,
                )
            )
            metrics.record_violation(c.principle)
        return violations

    def cascading_penalty(self, violations: Iterable[ConstraintViolation]) -> float:
        by_id = {c.id: c for c in self._constraints}
        tiers: Dict[int, float] = {}
        for v in violations:
            c = by_id.get(v.constraint_id)
            if c is None:
                continue
            tiers[c.priority] = tiers.get(c.priority, 0.0) + v.penalty
        lam = self._params.lambda_
        return sum(lam ** (p - 1) * tiers[p] for p in sorted(tiers))

    def _build_chain(
        self,
        action: str,
        belief: Belief,
        eu_base: float,
        violations: List[ConstraintViolation],
        total_penalty: float,
        eeu_total: float,
    ) -> List[str]:
        chain = [
            f"Action: {action}",
            f"Base Expected Utility: {eu_base:.4f}",
            f"  Confidence (κ): {belief.kappa:.3f}",
            f"  Credence outcomes: {len(belief.pi)}",
        ]
        if not violations:
            chain.append("No constraint violations detected")
        else:
            by_id = {c.id: c for c in self._constraints}
            chain.append(f"Constraint Violations: {len(violations)}")
            for v in violations:
                c = by_id.get(v.constraint_id)
                if c is None:
                    continue
                chain.append(
                    f"  • {c.title} (priority {c.priority}): "
                    f"violation={v.violation_amount:.3f}, penalty={v.penalty:.4f}"
                )
                chain.append(f"    Reason: {v.explanation}")
            chain.append(f"Total Cascading Penalty: {total_penalty:.4f}")
        chain.append(f"Final EEU: {eeu_total:.4f}")
        chain.append("Justification:")
        belief_chain = belief.J.chain if belief.J.chain is not None else build_justification_chain(belief.J)
        chain.extend(f"  {line}" for line in belief_chain)
        return chain

    # ---------------------------
    # Parameters and constraints
    # ---------------------------

    @staticmethod
    def _validate_params(params: DecisionParams) -> None:
        errors = params.validate()
        if errors:
            raise vast_error(ValidationError, VAST_E_VALIDATION, "; ".join(errors), lambda_=params.lambda_)

    @property
    def params(self) -> DecisionParams:
        return copy.copy(self._params)

    def update_params(self, **changes: Any) -> None:
        if "lambda" in changes:
            changes["lambda_"] = changes.pop("lambda")
        candidate = DecisionParams(
            lambda_=changes.get("lambda_", self._params.lambda_),
            base_utility_fn=changes.get("base_utility_fn", self._params.base_utility_fn),
        )
        self._validate_params(candidate)
        self._params = candidate

    @property
    def rules(self) -> ViolationRuleTable:
        return self._rules

    @property
    def constraints(self) -> List[Constraint]:
        return list(self._constraints)

    def update_constraints(self, constraints: Iterable[ConstraintLike]) -> None:
        self._constraints = _prepare_constraints(constraints)

    def add_constraint(self, constraint: ConstraintLike) -> None:
        self._constraints = _prepare_constraints([*self._constraints, constraint])

    def remove_constraint(self, constraint_id: str) -> bool:
        before = len(self._constraints)
        self._constraints = [c for c in self._constraints if c.id != constraint_id]
        return len(self._constraints) != before

    def priority_of(self, constraint_id: str) -> Optional[int]:
        for c in self._constraints:
            if c.id == constraint_id:
                return c.priority
        return None

