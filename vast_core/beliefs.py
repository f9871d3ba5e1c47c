"""
Belief store for (π, κ, J) beliefs.

The store owns the mapping proposition -> Belief. Every write validates the
incoming credence, confidence and justification, normalizes the credence,
rebuilds the justification display chain, and replaces the stored record
wholesale. Readers always get copies.

The module-level helpers (normalization, entropy, Jaccard similarity, KL
divergence) are pure functions shared with revision and gauge monitoring.
"""

from __future__ import annotations

import copy
import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from . import metrics
from .clock import Clock, system_clock
from .errors import (
    NotFoundError,
    ValidationError,
    vast_error,
    VAST_E_CONFIDENCE,
    VAST_E_CREDENCE,
    VAST_E_JUSTIFICATION,
    VAST_E_NOT_FOUND,
    VAST_E_VALIDATION,
)
from .types import Belief, BeliefSource, Credence, Justification

logger = logging.getLogger("vast_core.beliefs")

CREDENCE_TOLERANCE = 0.01
RAW_CREDENCE_TOLERANCE = 0.001
RAW_NORMALIZE_BAND = 0.1
KL_EPSILON = 0.001

JustificationLike = Union[Justification, Mapping[str, Any]]


# ---------------------------
# Pure helpers
# ---------------------------

def validate_credence(pi: Mapping[str, float], tolerance: float = CREDENCE_TOLERANCE) -> None:
    """Raise ValidationError unless pi has >=2 outcomes, values in [0,1], sum within tolerance of 1."""
    if not isinstance(pi, Mapping):
        raise vast_error(ValidationError, VAST_E_CREDENCE, "Credence π must be a mapping of outcome -> probability")
    if len(pi) < 2:
        raise vast_error(
            ValidationError, VAST_E_CREDENCE, "Credence π must have at least 2 outcomes", outcomes=list(pi)
        )
    for outcome, prob in pi.items():
        if isinstance(prob, bool) or not isinstance(prob, (int, float)) or not math.isfinite(prob):
            raise vast_error(
                ValidationError, VAST_E_CREDENCE, f'Probability for "{outcome}" must be a finite number, got {prob!r}'
            )
        if prob < 0 or prob > 1:
            raise vast_error(
                ValidationError, VAST_E_CREDENCE, f'Probability for "{outcome}" must be in [0,1], got {prob}'
            )
    total = math.fsum(pi.values())
    if abs(total - 1.0) > tolerance:
        raise vast_error(
            ValidationError,
            VAST_E_CREDENCE,
            f"Credence π must sum to 1.0 (got {total:.3f}). Use normalize_credence() to fix.",
            sum=total,
        )


def validate_confidence(kappa: Any) -> float:
    if isinstance(kappa, bool) or not isinstance(kappa, (int, float)) or not math.isfinite(kappa):
        raise vast_error(ValidationError, VAST_E_CONFIDENCE, f"Confidence κ must be a finite number, got {kappa!r}")
    if kappa < 0 or kappa > 1:
        raise vast_error(ValidationError, VAST_E_CONFIDENCE, f"Confidence κ must be in [0,1], got {kappa}")
    return float(kappa)


def validate_justification(J: Justification) -> None:
    if J.component_count() == 0:
        raise vast_error(
            ValidationError,
            VAST_E_JUSTIFICATION,
            "Justification J must have at least one component (facts, rules, or moral principles)",
        )


def normalize_credence(pi: Mapping[str, float]) -> Credence:
    total = math.fsum(pi.values())
    if total == 0:
        raise vast_error(ValidationError, VAST_E_CREDENCE, "Cannot normalize credence with sum=0")
    return {outcome: prob / total for outcome, prob in pi.items()}


def credence_from_raw(pi: Mapping[str, float]) -> Credence:
    """Accept a hand-entered credence: exact-ish sums pass through, near misses are normalized.

    Sum within 0.001 of 1 is copied unchanged; within 0.1 it is normalized;
    anything further off is rejected.
    """
    if len(pi) < 2:
        raise vast_error(ValidationError, VAST_E_CREDENCE, "Credence π must have at least 2 outcomes")
    for outcome, prob in pi.items():
        if isinstance(prob, bool) or not isinstance(prob, (int, float)) or not math.isfinite(prob) or prob < 0:
            raise vast_error(
                ValidationError, VAST_E_CREDENCE, f'Probability for "{outcome}" must be a number >= 0, got {prob!r}'
            )
    total = math.fsum(pi.values())
    drift = abs(total - 1.0)
    if drift <= RAW_CREDENCE_TOLERANCE:
        return {str(k): float(v) for k, v in pi.items()}
    if drift < RAW_NORMALIZE_BAND:
        return normalize_credence({str(k): float(v) for k, v in pi.items()})
    raise vast_error(
        ValidationError, VAST_E_CREDENCE, f"Credence probabilities must sum to 1, got {total}", sum=total
    )


def credence_entropy(pi: Mapping[str, float]) -> float:
    """Shannon entropy in bits over the nonzero probabilities."""
    return -sum(p * math.log2(p) for p in pi.values() if p > 0)


def kl_divergence(
    p: Mapping[str, float],
    q: Mapping[str, float],
    epsilon: float = KL_EPSILON,
    support: Optional[Iterable[str]] = None,
) -> float:
    """KL(p || q) in nats with an epsilon floor on missing or zero probabilities.

    The sum runs over `support` when given, otherwise over the union of outcomes.
    """
    outcomes = list(support) if support is not None else list(dict.fromkeys([*p.keys(), *q.keys()]))
    kl = 0.0
    for outcome in outcomes:
        p1 = p.get(outcome, 0.0) or epsilon
        p2 = q.get(outcome, 0.0) or epsilon
        kl += p1 * math.log(p1 / p2)
    return kl


def jaccard_similarity(J1: Justification, J2: Justification) -> float:
    """|A ∩ B| / |A ∪ B| over facts ∪ rules ∪ moral_principles; 0 when both are empty."""
    set1 = J1.components()
    set2 = J2.components()
    union = set1 | set2
    if not union:
        return 0.0
    return len(set1 & set2) / len(union)


def has_core_principle(J: Justification, core_principles: Iterable[str]) -> bool:
    core = set(core_principles)
    return any(mp in core for mp in J.moral_principles)


def build_justification_chain(J: Justification) -> List[str]:
    chain: List[str] = []
    if J.context:
        chain.append(f"Context: {J.context}")
    if J.facts:
        chain.append("Facts:")
        chain.extend(f"  • {f}" for f in J.facts)
    if J.rules:
        chain.append("Rules:")
        chain.extend(f"  • {r}" for r in J.rules)
    if J.moral_principles:
        chain.append("Moral Principles:")
        chain.extend(f"  • {mp}" for mp in J.moral_principles)
    return chain


def coerce_justification(J: JustificationLike) -> Justification:
    if isinstance(J, Justification):
        return J
    if isinstance(J, Mapping):
        return Justification.from_dict(J)
    raise vast_error(ValidationError, VAST_E_JUSTIFICATION, f"Unsupported justification type: {type(J).__name__}")


def _rebuilt_justification(J: Justification) -> Justification:
    """Fresh Justification with copied components and a recomputed chain."""
    return Justification(
        facts=list(J.facts),
        rules=list(J.rules),
        moral_principles=list(J.moral_principles),
        context=J.context,
        chain=build_justification_chain(J),
        metadata=copy.deepcopy(J.metadata),
    )


# ---------------------------
# Store
# ---------------------------

class BeliefStore:
    """Instance-scoped store of beliefs keyed by proposition."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock: Clock = clock or system_clock
        self._beliefs: Dict[str, Belief] = {}

    def create(
        self,
        proposition: str,
        pi: Mapping[str, float],
        kappa: float,
        J: JustificationLike,
        source: Union[BeliefSource, str] = BeliefSource.INITIAL,
        *,
        lenient: bool = False,
    ) -> Belief:
        """Validate and store a new belief, replacing any existing one for the proposition.

        With lenient=True the credence goes through `credence_from_raw`
        (near-miss sums are normalized instead of rejected).
        """
        if not isinstance(proposition, str) or not proposition:
            raise vast_error(ValidationError, VAST_E_VALIDATION, "Belief proposition must be a non-empty string")
        if lenient:
            credence = credence_from_raw(pi)
        else:
            validate_credence(pi)
            credence = {str(k): float(v) for k, v in pi.items()}
        credence = normalize_credence(credence)
        k = validate_confidence(kappa)
        justification = coerce_justification(J)
        validate_justification(justification)

        belief = Belief(
            proposition=proposition,
            pi=credence,
            kappa=k,
            J=_rebuilt_justification(justification),
            timestamp=self._clock(),
            source=BeliefSource(source),
        )
        self._beliefs[proposition] = belief
        metrics.record_belief_write("create")
        logger.debug("Created belief %s (κ=%.3f, outcomes=%d)", proposition, k, len(credence))
        return belief.copy()

    def update(
        self,
        proposition: str,
        *,
        pi: Optional[Mapping[str, float]] = None,
        kappa: Optional[float] = None,
        J: Optional[JustificationLike] = None,
    ) -> Belief:
        """Replace the stored belief with revalidated components; source becomes "revised"."""
        existing = self._beliefs.get(proposition)
        if existing is None:
            raise vast_error(
                NotFoundError, VAST_E_NOT_FOUND, f"Belief {proposition} does not exist", proposition=proposition
            )

        if pi is not None:
            validate_credence(pi)
            credence = normalize_credence({str(k): float(v) for k, v in pi.items()})
        else:
            credence = dict(existing.pi)

        k = validate_confidence(kappa) if kappa is not None else existing.kappa

        if J is not None:
            justification = coerce_justification(J)
            validate_justification(justification)
        else:
            justification = existing.J

        updated = Belief(
            proposition=proposition,
            pi=credence,
            kappa=k,
            J=_rebuilt_justification(justification),
            timestamp=self._clock(),
            source=BeliefSource.REVISED,
        )
        self._beliefs[proposition] = updated
        metrics.record_belief_write("update")
        return updated.copy()

    def put(self, belief: Belief) -> Belief:
        """Store an already-built belief (e.g. a revision result) after validating it."""
        validate_credence(belief.pi)
        validate_confidence(belief.kappa)
        validate_justification(belief.J)
        stored = Belief(
            proposition=belief.proposition,
            pi=normalize_credence(belief.pi),
            kappa=float(belief.kappa),
            J=_rebuilt_justification(belief.J),
            timestamp=belief.timestamp,
            source=BeliefSource(belief.source),
        )
        self._beliefs[belief.proposition] = stored
        metrics.record_belief_write("put")
        return stored.copy()

    def remove(self, proposition: str) -> bool:
        removed = self._beliefs.pop(proposition, None) is not None
        if removed:
            metrics.record_belief_write("remove")
        return removed

    def get(self, proposition: str) -> Optional[Belief]:
        belief = self._beliefs.get(proposition)
        return belief.copy() if belief is not None else None

    def has(self, proposition: str) -> bool:
        return proposition in self._beliefs

    def __contains__(self, proposition: object) -> bool:
        return proposition in self._beliefs

    def __len__(self) -> int:
        return len(self._beliefs)

    def size(self) -> int:
        return len(self._beliefs)

    def all(self) -> List[Belief]:
        return [b.copy() for b in self._beliefs.values()]

    def as_map(self) -> Dict[str, Belief]:
        """Snapshot as a proposition -> Belief dict (copies)."""
        return {p: b.copy() for p, b in self._beliefs.items()}

    def get_justification_chain(self, proposition: str) -> List[str]:
        belief = self._beliefs.get(proposition)
        if belief is None or belief.J.chain is None:
            return []
        return list(belief.J.chain)

    def clear(self) -> None:
        self._beliefs.clear()

    def export_all(self) -> List[Belief]:
        return copy.deepcopy(list(self._beliefs.values()))

    def import_all(self, beliefs: Iterable[Belief]) -> None:
        """Replace the store content with deep copies of `beliefs` (snapshot restore / replay)."""
        restored: Dict[str, Belief] = {}
        for b in beliefs:
            b = copy.deepcopy(b)
            if b.J.chain is None:
                b = Belief(
                    proposition=b.proposition,
                    pi=b.pi,
                    kappa=b.kappa,
                    J=_rebuilt_justification(b.J),
                    timestamp=b.timestamp,
                    source=b.source,
                )
            restored[b.proposition] = b
        self._beliefs = restored
