"""
Belief revision under a moral-stability constraint (JWMC:
Justified Weighted Moral Compatibility).

    w      = clamp01(γ · jaccard(J_old, J_new) + bonus)   bonus if both invoke a core principle
    α_eff  = α · w + (1 − w) · 0.5
    π_new  = normalize(α_eff · π_old + (1 − α_eff) · π_ev)
    κ_new  = clamp01(min(κ_old, κ_ev) · (β + (1 − β) · w))
    J_new  = J_old ∪ J_ev (order preserving, deduplicated)

High moral weight (similar justifications sharing core principles) lets the
existing belief hold its ground in proportion to α; low moral weight pulls
the blend toward an even compromise. Confidence never rises above what
either side supports alone.

The engine is stateless apart from its parameters: it never mutates the
beliefs it is given and returns a new Belief plus a BeliefDelta for the
audit log.
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import asdict
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from . import metrics
from .beliefs import (
    BeliefStore,
    build_justification_chain,
    coerce_justification,
    has_core_principle,
    jaccard_similarity,
    kl_divergence,
    normalize_credence,
    validate_confidence,
    validate_credence,
)
from .clock import Clock, ms_to_iso, system_clock
from .config import CORE_MORAL_PRINCIPLES, RevisionParams
from .errors import NotFoundError, ValidationError, vast_error, VAST_E_NOT_FOUND, VAST_E_VALIDATION
from .types import Belief, BeliefDelta, BeliefSource, Credence, Evidence, Justification

logger = logging.getLogger("vast_core.revision")

REVISION_METHOD = "jwmc_weighted_combination"
CONFLICT_RESOLUTION = "evidence_weighted_compromise"
CONFLICT_WEIGHT = 0.5

# Stability factor blend (diagnostic only)
CREDENCE_STABILITY_WEIGHT = 0.6
CONFIDENCE_STABILITY_WEIGHT = 0.4

EvidenceLike = Union[Evidence, Belief, Mapping]


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, float(x)))


def _dedupe(*lists: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(item for seq in lists for item in seq))


def _coerce_evidence(evidence: EvidenceLike) -> Evidence:
    if isinstance(evidence, Evidence):
        return evidence
    if isinstance(evidence, Belief):
        return Evidence(pi=dict(evidence.pi), kappa=evidence.kappa, J=evidence.J)
    if isinstance(evidence, Mapping):
        return Evidence.from_dict(evidence)
    raise vast_error(ValidationError, VAST_E_VALIDATION, f"Unsupported evidence type: {type(evidence).__name__}")


class RevisionEngine:
    """Revises beliefs against new evidence while preserving moral stability."""

    def __init__(
        self,
        params: Optional[RevisionParams] = None,
        core_principles: Iterable[str] = CORE_MORAL_PRINCIPLES,
        clock: Optional[Clock] = None,
    ) -> None:
        params = params or RevisionParams()
        self._validate_params(params)
        self._params = copy.copy(params)
        self._core: set = set(core_principles)
        self._clock: Clock = clock or system_clock

    # ---------------------------
    # Revision
    # ---------------------------

    def revise(self, existing: Belief, evidence: EvidenceLike) -> Tuple[Belief, BeliefDelta]:
        ev = _coerce_evidence(evidence)

        ev_pi: Credence = existing.pi
        if ev.pi is not None:
            validate_credence(ev.pi)
            ev_pi = {str(k): float(v) for k, v in ev.pi.items()}
        ev_kappa = validate_confidence(ev.kappa) if ev.kappa is not None else existing.kappa
        ev_J = coerce_justification(ev.J) if ev.J is not None else existing.J

        moral_weight = self.moral_weight(existing.J, ev_J)
        pi_new = self.blend_credences(existing.pi, ev_pi, moral_weight)
        kappa_new = self.update_confidence(existing.kappa, ev_kappa, moral_weight)

        now = self._clock()
        J_new = self.merge_justifications(existing.J, ev_J, moral_weight, now)
        stability = self.stability_factor(existing.pi, pi_new, existing.kappa, kappa_new)

        revised = Belief(
            proposition=existing.proposition,
            pi=pi_new,
            kappa=kappa_new,
            J=J_new,
            timestamp=now,
            source=BeliefSource.REVISED,
        )
        delta = BeliefDelta(
            proposition=existing.proposition,
            pi_before=dict(existing.pi),
            pi_after=dict(pi_new),
            kappa_before=existing.kappa,
            kappa_after=kappa_new,
            moral_weight=moral_weight,
            stability_factor=stability,
        )

        conflict = moral_weight < CONFLICT_WEIGHT
        metrics.record_revision(conflict)
        if conflict:
            logger.info(
                "Conflicting justification for %s (moral weight %.3f); using %s",
                existing.proposition, moral_weight, CONFLICT_RESOLUTION,
            )
        logger.debug(
            "Revised %s: w=%.3f κ %.3f -> %.3f stability=%.3f",
            existing.proposition, moral_weight, existing.kappa, kappa_new, stability,
        )
        return revised, delta

    def batch_revise(
        self,
        beliefs: Mapping[str, Belief],
        evidence_by_proposition: Mapping[str, EvidenceLike],
    ) -> Tuple[Dict[str, Belief], List[BeliefDelta]]:
        """Revise every belief that has evidence; pass the rest through unchanged."""
        updated: Dict[str, Belief] = {}
        deltas: List[BeliefDelta] = []
        for prop, existing in beliefs.items():
            evidence = evidence_by_proposition.get(prop)
            if evidence is None:
                updated[prop] = existing
                continue
            revised, delta = self.revise(existing, evidence)
            updated[prop] = revised
            deltas.append(delta)
        for prop in evidence_by_proposition:
            if prop not in beliefs:
                logger.warning("Evidence for unknown proposition %s ignored", prop)
        return updated, deltas

    def revise_stored(self, store: BeliefStore, proposition: str, evidence: EvidenceLike) -> Tuple[Belief, BeliefDelta]:
        """Revise a belief held in `store` and write the result back."""
        existing = store.get(proposition)
        if existing is None:
            raise vast_error(
                NotFoundError, VAST_E_NOT_FOUND, f"No existing belief for proposition: {proposition}",
                proposition=proposition,
            )
        revised, delta = self.revise(existing, evidence)
        return store.put(revised), delta

    # ---------------------------
    # Steps
    # ---------------------------

    def moral_weight(self, J1: Justification, J2: Justification) -> float:
        weight = self._params.gamma * jaccard_similarity(J1, J2)
        if has_core_principle(J1, self._core) and has_core_principle(J2, self._core):
            weight += self._params.moral_core_bonus
        return _clamp01(weight)

    def blend_credences(self, pi1: Mapping[str, float], pi2: Mapping[str, float], moral_weight: float) -> Credence:
        effective_alpha = self._params.alpha * moral_weight + (1.0 - moral_weight) * 0.5
        outcomes = list(dict.fromkeys([*pi1.keys(), *pi2.keys()]))
        blended = {
            o: effective_alpha * pi1.get(o, 0.0) + (1.0 - effective_alpha) * pi2.get(o, 0.0)
            for o in outcomes
        }
        return normalize_credence(blended)

    def update_confidence(self, kappa1: float, kappa2: float, moral_weight: float) -> float:
        beta = self._params.beta
        stability = beta + (1.0 - beta) * moral_weight
        return _clamp01(min(kappa1, kappa2) * stability)

    def merge_justifications(
        self,
        J1: Justification,
        J2: Justification,
        moral_weight: float,
        now_ms: float,
    ) -> Justification:
        if J1.context == J2.context:
            context = J1.context
        else:
            context = "; ".join(c for c in (J1.context, J2.context) if c)

        metadata = {
            "revision_method": REVISION_METHOD,
            "moral_weight": moral_weight,
            "revised_at": ms_to_iso(now_ms),
            "revision_count": int(J1.metadata.get("revision_count", 0)) + 1,
        }
        if moral_weight < CONFLICT_WEIGHT:
            metadata["conflict_detected"] = True
            metadata["resolution_strategy"] = CONFLICT_RESOLUTION

        merged = Justification(
            facts=_dedupe(J1.facts, J2.facts),
            rules=_dedupe(J1.rules, J2.rules),
            moral_principles=_dedupe(J1.moral_principles, J2.moral_principles),
            context=context,
            metadata=metadata,
        )
        return Justification(
            facts=merged.facts,
            rules=merged.rules,
            moral_principles=merged.moral_principles,
            context=merged.context,
            chain=build_justification_chain(merged),
            metadata=merged.metadata,
        )

    @staticmethod
    def stability_factor(
        pi_before: Mapping[str, float],
        pi_after: Mapping[str, float],
        kappa_before: float,
        kappa_after: float,
    ) -> float:
        """How little a revision moved the belief; 1.0 means unchanged."""
        kl = kl_divergence(pi_before, pi_after, support=pi_before.keys())
        credence_stability = math.exp(-kl)
        confidence_stability = 1.0 - abs(kappa_before - kappa_after)
        return _clamp01(
            CREDENCE_STABILITY_WEIGHT * credence_stability + CONFIDENCE_STABILITY_WEIGHT * confidence_stability
        )

    # ---------------------------
    # Parameters
    # ---------------------------

    @staticmethod
    def _validate_params(params: RevisionParams) -> None:
        errors = params.validate()
        if errors:
            raise vast_error(ValidationError, VAST_E_VALIDATION, "; ".join(errors), params=asdict(params))

    @property
    def params(self) -> RevisionParams:
        return copy.copy(self._params)

    def update_params(self, **changes: float) -> None:
        candidate = RevisionParams(**{**asdict(self._params), **changes})
        self._validate_params(candidate)
        self._params = candidate

    @property
    def core_principles(self) -> List[str]:
        return sorted(self._core)

    def add_core_principle(self, principle: str) -> None:
        self._core.add(principle)

    def remove_core_principle(self, principle: str) -> None:
        self._core.discard(principle)
