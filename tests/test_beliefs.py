#!/usr/bin/env python3
"""
Test suite for the belief store and its pure helpers.

Tests cover:
- Credence validation and normalization (strict and lenient)
- Confidence and justification validation
- Entropy, Jaccard similarity, KL divergence
- Store lifecycle (create / update / remove / import / export)
- Copy semantics (callers never mutate stored state)
"""

import math
import unittest

from vast_core.beliefs import (
    BeliefStore,
    build_justification_chain,
    credence_entropy,
    credence_from_raw,
    has_core_principle,
    jaccard_similarity,
    kl_divergence,
    normalize_credence,
    validate_credence,
)
from vast_core.clock import ManualClock
from vast_core.errors import (
    NotFoundError,
    ValidationError,
    VAST_E_CONFIDENCE,
    VAST_E_CREDENCE,
    VAST_E_JUSTIFICATION,
    VAST_E_NOT_FOUND,
)
from vast_core.types import BeliefSource, Justification


def _J(**kw):
    base = {"facts": ["f1"], "rules": [], "moral_principles": [], "context": ""}
    base.update(kw)
    return Justification(**base)


class TestCredenceHelpers(unittest.TestCase):

    def test_validate_accepts_sum_within_tolerance(self):
        validate_credence({"a": 0.6, "b": 0.405})

    def test_validate_rejects_sum_outside_tolerance(self):
        with self.assertRaises(ValidationError) as cm:
            validate_credence({"a": 0.6, "b": 0.3})
        self.assertEqual(cm.exception.code, VAST_E_CREDENCE)

    def test_validate_rejects_single_outcome(self):
        with self.assertRaises(ValidationError):
            validate_credence({"a": 1.0})

    def test_validate_rejects_out_of_range_and_nan(self):
        with self.assertRaises(ValidationError):
            validate_credence({"a": 1.2, "b": -0.2})
        with self.assertRaises(ValidationError):
            validate_credence({"a": float("nan"), "b": 0.5})

    def test_normalize_sums_to_one(self):
        pi = normalize_credence({"a": 2.0, "b": 6.0})
        self.assertAlmostEqual(pi["a"], 0.25)
        self.assertAlmostEqual(pi["b"], 0.75)

    def test_normalize_zero_sum_fails(self):
        with self.assertRaises(ValidationError):
            normalize_credence({"a": 0.0, "b": 0.0})

    def test_raw_passthrough_and_normalize_band(self):
        exact = credence_from_raw({"a": 0.5, "b": 0.5005})
        self.assertEqual(exact, {"a": 0.5, "b": 0.5005})

        near = credence_from_raw({"a": 0.5, "b": 0.55})
        self.assertAlmostEqual(sum(near.values()), 1.0, places=12)

        with self.assertRaises(ValidationError):
            credence_from_raw({"a": 0.5, "b": 0.7})

    def test_entropy(self):
        self.assertAlmostEqual(credence_entropy({"a": 0.5, "b": 0.5}), 1.0)
        self.assertEqual(credence_entropy({"a": 1.0, "b": 0.0}), 0.0)

    def test_kl_divergence_identical_is_zero(self):
        pi = {"a": 0.3, "b": 0.7}
        self.assertAlmostEqual(kl_divergence(pi, dict(pi)), 0.0)

    def test_kl_divergence_uses_epsilon_for_missing_outcomes(self):
        kl = kl_divergence({"a": 1.0, "b": 0.0}, {"b": 1.0})
        expected = 1.0 * math.log(1.0 / 0.001) + 0.001 * math.log(0.001 / 1.0)
        self.assertAlmostEqual(kl, expected)


class TestJustificationHelpers(unittest.TestCase):

    def test_jaccard(self):
        j1 = _J(facts=["a", "b"], rules=["r"])
        j2 = _J(facts=["a"], rules=["r"], moral_principles=["p"])
        # intersection {a, r}, union {a, b, r, p}
        self.assertAlmostEqual(jaccard_similarity(j1, j2), 0.5)

    def test_jaccard_both_empty(self):
        empty = Justification()
        self.assertEqual(jaccard_similarity(empty, empty), 0.0)

    def test_has_core_principle(self):
        self.assertTrue(has_core_principle(_J(moral_principles=["fairness"]), {"fairness"}))
        self.assertFalse(has_core_principle(_J(moral_principles=["efficiency"]), {"fairness"}))

    def test_chain_layout(self):
        chain = build_justification_chain(
            _J(facts=["f1"], rules=["r1"], moral_principles=["preserve_life"], context="ctx")
        )
        self.assertEqual(
            chain,
            [
                "Context: ctx",
                "Facts:",
                "  • f1",
                "Rules:",
                "  • r1",
                "Moral Principles:",
                "  • preserve_life",
            ],
        )


class TestBeliefStore(unittest.TestCase):

    def setUp(self):
        self.clock = ManualClock(1_000.0)
        self.store = BeliefStore(clock=self.clock)

    def test_create_normalizes_and_builds_chain(self):
        b = self.store.create("p", {"x": 0.6, "y": 0.405}, 0.8, _J(context="c"))
        self.assertAlmostEqual(sum(b.pi.values()), 1.0, delta=1e-9)
        self.assertEqual(b.timestamp, 1_000.0)
        self.assertEqual(b.source, BeliefSource.INITIAL)
        self.assertEqual(b.J.chain, ["Context: c", "Facts:", "  • f1"])

    def test_create_accepts_mapping_justification(self):
        b = self.store.create("p", {"x": 0.5, "y": 0.5}, 0.5, {"rules": ["r1"]})
        self.assertEqual(b.J.rules, ["r1"])

    def test_create_lenient(self):
        b = self.store.create("p", {"x": 0.5, "y": 0.55}, 0.5, _J(), lenient=True)
        self.assertAlmostEqual(sum(b.pi.values()), 1.0, delta=1e-9)

    def test_create_rejects_bad_confidence(self):
        with self.assertRaises(ValidationError) as cm:
            self.store.create("p", {"x": 0.5, "y": 0.5}, 1.5, _J())
        self.assertEqual(cm.exception.code, VAST_E_CONFIDENCE)

    def test_create_rejects_empty_justification(self):
        with self.assertRaises(ValidationError) as cm:
            self.store.create("p", {"x": 0.5, "y": 0.5}, 0.5, Justification(context="only context"))
        self.assertEqual(cm.exception.code, VAST_E_JUSTIFICATION)
        self.assertFalse(self.store.has("p"))

    def test_update_marks_revised(self):
        self.store.create("p", {"x": 0.5, "y": 0.5}, 0.5, _J())
        self.clock.advance(10)
        b = self.store.update("p", kappa=0.9)
        self.assertEqual(b.kappa, 0.9)
        self.assertEqual(b.source, BeliefSource.REVISED)
        self.assertEqual(b.timestamp, 1_010.0)

    def test_update_unknown_raises_not_found(self):
        with self.assertRaises(NotFoundError) as cm:
            self.store.update("missing", kappa=0.5)
        self.assertEqual(cm.exception.code, VAST_E_NOT_FOUND)
        self.assertIsInstance(cm.exception, KeyError)

    def test_get_returns_copy(self):
        self.store.create("p", {"x": 0.5, "y": 0.5}, 0.5, _J())
        b = self.store.get("p")
        b.pi["x"] = 0.99
        b.J.facts.append("mutated")
        fresh = self.store.get("p")
        self.assertEqual(fresh.pi["x"], 0.5)
        self.assertEqual(fresh.J.facts, ["f1"])

    def test_remove_and_size(self):
        self.store.create("p", {"x": 0.5, "y": 0.5}, 0.5, _J())
        self.store.create("q", {"x": 0.5, "y": 0.5}, 0.5, _J())
        self.assertEqual(self.store.size(), 2)
        self.assertTrue(self.store.remove("p"))
        self.assertFalse(self.store.remove("p"))
        self.assertEqual(len(self.store), 1)
        self.assertNotIn("p", self.store)

    def test_export_import_roundtrip(self):
        self.store.create("p", {"x": 0.25, "y": 0.75}, 0.6, _J(rules=["r"]))
        snapshot = self.store.export_all()
        other = BeliefStore(clock=self.clock)
        other.import_all(snapshot)
        self.assertEqual(other.get("p"), self.store.get("p"))
        self.assertEqual(other.get_justification_chain("p"), self.store.get_justification_chain("p"))

    def test_import_replaces_content(self):
        self.store.create("p", {"x": 0.5, "y": 0.5}, 0.5, _J())
        other = BeliefStore(clock=self.clock)
        other.create("q", {"x": 0.5, "y": 0.5}, 0.5, _J())
        self.store.import_all(other.export_all())
        self.assertFalse(self.store.has("p"))
        self.assertTrue(self.store.has("q"))

    def test_clear(self):
        self.store.create("p", {"x": 0.5, "y": 0.5}, 0.5, _J())
        self.store.clear()
        self.assertEqual(self.store.size(), 0)
        self.assertEqual(self.store.get_justification_chain("p"), [])


if __name__ == "__main__":
    unittest.main()
