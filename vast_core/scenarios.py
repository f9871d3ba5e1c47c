"""Scenario definitions for the headless runner.

A scenario bundles a decision context, a constraint set, candidate actions
(each seeded as a belief keyed by the action id), and an evidence stream
applied on given ticks. Evidence addressed to "*" targets whichever action
ranked first on the previous tick.

Two scenarios ship built in: ventilator allocation (`healthcare_crisis`)
and emergency braking (`autonomous_vehicle`).
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import ValidationError, vast_error, VAST_E_VALIDATION
from .types import ActionContext, Constraint, Credence, Evidence, Justification

TOP_RANKED = "*"


DEFAULT_CONSTRAINTS: List[Constraint] = [
    Constraint(
        id="preserve_life",
        title="Preserve Life",
        principle="preserve_life",
        priority=1,
        threshold=0.2,
        weight=0.9,
        propagation=0.8,
        description="Actions must not needlessly endanger human life.",
    ),
    Constraint(
        id="non_maleficence",
        title="Non-Maleficence",
        principle="non_maleficence",
        priority=1,
        threshold=0.2,
        weight=0.8,
        description="Avoid causing harm.",
    ),
    Constraint(
        id="fairness",
        title="Fairness",
        principle="fairness",
        priority=2,
        threshold=0.3,
        weight=0.6,
        propagation=0.7,
        description="Treat like cases alike; no discrimination.",
    ),
    Constraint(
        id="respect_dignity",
        title="Respect Dignity",
        principle="respect_dignity",
        priority=2,
        threshold=0.3,
        weight=0.7,
        description="No coercion, deception or manipulation.",
    ),
    Constraint(
        id="transparency",
        title="Transparency",
        principle="transparency",
        priority=3,
        threshold=0.2,
        weight=0.4,
        description="Decisions must be backed by an inspectable justification.",
    ),
]


@dataclass(frozen=True)
class ScenarioAction:
    id: str
    label: str
    credence: Credence
    confidence: float
    justification: Justification

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScenarioAction":
        return cls(
            id=str(data["id"]),
            label=str(data.get("label") or data["id"]),
            credence={str(k): float(v) for k, v in dict(data["credence"]).items()},
            confidence=float(data["confidence"]),
            justification=Justification.from_dict(data.get("justification") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "credence": dict(self.credence),
            "confidence": self.confidence,
            "justification": self.justification.to_dict(),
        }


@dataclass(frozen=True)
class EvidenceEvent:
    tick: int
    proposition: str
    evidence: Evidence
    title: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EvidenceEvent":
        return cls(
            tick=int(data["tick"]),
            proposition=str(data.get("proposition") or TOP_RANKED),
            evidence=Evidence.from_dict(data),
            title=str(data.get("title") or ""),
        )


@dataclass(frozen=True)
class Scenario:
    id: str
    title: str
    actions: List[ScenarioAction]
    context: ActionContext = field(default_factory=ActionContext)
    constraints: List[Constraint] = field(default_factory=lambda: list(DEFAULT_CONSTRAINTS))
    evidence: List[EvidenceEvent] = field(default_factory=list)
    summary: str = ""
    domain: str = ""
    seed: Optional[int] = None
    perception: Optional[Dict[str, Any]] = None

    @property
    def action_ids(self) -> List[str]:
        return [a.id for a in self.actions]

    def evidence_for_tick(self, tick: int) -> List[EvidenceEvent]:
        return [e for e in self.evidence if e.tick == tick]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Scenario":
        try:
            actions = [ScenarioAction.from_dict(a) for a in data.get("actions") or []]
            constraints_raw = data.get("constraints")
            constraints = (
                [Constraint.from_dict(c) for c in constraints_raw]
                if constraints_raw is not None
                else list(DEFAULT_CONSTRAINTS)
            )
            evidence = [EvidenceEvent.from_dict(e) for e in data.get("evidence") or []]
            scenario_id = str(data["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise vast_error(ValidationError, VAST_E_VALIDATION, f"Malformed scenario: {e}") from e
        if not actions:
            raise vast_error(ValidationError, VAST_E_VALIDATION, f"Scenario {scenario_id!r} has no actions")
        seed = data.get("seed")
        return cls(
            id=scenario_id,
            title=str(data.get("title") or scenario_id),
            actions=actions,
            context=ActionContext.from_dict(data.get("context")),
            constraints=constraints,
            evidence=evidence,
            summary=str(data.get("summary") or data.get("description") or ""),
            domain=str(data.get("domain") or ""),
            seed=int(seed) if seed is not None else None,
            perception=copy.deepcopy(data.get("perception")),
        )


def load_scenario(path: Union[str, Path]) -> Scenario:
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise vast_error(ValidationError, VAST_E_VALIDATION, f"Invalid JSON in scenario file '{p}': {e}", path=str(p)) from e
    if not isinstance(data, dict):
        raise vast_error(ValidationError, VAST_E_VALIDATION, f"Scenario file '{p}' must contain a JSON object", path=str(p))
    return Scenario.from_dict(data)


# ---------------------------
# Built-in scenarios
# ---------------------------

_EVIDENCE_UPDATE = {
    "title": "Evidence update",
    "credence": {"effective": 0.85, "ineffective": 0.15},
    "confidence": 0.90,
    "justification": {
        "facts": ["updated_evidence", "new_research_findings"],
        "rules": ["evidence_based_practice"],
        "moral_principles": ["utilitarian_principle"],
        "context": "evidence_update",
    },
}

BUILTIN_SCENARIOS: Dict[str, Dict[str, Any]] = {
    "healthcare_crisis": {
        "id": "healthcare_crisis",
        "title": "Healthcare Crisis: Ventilator Allocation",
        "summary": "Hospital ventilator allocation during pandemic - ethical triage decision",
        "domain": "healthcare",
        "seed": 42,
        "context": {
            "scenario": "healthcare_crisis",
            "resource_scarcity": True,
            "moral_stakes": 0.9,
            "time_pressure": "high",
            "stakes": "high",
        },
        "perception": {
            "patients": [
                {"id": "patient_a", "age": 75, "severity": 8.2, "comorbidities": 2, "prognosis": "fair"},
                {"id": "patient_b", "age": 45, "severity": 7.8, "comorbidities": 1, "prognosis": "good"},
            ]
        },
        "actions": [
            {
                "id": "allocate_to_elderly",
                "label": "Allocate to Elderly Patient (A)",
                "credence": {"effective": 0.6, "ineffective": 0.4},
                "confidence": 0.72,
                "justification": {
                    "facts": ["patient_age_75", "severity_score_8.2", "comorbidities_2", "immediate_need"],
                    "rules": ["triage_protocols", "medical_ethics", "first_come_first_served"],
                    "moral_principles": ["preserve_life", "respect_dignity"],
                    "context": "healthcare_crisis",
                },
            },
            {
                "id": "allocate_to_younger",
                "label": "Allocate to Younger Patient (B)",
                "credence": {"effective": 0.8, "ineffective": 0.2},
                "confidence": 0.85,
                "justification": {
                    "facts": ["patient_age_45", "severity_score_7.8", "comorbidities_1", "better_prognosis"],
                    "rules": ["maximize_life_years", "clinical_protocols", "medical_effectiveness"],
                    "moral_principles": ["utilitarian_principle", "medical_effectiveness", "preserve_life"],
                    "context": "healthcare_crisis",
                },
            },
            {
                "id": "lottery_system",
                "label": "Random Lottery System",
                "credence": {"effective": 0.7, "ineffective": 0.3},
                "confidence": 0.65,
                "justification": {
                    "facts": ["equal_moral_worth", "both_critically_ill", "limited_resources"],
                    "rules": ["fairness_protocols", "ethical_guidelines"],
                    "moral_principles": ["fairness", "preserve_life"],
                    "context": "healthcare_crisis",
                },
            },
        ],
        "evidence": [
            {
                "tick": 1,
                "proposition": "allocate_to_younger",
                "title": "Updated Medical Assessment",
                "credence": {"effective": 0.82, "ineffective": 0.18},
                "confidence": 0.88,
                "justification": {
                    "facts": ["recent_clinical_study", "improved_survival_rates", "evidence_based_medicine"],
                    "rules": ["evidence_based_protocols", "maximize_survival"],
                    "moral_principles": ["medical_effectiveness", "utilitarian_principle"],
                    "context": "new_research_2024",
                },
            },
            dict(_EVIDENCE_UPDATE, tick=2, proposition=TOP_RANKED),
        ],
    },
    "autonomous_vehicle": {
        "id": "autonomous_vehicle",
        "title": "Autonomous Vehicle: Emergency Braking",
        "summary": "Split-second decision: child pedestrian suddenly crosses street",
        "domain": "transportation",
        "seed": 7,
        "context": {
            "scenario": "autonomous_vehicle",
            "time_pressure": "critical",
            "moral_stakes": 0.85,
            "stakes": "high",
        },
        "perception": {
            "situation": {
                "speed": "45 mph",
                "weather": "clear",
                "traffic": "moderate",
                "pedestrian": "child (age 8)",
                "obstacles": "parked cars on right, oncoming traffic on left",
            }
        },
        "actions": [
            {
                "id": "brake_hard",
                "label": "Emergency Brake",
                "credence": {"safe_outcome": 0.75, "collision": 0.25},
                "confidence": 0.82,
                "justification": {
                    "facts": ["stopping_distance_120ft", "child_distance_80ft", "dry_pavement"],
                    "rules": ["preserve_pedestrian_life", "minimize_harm"],
                    "moral_principles": ["preserve_life", "utilitarian_principle"],
                    "context": "emergency_scenario",
                },
            },
            {
                "id": "swerve_left",
                "label": "Swerve into Oncoming Lane",
                "credence": {"safe_outcome": 0.45, "collision": 0.55},
                "confidence": 0.68,
                "justification": {
                    "facts": ["oncoming_vehicle_detected", "head_on_collision_risk", "child_saved"],
                    "rules": ["avoid_certain_harm", "risk_assessment"],
                    "moral_principles": ["preserve_life", "fairness"],
                    "context": "emergency_scenario",
                },
            },
            {
                "id": "maintain_course",
                "label": "Maintain Course (Sound Horn)",
                "credence": {"safe_outcome": 0.3, "collision": 0.7},
                "confidence": 0.55,
                "justification": {
                    "facts": ["insufficient_stopping_distance", "swerve_endangers_others"],
                    "rules": ["passenger_safety_priority", "manufacturer_liability"],
                    "moral_principles": ["efficiency", "fairness"],
                    "context": "emergency_scenario",
                },
            },
        ],
        "evidence": [
            {
                "tick": 1,
                "proposition": TOP_RANKED,
                "title": "Sensor confirmation",
                "credence": {"safe_outcome": 0.8, "collision": 0.2},
                "confidence": 0.88,
                "justification": {
                    "facts": ["lidar_confirms_distance", "brake_system_nominal"],
                    "rules": ["minimize_harm"],
                    "moral_principles": ["preserve_life"],
                    "context": "sensor_update",
                },
            },
        ],
    },
}


def builtin_scenario_ids() -> List[str]:
    return sorted(BUILTIN_SCENARIOS)


def get_builtin_scenario(scenario_id: str) -> Scenario:
    data = BUILTIN_SCENARIOS.get(scenario_id)
    if data is None:
        raise vast_error(
            ValidationError, VAST_E_VALIDATION, f"Unknown scenario: {scenario_id}",
            known=builtin_scenario_ids(),
        )
    return Scenario.from_dict(data)
