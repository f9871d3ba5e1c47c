import importlib
import re
from pathlib import Path

import pytest

import vast_core


def _pyproject_version() -> str:
    txt = (Path(__file__).resolve().parents[1] / "pyproject.toml").read_text(encoding="utf-8")
    m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
    assert m, "no [project].version in pyproject.toml"
    return m.group(1)


def test_decision_cycle_classes_resolve_from_package_root():
    from vast_core import AuditLog, BeliefStore, DecisionEngine, GaugeMonitor, RevisionEngine, ScenarioRunner
    from vast_core.audit_log import AuditLog as audit_log_cls
    from vast_core.runner import ScenarioRunner as runner_cls

    assert AuditLog is audit_log_cls
    assert ScenarioRunner is runner_cls
    assert {BeliefStore, DecisionEngine, GaugeMonitor, RevisionEngine}


def test_errors_and_signing_helpers_exported():
    from vast_core import Ed25519KeyPair, ValidationError, VASTError, verify_golden_signature

    assert issubclass(ValidationError, VASTError)
    assert callable(verify_golden_signature)
    assert Ed25519KeyPair.generate("k").can_sign()


def test_dir_lists_lazy_names_and_reload_keeps_them():
    assert {"DecisionResult", "ManualClock", "validate_config"} <= set(dir(vast_core))
    reloaded = importlib.reload(vast_core)
    assert hasattr(reloaded, "BeliefStore")


def test_unknown_attribute_raises():
    with pytest.raises(AttributeError, match="no attribute 'NoSuchThing'"):
        vast_core.NoSuchThing  # noqa: B018


def test_version_matches_pyproject():
    assert vast_core.__version__ == _pyproject_version()
