"""vast_core: belief revision, constrained decisions and audit trails.

A tick of the decision cycle touches every module here. Evidence revises the
(π, κ, J) beliefs held in a BeliefStore (RevisionEngine). Candidate actions
are ranked by constraint-penalized expected utility (DecisionEngine). The
revised state is scored on four gauges (GaugeMonitor). The outcome is
appended to an AuditLog that exports json, csv or signed golden baselines.
ScenarioRunner drives that cycle headlessly.

Importing the package loads nothing else; the exported classes and helpers
resolve on first attribute access.
"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _read_version_from_pyproject() -> str | None:
    """Version from a source checkout's pyproject.toml, or None outside one."""
    try:
        pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
        txt = pyproject.read_text(encoding="utf-8")
        m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
        return m.group(1) if m else None
    except OSError:
        return None


__version__ = (
    _read_version_from_pyproject()
    or "1.0.0"
)

__all__ = [
    "__version__",
    "BeliefStore",
    "RevisionEngine",
    "DecisionEngine",
    "DecisionResult",
    "GaugeMonitor",
    "AuditLog",
    "ScenarioRunner",
    "ManualClock",
    "VASTConfig",
    "create_config",
    "validate_config",
    "VASTError",
    "ValidationError",
    "NotFoundError",
    "UnsupportedFormatError",
    "SignatureError",
    "Ed25519KeyPair",
    "verify_golden_signature",
]

# public name -> (submodule, attribute)
_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "BeliefStore": ("vast_core.beliefs", "BeliefStore"),
    "RevisionEngine": ("vast_core.revision", "RevisionEngine"),
    "DecisionEngine": ("vast_core.decision", "DecisionEngine"),
    "DecisionResult": ("vast_core.decision", "DecisionResult"),
    "GaugeMonitor": ("vast_core.gauges", "GaugeMonitor"),
    "AuditLog": ("vast_core.audit_log", "AuditLog"),
    "ScenarioRunner": ("vast_core.runner", "ScenarioRunner"),
    "ManualClock": ("vast_core.clock", "ManualClock"),
    "VASTConfig": ("vast_core.config", "VASTConfig"),
    "create_config": ("vast_core.config", "create_config"),
    "validate_config": ("vast_core.config", "validate_config"),
    "VASTError": ("vast_core.errors", "VASTError"),
    "ValidationError": ("vast_core.errors", "ValidationError"),
    "NotFoundError": ("vast_core.errors", "NotFoundError"),
    "UnsupportedFormatError": ("vast_core.errors", "UnsupportedFormatError"),
    "SignatureError": ("vast_core.errors", "SignatureError"),
    "Ed25519KeyPair": ("vast_core.signing", "Ed25519KeyPair"),
    "verify_golden_signature": ("vast_core.signing", "verify_golden_signature"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        module = import_module(module_name)
        value = getattr(module, attr)
        globals()[name] = value
        return value
    raise AttributeError(f"module 'vast_core' has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_EXPORTS.keys())))
