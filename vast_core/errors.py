"""Stable error taxonomy for the VAST core.

Every failure raised by the core carries a machine-readable `code`, a human
message, and optional structured `details` so callers (UI, CLI, CI checks)
can branch on the code without parsing messages.

Taxonomy:
- ValidationError: malformed credence, confidence, justification, constraint
  or configuration values. Raised synchronously at construction/update time.
- NotFoundError: unknown proposition on update/remove/revise.
- UnsupportedFormatError: export format outside json/csv/pdf.
- SignatureError: golden-log signing problems (missing key, bad seed).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Type, TypeVar


# Validation
VAST_E_VALIDATION = "VAST_E_VALIDATION"
VAST_E_CREDENCE = "VAST_E_CREDENCE"
VAST_E_CONFIDENCE = "VAST_E_CONFIDENCE"
VAST_E_JUSTIFICATION = "VAST_E_JUSTIFICATION"
VAST_E_CONSTRAINT = "VAST_E_CONSTRAINT"
VAST_E_CONFIG = "VAST_E_CONFIG"

# Lookup
VAST_E_NOT_FOUND = "VAST_E_NOT_FOUND"

# Export / golden logs
VAST_E_UNSUPPORTED_FORMAT = "VAST_E_UNSUPPORTED_FORMAT"
VAST_E_SIGNATURE = "VAST_E_SIGNATURE"


@dataclass
class VASTError(Exception):
    """Base VAST exception with stable error code."""

    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass
class ValidationError(VASTError, ValueError):
    """Malformed input rejected at the point of construction or update."""


@dataclass
class NotFoundError(VASTError, KeyError):
    """Unknown proposition (or other keyed record)."""

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the args; keep the readable form.
        return f"{self.code}: {self.message}"


@dataclass
class UnsupportedFormatError(VASTError, ValueError):
    """Export format not in {json, csv, pdf}."""


@dataclass
class SignatureError(VASTError):
    """Golden-log signing or verification material is unusable."""


E = TypeVar("E", bound=VASTError)


def vast_error(cls: Type[E], code: str, message: str, **details: Any) -> E:
    return cls(code=code, message=message, details=details)
