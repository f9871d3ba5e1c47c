"""Injectable time source.

All time-dependent behavior (belief timestamps, alert cooldowns, audit
timestamps) reads time through a `Clock`: any zero-argument callable that
returns epoch milliseconds. Production code uses `system_clock`; tests and
replays pass a `ManualClock` and move it explicitly.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], float]


def system_clock() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000.0


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)

    def __call__(self) -> float:
        return self._now

    def advance(self, ms: float) -> float:
        if ms < 0:
            raise ValueError(f"cannot move a ManualClock backwards (advance={ms})")
        self._now += float(ms)
        return self._now

    def set(self, ms: float) -> None:
        self._now = float(ms)


def ms_to_iso(ms: float) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC timestamp (millisecond precision, Z suffix)."""
    dt = datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
