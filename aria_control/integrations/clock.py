"""
Trusted clock collaborator.

The control plane reads the clock at most once per instruction and compares
time guards against that single reading. It treats successive readings as
non-decreasing but never checks that property itself.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol

from aria_control.core.errors import CollaboratorFailure


class Clock(Protocol):
    def now(self) -> int:
        """Current unix timestamp in seconds."""
        ...


class SystemClock:
    """Wall-clock time of the host."""

    def now(self) -> int:
        return int(time.time())


@dataclass
class FixedClock:
    """Clock pinned to an explicit timestamp; moves only when told to."""

    current: int = 0

    def now(self) -> int:
        return self.current

    def set(self, timestamp: int) -> None:
        self.current = timestamp

    def advance(self, seconds: int) -> None:
        self.current += seconds


def read_clock(clock: Clock) -> int:
    """
    Take one reading from ``clock``.

    Raises:
        CollaboratorFailure: If the clock fails or returns an invalid reading.
    """
    try:
        reading = clock.now()
    except CollaboratorFailure:
        raise
    except Exception as exc:
        raise CollaboratorFailure(f"Clock reading failed: {exc}") from exc

    if isinstance(reading, bool) or not isinstance(reading, int) or reading < 0:
        raise CollaboratorFailure(f"Clock returned an invalid timestamp: {reading!r}")
    return reading
