"""Shared types for the trace codec and the session protocol."""

import time
from collections.abc import Callable
from typing import NewType

Clock = Callable[[], int]
"""Zero-argument callable returning the current time in milliseconds."""

SlotName = NewType("SlotName", str)
"""Key of one slot in the shared store, e.g. ``rhythm_3``."""


def wall_clock_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return time.time_ns() // 1_000_000


__all__ = ["Clock", "SlotName", "wall_clock_ms"]
