"""Epoch-millisecond clock used for all persisted timestamps."""

import time
from collections.abc import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)


__all__ = ["Clock", "now_ms"]
