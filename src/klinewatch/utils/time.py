from __future__ import annotations

import time


def utc_now_s() -> float:
    """Unix epoch seconds (float)."""
    return time.time()


def monotonic_s() -> float:
    """Monotonic clock for deadlines; unaffected by wall-clock jumps."""
    return time.monotonic()
