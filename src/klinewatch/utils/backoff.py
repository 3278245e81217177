from __future__ import annotations

BACKOFF_FLOOR_MS = 1_000
BACKOFF_CEILING_MS = 30_000


def next_backoff(prev: float, cap: float) -> float:
    """Exponential backoff progression with cap (no jitter)."""
    return min(prev * 2, cap)
