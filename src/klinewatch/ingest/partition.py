from __future__ import annotations

from typing import Sequence, TypeVar

T = TypeVar("T")


def partition(items: Sequence[T], batch_size: int) -> list[list[T]]:
    """
    Split `items` into ordered, non-overlapping chunks of at most batch_size.
    Concatenating the chunks gives back the input.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be >= 1")
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]
