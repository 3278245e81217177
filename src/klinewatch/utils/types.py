from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, TypedDict

# ---- ingest-level primitives ----

WindowKey = tuple[str, int]  # (symbol, window_start_ms)

@dataclass(slots=True, frozen=True)
class KlineUpdate:
    """
    One snapshot of a kline window for one symbol.
    Many arrive per window while it is open; the last has is_closed=True.
    """
    symbol: str
    interval: str
    window_start: int     # epoch ms
    window_end: int       # epoch ms
    open_price: float
    close_price: float    # current price while the window is open
    is_closed: bool
    event_time: Optional[int] = None  # epoch ms

    @property
    def key(self) -> WindowKey:
        return (self.symbol, self.window_start)

# ---- alerting domain ----

Direction = Literal["up", "down"]

class AlertEvent(TypedDict):
    symbol: str
    direction: Direction
    price: float
    pct: float          # signed percent, 5.0 == +5%
    pct_text: str       # "+5.00%"
    window_start: int
    ts: float
