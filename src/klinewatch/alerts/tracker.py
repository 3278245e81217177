from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from klinewatch.utils.time import monotonic_s, utc_now_s
from klinewatch.utils.types import AlertEvent, KlineUpdate, WindowKey

log = structlog.get_logger("tracker")


@dataclass(slots=True)
class TrackerConfig:
    threshold_pct: float = 5.0       # |pct| >= threshold fires; 5.0 == 5%
    expiry_delay_s: float = 600.0    # keep a closed window's key this long
    max_entries: int = 20_000        # sweep() clears everything above this


def format_pct(pct: float) -> str:
    return f"{pct:+.2f}%"


class WindowAlertTracker:
    """
    Per-window alert dedup: at most one alert per (symbol, window_start).

    The registry maps WindowKey → alerted. When a window's closed update is
    observed the key gets a removal deadline (expiry_delay_s from now, first
    deadline wins). Expired keys are dropped lazily on observe() and in bulk
    by sweep(), which also clears the whole registry above max_entries.

    Alerts go out through `emit` (non-blocking, e.g. NotifyQueue.try_put);
    its outcome is ignored.
    """

    def __init__(
        self,
        emit: Callable[[AlertEvent], object],
        cfg: Optional[TrackerConfig] = None,
        clock: Callable[[], float] = monotonic_s,
    ):
        self.cfg = cfg or TrackerConfig()
        if self.cfg.threshold_pct <= 0:
            raise ValueError("threshold_pct must be > 0")
        self._emit = emit
        self._clock = clock
        self._alerted: dict[WindowKey, bool] = {}
        self._expires_at: dict[WindowKey, float] = {}

    def __len__(self) -> int:
        return len(self._alerted)

    # ---------- core ----------

    def observe(self, u: KlineUpdate) -> Optional[AlertEvent]:
        o = u.open_price
        c = u.close_price
        if not (_positive(o) and _positive(c)):
            return None

        pct = (c - o) * 100.0 / o
        key = u.key
        now = self._clock()
        self._expire_key(key, now)

        evt: Optional[AlertEvent] = None
        if not self._alerted.get(key) and abs(pct) >= self.cfg.threshold_pct:
            self._alerted[key] = True
            evt = {
                "symbol": u.symbol,
                "direction": "up" if pct >= 0 else "down",
                "price": c,
                "pct": pct,
                "pct_text": format_pct(pct),
                "window_start": u.window_start,
                "ts": utc_now_s(),
            }
            log.info("alert_fired", symbol=u.symbol, pct=evt["pct_text"], window_start=u.window_start)
            self._emit(evt)

        if u.is_closed:
            self._expires_at.setdefault(key, now + self.cfg.expiry_delay_s)
        return evt

    def sweep(self) -> int:
        """
        Drop expired keys; clear everything if still above max_entries.
        Returns the number of registry entries removed.
        """
        now = self._clock()
        before = len(self._alerted)
        for key in [k for k, exp in self._expires_at.items() if exp <= now]:
            self._expire_key(key, now)

        if len(self._alerted) > self.cfg.max_entries:
            log.warning("registry_cleared", entries=len(self._alerted), max_entries=self.cfg.max_entries)
            self._alerted.clear()
            self._expires_at.clear()
        return before - len(self._alerted)

    def _expire_key(self, key: WindowKey, now: float) -> None:
        exp = self._expires_at.get(key)
        if exp is not None and exp <= now:
            self._expires_at.pop(key, None)
            self._alerted.pop(key, None)


def _positive(v: float) -> bool:
    return isinstance(v, (int, float)) and math.isfinite(v) and v > 0.0
