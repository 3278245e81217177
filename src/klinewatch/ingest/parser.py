from __future__ import annotations

import math
from typing import Any, Optional

from klinewatch.utils.types import KlineUpdate


def _to_float(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _to_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def parse_kline_msg(m: Any) -> Optional[KlineUpdate]:
    """
    Return KlineUpdate if `m` carries a kline payload; else None.

    Accepts the combined-stream envelope and the bare event:
      {"stream": "btcusdt@kline_5m", "data": {"e": "kline", "s": "BTCUSDT", "k": {...}}}
      {"e": "kline", "E": 1700000000123, "s": "BTCUSDT", "k": {...}}

    Fields read from "k":
      - "t"  window start (ms)      - "T"  window end (ms)
      - "i"  interval ("5m")        - "o"  open (decimal string)
      - "c"  close / current price  - "x"  window closed flag

    Control and ack messages ({"result": null, "id": 1}) return None, as do
    payloads with missing or non-numeric fields.
    """
    if not isinstance(m, dict):
        return None
    ev = m.get("data", m)
    if not isinstance(ev, dict) or ev.get("e") != "kline":
        return None

    k = ev.get("k")
    if not isinstance(k, dict):
        return None

    sym = ev.get("s") or k.get("s")
    start = _to_int(k.get("t"))
    end = _to_int(k.get("T"))
    o = _to_float(k.get("o"))
    c = _to_float(k.get("c"))
    if not sym or start is None or o is None or c is None:
        return None

    return KlineUpdate(
        symbol=str(sym),
        interval=str(k.get("i") or ""),
        window_start=start,
        window_end=end if end is not None else start,
        open_price=o,
        close_price=c,
        is_closed=k.get("x") is True,
        event_time=_to_int(ev.get("E")),
    )
