from __future__ import annotations

from html import escape

from klinewatch.alerts.tracker import format_pct


def format_price(px: float) -> str:
    """Up to 8 decimals, trailing zeros dropped: 105.0 → "105", 0.00001234 → "0.00001234"."""
    s = f"{px:.8f}".rstrip("0").rstrip(".")
    return s or "0"


def format_alert_html(evt: dict) -> str:
    """
    Telegram HTML text for an AlertEvent, e.g.
      🟢 <b>BTCUSDT</b> is up: <code>105 +5.00%</code>
    """
    sym = escape(str(evt.get("symbol", "?")))
    dirn = evt.get("direction", "up")
    pct_text = evt.get("pct_text") or format_pct(float(evt.get("pct", 0.0)))
    icon = "🟢" if dirn == "up" else "🔴"
    price = format_price(float(evt.get("price", 0.0)))
    return f"{icon} <b>{sym}</b> is {dirn}: <code>{price} {pct_text}</code>"


def format_crash_notice(err: BaseException) -> str:
    return f"❌ Bot crashed: {escape(str(err) or type(err).__name__)}"
