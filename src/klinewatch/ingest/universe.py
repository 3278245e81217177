from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

import aiohttp
import structlog

log = structlog.get_logger("universe")

# Leveraged / synthetic tickers
EXCLUDE_PATTERNS: tuple[str, ...] = (
    "UPUSDT",
    "DOWNUSDT",
    "BULLUSDT",
    "BEARUSDT",
    "VENUSDT",
    "VOLATILITY",
)


@dataclass(slots=True)
class UniverseConfig:
    exchange_info_url: str = "https://api.binance.com/api/v3/exchangeInfo"
    quote_asset: str = "USDT"
    max_symbols: int = 500
    exclude_patterns: tuple[str, ...] = field(default=EXCLUDE_PATTERNS)
    timeout_s: float = 15.0


def _spot_allowed(d: dict) -> bool:
    if d.get("isSpotTradingAllowed"):
        return True
    if "SPOT" in (d.get("permissions") or ()):
        return True
    # newer exchangeInfo responses nest permissions as a list of sets
    return any("SPOT" in (ps or ()) for ps in (d.get("permissionSets") or ()))


def filter_symbols(descriptors: Iterable[dict], cfg: Optional[UniverseConfig] = None) -> list[str]:
    """
    Keep TRADING spot pairs quoted in cfg.quote_asset whose name contains none of
    the excluded patterns. Truncated to the first cfg.max_symbols in provider order.
    """
    cfg = cfg or UniverseConfig()
    out: list[str] = []
    for d in descriptors:
        name = d.get("symbol")
        if not name or d.get("status") != "TRADING":
            continue
        if d.get("quoteAsset") != cfg.quote_asset:
            continue
        if any(p in name for p in cfg.exclude_patterns):
            continue
        if not _spot_allowed(d):
            continue
        out.append(name)
        if len(out) >= cfg.max_symbols:
            break
    return out


async def fetch_symbol_universe(
    cfg: Optional[UniverseConfig] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> list[str]:
    """
    One-shot exchangeInfo request → filtered symbol list.
    HTTP and network errors propagate; the caller treats them as fatal.
    """
    cfg = cfg or UniverseConfig()
    own_session = session is None
    if own_session:
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=cfg.timeout_s))
    try:
        async with session.get(cfg.exchange_info_url) as resp:
            resp.raise_for_status()
            data = await resp.json()
    finally:
        if own_session:
            await session.close()

    descriptors = data.get("symbols") or []
    symbols = filter_symbols(descriptors, cfg)
    log.info("universe_loaded", listed=len(descriptors), selected=len(symbols), quote=cfg.quote_asset)
    return symbols
