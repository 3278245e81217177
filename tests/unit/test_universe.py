import pytest

from klinewatch.ingest.universe import UniverseConfig, fetch_symbol_universe, filter_symbols


def desc(symbol, status="TRADING", quote="USDT", spot=True, permissions=None, permission_sets=None):
    d = {"symbol": symbol, "status": status, "quoteAsset": quote}
    if spot is not None:
        d["isSpotTradingAllowed"] = spot
    if permissions is not None:
        d["permissions"] = permissions
    if permission_sets is not None:
        d["permissionSets"] = permission_sets
    return d


DESCRIPTORS = [
    desc("BTCUSDT"),
    desc("ETHBTC", quote="BTC"),
    desc("LUNAUSDT", status="BREAK"),
    desc("BTCUPUSDT"),
    desc("ETHDOWNUSDT"),
    desc("XRPBULLUSDT"),
    desc("EOSBEARUSDT"),
    desc("VENUSDT"),
    desc("BVOLATILITYUSDT"),
    desc("MARGINONLYUSDT", spot=False),
    desc("PERMUSDT", spot=None, permissions=["SPOT", "MARGIN"]),
    desc("SETSUSDT", spot=False, permission_sets=[["MARGIN"], ["SPOT"]]),
    desc("ETHUSDT"),
]


def test_filter_symbols_applies_all_rules_in_order():
    assert filter_symbols(DESCRIPTORS) == ["BTCUSDT", "PERMUSDT", "SETSUSDT", "ETHUSDT"]


def test_filter_symbols_truncates_to_first_n():
    assert filter_symbols(DESCRIPTORS, UniverseConfig(max_symbols=2)) == ["BTCUSDT", "PERMUSDT"]


def test_filter_symbols_quote_asset():
    assert filter_symbols(DESCRIPTORS, UniverseConfig(quote_asset="BTC")) == ["ETHBTC"]


@pytest.mark.asyncio
async def test_fetch_symbol_universe_uses_session():
    from tests.helpers.fake_http import FakeResponse, FakeSession

    session = FakeSession(FakeResponse(json_data={"symbols": DESCRIPTORS}))
    symbols = await fetch_symbol_universe(UniverseConfig(), session=session)
    assert symbols == ["BTCUSDT", "PERMUSDT", "SETSUSDT", "ETHUSDT"]
    assert session.requests[0][:2] == ("GET", "https://api.binance.com/api/v3/exchangeInfo")
    assert session.closed is False  # caller owns the session


@pytest.mark.asyncio
async def test_fetch_symbol_universe_http_error_propagates():
    from tests.helpers.fake_http import FakeResponse, FakeSession

    session = FakeSession(FakeResponse(status=418))
    with pytest.raises(RuntimeError):
        await fetch_symbol_universe(session=session)
