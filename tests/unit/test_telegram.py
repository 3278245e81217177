import asyncio

import aiohttp
import pytest

from klinewatch.notify.queue import NotifyQueue
from klinewatch.notify.telegram import ConfigError, TelegramConfig, TelegramNotifier, config_from_env
from tests.helpers.fake_http import FakeResponse, FakeSession


def make_notifier(response, q=None, format_fn=None):
    n = TelegramNotifier(TelegramConfig(bot_token="TOKEN", chat_id="42"), alerts_queue=q, format_fn=format_fn)
    n._session = FakeSession(response)
    return n


@pytest.mark.asyncio
async def test_send_posts_html_message():
    n = make_notifier(FakeResponse(status=200))
    assert await n.send("<b>hi</b>") is True

    method, url, kwargs = n._session.requests[0]
    assert method == "POST"
    assert url == "https://api.telegram.org/botTOKEN/sendMessage"
    assert kwargs["json"] == {
        "chat_id": "42",
        "text": "<b>hi</b>",
        "disable_web_page_preview": True,
        "parse_mode": "HTML",
    }


@pytest.mark.asyncio
async def test_send_failure_is_reported_not_retried():
    n = make_notifier(FakeResponse(status=500, text="oops"))
    assert await n.send("x", chat_id="7") is False
    assert len(n._session.requests) == 1
    assert n._session.requests[0][2]["json"]["chat_id"] == "7"


@pytest.mark.asyncio
async def test_send_network_error_returns_false():
    n = make_notifier(FakeResponse(exc=aiohttp.ClientConnectionError("no route")))
    assert await n.send("x") is False


@pytest.mark.asyncio
async def test_worker_drains_queue_and_formats():
    q = NotifyQueue(maxsize=10)
    n = make_notifier(FakeResponse(status=200), q=q, format_fn=lambda e: f"ALERT {e['symbol']}")
    await n.start()
    q.try_put({"symbol": "BTCUSDT"})
    q.try_put({"symbol": "ETHUSDT"})

    for _ in range(100):
        if len(n._session.requests) >= 2:
            break
        await asyncio.sleep(0.01)

    texts = [r[2]["json"]["text"] for r in n._session.requests]
    assert texts == ["ALERT BTCUSDT", "ALERT ETHUSDT"]
    session = n._session
    await n.stop()
    assert session.closed is True


def test_notify_queue_drops_when_full():
    q = NotifyQueue(maxsize=1)
    assert q.try_put({"symbol": "A"}) is True
    assert q.try_put({"symbol": "B"}) is False
    assert q.stats.accepted == 1 and q.stats.dropped == 1
    assert q.qsize() == 1


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "abc")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "-100")
    cfg = config_from_env()
    assert cfg.bot_token == "abc" and cfg.chat_id == "-100" and cfg.parse_mode == "HTML"


@pytest.mark.parametrize("missing", ["TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID"])
def test_config_from_env_requires_both(monkeypatch, missing):
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "abc")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "-100")
    monkeypatch.delenv(missing)
    with pytest.raises(ConfigError):
        config_from_env()
