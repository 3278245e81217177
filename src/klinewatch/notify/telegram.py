from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional

import aiohttp
import structlog

log = structlog.get_logger("telegram")

# --------- small rate limiter (token bucket) ----------

class RateLimiter:
    def __init__(self, rate_per_sec: float, burst: int = 1):
        self.rate = float(rate_per_sec)
        self.capacity = int(burst)
        self.tokens = float(burst)
        self.updated = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self):
        async with self._lock:
            now = time.monotonic()
            # refill
            self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
            self.updated = now
            if self.tokens < 1.0:
                needed = 1.0 - self.tokens
                await asyncio.sleep(needed / self.rate)
                self.updated = time.monotonic()
                self.tokens = 1.0
            self.tokens -= 1.0

# --------- config & client ----------

class ConfigError(ValueError):
    """Missing or invalid configuration; the process must not start."""


@dataclass(slots=True)
class TelegramConfig:
    bot_token: str
    chat_id: str                # personal chat id or group id
    parse_mode: Optional[str] = "HTML"
    api_base: str = "https://api.telegram.org"
    timeout_s: float = 8.0
    per_chat_rate_per_sec: float = 1.0
    per_chat_burst: int = 3


def config_from_env() -> TelegramConfig:
    """Build TelegramConfig from TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID; raises if either is missing."""
    token = (os.getenv("TELEGRAM_BOT_TOKEN") or "").strip()
    chat_id = (os.getenv("TELEGRAM_CHAT_ID") or "").strip()
    if not token or not chat_id:
        raise ConfigError("Missing TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID")
    return TelegramConfig(bot_token=token, chat_id=chat_id)


class TelegramNotifier:
    """
    Best-effort Telegram delivery.

    - send(text) posts once and returns True/False; failures are logged,
      never retried and never raised.
    - start() runs a background worker that drains the alerts queue,
      formats each event and sends it under a per-chat rate limit.
    """
    def __init__(self, cfg: TelegramConfig, alerts_queue=None, format_fn: Optional[Callable[[dict], str]] = None):
        self.cfg = cfg
        self.q = alerts_queue  # something with .get() (NotifyQueue)
        self._session: Optional[aiohttp.ClientSession] = None
        self._task: Optional[asyncio.Task] = None
        self._rl: Optional[RateLimiter] = None
        self._format_fn = format_fn or self._default_format

    async def start(self):
        if self._session is None:
            self._session = self._new_session()
        if self._rl is None:
            self._rl = RateLimiter(rate_per_sec=self.cfg.per_chat_rate_per_sec, burst=self.cfg.per_chat_burst)
        if self.q is not None:
            self._task = asyncio.create_task(self._loop(), name="telegram-notifier")

    async def stop(self):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._session:
            await self._session.close()
            self._session = None

    async def _loop(self):
        assert self._rl is not None
        while True:
            evt = await self.q.get()
            try:
                text = self._format_fn(evt)
            except Exception as e:
                log.warning("telegram_format_failed", err=str(e), evt=evt)
                continue
            await self._rl.acquire()
            await self.send(text)

    async def send(self, text: str, chat_id: Optional[str] = None) -> bool:
        """
        One sendMessage call. Works before start() (e.g. crash notices)
        by opening a throwaway session.
        """
        url = f"{self.cfg.api_base}/bot{self.cfg.bot_token}/sendMessage"
        payload = {
            "chat_id": chat_id or self.cfg.chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if self.cfg.parse_mode:
            payload["parse_mode"] = self.cfg.parse_mode

        session = self._session
        own_session = session is None
        if own_session:
            session = self._new_session()
        try:
            async with session.post(url, json=payload) as resp:
                if 200 <= resp.status < 300:
                    return True
                detail = await _maybe_text(resp)
                log.warning("telegram_send_failed", status=resp.status, body=detail[:300])
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("telegram_network_error", err=str(e))
            return False
        finally:
            if own_session:
                await session.close()

    def _new_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.cfg.timeout_s))

    @staticmethod
    def _default_format(evt: dict) -> str:
        sym = evt.get("symbol", "?")
        return f"{sym} {evt.get('direction', '')} {evt.get('pct_text', '')}"

async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except Exception:
        return "<no body>"
