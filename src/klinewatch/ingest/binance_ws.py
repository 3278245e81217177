from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence

import structlog
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from klinewatch.ingest import parser
from klinewatch.ingest.partition import partition
from klinewatch.utils.backoff import BACKOFF_CEILING_MS, BACKOFF_FLOOR_MS, next_backoff
from klinewatch.utils.types import KlineUpdate


@dataclass(slots=True)
class KlineStreamConfig:
    base_url: str = "wss://stream.binance.com:9443/stream"
    interval: str = "5m"
    # reconnect behavior (ms)
    initial_backoff_ms: int = BACKOFF_FLOOR_MS
    max_backoff_ms: int = BACKOFF_CEILING_MS
    # timeouts
    open_timeout_s: float = 10.0
    ping_interval_s: float = 20.0


class GroupState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    BACKOFF_WAIT = "backoff_wait"


def stream_url(symbols: Sequence[str], interval: str = "5m",
               base_url: str = "wss://stream.binance.com:9443/stream") -> str:
    """Combined-stream URL: <base>?streams=btcusdt@kline_5m/ethusdt@kline_5m"""
    streams = "/".join(f"{s.lower()}@kline_{interval}" for s in symbols)
    return f"{base_url}?streams={streams}"


class KlineStreamGroup:
    """
    One websocket connection subscribed to a batch of kline streams.

    Lifecycle (runs forever):
      DISCONNECTED → CONNECTING → CONNECTED → (close/error) → BACKOFF_WAIT → CONNECTING → ...

      - open:    backoff resets to the floor
      - message: parsed; kline updates go to `on_update`; bad payloads are logged and dropped
      - error:   logged only; the close that follows drives the reconnect
      - close:   sleep(backoff), double it up to the ceiling, connect again

    A failed connection attempt counts as a close. There is no retry limit.

    Usage:
        group = KlineStreamGroup("WS-1", ["BTCUSDT", "ETHUSDT"], tracker.observe)
        await group.start()   # runs until stop() is called
    """

    def __init__(
        self,
        name: str,
        symbols: Sequence[str],
        on_update: Callable[[KlineUpdate], object],
        cfg: Optional[KlineStreamConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.cfg = cfg or KlineStreamConfig()
        self.name = name
        self.symbols: tuple[str, ...] = tuple(symbols)
        self.url = stream_url(self.symbols, self.cfg.interval, self.cfg.base_url)
        self.on_update = on_update
        self._sleep = sleep

        self.ws = None
        self.state = GroupState.DISCONNECTED
        self.backoff_ms: int = self.cfg.initial_backoff_ms

        self._log = structlog.get_logger("binance_ws").bind(group=name)
        self._stop = asyncio.Event()

    # ---------------------------- public API ---------------------------- #

    async def start(self) -> None:
        while not self._stop.is_set():
            self._set_state(GroupState.CONNECTING)
            try:
                await self._connect_and_stream()
            except ConnectionClosed as e:
                self._log.warning("ws_closed", code=e.rcvd.code if e.rcvd else None, reason=str(e))
            except asyncio.CancelledError:
                self._log.info("ws_loop_cancelled")
                raise
            except Exception as e:
                self._on_error(e)

            self._on_close()
            if self._stop.is_set():
                break
            await self._wait_backoff()
        self._set_state(GroupState.DISCONNECTED)
        self._log.info("ws_loop_exit")

    async def stop(self) -> None:
        self._stop.set()
        if self.ws is not None:
            try:
                await self.ws.close()
            except Exception as e:
                self._log.debug("ws_close_failed", err=str(e))

    # --------------------------- core internals ------------------------- #

    async def _connect_and_stream(self) -> None:
        """Returns only on stop(); transport failures surface as exceptions."""
        self._log.info("ws_connecting", symbols=len(self.symbols))
        async with ws_connect(
            self.url,
            open_timeout=self.cfg.open_timeout_s,
            ping_interval=self.cfg.ping_interval_s,
            ping_timeout=self.cfg.ping_interval_s,
            max_queue=None,
        ) as ws:
            self.ws = ws
            self._on_open()
            while not self._stop.is_set():
                raw = await ws.recv()
                self._on_message(raw)

    def _on_open(self) -> None:
        self._set_state(GroupState.CONNECTED)
        self.backoff_ms = self.cfg.initial_backoff_ms
        self._log.info("ws_connected", symbols=len(self.symbols))

    def _on_message(self, raw) -> None:
        try:
            update = parser.parse_kline_msg(json.loads(raw))
            if update is not None:
                self.on_update(update)
        except Exception as e:
            self._log.warning("ws_parse_error", err=str(e), snippet=str(raw)[:200])

    def _on_error(self, e: BaseException) -> None:
        self._log.error("ws_error", err=repr(e))

    def _on_close(self) -> None:
        self.ws = None
        self._set_state(GroupState.BACKOFF_WAIT)
        if not self._stop.is_set():
            self._log.warning("ws_reconnecting", backoff_ms=self.backoff_ms)

    async def _wait_backoff(self) -> None:
        await self._sleep(self.backoff_ms / 1000.0)
        self.backoff_ms = int(next_backoff(self.backoff_ms, self.cfg.max_backoff_ms))

    def _set_state(self, state: GroupState) -> None:
        self.state = state


def build_groups(
    symbols: Sequence[str],
    batch_size: int,
    on_update: Callable[[KlineUpdate], object],
    cfg: Optional[KlineStreamConfig] = None,
) -> list[KlineStreamGroup]:
    """One group per batch, named WS-1, WS-2, ..."""
    return [
        KlineStreamGroup(f"WS-{i + 1}", batch, on_update, cfg=cfg)
        for i, batch in enumerate(partition(symbols, batch_size))
    ]
