from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from klinewatch.utils.types import AlertEvent

log = structlog.get_logger("notify_queue")


@dataclass(slots=True)
class QueueStats:
    accepted: int = 0
    dropped: int = 0
    delivered: int = 0  # handed to the notifier worker


class NotifyQueue:
    """
    Hand-off between the synchronous alert tracker and the Telegram worker.

    try_put() never blocks the message path: when the worker falls behind
    and the queue is full the alert is dropped and counted. The window stays
    marked as alerted either way.
    """

    def __init__(self, maxsize: int = 2000):
        self._q: asyncio.Queue[AlertEvent] = asyncio.Queue(maxsize=maxsize)
        self.stats = QueueStats()

    def try_put(self, evt: AlertEvent) -> bool:
        try:
            self._q.put_nowait(evt)
        except asyncio.QueueFull:
            self.stats.dropped += 1
            log.warning("alert_dropped_queue_full", symbol=evt.get("symbol"), dropped=self.stats.dropped)
            return False
        self.stats.accepted += 1
        return True

    async def get(self) -> AlertEvent:
        evt = await self._q.get()
        self.stats.delivered += 1
        return evt

    def qsize(self) -> int:
        return self._q.qsize()
