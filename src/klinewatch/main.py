# src/klinewatch/main.py
import asyncio
import logging
import sys
from typing import Awaitable, Callable, Sequence

import structlog
from dotenv import load_dotenv

from klinewatch.config import AppConfig, ConfigError, load_config
from klinewatch.ingest.binance_ws import KlineStreamGroup, build_groups
from klinewatch.ingest.universe import fetch_symbol_universe
from klinewatch.alerts.tracker import WindowAlertTracker
from klinewatch.alerts.formatting import format_alert_html, format_crash_notice
from klinewatch.notify.queue import NotifyQueue
from klinewatch.notify.telegram import TelegramNotifier, config_from_env

log = structlog.get_logger()


def configure_logging(level: str = "INFO") -> None:
    lvl = logging.getLevelName(level.upper())
    if not isinstance(lvl, int):
        lvl = logging.INFO
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(lvl))


# ---------------------------
# Startup & housekeeping
# ---------------------------

async def start_groups(
    groups: Sequence[KlineStreamGroup],
    stagger_s: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[asyncio.Task]:
    """Launch each group as its own task, pausing between them to avoid a connect burst."""
    tasks = []
    for g in groups:
        tasks.append(asyncio.create_task(g.start(), name=g.name))
        await sleep(stagger_s)
    return tasks


async def housekeeping_loop(
    tracker: WindowAlertTracker,
    interval_s: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
):
    while True:
        await sleep(interval_s)
        removed = tracker.sweep()
        log.info("housekeeping", removed=removed, entries=len(tracker))


# ---------------------------
# Main
# ---------------------------

async def run(cfg: AppConfig, notify_q: NotifyQueue) -> None:
    """Fetch universe → partition → staggered groups → housekeeping; runs forever."""
    tracker = WindowAlertTracker(emit=notify_q.try_put, cfg=cfg.tracker)

    symbols = await fetch_symbol_universe(cfg.universe)
    if not symbols:
        raise RuntimeError("symbol universe is empty")

    groups = build_groups(symbols, cfg.batch_size, tracker.observe, cfg=cfg.stream)
    log.info("groups_starting", symbols=len(symbols), groups=len(groups), batch_size=cfg.batch_size)

    tasks = await start_groups(groups, cfg.stagger_s)
    tasks.append(asyncio.create_task(
        housekeeping_loop(tracker, cfg.housekeeping_interval_s), name="housekeeping"))
    log.info("running", threshold_pct=cfg.tracker.threshold_pct, interval=cfg.stream.interval)

    try:
        await asyncio.gather(*tasks)
    finally:
        for t in tasks:
            t.cancel()
        # let groups log their exit before the notifier goes away
        await asyncio.gather(*tasks, return_exceptions=True)


async def _notify_config_error(err: ConfigError) -> None:
    """Best-effort crash notice when credentials are fine but another value is not."""
    try:
        tg_cfg = config_from_env()
    except ConfigError:
        return
    await TelegramNotifier(tg_cfg).send(format_crash_notice(err))


async def main() -> int:
    try:
        cfg = load_config()
    except ConfigError as e:
        log.error("config_invalid", err=str(e))
        await _notify_config_error(e)
        return 1
    configure_logging(cfg.log_level)

    notify_q = NotifyQueue(maxsize=cfg.notify_queue_size)
    notifier = TelegramNotifier(cfg=cfg.telegram, alerts_queue=notify_q, format_fn=format_alert_html)
    await notifier.start()
    try:
        await run(cfg, notify_q)
        return 0
    except Exception as e:
        log.exception("fatal", err=str(e))
        await notifier.send(format_crash_notice(e))
        return 1
    finally:
        await notifier.stop()


def cli() -> None:
    load_dotenv()
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    cli()
