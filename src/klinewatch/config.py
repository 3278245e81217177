from __future__ import annotations

import os
from dataclasses import dataclass, field

from klinewatch.alerts.tracker import TrackerConfig
from klinewatch.ingest.binance_ws import KlineStreamConfig
from klinewatch.ingest.universe import UniverseConfig
from klinewatch.notify.telegram import ConfigError, TelegramConfig, config_from_env

__all__ = ["AppConfig", "ConfigError", "load_config"]


@dataclass(slots=True)
class AppConfig:
    telegram: TelegramConfig
    batch_size: int = 100
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    stream: KlineStreamConfig = field(default_factory=KlineStreamConfig)
    universe: UniverseConfig = field(default_factory=UniverseConfig)
    stagger_s: float = 0.25               # pause between group startups
    housekeeping_interval_s: float = 600.0
    notify_queue_size: int = 2000
    log_level: str = "INFO"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def load_config() -> AppConfig:
    """
    Read configuration from the environment (call load_dotenv() first).
    Raises ConfigError when Telegram credentials are missing or a value is invalid.
    """
    tg = config_from_env()

    threshold = _env_float("PERCENT_THRESHOLD", 5.0)
    if threshold <= 0:
        raise ConfigError("PERCENT_THRESHOLD must be > 0")
    batch_size = _env_int("BATCH_SIZE", 100)
    if batch_size <= 0:
        raise ConfigError("BATCH_SIZE must be > 0")
    max_symbols = _env_int("MAX_SYMBOLS", 500)
    if max_symbols <= 0:
        raise ConfigError("MAX_SYMBOLS must be > 0")

    interval = os.getenv("KLINE_INTERVAL", "5m").strip() or "5m"
    quote = os.getenv("QUOTE_ASSET", "USDT").strip().upper() or "USDT"

    return AppConfig(
        telegram=tg,
        batch_size=batch_size,
        tracker=TrackerConfig(threshold_pct=threshold),
        stream=KlineStreamConfig(interval=interval),
        universe=UniverseConfig(quote_asset=quote, max_symbols=max_symbols),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
