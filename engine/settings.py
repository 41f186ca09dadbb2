"""Environment-driven settings for the load traffic engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from loguru import logger

DEFAULT_BASE_URL = "http://localhost:3000"


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
        if value < minimum:
            raise ValueError
    except (TypeError, ValueError):
        logger.warning("Invalid integer setting; using default", setting=name, value=raw, default=default)
        return default
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
        if value <= 0:
            raise ValueError
    except (TypeError, ValueError):
        logger.warning("Invalid numeric setting; using default", setting=name, value=raw, default=default)
        return default
    return value


def _env_flag(name: str) -> bool:
    return os.getenv(name, "0") in {"1", "true", "True", "yes"}


@dataclass(slots=True)
class EngineSettings:
    """Tunables shared by the controller, scheduler and executor."""

    base_url: str = DEFAULT_BASE_URL
    history_limit: int = 50
    recent_results: int = 5
    monitor_interval_seconds: float = 5.0
    timeout_margin_ms: int = 5000
    think_time_min_ms: int = 1000
    think_time_max_ms: int = 4000
    connector_limit: int = 100
    user_agent: str = "LoadTest/1.0"
    admin_token: Optional[str] = None
    allow_anonymous: bool = False


def load_settings() -> EngineSettings:
    """Build settings from ``LOADTEST_*`` environment variables."""

    think_min = _env_int("LOADTEST_THINK_TIME_MIN_MS", 1000)
    think_max = _env_int("LOADTEST_THINK_TIME_MAX_MS", 4000)
    if think_max < think_min:
        logger.warning("Think time maximum below minimum; clamping", minimum=think_min, maximum=think_max)
        think_max = think_min

    return EngineSettings(
        base_url=os.getenv("LOADTEST_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        history_limit=_env_int("LOADTEST_HISTORY_LIMIT", 50, minimum=1),
        monitor_interval_seconds=_env_float("LOADTEST_MONITOR_INTERVAL", 5.0),
        timeout_margin_ms=_env_int("LOADTEST_TIMEOUT_MARGIN_MS", 5000),
        think_time_min_ms=think_min,
        think_time_max_ms=think_max,
        connector_limit=_env_int("LOADTEST_CONNECTOR_LIMIT", 100, minimum=1),
        admin_token=os.getenv("LOADTEST_ADMIN_TOKEN") or None,
        allow_anonymous=_env_flag("LOADTEST_ALLOW_ANONYMOUS"),
    )
