from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationError

ENV_PREFIX = "FISCAL_CLOCK_"

FISCAL_DATA_BASE = "https://api.fiscaldata.treasury.gov/services/api/fiscal_service"
WORLD_BANK_BASE = "https://api.worldbank.org/v2/country/US/indicator"


@dataclass(frozen=True)
class Settings:
    fiscal_base: str = FISCAL_DATA_BASE
    world_bank_base: str = WORLD_BANK_BASE
    proxy_base: str | None = None

    # Fetch client
    cache_timeout: float = 120.0
    request_timeout: float = 10.0
    retries: int = 2
    backoff_initial: float = 0.25
    backoff_max: float = 4.0

    # Scheduling
    refresh_interval: float = 300.0
    fps: float = 20.0

    history_file: str = "data/historical-debt.json"
    log_level: str = "INFO"
    log_file: str | None = "fiscal_clock.log"


def _env(name: str) -> str | None:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None
    if value < minimum:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be >= {minimum}, got {value}")
    return value


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be >= 0, got {value}")
    return value


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv(ENV_PREFIX + "ENV_FILE", ".env")
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    defaults = Settings()
    return Settings(
        fiscal_base=_env("FISCAL_BASE") or defaults.fiscal_base,
        world_bank_base=_env("WORLD_BANK_BASE") or defaults.world_bank_base,
        proxy_base=_env("PROXY_BASE"),
        cache_timeout=_env_float("CACHE_TIMEOUT", defaults.cache_timeout),
        request_timeout=_env_float("REQUEST_TIMEOUT", defaults.request_timeout, minimum=0.1),
        retries=_env_int("RETRIES", defaults.retries),
        backoff_initial=_env_float("BACKOFF_INITIAL", defaults.backoff_initial),
        backoff_max=_env_float("BACKOFF_MAX", defaults.backoff_max),
        refresh_interval=_env_float("REFRESH_INTERVAL", defaults.refresh_interval, minimum=1.0),
        fps=_env_float("FPS", defaults.fps, minimum=1.0),
        history_file=_env("HISTORY_FILE") or defaults.history_file,
        log_level=(_env("LOG_LEVEL") or defaults.log_level).upper(),
        # Empty string disables the log file
        log_file=os.getenv(ENV_PREFIX + "LOG_FILE", defaults.log_file) or None,
    )
