"""Runtime configuration read from ``WINTERDIENST_*`` environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "WINTERDIENST_"


def _read_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(ENV_PREFIX + key)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in {"true", "1", "yes", "on"}:
        return True
    if value in {"false", "0", "no", "off"}:
        return False
    logger.warning("Ungültiger Wahrheitswert für %s%s: %r", ENV_PREFIX, key, raw)
    return default


def _read_float(env: Mapping[str, str], key: str, default: float, minimum: float) -> float:
    raw = env.get(ENV_PREFIX + key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.replace(",", "."))
    except ValueError:
        logger.warning("Ungültiger Zahlenwert für %s%s: %r", ENV_PREFIX, key, raw)
        return default
    return max(value, minimum)


def _read_int(env: Mapping[str, str], key: str, default: int, minimum: int) -> int:
    raw = env.get(ENV_PREFIX + key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ungültiger Zahlenwert für %s%s: %r", ENV_PREFIX, key, raw)
        return default
    return max(value, minimum)


@dataclass(frozen=True)
class Settings:
    """Application settings.

    ``enable_bg_filter`` switches the public-contract ("BG") category filter
    for work-hour listings on. The fetch values control the timeout/retry
    wrapper used for cached reference data reads.
    """

    database_url: str = "sqlite:///./winterdienst.db"
    enable_bg_filter: bool = False
    company_name: str = "Your Company"
    company_short_name: str = "YC"
    company_subtitle: str = "Winter Service"
    footer_text: str = "Winter Service - Work Hours Report"
    service_name: str = "Winterdienst"
    log_level: str = "INFO"
    fetch_timeout: float = 3.0
    fetch_attempts: int = 2
    fetch_backoff: float = 0.2

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        source = os.environ if env is None else env
        defaults = cls()

        def text(key: str, default: str) -> str:
            value = source.get(ENV_PREFIX + key)
            if value is None or not value.strip():
                return default
            return value.strip()

        return cls(
            database_url=text("DATABASE_URL", defaults.database_url),
            enable_bg_filter=_read_bool(source, "ENABLE_BG_FILTER", defaults.enable_bg_filter),
            company_name=text("COMPANY_NAME", defaults.company_name),
            company_short_name=text("COMPANY_SHORT_NAME", defaults.company_short_name),
            company_subtitle=text("COMPANY_SUBTITLE", defaults.company_subtitle),
            footer_text=text("COMPANY_FOOTER", defaults.footer_text),
            service_name=text("SERVICE_NAME", defaults.service_name),
            log_level=text("LOG_LEVEL", defaults.log_level).upper(),
            fetch_timeout=_read_float(source, "FETCH_TIMEOUT", defaults.fetch_timeout, 0.01),
            fetch_attempts=_read_int(source, "FETCH_ATTEMPTS", defaults.fetch_attempts, 1),
            fetch_backoff=_read_float(source, "FETCH_BACKOFF", defaults.fetch_backoff, 0.0),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
