# config.py
from __future__ import annotations

import os
import sys
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger

from errors import ConfigError

load_dotenv()

HN_BASE = "https://hacker-news.firebaseio.com/v0"


# ------------ Safe env helpers (tolerate empty/invalid) ------------
def _env_str(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v in (None, "", "None", "null"):
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v in (None, "", "None", "null"):
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v in (None, ""):
        return default
    return str(v).strip().lower() in {"1", "true", "t", "yes", "y", "on"}


class Settings:
    """Runtime knobs, read from the environment when not passed explicitly."""

    def __init__(
        self,
        *,
        hn_base: Optional[str] = None,
        user_agent: Optional[str] = None,
        upstream_timeout_seconds: Optional[float] = None,
        listing_ttl_seconds: Optional[float] = None,
        item_ttl_seconds: Optional[float] = None,
        cache_max_entries: Optional[int] = None,
        cache_compaction_fraction: Optional[float] = None,
        listing_cache_weight: Optional[int] = None,
        search_fanout_multiplier: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        request_timeout_seconds: Optional[float] = None,
        rate_limit_per_minute: Optional[int] = None,
        rate_limit_window_seconds: Optional[float] = None,
        cors_origins: Optional[str] = None,
        debug_upstream: Optional[bool] = None,
        log_level: Optional[str] = None,
    ):
        def pick(value, fallback):
            return fallback if value is None else value

        self.HN_BASE: str = pick(hn_base, _env_str("HN_BASE", HN_BASE)).rstrip("/")
        self.USER_AGENT: str = pick(user_agent, _env_str("USER_AGENT", "HackerNewsApi/1.0"))
        self.UPSTREAM_TIMEOUT_SECONDS: float = pick(
            upstream_timeout_seconds, _env_float("UPSTREAM_TIMEOUT_SECONDS", 30.0)
        )
        self.LISTING_TTL_SECONDS: float = pick(listing_ttl_seconds, _env_float("LISTING_TTL_SECONDS", 300.0))
        self.ITEM_TTL_SECONDS: float = pick(item_ttl_seconds, _env_float("ITEM_TTL_SECONDS", 1800.0))
        self.CACHE_MAX_ENTRIES: int = pick(cache_max_entries, _env_int("CACHE_MAX_ENTRIES", 1000))
        self.CACHE_COMPACTION_FRACTION: float = pick(
            cache_compaction_fraction, _env_float("CACHE_COMPACTION_FRACTION", 0.25)
        )
        self.LISTING_CACHE_WEIGHT: int = pick(listing_cache_weight, _env_int("LISTING_CACHE_WEIGHT", 10))
        self.SEARCH_FANOUT_MULTIPLIER: int = pick(
            search_fanout_multiplier, _env_int("SEARCH_FANOUT_MULTIPLIER", 2)
        )
        self.MAX_CONCURRENCY: int = pick(max_concurrency, _env_int("MAX_CONCURRENCY", 100))
        self.REQUEST_TIMEOUT_SECONDS: float = pick(
            request_timeout_seconds, _env_float("REQUEST_TIMEOUT_SECONDS", 25.0)
        )
        # requests allowed per Host header per window; 0 disables
        self.RATE_LIMIT_PER_MINUTE: int = pick(rate_limit_per_minute, _env_int("RATE_LIMIT_PER_MINUTE", 100))
        self.RATE_LIMIT_WINDOW_SECONDS: float = pick(
            rate_limit_window_seconds, _env_float("RATE_LIMIT_WINDOW_SECONDS", 60.0)
        )
        self.CORS_ORIGINS: str = pick(cors_origins, _env_str("CORS_ORIGINS", "*"))
        self.DEBUG_UPSTREAM: bool = pick(debug_upstream, _env_bool("DEBUG_UPSTREAM", False))
        self.LOG_LEVEL: str = pick(log_level, _env_str("LOG_LEVEL", "INFO")).upper()

        self._validate()

    def _validate(self) -> None:
        if self.LISTING_TTL_SECONDS <= 0 or self.ITEM_TTL_SECONDS <= 0:
            raise ConfigError("cache TTLs must be positive")
        if self.CACHE_MAX_ENTRIES < 1:
            raise ConfigError("CACHE_MAX_ENTRIES must be >= 1")
        if not 0 < self.CACHE_COMPACTION_FRACTION < 1:
            raise ConfigError("CACHE_COMPACTION_FRACTION must be between 0 and 1")
        if self.LISTING_CACHE_WEIGHT < 1:
            raise ConfigError("LISTING_CACHE_WEIGHT must be >= 1")
        if self.LISTING_CACHE_WEIGHT > self.CACHE_MAX_ENTRIES:
            raise ConfigError("LISTING_CACHE_WEIGHT must not exceed CACHE_MAX_ENTRIES")
        if self.SEARCH_FANOUT_MULTIPLIER < 1:
            raise ConfigError("SEARCH_FANOUT_MULTIPLIER must be >= 1")
        if self.MAX_CONCURRENCY < 1:
            raise ConfigError("MAX_CONCURRENCY must be >= 1")
        if self.UPSTREAM_TIMEOUT_SECONDS <= 0:
            raise ConfigError("UPSTREAM_TIMEOUT_SECONDS must be positive")
        if self.RATE_LIMIT_PER_MINUTE < 0:
            raise ConfigError("RATE_LIMIT_PER_MINUTE must be >= 0")
        if self.RATE_LIMIT_WINDOW_SECONDS <= 0:
            raise ConfigError("RATE_LIMIT_WINDOW_SECONDS must be positive")

    @property
    def cors_origins(self) -> List[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


def configure_logging(settings: Settings) -> None:
    level = "DEBUG" if settings.DEBUG_UPSTREAM else settings.LOG_LEVEL
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
    )
