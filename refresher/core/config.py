"""Runtime configuration for the session refresh worker."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml

from refresher.core.errors import ConfigError

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "settings.yaml"


class Config:
    _config = None

    @classmethod
    def load(cls, path=None):
        if cls._config is None:
            try:
                with open(path or DEFAULT_CONFIG_PATH, "r") as f:
                    cls._config = yaml.safe_load(f) or {}
            except FileNotFoundError:
                cls._config = {}
        return cls._config

    @classmethod
    def reset(cls):
        cls._config = None

    @classmethod
    def get(cls, *keys, default=None):
        cfg = cls.load()
        for key in keys:
            if not isinstance(cfg, dict):
                return default
            cfg = cfg.get(key)
        return cfg if cfg is not None else default


def _env_float(name: str, default: Any) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return float(default)
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be numeric, got {raw!r}", key=name) from exc


def _env_int(name: str, default: Any) -> int:
    return int(_env_float(name, default))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return bool(default)
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class WorkerSettings:
    """Container for runtime-tunable worker settings.

    Every value is read from the environment first and falls back to the
    ``worker:`` section of ``config/settings.yaml``. Durations are seconds.
    """

    def __init__(self) -> None:
        def default(key: str, fallback: Any) -> Any:
            return Config.get("worker", key, default=fallback)

        self.redis_url: str = os.getenv("REDIS_URL") or default("redis_url", "redis://localhost:6379/0")
        self.mongo_uri: Optional[str] = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI") or default("mongo_uri", None)
        self.mongo_database: str = os.getenv("MONGO_DATABASE") or default("mongo_database", "alfa")
        self.accounts_collection: str = os.getenv("ACCOUNTS_COLLECTION") or default("accounts_collection", "admins")

        self.portal_base_url: str = os.getenv("PORTAL_BASE_URL") or default("portal_base_url", "https://www.alfa.com.lb")
        self.login_service_url: str = os.getenv("LOGIN_SERVICE_URL") or default("login_service_url", "http://127.0.0.1:3000")
        self.login_service_key: Optional[str] = os.getenv("LOGIN_SERVICE_KEY") or None

        self.max_concurrent_logins: int = _env_int("MAX_CONCURRENT_LOGINS", default("max_concurrent_logins", 3))
        self.batch_size: int = _env_int("REFRESH_BATCH_SIZE", default("batch_size", 10))
        self.accounts_per_minute: float = _env_float("ACCOUNTS_PER_MINUTE", default("accounts_per_minute", 10))
        self.min_accounts_per_minute: float = _env_float("MIN_ACCOUNTS_PER_MINUTE", default("min_accounts_per_minute", 3))
        self.login_flag_ttl: int = _env_int("LOGIN_IN_PROGRESS_TTL", default("login_flag_ttl", 300))
        self.slot_wait_timeout: float = _env_float("LOGIN_SLOT_WAIT_TIMEOUT", default("slot_wait_timeout", 10))
        self.slot_retry_delay: float = _env_float("LOGIN_SLOT_RETRY_DELAY", default("slot_retry_delay", 5))

        self.keep_alive_timeout: float = _env_float("KEEP_ALIVE_TIMEOUT", default("keep_alive_timeout", 7.5))
        self.login_timeout: float = _env_float("LOGIN_TIMEOUT", default("login_timeout", 180))

        self.min_sleep: float = _env_float("MIN_SLEEP_SECONDS", default("min_sleep", 5 * 60))
        self.max_sleep: float = _env_float("MAX_SLEEP_SECONDS", default("max_sleep", 30 * 60))
        self.base_backoff: float = _env_float("BASE_BACKOFF_SECONDS", default("base_backoff", 60))
        self.max_backoff: float = _env_float("MAX_BACKOFF_SECONDS", default("max_backoff", 15 * 60))

        self.daily_check_enabled: bool = _env_bool("DAILY_CHECK_ENABLED", default("daily_check_enabled", True))
        self.daily_check_hour: int = _env_int("DAILY_CHECK_HOUR", default("daily_check_hour", 6))
        self.daily_check_timezone: str = os.getenv("DAILY_CHECK_TIMEZONE") or default("daily_check_timezone", "Asia/Beirut")

    def validate(self) -> None:
        if self.max_concurrent_logins < 1:
            raise ConfigError("max_concurrent_logins must be at least 1", key="max_concurrent_logins", section="worker")
        if self.batch_size < 1:
            raise ConfigError("batch_size must be at least 1", key="batch_size", section="worker")
        if self.accounts_per_minute <= 0:
            raise ConfigError("accounts_per_minute must be positive", key="accounts_per_minute", section="worker")
        if self.min_sleep <= 0 or self.max_sleep < self.min_sleep:
            raise ConfigError("sleep window must satisfy 0 < min_sleep <= max_sleep", key="min_sleep", section="worker")
        if self.base_backoff <= 0 or self.max_backoff < self.base_backoff:
            raise ConfigError("backoff must satisfy 0 < base_backoff <= max_backoff", key="base_backoff", section="worker")
        if not 0 <= self.daily_check_hour <= 23:
            raise ConfigError("daily_check_hour must be between 0 and 23", key="daily_check_hour", section="worker")


@lru_cache(maxsize=1)
def get_worker_settings() -> WorkerSettings:
    """Return cached worker settings instance."""

    return WorkerSettings()


__all__ = ["Config", "WorkerSettings", "get_worker_settings"]
