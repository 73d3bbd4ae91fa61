"""
Runtime configuration read from environment variables.

Every setting has a default so the service can boot with nothing set;
a missing store configuration only means running on local data.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

from .logger import get_logger

DEFAULT_PEOPLE_PATH = Path("data/people.json")
DEFAULT_SITE_TABLE = "Atlantico_Oct2023"

logger = get_logger()


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed {key}, using default", value=raw, default=default)
        return default


@dataclass(frozen=True)
class StoreConfig:
    host: str = ""
    port: int = 5432
    database: str = ""
    user: str = ""
    password: str = ""
    ssl: bool = False

    # Pool
    pool_max: int = 20
    idle_timeout_ms: int = 30000
    connect_timeout_ms: int = 5000

    # Retry
    retry_attempts: int = 3
    retry_delay_ms: int = 1000

    table: str = DEFAULT_SITE_TABLE
    # Full SQLAlchemy URL; overrides the discrete fields when set
    url: Optional[str] = None

    cache_timeout: float = 300.0
    health_interval: float = 30.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StoreConfig":
        env = os.environ if environ is None else environ
        return cls(
            host=env.get("DB_HOST", ""),
            port=_env_int(env, "DB_PORT", 5432),
            database=env.get("DB_NAME", ""),
            user=env.get("DB_USER", ""),
            password=env.get("DB_PASSWORD", ""),
            ssl=env.get("DB_SSL", "").strip().lower() == "true",
            pool_max=_env_int(env, "DB_POOL_MAX", 20),
            idle_timeout_ms=_env_int(env, "DB_IDLE_TIMEOUT", 30000),
            connect_timeout_ms=_env_int(env, "DB_CONNECTION_TIMEOUT", 5000),
            retry_attempts=_env_int(env, "DB_RETRY_ATTEMPTS", 3),
            retry_delay_ms=_env_int(env, "DB_RETRY_DELAY", 1000),
            table=env.get("DB_TABLE") or DEFAULT_SITE_TABLE,
            url=env.get("DATABASE_URL") or None,
            cache_timeout=float(_env_int(env, "CACHE_TIMEOUT", 300)),
            health_interval=float(_env_int(env, "HEALTH_INTERVAL", 30)),
        )

    @property
    def retry_delay(self) -> float:
        return self.retry_delay_ms / 1000.0

    @property
    def connect_timeout(self) -> float:
        return self.connect_timeout_ms / 1000.0

    @property
    def idle_timeout(self) -> float:
        return self.idle_timeout_ms / 1000.0

    def missing_fields(self) -> List[str]:
        if self.url:
            return []
        required = {
            "host": self.host,
            "database": self.database,
            "user": self.user,
            "password": self.password,
        }
        return [k for k, v in required.items() if not v]
