from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Runtime configuration values exposed to FastAPI components."""

    app_name: str = os.getenv("APP_NAME", "rate-limiter-service")
    version: str = "0.1.0"
    http_host: str = os.getenv("HTTP_HOST", "0.0.0.0")
    http_port: int = int(os.getenv("HTTP_PORT", "8000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    rate_limit_backend: str = os.getenv("RATE_LIMIT_BACKEND", "memory").lower()
    redis_url: str = os.getenv("REDIS_URL", "")
    redis_key_prefix: str = os.getenv("RATE_LIMIT_REDIS_PREFIX", "ratelimit")
    sweep_interval_seconds: float = float(os.getenv("RATE_LIMIT_SWEEP_INTERVAL_SECONDS", "60"))
    # JSON object overriding the default category table, e.g. {"api_calls": {"requests": 100, "window": 60000}}
    categories_json: str = os.getenv("RATE_LIMIT_CATEGORIES", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached Settings instance for the running process."""
    return Settings()
