"""FastAPI application wiring for the rate limiter service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import Headers
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.categories import CategoryTable
from .domain.service import RateLimitService
from .security.rate_limiter import InMemoryFixedWindowStore, RateLimitStore
from .security.redis_rate_limiter import RedisFixedWindowStore
from .security.sweeper import ExpirySweeper

settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> RateLimitStore:
    """Instantiate the configured counter store, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            # ensure connectivity early to fail fast and fall back
            client.ping()
            logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisFixedWindowStore(client, key_prefix=settings.redis_key_prefix)
        except Exception as exc:  # pragma: no cover - depends on a live server
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)
    elif settings.rate_limit_backend == "redis":
        logger.warning("RATE_LIMIT_BACKEND=redis but REDIS_URL is empty, falling back to in-memory")

    logger.info("rate limiter using in-memory backend")
    return InMemoryFixedWindowStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise the counter store, limiter service and expiry sweeper for the app lifecycle."""
    categories = CategoryTable.from_json(settings.categories_json)
    store = build_store(settings)
    sweeper = ExpirySweeper(store, interval_seconds=settings.sweep_interval_seconds)
    app.state.rate_limit_service = RateLimitService(categories, store)
    app.state.sweeper = sweeper
    logger.info("rate limit categories: %s", ", ".join(c.name for c in categories))
    await sweeper.start()
    try:
        yield
    finally:
        await sweeper.stop()


class EmptyPreflightCORSMiddleware(CORSMiddleware):
    """CORS middleware whose successful pre-flight answers carry no body."""

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response
        headers = {
            key: value
            for key, value in response.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=200, headers=headers)


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    EmptyPreflightCORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type", "x-client-id"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
