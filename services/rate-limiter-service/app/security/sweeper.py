"""Periodic background purge of expired rate limit windows."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from .rate_limiter import RateLimitStore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ExpirySweeper:
    """Owns the asyncio task that calls ``store.purge_expired`` on a fixed interval."""

    def __init__(
        self,
        store: RateLimitStore,
        *,
        interval_seconds: float = 60.0,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("sweep interval must be positive")
        self._store = store
        self._interval = interval_seconds
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the sweep loop on the running event loop; no-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="rate-limit-sweeper")
        logger.info("rate limit sweeper started (interval: %ss)", self._interval)

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
            logger.info("rate limit sweeper stopped")

    def sweep_once(self) -> int:
        return self._store.purge_expired(self._clock())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.sweep_once()
            except Exception:
                logger.exception("rate limit sweep failed")
