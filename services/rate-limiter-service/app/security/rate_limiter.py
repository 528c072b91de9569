"""In-memory fixed window rate limiter store."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Protocol

from ..domain.categories import LimitCategory
from ..domain.contracts import LimitDecision, LimitEntry

logger = logging.getLogger(__name__)


class RateLimitStore(Protocol):
    """Counter storage shared by every request handler in the process."""

    def peek(self, key: str, category: LimitCategory, now_ms: int) -> LimitDecision: ...

    def hit(self, key: str, category: LimitCategory, now_ms: int) -> LimitDecision: ...

    def clear(self, key: str) -> None: ...

    def purge_expired(self, now_ms: int) -> int: ...


class InMemoryFixedWindowStore:
    """Thread-safe fixed window counters held in a process-local dict."""

    def __init__(self) -> None:
        """Initialise per-key storage and the lock serialising increments."""
        self._entries: dict[str, LimitEntry] = {}
        self._lock = Lock()

    def peek(self, key: str, category: LimitCategory, now_ms: int) -> LimitDecision:
        """Report the current window for ``key`` without creating or changing it."""
        entry = self._entries.get(key)
        if entry is None or entry.expired(now_ms):
            return LimitDecision(
                allowed=True,
                count=0,
                limit=category.max_requests,
                reset_at=now_ms + category.window_ms,
            )
        return LimitDecision(
            allowed=entry.count < category.max_requests,
            count=entry.count,
            limit=category.max_requests,
            reset_at=entry.reset_at,
        )

    def hit(self, key: str, category: LimitCategory, now_ms: int) -> LimitDecision:
        """Count one operation against ``key``, opening a new window when needed."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expired(now_ms):
                entry = LimitEntry(count=1, reset_at=now_ms + category.window_ms)
                self._entries[key] = entry
            else:
                entry.count += 1
            count, reset_at = entry.count, entry.reset_at
        return LimitDecision(
            allowed=count <= category.max_requests,
            count=count,
            limit=category.max_requests,
            reset_at=reset_at,
        )

    def clear(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self, now_ms: int) -> int:
        """Drop every entry whose window has ended and return how many were removed."""
        removed = 0
        for key, entry in list(self._entries.items()):
            if not entry.expired(now_ms):
                continue
            with self._lock:
                current = self._entries.get(key)
                # a concurrent hit may have opened a fresh window since the snapshot
                if current is not None and current.expired(now_ms):
                    del self._entries[key]
                    removed += 1
        if removed:
            logger.debug("purged %s expired rate limit entries", removed)
        return removed

    def __len__(self) -> int:
        return len(self._entries)
