from __future__ import annotations

import pytest

from app.domain.categories import DEFAULT_CATEGORIES, CategoryTable
from app.domain.service import RateLimitService
from app.security.rate_limiter import InMemoryFixedWindowStore


class FakeClock:
    """Millisecond clock that only moves when a test advances it."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryFixedWindowStore:
    return InMemoryFixedWindowStore()


@pytest.fixture
def service(store, clock) -> RateLimitService:
    return RateLimitService(CategoryTable(DEFAULT_CATEGORIES), store, clock=clock)
