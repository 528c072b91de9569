from __future__ import annotations

import asyncio

import pytest

from app.domain.categories import LimitCategory
from app.security.sweeper import ExpirySweeper


class ExplodingStore:
    def __init__(self) -> None:
        self.calls = 0

    def purge_expired(self, now_ms: int) -> int:
        self.calls += 1
        raise RuntimeError("backend down")


def test_sweep_once_uses_clock(store, clock):
    category = LimitCategory("short", max_requests=1, window_ms=100)
    store.hit("short:a", category, clock())
    sweeper = ExpirySweeper(store, interval_seconds=60, clock=clock)

    assert sweeper.sweep_once() == 0
    clock.advance(101)
    assert sweeper.sweep_once() == 1
    assert len(store) == 0


def test_sweeper_runs_periodically_until_stopped(store, clock):
    category = LimitCategory("short", max_requests=1, window_ms=100)
    store.hit("short:a", category, clock())
    clock.advance(101)
    sweeper = ExpirySweeper(store, interval_seconds=0.01, clock=clock)

    async def scenario() -> None:
        await sweeper.start()
        assert sweeper.running
        await sweeper.start()  # second start is ignored
        await asyncio.sleep(0.05)
        await sweeper.stop()

    asyncio.run(scenario())
    assert not sweeper.running
    assert len(store) == 0


def test_sweeper_survives_store_errors(clock):
    store = ExplodingStore()
    sweeper = ExpirySweeper(store, interval_seconds=0.01, clock=clock)

    async def scenario() -> None:
        await sweeper.start()
        await asyncio.sleep(0.05)
        assert sweeper.running
        await sweeper.stop()

    asyncio.run(scenario())
    assert store.calls >= 2


def test_stop_without_start_is_noop(store):
    asyncio.run(ExpirySweeper(store).stop())


def test_interval_must_be_positive(store):
    with pytest.raises(ValueError):
        ExpirySweeper(store, interval_seconds=0)
