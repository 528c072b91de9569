"""Redis-backed fixed window rate limiter store."""

from __future__ import annotations

from typing import Final

from redis import Redis
from redis.client import Pipeline
from redis.exceptions import ResponseError

from ..domain.categories import LimitCategory
from ..domain.contracts import LimitDecision


class RedisFixedWindowStore:
    """Distributed fixed window counters kept in a hash of ``count`` and ``reset_at``.

    The window end is written once when a window opens and returned unchanged
    by every later hit, so all callers see the same ``reset_at``.
    """

    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local now_ms = tonumber(ARGV[1])
    local window_ms = tonumber(ARGV[2])
    local next_reset = ARGV[3]

    local reset_at = redis.call('HGET', key, 'reset_at')
    if not reset_at or now_ms > tonumber(reset_at) then
        reset_at = next_reset
        redis.call('DEL', key)
        redis.call('HSET', key, 'reset_at', reset_at)
        redis.call('PEXPIRE', key, window_ms + 1)
    end
    local count = redis.call('HINCRBY', key, 'count', 1)
    return {count, tonumber(reset_at)}
    """

    def __init__(self, client: Redis, *, key_prefix: str = "ratelimit") -> None:
        """Initialise the Redis client, key namespace, and Lua script cache."""
        self._client = client
        self._key_prefix = key_prefix
        self._script = client.register_script(self._LUA_SCRIPT)

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def peek(self, key: str, category: LimitCategory, now_ms: int) -> LimitDecision:
        """Read the live window without modifying it."""
        raw_count, raw_reset = self._client.hmget(self._redis_key(key), "count", "reset_at")
        if raw_count is None or raw_reset is None or now_ms > int(raw_reset):
            return LimitDecision(
                allowed=True,
                count=0,
                limit=category.max_requests,
                reset_at=now_ms + category.window_ms,
            )
        count = int(raw_count)
        return LimitDecision(
            allowed=count < category.max_requests,
            count=count,
            limit=category.max_requests,
            reset_at=int(raw_reset),
        )

    def hit(self, key: str, category: LimitCategory, now_ms: int) -> LimitDecision:
        """Atomically increment the counter, opening a new window when the last one ended."""
        redis_key = self._redis_key(key)
        try:
            count, reset_at = self._script(
                keys=[redis_key],
                args=[now_ms, category.window_ms, now_ms + category.window_ms],
            )
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command `evalsha`" in message or "unknown command `eval`" in message:
                count, reset_at = self._hit_fallback(redis_key, category, now_ms)
            else:
                raise
        count = int(count)
        return LimitDecision(
            allowed=count <= category.max_requests,
            count=count,
            limit=category.max_requests,
            reset_at=int(reset_at),
        )

    def _hit_fallback(self, redis_key: str, category: LimitCategory, now_ms: int) -> tuple[int, int]:
        """WATCH/MULTI implementation used when Lua is unavailable."""
        window: dict[str, int] = {}

        def apply(pipe: Pipeline) -> None:
            raw_reset = pipe.hget(redis_key, "reset_at")
            reset_at = int(raw_reset) if raw_reset is not None else None
            pipe.multi()
            if reset_at is None or now_ms > reset_at:
                reset_at = now_ms + category.window_ms
                pipe.delete(redis_key)
                pipe.hset(redis_key, "reset_at", reset_at)
                pipe.pexpire(redis_key, category.window_ms + 1)
            pipe.hincrby(redis_key, "count", 1)
            window["reset_at"] = reset_at

        results = self._client.transaction(apply, redis_key)
        return int(results[-1]), window["reset_at"]

    def clear(self, key: str) -> None:
        self._client.delete(self._redis_key(key))

    def purge_expired(self, now_ms: int) -> int:
        """Redis expires window keys on its own, so there is never anything to sweep."""
        return 0
