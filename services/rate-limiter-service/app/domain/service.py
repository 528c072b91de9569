"""Rate limit service validating caller input and delegating to a counter store."""

from __future__ import annotations

import logging
import time
from typing import Callable

from prometheus_client import Counter

from .categories import CategoryTable, LimitCategory
from .contracts import LimitDecision
from .errors import MissingParameter
from ..security.rate_limiter import RateLimitStore

logger = logging.getLogger(__name__)

DECISIONS = Counter(
    "rate_limit_decisions_total",
    "Rate limit decisions by category, action and outcome.",
    ["category", "action", "outcome"],
)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimitService:
    """Fixed window rate limiting keyed by ``(category, identifier)``."""

    def __init__(
        self,
        categories: CategoryTable,
        store: RateLimitStore,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        """Store the category table, counter backend, and millisecond clock."""
        self._categories = categories
        self._store = store
        self._clock = clock

    @property
    def categories(self) -> CategoryTable:
        return self._categories

    def check(self, category: str | None, identifier: str | None) -> LimitDecision:
        """Preview whether one more operation would be allowed. Never mutates state."""
        limit, key = self.resolve(category, identifier)
        decision = self._store.peek(key, limit, self._clock())
        self._record(limit, "check", decision)
        return decision

    def increment(self, category: str | None, identifier: str | None) -> LimitDecision:
        """Count an operation and report whether it falls within the limit.

        The increment is applied even when it takes the counter past the limit;
        callers decide from ``allowed`` whether to go ahead with the operation.
        """
        limit, key = self.resolve(category, identifier)
        decision = self._store.hit(key, limit, self._clock())
        self._record(limit, "increment", decision)
        return decision

    def reset(self, category: str | None, identifier: str | None) -> None:
        """Forget the current window for the key. Missing keys are not an error."""
        _, key = self.resolve(category, identifier)
        self._store.clear(key)
        logger.info("rate limit reset for %s", key)

    def resolve(self, category: str | None, identifier: str | None) -> tuple[LimitCategory, str]:
        """Validate the inputs and return the category with its store key."""
        if not category or not identifier:
            raise MissingParameter()
        limit = self._categories.get(category)
        return limit, f"{limit.name}:{identifier}"

    def _record(self, category: LimitCategory, action: str, decision: LimitDecision) -> None:
        outcome = "allowed" if decision.allowed else "denied"
        DECISIONS.labels(category=category.name, action=action, outcome=outcome).inc()
        if decision.allowed:
            logger.debug(
                "%s %s: %s/%s", action, category.name, decision.count, decision.limit
            )
        else:
            logger.info(
                "rate limit exceeded on %s for %s (%s/%s)",
                action,
                category.name,
                decision.count,
                decision.limit,
            )
