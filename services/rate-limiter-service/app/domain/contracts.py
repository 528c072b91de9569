"""Value objects passed between the limiter service and its counter stores."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(slots=True)
class LimitEntry:
    """Mutable counter for one ``category:identifier`` key inside its current window."""

    count: int
    reset_at: int  # epoch millis

    def expired(self, now_ms: int) -> bool:
        return now_ms > self.reset_at


@dataclass(frozen=True, slots=True)
class LimitDecision:
    """Outcome of a check or increment, as reported back to the caller."""

    allowed: bool
    count: int
    limit: int
    reset_at: int  # epoch millis

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    @property
    def reset_seconds(self) -> int:
        """Window end as epoch seconds, rounded up."""
        return math.ceil(self.reset_at / 1000)
