"""Wire contracts for the rate limiter function shared with calling services."""

from __future__ import annotations

from enum import Enum
from pydantic import BaseModel, Field


class RateLimitAction(str, Enum):
    check = "check"
    increment = "increment"
    reset = "reset"


class RateLimitRequest(BaseModel):
    # Left optional so missing fields surface as a 400 from the limiter, not a schema error.
    action: str | None = None
    limit_type: str | None = None
    identifier: str | None = None

    class Config:
        coerce_numbers_to_str = True


class RateLimitDecisionBody(BaseModel):
    allowed: bool
    count: int
    limit: int
    reset_time: int = Field(..., alias="resetTime", description="window end, epoch millis")

    class Config:
        populate_by_name = True


class RateLimitResetBody(BaseModel):
    success: bool = True
    message: str = "Rate limit reset successfully"


class RateLimitErrorBody(BaseModel):
    error: str
    details: str | None = None


class RateLimitCategoryBody(BaseModel):
    name: str
    max_requests: int
    window_ms: int
