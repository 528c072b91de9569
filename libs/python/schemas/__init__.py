"""Shared schema exports."""

from .rate_limit import (
    RateLimitAction,
    RateLimitCategoryBody,
    RateLimitDecisionBody,
    RateLimitErrorBody,
    RateLimitRequest,
    RateLimitResetBody,
)

__all__ = [
    "RateLimitAction",
    "RateLimitCategoryBody",
    "RateLimitDecisionBody",
    "RateLimitErrorBody",
    "RateLimitRequest",
    "RateLimitResetBody",
]
