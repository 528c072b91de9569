"""Validation errors raised by the rate limiter before any counter is touched."""

from __future__ import annotations


class RateLimitError(ValueError):
    """Base class for caller mistakes; mapped to HTTP 400 at the boundary."""


class MissingParameter(RateLimitError):
    def __init__(self) -> None:
        super().__init__("Limit type and identifier are required")


class InvalidCategory(RateLimitError):
    def __init__(self, name: str) -> None:
        super().__init__("Invalid limit type")
        self.name = name


class InvalidAction(RateLimitError):
    def __init__(self, action: str | None) -> None:
        super().__init__("Invalid action")
        self.action = action
