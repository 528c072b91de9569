"""FastAPI dependencies for routes that want to be gated by a rate limit category."""

from __future__ import annotations

from typing import Callable

from fastapi import HTTPException, Request, status

from ..domain.contracts import LimitDecision
from ..domain.errors import RateLimitError
from ..domain.service import RateLimitService


def get_rate_limit_service(request: Request) -> RateLimitService:
    """Resolve the `RateLimitService` stored on the FastAPI application state."""
    service: RateLimitService = request.app.state.rate_limit_service
    return service


def rate_limit_headers(decision: LimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_seconds),
    }


def rate_limited(category: str, *, identifier_header: str = "X-Client-ID") -> Callable[[Request], LimitDecision]:
    """Build a dependency that counts the request against ``category``.

    The caller is identified by ``identifier_header`` and falls back to the
    client address. Denied requests are rejected with HTTP 429 before the
    route body runs; allowed decisions are left on ``request.state.rate_limit``.
    """

    def dependency(request: Request) -> LimitDecision:
        service = get_rate_limit_service(request)
        identifier = request.headers.get(identifier_header)
        if not identifier and request.client is not None:
            identifier = request.client.host
        try:
            decision = service.increment(category, identifier)
        except RateLimitError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        if not decision.allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="rate limited",
                headers=rate_limit_headers(decision),
            )
        request.state.rate_limit = decision
        return decision

    return dependency
