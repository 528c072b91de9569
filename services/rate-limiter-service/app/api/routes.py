"""HTTP route definitions for the rate limiter service."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from schemas import (
    RateLimitAction,
    RateLimitCategoryBody,
    RateLimitDecisionBody,
    RateLimitErrorBody,
    RateLimitRequest,
    RateLimitResetBody,
)

from ..domain.contracts import LimitDecision
from ..domain.errors import InvalidAction, RateLimitError
from ..domain.service import RateLimitService
from .dependencies import get_rate_limit_service, rate_limit_headers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


@router.options("/rate-limit")
def rate_limit_preflight() -> Response:
    """Answer pre-flight requests with an empty body."""
    return Response(status_code=status.HTTP_200_OK)


@router.post("/rate-limit")
async def rate_limit(
    request: Request,
    service: RateLimitService = Depends(get_rate_limit_service),
) -> Response:
    """Check, increment, or reset the counter named by ``limit_type`` and ``identifier``."""
    try:
        payload = RateLimitRequest.model_validate(await request.json())
        logger.debug(
            "rate limit request: action=%s limit_type=%s identifier=%s",
            payload.action,
            payload.limit_type,
            payload.identifier,
        )
        return _dispatch(service, payload)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, RateLimitErrorBody(error="Invalid request body"))
    except RateLimitError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, RateLimitErrorBody(error=str(exc)))
    except Exception as exc:
        logger.exception("rate limiter request failed")
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            RateLimitErrorBody(error="Internal server error", details=str(exc)),
        )


@router.get("/rate-limit/categories", response_model=list[RateLimitCategoryBody])
def list_categories(
    service: RateLimitService = Depends(get_rate_limit_service),
) -> list[RateLimitCategoryBody]:
    """Return the configured limit categories."""
    return [
        RateLimitCategoryBody(
            name=category.name,
            max_requests=category.max_requests,
            window_ms=category.window_ms,
        )
        for category in service.categories
    ]


def _dispatch(service: RateLimitService, payload: RateLimitRequest) -> Response:
    # parameters and category are validated before the action, so a bad
    # limit_type is reported even when the action is also wrong
    service.resolve(payload.limit_type, payload.identifier)

    if payload.action == RateLimitAction.check.value:
        return _decision_response(service.check(payload.limit_type, payload.identifier))
    if payload.action == RateLimitAction.increment.value:
        return _decision_response(service.increment(payload.limit_type, payload.identifier))
    if payload.action == RateLimitAction.reset.value:
        service.reset(payload.limit_type, payload.identifier)
        return JSONResponse(status_code=status.HTTP_200_OK, content=RateLimitResetBody().model_dump())
    raise InvalidAction(payload.action)


def _decision_response(decision: LimitDecision) -> JSONResponse:
    body = RateLimitDecisionBody(
        allowed=decision.allowed,
        count=decision.count,
        limit=decision.limit,
        reset_time=decision.reset_at,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if decision.allowed else status.HTTP_429_TOO_MANY_REQUESTS,
        content=body.model_dump(by_alias=True),
        headers=rate_limit_headers(decision),
    )


def _error(status_code: int, body: RateLimitErrorBody) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))
