from __future__ import annotations

from fastapi import APIRouter, Request

from app.schemas.rate_limit import RateLimitStatus

router = APIRouter(tags=["Rate Limit"])


@router.get("/rate-limit", response_model=RateLimitStatus)
async def rate_limit_status(request: Request) -> RateLimitStatus:
    """Return the rate limit context attached to this request.

    Calling this endpoint consumes one unit of the caller's budget, so the
    reported ``remaining`` already accounts for it.
    """

    context = getattr(request.state, "rate_limit", None)
    if not context:
        return RateLimitStatus(limited=False)
    return RateLimitStatus(**context)
