"""Pydantic schemas for rate limit introspection responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitStatus(BaseModel):
    """Rate limit context the gate attached to the current request."""

    rule: str | None = Field(
        default=None,
        description="Name of the rule that gated this request (None when not gated).",
    )
    limited: bool = Field(
        ...,
        description="False when rate limiting is disabled, bypassed, or failed open.",
    )
    limit: int | None = Field(default=None, description="Requests allowed in the window.")
    remaining: int | None = Field(default=None, description="Requests left after this one.")
    reset: int | None = Field(default=None, description="UNIX epoch seconds when budget frees up.")
    current: int | None = Field(default=None, description="Requests counted in the window.")
    adaptive: bool = Field(default=False, description="True when an adaptive limiter applied.")
