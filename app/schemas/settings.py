"""Pydantic schemas for administrator runtime settings."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RuntimeSettings(BaseModel):
    """Settings an administrator can change without a redeploy.

    Rate limit rules flagged ``dynamic`` take their window and limit from here.
    """

    rate_limit_window: int = Field(
        ...,
        ge=1,
        description="Window length in seconds applied by dynamic rate limit rules.",
    )
    rate_limit_max: int = Field(
        ...,
        ge=1,
        description="Requests allowed per window by dynamic rate limit rules.",
    )
    maintenance_mode: bool = Field(
        default=False,
        description="When true, non-admin endpoints answer 503 until switched off.",
    )


class RuntimeSettingsUpdate(BaseModel):
    """Partial update; omitted fields keep their current value."""

    rate_limit_window: int | None = Field(default=None, ge=1)
    rate_limit_max: int | None = Field(default=None, ge=1)
    maintenance_mode: bool | None = None
