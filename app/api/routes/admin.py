from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from app.core.auth import verify_admin_api_key
from app.core.logging import hash_identifier
from app.core.rate_limit import RateLimitRegistry
from app.schemas.settings import RuntimeSettings, RuntimeSettingsUpdate
from app.services.runtime_settings_service import RuntimeSettingsService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"], dependencies=[Depends(verify_admin_api_key)])


def get_runtime_settings_service(request: Request) -> RuntimeSettingsService:
    return request.app.state.runtime_settings


def get_rate_limit_registry(request: Request) -> RateLimitRegistry:
    return request.app.state.rate_limit_registry


@router.get("/settings", response_model=RuntimeSettings)
async def get_settings(
    service: RuntimeSettingsService = Depends(get_runtime_settings_service),
) -> RuntimeSettings:
    """Return the current runtime settings (stored values or defaults)."""
    return await service.get()


@router.put("/settings", response_model=RuntimeSettings)
async def update_settings(
    changes: RuntimeSettingsUpdate,
    service: RuntimeSettingsService = Depends(get_runtime_settings_service),
) -> RuntimeSettings:
    """Update the runtime settings.

    Dynamic rate limit rules pick up a new window/limit on the next request.
    Fields left out of the body keep their current value.

    Raises:
        ValidationAppError: When the body sets no field (rendered as 400).
        StoreAppError: When the store cannot be written (rendered as 503).
    """
    return await service.update(changes)


@router.delete("/rate-limit/{rule_name}/{client_key}")
async def reset_rate_limit(
    rule_name: str,
    client_key: str,
    registry: RateLimitRegistry = Depends(get_rate_limit_registry),
) -> dict:
    """Clear a client's window (and adaptive stats) for one rule.

    Raises:
        NotFoundAppError: If no rule has this name (rendered as 404).
    """
    rule = registry.get_rule(rule_name)
    await registry.limiter_for(rule).reset(client_key)

    logger.info(
        "rate_limit.reset",
        extra={"rule": rule.name, "key_hash": hash_identifier(client_key)},
    )
    return {"rule": rule.name, "reset": True}
