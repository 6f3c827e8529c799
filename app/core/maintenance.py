"""Maintenance mode middleware.

While an administrator has maintenance mode switched on, every request outside
the admin API, health checks and API docs is answered with 503.
"""

from __future__ import annotations

import logging

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.exception_handlers import build_error_body

logger = logging.getLogger(__name__)

_ALWAYS_OPEN_PREFIXES = ("/health", "/docs", "/redoc", "/openapi.json")


def is_exempt_path(path: str, admin_prefix: str) -> bool:
    return path.startswith(admin_prefix) or path.startswith(_ALWAYS_OPEN_PREFIXES)


async def maintenance_mode_middleware(request: Request, call_next) -> Response:
    """Short-circuit non-admin requests with 503 during maintenance.

    The runtime settings service never raises on reads, so a store outage
    leaves the service open rather than locking everyone out.
    """

    if is_exempt_path(request.url.path, settings.app.admin_path_prefix):
        return await call_next(request)

    runtime = await request.app.state.runtime_settings.get()
    if not runtime.maintenance_mode:
        return await call_next(request)

    retry_after = settings.app.maintenance_retry_after_seconds
    logger.info(
        "maintenance.rejected",
        extra={"request_path": request.url.path, "request_method": request.method},
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=build_error_body(
            "maintenance_mode",
            "The service is under maintenance. Please try again later.",
        ),
        headers={"Retry-After": str(retry_after)},
    )
