from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (state, middleware, handlers, routers) so tests
can build isolated apps with their own store, clock and rules.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.kv_store.base import AbstractKeyValueStore
from app.adapters.kv_store.factory import create_kv_store
from app.api.routes import admin_router, health_router, rate_limit_router
from app.core.client_ip import get_client_ip
from app.core.config import RateLimitSettings, settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.maintenance import maintenance_mode_middleware
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import KeyGenerator, RateLimitRegistry, rate_limit_middleware
from app.services.runtime_settings_service import RuntimeSettingsService
from app.utils.clock import Clock, system_clock


def create_app(
    *,
    store: AbstractKeyValueStore | None = None,
    clock: Clock = system_clock,
    rate_limit_settings: RateLimitSettings | None = None,
    key_generator: KeyGenerator = get_client_ip,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        store: Key-value store for limiter state; built from settings if omitted.
        clock: Millisecond time source shared by the store and limiters.
        rate_limit_settings: Overrides the global rate limit settings.
        key_generator: Maps a request to the identity rate limits apply to.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.

    Raises:
        ConfigurationAppError: If a configured rate limit rule is invalid.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    rl_settings = rate_limit_settings or settings.rate_limit
    kv_store = store or create_kv_store(rl_settings, clock=clock)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await kv_store.close()

    app = FastAPI(
        title="Friend Cleanup Gateway",
        description=(
            "Rate limiting gateway for the friend cleanup service: fixed-window, "
            "sliding-window and adaptive limiters over a shared key-value store, "
            "with administrator runtime settings and maintenance mode."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    app.state.kv_store = kv_store
    app.state.runtime_settings = RuntimeSettingsService(kv_store, rate_limit_settings=rl_settings)
    app.state.rate_limit_registry = RateLimitRegistry(
        kv_store,
        rules=rl_settings.rules,
        enabled=rl_settings.enabled,
        include_headers=rl_settings.include_headers,
        ip_whitelist=rl_settings.ip_whitelist,
        ip_blacklist=rl_settings.ip_blacklist,
        key_generator=key_generator,
        clock=clock,
    )

    # Middleware: the last registered runs outermost
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(maintenance_mode_middleware)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(admin_router, prefix=settings.app.admin_path_prefix)
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
