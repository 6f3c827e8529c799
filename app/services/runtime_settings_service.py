"""Administrator runtime settings persisted in the key-value store."""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from app.adapters.kv_store.base import AbstractKeyValueStore
from app.core.config import RateLimitSettings, settings
from app.core.errors import StoreAppError, ValidationAppError
from app.schemas.settings import RuntimeSettings, RuntimeSettingsUpdate

logger = logging.getLogger(__name__)

RUNTIME_SETTINGS_KEY = "system_config"


class RuntimeSettingsService:
    """Reads and writes ``RuntimeSettings``.

    Reads never fail: a missing, corrupt or unreachable record yields the
    configured defaults so request handling keeps going.
    """

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        rate_limit_settings: RateLimitSettings | None = None,
    ) -> None:
        self._store = store
        self._rate_limit_settings = rate_limit_settings or settings.rate_limit

    def defaults(self) -> RuntimeSettings:
        return RuntimeSettings(
            rate_limit_window=self._rate_limit_settings.default_window_seconds,
            rate_limit_max=self._rate_limit_settings.default_max_requests,
            maintenance_mode=False,
        )

    async def get(self) -> RuntimeSettings:
        """Return the stored settings, falling back to defaults."""
        try:
            raw = await self._store.get(RUNTIME_SETTINGS_KEY)
        except StoreAppError as exc:
            logger.error("settings.load_failed", extra={"error_code": exc.code})
            return self.defaults()

        if raw is None:
            return self.defaults()

        try:
            return RuntimeSettings.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            logger.warning("settings.corrupt_record", extra={"key": RUNTIME_SETTINGS_KEY})
            return self.defaults()

    async def update(self, changes: RuntimeSettingsUpdate) -> RuntimeSettings:
        """Merge ``changes`` into the current settings and persist them.

        Raises:
            ValidationAppError: If ``changes`` sets no field.
            StoreAppError: If the store cannot be written.
        """
        update = changes.model_dump(exclude_none=True)
        if not update:
            raise ValidationAppError(
                code="empty_settings_update",
                message="Provide at least one of rate_limit_window, rate_limit_max, maintenance_mode",
                details={"hint": "Fields set to null are ignored"},
            )

        current = await self.get()
        merged = current.model_copy(update=update)
        await self._store.put(RUNTIME_SETTINGS_KEY, merged.model_dump_json())

        logger.info(
            "settings.updated",
            extra={
                "rate_limit_window": merged.rate_limit_window,
                "rate_limit_max": merged.rate_limit_max,
                "maintenance_mode": merged.maintenance_mode,
            },
        )
        return merged
