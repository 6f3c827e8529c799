"""Rate limiting gate and HTTP middleware.

This module wires the rate limiter adapters into the HTTP layer.

Design goals:
- Minimal coupling: routes never see a limiter; the middleware gates them by
  path prefix and leaves the outcome on ``request.state.rate_limit``.
- Swap-friendly: any ``AbstractRateLimiter`` over any key-value store.
- Fail-open: limiter or store errors are logged and the request proceeds.

Rule selection:
- The rule with the longest matching ``path_prefix`` applies.
- Whitelisted client addresses bypass rate limiting entirely.
- Blacklisted client addresses get 403 IP_BLOCKED on every path.
- ``dynamic`` rules take window/limit from the administrator runtime settings.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from app.adapters.kv_store.base import AbstractKeyValueStore
from app.adapters.rate_limit.base import (
    ADAPTIVE_RATE_LIMIT_EXCEEDED,
    AbstractRateLimiter,
    RateLimitDecision,
)
from app.adapters.rate_limit.factory import create_rate_limiter
from app.core.client_ip import get_client_ip, is_ip_whitelisted, parse_ip_whitelist
from app.core.config import RateLimitRule
from app.core.errors import ConfigurationAppError, NotFoundAppError
from app.core.exception_handlers import build_error_body
from app.core.logging import hash_identifier
from app.schemas.settings import RuntimeSettings
from app.utils.clock import Clock, system_clock

logger = logging.getLogger(__name__)

KeyGenerator = Callable[[Request], str]
CallNext = Callable[[Request], Awaitable[Response]]


def build_rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    """Build X-RateLimit-* (and Retry-After when denied) headers."""

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(0 if not decision.allowed else decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after_seconds or 0)
    if decision.adaptive:
        headers["X-RateLimit-Adaptive"] = "true"
    return headers


def build_rate_limit_response(decision: RateLimitDecision, *, include_headers: bool = True) -> JSONResponse:
    """Render a denial as a structured 429 response."""

    retry_after = decision.retry_after_seconds or 0
    prefix = "Adaptive rate limit" if decision.reason == ADAPTIVE_RATE_LIMIT_EXCEEDED else "Rate limit"
    body = build_error_body(
        decision.reason or "RATE_LIMIT_EXCEEDED",
        f"{prefix} exceeded. Try again in {retry_after} seconds.",
        {
            "limit": decision.limit,
            "remaining": 0,
            "reset": decision.reset_at,
            "retry_after_seconds": retry_after,
        },
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=body,
        headers=build_rate_limit_headers(decision) if include_headers else None,
    )


class RateLimitGate:
    """Turns a limiter verdict into an allow/deny outcome around a handler.

    On deny the downstream handler never runs. On allow the rate limit
    context is attached to ``request.state.rate_limit``, the handler runs,
    and its status code is fed back to the limiter.
    """

    def __init__(
        self,
        limiter: AbstractRateLimiter,
        *,
        rule_name: str,
        key_generator: KeyGenerator = get_client_ip,
        include_headers: bool = True,
    ) -> None:
        self.limiter = limiter
        self.rule_name = rule_name
        self._key_generator = key_generator
        self._include_headers = include_headers

    async def handle(self, request: Request, call_next: CallNext) -> Response:
        try:
            key = self._key_generator(request)
            decision = await self.limiter.check(key)
        except Exception as exc:
            logger.error(
                "rate_limit.check_failed",
                extra={
                    "rule": self.rule_name,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            request.state.rate_limit = {"rule": self.rule_name, "limited": False}
            return await call_next(request)

        key_hash = hash_identifier(key)
        log_fields = {
            "rule": self.rule_name,
            "strategy": self.limiter.strategy,
            "key_hash": key_hash,
            "limit": decision.limit,
            "current": decision.current,
            "window_s": self.limiter.config.window_seconds,
        }

        if not decision.allowed:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    **log_fields,
                    "reason": decision.reason,
                    "retry_after_s": decision.retry_after_seconds,
                },
            )
            return build_rate_limit_response(decision, include_headers=self._include_headers)

        if decision.error:
            logger.warning("rate_limit.failed_open", extra={**log_fields, "error_msg": decision.error})
        else:
            logger.info("rate_limit.allowed", extra={**log_fields, "remaining": decision.remaining})

        request.state.rate_limit = {
            "rule": self.rule_name,
            "limited": decision.error is None,
            "limit": decision.limit,
            "remaining": decision.remaining,
            "reset": decision.reset_at,
            "current": decision.current,
            "adaptive": decision.adaptive,
        }

        response = await call_next(request)

        try:
            await self.limiter.record_outcome(key, response.status_code)
        except Exception as exc:
            logger.error(
                "rate_limit.record_outcome_failed",
                extra={
                    "rule": self.rule_name,
                    "key_hash": key_hash,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )

        if self._include_headers and decision.error is None:
            for name, value in build_rate_limit_headers(decision).items():
                response.headers[name] = value

        return response


def _matches_prefix(path: str, prefix: str) -> bool:
    normalized = prefix.rstrip("/")
    if not normalized:
        return True
    return path == normalized or path.startswith(normalized + "/")


class RateLimitRegistry:
    """Resolves requests to rules and keeps one gate per rule.

    A gate is rebuilt when the effective window or limit of its rule changes
    (dynamic rules following the runtime settings). The replacement limiter
    uses the same store prefix, so recorded requests carry over.
    """

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        rules: Iterable[RateLimitRule],
        enabled: bool = True,
        include_headers: bool = True,
        ip_whitelist: str | None = None,
        ip_blacklist: str | None = None,
        key_generator: KeyGenerator = get_client_ip,
        clock: Clock = system_clock,
    ) -> None:
        self.store = store
        self.rules = list(rules)
        self.enabled = enabled
        self.include_headers = include_headers
        self.whitelist = parse_ip_whitelist(ip_whitelist)
        self.blacklist = parse_ip_whitelist(ip_blacklist)
        self._key_generator = key_generator
        self._clock = clock
        self._gates: dict[str, tuple[tuple, RateLimitGate]] = {}

        names = [rule.name for rule in self.rules]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationAppError(
                code="duplicate_rate_limit_rule",
                message=f"Rate limit rule names must be unique: {', '.join(duplicates)}",
                details={"rule": duplicates[0]},
            )

        # Build every static rule once so invalid configuration fails at startup.
        for rule in self.rules:
            self.limiter_for(rule)

    def match_rule(self, path: str) -> RateLimitRule | None:
        """Return the rule with the longest prefix matching ``path``."""
        matches = [rule for rule in self.rules if _matches_prefix(path, rule.path_prefix)]
        if not matches:
            return None
        return max(matches, key=lambda rule: len(rule.path_prefix.rstrip("/")))

    def get_rule(self, name: str) -> RateLimitRule:
        for rule in self.rules:
            if rule.name == name:
                return rule
        raise NotFoundAppError(
            code="rate_limit_rule_not_found",
            message=f"Unknown rate limit rule: '{name}'",
            details={"rule": name},
        )

    def gate_for(self, rule: RateLimitRule, runtime: RuntimeSettings | None = None) -> RateLimitGate:
        """Return the gate for ``rule`` under the effective settings."""
        window_seconds, max_requests = self._effective_limits(rule, runtime)
        signature = (rule.strategy, window_seconds, max_requests, rule.adaptation_factor)

        cached = self._gates.get(rule.name)
        if cached is not None and cached[0] == signature:
            return cached[1]

        limiter = create_rate_limiter(
            rule.strategy,
            store=self.store,
            window_seconds=window_seconds,
            max_requests=max_requests,
            key_prefix=f"{rule.name}_rate_limit",
            adaptation_factor=rule.adaptation_factor,
            clock=self._clock,
        )
        gate = RateLimitGate(
            limiter,
            rule_name=rule.name,
            key_generator=self._key_generator,
            include_headers=self.include_headers,
        )
        if cached is not None:
            logger.info(
                "rate_limit.rule_reconfigured",
                extra={"rule": rule.name, "window_s": window_seconds, "limit": max_requests},
            )
        self._gates[rule.name] = (signature, gate)
        return gate

    def limiter_for(self, rule: RateLimitRule, runtime: RuntimeSettings | None = None) -> AbstractRateLimiter:
        return self.gate_for(rule, runtime).limiter

    def is_whitelisted(self, request: Request) -> bool:
        return bool(self.whitelist) and is_ip_whitelisted(get_client_ip(request), self.whitelist)

    def is_blacklisted(self, request: Request) -> bool:
        return bool(self.blacklist) and is_ip_whitelisted(get_client_ip(request), self.blacklist)

    @staticmethod
    def _effective_limits(rule: RateLimitRule, runtime: RuntimeSettings | None) -> tuple[int, int]:
        if rule.dynamic and runtime is not None:
            return runtime.rate_limit_window, runtime.rate_limit_max
        return rule.window_seconds, rule.max_requests


def build_ip_blocked_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content=build_error_body("IP_BLOCKED", "Access denied"),
    )


async def rate_limit_middleware(request: Request, call_next: CallNext) -> Response:
    """HTTP middleware rejecting blacklisted clients and applying the matching rule.

    Expects ``app.state.rate_limit_registry`` and ``app.state.runtime_settings``
    to be set by the application factory. The blacklist applies to every path,
    even with rate limiting disabled.
    """

    registry: RateLimitRegistry = request.app.state.rate_limit_registry
    if registry.is_blacklisted(request):
        logger.warning("rate_limit.ip_blocked", extra={"request_path": request.url.path})
        return build_ip_blocked_response()

    if not registry.enabled:
        return await call_next(request)

    rule = registry.match_rule(request.url.path)
    if rule is None:
        return await call_next(request)

    if registry.is_whitelisted(request):
        logger.debug("rate_limit.whitelisted", extra={"rule": rule.name})
        request.state.rate_limit = {"rule": rule.name, "limited": False}
        return await call_next(request)

    runtime = await request.app.state.runtime_settings.get() if rule.dynamic else None
    gate = registry.gate_for(rule, runtime)
    return await gate.handle(request, call_next)
