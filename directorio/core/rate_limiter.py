"""
directorio/core/rate_limiter.py — Per-(client, route) token bucket
State lives in the shared key-value store (Redis) so every worker sees the
same buckets; the arithmetic is the pure `decide()` below.
Store failures fail open: availability beats strict throttling here.
"""
from __future__ import annotations

import math
from typing import Any, Callable, Optional, Protocol

import pydantic
from fastapi import Request
from pydantic import BaseModel, Field
from slowapi.util import get_remote_address

from directorio.core import logging as app_logging
from directorio.models import RouteCategory
from directorio.utils.timezone import epoch_ms

ANONYMOUS_CLIENT = "anonymous"

# ── Rate limits per route category ────────────────────────────────────────────
# tokens = bucket capacity, interval = refill period in seconds.
# Overridable through Settings.rate_limits.

RATE_LIMITS = {
    # Sign-in / sign-up: brute-force protection
    RouteCategory.AUTH.value: {"tokens": 5, "interval": 60},
    # Listing create / update / delete
    RouteCategory.BUSINESS.value: {"tokens": 10, "interval": 60},
    # Browsing: generous
    RouteCategory.SEARCH.value: {"tokens": 30, "interval": 60},
    # Review spam
    RouteCategory.REVIEW.value: {"tokens": 5, "interval": 60},
}

DENIAL_MESSAGES = {
    RouteCategory.AUTH.value: "Demasiados intentos. Por favor, espere un momento.",
    RouteCategory.BUSINESS.value: "Demasiadas solicitudes. Por favor, espere un momento.",
    RouteCategory.SEARCH.value: "Demasiadas búsquedas. Por favor, espere un momento.",
    RouteCategory.REVIEW.value: "Demasiadas reseñas. Por favor, espere un momento.",
}


class BucketConfig(BaseModel):
    tokens: int = Field(ge=1)
    interval: int = Field(ge=1)  # seconds


class BucketState(BaseModel):
    tokens: float
    last: int  # epoch milliseconds of the last allowed request


class KeyValueStore(Protocol):
    async def get_json(self, key: str) -> Optional[dict[str, Any]]: ...

    async def set_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None: ...


# ──────────────────────────────────────────────────────────────────────────────
# Pure decision
# ──────────────────────────────────────────────────────────────────────────────

def decide(
    state: Optional[BucketState],
    now_ms: int,
    config: BucketConfig,
) -> tuple[bool, BucketState]:
    """
    One request against one bucket.
    Refill happens in whole intervals counted from `last`, each restoring a
    full bucket, capped at capacity. Returns (allowed, state_after). On deny
    the returned state is informational only and must not be persisted.
    """
    if state is None:
        state = BucketState(tokens=config.tokens, last=now_ms)

    elapsed_ms = max(0, now_ms - state.last)
    cycles = math.floor(elapsed_ms / (config.interval * 1000))
    tokens = min(config.tokens, state.tokens + cycles * config.tokens)

    if tokens < 1:
        return False, BucketState(tokens=tokens, last=state.last)

    return True, BucketState(tokens=tokens - 1, last=now_ms)


def bucket_key(route: str, client: str) -> str:
    return f"rate_limit:{route}:{client}"


def route_for_path(path: str) -> Optional[str]:
    """Map a request path to its route category; None means unthrottled."""
    if path.startswith("/api/auth"):
        return RouteCategory.AUTH.value
    if path.startswith("/api/business"):
        return RouteCategory.BUSINESS.value
    if "/api/search" in path:
        return RouteCategory.SEARCH.value
    if "/api/review" in path:
        return RouteCategory.REVIEW.value
    return None


def client_identifier(request: Request) -> str:
    """Remote IP, or a fixed placeholder when the transport gives none."""
    if request.client is None or not request.client.host:
        return ANONYMOUS_CLIENT
    return get_remote_address(request)


# ──────────────────────────────────────────────────────────────────────────────
# Store-backed limiter
# ──────────────────────────────────────────────────────────────────────────────

class TokenBucketLimiter:
    def __init__(
        self,
        store: KeyValueStore,
        limits: Optional[dict[str, dict[str, int]]] = None,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.store = store
        self.limits = {
            route: BucketConfig(**conf)
            for route, conf in (limits or RATE_LIMITS).items()
        }
        self._clock = clock

    async def check(self, client: str, route: str) -> bool:
        """Consume one token for (client, route). True means allowed."""
        config = self.limits.get(route)
        if config is None:
            return True

        key = bucket_key(route, client)
        now = self._clock()
        try:
            raw = await self.store.get_json(key)
            state = _load_state(raw)
            allowed, new_state = decide(state, now, config)
            if allowed:
                await self.store.set_json(
                    key, new_state.model_dump(), ttl_seconds=config.interval,
                )
        except Exception as exc:
            app_logging.log_error("rate_limiter", "check", exc, {"route": route})
            app_logging.log_rate_limit_decision(
                route, client, allowed=True, tokens_left=None, fail_open=True,
            )
            return True

        app_logging.log_rate_limit_decision(
            route, client, allowed=allowed, tokens_left=new_state.tokens,
        )
        return allowed


def _load_state(raw: Optional[dict[str, Any]]) -> Optional[BucketState]:
    """A corrupt entry is treated like an expired one."""
    if not raw:
        return None
    try:
        return BucketState.model_validate(raw)
    except pydantic.ValidationError:
        return None
