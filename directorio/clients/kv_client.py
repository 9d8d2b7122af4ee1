"""
directorio/clients/kv_client.py — Redis key-value client for rate-limit state
JSON values with per-key expiry. Errors propagate; the limiter decides to
fail open.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from loguru import logger

from directorio.config import get_settings


class RedisKeyValueStore:
    """Thin JSON wrapper over an asyncio Redis connection pool."""

    def __init__(self, url: str, timeout_seconds: float = 2.0) -> None:
        self._client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )

    async def get_json(self, key: str) -> Optional[dict[str, Any]]:
        raw = await self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        await self._client.set(key, json.dumps(value), ex=ttl_seconds)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            logger.warning(f"Redis ping failed: {exc}")
            return False

    async def close(self) -> None:
        await self._client.aclose()


def build_kv_store() -> RedisKeyValueStore:
    settings = get_settings()
    return RedisKeyValueStore(settings.redis_url, settings.redis_timeout_seconds)
