"""Redis-backed token lookup cache.

The cache only ever saves a database round trip: every method degrades to a
no-op (``get`` returns None) when Redis is disabled, unreachable, or has
failed repeatedly, so callers never need to check availability.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional

from redis.exceptions import RedisError

from scheduling_api.config import RedisSettings, get_settings
from scheduling_api.utils.time import utcnow

logger = logging.getLogger(__name__)

TOKEN_KEY_PREFIX = "token:"

_CACHE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class TokenCache:
    """Best-effort ``token -> {userId, createdAt}`` cache guarded by a circuit breaker."""

    def __init__(
        self,
        client: Optional[Any],
        ttl_seconds: int = 3600,
        failure_threshold: int = 3,
        retry_after_seconds: float = 30.0,
    ):
        self._client = client
        self.ttl_seconds = ttl_seconds
        self.failure_threshold = failure_threshold
        self.retry_after_seconds = retry_after_seconds
        self._failures = 0
        self._opened_at: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Optional[RedisSettings] = None) -> "TokenCache":
        """Build a cache from Redis settings; a disabled or blank URL gives a no-op cache."""
        settings = settings or get_settings().redis
        client = None
        if settings.enabled and settings.url and settings.url.strip():
            import redis.asyncio as redis

            client = redis.from_url(
                settings.url,
                password=settings.password,
                decode_responses=True,
                socket_timeout=settings.socket_timeout,
                socket_connect_timeout=settings.socket_connect_timeout,
            )
            logger.info("Token cache configured with Redis")
        else:
            logger.info("Token cache disabled; tokens are read from the database only")
        return cls(
            client,
            ttl_seconds=settings.token_ttl_seconds,
            failure_threshold=settings.failure_threshold,
            retry_after_seconds=settings.retry_after_seconds,
        )

    @property
    def is_open(self) -> bool:
        """True while the breaker is tripped and calls are skipped."""
        if self._opened_at is None:
            return False
        return time.monotonic() - self._opened_at < self.retry_after_seconds

    def _available(self) -> bool:
        return self._client is not None and not self.is_open

    def _record_success(self) -> None:
        if self._failures or self._opened_at is not None:
            logger.info("Token cache recovered")
        self._failures = 0
        self._opened_at = None

    def _record_failure(self, operation: str, error: Exception) -> None:
        self._failures += 1
        logger.warning(f"Token cache {operation} failed ({self._failures}): {error}")
        if self._failures >= self.failure_threshold:
            self._opened_at = time.monotonic()
            logger.warning(
                f"Token cache disabled for {self.retry_after_seconds}s after "
                f"{self._failures} consecutive failures"
            )

    @staticmethod
    def _key(token: str) -> str:
        return f"{TOKEN_KEY_PREFIX}{token}"

    async def get(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the cached entry for ``token`` or None on miss/unavailability."""
        if not self._available():
            return None
        try:
            raw = await self._client.get(self._key(token))
        except _CACHE_ERRORS as e:
            self._record_failure("get", e)
            return None
        self._record_success()
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding malformed token cache entry")
            return None

    async def set(self, token: str, user_id: str) -> bool:
        """Cache ``token`` for ``user_id`` with the configured TTL."""
        if not self._available():
            return False
        value = json.dumps({"userId": user_id, "createdAt": utcnow().isoformat()})
        try:
            await self._client.setex(self._key(token), self.ttl_seconds, value)
        except _CACHE_ERRORS as e:
            self._record_failure("set", e)
            return False
        self._record_success()
        return True

    async def delete(self, token: str) -> bool:
        """Evict ``token`` from the cache."""
        if not self._available():
            return False
        try:
            await self._client.delete(self._key(token))
        except _CACHE_ERRORS as e:
            self._record_failure("delete", e)
            return False
        self._record_success()
        return True

    async def close(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            except _CACHE_ERRORS as e:
                logger.warning(f"Error closing token cache: {e}")
            self._client = None
