"""
Redis cache for issuer signing keys.

Values are stored as JSON under a key prefix so several services can share
one Redis. When Redis cannot be reached the cache is bypassed for a while
and every read is a miss; the JWKS resolver then serves keys from memory.
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from token_broker.core.config import settings

logger = logging.getLogger(__name__)

_RETRY_AFTER_SECONDS = 30.0


class CacheService:
    def __init__(self, url: Optional[str] = None, prefix: Optional[str] = None):
        self._url = url or settings.REDIS_URL
        self._prefix = settings.CACHE_PREFIX if prefix is None else prefix
        self._client: Optional[redis.Redis] = None
        self._connect_lock = asyncio.Lock()
        self._bypass_until = 0.0

    @property
    def available(self) -> bool:
        return time.monotonic() >= self._bypass_until

    def _bypass(self, error: BaseException) -> None:
        logger.warning(f"Redis unavailable, bypassing cache for {_RETRY_AFTER_SECONDS:.0f}s: {error}")
        self._bypass_until = time.monotonic() + _RETRY_AFTER_SECONDS

    async def get_client(self) -> redis.Redis:
        """Connect on first use. Only one coroutine opens the connection."""
        if self._client is not None:
            return self._client

        async with self._connect_lock:
            if self._client is None:
                client = redis.from_url(self._url, decode_responses=True, max_connections=10)
                try:
                    await client.ping()
                except Exception:
                    await client.aclose()
                    raise
                logger.info("Redis cache connected")
                self._client = client
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get(self, key: str) -> Optional[Any]:
        if not self.available:
            return None
        try:
            client = await self.get_client()
            raw = await client.get(self._prefix + key)
        except (RedisError, OSError) as e:
            self._bypass(e)
            return None

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Ignoring undecodable cache entry {key}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        if not self.available:
            return False
        ttl = ttl_seconds if ttl_seconds is not None else settings.CACHE_DEFAULT_TTL_HOURS * 3600
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cannot cache {key}: {e}")
            return False
        try:
            client = await self.get_client()
            await client.setex(self._prefix + key, ttl, payload)
        except (RedisError, OSError) as e:
            self._bypass(e)
            return False
        return True

    async def delete(self, key: str) -> bool:
        if not self.available:
            return False
        try:
            client = await self.get_client()
            await client.delete(self._prefix + key)
        except (RedisError, OSError) as e:
            self._bypass(e)
            return False
        return True

    async def health_check(self) -> Dict[str, Any]:
        try:
            client = await self.get_client()
            await client.ping()
        except Exception as e:
            return {"status": "unhealthy", "available": False, "error": str(e)}
        return {"status": "healthy", "available": True}


class CacheKeys:
    @staticmethod
    def jwks(issuer: str) -> str:
        return f"oidc:jwks:{issuer}"

    @staticmethod
    def jwks_uri(issuer: str) -> str:
        return f"oidc:jwks_uri:{issuer}"


cache_service = CacheService()
