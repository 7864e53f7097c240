# lms_analytics/core/cache.py
"""Redis cache for composed dashboards."""
import json
import logging
from typing import Any, Optional, Union
from datetime import timedelta
import redis.asyncio as redis
from redis.exceptions import RedisError
from .config import settings

logger = logging.getLogger(__name__)


class CacheManager:
    """JSON values under a key namespace. An unreachable Redis reads as a miss."""

    def __init__(self, url: Optional[str] = None, namespace: str = "lms_analytics"):
        self.url = url or settings.redis_url
        self.namespace = namespace
        self.redis: Optional[redis.Redis] = None

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def connect(self):
        if not self.redis:
            self.redis = redis.from_url(self.url, encoding="utf-8", decode_responses=True)

    async def disconnect(self):
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    async def get(self, key: str) -> Optional[Any]:
        await self.connect()
        try:
            value = await self.redis.get(self._key(key))
        except RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        return json.loads(value) if value else None

    async def set(self, key: str, value: Any, expire: Optional[Union[int, timedelta]] = None) -> bool:
        await self.connect()
        if isinstance(expire, timedelta):
            expire = int(expire.total_seconds())
        try:
            return bool(await self.redis.set(self._key(key), json.dumps(value), ex=expire or None))
        except RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False

    async def delete_prefix(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``; returns how many were removed."""
        await self.connect()
        removed = 0
        try:
            async for full_key in self.redis.scan_iter(match=f"{self._key(prefix)}*"):
                removed += await self.redis.delete(full_key)
        except RedisError as e:
            logger.warning(f"Cache invalidation failed for {prefix}: {e}")
        return removed
