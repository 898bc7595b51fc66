"""Optional Redis cache for widget configs"""
import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "widget-config:"


class ConfigCache:
    """
    Read-through cache in front of the config store

    Every Redis failure degrades to "no cache": reads miss, writes and
    invalidations are skipped.
    """

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: int = 300):
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.redis_client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    async def connect(self) -> None:
        """Connect to Redis"""
        if not self.redis_url:
            return
        try:
            self.redis_client = redis.from_url(self.redis_url)
            await self.redis_client.ping()
            logger.info("Redis connected - widget config cache enabled")
        except Exception as e:
            logger.warning(f"Redis connection failed, continuing without cache: {e}")
            self.redis_client = None

    async def close(self) -> None:
        if self.redis_client is None:
            return
        try:
            await self.redis_client.aclose()
        except Exception as e:
            logger.warning(f"Redis close failed: {e}")
        self.redis_client = None

    async def get(self, project_id: str) -> Optional[Dict[str, Any]]:
        if not self.redis_client:
            return None
        try:
            raw = await self.redis_client.get(KEY_PREFIX + project_id)
            if not raw:
                return None
            value = json.loads(raw)
            return value if isinstance(value, dict) else None
        except Exception as e:
            logger.warning(f"Redis get failed for {project_id}: {e}")
            return None

    async def set(self, project_id: str, config: Dict[str, Any]) -> None:
        if not self.redis_client:
            return
        try:
            data = json.dumps(config, ensure_ascii=False)
            await self.redis_client.setex(KEY_PREFIX + project_id, self.ttl_seconds, data)
        except Exception as e:
            logger.warning(f"Redis set failed for {project_id}: {e}")

    async def invalidate(self, project_id: str) -> None:
        if not self.redis_client:
            return
        try:
            await self.redis_client.delete(KEY_PREFIX + project_id)
        except Exception as e:
            logger.warning(f"Redis invalidate failed for {project_id}: {e}")
