import logging
from typing import Optional

from django.conf import settings
from redis import asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RedisStore:
    """Byte-oriented key-value store. Failures are logged, never raised."""

    def __init__(self, rc: aioredis.Redis, expire: int = 0):
        self.rc = rc
        self.expire = expire or None

    @classmethod
    def from_settings(cls) -> 'RedisStore':
        rc = aioredis.Redis.from_url(settings.REDIS_URL)
        return cls(rc, expire=settings.STORE_EXPIRY)

    async def get(self, key: str) -> Optional[bytes]:
        try:
            return await self.rc.get(key)
        except RedisError as e:
            logger.error(f"failed to read {key!r}: {e}")
            return None

    async def put(self, key: str, value: bytes) -> bool:
        try:
            await self.rc.set(key, value, ex=self.expire)
        except RedisError as e:
            logger.error(f"failed to write {key!r}: {e}")
            return False
        return True

    async def close(self):
        await self.rc.aclose()
