"""
Preference storage backends
"""
import logging
from typing import Dict, Optional

import redis.asyncio as redis

from ..application.preferences import PreferenceStorage
from ..config import settings

logger = logging.getLogger(__name__)


class RedisPreferenceStorage(PreferenceStorage):
    """Preferences persisted as JSON strings in Redis"""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.client = client

    async def connect(self):
        """Connect to Redis"""
        if self.client is not None:
            return
        self.client = redis.from_url(
            f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}",
            password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
            encoding="utf-8",
            decode_responses=True,
        )
        await self.client.ping()
        logger.info("Redis preference storage connected")

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.client:
            await self.client.close()
            self.client = None
            logger.info("Redis preference storage disconnected")

    async def load(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def save(self, key: str, value: str) -> None:
        await self.client.set(key, value)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)


class MemoryPreferenceStorage(PreferenceStorage):
    """Process-local storage"""

    def __init__(self):
        self.values: Dict[str, str] = {}

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    async def load(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def save(self, key: str, value: str) -> None:
        self.values[key] = value

    async def delete(self, key: str) -> None:
        self.values.pop(key, None)
