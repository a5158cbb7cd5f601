import json
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional, Dict
import time
import logging

import redis.asyncio as redis

from lms_cache.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

class SnapshotBackend(ABC):
    """Key/value storage for serialized store entries that outlive the process."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def clear(self) -> bool:
        pass

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    async def close(self) -> None:
        pass

class MemorySnapshotBackend(SnapshotBackend):
    def __init__(self):
        self._cache: Dict[str, Dict] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            item = self._cache.get(key)
            if item and (item.get("expiry", 0) == 0 or time.time() < item["expiry"]):
                return json.loads(item["value"])
            elif key in self._cache:
                del self._cache[key]
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        async with self._lock:
            expiry = time.time() + ttl if ttl else 0
            self._cache[key] = {
                "value": json.dumps(value, default=str),
                "expiry": expiry,
                "created_at": time.time()
            }
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def clear(self) -> bool:
        async with self._lock:
            self._cache.clear()
            return True

class RedisSnapshotBackend(SnapshotBackend):
    def __init__(self, redis_url: str, prefix: str = ""):
        self.redis = redis.from_url(redis_url, decode_responses=True)
        self.prefix = prefix

    def _serialize(self, value: Any) -> str:
        return json.dumps(value, default=str)

    def _deserialize(self, value: str) -> Any:
        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return None

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self.redis.get(key)
            return self._deserialize(value) if value else None
        except Exception as e:
            logger.error(f"Redis GET error for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        try:
            serialized = self._serialize(value)
            if ttl:
                await self.redis.setex(key, ttl, serialized)
            else:
                await self.redis.set(key, serialized)
            return True
        except Exception as e:
            logger.error(f"Redis SET error for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            result = await self.redis.delete(key)
            return result > 0
        except Exception as e:
            logger.error(f"Redis DELETE error for key {key}: {e}")
            return False

    async def clear(self) -> bool:
        try:
            keys = [key async for key in self.redis.scan_iter(match=f"{self.prefix}*")]
            if keys:
                await self.redis.delete(*keys)
            return True
        except Exception as e:
            logger.error(f"Redis CLEAR error: {e}")
            return False

    async def close(self) -> None:
        await self.redis.aclose()

def create_snapshot_backend(config: Settings = default_settings) -> SnapshotBackend:
    if config.REDIS_URL:
        try:
            logger.info("Initializing Redis snapshot backend")
            return RedisSnapshotBackend(config.REDIS_URL, prefix=config.SNAPSHOT_PREFIX)
        except Exception as e:
            logger.error(f"Redis connection failed: {e}, falling back to memory snapshots")

    logger.info("Using in-memory snapshot backend")
    return MemorySnapshotBackend()
