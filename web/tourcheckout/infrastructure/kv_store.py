from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Dict, Iterable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..core.config import get_settings
from ..core.exceptions import StorageError


class IKeyValueStore(ABC):
    """Durable async string store used for recovery pointers"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        pass

    @abstractmethod
    async def scan_prefix(self, prefix: str) -> Dict[str, str]:
        """Return every key starting with prefix mapped to its value"""
        pass

    @abstractmethod
    async def delete_many(self, keys: Iterable[str]) -> int:
        pass

    async def ping(self) -> bool:
        return True


class RedisKeyValueStore(IKeyValueStore):
    """Redis-backed store. Redis errors surface as StorageError."""

    def __init__(self, client: aioredis.Redis):
        self._redis = client

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except RedisError as exc:
            raise StorageError(f"get {key} failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            await self._redis.set(key, value, ex=ttl)
        except RedisError as exc:
            raise StorageError(f"set {key} failed: {exc}") from exc

    async def scan_prefix(self, prefix: str) -> Dict[str, str]:
        try:
            keys = [key async for key in self._redis.scan_iter(match=f"{prefix}*")]
            if not keys:
                return {}
            values = await self._redis.mget(keys)
        except RedisError as exc:
            raise StorageError(f"scan {prefix} failed: {exc}") from exc
        return {key: value for key, value in zip(keys, values) if value is not None}

    async def delete_many(self, keys: Iterable[str]) -> int:
        keys = list(keys)
        if not keys:
            return 0
        try:
            return await self._redis.delete(*keys)
        except RedisError as exc:
            raise StorageError(f"delete failed: {exc}") from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError:
            return False


@lru_cache()
def get_redis() -> aioredis.Redis:
    """Shared pooled client"""
    return aioredis.from_url(get_settings().REDIS_DSN, encoding="utf-8", decode_responses=True)
