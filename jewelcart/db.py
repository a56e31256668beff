"""
Storage Module - Durable key-value store

Provides:
- KeyValueStore: the async get/set/delete interface the cart and token
  stores are written against
- RedisKeyValueStore: Upstash Redis backed store, keys scoped by namespace
- MemoryKeyValueStore: in-process store for tests and offline runs
- get_key_value_store(): process-wide singleton
"""

from typing import Dict, Optional, Protocol

from upstash_redis.asyncio import Redis as AsyncRedis

from jewelcart.config import get_settings
from jewelcart.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Async string key-value store."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class RedisKeyValueStore:
    """
    Upstash Redis store.

    Every key is prefixed with "{namespace}:" so one Redis database can hold
    the records of many app installs without them seeing each other.
    """

    def __init__(self, redis: AsyncRedis, namespace: str):
        self._redis = redis
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Optional[str]:
        value = await self._redis.get(self._key(key))
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(self._key(key), value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._key(key))


class MemoryKeyValueStore:
    """Dict-backed store. Survives nothing but the process."""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)


# Storage key layout
class StorageKeys:
    """Keys of the records kept in the durable store."""

    # Cart storage
    CART = "cart_"  # cart_{user_id}
    GUEST = "guest"  # cart_guest

    # Auth storage
    TOKEN = "token"
    REFRESH_TOKEN = "refresh_token"
    USER = "user"

    @staticmethod
    def cart_key(user_id: Optional[str]) -> str:
        if user_id:
            return f"{StorageKeys.CART}{user_id}"
        return f"{StorageKeys.CART}{StorageKeys.GUEST}"


# Singleton instance
_kv_store: Optional[KeyValueStore] = None


def get_key_value_store() -> KeyValueStore:
    """
    Get the durable key-value store (singleton).

    Uses Upstash Redis when UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN
    are set, otherwise falls back to an in-process store.
    """
    global _kv_store

    if _kv_store is None:
        settings = get_settings()
        if settings.redis_configured:
            redis = AsyncRedis(url=settings.redis_url, token=settings.redis_token)
            _kv_store = RedisKeyValueStore(redis, settings.storage_namespace)
        else:
            logger.warning("Upstash Redis not configured; cart and auth data will not survive restarts")
            _kv_store = MemoryKeyValueStore()

    return _kv_store


def set_key_value_store(store: Optional[KeyValueStore]) -> None:
    """Replace the singleton (None resets it)."""
    global _kv_store
    _kv_store = store
