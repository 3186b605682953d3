from .kv_store import IKeyValueStore, RedisKeyValueStore, get_redis
from .marketplace_client import MarketplaceClient

__all__ = [
    "IKeyValueStore",
    "RedisKeyValueStore",
    "get_redis",
    "MarketplaceClient",
]
