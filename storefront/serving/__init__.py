"""
Serving Module
"""
from .cache import CacheManager, close_redis, get_redis, init_redis, products_cache

__all__ = [
    "CacheManager",
    "init_redis",
    "close_redis",
    "get_redis",
    "products_cache",
]
