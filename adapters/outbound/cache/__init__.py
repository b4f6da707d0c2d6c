from adapters.outbound.cache.redis_cache import RedisCache, get_redis_client

__all__ = ["RedisCache", "get_redis_client"]
