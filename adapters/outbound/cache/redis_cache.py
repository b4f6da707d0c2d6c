# Cliente Redis: implementación de CachePort sobre redis-py

import uuid
import logging
from typing import Dict, Iterable, List, Optional, Set

import redis

from config.settings import settings
from core.domain.errors import CacheError
from core.ports.cache_port import CachePort

logger = logging.getLogger(__name__)

# Borra el lock solo si su valor sigue siendo el token del dueño
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


# Wrapper de Redis. Las lecturas degradan a "miss" si Redis no responde.
class RedisCache(CachePort):
    def __init__(self, url: str = None, client: redis.Redis = None):
        self.url = url or settings.redis.url
        self.client = client
        if self.client is None:
            self._connect()

    def _connect(self):
        try:
            self.client = redis.from_url(
                self.url,
                decode_responses=True,
                socket_timeout=settings.redis.socket_timeout,
            )
            self.client.ping()
            logger.info("Redis conectado")
        except redis.RedisError as e:
            logger.warning(f"Redis no disponible: {e}")
            self.client = None

    def get(self, key: str) -> Optional[str]:
        if not self.client:
            return None
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            logger.error(f"Redis get error: {e}")
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if not self.client:
            return
        try:
            if ttl:
                self.client.setex(key, ttl, value)
            else:
                self.client.set(key, value)
        except redis.RedisError as e:
            logger.error(f"Redis set error: {e}")

    def delete(self, *keys: str) -> None:
        if not self.client or not keys:
            return
        try:
            self.client.delete(*keys)
        except redis.RedisError as e:
            logger.error(f"Redis delete error: {e}")

    def exists(self, key: str) -> bool:
        if not self.client:
            return False
        try:
            return bool(self.client.exists(key))
        except redis.RedisError as e:
            logger.error(f"Redis exists error: {e}")
            return False

    def set_members(self, key: str) -> Set[str]:
        if not self.client:
            return set()
        try:
            return set(self.client.smembers(key))
        except redis.RedisError as e:
            logger.error(f"Redis smembers error: {e}")
            return set()

    def write_atomic(
        self,
        values: Dict[str, str],
        sets: Dict[str, Iterable[str]],
        ttl: int,
    ) -> None:
        if not self.client:
            return
        try:
            with self.client.pipeline(transaction=True) as pipe:
                for key, members in sets.items():
                    members = list(members)
                    pipe.delete(key)
                    # SADD sin miembros es error: el set vacío queda como clave ausente
                    if members:
                        pipe.sadd(key, *members)
                        pipe.expire(key, ttl)
                for key, value in values.items():
                    pipe.setex(key, ttl, value)
                pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Redis write_atomic error: {e}")

    def try_acquire(self, key: str, ttl: int) -> Optional[str]:
        if not self.client:
            raise CacheError("Redis no disponible", cache_type="redis")
        token = uuid.uuid4().hex
        try:
            if self.client.set(key, token, nx=True, ex=ttl):
                return token
            return None
        except redis.RedisError as e:
            raise CacheError(f"No se pudo tomar el lock {key}: {e}", cache_type="redis")

    def release(self, key: str, token: str) -> bool:
        if not self.client:
            return False
        try:
            return bool(self.client.eval(RELEASE_LOCK_SCRIPT, 1, key, token))
        except redis.RedisError as e:
            # El lock expira solo por TTL
            logger.error(f"Redis release error: {e}")
            return False

    def list_append(self, key: str, value: str, max_len: int, ttl: int) -> None:
        if not self.client:
            return
        try:
            with self.client.pipeline(transaction=True) as pipe:
                pipe.rpush(key, value)
                pipe.ltrim(key, -max_len, -1)
                pipe.expire(key, ttl)
                pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Redis list_append error: {e}")

    def list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        if not self.client:
            return []
        try:
            return self.client.lrange(key, start, end)
        except redis.RedisError as e:
            logger.error(f"Redis lrange error: {e}")
            return []

    def delete_pattern(self, pattern: str) -> int:
        if not self.client:
            return 0
        deleted = 0
        try:
            batch = []
            for key in self.client.scan_iter(match=pattern, count=200):
                batch.append(key)
                if len(batch) >= 200:
                    deleted += self.client.delete(*batch)
                    batch = []
            if batch:
                deleted += self.client.delete(*batch)
        except redis.RedisError as e:
            logger.error(f"Redis delete_pattern error: {e}")
        return deleted

    def is_connected(self) -> bool:
        if not self.client:
            return False
        try:
            self.client.ping()
            return True
        except redis.RedisError:
            return False


_redis_client = None


def get_redis_client() -> RedisCache:
    global _redis_client
    if _redis_client is None:
        _redis_client = RedisCache()
    return _redis_client
