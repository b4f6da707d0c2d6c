# Tests de integración contra un Redis real
# Requieren Redis corriendo (REDIS_URL). Se saltan si no está disponible.
# Ejecutar con: pytest tests/test_integration.py -v -m integration

import uuid
import pytest


@pytest.fixture
def prefix(redis_cache):
    """Prefijo único por test; limpia sus claves al terminar"""
    value = f"it:{uuid.uuid4().hex[:8]}"
    yield value
    redis_cache.delete_pattern(f"{value}:*")


@pytest.mark.integration
class TestRedisCacheIntegration:
    """Operaciones de CachePort sobre Redis"""

    def test_set_get_with_ttl(self, redis_cache, prefix):
        redis_cache.set(f"{prefix}:k", "v", ttl=30)
        assert redis_cache.get(f"{prefix}:k") == "v"
        assert redis_cache.client.ttl(f"{prefix}:k") <= 30

    def test_try_acquire_only_once(self, redis_cache, prefix):
        key = f"{prefix}:lock"
        token = redis_cache.try_acquire(key, 5)
        assert token
        assert redis_cache.try_acquire(key, 5) is None
        assert redis_cache.release(key, token) is True
        assert redis_cache.try_acquire(key, 5)

    def test_release_ignores_lock_of_other_holder(self, redis_cache, prefix):
        key = f"{prefix}:lock"
        stale = redis_cache.try_acquire(key, 5)
        # El lock expira y lo toma otro proceso
        redis_cache.delete(key)
        current = redis_cache.try_acquire(key, 5)

        assert redis_cache.release(key, stale) is False
        assert redis_cache.get(key) == current
        assert redis_cache.release(key, current) is True
        assert not redis_cache.exists(key)

    def test_write_atomic_empty_set_is_absent(self, redis_cache, prefix):
        redis_cache.write_atomic(
            values={f"{prefix}:mark": "1"},
            sets={f"{prefix}:full": {"a", "b"}, f"{prefix}:empty": set()},
            ttl=60,
        )
        assert redis_cache.exists(f"{prefix}:mark")
        assert redis_cache.set_members(f"{prefix}:full") == {"a", "b"}
        assert not redis_cache.exists(f"{prefix}:empty")
        assert redis_cache.set_members(f"{prefix}:empty") == set()

    def test_write_atomic_replaces_previous_members(self, redis_cache, prefix):
        key = f"{prefix}:perms"
        redis_cache.write_atomic(values={}, sets={key: {"old"}}, ttl=60)
        redis_cache.write_atomic(values={}, sets={key: {"new"}}, ttl=60)
        assert redis_cache.set_members(key) == {"new"}

    def test_list_append_keeps_window(self, redis_cache, prefix):
        key = f"{prefix}:messages"
        for i in range(5):
            redis_cache.list_append(key, str(i), max_len=3, ttl=60)
        assert redis_cache.list_range(key) == ["2", "3", "4"]

    def test_delete_pattern(self, redis_cache, prefix):
        redis_cache.set(f"{prefix}:schema:1:a", "x")
        redis_cache.set(f"{prefix}:schema:1:b", "x")
        redis_cache.set(f"{prefix}:schema:2:a", "x")

        assert redis_cache.delete_pattern(f"{prefix}:schema:1:*") == 2
        assert redis_cache.exists(f"{prefix}:schema:2:a")


@pytest.mark.integration
class TestPermissionLoaderIntegration:
    """Cache-aside de permisos con Redis real"""

    USER_ID = 990007

    @pytest.fixture
    def loader(self, redis_cache, store):
        from core.services.security import PermissionLoader
        store.users[self.USER_ID] = 3
        loader = PermissionLoader(redis_cache, store, jitter_minutes=0, lock_wait_ms=50)
        loader.evict(self.USER_ID)
        redis_cache.delete(f"lock:perm:load:{self.USER_ID}")
        yield loader
        loader.evict(self.USER_ID)

    def test_load_then_hit(self, loader, store, redis_cache):
        first = loader.load_permissions(self.USER_ID, 3)
        second = loader.load_permissions(self.USER_ID, 3)

        assert first == second == {"1:customers:SELECT", "1:orders:SELECT"}
        assert store.permission_reads == 1
        assert not redis_cache.exists(f"lock:perm:load:{self.USER_ID}")

    def test_empty_permissions_cached(self, loader, store):
        store.permissions[3] = set()
        assert loader.load_permissions(self.USER_ID, 3) == set()
        assert loader.load_permissions(self.USER_ID, 3) == set()
        assert store.permission_reads == 1

    def test_evict_forces_reload(self, loader, store):
        loader.load_permissions(self.USER_ID, 3)
        loader.evict(self.USER_ID)
        store.permissions[3] = {"1:products:SELECT"}

        assert loader.load_permissions(self.USER_ID, 3) == {"1:products:SELECT"}
        assert store.permission_reads == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-m", "integration"])
