# Tests del cargador de permisos (cache-aside con lock distribuido)
# Ejecutar con: pytest tests/test_permission_loader.py -v

import threading
import time
import pytest
from unittest.mock import MagicMock

from core.domain.errors import CacheError, UserNotFoundError
from core.domain.policy import QueryPolicy


@pytest.fixture
def loader(cache, store):
    from core.services.security import PermissionLoader
    return PermissionLoader(cache, store, jitter_minutes=0, lock_wait_ms=50)


@pytest.mark.unit
class TestLoadPermissions:
    """Snapshot de permisos por usuario"""

    def test_cold_cache_loads_from_store(self, loader, store, cache):
        perms = loader.load_permissions(7, 3)
        assert perms == {"1:customers:SELECT", "1:orders:SELECT"}
        assert store.permission_reads == 1
        assert cache.exists("user:perm:mark:7")
        # El lock se libera al terminar
        assert not cache.exists("lock:perm:load:7")

    def test_warm_cache_skips_store(self, loader, store):
        loader.load_permissions(7, 3)
        loader.load_permissions(7, 3)
        assert store.permission_reads == 1

    def test_ttl_has_base_and_jitter(self, cache, store):
        from core.services.security import PermissionLoader
        loader = PermissionLoader(cache, store, ttl_minutes=1440, jitter_minutes=60)
        loader.load_permissions(7, 3)
        ttl = cache.ttls["user:perm:mark:7"]
        assert 1440 * 60 <= ttl < 1500 * 60
        assert cache.ttls["user:perm:set:7"] == ttl

    def test_empty_permissions_are_cached(self, loader, store, cache):
        store.permissions[3] = set()
        assert loader.load_permissions(7, 3) == set()
        assert loader.load_permissions(7, 3) == set()
        assert store.permission_reads == 1

    def test_concurrent_cold_cache_reads_store_once(self, cache, store):
        from core.services.security import PermissionLoader
        loader = PermissionLoader(cache, store, jitter_minutes=0, lock_wait_ms=300)
        original = store.get_table_permissions

        def slow_read(role_id):
            time.sleep(0.05)
            return original(role_id)

        store.get_table_permissions = slow_read
        results = []
        barrier = threading.Barrier(10)

        def worker():
            barrier.wait()
            results.append(loader.load_permissions(7, 3))

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.permission_reads == 1
        assert len(results) == 10
        assert all(r == {"1:customers:SELECT", "1:orders:SELECT"} for r in results)

    def test_lock_held_elsewhere_returns_empty(self, loader, cache, store):
        cache.try_acquire("lock:perm:load:7", 5)
        assert loader.load_permissions(7, 3) == set()
        assert store.permission_reads == 0

    def test_expired_lock_of_other_holder_is_kept(self, loader, cache, store):
        original = store.get_table_permissions

        def slow_read(role_id):
            # El lock vence durante la carga y otro proceso lo toma
            cache.delete("lock:perm:load:7")
            cache.values["lock:perm:load:7"] = "other-holder"
            return original(role_id)

        store.get_table_permissions = slow_read

        assert loader.load_permissions(7, 3) == {"1:customers:SELECT", "1:orders:SELECT"}
        assert cache.get("lock:perm:load:7") == "other-holder"

    def test_lock_error_loads_directly(self, cache, store):
        from core.services.security import PermissionLoader

        class BrokenLock(type(cache)):
            def try_acquire(self, key, ttl):
                raise CacheError("redis caído", "redis")

        loader = PermissionLoader(BrokenLock(), store)
        assert loader.load_permissions(7, 3) == {"1:customers:SELECT", "1:orders:SELECT"}


@pytest.mark.unit
class TestPolicyAndRole:
    """Política y rol cacheados"""

    def test_policy_round_trip(self, loader):
        loader.load_permissions(7, 3)
        policy = loader.load_policy(7, 3)
        assert policy.max_limit == 100
        assert policy.allow_join is True

    def test_no_policy_sentinel(self, loader, store, cache):
        del store.policies[3]
        assert loader.load_policy(7, 3) is None
        assert cache.get("user:policy:7") == "NO_POLICY"
        store.policies[3] = QueryPolicy(role_id=3, max_limit=5)
        # El centinela evita volver al store
        assert loader.load_policy(7, 3) is None

    def test_policy_accepts_numeric_flags(self):
        policy = QueryPolicy.from_json('{"roleId": 3, "maxLimit": 50, "allowJoin": 0, "allowSubquery": 1, "allowAggregation": 0}')
        assert policy.allow_join is False
        assert policy.allow_subquery is True
        assert policy.allow_aggregation is False

    def test_resolve_role_id_cached(self, loader, cache):
        assert loader.resolve_role_id(7) == 3
        assert cache.get("user:role_id:7") == "3"

    def test_unknown_user(self, loader):
        with pytest.raises(UserNotFoundError):
            loader.resolve_role_id(404)


@pytest.mark.unit
class TestEvictAndWarmUp:

    def test_evict_is_idempotent(self, loader, cache, store):
        loader.load_permissions(7, 3)
        loader.evict(7)
        loader.evict(7)
        assert not cache.exists("user:perm:mark:7")
        loader.load_permissions(7, 3)
        assert store.permission_reads == 2

    def test_warm_up_skips_failures(self, cache, store):
        from core.services.security import PermissionLoader
        store.users[8] = 99
        store.users[9] = 3
        loader = PermissionLoader(cache, store, jitter_minutes=0)
        loader.load_permissions = MagicMock(side_effect=[set(), RuntimeError("db"), set()])

        loaded = loader.warm_up(batch_size=2, pause_ms=0)

        assert loaded == 2
        assert loader.load_permissions.call_count == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
