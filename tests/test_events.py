# Tests de eventos de invalidación y del pool de workers acotado
# Ejecutar con: pytest tests/test_events.py -v

import threading
import time
import pytest
from concurrent.futures import wait
from unittest.mock import MagicMock

from core.domain.errors import PoolSaturatedError


@pytest.fixture
def bus():
    from core.services.events import EventBus
    bus = EventBus(max_workers=2)
    yield bus
    bus.shutdown()


@pytest.fixture
def listener(cache, store, audit):
    from core.services.events import CacheEvictionListener
    from core.services.security import PermissionLoader
    loader = PermissionLoader(cache, store, jitter_minutes=0)
    collector = MagicMock()
    collector.evict_data_source.return_value = 2
    return CacheEvictionListener(
        loader=loader,
        store=store,
        collector=collector,
        index=MagicMock(),
        registry=MagicMock(),
        indexer=MagicMock(return_value=3),
        audit_logger=audit,
    )


@pytest.mark.unit
class TestEventBus:
    """Entrega asíncrona y aislamiento de errores"""

    def test_publish_without_subscribers(self, bus):
        from core.services.events import RolePermissionChanged
        assert bus.publish(RolePermissionChanged(role_id=1)) == []

    def test_handler_runs_in_background(self, bus):
        from core.services.events import RolePermissionChanged
        seen = []
        bus.subscribe(RolePermissionChanged, lambda e: seen.append((e.role_id, threading.current_thread().name)))

        wait(bus.publish(RolePermissionChanged(role_id=3)))

        assert seen[0][0] == 3
        assert seen[0][1].startswith("events")

    def test_failing_handler_does_not_stop_others(self, bus):
        from core.services.events import QueryPolicyChanged
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(QueryPolicyChanged, broken)
        bus.subscribe(QueryPolicyChanged, lambda e: seen.append(e.role_id))

        futures = bus.publish(QueryPolicyChanged(role_id=5))
        wait(futures)

        assert seen == [5]
        assert all(f.exception() is None for f in futures)

    def test_events_compare_by_payload(self):
        from core.services.events import DataSourceDeleted
        assert DataSourceDeleted(data_source_id=1) == DataSourceDeleted(data_source_id=1)
        assert DataSourceDeleted(data_source_id=1).name == "DataSourceDeleted"


@pytest.mark.unit
class TestCacheEvictionListener:
    """Traducción de eventos a invalidaciones"""

    def test_role_change_evicts_users_of_role(self, listener, bus, cache, store, audit):
        from core.services.events import RolePermissionChanged
        listener.register(bus)
        listener.loader.load_permissions(7, 3)
        store.permissions[3] = {"1:customers:SELECT"}

        wait(bus.publish(RolePermissionChanged(role_id=3)))

        assert listener.loader.load_permissions(7, 3) == {"1:customers:SELECT"}
        audit.log_invalidation.assert_called_once_with("RolePermissionChanged", {"role_id": 3, "users": 1})

    def test_policy_change_evicts_policy(self, listener, bus, store):
        from core.domain.policy import QueryPolicy
        from core.services.events import QueryPolicyChanged
        listener.register(bus)
        listener.loader.load_permissions(7, 3)
        store.policies[3] = QueryPolicy(role_id=3, max_limit=5)

        wait(bus.publish(QueryPolicyChanged(role_id=3)))

        assert listener.loader.load_policy(7, 3).max_limit == 5

    def test_data_source_deleted(self, listener, cache):
        from core.services.events import DataSourceDeleted
        listener.loader.load_permissions(7, 3)

        listener.on_data_source_deleted(DataSourceDeleted(data_source_id=1))

        assert not cache.exists("user:perm:mark:7")
        listener.collector.evict_data_source.assert_called_once_with(1)
        listener.index.delete_data_source.assert_called_once_with(1)
        listener.registry.reset.assert_called_once_with(1)

    def test_data_source_synced_reindexes(self, listener):
        from core.services.events import DataSourceSynced
        listener.on_data_source_synced(DataSourceSynced(data_source_id=1))

        listener.collector.evict_data_source.assert_called_once_with(1)
        listener.indexer.assert_called_once_with(1)

    def test_eviction_is_idempotent(self, listener):
        from core.services.events import RolePermissionChanged
        event = RolePermissionChanged(role_id=3)
        listener.on_role_changed(event)
        listener.on_role_changed(event)


@pytest.mark.unit
class TestBoundedWorkerPool:
    """Capacidad = workers + cola; el excedente se rechaza"""

    def test_rejects_when_full(self):
        from core.services.worker_pool import BoundedWorkerPool
        from utils.metrics import get_metrics
        pool = BoundedWorkerPool(max_workers=1, queue_capacity=1)
        release = threading.Event()

        first = pool.submit(release.wait, 5)
        second = pool.submit(release.wait, 5)
        with pytest.raises(PoolSaturatedError):
            pool.submit(release.wait, 5)

        assert pool.in_flight == 2
        assert get_metrics().get_metrics()["counters"]["pool_rejections"] == 1

        release.set()
        wait([first, second])
        pool.shutdown()

    def test_slot_released_after_completion(self):
        from core.services.worker_pool import BoundedWorkerPool
        pool = BoundedWorkerPool(max_workers=1, queue_capacity=0)

        assert pool.submit(lambda: 1).result(timeout=5) == 1
        # El callback de liberación puede correr justo después de result()
        for _ in range(50):
            if pool.in_flight == 0:
                break
            time.sleep(0.01)

        assert pool.submit(lambda: 2).result(timeout=5) == 2
        pool.shutdown()

    def test_failed_task_releases_slot(self):
        from core.services.worker_pool import BoundedWorkerPool
        pool = BoundedWorkerPool(max_workers=1, queue_capacity=0)

        def fail():
            raise ValueError("x")

        with pytest.raises(ValueError):
            pool.submit(fail).result(timeout=5)
        for _ in range(50):
            if pool.in_flight == 0:
                break
            time.sleep(0.01)

        assert pool.in_flight == 0
        pool.shutdown()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
