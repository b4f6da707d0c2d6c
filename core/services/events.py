# Eventos de invalidación: se publican después del commit y se consumen en background

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Type

from config.settings import settings
from utils.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    occurred_at: str = field(default_factory=lambda: datetime.now().isoformat(), compare=False)

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class RolePermissionChanged(Event):
    role_id: int = 0


@dataclass(frozen=True)
class QueryPolicyChanged(Event):
    role_id: int = 0


@dataclass(frozen=True)
class DataSourceDeleted(Event):
    data_source_id: int = 0


@dataclass(frozen=True)
class DataSourceSynced(Event):
    """La estructura del datasource cambió: reindexar y limpiar schema"""

    data_source_id: int = 0


Handler = Callable[[Event], None]


class EventBus:
    """
    Bus en proceso con entrega asíncrona.
    publish() nunca bloquea ni falla por un handler: cada error se loguea.
    Los handlers deben ser idempotentes (entrega al menos una vez).
    """

    def __init__(self, max_workers: int = None):
        self._handlers: Dict[Type[Event], List[Handler]] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.workers.event_workers,
            thread_name_prefix="events",
        )

    def subscribe(self, event_type: Type[Event], handler: Handler):
        self._handlers.setdefault(event_type, []).append(handler)

    def publish(self, event: Event) -> List[Future]:
        handlers = self._handlers.get(type(event), [])
        if not handlers:
            logger.debug(f"Evento sin suscriptores: {event.name}")
            return []

        get_metrics().record_event(event.name)
        logger.info(f"Evento publicado: {event}")
        return [self._executor.submit(self._dispatch, handler, event) for handler in handlers]

    def _dispatch(self, handler: Handler, event: Event):
        try:
            handler(event)
        except Exception as e:
            logger.error(f"Handler {getattr(handler, '__name__', handler)} falló con {event.name}: {e}")

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)


class CacheEvictionListener:
    """Traduce eventos de negocio a invalidaciones de cache e índice"""

    def __init__(
        self,
        loader,  # PermissionLoader
        store,  # PermissionStorePort
        collector,  # SchemaCollector
        index=None,  # VectorIndexPort
        registry=None,  # DataSourceRegistry
        indexer: Optional[Callable[[int], int]] = None,
        audit_logger=None,
    ):
        self.loader = loader
        self.store = store
        self.collector = collector
        self.index = index
        self.registry = registry
        self.indexer = indexer
        self.audit = audit_logger

    def register(self, bus: EventBus):
        bus.subscribe(RolePermissionChanged, self.on_role_changed)
        bus.subscribe(QueryPolicyChanged, self.on_role_changed)
        bus.subscribe(DataSourceDeleted, self.on_data_source_deleted)
        bus.subscribe(DataSourceSynced, self.on_data_source_synced)

    def _evict_users(self, user_ids) -> int:
        count = 0
        for user_id in user_ids:
            self.loader.evict(user_id)
            count += 1
        return count

    def on_role_changed(self, event):
        evicted = self._evict_users(self.store.get_user_ids_by_role(event.role_id))
        logger.info(f"{event.name}: rol {event.role_id}, {evicted} usuarios invalidados")
        if self.audit:
            self.audit.log_invalidation(event.name, {"role_id": event.role_id, "users": evicted})

    def on_data_source_deleted(self, event: DataSourceDeleted):
        ds = event.data_source_id
        evicted = self._evict_users(self.store.get_user_ids_by_data_source(ds))
        schemas = self.collector.evict_data_source(ds)
        if self.index is not None:
            self.index.delete_data_source(ds)
        if self.registry is not None:
            self.registry.reset(ds)
        logger.info(f"DataSourceDeleted {ds}: {evicted} usuarios, {schemas} schemas invalidados")
        if self.audit:
            self.audit.log_invalidation(
                event.name, {"data_source_id": ds, "users": evicted, "schemas": schemas}
            )

    def on_data_source_synced(self, event: DataSourceSynced):
        ds = event.data_source_id
        schemas = self.collector.evict_data_source(ds)
        indexed = self.indexer(ds) if self.indexer else 0
        logger.info(f"DataSourceSynced {ds}: {schemas} schemas invalidados, {indexed} tablas indexadas")
        if self.audit:
            self.audit.log_invalidation(
                event.name, {"data_source_id": ds, "schemas": schemas, "indexed": indexed}
            )


_event_bus = None


def get_event_bus() -> EventBus:
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
