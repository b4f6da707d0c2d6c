# Fábrica - Crea el Pipeline y los servicios con todas las dependencias inyectadas

from typing import Optional

from config.settings import settings
from adapters.outbound.cache import get_redis_client
from adapters.outbound.database import DataSourceRegistry
from adapters.outbound.llm.llm_factory import get_llm
from adapters.outbound.store import PostgresPermissionStore
from adapters.outbound.vector import QdrantTableIndex, get_embedder

from core.services.pipeline import Pipeline
from core.services.response import SummaryGenerator
from core.services.session_manager import SessionManager
from core.services.events import CacheEvictionListener, EventBus
from core.services.schema import SchemaCollector, SchemaIndexer, build_schema_linker
from core.services.security import PermissionLoader, SQLValidator, get_audit_logger
from core.services.sql import PromptBuilder, QueryExecutor, SQLGenerator


class DependencyContainer:
    """Contenedor de dependencias. Crea e inyecta todas las dependencias concretas."""

    def __init__(self, store_dsn: Optional[str] = None):
        self.store_dsn = store_dsn or settings.store.db_uri
        self._llm = None
        self._cache = None
        self._store = None
        self._registry = None
        self._index = None
        self._loader = None
        self._collector = None
        self._sessions = None

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    @property
    def cache(self):
        if self._cache is None:
            self._cache = get_redis_client()
        return self._cache

    @property
    def store(self):
        if self._store is None:
            self._store = PostgresPermissionStore(self.store_dsn)
        return self._store

    @property
    def registry(self):
        if self._registry is None:
            self._registry = DataSourceRegistry()
        return self._registry

    @property
    def index(self):
        # Sin URL de Qdrant el linker trabaja solo con palabras clave
        if self._index is None and settings.vector_db.url:
            self._index = QdrantTableIndex(get_embedder())
        return self._index

    @property
    def loader(self):
        if self._loader is None:
            self._loader = PermissionLoader(self.cache, self.store)
        return self._loader

    @property
    def collector(self):
        if self._collector is None:
            self._collector = SchemaCollector(self.cache, self.registry)
        return self._collector

    @property
    def sessions(self):
        if self._sessions is None:
            self._sessions = SessionManager(self.cache)
        return self._sessions

    def indexer(self) -> Optional[SchemaIndexer]:
        if self.index is None:
            return None
        return SchemaIndexer(self.store, self.registry, self.index)

    def event_bus(self) -> EventBus:
        """Bus con el listener de invalidación ya suscripto"""
        bus = EventBus()
        indexer = self.indexer()
        CacheEvictionListener(
            loader=self.loader,
            store=self.store,
            collector=self.collector,
            index=self.index,
            registry=self.registry,
            indexer=indexer.reindex if indexer else None,
            audit_logger=get_audit_logger(),
        ).register(bus)
        return bus


def create_pipeline(container: Optional[DependencyContainer] = None) -> Pipeline:
    """Factory function que crea el Pipeline con todas las dependencias."""
    container = container or DependencyContainer()
    audit = get_audit_logger()

    return Pipeline(
        loader=container.loader,
        store=container.store,
        collector=container.collector,
        linker=build_schema_linker(container.index),
        prompt_builder=PromptBuilder(),
        generator=SQLGenerator(container.llm),
        validator=SQLValidator(container.loader, audit),
        executor=QueryExecutor(container.registry),
        summarizer=SummaryGenerator(container.llm),
        session_manager=container.sessions,
        audit_logger=audit,
    )
