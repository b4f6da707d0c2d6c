# Indexador de schema: escanea un datasource y carga sus tablas al índice vectorial

import time
import logging

from core.domain.errors import DataSourceNotFoundError
from core.ports.permission_store_port import PermissionStorePort
from core.ports.vector_port import VectorIndexPort
from utils.metrics import timed

logger = logging.getLogger(__name__)


# Reconstruye los puntos del índice vectorial de un datasource
class SchemaIndexer:
    def __init__(self, store: PermissionStorePort, registry, index: VectorIndexPort):
        self.store = store
        self.registry = registry
        self.index = index

    @timed("reindex")
    def reindex(self, data_source_id: int) -> int:
        """Borra y vuelve a cargar todas las tablas del datasource. Retorna cuántas."""
        data_source = self.store.get_data_source(data_source_id)
        if data_source is None:
            raise DataSourceNotFoundError(data_source_id)

        start = time.time()
        adapter = self.registry.get(data_source)
        tables = adapter.get_tables(data_source.schema_name)
        if not tables:
            logger.warning(f"Datasource {data_source.name}: sin tablas para indexar")
            self.index.delete_data_source(data_source_id)
            return 0

        metadata = adapter.extract_metadata(tables, data_source.schema_name)
        self.index.delete_data_source(data_source_id)
        count = self.index.upsert_tables(data_source_id, metadata)
        logger.info(
            f"Indexado datasource {data_source.name}: {count} tablas ({time.time() - start:.1f}s)"
        )
        return count

    def reindex_all(self) -> int:
        total = 0
        for data_source in self.store.list_data_sources():
            try:
                total += self.reindex(data_source.id)
            except Exception as e:
                logger.error(f"Error indexando datasource {data_source.id}: {e}")
        return total
