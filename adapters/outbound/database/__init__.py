# Adaptadores de base de datos - Factory, registro por datasource y re-exports

import logging
import threading
from typing import Dict

from adapters.outbound.database.base import DatabaseAdapter
from adapters.outbound.database.postgresql import PostgreSQLAdapter
from adapters.outbound.database.mysql import MySQLAdapter
from adapters.outbound.database.sqlserver import SQLServerAdapter
from adapters.outbound.database.sqlite import SQLiteAdapter
from core.domain.query import DataSourceConfig

logger = logging.getLogger(__name__)

ADAPTERS = {
    "postgresql": PostgreSQLAdapter,
    "postgres": PostgreSQLAdapter,
    "mysql": MySQLAdapter,
    "mariadb": MySQLAdapter,
    "sqlserver": SQLServerAdapter,
    "mssql": SQLServerAdapter,
    "sqlite": SQLiteAdapter,
}


def get_database_adapter(db_type: str, connection_string: str, **kwargs) -> DatabaseAdapter:
    """
    Factory para crear el adaptador correcto según tipo de DB.

    Raises:
        ValueError: Si el tipo de DB no está soportado
    """
    adapter_class = ADAPTERS.get(db_type.lower())
    if not adapter_class:
        supported = ", ".join(sorted(ADAPTERS.keys()))
        raise ValueError(
            f"Tipo de base de datos no soportado: '{db_type}'. Soportados: {supported}"
        )
    return adapter_class(connection_string, **kwargs)


class DataSourceRegistry:
    """
    Un adaptador (y su pool) por datasource, creado en el primer uso.
    Solo se descarta con reset() cuando cambia la configuración.
    """

    def __init__(self, factory=get_database_adapter):
        self._factory = factory
        self._adapters: Dict[int, DatabaseAdapter] = {}
        self._lock = threading.Lock()

    def get(self, data_source: DataSourceConfig) -> DatabaseAdapter:
        adapter = self._adapters.get(data_source.id)
        if adapter is not None:
            return adapter
        with self._lock:
            adapter = self._adapters.get(data_source.id)
            if adapter is None:
                adapter = self._factory(data_source.db_type, data_source.connection_string)
                self._adapters[data_source.id] = adapter
                logger.info(
                    f"Adaptador creado para datasource {data_source.name} [{data_source.db_type}]"
                )
        return adapter

    def reset(self, data_source_id: int) -> bool:
        with self._lock:
            adapter = self._adapters.pop(data_source_id, None)
        if adapter is None:
            return False
        adapter.close()
        logger.info(f"Adaptador del datasource {data_source_id} descartado")
        return True

    def close_all(self):
        with self._lock:
            adapters = list(self._adapters.values())
            self._adapters.clear()
        for adapter in adapters:
            adapter.close()


__all__ = [
    "DatabaseAdapter",
    "PostgreSQLAdapter",
    "MySQLAdapter",
    "SQLServerAdapter",
    "SQLiteAdapter",
    "DataSourceRegistry",
    "get_database_adapter",
]
