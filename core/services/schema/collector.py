# Colector de metadata: cache-aside de la estructura de tablas permitidas

import json
import logging
from typing import List

from config.settings import settings
from core.domain.errors import DatabaseError
from core.domain.query import DataSourceConfig
from core.domain.schema import TableMetadata, format_schema
from core.ports.cache_port import CachePort

logger = logging.getLogger(__name__)


def schema_key(data_source_id: int, perm_hash: str) -> str:
    return f"schema:{data_source_id}:{perm_hash}"


def _string_hash31(text: str) -> int:
    # Hash polinomial base 31 de 32 bits sobre unidades UTF-16
    h = 0
    data = text.encode("utf-16-be")
    for i in range(0, len(data), 2):
        h = (31 * h + ((data[i] << 8) | data[i + 1])) & 0xFFFFFFFF
    return h


def permission_hash(tables: List[str]) -> str:
    """
    Hash hex sin signo del conjunto de tablas (ordenado), mismo esquema base 31
    que se usa en cada nombre. Otros servicios leen estas claves: no cambiar.
    Dos usuarios con las mismas tablas comparten la entrada de cache.
    """
    h = 1
    for name in sorted(tables):
        h = (31 * h + _string_hash31(name)) & 0xFFFFFFFF
    return format(h, "x")


class SchemaCollector:
    """
    Retorna la metadata completa de las tablas permitidas de un datasource.
    Cache por (datasource, hash de tablas) con TTL fijo.
    """

    def __init__(self, cache: CachePort, registry, ttl_seconds: int = None):
        self.cache = cache
        self.registry = registry
        self.ttl = ttl_seconds or settings.cache.schema_ttl_minutes * 60

    def get_metadata(
        self, data_source: DataSourceConfig, allowed_tables: List[str]
    ) -> List[TableMetadata]:
        if not allowed_tables:
            return []

        tables = sorted(allowed_tables)
        key = schema_key(data_source.id, permission_hash(tables))

        raw = self.cache.get(key)
        if raw:
            try:
                cached = [TableMetadata.from_dict(d) for d in json.loads(raw)]
                logger.debug(f"Schema cache HIT: {key}")
                return cached
            except (ValueError, KeyError) as e:
                logger.warning(f"Schema cache corrupto en {key}, recargando: {e}")

        logger.info(
            f"Schema cache MISS: datasource {data_source.name} [{data_source.db_type}], "
            f"{len(tables)} tablas"
        )
        adapter = self.registry.get(data_source)
        try:
            metadata = adapter.extract_metadata(tables, data_source.schema_name)
        except DatabaseError:
            raise
        except Exception as e:
            logger.error(f"Error extrayendo metadata de {data_source.name}: {e}")
            raise DatabaseError(f"No se pudo leer la estructura de la base: {e}")

        self.cache.set(
            key,
            json.dumps([t.to_dict() for t in metadata], ensure_ascii=False),
            self.ttl,
        )
        return metadata

    def format(self, tables: List[TableMetadata]) -> str:
        return format_schema(tables)

    def evict_data_source(self, data_source_id: int) -> int:
        deleted = self.cache.delete_pattern(f"schema:{data_source_id}:*")
        logger.info(f"Schema cache: {deleted} entradas eliminadas de datasource {data_source_id}")
        return deleted
