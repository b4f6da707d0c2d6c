# Servicios de schema: selección, cache e indexado de metadata

from core.services.schema.linker import (
    SchemaLinker,
    LinkStrategy,
    VectorLinkStrategy,
    KeywordLinkStrategy,
    build_schema_linker,
)
from core.services.schema.collector import SchemaCollector, permission_hash
from core.services.schema.indexer import SchemaIndexer

__all__ = [
    "SchemaLinker",
    "LinkStrategy",
    "VectorLinkStrategy",
    "KeywordLinkStrategy",
    "build_schema_linker",
    "SchemaCollector",
    "permission_hash",
    "SchemaIndexer",
]
