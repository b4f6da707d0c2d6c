# Puertos del núcleo - Interfaces para dependencias externas

from core.ports.database_port import DatabasePort
from core.ports.llm_port import LLMPort
from core.ports.cache_port import CachePort
from core.ports.vector_port import VectorIndexPort, EmbeddingPort
from core.ports.permission_store_port import PermissionStorePort

__all__ = [
    "DatabasePort",
    "LLMPort",
    "CachePort",
    "VectorIndexPort",
    "EmbeddingPort",
    "PermissionStorePort",
]
