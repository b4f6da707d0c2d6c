# Índice vectorial de tablas en Qdrant, particionado por datasource

import uuid
import hashlib
import logging
import threading
from typing import List, Optional

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from config.settings import settings
from core.domain.schema import TableMetadata
from core.ports.vector_port import EmbeddingPort, VectorIndexPort

logger = logging.getLogger(__name__)


def table_point_id(data_source_id: int, table_name: str) -> str:
    """
    Id determinista (UUID v3 sin namespace sobre "ds:tabla"): re-indexar la
    misma tabla sobrescribe su punto. Compatible con índices ya poblados.
    """
    digest = hashlib.md5(f"{data_source_id}:{table_name}".encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest, version=3))


def _data_source_filter(data_source_id: int) -> Filter:
    return Filter(
        must=[FieldCondition(key="data_source_id", match=MatchValue(value=int(data_source_id)))]
    )


class QdrantTableIndex(VectorIndexPort):
    """Implementación de VectorIndexPort usando Qdrant"""

    def __init__(
        self,
        embedder: EmbeddingPort,
        url: str = None,
        collection_name: str = None,
        client: Optional[QdrantClient] = None,
    ):
        self.embedder = embedder
        self.url = url or settings.vector_db.url
        self.collection_name = collection_name or settings.vector_db.collection_name
        self._client = client
        self._initialized = False
        self._lock = threading.Lock()

    def _get_client(self) -> QdrantClient:
        if self._client is None or not self._initialized:
            with self._lock:
                if self._client is None:
                    self._client = QdrantClient(
                        url=self.url,
                        api_key=settings.vector_db.api_key or None,
                        timeout=int(settings.vector_db.search_timeout) + 1,
                    )
                if not self._initialized:
                    self._ensure_collection()
        return self._client

    def _ensure_collection(self):
        if not self._client.collection_exists(self.collection_name):
            self._client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=settings.embedding.vector_size, distance=Distance.COSINE
                ),
            )
            self._client.create_payload_index(
                collection_name=self.collection_name,
                field_name="data_source_id",
                field_schema=PayloadSchemaType.INTEGER,
            )
            logger.info(f"Colección Qdrant '{self.collection_name}' creada")
        self._initialized = True

    def search_tables(
        self, question: str, data_source_id: int, limit: int, score_threshold: float
    ) -> List[str]:
        client = self._get_client()
        vector = self.embedder.embed(question)
        points = client.query_points(
            collection_name=self.collection_name,
            query=vector,
            query_filter=_data_source_filter(data_source_id),
            limit=limit,
            score_threshold=score_threshold,
            with_payload=True,
        ).points

        names = []
        for point in points:
            name = (point.payload or {}).get("table_name")
            if name and name not in names:
                names.append(name)
        logger.debug(f"Qdrant: {len(names)} tablas para datasource {data_source_id}")
        return names

    def upsert_tables(self, data_source_id: int, tables: List[TableMetadata]) -> int:
        if not tables:
            return 0
        client = self._get_client()
        vectors = self.embedder.embed_many([t.to_embedding_text() for t in tables])
        points = [
            PointStruct(
                id=table_point_id(data_source_id, table.name),
                vector=vector,
                payload={
                    "table_name": table.name,
                    "data_source_id": int(data_source_id),
                    "table_comment": table.comment or "",
                },
            )
            for table, vector in zip(tables, vectors)
        ]
        client.upsert(collection_name=self.collection_name, points=points)
        logger.info(f"Qdrant: {len(points)} tablas indexadas en datasource {data_source_id}")
        return len(points)

    def delete_data_source(self, data_source_id: int) -> None:
        client = self._get_client()
        client.delete(
            collection_name=self.collection_name,
            points_selector=FilterSelector(filter=_data_source_filter(data_source_id)),
        )
        logger.info(f"Qdrant: puntos del datasource {data_source_id} eliminados")

    def is_available(self) -> bool:
        try:
            self._get_client()
            return True
        except Exception as e:
            logger.warning(f"Qdrant no disponible: {e}")
            return False
