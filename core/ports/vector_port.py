# Puerto de índice vectorial de tablas

from abc import ABC, abstractmethod
from typing import List

from core.domain.schema import TableMetadata


class EmbeddingPort(ABC):
    """Puerto para generar embeddings de texto"""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        pass

    @abstractmethod
    def embed_many(self, texts: List[str]) -> List[List[float]]:
        pass


class VectorIndexPort(ABC):
    """Índice de tablas por similitud semántica, particionado por datasource"""

    @abstractmethod
    def search_tables(
        self, question: str, data_source_id: int, limit: int, score_threshold: float
    ) -> List[str]:
        """
        Busca tablas similares a la pregunta dentro de un datasource.

        Returns:
            Nombres de tabla ordenados por score descendente
        """
        pass

    @abstractmethod
    def upsert_tables(self, data_source_id: int, tables: List[TableMetadata]) -> int:
        """Indexa (o re-indexa) tablas. Retorna cuántas se escribieron."""
        pass

    @abstractmethod
    def delete_data_source(self, data_source_id: int) -> None:
        """Elimina todos los puntos de un datasource"""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass
