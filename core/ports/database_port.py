# Puerto de Base de Datos

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Tuple

from core.domain.schema import TableMetadata


class DatabasePort(ABC):
    """Puerto para acceso a una base de datos destino"""

    @abstractmethod
    def execute(
        self, query: str, params: Optional[Tuple] = None
    ) -> Dict[str, Any]:
        """
        Ejecuta una query y retorna resultados.

        Returns:
            Dict con columns, data, row_count o {"error": str}
        """
        pass

    @abstractmethod
    def get_tables(self, schema: Optional[str] = None) -> List[str]:
        """Retorna lista de tablas de un schema"""
        pass

    @abstractmethod
    def extract_metadata(
        self, tables: List[str], schema: Optional[str] = None
    ) -> List[TableMetadata]:
        """Retorna metadata (comentarios, columnas, PK, índices) de las tablas pedidas"""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Verifica la conexión"""
        pass

    def close(self) -> None:
        """Libera el pool de conexiones"""
        pass
