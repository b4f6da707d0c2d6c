# Base común para adaptadores de base de datos destino

import logging
import threading
from abc import abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from config.settings import settings
from core.domain.errors import DatabaseError
from core.domain.schema import ColumnMetadata, TableMetadata
from core.ports.database_port import DatabasePort

logger = logging.getLogger(__name__)


class DatabaseAdapter(DatabasePort):
    """
    Adaptador base. Cada subclase aporta la conexión y las queries de metadata.

    execute() queda acotado por un semáforo de pool_size conexiones simultáneas
    y nunca lanza: los errores vuelven como {"error": "..."}.
    """

    dialect = "generic"

    def __init__(self, connection_string: str, pool_size: int = None, timeout: int = None):
        self.connection_string = connection_string
        self.pool_size = pool_size or settings.execution.pool_size
        self.timeout = timeout or settings.execution.statement_timeout_seconds
        self._slots = threading.BoundedSemaphore(self.pool_size)

    @abstractmethod
    def _get_connection(self):
        """Abre (o toma del pool) una conexión del driver"""
        pass

    def _release_connection(self, conn, failed: bool = False):
        conn.close()

    def execute(self, query: str, params: Optional[Tuple] = None) -> Dict[str, Any]:
        with self._slots:
            conn = None
            failed = False
            try:
                conn = self._get_connection()
                cursor = conn.cursor()
                if params:
                    cursor.execute(query, params)
                else:
                    cursor.execute(query)
                if cursor.description:
                    columns = [desc[0] for desc in cursor.description]
                    data = [tuple(row) for row in cursor.fetchall()]
                    return {"columns": columns, "data": data, "row_count": len(data)}
                return {"columns": [], "data": [], "row_count": 0}
            except Exception as e:
                failed = True
                logger.error(f"{self.dialect} error: {e}")
                return {"error": str(e)}
            finally:
                if conn is not None:
                    try:
                        self._release_connection(conn, failed)
                    except Exception as e:
                        logger.warning(f"{self.dialect}: error liberando conexión: {e}")

    @abstractmethod
    def get_tables(self, schema: Optional[str] = None) -> List[str]:
        pass

    @abstractmethod
    def get_table_comment(self, schema: Optional[str], table: str) -> str:
        pass

    @abstractmethod
    def get_columns(self, schema: Optional[str], table: str) -> List[Dict]:
        """Columnas con name, type, comment, primary_key, indexed"""
        pass

    def extract_metadata(
        self, tables: List[str], schema: Optional[str] = None
    ) -> List[TableMetadata]:
        # Los nombres permitidos llegan en minúsculas; se resuelven al nombre real
        actual = {name.lower(): name for name in self.get_tables(schema)}
        result = []
        for requested in tables:
            name = actual.get(requested.lower())
            if name is None:
                logger.debug(f"{self.dialect}: tabla '{requested}' no existe, se omite")
                continue
            columns = tuple(
                ColumnMetadata(
                    name=col["name"],
                    data_type=col.get("type") or "",
                    comment=col.get("comment") or "",
                    primary_key=bool(col.get("primary_key")),
                    indexed=bool(col.get("indexed")),
                )
                for col in self.get_columns(schema, name)
            )
            result.append(
                TableMetadata(
                    name=name,
                    comment=self.get_table_comment(schema, name) or "",
                    columns=columns,
                )
            )
        logger.info(f"{self.dialect}: metadata de {len(result)}/{len(tables)} tablas")
        return result

    def _rows(self, query: str, params: Optional[Tuple] = None) -> List[Tuple]:
        result = self.execute(query, params)
        if "error" in result:
            raise DatabaseError(result["error"], query=query)
        return result.get("data", [])

    def test_connection(self) -> bool:
        return "error" not in self.execute("SELECT 1")
