# Ejecutor de queries SQL contra la base destino de cada datasource

import time
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from core.domain.errors import ExecutionError
from core.domain.query import DataSourceConfig
from utils.metrics import get_metrics

logger = logging.getLogger(__name__)


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return value


class QueryExecutor:
    """Ejecuta SQL ya validada. Los errores de la base se lanzan como ExecutionError."""

    def __init__(self, registry):
        self.registry = registry

    def execute(
        self, data_source: DataSourceConfig, sql: str
    ) -> Tuple[List[str], List[Dict[str, Any]]]:
        adapter = self.registry.get(data_source)
        start = time.time()
        result = adapter.execute(sql)
        get_metrics().record_db_query((time.time() - start) * 1000)

        if "error" in result:
            logger.warning(f"Ejecución falló en datasource {data_source.id}: {result['error'][:200]}")
            raise ExecutionError(result["error"], query=sql)

        columns = list(result.get("columns", []))
        rows = [
            {col: _json_value(val) for col, val in zip(columns, row)}
            for row in result.get("data", [])
        ]
        logger.info(f"Ejecutada en datasource {data_source.id}: {len(rows)} filas")
        return columns, rows
