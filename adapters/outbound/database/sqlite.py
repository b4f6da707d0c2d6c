# Adaptador para SQLite

import logging
import re
import sqlite3
from typing import Dict, List, Optional

from adapters.outbound.database.base import DatabaseAdapter

logger = logging.getLogger(__name__)


class SQLiteAdapter(DatabaseAdapter):
    """Adaptador para SQLite. No soporta comentarios de tablas ni columnas."""

    dialect = "sqlite"

    def __init__(self, connection_string: str, pool_size: int = None, timeout: int = None):
        super().__init__(connection_string, pool_size, timeout)
        match = re.match(r"sqlite:///(.+)", connection_string)
        # Sin prefijo se asume que es directamente el path
        self.db_path = match.group(1) if match else connection_string

    def _get_connection(self):
        return sqlite3.connect(self.db_path, timeout=self.timeout, check_same_thread=False)

    def get_tables(self, schema: Optional[str] = None) -> List[str]:
        rows = self._rows(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
        )
        return [r[0] for r in rows]

    def get_table_comment(self, schema: Optional[str], table: str) -> str:
        return ""

    def get_columns(self, schema: Optional[str], table: str) -> List[Dict]:
        indexed = set()
        for index in self._rows(f"PRAGMA index_list('{table}')"):
            for info in self._rows(f"PRAGMA index_info('{index[1]}')"):
                indexed.add(info[2])

        # PRAGMA table_info: cid, name, type, notnull, dflt_value, pk
        return [
            {
                "name": r[1],
                "type": r[2],
                "comment": "",
                "primary_key": r[5] > 0,
                "indexed": r[5] > 0 or r[1] in indexed,
            }
            for r in self._rows(f"PRAGMA table_info('{table}')")
        ]
