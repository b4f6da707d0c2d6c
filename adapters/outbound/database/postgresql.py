# Adaptador para PostgreSQL

import logging
import threading
from typing import Dict, List, Optional

import psycopg2
from psycopg2 import pool

from adapters.outbound.database.base import DatabaseAdapter

logger = logging.getLogger(__name__)

_COLUMNS_SQL = """
    SELECT a.attname,
           format_type(a.atttypid, a.atttypmod),
           col_description(a.attrelid, a.attnum),
           EXISTS (SELECT 1 FROM pg_index i
                   WHERE i.indrelid = c.oid AND i.indisprimary AND a.attnum = ANY(i.indkey)),
           EXISTS (SELECT 1 FROM pg_index i
                   WHERE i.indrelid = c.oid AND a.attnum = ANY(i.indkey))
    FROM pg_attribute a
    JOIN pg_class c ON c.oid = a.attrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = %s AND c.relname = %s AND a.attnum > 0 AND NOT a.attisdropped
    ORDER BY a.attnum
"""


class PostgreSQLAdapter(DatabaseAdapter):
    """Adaptador PostgreSQL con pool de conexiones de solo lectura"""

    dialect = "postgresql"

    def __init__(self, connection_string: str, pool_size: int = None, timeout: int = None):
        super().__init__(connection_string, pool_size, timeout)
        self._pool = None
        self._pool_lock = threading.Lock()

    def _get_pool(self):
        # El pool se crea en la primera query, no al construir el adaptador
        if self._pool is None:
            with self._pool_lock:
                if self._pool is None:
                    self._pool = pool.ThreadedConnectionPool(
                        1,
                        self.pool_size,
                        self.connection_string,
                        options=f"-c statement_timeout={self.timeout * 1000}",
                    )
                    logger.info(f"Pool PostgreSQL creado ({self.pool_size} conexiones)")
        return self._pool

    def _get_connection(self):
        conn = self._get_pool().getconn()
        conn.set_session(readonly=True, autocommit=True)
        return conn

    def _release_connection(self, conn, failed: bool = False):
        self._get_pool().putconn(conn, close=failed and conn.closed != 0)

    def get_tables(self, schema: Optional[str] = None) -> List[str]:
        rows = self._rows(
            """
            SELECT table_name FROM information_schema.tables
            WHERE table_schema = %s AND table_type = 'BASE TABLE'
            """,
            (schema or "public",),
        )
        return [r[0] for r in rows]

    def get_table_comment(self, schema: Optional[str], table: str) -> str:
        rows = self._rows(
            """
            SELECT obj_description(c.oid, 'pg_class')
            FROM pg_class c JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = %s AND c.relname = %s
            """,
            (schema or "public", table),
        )
        return rows[0][0] if rows and rows[0][0] else ""

    def get_columns(self, schema: Optional[str], table: str) -> List[Dict]:
        rows = self._rows(_COLUMNS_SQL, (schema or "public", table))
        return [
            {"name": r[0], "type": r[1], "comment": r[2], "primary_key": r[3], "indexed": r[4]}
            for r in rows
        ]

    def close(self) -> None:
        with self._pool_lock:
            if self._pool is not None:
                try:
                    self._pool.closeall()
                except psycopg2.Error as e:
                    logger.warning(f"Error cerrando pool PostgreSQL: {e}")
                self._pool = None
