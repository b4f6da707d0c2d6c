# Almacén de permisos sobre la base de gestión (PostgreSQL)

import logging
from contextlib import contextmanager
from typing import List, Optional, Set, Tuple
from urllib.parse import quote_plus

import psycopg2
from psycopg2 import pool

from config.settings import settings
from core.domain.errors import DatabaseError
from core.domain.policy import QueryPolicy
from core.domain.query import DataSourceConfig
from core.ports.permission_store_port import PermissionStorePort

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"postgresql": 5432, "postgres": 5432, "mysql": 3306, "mariadb": 3306, "sqlserver": 1433, "mssql": 1433}


def build_connection_string(db_type: str, host: str, port, user: str, password: str, database: str) -> str:
    """Arma el connection string que espera cada adaptador"""
    kind = db_type.lower()
    if kind == "sqlite":
        return f"sqlite:///{database}"

    port = port or _DEFAULT_PORTS.get(kind, 0)
    credentials = f"{quote_plus(user or '')}:{quote_plus(password or '')}"
    if kind in ("postgresql", "postgres"):
        return f"postgresql://{credentials}@{host}:{port}/{database}"
    if kind in ("mysql", "mariadb"):
        return f"mysql+pymysql://{credentials}@{host}:{port}/{database}"
    if kind in ("sqlserver", "mssql"):
        return f"mssql+pyodbc://{credentials}@{host}:{port}/{database}?driver=ODBC+Driver+17+for+SQL+Server"
    raise ValueError(f"Tipo de base de datos no soportado: '{db_type}'")


class PostgresPermissionStore(PermissionStorePort):
    """
    Lee usuarios, roles, permisos de tabla, políticas y datasources.
    Todas las tablas usan borrado lógico (is_deleted = 0 es vigente).
    """

    def __init__(self, dsn: str = None):
        self.dsn = dsn or settings.store.db_uri
        self._pool = None

    def _get_pool(self):
        if self._pool is None:
            self._pool = pool.ThreadedConnectionPool(
                settings.store.min_connections, settings.store.max_connections, self.dsn
            )
            logger.info("Pool de la base de gestión creado")
        return self._pool

    @contextmanager
    def _cursor(self):
        conn = self._get_pool().getconn()
        try:
            with conn.cursor() as cursor:
                yield cursor
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Error en base de gestión: {e}")
            raise DatabaseError(f"Error leyendo la base de gestión: {e.pgerror or e}")
        finally:
            self._get_pool().putconn(conn)

    def _fetchall(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._cursor() as cursor:
            cursor.execute(query, params)
            return cursor.fetchall()

    def get_table_permissions(self, role_id: int) -> Set[str]:
        rows = self._fetchall(
            """
            SELECT data_source_id, table_name, permission FROM table_permission
            WHERE role_id = %s AND is_deleted = 0
            """,
            (role_id,),
        )
        return {f"{ds}:{table}:{perm}" for ds, table, perm in rows}

    def get_policy(self, role_id: int) -> Optional[QueryPolicy]:
        rows = self._fetchall(
            """
            SELECT role_id, max_limit, allow_join, allow_subquery, allow_aggregation
            FROM query_policy WHERE role_id = %s AND is_deleted = 0
            ORDER BY id DESC LIMIT 1
            """,
            (role_id,),
        )
        if not rows:
            return None
        role, max_limit, join, subquery, aggregation = rows[0]
        return QueryPolicy(
            role_id=role,
            max_limit=max_limit or 1000,
            allow_join=join,
            allow_subquery=subquery,
            allow_aggregation=aggregation,
        )

    def get_user_role_id(self, user_id: int) -> Optional[int]:
        rows = self._fetchall(
            'SELECT role_id FROM "user" WHERE id = %s AND is_deleted = 0', (user_id,)
        )
        return rows[0][0] if rows else None

    def get_user_ids_by_role(self, role_id: int) -> List[int]:
        rows = self._fetchall(
            'SELECT id FROM "user" WHERE role_id = %s AND is_deleted = 0', (role_id,)
        )
        return [r[0] for r in rows]

    def get_user_ids_by_data_source(self, data_source_id: int) -> List[int]:
        rows = self._fetchall(
            """
            SELECT DISTINCT u.id FROM "user" u
            JOIN table_permission p ON p.role_id = u.role_id
            WHERE p.data_source_id = %s AND u.is_deleted = 0
            """,
            (data_source_id,),
        )
        return [r[0] for r in rows]

    def get_active_users(self) -> List[Tuple[int, int]]:
        rows = self._fetchall(
            """
            SELECT id, role_id FROM "user"
            WHERE status = 1 AND is_deleted = 0 AND role_id IS NOT NULL
            ORDER BY id
            """
        )
        return [(r[0], r[1]) for r in rows]

    def _to_config(self, row) -> DataSourceConfig:
        ds_id, name, db_type, host, port, user, password, database = row
        return DataSourceConfig(
            id=ds_id,
            name=name,
            db_type=db_type,
            connection_string=build_connection_string(db_type, host, port, user, password, database),
        )

    _DATA_SOURCE_COLUMNS = "id, conn_name, db_type, host, port, username, password, database_name"

    def get_data_source(self, data_source_id: int) -> Optional[DataSourceConfig]:
        rows = self._fetchall(
            f"SELECT {self._DATA_SOURCE_COLUMNS} FROM data_source WHERE id = %s AND is_deleted = 0",
            (data_source_id,),
        )
        return self._to_config(rows[0]) if rows else None

    def list_data_sources(self) -> List[DataSourceConfig]:
        rows = self._fetchall(
            f"SELECT {self._DATA_SOURCE_COLUMNS} FROM data_source WHERE is_deleted = 0 ORDER BY id"
        )
        return [self._to_config(r) for r in rows]

    def close(self):
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
