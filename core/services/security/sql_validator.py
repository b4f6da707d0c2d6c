# Validador de SQL: análisis del AST con sqlglot, independiente del generador
#
# Verifica que cada tabla referenciada tenga permiso SELECT y que la forma de
# la consulta respete la política del rol (JOIN, subconsultas, agregación, límite).

import logging
from typing import List, Optional

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from core.domain.errors import (
    SecurityError,
    SQLSyntaxError,
    UnauthorizedTableAccess,
    StatementNotAllowed,
    FunctionNotAllowed,
    JoinNotAllowed,
    SubqueryNotAllowed,
    AggregationNotAllowed,
    MissingRowLimit,
    RowLimitExceeded,
)
from core.domain.policy import QueryPolicy
from core.domain.query import is_explanation
from core.services.security.audit import get_audit_logger
from core.services.security.permission_loader import PermissionLoader, permission_string
from utils.metrics import get_metrics

logger = logging.getLogger(__name__)

# Nombre de dialecto interno → dialecto de sqlglot
SQLGLOT_DIALECTS = {
    "postgresql": "postgres",
    "postgres": "postgres",
    "mysql": "mysql",
    "mariadb": "mysql",
    "sqlserver": "tsql",
    "mssql": "tsql",
    "sqlite": "sqlite",
}

AGGREGATE_FUNCTIONS = (exp.Count, exp.Sum, exp.Avg, exp.Max, exp.Min)
SET_OPERATIONS = (exp.Union, exp.Except, exp.Intersect)
WRITE_STATEMENTS = (
    exp.Insert,
    exp.Update,
    exp.Delete,
    exp.Merge,
    exp.Create,
    exp.Drop,
    exp.Command,
)

# Funciones con acceso a archivos, red, configuración o procesos del servidor
DANGEROUS_FUNCTIONS = {
    "pg_read_file",
    "pg_read_binary_file",
    "pg_write_file",
    "pg_ls_dir",
    "pg_stat_file",
    "lo_import",
    "lo_export",
    "dblink",
    "dblink_exec",
    "pg_sleep",
    "pg_terminate_backend",
    "pg_cancel_backend",
    "set_config",
    "current_setting",
    "load_file",
    "sleep",
    "benchmark",
    "openrowset",
    "opendatasource",
    "openquery",
    "xp_cmdshell",
    "load_extension",
}


def sqlglot_dialect(dialect: Optional[str]) -> Optional[str]:
    if not dialect:
        return None
    return SQLGLOT_DIALECTS.get(dialect.lower())


def parse_single(sql: str, dialect: Optional[str] = None) -> exp.Expression:
    """Parsea exactamente una sentencia o lanza SQLSyntaxError"""
    try:
        statements = sqlglot.parse(sql, read=sqlglot_dialect(dialect))
    except SqlglotError as e:
        raise SQLSyntaxError(f"SQL inválido: {str(e).splitlines()[0]}", sql)

    statements = [s for s in statements if s is not None]
    if not statements:
        raise SQLSyntaxError("SQL vacío", sql)
    if len(statements) > 1:
        raise SQLSyntaxError("Solo se permite una sentencia por consulta", sql)

    root = statements[0]
    # (SELECT ...) sin alias equivale a la consulta interna
    while isinstance(root, exp.Subquery) and not root.alias:
        root = root.this
    return root


def function_name(node: exp.Func) -> str:
    if isinstance(node, exp.Anonymous):
        return node.name.lower()
    return node.sql_name().lower()


def referenced_tables(root: exp.Expression) -> List[str]:
    """
    Tablas físicas referenciadas: sin calificador, en minúsculas, sin CTEs.
    Una función en FROM no tiene permiso asignable y se rechaza.
    """
    cte_names = {cte.alias_or_name.lower() for cte in root.find_all(exp.CTE)}
    tables = []
    for table in root.find_all(exp.Table):
        source = table.this
        if source is not None and not isinstance(source, exp.Identifier):
            if isinstance(source, exp.Func):
                raise FunctionNotAllowed(function_name(source))
            raise FunctionNotAllowed(source.sql())
        name = table.name
        if not name:
            continue
        name = name.lower()
        if name in cte_names and not table.db:
            continue
        if name not in tables:
            tables.append(name)
    return tables


def _top_level_selects(node: exp.Expression) -> List[exp.Select]:
    if isinstance(node, exp.Subquery) and not node.alias:
        return _top_level_selects(node.this)
    if isinstance(node, exp.Select):
        return [node]
    if isinstance(node, SET_OPERATIONS):
        return _top_level_selects(node.this) + _top_level_selects(node.expression)
    return []


def has_subquery(root: exp.Expression) -> bool:
    """True si existe un SELECT anidado (tabla derivada, IN, EXISTS, escalar o CTE)"""
    top_level = {id(s) for s in _top_level_selects(root)}
    return any(id(s) not in top_level for s in root.find_all(exp.Select))


def row_limit(root: exp.Expression) -> Optional[exp.Expression]:
    """Nodo LIMIT / TOP / FETCH de la consulta externa"""
    node = root.args.get("limit")
    if node is None and isinstance(root, SET_OPERATIONS):
        # Algunas versiones de sqlglot dejan el LIMIT final en la última rama
        last = root.expression
        if isinstance(last, exp.Select):
            node = last.args.get("limit")
    return node


def _limit_value(node: exp.Expression) -> Optional[int]:
    value = node.args.get("expression")
    if value is None:
        value = node.args.get("count")
    if value is None:
        value = node.args.get("this")
    while isinstance(value, exp.Paren):
        value = value.this
    if isinstance(value, exp.Literal) and value.is_int:
        return int(value.this)
    return None


class SQLValidator:
    """
    Autoriza SQL generada antes de ejecutarla.

    Orden de chequeos: sintaxis → tipo de sentencia → permisos de tabla →
    política del rol. El primer fallo lanza la excepción correspondiente.
    """

    def __init__(self, loader: PermissionLoader, audit_logger=None):
        self.loader = loader
        self.audit_logger = audit_logger or get_audit_logger()

    def validate(
        self,
        sql: str,
        user_id,
        data_source_id,
        role_id=None,
        dialect: str = "postgresql",
    ) -> None:
        if is_explanation(sql):
            return

        try:
            self._validate(sql, user_id, data_source_id, role_id, dialect)
        except SecurityError as e:
            logger.warning(f"SQL rechazada para usuario {user_id}: {e.message}")
            self.audit_logger.log_security_event(
                e.code.lower(),
                f"{e.message} | {sql[:300]}",
                user_id=str(user_id),
            )
            get_metrics().record_security_block(e.details.get("rule", e.code.lower()))
            raise

    def _validate(self, sql, user_id, data_source_id, role_id, dialect) -> None:
        root = parse_single(sql, dialect)
        self._check_statement(root)

        if role_id is None:
            role_id = self.loader.resolve_role_id(user_id)

        granted = {p.lower() for p in self.loader.load_permissions(user_id, role_id)}
        for table in referenced_tables(root):
            if permission_string(data_source_id, table).lower() not in granted:
                raise UnauthorizedTableAccess(table, data_source_id)

        policy = self.loader.load_policy(user_id, role_id)
        if policy is None:
            return

        self._check_row_limit(root, policy)
        self._check_shape(root, policy)

    def _check_statement(self, root: exp.Expression) -> None:
        if not isinstance(root, (exp.Select,) + SET_OPERATIONS):
            raise StatementNotAllowed(root.key.upper())
        write = root.find(*WRITE_STATEMENTS)
        if write is not None:
            raise StatementNotAllowed(write.key.upper())
        if root.find(exp.Into) is not None:
            raise StatementNotAllowed("SELECT INTO")
        for func in root.find_all(exp.Func):
            name = function_name(func)
            if name in DANGEROUS_FUNCTIONS:
                raise FunctionNotAllowed(name)

    def _check_row_limit(self, root: exp.Expression, policy: QueryPolicy) -> None:
        node = row_limit(root)
        if node is None:
            raise MissingRowLimit(policy.max_limit)
        value = _limit_value(node)
        if value is None:
            # Límite no literal (parámetro, expresión): no verificable
            raise MissingRowLimit(policy.max_limit)
        if value > policy.max_limit:
            raise RowLimitExceeded(value, policy.max_limit)

    def _check_shape(self, root: exp.Expression, policy: QueryPolicy) -> None:
        if not policy.allow_subquery and has_subquery(root):
            raise SubqueryNotAllowed()

        if not policy.allow_aggregation:
            agg = root.find(*AGGREGATE_FUNCTIONS)
            if agg is not None:
                raise AggregationNotAllowed(agg.key.upper())

        if not policy.allow_join and root.find(exp.Join) is not None:
            raise JoinNotAllowed()
