# Excepciones personalizadas para RAG-SQL Guard


class RAGSQLError(Exception):
    """Excepción base para RAG-SQL Guard"""

    def __init__(self, message: str, code: str, details: dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(RAGSQLError):
    """Errores de validación de entrada"""

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"field": field} if field else {},
        )


# Errores del validador de SQL


class SecurityError(RAGSQLError):
    """Errores de seguridad: la SQL no puede ejecutarse. Nunca se reintentan."""

    def __init__(self, message: str, code: str, details: dict = None):
        super().__init__(message=message, code=code, details=details)


class SQLSyntaxError(SecurityError):
    """SQL no parseable o con más de una sentencia"""

    def __init__(self, message: str, sql: str = None):
        super().__init__(
            message=message,
            code="SQL_SYNTAX_ERROR",
            details={"sql": sql[:200] if sql else None},
        )


class UnauthorizedTableAccess(SecurityError):
    """La SQL referencia una tabla sin permiso SELECT"""

    def __init__(self, table: str, data_source_id: int = None):
        self.table = table
        super().__init__(
            message=f"Sin permiso de acceso a la tabla '{table}'",
            code="UNAUTHORIZED_TABLE",
            details={"table": table, "data_source_id": data_source_id},
        )


class PolicyViolation(SecurityError):
    """La forma de la consulta viola la política del rol"""

    rule = "policy"

    def __init__(self, message: str, details: dict = None):
        payload = {"rule": self.rule}
        payload.update(details or {})
        super().__init__(message=message, code="POLICY_VIOLATION", details=payload)


class StatementNotAllowed(PolicyViolation):
    rule = "statement"

    def __init__(self, statement: str):
        super().__init__(
            f"Solo se permiten consultas de lectura (recibido: {statement})",
            {"statement": statement},
        )


class FunctionNotAllowed(PolicyViolation):
    rule = "function"

    def __init__(self, function: str):
        super().__init__(
            f"Función de sistema o de tabla no permitida: {function}",
            {"function": function},
        )


class JoinNotAllowed(PolicyViolation):
    rule = "join"

    def __init__(self):
        super().__init__("La política del rol no permite JOIN")


class SubqueryNotAllowed(PolicyViolation):
    rule = "subquery"

    def __init__(self):
        super().__init__("La política del rol no permite subconsultas")


class AggregationNotAllowed(PolicyViolation):
    rule = "aggregation"

    def __init__(self, function: str = None):
        super().__init__(
            "La política del rol no permite funciones de agregación",
            {"function": function} if function else None,
        )


class MissingRowLimit(PolicyViolation):
    rule = "row_limit"

    def __init__(self, max_limit: int):
        super().__init__(
            f"La consulta debe incluir un límite de filas (máximo {max_limit})",
            {"max_limit": max_limit},
        )


class RowLimitExceeded(PolicyViolation):
    rule = "row_limit"

    def __init__(self, requested: int, max_limit: int):
        super().__init__(
            f"El límite de filas {requested} supera el máximo permitido {max_limit}",
            {"requested": requested, "max_limit": max_limit},
        )


# Errores de dependencias externas


class UpstreamError(RAGSQLError):
    """Fallo de un servicio externo (vector store, LLM, cache)"""

    def __init__(self, message: str, code: str, service: str = None):
        super().__init__(message=message, code=code, details={"service": service})


class UpstreamTimeout(UpstreamError):
    def __init__(self, service: str, timeout: float):
        super().__init__(
            message=f"{service} no respondió en {timeout}s",
            code="UPSTREAM_TIMEOUT",
            service=service,
        )


class UpstreamUnavailable(UpstreamError):
    def __init__(self, service: str, reason: str = ""):
        super().__init__(
            message=f"{service} no disponible: {reason}".rstrip(": "),
            code="UPSTREAM_UNAVAILABLE",
            service=service,
        )


class LLMError(RAGSQLError):
    """Errores del LLM"""

    def __init__(self, message: str, provider: str = None):
        super().__init__(
            message=message, code="LLM_ERROR", details={"provider": provider}
        )


class CacheError(RAGSQLError):
    """Errores de cache (Redis)"""

    def __init__(self, message: str, cache_type: str = None):
        super().__init__(
            message=message, code="CACHE_ERROR", details={"cache_type": cache_type}
        )


# Errores de base de datos destino


class DatabaseError(RAGSQLError):
    """Errores de base de datos"""

    def __init__(self, message: str, query: str = None, code: str = "DATABASE_ERROR"):
        super().__init__(
            message=message,
            code=code,
            details={"query": query[:100] if query else None},
        )


class ExecutionError(DatabaseError):
    """La base de datos destino rechazó la SQL (o venció el timeout)"""

    def __init__(self, message: str, query: str = None):
        super().__init__(message=message, query=query, code="EXECUTION_ERROR")


class DataSourceNotFoundError(RAGSQLError):
    def __init__(self, data_source_id):
        super().__init__(
            message=f"Datasource {data_source_id} no existe",
            code="DATASOURCE_NOT_FOUND",
            details={"data_source_id": data_source_id},
        )


# Errores de acceso y capacidad


class NoPermissionError(RAGSQLError):
    """El usuario no tiene tablas autorizadas en el datasource"""

    def __init__(self, message: str, data_source_id=None):
        super().__init__(
            message=message,
            code="NO_PERMISSION",
            details={"data_source_id": data_source_id},
        )


class UserNotFoundError(RAGSQLError):
    def __init__(self, user_id):
        super().__init__(
            message=f"Usuario {user_id} no existe",
            code="USER_NOT_FOUND",
            details={"user_id": user_id},
        )


class SessionNotFoundError(RAGSQLError):
    def __init__(self, session_id: str):
        super().__init__(
            message="Sesión no existe o no pertenece al usuario",
            code="SESSION_NOT_FOUND",
            details={"session_id": session_id},
        )


class PoolSaturatedError(RAGSQLError):
    """El pool de workers y su cola están llenos"""

    def __init__(self, capacity: int):
        super().__init__(
            message="Servidor saturado, intenta de nuevo en unos segundos",
            code="POOL_SATURATED",
            details={"capacity": capacity},
        )
