# Core Domain - Entidades de negocio

from core.domain.query import (
    Stage,
    DataSourceConfig,
    RequestContext,
    GenerationContext,
    ScoredTable,
    GeneratedSQL,
    PipelineResult,
    is_explanation,
)
from core.domain.schema import TableMetadata, ColumnMetadata, format_schema
from core.domain.policy import QueryPolicy
from core.domain.session import Session, Message
from core.domain.errors import (
    RAGSQLError,
    ValidationError,
    SecurityError,
    SQLSyntaxError,
    UnauthorizedTableAccess,
    PolicyViolation,
    StatementNotAllowed,
    FunctionNotAllowed,
    JoinNotAllowed,
    SubqueryNotAllowed,
    AggregationNotAllowed,
    MissingRowLimit,
    RowLimitExceeded,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
    LLMError,
    CacheError,
    DatabaseError,
    ExecutionError,
    DataSourceNotFoundError,
    NoPermissionError,
    UserNotFoundError,
    SessionNotFoundError,
    PoolSaturatedError,
)
from core.domain.responses import (
    APIResponse,
    ErrorDetail,
    QueryData,
    SessionData,
    EventData,
)

__all__ = [
    # Entidades
    "Stage",
    "DataSourceConfig",
    "RequestContext",
    "GenerationContext",
    "ScoredTable",
    "GeneratedSQL",
    "PipelineResult",
    "is_explanation",
    "TableMetadata",
    "ColumnMetadata",
    "format_schema",
    "QueryPolicy",
    "Session",
    "Message",
    # Errores
    "RAGSQLError",
    "ValidationError",
    "SecurityError",
    "SQLSyntaxError",
    "UnauthorizedTableAccess",
    "PolicyViolation",
    "StatementNotAllowed",
    "FunctionNotAllowed",
    "JoinNotAllowed",
    "SubqueryNotAllowed",
    "AggregationNotAllowed",
    "MissingRowLimit",
    "RowLimitExceeded",
    "UpstreamError",
    "UpstreamTimeout",
    "UpstreamUnavailable",
    "LLMError",
    "CacheError",
    "DatabaseError",
    "ExecutionError",
    "DataSourceNotFoundError",
    "NoPermissionError",
    "UserNotFoundError",
    "SessionNotFoundError",
    "PoolSaturatedError",
    # Respuestas
    "APIResponse",
    "ErrorDetail",
    "QueryData",
    "SessionData",
    "EventData",
]
