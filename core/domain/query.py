# Entidades de Query: contexto por request y resultados del pipeline

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any

from core.domain.schema import TableMetadata

# Prefijo con el que el generador marca una respuesta que no es SQL
EXPLAIN_PREFIX = "[EXPLAIN]"

# Cualquier texto que empiece como sentencia SQL pasa por el validador
_SQL_START = re.compile(
    r"^(\(|(SELECT|WITH|SHOW|DESC|DESCRIBE|EXPLAIN|CALL|EXEC|EXECUTE|VALUES|INSERT|UPDATE"
    r"|DELETE|MERGE|REPLACE|UPSERT|CREATE|DROP|ALTER|TRUNCATE|RENAME|GRANT|REVOKE|COPY"
    r"|COMMIT|ROLLBACK|PRAGMA|ATTACH|DETACH|VACUUM)\b)",
    re.IGNORECASE,
)


class Stage(str, Enum):
    """Etapas del pipeline, notificadas al listener en cada transición"""

    GENERATE = "generate"
    VALIDATE = "validate"
    EXECUTE = "execute"
    CORRECT = "correct"
    SUMMARIZE = "summarize"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class DataSourceConfig:
    """Configuración de conexión a una base destino"""

    id: int
    name: str
    db_type: str
    connection_string: str
    schema_name: Optional[str] = None

    @property
    def dialect(self) -> str:
        return self.db_type.lower()


@dataclass(frozen=True)
class RequestContext:
    """Identidad del request. Se pasa explícitamente por toda la cadena."""

    user_id: int
    role_id: int
    session_id: str
    data_source_id: int
    dialect: str = "postgresql"


@dataclass
class GenerationContext:
    """Contexto de generación por request. Nunca se comparte entre requests."""

    dialect: str
    data_source_id: int
    system_prompt: str
    linked_metadata: List[TableMetadata] = field(default_factory=list)


@dataclass(frozen=True)
class ScoredTable:
    table: TableMetadata
    score: int


@dataclass(frozen=True)
class GeneratedSQL:
    """Salida limpia del generador"""

    raw: str
    sql: str

    @property
    def is_explanation(self) -> bool:
        return is_explanation(self.sql)

    @property
    def explanation(self) -> str:
        return self.sql.replace(EXPLAIN_PREFIX, "", 1).strip()


@dataclass
class PipelineResult:
    """Resultado de una ejecución completa del pipeline"""

    session_id: str
    sql: Optional[str] = None
    columns: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    summary: Optional[str] = None
    corrected: bool = False
    explanation: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "sql": self.sql,
            "columns": self.columns,
            "rows": self.rows,
            "row_count": self.row_count,
            "summary": self.summary,
            "corrected": self.corrected,
            "explanation": self.explanation,
        }


def is_explanation(text: str) -> bool:
    """True si el texto es una explicación y no una sentencia SQL"""
    if text is None:
        return True
    stripped = text.strip()
    if stripped.startswith(EXPLAIN_PREFIX):
        return True
    return not _SQL_START.match(stripped)
