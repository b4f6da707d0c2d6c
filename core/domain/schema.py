# Entidades de Schema: metadata de tablas y columnas de la base destino

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

# Comentario que se muestra al LLM cuando la columna no tiene descripción
PLACEHOLDER_COMMENT = "(sin comentario)"


@dataclass(frozen=True)
class ColumnMetadata:
    """Columna de una tabla"""

    name: str
    data_type: str
    comment: Optional[str] = None
    primary_key: bool = False
    indexed: bool = False

    @property
    def has_comment(self) -> bool:
        return bool(self.comment) and self.comment != PLACEHOLDER_COMMENT

    def to_prompt_string(self) -> str:
        text = f"{self.name} ({self.data_type})"
        if self.primary_key:
            text += " [PK]"
        elif self.indexed:
            text += " [indexada]"
        text += f" - {self.comment if self.has_comment else PLACEHOLDER_COMMENT}"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.data_type,
            "comment": self.comment,
            "primaryKey": self.primary_key,
            "indexed": self.indexed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnMetadata":
        return cls(
            name=data["name"],
            data_type=data.get("type", ""),
            comment=data.get("comment"),
            primary_key=bool(data.get("primaryKey", False)),
            indexed=bool(data.get("indexed", False)),
        )


@dataclass(frozen=True)
class TableMetadata:
    """Tabla de la base destino. Inmutable: se comparte entre requests vía cache."""

    name: str
    comment: Optional[str] = None
    columns: tuple = field(default_factory=tuple)

    def __post_init__(self):
        # Acepta listas al construir pero guarda una tupla
        if not isinstance(self.columns, tuple):
            object.__setattr__(self, "columns", tuple(self.columns))

    @property
    def primary_keys(self) -> List[str]:
        return [c.name for c in self.columns if c.primary_key]

    def to_prompt_string(self) -> str:
        """Descripción compacta de la tabla para el prompt"""
        header = f"Tabla: {self.name}"
        if self.comment:
            header += f" ({self.comment})"
        lines = [header, "Columnas:"]
        lines.extend(f"- {c.to_prompt_string()}" for c in self.columns)
        if self.primary_keys:
            lines.append(f"Clave primaria: [{', '.join(self.primary_keys)}]")
        return "\n".join(lines) + "\n"

    def to_embedding_text(self) -> str:
        """Texto que se indexa en el vector store"""
        parts = [self.name]
        if self.comment:
            parts.append(self.comment)
        for c in self.columns:
            parts.append(f"{c.name} {c.comment}" if c.has_comment else c.name)
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tableName": self.name,
            "tableComment": self.comment,
            "columns": [c.to_dict() for c in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableMetadata":
        return cls(
            name=data["tableName"],
            comment=data.get("tableComment"),
            columns=tuple(ColumnMetadata.from_dict(c) for c in data.get("columns", [])),
        )


def format_schema(tables: List[TableMetadata]) -> str:
    """Formatea una lista de tablas como bloque de schema para el prompt"""
    if not tables:
        return "No tienes permiso de acceso a ninguna tabla de este datasource."
    return "Estructura de las tablas disponibles:\n\n" + "\n---\n".join(
        t.to_prompt_string() for t in tables
    )
