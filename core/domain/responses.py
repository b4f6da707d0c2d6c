# Modelos de respuesta estandarizados para la API

from typing import Any, Dict, List, Optional, Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class ErrorDetail(BaseModel):
    """Detalle de error para respuestas"""

    code: str
    message: str
    details: Optional[dict] = None


class APIResponse(BaseModel, Generic[T]):
    """Respuesta estándar de la API"""

    success: bool
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None

    @classmethod
    def ok(cls, data: T = None) -> "APIResponse[T]":
        """Crea respuesta exitosa"""
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls, code: str, message: str, details: dict = None
    ) -> "APIResponse[None]":
        """Crea respuesta de error"""
        return cls(
            success=False,
            error=ErrorDetail(code=code, message=message, details=details),
        )


# DTOs específicos para cada endpoint


class QueryData(BaseModel):
    """Datos de respuesta de query"""

    session_id: str
    sql: Optional[str] = None
    columns: List[str] = []
    rows: List[Dict[str, Any]] = []
    row_count: int = 0
    summary: Optional[str] = None
    corrected: bool = False
    explanation: Optional[str] = None


class SessionData(BaseModel):
    """Datos de sesión"""

    session_id: str
    data_source_id: int


class EventData(BaseModel):
    """Evento de invalidación aceptado"""

    event: str
    accepted: bool = True
