# Servicios de seguridad: permisos, validación de SQL y auditoría
from core.services.security.permission_loader import (
    PermissionLoader,
    allowed_tables,
    permission_string,
    NO_POLICY,
)
from core.services.security.sql_validator import (
    SQLValidator,
    parse_single,
    referenced_tables,
    has_subquery,
)
from core.services.security.audit import AuditLogger, get_audit_logger

__all__ = [
    "PermissionLoader",
    "allowed_tables",
    "permission_string",
    "NO_POLICY",
    "SQLValidator",
    "parse_single",
    "referenced_tables",
    "has_subquery",
    "AuditLogger",
    "get_audit_logger",
]
