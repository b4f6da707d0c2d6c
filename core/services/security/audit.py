# Audit Logger - Rastro de auditoría de consultas, rechazos e invalidaciones

import logging
import json
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any
from config.settings import settings

logger = logging.getLogger(__name__)

LOGS_DIR = Path(__file__).resolve().parent.parent.parent.parent / "logs"


class AuditLogger:
    """
    Escribe una línea JSON por evento auditable.

    - DEBUG=true (desarrollo): solo resumen a consola
    - DEBUG=false (producción): líneas completas a logs/audit.log
    """

    def __init__(self, enabled: bool = True, log_to_file: bool = True):
        self.enabled = enabled
        self.log_to_file = log_to_file and not settings.debug
        self._file_handler = None

        if self.log_to_file:
            self._setup_file_logging()

    def _setup_file_logging(self):
        try:
            LOGS_DIR.mkdir(parents=True, exist_ok=True)
            log_file = LOGS_DIR / "audit.log"

            self._file_handler = logging.FileHandler(log_file, encoding="utf-8")
            self._file_handler.setLevel(logging.INFO)
            self._file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(message)s")
            )
            logger.info(f"AuditLogger: escribiendo a {log_file}")
        except OSError as e:
            logger.warning(f"No se pudo crear archivo de auditoría: {e}")
            self.log_to_file = False

    def log_query(
        self,
        question: str,
        user_id: Optional[str] = None,
        data_source_id: Optional[int] = None,
        sql: Optional[str] = None,
        result_status: str = "success",
        corrected: bool = False,
        row_count: Optional[int] = None,
        duration_ms: Optional[float] = None,
    ):
        """
        Registra una consulta procesada por el pipeline.

        Args:
            result_status: "success", "explanation", "rejected", "error"
        """
        if not self.enabled:
            return

        self._write_log(
            {
                "timestamp": datetime.now().isoformat(),
                "type": "query",
                "question": question[:200],
                "user_id": user_id,
                "data_source_id": data_source_id,
                "sql": sql[:500] if sql else None,
                "status": result_status,
                "corrected": corrected,
                "rows": row_count,
                "duration_ms": duration_ms,
            }
        )

    def log_security_event(
        self,
        event_type: str,
        description: str,
        user_id: Optional[str] = None,
        ip: Optional[str] = None,
        severity: str = "warning",
    ):
        """
        Registra un rechazo de seguridad.

        Args:
            event_type: código del error ("unauthorized_table", "policy_violation", ...)
            severity: "info", "warning", "critical"
        """
        if not self.enabled:
            return

        self._write_log(
            {
                "timestamp": datetime.now().isoformat(),
                "type": "security",
                "event": event_type,
                "description": description[:500],
                "user_id": user_id,
                "ip": ip,
                "severity": severity,
            }
        )

        if severity == "critical":
            logger.warning(f"SECURITY: {event_type} - {description[:100]}")

    def log_invalidation(self, event: str, details: Dict[str, Any]):
        """Registra una invalidación de cache aplicada"""
        if not self.enabled:
            return

        self._write_log(
            {
                "timestamp": datetime.now().isoformat(),
                "type": "invalidation",
                "event": event,
                "details": details,
            }
        )

    def log_error(
        self,
        error_type: str,
        error_message: str,
        question: Optional[str] = None,
    ):
        if not self.enabled:
            return

        self._write_log(
            {
                "timestamp": datetime.now().isoformat(),
                "type": "error",
                "error_type": error_type,
                "message": error_message[:500],
                "question": question[:200] if question else None,
            }
        )

    def _write_log(self, entry: Dict[str, Any]):
        log_line = json.dumps(entry, ensure_ascii=False, default=str)

        if self.log_to_file and self._file_handler:
            record = logging.LogRecord(
                name="audit",
                level=logging.INFO,
                pathname="",
                lineno=0,
                msg=log_line,
                args=(),
                exc_info=None,
            )
            self._file_handler.emit(record)

        if settings.debug:
            logger.debug(
                f"Audit: {entry.get('type')} - {entry.get('status', entry.get('event', ''))}"
            )


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger(enabled=True, log_to_file=not settings.debug)
    return _audit_logger
