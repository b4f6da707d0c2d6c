# Inyección de dependencias para FastAPI

import logging
from typing import Optional

from fastapi import Header, HTTPException

from adapters.factory import DependencyContainer, create_pipeline
from core.services.events import EventBus
from core.services.pipeline import Pipeline
from core.services.security import AuditLogger, PermissionLoader, get_audit_logger
from core.services.session_manager import SessionManager
from core.services.worker_pool import BoundedWorkerPool

logger = logging.getLogger(__name__)


class AppDependencies:
    """
    Contenedor de dependencias de la aplicación.
    Singleton que se inicializa una vez y provee dependencias a los endpoints.
    """

    _instance: Optional["AppDependencies"] = None

    def __init__(self):
        self._container = DependencyContainer()
        self._pipeline: Optional[Pipeline] = None
        self._worker_pool: Optional[BoundedWorkerPool] = None
        self._event_bus: Optional[EventBus] = None
        self._audit_logger: Optional[AuditLogger] = None

    @classmethod
    def get_instance(cls) -> "AppDependencies":
        """Obtiene la instancia singleton"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset para testing"""
        cls._instance = None

    # Propiedades con lazy loading

    @property
    def container(self) -> DependencyContainer:
        return self._container

    @property
    def pipeline(self) -> Pipeline:
        if self._pipeline is None:
            self._pipeline = create_pipeline(self._container)
        return self._pipeline

    @property
    def session_manager(self) -> SessionManager:
        return self._container.sessions

    @property
    def loader(self) -> PermissionLoader:
        return self._container.loader

    @property
    def worker_pool(self) -> BoundedWorkerPool:
        if self._worker_pool is None:
            self._worker_pool = BoundedWorkerPool()
        return self._worker_pool

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            self._event_bus = self._container.event_bus()
        return self._event_bus

    @property
    def audit_logger(self) -> AuditLogger:
        if self._audit_logger is None:
            self._audit_logger = get_audit_logger()
        return self._audit_logger

    def initialize_all(self) -> None:
        """Pre-carga todas las dependencias (para startup)"""
        _ = self.pipeline
        _ = self.worker_pool
        _ = self.event_bus
        _ = self.audit_logger
        logger.info("Todas las dependencias inicializadas")

    def shutdown(self) -> None:
        if self._worker_pool is not None:
            self._worker_pool.shutdown(wait=False)
        if self._pipeline is not None:
            self._pipeline.linker.close()
        if self._event_bus is not None:
            self._event_bus.shutdown(wait=False)
        self._container.registry.close_all()


# Funciones para FastAPI Depends()

def get_deps() -> AppDependencies:
    """Obtiene el contenedor de dependencias"""
    return AppDependencies.get_instance()


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> int:
    """
    Usuario autenticado. La autenticación la resuelve el gateway,
    que reenvía el id en el header X-User-Id.
    """
    if not x_user_id:
        raise HTTPException(401, "Falta el header X-User-Id")
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(400, "X-User-Id inválido")
