# Servicios del núcleo
from core.services.pipeline import Pipeline, PipelineListener, sanitize_error
from core.services.response import SummaryGenerator
from core.services.session_manager import SessionManager, get_session_manager
from core.services.worker_pool import BoundedWorkerPool
from core.services.events import (
    EventBus,
    CacheEvictionListener,
    RolePermissionChanged,
    QueryPolicyChanged,
    DataSourceDeleted,
    DataSourceSynced,
    get_event_bus,
)

__all__ = [
    "Pipeline",
    "PipelineListener",
    "sanitize_error",
    "SummaryGenerator",
    "SessionManager",
    "get_session_manager",
    "BoundedWorkerPool",
    "EventBus",
    "CacheEvictionListener",
    "RolePermissionChanged",
    "QueryPolicyChanged",
    "DataSourceDeleted",
    "DataSourceSynced",
    "get_event_bus",
]
