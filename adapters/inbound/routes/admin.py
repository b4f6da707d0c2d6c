# Rutas de administración - eventos de invalidación y reindexado

import asyncio
import logging
from fastapi import APIRouter, Depends, HTTPException

from adapters.inbound.dependencies import AppDependencies, get_deps
from core.domain.responses import APIResponse, EventData
from core.services.events import DataSourceDeleted, QueryPolicyChanged, RolePermissionChanged

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


# El backend de gestión llama a estos endpoints después de confirmar el cambio.
# El procesamiento es asíncrono: 202 solo indica que el evento fue aceptado.


@router.post("/events/role-permission-changed/{role_id}", status_code=202)
async def role_permission_changed(role_id: int, deps: AppDependencies = Depends(get_deps)):
    deps.event_bus.publish(RolePermissionChanged(role_id=role_id))
    return APIResponse.ok(EventData(event="RolePermissionChanged"))


@router.post("/events/query-policy-changed/{role_id}", status_code=202)
async def query_policy_changed(role_id: int, deps: AppDependencies = Depends(get_deps)):
    deps.event_bus.publish(QueryPolicyChanged(role_id=role_id))
    return APIResponse.ok(EventData(event="QueryPolicyChanged"))


@router.post("/events/data-source-deleted/{data_source_id}", status_code=202)
async def data_source_deleted(data_source_id: int, deps: AppDependencies = Depends(get_deps)):
    deps.event_bus.publish(DataSourceDeleted(data_source_id=data_source_id))
    return APIResponse.ok(EventData(event="DataSourceDeleted"))


@router.post("/datasources/{data_source_id}/reindex")
async def reindex(data_source_id: int, deps: AppDependencies = Depends(get_deps)):
    """Re-indexa las tablas del datasource en el índice vectorial (bloqueante)"""
    indexer = deps.container.indexer()
    if indexer is None:
        raise HTTPException(409, "Índice vectorial no configurado")
    deps.container.collector.evict_data_source(data_source_id)
    count = await asyncio.to_thread(indexer.reindex, data_source_id)
    return APIResponse.ok({"data_source_id": data_source_id, "indexed": count})


@router.post("/warmup", status_code=202)
async def warmup(deps: AppDependencies = Depends(get_deps)):
    """Precarga permisos de usuarios activos en background"""
    deps.worker_pool.submit(deps.loader.warm_up)
    return APIResponse.ok(EventData(event="PermissionWarmUp"))
