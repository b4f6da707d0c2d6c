# Rutas de sesión - /session

import logging
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from adapters.inbound.dependencies import AppDependencies, get_current_user_id, get_deps
from core.domain.errors import DataSourceNotFoundError
from core.domain.responses import APIResponse, SessionData

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["Session"])


class SessionRequest(BaseModel):
    data_source_id: int = Field(..., description="Datasource sobre el que se conversa")
    title: str = Field("", max_length=80)


@router.post("", response_model=APIResponse[SessionData])
async def create_session(
    request: SessionRequest,
    user_id: int = Depends(get_current_user_id),
    deps: AppDependencies = Depends(get_deps),
):
    """Crea una nueva sesión ligada a un datasource"""
    if deps.container.store.get_data_source(request.data_source_id) is None:
        raise DataSourceNotFoundError(request.data_source_id)
    session = deps.session_manager.create_session(user_id, request.data_source_id, request.title)
    return APIResponse.ok(SessionData(session_id=session.id, data_source_id=session.data_source_id))


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    user_id: int = Depends(get_current_user_id),
    deps: AppDependencies = Depends(get_deps),
):
    """Elimina una sesión del usuario"""
    deps.session_manager.require_session(session_id, user_id)
    deps.session_manager.delete_session(session_id)
    return APIResponse.ok({"deleted": True})
