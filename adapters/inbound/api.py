# API Adapter - FastAPI entry point

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adapters.inbound.dependencies import get_deps
from adapters.inbound.routes import admin_router, health_router, query_router, session_router
from config.settings import settings
from core.domain.errors import (
    DatabaseError,
    DataSourceNotFoundError,
    NoPermissionError,
    PoolSaturatedError,
    RAGSQLError,
    SecurityError,
    SessionNotFoundError,
    UpstreamError,
    UserNotFoundError,
    ValidationError,
)
from core.domain.responses import APIResponse
from core.services.pipeline import sanitize_error
from utils.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

# Orden importa: la primera coincidencia por isinstance gana
STATUS_CODES = [
    (PoolSaturatedError, 503),
    (ValidationError, 400),
    (SecurityError, 403),
    (NoPermissionError, 403),
    (UserNotFoundError, 403),
    (DataSourceNotFoundError, 404),
    (SessionNotFoundError, 404),
    (UpstreamError, 502),
    (DatabaseError, 422),
]


def status_for(exc: RAGSQLError) -> int:
    for error_type, status in STATUS_CODES:
        if isinstance(exc, error_type):
            return status
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Inicializa componentes al startup"""
    logger.info(f"Iniciando {settings.app_name} v{settings.version}...")
    deps = get_deps()
    deps.initialize_all()
    yield
    logger.info("Cerrando API...")
    deps.shutdown()


app = FastAPI(
    title=settings.app_name,
    description="Natural Language to SQL con validación de permisos y políticas",
    version=settings.version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RAGSQLError)
async def ragsql_error_handler(request: Request, exc: RAGSQLError):
    status = status_for(exc)
    if status >= 500:
        logger.error(f"{request.url.path}: {exc.code} {exc.message}")
        get_deps().audit_logger.log_error(exc.code, sanitize_error(exc.message))
    body = APIResponse.fail(exc.code, sanitize_error(exc.message), exc.details)
    # Los detalles de errores de base pueden contener la query
    if isinstance(exc, DatabaseError):
        body.error.details = None
    return JSONResponse(status_code=status, content=body.model_dump())


app.include_router(health_router)
app.include_router(query_router)
app.include_router(session_router)
app.include_router(admin_router)
