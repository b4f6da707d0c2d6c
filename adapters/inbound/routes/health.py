# Rutas de salud - /health, /metrics

import logging
from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from adapters.inbound.dependencies import AppDependencies, get_deps
from config.settings import settings
from utils.logging import token_counter
from utils.metrics import get_metrics, get_health_status

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/")
async def root():
    """Root endpoint - status básico"""
    return {"status": "ok", "app": settings.app_name, "version": settings.version}


@router.get("/health")
async def health(deps: AppDependencies = Depends(get_deps)):
    """Health check: Redis, índice vectorial y estado derivado de métricas"""
    container = deps.container
    index = container.index
    status = get_health_status()
    return {
        "status": status["status"],
        "redis": container.cache.is_connected(),
        "vector_index": index.is_available() if index is not None else False,
        "pool_in_flight": deps.worker_pool.in_flight,
        "issues": status["issues"],
        "stats": status["stats"],
    }


@router.get("/metrics")
async def metrics_json():
    """Métricas en formato JSON, con el consumo de tokens del LLM"""
    return {**get_metrics().get_metrics(), "tokens": token_counter.get_summary()}


@router.get("/metrics/prometheus", response_class=PlainTextResponse)
async def metrics_prometheus():
    """Métricas en formato Prometheus"""
    return get_metrics().get_prometheus_format()
