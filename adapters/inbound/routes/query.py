# Rutas de consulta - /query, /query/stream

import json
import time
import asyncio
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from adapters.inbound.dependencies import AppDependencies, get_current_user_id, get_deps
from core.domain.errors import RAGSQLError
from core.domain.query import PipelineResult, Stage
from core.domain.responses import APIResponse, QueryData
from core.services.pipeline import PipelineListener, sanitize_error
from utils.metrics import get_metrics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/query", tags=["Query"])

TERMINAL_EVENTS = ("done", "error")


# Modelos de transferencia de datos
class QueryRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=1000, description="Pregunta en lenguaje natural")
    session_id: Optional[str] = Field(None, description="Sesión existente para contexto conversacional")
    data_source_id: Optional[int] = Field(None, description="Datasource (requerido sin sesión)")


def _query_data(result: PipelineResult) -> QueryData:
    return QueryData(**result.to_dict())


@router.post("", response_model=APIResponse[QueryData])
async def query(
    request: QueryRequest,
    user_id: int = Depends(get_current_user_id),
    deps: AppDependencies = Depends(get_deps),
):
    """Ejecuta una pregunta y retorna SQL, filas y resumen"""
    start_time = time.time()
    metrics = get_metrics()

    try:
        future = deps.worker_pool.submit(
            deps.pipeline.run,
            user_id,
            request.session_id,
            request.question,
            request.data_source_id,
        )
        result = await asyncio.wrap_future(future)
    except RAGSQLError:
        metrics.record_request("/query", (time.time() - start_time) * 1000, success=False)
        raise

    metrics.record_request("/query", (time.time() - start_time) * 1000, success=True)
    return APIResponse.ok(_query_data(result))


def _sse(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False, default=str)}\n\n"


class QueueListener(PipelineListener):
    """Pasa los eventos del pipeline (thread worker) a la cola del event loop"""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
        self.loop = loop
        self.queue = queue

    def _emit(self, event: str, data: Dict[str, Any]):
        self.loop.call_soon_threadsafe(self.queue.put_nowait, (event, data))

    def on_stage(self, stage: Stage):
        if stage not in (Stage.DONE, Stage.FAILED):
            self._emit("stage", {"stage": stage.value})

    def on_sql(self, sql: str, corrected: bool):
        self._emit("sql", {"sql": sql, "corrected": corrected})

    def on_data(self, columns: List[str], rows: List[Dict[str, Any]]):
        self._emit("data", {"columns": columns, "rows": rows, "row_count": len(rows)})

    def on_summary_token(self, token: str):
        self._emit("summary", {"token": token})

    def on_complete(self, result: PipelineResult):
        self._emit(
            "done",
            {
                "session_id": result.session_id,
                "summary": result.summary,
                "corrected": result.corrected,
                "explanation": result.explanation,
                "row_count": result.row_count,
            },
        )

    def on_error(self, code: str, message: str):
        self._emit("error", {"code": code, "message": message})


@router.post("/stream")
async def query_stream(
    request: QueryRequest,
    user_id: int = Depends(get_current_user_id),
    deps: AppDependencies = Depends(get_deps),
):
    """
    Streaming del progreso con Server-Sent Events (SSE).
    Eventos: stage, sql, data, summary y siempre un único evento final done | error.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    listener = QueueListener(loop, queue)
    start_time = time.time()

    def finished(future):
        # Marca de fin: garantiza un evento terminal aunque el listener no haya emitido
        error = future.exception()
        loop.call_soon_threadsafe(queue.put_nowait, ("__end__", {"error": error}))

    try:
        future = deps.worker_pool.submit(
            deps.pipeline.run,
            user_id,
            request.session_id,
            request.question,
            request.data_source_id,
            listener,
        )
        future.add_done_callback(finished)
    except RAGSQLError as e:
        get_metrics().record_request("/query/stream", 0, success=False)
        rejected = {"code": e.code, "message": e.message}

        async def rejected_stream():
            yield _sse("error", rejected)

        return StreamingResponse(rejected_stream(), media_type="text/event-stream")

    async def generate_stream() -> AsyncGenerator[str, None]:
        terminal_sent = False
        while True:
            event, data = await queue.get()
            if event == "__end__":
                if not terminal_sent:
                    error = data["error"]
                    yield _sse(
                        "error",
                        {
                            "code": getattr(error, "code", "INTERNAL_ERROR"),
                            "message": sanitize_error(str(error) if error else "Stream terminado sin resultado"),
                        },
                    )
                break
            if terminal_sent:
                continue
            if event in TERMINAL_EVENTS:
                terminal_sent = True
                get_metrics().record_request(
                    "/query/stream", (time.time() - start_time) * 1000, success=event == "done"
                )
            yield _sse(event, data)

    return StreamingResponse(
        generate_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
