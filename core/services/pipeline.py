# Pipeline - Orquestador del flujo NL→SQL con validación y una corrección

import re
import time
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from core.domain.errors import (
    DataSourceNotFoundError,
    ExecutionError,
    NoPermissionError,
    RAGSQLError,
    ValidationError,
)
from core.domain.policy import policy_prompt_text
from core.domain.query import (
    DataSourceConfig,
    GeneratedSQL,
    GenerationContext,
    PipelineResult,
    RequestContext,
    Stage,
)
from core.ports.permission_store_port import PermissionStorePort
from core.services.security.permission_loader import PermissionLoader, allowed_tables
from utils.metrics import get_metrics

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 300

_DSN = re.compile(r"\b[a-z][a-z0-9+]*://[^\s'\"]+", re.IGNORECASE)
_SECRET_PAIR = re.compile(r"\b(password|pwd|user id|uid|user)\s*=\s*[^;\s]+", re.IGNORECASE)


def sanitize_error(message: str) -> str:
    """Quita DSNs y credenciales del mensaje y lo recorta"""
    text = _DSN.sub("<dsn>", message or "")
    text = _SECRET_PAIR.sub(lambda m: f"{m.group(1)}=***", text)
    text = " ".join(text.split())
    if len(text) > MAX_ERROR_LENGTH:
        text = text[:MAX_ERROR_LENGTH] + "..."
    return text


class PipelineListener:
    """Observador de progreso. Todos los métodos son opcionales."""

    def on_stage(self, stage: Stage):
        pass

    def on_sql(self, sql: str, corrected: bool):
        pass

    def on_data(self, columns: List[str], rows: List[Dict[str, Any]]):
        pass

    def on_summary_token(self, token: str):
        pass

    def on_complete(self, result: PipelineResult):
        pass

    def on_error(self, code: str, message: str):
        pass


class Pipeline:
    """
    Orquestador del flujo NL→SQL.
    Recibe todas las dependencias por constructor (Dependency Injection).

    Flujo:
    1. PermissionLoader - snapshot de permisos del usuario
    2. SchemaCollector - metadata de las tablas permitidas
    3. SchemaLinker - reduce a las tablas relevantes
    4. SQLGenerator - genera SQL
    5. SQLValidator - valida tablas y política (sin reintentos)
    6. QueryExecutor - ejecuta; si falla, UNA corrección con el schema completo
    7. SummaryGenerator - resumen en lenguaje natural (opcional)
    """

    def __init__(
        self,
        loader: PermissionLoader,
        store: PermissionStorePort,
        collector,  # SchemaCollector
        linker,  # SchemaLinker
        prompt_builder,  # PromptBuilder
        generator,  # SQLGenerator
        validator,  # SQLValidator
        executor,  # QueryExecutor
        summarizer,  # SummaryGenerator
        session_manager,  # SessionManager
        audit_logger=None,
    ):
        self.loader = loader
        self.store = store
        self.collector = collector
        self.linker = linker
        self.prompt_builder = prompt_builder
        self.generator = generator
        self.validator = validator
        self.executor = executor
        self.summarizer = summarizer
        self.sessions = session_manager
        self.audit = audit_logger

    @contextmanager
    def _stage(self, stage: Stage, listener: PipelineListener):
        listener.on_stage(stage)
        start = time.time()
        try:
            yield
        finally:
            get_metrics().record_stage(stage.value, (time.time() - start) * 1000)

    def _data_source(self, data_source_id: int) -> DataSourceConfig:
        data_source = self.store.get_data_source(data_source_id)
        if data_source is None:
            raise DataSourceNotFoundError(data_source_id)
        return data_source

    def _resolve_session(self, user_id: int, session_id: Optional[str], data_source_id: Optional[int]):
        if session_id:
            session = self.sessions.require_session(session_id, user_id)
            if data_source_id is not None and int(data_source_id) != session.data_source_id:
                raise ValidationError("La sesión pertenece a otro datasource", field="data_source_id")
            return session
        if data_source_id is None:
            raise ValidationError("data_source_id es requerido para una sesión nueva", field="data_source_id")
        return self.sessions.create_session(user_id, int(data_source_id))

    def run(
        self,
        user_id: int,
        session_id: Optional[str],
        question: str,
        data_source_id: Optional[int] = None,
        listener: Optional[PipelineListener] = None,
    ) -> PipelineResult:
        """
        Ejecuta el flujo completo para una pregunta.

        Args:
            user_id: Usuario que pregunta
            session_id: Sesión existente o None para crear una
            question: Pregunta en lenguaje natural
            data_source_id: Datasource (requerido si no hay sesión)
            listener: Observador de etapas para streaming

        Returns:
            PipelineResult con sql, filas y resumen

        Raises:
            RAGSQLError: error terminal (ya notificado al listener)
        """
        listener = listener or PipelineListener()
        start = time.time()
        ctx = None

        try:
            if not question or not question.strip():
                raise ValidationError("La pregunta está vacía", field="question")

            session = self._resolve_session(user_id, session_id, data_source_id)
            data_source = self._data_source(session.data_source_id)
            ctx = RequestContext(
                user_id=user_id,
                role_id=self.loader.resolve_role_id(user_id),
                session_id=session.id,
                data_source_id=data_source.id,
                dialect=data_source.dialect,
            )
            result = self._run(ctx, data_source, question.strip(), listener)
        except RAGSQLError as e:
            self._fail(e.code, e.message, question, user_id, ctx, start, listener)
            raise
        except Exception as e:
            logger.exception(f"Error inesperado en pipeline: {e}")
            self._fail("INTERNAL_ERROR", str(e), question, user_id, ctx, start, listener)
            raise

        duration_ms = (time.time() - start) * 1000
        get_metrics().record_query(duration_ms, "explanation" if result.explanation else "ok")
        if self.audit:
            self.audit.log_query(
                question,
                user_id,
                ctx.data_source_id,
                result.sql,
                "explanation" if result.explanation else "success",
                corrected=result.corrected,
                row_count=result.row_count,
                duration_ms=duration_ms,
            )
        logger.info(f"Pipeline completado en {duration_ms:.0f}ms ({result.row_count} filas)")
        listener.on_stage(Stage.DONE)
        listener.on_complete(result)
        return result

    def _fail(self, code, message, question, user_id, ctx, start, listener):
        duration_ms = (time.time() - start) * 1000
        get_metrics().record_query(duration_ms, "error")
        if self.audit:
            self.audit.log_query(
                question or "",
                user_id,
                ctx.data_source_id if ctx else None,
                None,
                code.lower(),
                duration_ms=duration_ms,
            )
        listener.on_stage(Stage.FAILED)
        listener.on_error(code, sanitize_error(message))

    def _run(
        self,
        ctx: RequestContext,
        data_source: DataSourceConfig,
        question: str,
        listener: PipelineListener,
    ) -> PipelineResult:
        permissions = self.loader.load_permissions(ctx.user_id, ctx.role_id)
        tables = allowed_tables(permissions, ctx.data_source_id)
        if not tables:
            raise NoPermissionError(
                "No tienes tablas habilitadas en este datasource", ctx.data_source_id
            )

        metadata = self.collector.get_metadata(data_source, tables)
        if not metadata:
            raise NoPermissionError(
                "Las tablas permitidas no existen en el datasource", ctx.data_source_id
            )

        linked = self.linker.link(question, ctx.data_source_id, metadata)
        logger.info(f"Linker: {len(metadata)} tablas permitidas → {len(linked)} en el prompt")

        policy = self.loader.load_policy(ctx.user_id, ctx.role_id)
        policy_text = policy_prompt_text(policy)
        history = self.sessions.get_history(ctx.session_id)

        with self._stage(Stage.GENERATE, listener):
            generation = self._generation_context(ctx, linked, policy_text)
            generated = self.generator.generate(generation, history, question)

        if generated.is_explanation:
            return self._explanation(ctx, question, generated)

        with self._stage(Stage.VALIDATE, listener):
            self._validate(ctx, generated.sql)
        listener.on_sql(generated.sql, False)

        sql = generated.sql
        corrected = False
        try:
            with self._stage(Stage.EXECUTE, listener):
                columns, rows = self.executor.execute(data_source, sql)
        except ExecutionError as first_error:
            logger.warning(f"Ejecución falló, intentando corrección: {first_error.message[:200]}")

            # Corrección con el schema completo, sin volver a pasar por el linker
            with self._stage(Stage.CORRECT, listener):
                correction = self._generation_context(ctx, metadata, policy_text)
                generated = self.generator.correct(
                    correction, history, sql, first_error.message
                )

            if generated.is_explanation:
                get_metrics().record_correction(False)
                return self._explanation(ctx, question, generated, corrected=True)

            with self._stage(Stage.VALIDATE, listener):
                self._validate(ctx, generated.sql)
            sql = generated.sql
            corrected = True
            listener.on_sql(sql, True)

            try:
                with self._stage(Stage.EXECUTE, listener):
                    columns, rows = self.executor.execute(data_source, sql)
            except ExecutionError:
                get_metrics().record_correction(False)
                raise
            get_metrics().record_correction(True)

        listener.on_data(columns, rows)

        with self._stage(Stage.SUMMARIZE, listener):
            summary = self._summarize(question, sql, rows, listener)

        self.sessions.add_exchange(ctx.session_id, question, sql)
        return PipelineResult(
            session_id=ctx.session_id,
            sql=sql,
            columns=columns,
            rows=rows,
            summary=summary,
            corrected=corrected,
        )

    def _generation_context(self, ctx: RequestContext, tables: list, policy_text: str) -> GenerationContext:
        return GenerationContext(
            dialect=ctx.dialect,
            data_source_id=ctx.data_source_id,
            system_prompt=self.prompt_builder.build(
                ctx.dialect, self.collector.format(tables), policy_text
            ),
            linked_metadata=list(tables),
        )

    def _validate(self, ctx: RequestContext, sql: str) -> None:
        self.validator.validate(
            sql,
            ctx.user_id,
            ctx.data_source_id,
            role_id=ctx.role_id,
            dialect=ctx.dialect,
        )

    def _summarize(self, question: str, sql: str, rows: list, listener: PipelineListener):
        tokens = []
        for token in self.summarizer.stream(question, sql, rows):
            tokens.append(token)
            listener.on_summary_token(token)
        summary = "".join(tokens).strip()
        return summary or None

    def _explanation(
        self, ctx: RequestContext, question: str, generated: GeneratedSQL, corrected: bool = False
    ) -> PipelineResult:
        text = generated.explanation or generated.raw.strip()
        logger.info("El generador respondió con una explicación, no se ejecuta SQL")
        self.sessions.add_exchange(ctx.session_id, question, text)
        return PipelineResult(session_id=ctx.session_id, explanation=text, corrected=corrected)
