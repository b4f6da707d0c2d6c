# Schema Linker: reduce las tablas permitidas a las relevantes para la pregunta
#
# Cascada explícita de estrategias. Cada una retorna una lista de tablas o None
# ("no sé, sigue con la próxima"). Si ninguna decide se retornan los candidatos.

import re
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import List, Optional, Sequence

from config.settings import settings
from core.domain.errors import UpstreamError, UpstreamTimeout, UpstreamUnavailable
from core.domain.query import ScoredTable
from core.domain.schema import TableMetadata
from core.ports.vector_port import VectorIndexPort
from utils.metrics import get_metrics

logger = logging.getLogger(__name__)

# Puntajes de la estrategia por palabras clave
SCORE_TABLE_NAME = 10
SCORE_TABLE_COMMENT = 8
SCORE_COLUMN_NAME = 5
SCORE_COLUMN_NAME_CAP = 15
SCORE_COLUMN_COMMENT = 3
SCORE_COLUMN_COMMENT_CAP = 9
SCORE_THRESHOLD = 5
TOP_N = 6

# Separadores: espacios, puntuación ASCII y CJK, guion bajo y guion
_KEYWORD_SPLIT = re.compile(r"[\s，。、：；！？,.!?_\-]+")
_CJK_RUN = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]+")


class LinkStrategy(ABC):
    name = "base"

    @abstractmethod
    def link(
        self, question: str, data_source_id: int, candidates: List[TableMetadata]
    ) -> Optional[List[TableMetadata]]:
        """Retorna tablas seleccionadas o None para continuar la cascada"""
        pass

    def close(self) -> None:
        pass


class VectorLinkStrategy(LinkStrategy):
    """Búsqueda semántica en el índice vectorial, acotada por timeout"""

    name = "vector"

    def __init__(
        self,
        index: VectorIndexPort,
        score_threshold: float = None,
        limit: int = None,
        timeout: float = None,
        executor: ThreadPoolExecutor = None,
    ):
        self.index = index
        self.score_threshold = score_threshold or settings.vector_db.score_threshold
        self.limit = limit or settings.vector_db.search_limit
        self.timeout = timeout or settings.vector_db.search_timeout
        # Solo se apaga el executor propio, no uno compartido
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="vector-search"
        )

    def search(self, question: str, data_source_id: int) -> List[str]:
        """Ejecuta la búsqueda con timeout. Traduce fallos a UpstreamError."""
        future = self._executor.submit(
            self.index.search_tables,
            question,
            data_source_id,
            self.limit,
            self.score_threshold,
        )
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            raise UpstreamTimeout("vector-index", self.timeout)
        except UpstreamError:
            raise
        except Exception as e:
            raise UpstreamUnavailable("vector-index", str(e))

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def link(
        self, question: str, data_source_id: int, candidates: List[TableMetadata]
    ) -> Optional[List[TableMetadata]]:
        hits = self.search(question, data_source_id)
        if not hits:
            logger.info(
                f"VectorLinker: sin resultados sobre umbral {self.score_threshold}"
            )
            return None

        by_name = {}
        for table in candidates:
            by_name.setdefault(table.name.lower(), table)

        selected = []
        for hit in hits:
            table = by_name.get(hit.lower())
            if table is not None and table not in selected:
                selected.append(table)

        if not selected:
            logger.warning("VectorLinker: ninguna tabla encontrada está permitida")
            return None

        logger.info(
            f"VectorLinker: {len(candidates)} candidatas → {len(hits)} hits → {len(selected)} tablas"
        )
        return selected


class KeywordLinkStrategy(LinkStrategy):
    """Puntaje determinista por coincidencia de palabras. Siempre decide."""

    name = "keyword"

    def link(
        self, question: str, data_source_id: int, candidates: List[TableMetadata]
    ) -> Optional[List[TableMetadata]]:
        if not candidates:
            return list(candidates)

        q = question.lower()
        scored = [ScoredTable(t, score_table(q, t)) for t in candidates]
        # sorted() es estable: empates mantienen el orden de entrada
        positive = sorted(
            (s for s in scored if s.score > 0), key=lambda s: s.score, reverse=True
        )

        if not positive:
            logger.debug(
                f"KeywordLinker: sin coincidencias, se usan las {len(candidates)} tablas"
            )
            return list(candidates)

        result = [s.table for s in positive if s.score >= SCORE_THRESHOLD][:TOP_N]
        if not result:
            result = [positive[0].table]

        logger.info(
            f"KeywordLinker: {len(candidates)} candidatas → {len(result)} tablas"
        )
        for s in positive:
            logger.debug(f"  {s.table.name}: {s.score}")
        return result


def keywords(text: str) -> List[str]:
    """
    Palabras de un texto con longitud mayor a 1.
    Los tramos CJK no llevan separadores, así que se agregan sus bigramas.
    """
    words = []
    for word in _KEYWORD_SPLIT.split(text.lower()):
        if len(word) <= 1:
            continue
        words.append(word)
        for run in _CJK_RUN.findall(word):
            if len(run) > 2:
                words.extend(run[i : i + 2] for i in range(len(run) - 1))
    return words


def _keyword_hit(lower_question: str, text: str, hit_score: int) -> int:
    for word in keywords(text):
        if word in lower_question:
            return hit_score
    return 0


def score_table(lower_question: str, table: TableMetadata) -> int:
    score = 0

    if table.name.lower() in lower_question:
        score += SCORE_TABLE_NAME

    if table.comment and table.comment.strip():
        score += _keyword_hit(lower_question, table.comment, SCORE_TABLE_COMMENT)

    name_score = 0
    comment_score = 0
    for col in table.columns:
        if name_score < SCORE_COLUMN_NAME_CAP:
            col_name = col.name.lower()
            if len(col_name) > 2 and col_name in lower_question:
                name_score = min(name_score + SCORE_COLUMN_NAME, SCORE_COLUMN_NAME_CAP)

        if comment_score < SCORE_COLUMN_COMMENT_CAP and col.has_comment:
            comment_score = min(
                comment_score
                + _keyword_hit(lower_question, col.comment, SCORE_COLUMN_COMMENT),
                SCORE_COLUMN_COMMENT_CAP,
            )

    return score + name_score + comment_score


class SchemaLinker:
    """
    Selecciona el subconjunto de tablas que ve el LLM.

    Garantía: si hay candidatos, el resultado nunca es vacío.
    Los fallos de una estrategia nunca llegan al llamador.
    """

    def __init__(self, strategies: Sequence[LinkStrategy]):
        self.strategies = list(strategies)

    def link(
        self, question: str, data_source_id: int, candidates: List[TableMetadata]
    ) -> List[TableMetadata]:
        if not candidates:
            return []

        metrics = get_metrics()
        for strategy in self.strategies:
            try:
                result = strategy.link(question, data_source_id, candidates)
            except UpstreamTimeout as e:
                logger.warning(f"Linker {strategy.name}: {e.message}, degradando")
                metrics.record_linker_fallback(strategy.name, "timeout")
                continue
            except Exception as e:
                logger.error(f"Linker {strategy.name} falló, degradando: {e}")
                metrics.record_linker_fallback(strategy.name, "error")
                continue

            if result:
                metrics.record_linker_hit(strategy.name)
                return result

        logger.info("Linker: ninguna estrategia decidió, se usan todas las tablas")
        metrics.record_linker_hit("all")
        return list(candidates)

    def close(self) -> None:
        for strategy in self.strategies:
            strategy.close()


def build_schema_linker(index: Optional[VectorIndexPort] = None) -> SchemaLinker:
    """Cascada estándar: vector (si hay índice) → palabras clave"""
    strategies: List[LinkStrategy] = []
    if index is not None:
        strategies.append(VectorLinkStrategy(index))
    strategies.append(KeywordLinkStrategy())
    return SchemaLinker(strategies)
