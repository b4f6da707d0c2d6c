# Generador de resumen: describe en lenguaje natural el resultado de una query

import json
import logging
from typing import Any, Dict, Iterator, List

from langchain_core.messages import HumanMessage, SystemMessage

from config.settings import settings
from utils.prompts import SUMMARY_SYSTEM, SUMMARY_USER

logger = logging.getLogger(__name__)

# Campos que no se envían al LLM
HIDDEN_FIELDS = {"password", "hash", "token", "secret"}


def _visible(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        k: v
        for k, v in row.items()
        if not any(h in k.lower().replace("_", "") for h in HIDDEN_FIELDS)
    }


class SummaryGenerator:
    """
    Resume el resultado con el LLM usando una muestra de filas.
    Un fallo del resumen nunca invalida una query exitosa: retorna None.
    """

    def __init__(self, llm, sample_rows: int = None):
        self.llm = llm
        self.sample_rows = sample_rows or settings.execution.summary_sample_rows

    def _messages(self, question: str, sql: str, rows: List[Dict[str, Any]]) -> list:
        sample = [_visible(r) for r in rows[: self.sample_rows]]
        note = f", se muestran {len(sample)}" if len(rows) > len(sample) else ""
        return [
            SystemMessage(content=SUMMARY_SYSTEM),
            HumanMessage(
                content=SUMMARY_USER.format(
                    question=question,
                    sql=sql,
                    total=len(rows),
                    sample_note=note,
                    rows=json.dumps(sample, ensure_ascii=False, default=str),
                )
            ),
        ]

    def generate(self, question: str, sql: str, rows: List[Dict[str, Any]]):
        try:
            response = self.llm.invoke(self._messages(question, sql, rows))
            content = response.content if hasattr(response, "content") else str(response)
            return content.strip() or None
        except Exception as e:
            logger.warning(f"Resumen no disponible: {e}")
            return None

    def stream(self, question: str, sql: str, rows: List[Dict[str, Any]]) -> Iterator[str]:
        """Tokens del resumen. Si el LLM falla a mitad, el stream simplemente termina."""
        try:
            for token in self.llm.stream(self._messages(question, sql, rows)):
                if token:
                    yield token
        except Exception as e:
            logger.warning(f"Stream de resumen interrumpido: {e}")
