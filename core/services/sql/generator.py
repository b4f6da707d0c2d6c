# Generador SQL: convierte preguntas en lenguaje natural a SQL

import re
import logging
from typing import List, Optional

import sqlglot
from sqlglot.errors import SqlglotError
from sqlglot.tokens import TokenType
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from core.domain.errors import UpstreamUnavailable
from core.domain.query import GeneratedSQL, GenerationContext, EXPLAIN_PREFIX
from core.domain.session import Message
from core.ports.llm_port import LLMPort
from core.services.security.sql_validator import sqlglot_dialect
from utils.prompts import CORRECTION_PROMPT

logger = logging.getLogger(__name__)

_SQL_START = re.compile(r"^(SELECT|WITH|DESC|SHOW)\b", re.IGNORECASE)
_FENCED = re.compile(r"```(?:sql)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_EMBEDDED_START = re.compile(r"\b(SELECT|WITH)\b", re.IGNORECASE)


def _tokenize(text: str, dialect: Optional[str]):
    """
    Tokeniza con sqlglot. Si el texto completo no tokeniza (prosa con comillas
    sueltas después de la SQL) prueba con cada prefijo que termina en ';'.
    """
    read = sqlglot_dialect(dialect)
    try:
        return sqlglot.tokenize(text, read=read)
    except SqlglotError:
        pass
    for i, char in enumerate(text):
        if char != ";":
            continue
        try:
            return sqlglot.tokenize(text[: i + 1], read=read)
        except SqlglotError:
            continue
    return None


def _first_statement(text: str, dialect: Optional[str] = None) -> str:
    """
    Primera sentencia sin comentarios. Los espacios entre tokens se reducen a
    uno; el texto de cada token (literales incluidos) se copia sin cambios.
    """
    tokens = _tokenize(text, dialect)
    if tokens is None:
        # Sin tokens válidos: el validador reportará el error de sintaxis
        sql = text.strip()
        return sql if sql.endswith(";") else sql + ";"

    parts = []
    previous_end = None
    for token in tokens:
        if token.token_type == TokenType.SEMICOLON:
            if parts:
                break
            continue
        if previous_end is not None and token.start > previous_end + 1:
            parts.append(" ")
        parts.append(text[token.start : token.end + 1])
        previous_end = token.end

    sql = "".join(parts).strip()
    return sql + ";" if sql else ""


def clean_sql(raw: str, dialect: Optional[str] = None) -> str:
    """
    Extrae la sentencia SQL de la respuesta del LLM.

    Acepta SQL plana, bloques ```sql y SQL embebida en texto. Si no hay SQL
    retorna el texto tal cual para que se trate como explicación.
    """
    if not raw or not raw.strip():
        return ""

    content = raw.strip()
    if content.startswith(EXPLAIN_PREFIX):
        return content

    if _SQL_START.match(content) and "```" not in content:
        return _first_statement(content, dialect)

    fenced = _FENCED.search(content)
    if fenced and fenced.group(1).strip():
        return _first_statement(fenced.group(1), dialect)

    found = _EMBEDDED_START.search(content)
    if found:
        return _first_statement(content[found.start():], dialect)

    return content


class SQLGenerator:
    """Llama al LLM con system prompt + historial + mensaje actual"""

    def __init__(self, llm: LLMPort):
        self.llm = llm

    def _build_messages(self, system_prompt: str, history: List[Message], user_message: str) -> list:
        messages = [SystemMessage(content=system_prompt)]
        for m in history:
            if m.role == "user":
                messages.append(HumanMessage(content=m.content))
            else:
                messages.append(AIMessage(content=m.content))
        messages.append(HumanMessage(content=user_message))
        return messages

    def _call(self, messages: list) -> str:
        try:
            response = self.llm.invoke(messages)
        except Exception as e:
            logger.error(f"LLM falló: {e}")
            raise UpstreamUnavailable("llm", str(e))
        return response.content if hasattr(response, "content") else str(response)

    def generate(self, context: GenerationContext, history: List[Message], question: str) -> GeneratedSQL:
        raw = self._call(self._build_messages(context.system_prompt, history, question))
        generated = GeneratedSQL(raw=raw, sql=clean_sql(raw, context.dialect))
        logger.info(f"SQL generada: {generated.sql[:200]}")
        return generated

    def correct(
        self, context: GenerationContext, history: List[Message], wrong_sql: str, error: str
    ) -> GeneratedSQL:
        """Una sola corrección: el contexto trae el schema completo permitido"""
        prompt = CORRECTION_PROMPT.format(wrong_sql=wrong_sql, error=error[:500])
        raw = self._call(self._build_messages(context.system_prompt, history, prompt))
        generated = GeneratedSQL(raw=raw, sql=clean_sql(raw, context.dialect))
        logger.info(f"SQL corregida: {generated.sql[:200]}")
        return generated
