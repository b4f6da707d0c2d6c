# Fábrica de LLM - Soporte multi-proveedor
# Proveedores: deepseek, openai, claude, groq, gemini, ollama

import time
import logging
from functools import lru_cache
from typing import Any, AsyncIterator, Iterator, List

from config.settings import settings
from core.ports.llm_port import LLMPort
from utils.logging import token_counter
from utils.metrics import get_metrics

logger = logging.getLogger(__name__)


def _text(messages: List[Any]) -> str:
    return " ".join(m.content for m in messages if hasattr(m, "content"))


class LLMWrapper(LLMPort):
    """Wrapper de LLM con conteo de tokens y métricas - Implementa LLMPort"""

    def __init__(self, llm, provider: str, model: str):
        self.llm = llm
        self.provider = provider
        self.model = model

    def _track(self, messages: List[Any], output_text: str, start: float):
        name = self.get_model_name()
        token_counter.track(_text(messages), output_text, name)
        get_metrics().record_llm_call(name, (time.time() - start) * 1000)

    def invoke(self, messages: List[Any]) -> Any:
        start = time.time()
        response = self.llm.invoke(messages)
        self._track(messages, getattr(response, "content", str(response)), start)
        return response

    def stream(self, messages: List[Any]) -> Iterator[str]:
        start = time.time()
        output = []
        for chunk in self.llm.stream(messages):
            content = getattr(chunk, "content", None)
            if content:
                output.append(content)
                yield content
        self._track(messages, "".join(output), start)

    async def ainvoke(self, messages: List[Any]) -> Any:
        start = time.time()
        response = await self.llm.ainvoke(messages)
        self._track(messages, getattr(response, "content", str(response)), start)
        return response

    async def astream(self, messages: List[Any]) -> AsyncIterator[str]:
        start = time.time()
        output = []
        async for chunk in self.llm.astream(messages):
            content = getattr(chunk, "content", None)
            if content:
                output.append(content)
                yield content
        self._track(messages, "".join(output), start)

    def get_model_name(self) -> str:
        return f"{self.provider}/{self.model}"


def _get_deepseek() -> LLMWrapper:
    from langchain_openai import ChatOpenAI

    model = settings.ai.llm_model or settings.ai.deepseek_model
    llm = ChatOpenAI(
        model=model,
        temperature=settings.ai.temperature,
        base_url="https://api.deepseek.com/v1",
        api_key=settings.ai.deepseek_api_key,
        max_tokens=settings.ai.max_tokens_response,
    )
    return LLMWrapper(llm, "deepseek", model)


def _get_openai() -> LLMWrapper:
    from langchain_openai import ChatOpenAI

    model = settings.ai.llm_model or settings.ai.openai_model
    llm = ChatOpenAI(
        model=model,
        temperature=settings.ai.temperature,
        api_key=settings.ai.openai_api_key,
        max_tokens=settings.ai.max_tokens_response,
    )
    return LLMWrapper(llm, "openai", model)


def _get_claude() -> LLMWrapper:
    try:
        from langchain_anthropic import ChatAnthropic
    except ImportError:
        raise ImportError("Instala el extra anthropic: pip install .[anthropic]")

    model = settings.ai.llm_model or settings.ai.anthropic_model
    llm = ChatAnthropic(
        model=model,
        temperature=settings.ai.temperature,
        api_key=settings.ai.anthropic_api_key,
        max_tokens=settings.ai.max_tokens_response,
    )
    return LLMWrapper(llm, "claude", model)


def _get_groq() -> LLMWrapper:
    try:
        from langchain_groq import ChatGroq
    except ImportError:
        raise ImportError("Instala el extra groq: pip install .[groq]")

    model = settings.ai.llm_model or settings.ai.groq_model
    llm = ChatGroq(
        model=model,
        temperature=settings.ai.temperature,
        api_key=settings.ai.groq_api_key,
        max_tokens=settings.ai.max_tokens_response,
    )
    return LLMWrapper(llm, "groq", model)


def _get_gemini() -> LLMWrapper:
    try:
        from langchain_google_genai import ChatGoogleGenerativeAI
    except ImportError:
        raise ImportError("Instala el extra gemini: pip install .[gemini]")

    model = settings.ai.llm_model or settings.ai.google_model
    llm = ChatGoogleGenerativeAI(
        model=model,
        temperature=settings.ai.temperature,
        google_api_key=settings.ai.google_api_key,
        max_output_tokens=settings.ai.max_tokens_response,
    )
    return LLMWrapper(llm, "gemini", model)


def _get_ollama() -> LLMWrapper:
    try:
        from langchain_ollama import ChatOllama
    except ImportError:
        raise ImportError("Instala el extra ollama: pip install .[ollama]")

    model = settings.ai.llm_model or settings.ai.ollama_model
    llm = ChatOllama(
        model=model,
        temperature=settings.ai.temperature,
        base_url=settings.ai.ollama_base_url,
    )
    return LLMWrapper(llm, "ollama", model)


PROVIDERS = {
    "deepseek": _get_deepseek,
    "openai": _get_openai,
    "claude": _get_claude,
    "groq": _get_groq,
    "gemini": _get_gemini,
    "ollama": _get_ollama,
}


@lru_cache(maxsize=1)
def get_llm(provider: str = None) -> LLMWrapper:
    """Retorna el LLM configurado según el proveedor"""
    provider = provider or settings.ai.llm_provider

    if provider not in PROVIDERS:
        available = ", ".join(PROVIDERS.keys())
        raise ValueError(f"Proveedor '{provider}' no soportado. Usa: {available}")

    llm = PROVIDERS[provider]()
    logger.info(f"LLM: {llm.get_model_name()}")
    return llm
