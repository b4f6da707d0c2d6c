import logging
import tiktoken
from config.settings import settings


def setup_logging():
    level = logging.DEBUG if settings.debug else getattr(
        logging, settings.logs.level.upper(), logging.INFO
    )
    logging.basicConfig(
        level=level,
        format=settings.logs.format if settings.debug else "%(levelname)s - %(name)s - %(message)s",
    )
    for noisy in [
        "httpx",
        "httpcore",
        "openai",
        "urllib3",
        "asyncio",
        "sentence_transformers",
        "sqlglot",
    ]:
        logging.getLogger(noisy).setLevel(logging.WARNING)


class TokenCounter:
    """Cuenta tokens de entrada/salida por llamada al LLM"""

    def __init__(self):
        try:
            self.encoder = tiktoken.get_encoding("cl100k_base")
        except Exception as e:
            logging.getLogger(__name__).warning(f"tiktoken no disponible: {e}")
            self.encoder = None
        self.total_tokens = 0
        self.calls = []

    def count(self, text: str) -> int:
        if not self.encoder:
            return len(text) // 4
        return len(self.encoder.encode(text))

    def track(self, input_text: str, output_text: str, model: str = "unknown"):
        input_tokens = self.count(input_text)
        output_tokens = self.count(output_text)
        total = input_tokens + output_tokens

        self.calls.append(
            {"model": model, "input": input_tokens, "output": output_tokens, "total": total}
        )
        # Solo las últimas 100 llamadas
        if len(self.calls) > 100:
            self.calls = self.calls[-100:]
        self.total_tokens += total

        logging.getLogger(__name__).debug(f"Tokens {model}: {input_tokens}→{output_tokens}")
        return total

    def get_summary(self) -> dict:
        return {
            "total_tokens": self.total_tokens,
            "total_calls": len(self.calls),
            "calls": self.calls[-5:] if settings.debug else [],
        }

    def reset(self):
        self.total_tokens = 0
        self.calls = []


token_counter = TokenCounter()
