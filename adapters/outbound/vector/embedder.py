# Embeddings locales con sentence-transformers

import logging
import threading
from typing import List

from config.settings import settings
from core.ports.vector_port import EmbeddingPort

logger = logging.getLogger(__name__)


class SentenceTransformerEmbedder(EmbeddingPort):
    """Carga el modelo en el primer uso; el modelo es compartido entre threads"""

    def __init__(self, model_name: str = None):
        self.model_name = model_name or settings.embedding.model
        self._model = None
        self._lock = threading.Lock()

    def _get_model(self):
        if self._model is None:
            with self._lock:
                if self._model is None:
                    from sentence_transformers import SentenceTransformer

                    self._model = SentenceTransformer(self.model_name)
                    logger.info(f"Modelo embeddings cargado: {self.model_name}")
        return self._model

    def embed(self, text: str) -> List[float]:
        return self._get_model().encode(text).tolist()

    def embed_many(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return [v.tolist() for v in self._get_model().encode(texts)]


_embedder = None


def get_embedder() -> SentenceTransformerEmbedder:
    global _embedder
    if _embedder is None:
        _embedder = SentenceTransformerEmbedder()
    return _embedder
