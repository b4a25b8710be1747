"""
Embedding Provider Module

Turns text into fixed-length vectors through a remote Ollama server or a
local sentence-transformers model.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

import requests

try:
    from sentence_transformers import SentenceTransformer
    SBERT_AVAILABLE = True
except ImportError:
    SBERT_AVAILABLE = False

from .errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding provider."""
    provider: str = "ollama"  # ollama or local
    model: str = "nomic-embed-text"
    base_url: str = "http://localhost:11434"
    timeout: Optional[float] = None
    device: str = "cpu"  # local only


class Embedder(Protocol):
    def embed(self, text: str) -> List[float]:
        ...


class OllamaEmbedder:
    """Embeddings from an Ollama server's /api/embeddings endpoint."""

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.config = config or EmbeddingConfig()

    @property
    def url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/api/embeddings"

    def embed(self, text: str) -> List[float]:
        payload = {"model": self.config.model, "prompt": text}
        try:
            response = requests.post(self.url, json=payload, timeout=self.config.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Embedding request to %s failed: %s", self.url, exc)
            raise ProviderError(f"Embedding request failed: {exc}", provider="ollama") from exc

        embedding = body.get("embedding") if isinstance(body, dict) else None
        if not isinstance(embedding, list) or not embedding:
            raise ProviderError("Malformed embedding response: no 'embedding' vector", provider="ollama")

        try:
            return [float(x) for x in embedding]
        except (TypeError, ValueError) as exc:
            raise ProviderError("Malformed embedding response: non-numeric vector", provider="ollama") from exc


class SentenceTransformerEmbedder:
    """Local embeddings; the model is loaded on first use."""

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.config = config or EmbeddingConfig(provider="local", model="sentence-transformers/all-MiniLM-L6-v2")
        self._model: Optional["SentenceTransformer"] = None

    def _load_model(self) -> "SentenceTransformer":
        if self._model is None:
            if not SBERT_AVAILABLE:
                raise ImportError("sentence-transformers required for local embeddings")
            logger.info("Loading embedding model: %s", self.config.model)
            self._model = SentenceTransformer(self.config.model, device=self.config.device)
        return self._model

    def embed(self, text: str) -> List[float]:
        model = self._load_model()
        try:
            vector = model.encode([text], convert_to_numpy=True, show_progress_bar=False)[0]
        except Exception as exc:
            raise ProviderError(f"Local embedding failed: {exc}", provider="local") from exc
        return vector.astype(float).tolist()


def build_embedder(config: EmbeddingConfig) -> Embedder:
    """Create the embedder named by `config.provider`."""
    if config.provider == "ollama":
        return OllamaEmbedder(config)
    elif config.provider == "local":
        return SentenceTransformerEmbedder(config)
    else:
        raise ValueError(f"Unknown embedding provider: {config.provider}")
