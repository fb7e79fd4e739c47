"""
Embedding provider abstraction.
Enables switching between a local sentence-transformers model, Ollama and
OpenAI-compatible embedding APIs.

Providers are synchronous; classifiers call them through ``asyncio.to_thread``.
Any transport or model error surfaces as ``EmbeddingFailure``.
"""

from abc import ABC, abstractmethod
from typing import Optional
import logging

import httpx

from ..config import settings
from ..errors import EmbeddingFailure

logger = logging.getLogger(__name__)

# Known embedding dimensions by model name
_EMBEDDING_DIMENSIONS = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "nomic-embed-text": 768,
    "nomic-embed-text-v2-moe": 768,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name/identifier."""
        pass

    @property
    @abstractmethod
    def dimensions(self) -> Optional[int]:
        """Return the embedding dimension, or None if not known before the first call."""
        pass

    @abstractmethod
    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed a list of texts and return their embeddings.

        Args:
            texts: List of text strings to embed

        Returns:
            List of embedding vectors (each a list of floats)

        Raises:
            EmbeddingFailure: If the backend errors.
        """
        pass

    def embed(self, text: str) -> list[float]:
        """Embed a single text and return its embedding."""
        vectors = self.embed_batch([text])
        if not vectors:
            raise EmbeddingFailure(f"{self.model_name} returned no embedding")
        return vectors[0]

    def close(self) -> None:
        """Release any held resources."""


class SentenceTransformerEmbedder(EmbeddingProvider):
    """Local embedding provider using sentence-transformers (mean-pooled, normalized)."""

    def __init__(self, model: Optional[str] = None, device: Optional[str] = None):
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise ImportError(
                "sentence-transformers package not installed. "
                "Install with: pip install 'intent-engine[semantic]'"
            )

        self.model = model or settings.semantic_model
        self.device = device or settings.semantic_device
        logger.info(f"Loading sentence-transformers model {self.model} on {self.device}")
        self.model_instance = SentenceTransformer(self.model, device=self.device)
        self._dimensions = self.model_instance.get_sentence_embedding_dimension()

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return self.model

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        texts = [t if t.strip() else " " for t in texts]

        try:
            embeddings = self.model_instance.encode(texts, normalize_embeddings=True)
            return embeddings.tolist()
        except Exception as e:
            logger.error(f"Local embedding failed: {e}")
            raise EmbeddingFailure(f"{self.model} embedding failed: {e}") from e


class OllamaEmbedder(EmbeddingProvider):
    """Embedding generator using Ollama's /api/embed endpoint."""

    def __init__(
        self,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
    ):
        """Initialize the embeddings client.

        Args:
            model: Ollama model to use for embeddings
            base_url: Ollama API base URL (default: from settings)
            timeout: Request timeout in seconds
        """
        self.model = model or settings.ollama_embedding_model
        self.base_url = (base_url or settings.ollama_url).rstrip("/")
        self.timeout = timeout
        self._client: Optional[httpx.Client] = None

    @property
    def model_name(self) -> str:
        return self.model

    @property
    def dimensions(self) -> Optional[int]:
        return _EMBEDDING_DIMENSIONS.get(self.model)

    @property
    def client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        try:
            response = self.client.post(
                f"{self.base_url}/api/embed",
                json={"model": self.model, "input": texts},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"HTTP error generating embedding: {e}")
            raise EmbeddingFailure(f"Ollama embedding request failed: {e}") from e
        except ValueError as e:
            raise EmbeddingFailure(f"Ollama returned invalid JSON: {e}") from e

        # Ollama returns embeddings in 'embeddings' array
        embeddings = data.get("embeddings") or []
        if len(embeddings) != len(texts):
            raise EmbeddingFailure(
                f"Ollama returned {len(embeddings)} embeddings for {len(texts)} texts"
            )
        return embeddings

    def close(self):
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class OpenAIEmbedder(EmbeddingProvider):
    """OpenAI (or OpenAI-compatible) embedding provider."""

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        import openai

        self.model = model or settings.openai_embedding_model
        self.client = openai.OpenAI(
            api_key=api_key or settings.openai_api_key,
            base_url=base_url or settings.openai_base_url,
        )

    @property
    def dimensions(self) -> Optional[int]:
        return _EMBEDDING_DIMENSIONS.get(self.model)

    @property
    def model_name(self) -> str:
        return self.model

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts using the OpenAI API."""
        if not texts:
            return []

        # The API rejects empty strings
        texts = [t if t.strip() else " " for t in texts]

        try:
            response = self.client.embeddings.create(model=self.model, input=texts)
        except Exception as e:
            logger.error(f"OpenAI embedding failed: {e}")
            raise EmbeddingFailure(f"OpenAI embedding request failed: {e}") from e
        return [item.embedding for item in response.data]

    def close(self) -> None:
        self.client.close()


def get_remote_embedder(provider: Optional[str] = None) -> EmbeddingProvider:
    """
    Factory function for the configured remote embedding provider.

    Args:
        provider: "ollama" or "openai". Defaults to settings.embedding_provider.

    Returns:
        An EmbeddingProvider instance
    """
    provider = (provider or settings.embedding_provider).lower()

    providers = {
        "ollama": OllamaEmbedder,
        "openai": OpenAIEmbedder,
    }

    if provider not in providers:
        raise ValueError(f"Unknown embedding provider: {provider}. Available: {list(providers.keys())}")

    logger.info(f"Initializing {provider} embedding provider")
    return providers[provider]()
