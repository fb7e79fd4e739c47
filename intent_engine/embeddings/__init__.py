"""Embedding backends used by the embedding intent classifier."""

from .lexical import LexicalEmbedder, tokenize
from .providers import (
    EmbeddingProvider,
    OllamaEmbedder,
    OpenAIEmbedder,
    SentenceTransformerEmbedder,
    get_remote_embedder,
)

__all__ = [
    "EmbeddingProvider",
    "LexicalEmbedder",
    "OllamaEmbedder",
    "OpenAIEmbedder",
    "SentenceTransformerEmbedder",
    "get_remote_embedder",
    "tokenize",
]
