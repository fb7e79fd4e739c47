"""Seed embedding cache and max-cosine similarity scoring.

Each intent is scored by its single best-matching seed example rather than a
centroid: intents with heterogeneous phrasing (e.g. web_search covers both
weather and code requests) would otherwise be penalized for breadth.
"""

import logging
import math
import operator
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..corpus import SeedCorpus
from ..errors import EmbeddingFailure
from ..models import ScoreMap

logger = logging.getLogger(__name__)

Vector = list[float]


def l2_normalize(vec: Sequence[float]) -> Vector:
    """L2-normalize a vector. Returns the zero vector unchanged if its norm is 0."""
    norm = math.sqrt(sum(x * x for x in vec))
    if norm < 1e-12:
        return list(vec)
    return [x / norm for x in vec]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| |b|); 0.0 when either vector has zero norm."""
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a < 1e-12 or norm_b < 1e-12:
        return 0.0
    return sum(map(operator.mul, a, b)) / (norm_a * norm_b)


def validate_vector(vec, expected_dimension: Optional[int] = None) -> Vector:
    """Check an embedding is a non-empty list of finite numbers.

    Raises:
        EmbeddingFailure: On malformed output or a dimension mismatch.
    """
    if not isinstance(vec, (list, tuple)) or not vec:
        raise EmbeddingFailure(f"Embedding must be a non-empty vector, got {type(vec).__name__}")
    try:
        floats = [float(x) for x in vec]
    except (TypeError, ValueError) as e:
        raise EmbeddingFailure(f"Embedding contains non-numeric values: {e}") from e
    if not all(math.isfinite(x) for x in floats):
        raise EmbeddingFailure("Embedding contains non-finite values")
    if expected_dimension is not None and len(floats) != expected_dimension:
        raise EmbeddingFailure(
            f"Embedding dimension {len(floats)} does not match cache dimension {expected_dimension}"
        )
    return floats


@dataclass(frozen=True)
class SeedEmbeddingCache:
    """Normalized seed vectors per intent, tagged with the model that made them.

    Read-only after construction. Rebuilding means building a new cache.
    """

    model_name: str
    dimension: int
    corpus_version: str
    vectors: dict[str, tuple[tuple[float, ...], ...]]

    @classmethod
    def build(
        cls,
        corpus: SeedCorpus,
        embed_batch_fn: Callable[[list[str]], list[list[float]]],
        model_name: str,
    ) -> "SeedEmbeddingCache":
        """Embed every seed example in one batch and group the vectors by intent."""
        # Flatten all texts for batch embedding
        all_texts: list[str] = []
        intent_ranges: list[tuple[str, int, int]] = []
        for intent, utterances in corpus.examples.items():
            start = len(all_texts)
            all_texts.extend(utterances)
            intent_ranges.append((intent, start, len(all_texts)))

        logger.info(
            "Embedding seed corpus: %d examples across %d intents with %s",
            len(all_texts), len(intent_ranges), model_name,
        )

        t0 = time.monotonic()
        raw = embed_batch_fn(all_texts)
        if raw is None or len(raw) != len(all_texts):
            raise EmbeddingFailure(
                f"Expected {len(all_texts)} seed embeddings, got {0 if raw is None else len(raw)}"
            )

        dimension = len(validate_vector(raw[0]))
        vectors: dict[str, tuple[tuple[float, ...], ...]] = {}
        for intent, start, end in intent_ranges:
            vectors[intent] = tuple(
                tuple(l2_normalize(validate_vector(raw[i], dimension))) for i in range(start, end)
            )

        logger.info(
            "Seed cache built for %d intents: dim=%d embed=%.0fms",
            len(vectors), dimension, (time.monotonic() - t0) * 1000,
        )
        return cls(
            model_name=model_name,
            dimension=dimension,
            corpus_version=corpus.version,
            vectors=vectors,
        )

    @property
    def intents(self) -> list[str]:
        return list(self.vectors)

    def check_compatible(self, model_name: str, vector: Sequence[float]) -> None:
        """Refuse to compare vectors produced by a different model or dimension."""
        if model_name != self.model_name:
            raise EmbeddingFailure(
                f"Query embedded with {model_name!r} but seed cache was built with {self.model_name!r}"
            )
        if len(vector) != self.dimension:
            raise EmbeddingFailure(
                f"Query dimension {len(vector)} does not match cache dimension {self.dimension}"
            )


def score_intents(query_vector: Sequence[float], cache: SeedEmbeddingCache) -> ScoreMap:
    """Per-intent maximum cosine similarity of the query against the seed vectors.

    Seed vectors are stored normalized, so only the query norm is computed here.
    A zero query vector scores 0.0 for every intent.
    """
    query = validate_vector(query_vector, cache.dimension)
    qnorm = math.sqrt(sum(x * x for x in query))

    scores: ScoreMap = {}
    for intent, seeds in cache.vectors.items():
        if qnorm < 1e-12:
            scores[intent] = 0.0
            continue
        best = max(sum(map(operator.mul, query, seed)) for seed in seeds)
        scores[intent] = best / qnorm
    return scores
