"""Model-free bag-of-words embedder over the seed corpus vocabulary.

Each dimension is one corpus token, so two texts only score above zero when
they share vocabulary. Text made entirely of unknown words embeds to the zero
vector, which the similarity scorer maps to 0 for every intent.
"""

import logging
import math
import re
from typing import Iterable

from ..corpus import SeedCorpus
from .providers import EmbeddingProvider

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9']+")


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens; typographic apostrophes are folded to ASCII."""
    text = text.lower().replace("’", "'")
    tokens = (t.strip("'") for t in _TOKEN_RE.findall(text))
    return [t for t in tokens if t]


class LexicalEmbedder(EmbeddingProvider):
    """Term-count vectors over a fixed vocabulary, L2-normalized."""

    def __init__(self, vocabulary: Iterable[str], name: str = "lexical-bow"):
        self._index: dict[str, int] = {}
        for token in vocabulary:
            if token not in self._index:
                self._index[token] = len(self._index)
        if not self._index:
            raise ValueError("Lexical embedder needs a non-empty vocabulary")
        self._name = name

    @classmethod
    def from_corpus(cls, corpus: SeedCorpus) -> "LexicalEmbedder":
        vocabulary = [tok for ex in corpus.iter_examples() for tok in tokenize(ex.text)]
        embedder = cls(vocabulary, name=f"lexical-bow@{corpus.version}")
        logger.info(f"Lexical vocabulary built: {embedder.dimensions} tokens from corpus {corpus.version}")
        return embedder

    @property
    def model_name(self) -> str:
        return self._name

    @property
    def dimensions(self) -> int:
        return len(self._index)

    @property
    def vocabulary(self) -> list[str]:
        return list(self._index)

    def _vectorize(self, text: str) -> list[float]:
        vec = [0.0] * len(self._index)
        for token in tokenize(text):
            idx = self._index.get(token)
            if idx is not None:
                vec[idx] += 1.0
        norm = math.sqrt(sum(x * x for x in vec))
        if norm == 0.0:
            return vec
        return [x / norm for x in vec]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self._vectorize(t) for t in texts]
