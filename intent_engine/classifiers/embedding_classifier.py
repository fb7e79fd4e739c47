"""Embedding-based intent classifier.

Scores a message by max cosine similarity against every seed example of each
intent, corrects the raw scores with the heuristic booster, then resolves the
winner with a confidence floor and priority tie-break.

Pipeline per request:

    text ──┬─> embed (thread, timeout) ──> max-cosine scores ──┐
           └─> extract entities (thread, timeout) ─────────────┴─> boost ─> resolve

The same class backs the semantic, remote and lexical implementations; they
differ only in the embedding provider.

Maintenance surface: add example utterances to config/seed_corpus.yaml
instead of expanding regex lists.
"""

import asyncio
import logging
import re
import time
from typing import Callable, Optional, Sequence

from ..config import settings
from ..corpus import SeedCorpus
from ..embeddings.providers import EmbeddingProvider
from ..entities import EntityExtractor
from ..errors import (
    EmbeddingFailure,
    EmbeddingTimeout,
    EntityExtractionFailure,
    EntityExtractionTimeout,
    InitializationFailure,
)
from ..models import ClassificationResult, Entity, Message, ParseOptions, ScoreMap
from ..observability import metrics
from ..responses import get_suggested_response
from .base import IntentClassifier
from .booster import HeuristicBooster, RuleContext
from .resolver import DecisionResolver
from .similarity import SeedEmbeddingCache, score_intents, validate_vector

logger = logging.getLogger(__name__)

SHORT_RESPONSE_RE = re.compile(
    r"^(yes|no|ok|sure|yeah|nope|yep|nah|maybe|perhaps|definitely|absolutely|correct|right|wrong|true|false)$",
    re.IGNORECASE,
)


def build_embedding_text(
    text: str,
    history: Sequence[Message] = (),
    max_chars: Optional[int] = None,
    excerpt_chars: Optional[int] = None,
) -> str:
    """Prefix bare acknowledgements ("yes", "ok", ...) with the last assistant turn.

    Only the embedding sees the prefix; rules still run on the original text.
    """
    max_chars = settings.short_response_max_chars if max_chars is None else max_chars
    excerpt_chars = settings.context_excerpt_chars if excerpt_chars is None else excerpt_chars

    stripped = text.strip()
    if not history or len(stripped) >= max_chars or not SHORT_RESPONSE_RE.match(stripped):
        return text

    last_assistant = next((m for m in reversed(history) if m.role == "assistant"), None)
    if last_assistant is None:
        return text
    return f"[Context: {last_assistant.content[:excerpt_chars]}] {text}"


class EmbeddingIntentClassifier(IntentClassifier):
    """Classify messages via seed-example embeddings plus heuristic rules.

    Args:
        name: Implementation name reported in results ("semantic", "lexical", ...).
        corpus: Seed corpus to embed at initialization.
        embedder_factory: Zero-argument callable returning the embedding
            provider. Called inside ``initialize`` so heavy models load lazily.
        entity_extractor: Entity collaborator; None disables extraction.
        booster: Rule chain (default: ``HeuristicBooster()``).
        resolver: Decision resolver (default: corpus priorities + settings).
        embedding_timeout: Seconds allowed per embedding call.
        entity_timeout: Seconds allowed per entity extraction call.
    """

    def __init__(
        self,
        name: str,
        corpus: SeedCorpus,
        embedder_factory: Callable[[], EmbeddingProvider],
        entity_extractor: Optional[EntityExtractor] = None,
        booster: Optional[HeuristicBooster] = None,
        resolver: Optional[DecisionResolver] = None,
        embedding_timeout: Optional[float] = None,
        entity_timeout: Optional[float] = None,
        description: str = "",
        accuracy: float = 0.0,
        avg_latency_ms: int = 0,
    ):
        self.name = name
        self.description = description
        self.accuracy = accuracy
        self.avg_latency_ms = avg_latency_ms

        self._corpus = corpus
        self._embedder_factory = embedder_factory
        self._entity_extractor = entity_extractor
        self._booster = booster or HeuristicBooster()
        self._resolver = resolver or DecisionResolver(priorities=corpus.priorities)
        self._embedding_timeout = embedding_timeout or settings.embedding_timeout_seconds
        self._entity_timeout = entity_timeout or settings.entity_timeout_seconds

        self._embedder: Optional[EmbeddingProvider] = None
        self._cache: Optional[SeedEmbeddingCache] = None

    @property
    def is_ready(self) -> bool:
        return self._cache is not None

    @property
    def cache(self) -> Optional[SeedEmbeddingCache]:
        return self._cache

    @property
    def booster(self) -> HeuristicBooster:
        return self._booster

    # =========================================================================
    # Initialization
    # =========================================================================

    async def initialize(self) -> None:
        if self._cache is not None:
            return

        if self._resolver.default_intent not in self._corpus:
            raise InitializationFailure(
                self.name,
                f"default intent '{self._resolver.default_intent}' is not in the seed corpus",
            )

        t0 = time.monotonic()
        try:
            embedder = await asyncio.to_thread(self._embedder_factory)
            cache = await asyncio.to_thread(
                SeedEmbeddingCache.build, self._corpus, embedder.embed_batch, embedder.model_name
            )
        except InitializationFailure:
            raise
        except Exception as e:
            raise InitializationFailure(self.name, f"{type(e).__name__}: {e}") from e

        self._embedder = embedder
        self._cache = cache
        logger.info(
            f"{self.name} classifier ready: model={cache.model_name} dim={cache.dimension} "
            f"corpus={cache.corpus_version} in {(time.monotonic() - t0) * 1000:.0f}ms"
        )

    async def aclose(self) -> None:
        if self._embedder is not None:
            await asyncio.to_thread(self._embedder.close)

    # =========================================================================
    # Collaborator calls
    # =========================================================================

    async def _embed(self, text: str) -> list[float]:
        try:
            vector = await asyncio.wait_for(
                asyncio.to_thread(self._embedder.embed, text),
                timeout=self._embedding_timeout,
            )
        except asyncio.TimeoutError:
            metrics.increment("embedding_failure_total", labels={"parser": self.name, "reason": "timeout"})
            raise EmbeddingTimeout(self._embedding_timeout) from None
        except EmbeddingFailure:
            metrics.increment("embedding_failure_total", labels={"parser": self.name, "reason": "error"})
            raise
        except Exception as e:
            metrics.increment("embedding_failure_total", labels={"parser": self.name, "reason": "error"})
            raise EmbeddingFailure(f"{self.name} embedding failed: {e}") from e

        vector = validate_vector(vector)
        self._cache.check_compatible(self._embedder.model_name, vector)
        return vector

    async def _extract_entities(self, text: str, enabled: bool) -> list[Entity]:
        if not enabled or self._entity_extractor is None:
            return []
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._entity_extractor.extract, text),
                timeout=self._entity_timeout,
            )
        except asyncio.TimeoutError:
            metrics.increment("entity_extraction_failure_total", labels={"parser": self.name, "reason": "timeout"})
            raise EntityExtractionTimeout(self._entity_timeout) from None
        except EntityExtractionFailure as e:
            logger.warning(f"Entity extraction failed, continuing without entities: {e}")
            metrics.increment("entity_extraction_failure_total", labels={"parser": self.name, "reason": "error"})
            return []

    # =========================================================================
    # Classification
    # =========================================================================

    async def score(self, text: str, history: Sequence[Message] = ()) -> ScoreMap:
        """Raw max-cosine scores, before any rule is applied."""
        if not self.is_ready:
            await self.initialize()
        vector = await self._embed(build_embedding_text(text, history))
        return score_intents(vector, self._cache)

    async def parse(self, text: str, options: Optional[ParseOptions] = None) -> ClassificationResult:
        """Classify ``text``.

        Returns a complete ClassificationResult or raises; never a partial result.

        Raises:
            EmbeddingFailure: Embedding errored, timed out or returned a bad vector.
            EntityExtractionTimeout: Entity extraction exceeded its time limit.
        """
        if not self.is_ready:
            await self.initialize()
        options = options or ParseOptions()
        t0 = time.perf_counter()

        embed_text = build_embedding_text(text, options.conversation_history)
        vector, entities = await asyncio.gather(
            self._embed(embed_text),
            self._extract_entities(text, options.include_entities),
        )

        raw_scores = score_intents(vector, self._cache)
        scores = self._booster.boost(raw_scores, entities, text, options.highlighted_text)
        resolution = self._resolver.resolve(scores)

        suggested = None
        if options.include_suggested_response:
            try:
                suggested = get_suggested_response(resolution.intent, text, entities)
            except Exception as e:
                logger.warning(f"Suggested response generation failed for {resolution.intent}: {e}")

        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        ranked = sorted(scores.items(), key=lambda x: x[1], reverse=True)
        logger.info(
            "CLASSIFY_TRACE parser=%s intent=%s conf=%.2f low_conf=%s tie_broken=%s top3=%s",
            self.name, resolution.intent, resolution.confidence,
            resolution.low_confidence, resolution.tie_broken,
            [(n, round(s, 2)) for n, s in ranked[:3]],
        )

        return ClassificationResult(
            intent=resolution.intent,
            confidence=resolution.confidence,
            scores=scores,
            entities=tuple(entities),
            processing_time_ms=elapsed_ms,
            parser=self.name,
            low_confidence=resolution.low_confidence,
            suggested_response=suggested,
        )

    def explain(
        self,
        raw_scores: ScoreMap,
        text: str,
        entities: Sequence[Entity] = (),
        highlighted_text: Optional[str] = None,
    ) -> dict:
        """Diagnostic breakdown: raw vs boosted scores and the rules that fired."""
        ctx = RuleContext(text=text, entities=tuple(entities), highlighted_text=highlighted_text)
        boosted = self._booster.boost(raw_scores, entities, text, highlighted_text)
        resolution = self._resolver.resolve(boosted)
        return {
            "text": text,
            "winner": resolution.intent,
            "confidence": resolution.confidence,
            "low_confidence": resolution.low_confidence,
            "tie_broken": resolution.tie_broken,
            "rules_fired": self._booster.fired_rules(ctx),
            "raw_scores": {k: round(v, 4) for k, v in sorted(raw_scores.items(), key=lambda x: -x[1])},
            "boosted_scores": {k: round(v, 4) for k, v in sorted(boosted.items(), key=lambda x: -x[1])},
            "floor": self._resolver.floor,
            "epsilon": self._resolver.epsilon,
        }
