"""Classifier selection with lazy initialization and fallback.

Implementations in preference order:

    semantic  local sentence-transformers embeddings   (best accuracy, needs the model)
    remote    Ollama / OpenAI embedding API            (needs the service)
    lexical   corpus bag-of-words embeddings           (no model)
    keyword   weighted keyword rules                   (no model, no corpus)

``get_implementation`` starts with the requested (or default) implementation
and falls through the rest of the enabled chain on ``InitializationFailure``.
If every enabled implementation fails, an emergency keyword classifier is
built outside the registry; if even that fails, ``InitializationFailure``
propagates.

Concurrent callers share one initialization task per implementation. A failed
implementation stays failed until ``reset`` is called.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import settings
from ..corpus import SeedCorpus, load_seed_corpus
from ..embeddings import LexicalEmbedder, SentenceTransformerEmbedder, get_remote_embedder
from ..entities import EntityExtractor
from ..errors import InitializationFailure
from ..models import ImplementationInfo, ImplementationStatus
from ..observability import get_logger, metrics
from .base import IntentClassifier
from .embedding_classifier import EmbeddingIntentClassifier
from .keyword_classifier import KeywordIntentClassifier

logger = logging.getLogger(__name__)

ClassifierFactory = Callable[[], IntentClassifier]

PREFERENCE_ORDER: tuple[str, ...] = ("semantic", "remote", "lexical", "keyword")


@dataclass(frozen=True)
class ImplementationMeta:
    description: str
    accuracy: float
    avg_latency_ms: int


IMPLEMENTATION_META: dict[str, ImplementationMeta] = {
    "semantic": ImplementationMeta("Local sentence-transformers embeddings with heuristic rules", 0.95, 42),
    "remote": ImplementationMeta("Ollama/OpenAI embedding API with heuristic rules", 0.88, 67),
    "lexical": ImplementationMeta("Corpus-vocabulary bag-of-words embeddings with heuristic rules", 0.85, 20),
    "keyword": ImplementationMeta("Weighted keyword rules (no model, lowest latency)", 0.82, 15),
}


def enabled_from_settings() -> list[str]:
    flags = {
        "semantic": settings.enable_semantic,
        "remote": settings.enable_remote,
        "lexical": settings.enable_lexical,
        "keyword": settings.enable_keyword,
    }
    return [name for name in PREFERENCE_ORDER if flags[name]]


class ClassifierSelector:
    """Owns classifier instances and hands out the best available one.

    Args:
        factories: name -> zero-argument constructor. Defaults to the four
            built-in implementations, built from ``settings``.
        enabled: Implementation names allowed to run, in preference order.
            Defaults to the ``enable_*`` settings.
        default: Implementation used when ``get_implementation`` gets no name.
        corpus: Seed corpus for embedding implementations. Loaded from
            ``settings.seed_corpus_path`` on first use if omitted.
        entity_extractor: Shared entity collaborator for embedding classifiers.
    """

    def __init__(
        self,
        factories: Optional[dict[str, ClassifierFactory]] = None,
        enabled: Optional[list[str]] = None,
        default: Optional[str] = None,
        corpus: Optional[SeedCorpus] = None,
        entity_extractor: Optional[EntityExtractor] = None,
    ):
        self._corpus = corpus
        self._entity_extractor = entity_extractor
        self._factories = factories if factories is not None else self._default_factories()

        order = enabled if enabled is not None else enabled_from_settings()
        self.enabled: list[str] = [name for name in order if name in self._factories]
        self.default = default or settings.default_parser

        self._instances: dict[str, IntentClassifier] = {}
        self._status: dict[str, ImplementationStatus] = {
            name: ImplementationStatus.NOT_STARTED for name in self._factories
        }
        self._errors: dict[str, InitializationFailure] = {}
        self._init_tasks: dict[str, asyncio.Future] = {}
        self._emergency: Optional[IntentClassifier] = None
        self._log = get_logger("selector")

    # =========================================================================
    # Default implementations
    # =========================================================================

    def _get_corpus(self) -> SeedCorpus:
        if self._corpus is None:
            self._corpus = load_seed_corpus()
        return self._corpus

    def _get_entity_extractor(self) -> EntityExtractor:
        if self._entity_extractor is None:
            self._entity_extractor = EntityExtractor()
        return self._entity_extractor

    def _embedding_classifier(self, name: str, embedder_factory) -> EmbeddingIntentClassifier:
        meta = IMPLEMENTATION_META[name]
        return EmbeddingIntentClassifier(
            name=name,
            corpus=self._get_corpus(),
            embedder_factory=embedder_factory,
            entity_extractor=self._get_entity_extractor(),
            description=meta.description,
            accuracy=meta.accuracy,
            avg_latency_ms=meta.avg_latency_ms,
        )

    def _default_factories(self) -> dict[str, ClassifierFactory]:
        return {
            "semantic": lambda: self._embedding_classifier("semantic", SentenceTransformerEmbedder),
            "remote": lambda: self._embedding_classifier("remote", get_remote_embedder),
            "lexical": lambda: self._embedding_classifier(
                "lexical", lambda: LexicalEmbedder.from_corpus(self._get_corpus())
            ),
            "keyword": KeywordIntentClassifier,
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def status(self, name: str) -> ImplementationStatus:
        return self._status.get(name, ImplementationStatus.NOT_STARTED)

    async def _initialize(self, name: str) -> IntentClassifier:
        self._status[name] = ImplementationStatus.INITIALIZING
        try:
            instance = self._factories[name]()
            await instance.initialize()
        except Exception as e:
            failure = e if isinstance(e, InitializationFailure) else InitializationFailure(name, str(e))
            self._status[name] = ImplementationStatus.FAILED
            self._errors[name] = failure
            metrics.increment("initialization_failure_total", labels={"parser": name})
            self._log.warn("initialization_failed", implementation=name, reason=failure.reason)
            if failure is e:
                raise
            raise failure from e

        self._instances[name] = instance
        self._status[name] = ImplementationStatus.READY
        self._log.info("implementation_ready", implementation=name)
        return instance

    async def _ensure(self, name: str) -> IntentClassifier:
        """Return the ready instance for ``name``, initializing it at most once."""
        if name in self._instances:
            return self._instances[name]
        if name not in self.enabled:
            raise InitializationFailure(name, "implementation is disabled")

        task = self._init_tasks.get(name)
        if task is None:
            task = asyncio.ensure_future(self._initialize(name))
            self._init_tasks[name] = task
        # Shielded so one cancelled caller does not abort a shared initialization
        return await asyncio.shield(task)

    async def get_implementation(self, name: Optional[str] = None) -> IntentClassifier:
        """Return a ready classifier, falling back through the enabled chain.

        Raises:
            InitializationFailure: If no implementation, including the
                emergency keyword classifier, can start.
        """
        requested = (name or self.default).lower()
        if requested not in self._factories:
            logger.warning(f"Unknown parser '{requested}', using default '{self.default}'")
            requested = self.default

        chain = [requested] + [n for n in self.enabled if n != requested]
        for candidate in chain:
            try:
                instance = await self._ensure(candidate)
            except InitializationFailure as e:
                logger.warning(f"{candidate} classifier unavailable: {e.reason}")
                continue
            if candidate != requested:
                metrics.increment(
                    "implementation_fallback_total",
                    labels={"requested": requested, "used": candidate},
                )
                self._log.info("implementation_fallback", requested=requested, used=candidate)
            return instance

        return await self._emergency_classifier(requested)

    async def _emergency_classifier(self, requested: str) -> IntentClassifier:
        if self._emergency is None:
            logger.error("All classifiers failed, creating emergency keyword classifier")
            try:
                emergency = KeywordIntentClassifier()
                await emergency.initialize()
            except Exception as e:
                raise InitializationFailure("keyword", f"emergency classifier failed: {e}") from e
            self._emergency = emergency
        metrics.increment("implementation_fallback_total", labels={"requested": requested, "used": "emergency"})
        return self._emergency

    def reset(self, name: str) -> None:
        """Forget a failed implementation so the next request retries it."""
        if self._status.get(name) == ImplementationStatus.FAILED:
            self._status[name] = ImplementationStatus.NOT_STARTED
            self._errors.pop(name, None)
            self._init_tasks.pop(name, None)

    async def warmup(self) -> dict[str, ImplementationStatus]:
        """Initialize every enabled implementation concurrently. Failures are logged, not raised."""
        results = await asyncio.gather(
            *(self._ensure(name) for name in self.enabled),
            return_exceptions=True,
        )
        for name, result in zip(self.enabled, results):
            if isinstance(result, BaseException):
                logger.warning(f"Warmup: {name} failed: {result}")
            else:
                logger.info(f"Warmup: {name} ready")
        return {name: self.status(name) for name in self.enabled}

    def list_implementations(self) -> list[ImplementationInfo]:
        infos = []
        for name in self.enabled:
            meta = IMPLEMENTATION_META.get(name)
            instance = self._instances.get(name)
            infos.append(ImplementationInfo(
                name=name,
                description=meta.description if meta else getattr(instance, "description", ""),
                status=self.status(name),
                accuracy=meta.accuracy if meta else getattr(instance, "accuracy", 0.0),
                avg_latency_ms=meta.avg_latency_ms if meta else getattr(instance, "avg_latency_ms", 0),
            ))
        return infos

    async def aclose(self) -> None:
        for instance in self._instances.values():
            await instance.aclose()
