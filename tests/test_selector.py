"""Tests for ClassifierSelector: lazy init, fallback chain, emergency path."""

import asyncio
from typing import Optional

import pytest

from intent_engine.classifiers import selector as selector_module
from intent_engine.classifiers.base import IntentClassifier
from intent_engine.classifiers.embedding_classifier import EmbeddingIntentClassifier
from intent_engine.classifiers.keyword_classifier import KeywordIntentClassifier
from intent_engine.classifiers.selector import ClassifierSelector
from intent_engine.errors import InitializationFailure
from intent_engine.models import ClassificationResult, ImplementationStatus, ParseOptions
from intent_engine.observability import metrics


class StubClassifier(IntentClassifier):
    """Classifier whose initialization can be made slow or failing."""

    def __init__(self, name: str, fail: Optional[Exception] = None, delay: float = 0.0):
        self.name = name
        self.fail = fail
        self.delay = delay
        self.init_calls = 0
        self.closed = False
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        self.init_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        self._ready = True

    async def parse(self, text: str, options: Optional[ParseOptions] = None) -> ClassificationResult:
        return ClassificationResult(
            intent="greeting",
            confidence=1.0,
            scores={"greeting": 1.0},
            entities=(),
            processing_time_ms=0,
            parser=self.name,
        )

    async def aclose(self) -> None:
        self.closed = True


class CountingFactory:
    def __init__(self, name, **kwargs):
        self.name = name
        self.kwargs = kwargs
        self.instances: list[StubClassifier] = []

    def __call__(self):
        instance = StubClassifier(self.name, **self.kwargs)
        self.instances.append(instance)
        return instance

    @property
    def calls(self) -> int:
        return len(self.instances)


def _selector(**factories):
    names = list(factories)
    return ClassifierSelector(factories=factories, enabled=names, default=names[0])


def _fallbacks(requested, used):
    return metrics.get_counter("implementation_fallback_total").get({"requested": requested, "used": used})


# =============================================================================
# Selection and fallback
# =============================================================================

class TestGetImplementation:

    @pytest.mark.asyncio
    async def test_default_used_when_ready(self):
        sel = _selector(semantic=CountingFactory("semantic"), keyword=CountingFactory("keyword"))
        clf = await sel.get_implementation()
        assert clf.name == "semantic"
        assert sel.status("semantic") == ImplementationStatus.READY
        assert sel.status("keyword") == ImplementationStatus.NOT_STARTED
        assert metrics.get_counter("implementation_fallback_total").total() == 0

    @pytest.mark.asyncio
    async def test_falls_back_in_preference_order(self):
        sel = _selector(
            semantic=CountingFactory("semantic", fail=InitializationFailure("semantic", "no model")),
            lexical=CountingFactory("lexical"),
            keyword=CountingFactory("keyword"),
        )
        clf = await sel.get_implementation("semantic")
        assert clf.name == "lexical"
        assert sel.status("semantic") == ImplementationStatus.FAILED
        assert sel.status("lexical") == ImplementationStatus.READY
        assert _fallbacks("semantic", "lexical") == 1

        listed = {info.name: info.status for info in sel.list_implementations()}
        assert listed == {
            "semantic": ImplementationStatus.FAILED,
            "lexical": ImplementationStatus.READY,
            "keyword": ImplementationStatus.NOT_STARTED,
        }

    @pytest.mark.asyncio
    async def test_requested_name_tried_first(self):
        sel = _selector(semantic=CountingFactory("semantic"), keyword=CountingFactory("keyword"))
        assert (await sel.get_implementation("keyword")).name == "keyword"
        assert sel.status("semantic") == ImplementationStatus.NOT_STARTED

    @pytest.mark.asyncio
    async def test_name_is_case_insensitive(self):
        sel = _selector(semantic=CountingFactory("semantic"), keyword=CountingFactory("keyword"))
        assert (await sel.get_implementation("KEYWORD")).name == "keyword"

    @pytest.mark.asyncio
    async def test_unknown_name_uses_default(self):
        sel = _selector(semantic=CountingFactory("semantic"), keyword=CountingFactory("keyword"))
        assert (await sel.get_implementation("quantum")).name == "semantic"

    @pytest.mark.asyncio
    async def test_disabled_implementation_is_skipped(self):
        factories = {"semantic": CountingFactory("semantic"), "keyword": CountingFactory("keyword")}
        sel = ClassifierSelector(factories=factories, enabled=["keyword"], default="semantic")
        clf = await sel.get_implementation()
        assert clf.name == "keyword"
        assert factories["semantic"].calls == 0
        assert _fallbacks("semantic", "keyword") == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self):
        sel = _selector(semantic=CountingFactory("semantic", fail=RuntimeError("CUDA exploded")),
                        keyword=CountingFactory("keyword"))
        await sel.get_implementation()
        failure = sel._errors["semantic"]
        assert isinstance(failure, InitializationFailure)
        assert failure.implementation == "semantic"
        assert "CUDA exploded" in failure.reason
        assert metrics.get_counter("initialization_failure_total").get({"parser": "semantic"}) == 1

    @pytest.mark.asyncio
    async def test_factory_error_is_wrapped(self):
        def _broken():
            raise ImportError("sentence-transformers package not installed")

        sel = ClassifierSelector(
            factories={"semantic": _broken, "keyword": CountingFactory("keyword")},
            enabled=["semantic", "keyword"],
            default="semantic",
        )
        assert (await sel.get_implementation()).name == "keyword"
        assert sel.status("semantic") == ImplementationStatus.FAILED


# =============================================================================
# Lifecycle
# =============================================================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_initialization(self):
        factory = CountingFactory("semantic", delay=0.05)
        sel = _selector(semantic=factory)
        results = await asyncio.gather(*(sel.get_implementation() for _ in range(5)))
        assert factory.calls == 1
        assert factory.instances[0].init_calls == 1
        assert all(r is results[0] for r in results)

    @pytest.mark.asyncio
    async def test_failure_is_cached_until_reset(self):
        failing = CountingFactory("semantic", fail=InitializationFailure("semantic", "down"))
        sel = _selector(semantic=failing, keyword=CountingFactory("keyword"))

        await sel.get_implementation()
        await sel.get_implementation()
        assert failing.calls == 1

        sel.reset("semantic")
        assert sel.status("semantic") == ImplementationStatus.NOT_STARTED
        await sel.get_implementation()
        assert failing.calls == 2

    @pytest.mark.asyncio
    async def test_reset_ignores_ready_implementations(self):
        factory = CountingFactory("semantic")
        sel = _selector(semantic=factory)
        first = await sel.get_implementation()
        sel.reset("semantic")
        assert await sel.get_implementation() is first

    @pytest.mark.asyncio
    async def test_warmup_reports_every_status(self):
        sel = _selector(
            semantic=CountingFactory("semantic", fail=InitializationFailure("semantic", "no model")),
            lexical=CountingFactory("lexical"),
            keyword=CountingFactory("keyword"),
        )
        statuses = await sel.warmup()
        assert statuses == {
            "semantic": ImplementationStatus.FAILED,
            "lexical": ImplementationStatus.READY,
            "keyword": ImplementationStatus.READY,
        }

    @pytest.mark.asyncio
    async def test_list_implementations(self):
        sel = _selector(semantic=CountingFactory("semantic"), keyword=CountingFactory("keyword"))
        await sel.get_implementation("keyword")
        infos = {i.name: i for i in sel.list_implementations()}
        assert list(infos) == ["semantic", "keyword"]
        assert infos["keyword"].status == ImplementationStatus.READY
        assert infos["semantic"].status == ImplementationStatus.NOT_STARTED
        assert infos["semantic"].accuracy == pytest.approx(0.95)
        assert infos["keyword"].avg_latency_ms == 15
        assert infos["keyword"].to_dict()["status"] == "ready"

    @pytest.mark.asyncio
    async def test_aclose_closes_instances(self):
        factory = CountingFactory("semantic")
        sel = _selector(semantic=factory)
        await sel.get_implementation()
        await sel.aclose()
        assert factory.instances[0].closed


# =============================================================================
# Emergency path
# =============================================================================

class TestEmergencyClassifier:

    @pytest.mark.asyncio
    async def test_all_failed_uses_emergency_keyword_classifier(self):
        sel = _selector(
            semantic=CountingFactory("semantic", fail=InitializationFailure("semantic", "x")),
            lexical=CountingFactory("lexical", fail=InitializationFailure("lexical", "y")),
        )
        clf = await sel.get_implementation()
        assert isinstance(clf, KeywordIntentClassifier)
        assert clf.is_ready
        assert _fallbacks("semantic", "emergency") == 1
        # Emergency instance is reused
        assert await sel.get_implementation() is clf

    @pytest.mark.asyncio
    async def test_nothing_enabled_uses_emergency(self):
        sel = ClassifierSelector(factories={"semantic": CountingFactory("semantic")}, enabled=[], default="semantic")
        assert isinstance(await sel.get_implementation(), KeywordIntentClassifier)

    @pytest.mark.asyncio
    async def test_emergency_failure_raises(self, monkeypatch):
        class BrokenKeyword(KeywordIntentClassifier):
            async def initialize(self):
                raise RuntimeError("regex engine gone")

        monkeypatch.setattr(selector_module, "KeywordIntentClassifier", BrokenKeyword)
        sel = _selector(semantic=CountingFactory("semantic", fail=InitializationFailure("semantic", "x")))
        with pytest.raises(InitializationFailure, match="emergency"):
            await sel.get_implementation()


# =============================================================================
# Built-in implementations
# =============================================================================

class TestDefaultFactories:

    @pytest.mark.asyncio
    async def test_lexical_and_keyword_build_from_corpus(self, seed_corpus, regex_extractor):
        sel = ClassifierSelector(
            enabled=["lexical", "keyword"],
            default="lexical",
            corpus=seed_corpus,
            entity_extractor=regex_extractor,
        )
        lexical = await sel.get_implementation()
        assert isinstance(lexical, EmbeddingIntentClassifier)
        assert lexical.name == "lexical"
        assert lexical.cache.corpus_version == seed_corpus.version
        assert set(lexical.cache.intents) == set(seed_corpus.intents)

        keyword = await sel.get_implementation("keyword")
        assert isinstance(keyword, KeywordIntentClassifier)
        await sel.aclose()

    def test_enabled_filters_unknown_names(self):
        sel = ClassifierSelector(factories={"keyword": CountingFactory("keyword")}, enabled=["semantic", "keyword"])
        assert sel.enabled == ["keyword"]
