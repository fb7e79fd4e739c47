"""Keyword-weighted intent classifier.

No models and no embeddings: each intent accumulates weights from regex
signals, capped to [0, 1], and the shared resolver picks the winner with a
stricter floor. Fast, always available, and the last resort of the selector.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Optional

from ..entities import EntityExtractor
from ..errors import EntityExtractionFailure
from ..models import ClassificationResult, Intent, ParseOptions, ScoreMap
from ..observability import metrics
from ..responses import get_suggested_response
from .base import IntentClassifier
from .resolver import DecisionResolver

logger = logging.getLogger(__name__)

KEYWORD_FLOOR = 0.3

DEFAULT_PRIORITIES = {
    Intent.WEB_SEARCH.value: 5,
    Intent.QUESTION.value: 4,
    Intent.GENERAL_KNOWLEDGE.value: 4,
    Intent.MEMORY_RETRIEVE.value: 3,
    Intent.COMMAND_GUIDE.value: 3,
    Intent.COMMAND_EXECUTE.value: 2,
    Intent.SCREEN_INTELLIGENCE.value: 2,
    Intent.CONTEXT.value: 1,
}


@dataclass(frozen=True)
class Signal:
    """Adds ``weight`` when ``pattern`` matches; with ``per_match`` once per distinct match."""
    pattern: re.Pattern
    weight: float
    per_match: bool = False

    def score(self, text: str) -> float:
        if self.per_match:
            return self.weight * len({m.group(0) for m in self.pattern.finditer(text)})
        return self.weight if self.pattern.search(text) else 0.0


def _sig(pattern: str, weight: float, per_match: bool = False) -> Signal:
    return Signal(re.compile(pattern), weight, per_match)


_TEMPORAL = r"\b(today|tonight|tomorrow|yesterday|next (week|month|year)|monday|tuesday|wednesday|thursday|friday|saturday|sunday|\d{1,2}(:\d{2})?\s*(am|pm))\b"

KEYWORD_SIGNALS: dict[str, tuple[Signal, ...]] = {
    Intent.MEMORY_STORE.value: (
        _sig(r"\b(remember|save|store|keep|note|don't forget|remind me to|jot down|log)\b", 0.3, per_match=True),
        _sig(_TEMPORAL, 0.2),
        _sig(r"\b(i have|i need|i must|i should|i promised)\b", 0.15),
        _sig(r"^(remember|save|store|note|keep|log|add|jot)\b", 0.2),
        _sig(r"\?$", -0.4),
    ),
    Intent.MEMORY_RETRIEVE.value: (
        _sig(r"^(when|what|where|which|do i|did i)\b", 0.3),
        _sig(r"\b(my|i saved|i stored|i have)\b", 0.25),
        _sig(r"\?$", 0.2),
        _sig(_TEMPORAL, 0.1),
        _sig(r"\b(appointment|appt|meeting|birthday|deadline|password)s?\b", 0.2),
        _sig(r"^remember\b", -0.3),
    ),
    Intent.COMMAND_EXECUTE.value: (
        _sig(r"^(open|close|launch|start|stop|take|capture|play|pause|set|turn|mute|switch|lock|enable|disable)\b", 0.5),
        _sig(r"\b(screenshot|chrome|firefox|safari|spotify|slack|vs ?code|terminal|finder|bluetooth|wi-?fi)\b", 0.2),
        _sig(r"\?$", -0.3),
    ),
    Intent.COMMAND_GUIDE.value: (
        _sig(r"^(how do i|how can i|how to|where do i find|walk me through|steps to)\b", 0.4),
        _sig(r"\b(mac|macos|windows|iphone|android|phone|laptop|computer|settings|shortcut|screenshot|app)\b", 0.3),
    ),
    Intent.WEB_SEARCH.value: (
        _sig(r"\b(current|latest|today|now|recent|news|price|weather|forecast|score|stock)\b", 0.3, per_match=True),
        _sig(r"\b(president|prime minister|ceo|governor|mayor)\b", 0.3),
        _sig(r"\b(give me|show me) .*\b(code|script|example|python|javascript)\b", 0.4),
    ),
    Intent.GENERAL_KNOWLEDGE.value: (
        _sig(r"^(what is|who (invented|wrote|painted|proposed)|explain|how does|difference between)\b", 0.35),
        _sig(r"\b(capital|theorem|formula|invented|history|meaning)\b", 0.2),
    ),
    Intent.QUESTION.value: (
        _sig(r"^(what|how|why|when|where|who|which|can|could|do|does|are|is)\b", 0.35),
        _sig(r"\?$", 0.25),
        _sig(r"\b(you|your)\b", 0.15),
        _sig(r"\b(my|i have|i need|appointment|meeting|schedule)\b", -0.3),
    ),
    Intent.GREETING.value: (
        _sig(r"\b(hello|hi|hey|good morning|good afternoon|good evening|greetings|howdy|sup|yo)\b", 0.5),
        _sig(r"^(hi|hello|hey|good (morning|afternoon|evening))\b", 0.4),
        _sig(r"^(thanks|thank you|cheers)\b", 0.5),
    ),
    Intent.CONTEXT.value: (
        _sig(r"\b(earlier|before|previous|last time|conversation|discussed|talked about|left off)\b", 0.35, per_match=True),
        _sig(r"\b(we|our)\b", 0.2),
        _sig(r"\b(what (did|was|were)|remind me (of|about))\b", 0.25),
    ),
    Intent.SCREEN_INTELLIGENCE.value: (
        _sig(r"\b(screen|this page|this window|looking at|highlighted|selected text)\b", 0.45),
        _sig(r"^(summarize|explain|read|translate|describe)\b", 0.2),
    ),
}


def keyword_scores(text: str) -> ScoreMap:
    """Per-intent keyword score in [0, 1]."""
    lowered = text.strip().lower().replace("’", "'")
    scores: ScoreMap = {}
    for intent, signals in KEYWORD_SIGNALS.items():
        total = sum(signal.score(lowered) for signal in signals)
        scores[intent] = max(0.0, min(total, 1.0))
    # Short messages that only greet are greetings
    if scores[Intent.GREETING.value] > 0 and len(lowered.split()) <= 5:
        scores[Intent.GREETING.value] = min(scores[Intent.GREETING.value] + 0.3, 1.0)
    return scores


class KeywordIntentClassifier(IntentClassifier):
    """Regex keyword scorer. Entities come from the regex-only extractor."""

    name = "keyword"
    description = "Weighted keyword rules (no model, lowest latency)"
    accuracy = 0.82
    avg_latency_ms = 15

    def __init__(
        self,
        resolver: Optional[DecisionResolver] = None,
        entity_extractor: Optional[EntityExtractor] = None,
        name: Optional[str] = None,
    ):
        if name:
            self.name = name
        self._resolver = resolver or DecisionResolver(priorities=DEFAULT_PRIORITIES, floor=KEYWORD_FLOOR)
        self._entity_extractor = entity_extractor or EntityExtractor(use_spacy=False)
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        if not self._ready:
            self._ready = True
            logger.info(f"{self.name} classifier initialized")

    async def parse(self, text: str, options: Optional[ParseOptions] = None) -> ClassificationResult:
        if not self._ready:
            await self.initialize()
        options = options or ParseOptions()
        t0 = time.perf_counter()

        scores = keyword_scores(text)
        resolution = self._resolver.resolve(scores)

        entities = []
        if options.include_entities:
            try:
                entities = self._entity_extractor.extract(text)
            except EntityExtractionFailure as e:
                logger.warning(f"Entity extraction failed, continuing without entities: {e}")
                metrics.increment("entity_extraction_failure_total", labels={"parser": self.name})

        suggested = None
        if options.include_suggested_response:
            try:
                suggested = get_suggested_response(resolution.intent, text, entities)
            except Exception as e:
                logger.warning(f"Suggested response generation failed for {resolution.intent}: {e}")

        return ClassificationResult(
            intent=resolution.intent,
            confidence=resolution.confidence,
            scores=scores,
            entities=tuple(entities),
            processing_time_ms=int((time.perf_counter() - t0) * 1000),
            parser=self.name,
            low_confidence=resolution.low_confidence,
            suggested_response=suggested,
        )
