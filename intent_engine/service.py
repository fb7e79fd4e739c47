"""Intent parsing service: the public entry point for classification.

Validates input, picks an implementation through the selector, and records
metrics. Owns its ``ClassifierSelector``; there is no process-wide registry.
"""

import logging
import time
import uuid
from typing import Optional, Union

from .classifiers.selector import ClassifierSelector
from .config import settings
from .errors import EmbeddingFailure, InvalidInput
from .models import ClassificationResult, ImplementationInfo, ImplementationStatus, ParseOptions
from .observability import get_logger, metrics

logger = logging.getLogger(__name__)


class IntentParsingService:
    """Classify user messages with the best available classifier."""

    def __init__(self, selector: Optional[ClassifierSelector] = None):
        self.selector = selector or ClassifierSelector()

    async def parse_intent(
        self,
        message,
        options: Union[ParseOptions, dict, None] = None,
        parser: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> ClassificationResult:
        """Classify one message.

        Args:
            message: The user utterance. Must be a non-empty string.
            options: ``ParseOptions`` or an equivalent dict.
            parser: Implementation name; defaults to the selector default.
            request_id: Correlation id for structured logs.

        Returns:
            ClassificationResult

        Raises:
            InvalidInput: If ``message`` is empty or not a string.
            EmbeddingFailure: If the embedding collaborator fails.
            InitializationFailure: If no classifier can start.
        """
        if not isinstance(message, str):
            raise InvalidInput(f"message must be a string, got {type(message).__name__}")
        if not message.strip():
            raise InvalidInput("message parameter is required")

        if not isinstance(options, ParseOptions):
            options = ParseOptions.from_dict(options)

        log = get_logger("service", request_id=request_id or uuid.uuid4().hex[:12])
        t0 = time.perf_counter()

        classifier = await self.selector.get_implementation(parser)
        log = log.bind(parser=classifier.name)
        try:
            result = await classifier.parse(message, options)
        except EmbeddingFailure as e:
            log.error("classification_failed", error=str(e))
            raise

        metrics.observe("classification_duration_seconds", time.perf_counter() - t0)
        metrics.increment("classification_total", labels={"intent": result.intent, "parser": result.parser})
        if result.low_confidence:
            metrics.increment("low_confidence_total", labels={"parser": result.parser})

        log.info(
            "classify_trace",
            intent=result.intent,
            confidence=round(result.confidence, 4),
            low_confidence=result.low_confidence,
            entities=len(result.entities),
            processing_time_ms=result.processing_time_ms,
        )
        return result

    def list_parsers(self) -> dict:
        """Enabled implementations with their status, plus the default name."""
        parsers: list[ImplementationInfo] = self.selector.list_implementations()
        return {
            "parsers": [p.to_dict() for p in parsers],
            "default": self.selector.default,
        }

    async def warmup(self, force: bool = False) -> dict[str, ImplementationStatus]:
        """Initialize all enabled implementations when forced or ``warmup_on_start`` is set."""
        if not (force or settings.warmup_on_start):
            logger.debug("Warmup skipped (warmup_on_start disabled)")
            return {}
        return await self.selector.warmup()

    async def aclose(self) -> None:
        await self.selector.aclose()
