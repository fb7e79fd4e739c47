"""Shared data model for intent classification.

Intent labels are configuration: the seed corpus decides which intents a
classifier scores. The ``Intent`` enum only names the labels that the shipped
boost rules and response templates know about.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional

from .errors import InvalidInput

# Per-intent scores. Raw cosine similarities first, then boosted and normalized.
ScoreMap = dict[str, float]


class Intent(str, Enum):
    """Built-in intent labels."""
    MEMORY_STORE = "memory_store"
    MEMORY_RETRIEVE = "memory_retrieve"
    COMMAND_EXECUTE = "command_execute"
    COMMAND_GUIDE = "command_guide"
    WEB_SEARCH = "web_search"
    GENERAL_KNOWLEDGE = "general_knowledge"
    QUESTION = "question"
    GREETING = "greeting"
    CONTEXT = "context"
    SCREEN_INTELLIGENCE = "screen_intelligence"


class ImplementationStatus(str, Enum):
    """Lifecycle of a classifier implementation inside the selector."""
    NOT_STARTED = "not_started"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class Entity:
    """A typed span extracted from the message."""
    type: str
    value: str
    start: int
    end: int
    confidence: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Message:
    """One prior conversation turn."""
    role: str          # "user" | "assistant"
    content: str


@dataclass
class ParseOptions:
    """Per-request options for ``parse``."""
    include_entities: bool = True
    include_suggested_response: bool = True
    conversation_history: list[Message] = field(default_factory=list)
    highlighted_text: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ParseOptions":
        """Build options from a loosely-typed mapping (CLI/JSON input).

        Raises:
            InvalidInput: If ``data`` is not a mapping or a history turn is
                neither a ``Message`` nor a mapping.
        """
        data = data or {}
        if not isinstance(data, Mapping):
            raise InvalidInput(f"options must be a mapping, got {type(data).__name__}")

        raw_history = data.get("conversation_history") or []
        if isinstance(raw_history, (str, bytes)) or not isinstance(raw_history, Iterable):
            raise InvalidInput("conversation_history must be a list of messages")

        history = []
        for i, m in enumerate(raw_history):
            if isinstance(m, Message):
                history.append(m)
            elif isinstance(m, Mapping):
                history.append(Message(role=str(m.get("role", "")), content=str(m.get("content", ""))))
            else:
                raise InvalidInput(
                    f"conversation_history[{i}] must be a mapping with role/content, got {type(m).__name__}"
                )
        return cls(
            include_entities=data.get("include_entities", True),
            include_suggested_response=data.get("include_suggested_response", True),
            conversation_history=history,
            highlighted_text=data.get("highlighted_text"),
        )


@dataclass(frozen=True)
class ClassificationResult:
    """Result of classifying one message. Never mutated after construction."""

    intent: str
    confidence: float
    scores: ScoreMap
    entities: tuple[Entity, ...]
    processing_time_ms: int
    parser: str
    low_confidence: bool = False
    suggested_response: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "intent": self.intent,
            "confidence": self.confidence,
            "scores": dict(self.scores),
            "entities": [e.to_dict() for e in self.entities],
            "processing_time_ms": self.processing_time_ms,
            "parser": self.parser,
            "low_confidence": self.low_confidence,
            "suggested_response": self.suggested_response,
        }


@dataclass(frozen=True)
class ImplementationInfo:
    """Introspection record returned by ``list_implementations``."""
    name: str
    description: str
    status: ImplementationStatus
    accuracy: float
    avg_latency_ms: int

    def to_dict(self) -> dict:
        d = asdict(self)
        d["status"] = self.status.value
        return d
