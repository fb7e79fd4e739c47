"""Typed errors raised by the intent engine.

Low confidence is not an error: it is reported through
``ClassificationResult.low_confidence``.
"""


class IntentEngineError(Exception):
    """Base class for all intent engine errors."""


class InvalidInput(IntentEngineError, ValueError):
    """The message handed to the parsing service is empty or not a string."""


class EmbeddingFailure(IntentEngineError):
    """The embedding collaborator errored or returned malformed data.

    Fatal for the current request and never retried internally: a silently
    zeroed score map would be indistinguishable from "nothing matches".
    """


class InitializationFailure(IntentEngineError):
    """A classifier implementation could not complete startup."""

    def __init__(self, implementation: str, reason: str):
        self.implementation = implementation
        self.reason = reason
        super().__init__(f"{implementation} classifier failed to initialize: {reason}")


class EntityExtractionFailure(IntentEngineError):
    """Entity extraction failed. Non-fatal: callers degrade to no entities."""


class CollaboratorTimeout(IntentEngineError):
    """An external collaborator did not answer within its timeout."""

    def __init__(self, collaborator: str, timeout_seconds: float):
        self.collaborator = collaborator
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{collaborator} did not respond within {timeout_seconds:.1f}s")


class EmbeddingTimeout(CollaboratorTimeout, EmbeddingFailure):
    """The embedding call timed out."""

    def __init__(self, timeout_seconds: float):
        super().__init__("embedding", timeout_seconds)


class EntityExtractionTimeout(CollaboratorTimeout):
    """The entity extraction call timed out."""

    def __init__(self, timeout_seconds: float):
        super().__init__("entity_extraction", timeout_seconds)
