"""Common interface for intent classifier implementations."""

from abc import ABC, abstractmethod
from typing import Optional

from ..models import ClassificationResult, ParseOptions


class IntentClassifier(ABC):
    """An interchangeable classifier implementation managed by the selector.

    ``initialize`` must be safe to await more than once; ``parse`` initializes
    on first use if nobody did so earlier.
    """

    name: str = "base"
    description: str = ""
    accuracy: float = 0.0
    avg_latency_ms: int = 0

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """Load models and caches.

        Raises:
            InitializationFailure: If startup cannot complete.
        """
        pass

    @abstractmethod
    async def parse(self, text: str, options: Optional[ParseOptions] = None) -> ClassificationResult:
        pass

    async def aclose(self) -> None:
        """Release held resources (HTTP clients, models)."""
