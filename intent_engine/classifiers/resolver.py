"""Decision resolver: confidence floor plus priority tie-break.

Given the boosted score map:

1. Rank intents by score (stable on insertion order for exact ties).
2. No scores, or top score below the floor -> default intent, flagged
   ``low_confidence``.
3. Top two within ``epsilon`` and the runner-up has strictly higher
   priority -> runner-up wins.
4. Otherwise the top intent wins.

Confidence is always the score of the returned intent, except in the
low-confidence case where it is the top score (0.0 for an empty map).
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from ..config import settings
from ..models import ScoreMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    intent: str
    confidence: float
    low_confidence: bool = False
    tie_broken: bool = False


class DecisionResolver:
    """Resolve a score map to one intent.

    Args:
        priorities: intent -> tie-break priority; unknown intents count as 0.
        floor: Minimum top score to accept a classification.
        epsilon: Maximum top-two gap at which priority may override score.
        default_intent: Returned when nothing clears the floor.
    """

    def __init__(
        self,
        priorities: Optional[Mapping[str, int]] = None,
        floor: Optional[float] = None,
        epsilon: Optional[float] = None,
        default_intent: Optional[str] = None,
    ):
        self.priorities = dict(priorities or {})
        self.floor = settings.confidence_floor if floor is None else floor
        self.epsilon = settings.tie_break_epsilon if epsilon is None else epsilon
        self.default_intent = default_intent or settings.default_intent
        if self.floor < 0 or self.epsilon < 0:
            raise ValueError("floor and epsilon must be non-negative")

    def resolve(self, scores: ScoreMap) -> Resolution:
        # sorted() is stable, so exact ties keep insertion order
        ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)

        if not ranked:
            return Resolution(intent=self.default_intent, confidence=0.0, low_confidence=True)

        top_intent, top_score = ranked[0]
        if top_score < self.floor:
            logger.debug(
                f"Top score {top_score:.3f} ({top_intent}) below floor {self.floor}, "
                f"defaulting to {self.default_intent}"
            )
            return Resolution(intent=self.default_intent, confidence=top_score, low_confidence=True)

        if len(ranked) > 1:
            second_intent, second_score = ranked[1]
            if (
                top_score - second_score < self.epsilon
                and self.priorities.get(second_intent, 0) > self.priorities.get(top_intent, 0)
            ):
                logger.debug(
                    f"Tie-break: {second_intent} ({second_score:.3f}) over "
                    f"{top_intent} ({top_score:.3f}) on priority"
                )
                return Resolution(intent=second_intent, confidence=second_score, tie_broken=True)

        return Resolution(intent=top_intent, confidence=top_score)
