"""Heuristic booster: declarative lexical/entity rules over raw similarity scores.

Embedding similarity alone confuses intents that share vocabulary ("remember"
vs "do you remember", "what's the weather" vs "what's the project deadline").
Each rule here is a pure predicate over the message plus a table of
multiplicative factors. The booster folds the rules over the score map in a
fixed order and then renormalizes:

    scores = reduce(lambda s, rule: rule.apply(s, ctx), rules, scores)
    scores = normalize_scores(scores)

Rules only multiply. Factors must be positive; override rules may also use 0.
Rule order is part of the contract: factors are commutative, but a new rule
that reads scores would not be, so keep additions at the end unless there is
a reason not to.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from functools import cached_property, reduce
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Sequence

from ..models import Entity, Intent, ScoreMap

logger = logging.getLogger(__name__)


# =============================================================================
# Lexical patterns
# =============================================================================

QUESTION_WORD_RE = re.compile(
    r"^(what|when|where|who|which|why|how|whose|whom|can|could|would|should|is|are|do|does|did)\b"
)
WH_WORD_RE = re.compile(r"^(what|when|where|who|which)\b")
STORAGE_VERB_RE = re.compile(
    r"\b(remember|save|note|store|keep|don't forget|keep in mind|write down|jot down|"
    r"set a reminder|remind me|create a reminder|add a reminder)\b"
)
ACTION_VERB_RE = re.compile(r"^(open|close|launch|take|start|stop|play|set)\b")
FACTUAL_RE = re.compile(
    r"\b(who is|what is|when did|where is|how much|how many|what's the|who's the|when was|where was)\b"
)

_this_year = date.today().year
CURRENT_EVENT_RE = re.compile(
    r"\b(current|now|today|latest|recent|this year|"
    + "|".join(str(y) for y in range(_this_year - 2, _this_year + 1))
    + r")\b"
)
LEADERSHIP_RE = re.compile(r"\b(president|prime minister|ceo|leader|governor|mayor|king|queen)\b")
PRICE_RE = re.compile(r"\b(price|cost|stock|worth|value|how much)\b")
WEATHER_RE = re.compile(r"\b(weather|temperature|forecast|rain|snow|sunny|cloudy)\b")
NEWS_RE = re.compile(r"\b(news|latest|happened|happening|event|announcement)\b")
SPORTS_RE = re.compile(r"\b(score|game|match|won|lost|team|player)\b")

CODE_REQUEST_RE = re.compile(r"\b(give me|show me|how do i|how to|example of|tutorial|code for|script)\b")
PROGRAMMING_RE = re.compile(
    r"\b(python|javascript|node|react|api|function|class|code|script|program|html|css|sql|"
    r"database|docker|kubernetes)\b"
)

HOW_TO_RE = re.compile(
    r"^(how do i|how can i|how to|where do i find|walk me through|steps to|teach me how|"
    r"what's the (keyboard )?shortcut)\b"
)
DEVICE_RE = re.compile(
    r"\b(screenshot|screen|mac|macos|windows|iphone|ipad|android|phone|laptop|computer|pc|"
    r"settings|bluetooth|wi-?fi|app|apps|browser|chrome|safari|keyboard|shortcut|printer|"
    r"router|tv|airpods|wallpaper|drivers?|disk space|spotlight)\b"
)
SCREEN_RE = re.compile(
    r"\b(on (my|the) screen|what's on my screen|what i'?m (looking at|reading|seeing)|"
    r"this (page|window|document|article|dialog|chart|email|tab|screenshot)|"
    r"highlighted|selected text)\b"
)
CONVERSATION_RE = re.compile(
    r"\b(earlier|before this|we (talked|discussed|were discussing|were talking)|"
    r"our (conversation|last session|discussion)|left off|"
    r"you (said|gave me|shared|mentioned)|last time)\b"
)
GREETING_RE = re.compile(r"^(hi|hello|hey|good morning|good afternoon)\b")

MEMORY_ENTITY_TYPES = frozenset({"datetime", "person"})


# =============================================================================
# Rule context
# =============================================================================

@dataclass(frozen=True)
class RuleContext:
    """Everything a rule predicate may look at. Read-only."""

    text: str
    entities: tuple[Entity, ...] = ()
    highlighted_text: Optional[str] = None

    @cached_property
    def lowered(self) -> str:
        return self.text.strip().lower().replace("’", "'")

    @cached_property
    def entity_types(self) -> frozenset[str]:
        return frozenset(e.type for e in self.entities)

    @cached_property
    def has_question_word(self) -> bool:
        return bool(QUESTION_WORD_RE.search(self.lowered))

    @cached_property
    def has_question_mark(self) -> bool:
        return self.text.strip().endswith("?")

    @property
    def is_question(self) -> bool:
        return self.has_question_word or self.has_question_mark

    @cached_property
    def has_storage_verb(self) -> bool:
        return bool(STORAGE_VERB_RE.search(self.lowered))

    @property
    def has_memory_entity(self) -> bool:
        return bool(self.entity_types & MEMORY_ENTITY_TYPES)

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    def matches(self, pattern: re.Pattern) -> bool:
        return bool(pattern.search(self.lowered))


# =============================================================================
# Rules
# =============================================================================

@dataclass(frozen=True)
class BoostRule:
    """A named trigger plus the multiplicative factors it applies.

    Args:
        name: Stable identifier, used in traces and tests.
        predicate: Pure function of the ``RuleContext``.
        factors: intent -> multiplier. Intents missing from the score map
            are skipped.
        override: Allows a factor of exactly 0.
    """

    name: str
    predicate: Callable[[RuleContext], bool]
    factors: Mapping[str, float] = field(default_factory=dict)
    override: bool = False

    def __post_init__(self):
        if not self.factors:
            raise ValueError(f"Rule '{self.name}' has no factors")
        for intent, factor in self.factors.items():
            if factor < 0 or (factor == 0 and not self.override):
                raise ValueError(
                    f"Rule '{self.name}' uses factor {factor} for '{intent}': "
                    "factors must be positive (0 allowed only for override rules)"
                )
        object.__setattr__(self, "factors", MappingProxyType(dict(self.factors)))

    def applies(self, ctx: RuleContext) -> bool:
        return bool(self.predicate(ctx))

    def apply(self, scores: ScoreMap, ctx: RuleContext) -> ScoreMap:
        """Return a new score map with this rule's factors applied if it fires."""
        if not self.applies(ctx):
            return scores
        return {
            intent: score * self.factors.get(intent, 1.0)
            for intent, score in scores.items()
        }


def _factors(**kwargs: float) -> dict[str, float]:
    return {Intent[name.upper()].value: factor for name, factor in kwargs.items()}


DEFAULT_RULES: tuple[BoostRule, ...] = (
    BoostRule(
        "highlighted_text_override",
        lambda c: bool(c.highlighted_text and c.highlighted_text.strip()),
        _factors(screen_intelligence=0.0),
        override=True,
    ),
    BoostRule(
        "storage_verb_with_entities",
        lambda c: c.has_storage_verb and not c.is_question and c.has_memory_entity,
        _factors(memory_store=1.2),
    ),
    BoostRule(
        "question_without_storage_verb",
        lambda c: c.is_question and not c.has_storage_verb,
        _factors(memory_store=0.3),
    ),
    BoostRule(
        "wh_question_about_entities",
        lambda c: c.matches(WH_WORD_RE) and c.has_memory_entity,
        _factors(memory_retrieve=1.15),
    ),
    BoostRule(
        "action_verb_prefix",
        lambda c: c.matches(ACTION_VERB_RE),
        _factors(command_execute=1.25),
    ),
    BoostRule(
        "factual_wh_question",
        lambda c: c.has_question_word and c.matches(FACTUAL_RE),
        _factors(web_search=1.3, question=1.15),
    ),
    BoostRule(
        "open_wh_question",
        lambda c: c.has_question_word and not c.matches(FACTUAL_RE),
        _factors(question=1.2),
    ),
    BoostRule(
        "time_sensitive",
        lambda c: c.matches(CURRENT_EVENT_RE),
        _factors(web_search=1.5, general_knowledge=0.8),
    ),
    BoostRule(
        "leadership_query",
        lambda c: c.matches(LEADERSHIP_RE) and c.is_question,
        _factors(web_search=1.4),
    ),
    BoostRule("price_query", lambda c: c.matches(PRICE_RE), _factors(web_search=1.45)),
    BoostRule("weather_query", lambda c: c.matches(WEATHER_RE), _factors(web_search=1.6)),
    BoostRule("news_query", lambda c: c.matches(NEWS_RE), _factors(web_search=1.5)),
    BoostRule("sports_query", lambda c: c.matches(SPORTS_RE), _factors(web_search=1.4)),
    BoostRule(
        "code_request",
        lambda c: c.matches(CODE_REQUEST_RE) and c.matches(PROGRAMMING_RE),
        _factors(web_search=1.6, command_guide=1.2, command_execute=0.5, question=0.7),
    ),
    BoostRule(
        "device_how_to",
        lambda c: c.matches(HOW_TO_RE) and c.matches(DEVICE_RE),
        _factors(command_guide=1.4, command_execute=0.7),
    ),
    BoostRule(
        "screen_reference",
        lambda c: c.matches(SCREEN_RE),
        _factors(screen_intelligence=1.4),
    ),
    BoostRule(
        "conversation_reference",
        lambda c: c.matches(CONVERSATION_RE),
        _factors(context=1.3),
    ),
    BoostRule(
        "question_mark",
        lambda c: c.has_question_mark,
        _factors(question=1.1, web_search=1.05),
    ),
    BoostRule(
        "short_greeting",
        lambda c: c.word_count <= 5 and c.matches(GREETING_RE),
        _factors(greeting=1.3),
    ),
)


# =============================================================================
# Booster
# =============================================================================

def apply_rules(scores: ScoreMap, ctx: RuleContext, rules: Sequence[BoostRule]) -> ScoreMap:
    """Fold ``rules`` over ``scores`` in order. The input map is not modified."""
    return reduce(lambda s, rule: rule.apply(s, ctx), rules, dict(scores))


def normalize_scores(scores: ScoreMap) -> ScoreMap:
    """Clamp negatives to 0, then divide by the max if it exceeds 1."""
    clamped = {intent: max(0.0, score) for intent, score in scores.items()}
    if not clamped:
        return clamped
    max_score = max(clamped.values())
    if max_score > 1.0:
        return {intent: score / max_score for intent, score in clamped.items()}
    return clamped


class HeuristicBooster:
    """Applies an ordered rule chain to a score map, then renormalizes."""

    def __init__(self, rules: Optional[Sequence[BoostRule]] = None):
        self.rules: tuple[BoostRule, ...] = tuple(DEFAULT_RULES if rules is None else rules)
        names = [r.name for r in self.rules]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate rule names in booster chain: {names}")

    def boost(
        self,
        scores: ScoreMap,
        entities: Sequence[Entity],
        text: str,
        highlighted_text: Optional[str] = None,
    ) -> ScoreMap:
        ctx = RuleContext(text=text, entities=tuple(entities), highlighted_text=highlighted_text)
        boosted = normalize_scores(apply_rules(scores, ctx, self.rules))
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Boost rules fired: {self.fired_rules(ctx)}")
        return boosted

    def fired_rules(self, ctx: RuleContext) -> list[str]:
        """Names of the rules whose predicate holds for ``ctx`` (diagnostics)."""
        return [rule.name for rule in self.rules if rule.applies(ctx)]
