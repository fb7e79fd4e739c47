"""Intent classifier implementations and their building blocks."""

from .base import IntentClassifier
from .booster import DEFAULT_RULES, BoostRule, HeuristicBooster, RuleContext, normalize_scores
from .embedding_classifier import EmbeddingIntentClassifier, build_embedding_text
from .keyword_classifier import KeywordIntentClassifier
from .resolver import DecisionResolver, Resolution
from .selector import PREFERENCE_ORDER, ClassifierSelector
from .similarity import SeedEmbeddingCache, cosine_similarity, score_intents

__all__ = [
    "BoostRule",
    "ClassifierSelector",
    "DEFAULT_RULES",
    "DecisionResolver",
    "EmbeddingIntentClassifier",
    "HeuristicBooster",
    "IntentClassifier",
    "KeywordIntentClassifier",
    "PREFERENCE_ORDER",
    "Resolution",
    "RuleContext",
    "SeedEmbeddingCache",
    "build_embedding_text",
    "cosine_similarity",
    "normalize_scores",
    "score_intents",
]
