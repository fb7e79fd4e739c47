"""Lightweight entity extraction for intent classification.

Entities feed the heuristic booster (datetime/person mentions separate "store
this" from "what did I store") and are returned to callers for slot filling.

Sources, in order:
  1. spaCy NER (person / location / organization / datetime) when the
     configured model can be loaded. Any NER callable can be injected instead.
  2. Regex extractors: appointment types, temporal expressions, URL, email,
     phone, money, version, quantity and tech terms.
  3. Capitalized-word ``proper_noun`` fallback, only when no NER is available.

Adjacent same-type spans separated by at most two characters (and no sentence
break) are merged, so "tomorrow" + "at 3pm" becomes "tomorrow at 3pm".
"""

import logging
import re
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .config import settings
from .errors import EntityExtractionFailure
from .models import Entity

logger = logging.getLogger(__name__)

# (label, start, end) spans from a NER backend
NerSpan = tuple[str, int, int]
NerFn = Callable[[str], Iterable[NerSpan]]

NER_LABEL_MAP = {
    "PER": "person",
    "PERSON": "person",
    "LOC": "location",
    "GPE": "location",
    "ORG": "organization",
    "DATE": "datetime",
    "TIME": "datetime",
    "MISC": "other",
}

NER_CONFIDENCE = 0.92


def map_ner_label(label: str) -> str:
    return NER_LABEL_MAP.get(label.upper(), label.lower())


# =============================================================================
# Regex extractors
# =============================================================================

@dataclass(frozen=True)
class _Pattern:
    type: str
    regex: re.Pattern
    confidence: float


_WEEKDAYS = r"(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday|mon|tues|tue|wed|thurs|thur|thu|fri|sat|sun)"
_MONTHS = (
    r"(?:january|february|march|april|may|june|july|august|september|october|november|december|"
    r"jan|feb|mar|apr|jun|jul|aug|sep|sept|oct|nov|dec)"
)

TEMPORAL_PATTERNS: tuple[_Pattern, ...] = (
    _Pattern("datetime", re.compile(r"\b(?:today|tonight|tomorrow|yesterday)\b", re.I), 0.95),
    _Pattern("datetime", re.compile(rf"\b(?:(?:next|this|last)\s+)?{_WEEKDAYS}\b\.?", re.I), 0.95),
    _Pattern("datetime", re.compile(r"\b(?:next|this|last)\s+(?:week|month|year|weekend)\b", re.I), 0.95),
    _Pattern("datetime", re.compile(rf"\b{_MONTHS}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?\b", re.I), 0.95),
    _Pattern("datetime", re.compile(r"\b\d{4}-\d{2}-\d{2}\b"), 0.95),
    _Pattern("datetime", re.compile(r"\b\d{1,2}/\d{1,2}(?:/\d{2,4})?\b"), 0.90),
    _Pattern("datetime", re.compile(r"\b(?:at\s+)?\d{1,2}(?::\d{2})?\s*(?:am|pm)\b", re.I), 0.95),
    _Pattern("datetime", re.compile(r"\b(?:at\s+)?(?:noon|midnight)\b", re.I), 0.90),
)

APPOINTMENT_PATTERN = _Pattern(
    "appointment_type",
    re.compile(
        r"\b(?:dentist|doctor|dr\.?|vision|eye|dental|medical|therapy|physical|check[- ]?up|exam|"
        r"appt|appointment|visit|consultation|follow.?up)\b(?:\s*(?:appt|appointment|visit|exam|check.?up)\b)?",
        re.I,
    ),
    0.93,
)

UNIVERSAL_PATTERNS: tuple[_Pattern, ...] = (
    _Pattern("url", re.compile(r"https?://[^\s]+", re.I), 1.0),
    _Pattern("email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), 1.0),
    _Pattern("phone", re.compile(r"(?<![\w/-])(?:\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"), 0.98),
    _Pattern("money", re.compile(r"\$\d{1,3}(?:,\d{3})*(?:\.\d{2})?\b|\$\d+(?:\.\d{2})?\b"), 0.96),
    _Pattern("version", re.compile(r"\bv?\d+\.\d+(?:\.\d+)?\b"), 0.95),
    _Pattern(
        "quantity",
        re.compile(r"\b\d+\s*(?:minutes?|mins?|hours?|days?|weeks?|miles?|km|lbs?|kg|cal)\b", re.I),
        0.90,
    ),
)

_TECH_TERMS = (
    r"next\.js", r"react native", r"vue\.js", r"tailwind css", r"chakra ui", r"material ui",
    r"bootstrap", r"fastapi", r"django rest", r"spring boot", r"ruby on rails",
    r"docker", r"kubernetes", r"terraform", r"ansible", r"github actions", r"gitlab ci",
    r"postman", r"insomnia", r"figma", r"notion", r"linear", r"jira", r"javascript", r"typescript",
    r"python", r"rust", r"golang", r"java", r"swift", r"kotlin",
)
TECH_PATTERN = _Pattern("tech_term", re.compile(rf"\b(?:{'|'.join(_TECH_TERMS)})\b", re.I), 0.96)

_CAPITALIZED_RE = re.compile(r"\b[A-Z][A-Za-z'’-]*\b")
_ACRONYM_RE = re.compile(r"^[A-Z]{2,}$")
_SENTENCE_BREAK_RE = re.compile(r"[.!?]\s*$")


def _regex_entities(text: str, pattern: _Pattern) -> list[Entity]:
    return [
        Entity(type=pattern.type, value=m.group(0), start=m.start(), end=m.end(), confidence=pattern.confidence)
        for m in pattern.regex.finditer(text)
    ]


def _is_sentence_initial(text: str, start: int) -> bool:
    prefix = text[:start].rstrip()
    return not prefix or prefix[-1] in ".!?"


def merge_adjacent(entities: list[Entity], text: str, max_gap: int = 2) -> list[Entity]:
    """Sort by start and merge same-type spans that touch, overlap or sit within ``max_gap``."""
    ordered = sorted(entities, key=lambda e: (e.start, -e.end))
    if len(ordered) < 2:
        return ordered

    merged: list[Entity] = []
    cur = ordered[0]
    for nxt in ordered[1:]:
        gap = nxt.start - cur.end
        if (
            nxt.type == cur.type
            and gap <= max_gap
            and not (gap > 0 and _SENTENCE_BREAK_RE.search(text[cur.end:nxt.start]))
        ):
            end = max(cur.end, nxt.end)
            cur = Entity(
                type=cur.type,
                value=text[cur.start:end],
                start=cur.start,
                end=end,
                confidence=max(cur.confidence, nxt.confidence),
            )
        else:
            merged.append(cur)
            cur = nxt
    merged.append(cur)
    return merged


# =============================================================================
# spaCy backend
# =============================================================================

def load_spacy_ner(model_name: str) -> Optional[NerFn]:
    """Load a spaCy pipeline and wrap it as a NER callable. Returns None if unavailable."""
    try:
        import spacy

        nlp = spacy.load(model_name)
    except OSError:
        logger.warning(f"spaCy model '{model_name}' not found. Run: python -m spacy download {model_name}")
        return None
    except ImportError:
        logger.warning("spaCy not installed; entity extraction uses regex rules only")
        return None

    def _ner(text: str) -> list[NerSpan]:
        doc = nlp(text)
        return [(ent.label_, ent.start_char, ent.end_char) for ent in doc.ents]

    logger.info(f"spaCy NER loaded: {model_name}")
    return _ner


class EntityExtractor:
    """Best-effort entity extractor.

    Args:
        ner: NER callable returning ``(label, start, end)`` spans. When None
            and ``use_spacy`` is set, spaCy is loaded lazily on first use.
        use_spacy: Try to load ``spacy_model`` if no ``ner`` is given.
        spacy_model: spaCy pipeline name (default: settings.spacy_model).
    """

    def __init__(
        self,
        ner: Optional[NerFn] = None,
        use_spacy: Optional[bool] = None,
        spacy_model: Optional[str] = None,
    ):
        self._ner = ner
        self._use_spacy = settings.enable_ner if use_spacy is None else use_spacy
        self._spacy_model = spacy_model or settings.spacy_model
        self._ner_loaded = ner is not None or not self._use_spacy
        self._lock = threading.Lock()

    def _get_ner(self) -> Optional[NerFn]:
        if not self._ner_loaded:
            with self._lock:
                if not self._ner_loaded:
                    self._ner = load_spacy_ner(self._spacy_model)
                    self._ner_loaded = True
        return self._ner

    @property
    def has_ner(self) -> bool:
        return self._get_ner() is not None

    def extract(self, text: str) -> list[Entity]:
        """Extract entities from ``text``, sorted by start offset.

        Raises:
            EntityExtractionFailure: If any extractor errors. Callers treat
                this as "no entities".
        """
        try:
            return self._extract(text)
        except EntityExtractionFailure:
            raise
        except Exception as e:
            raise EntityExtractionFailure(f"Entity extraction failed: {e}") from e

    def _extract(self, text: str) -> list[Entity]:
        entities: list[Entity] = []

        ner = self._get_ner()
        if ner is not None:
            for label, start, end in ner(text):
                value = text[start:end].strip()
                if value:
                    entities.append(Entity(
                        type=map_ner_label(label),
                        value=value,
                        start=start,
                        end=start + len(value),
                        confidence=NER_CONFIDENCE,
                    ))

        entities.extend(_regex_entities(text, APPOINTMENT_PATTERN))
        for pattern in TEMPORAL_PATTERNS:
            entities.extend(_regex_entities(text, pattern))
        for pattern in UNIVERSAL_PATTERNS:
            entities.extend(_regex_entities(text, pattern))
        entities.extend(_regex_entities(text, TECH_PATTERN))

        if ner is None:
            entities.extend(self._proper_nouns(text, entities))

        return merge_adjacent(entities, text)

    @staticmethod
    def _proper_nouns(text: str, found: list[Entity]) -> list[Entity]:
        """Capitalized words not already covered by another entity."""
        covered = [(e.start, e.end) for e in found]
        seen = {e.value.lower() for e in found}
        nouns = []
        for m in _CAPITALIZED_RE.finditer(text):
            word = m.group(0)
            if word == "I" or word.lower() in seen:
                continue
            if any(s <= m.start() < e for s, e in covered):
                continue
            acronym = bool(_ACRONYM_RE.match(word))
            if _is_sentence_initial(text, m.start()) and not acronym:
                continue
            nouns.append(Entity(
                type="proper_noun",
                value=word,
                start=m.start(),
                end=m.end(),
                confidence=0.85 if acronym else 0.78,
            ))
            seen.add(word.lower())
        return nouns
