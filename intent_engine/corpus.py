"""Seed corpus loading.

The seed corpus is versioned data, not code: a YAML file mapping each intent
to curated example utterances, plus the tie-break priority table. Classifiers
receive a loaded ``SeedCorpus`` instead of reading module-level constants.

File format::

    _meta:
      version: "2025.11.1"
    priorities:
      web_search: 5
      ...
    intents:
      memory_store:
        - "Remember I have a meeting with John tomorrow at 3pm"
        ...
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

import yaml

from .config import settings

logger = logging.getLogger(__name__)

MIN_EXAMPLES_PER_INTENT = 15
MAX_EXAMPLES_PER_INTENT = 80


@dataclass(frozen=True)
class SeedExample:
    intent: str
    text: str


@dataclass(frozen=True)
class SeedCorpus:
    """Immutable intent -> examples mapping with tie-break priorities."""

    version: str
    examples: Mapping[str, tuple[str, ...]]
    priorities: Mapping[str, int] = field(default_factory=dict)

    @classmethod
    def from_mapping(
        cls,
        intents: Mapping[str, list[str]],
        priorities: Optional[Mapping[str, int]] = None,
        version: str = "inline",
    ) -> "SeedCorpus":
        """Build a corpus from plain Python data (used by tests and tooling)."""
        if not intents:
            raise ValueError("Seed corpus is empty: at least one intent is required")

        examples: dict[str, tuple[str, ...]] = {}
        for intent, utterances in intents.items():
            cleaned = tuple(u.strip() for u in utterances or [] if isinstance(u, str) and u.strip())
            if not cleaned:
                raise ValueError(f"Intent '{intent}' has no usable examples")
            examples[intent] = cleaned

        unknown = set(priorities or {}) - set(examples)
        if unknown:
            logger.warning(f"Priorities given for intents not in corpus: {sorted(unknown)}")

        return cls(
            version=str(version),
            examples=MappingProxyType(examples),
            priorities=MappingProxyType(dict(priorities or {})),
        )

    @property
    def intents(self) -> list[str]:
        return list(self.examples)

    def __contains__(self, intent: str) -> bool:
        return intent in self.examples

    def __len__(self) -> int:
        return sum(len(v) for v in self.examples.values())

    def iter_examples(self):
        """Yield every ``SeedExample`` in corpus order."""
        for intent, utterances in self.examples.items():
            for text in utterances:
                yield SeedExample(intent=intent, text=text)

    def validate_sizes(self) -> list[str]:
        """Return warnings for intents outside the recommended example range."""
        warnings = []
        for intent, utterances in self.examples.items():
            n = len(utterances)
            if n < MIN_EXAMPLES_PER_INTENT:
                warnings.append(f"{intent}: only {n} examples (recommended >= {MIN_EXAMPLES_PER_INTENT})")
            elif n > MAX_EXAMPLES_PER_INTENT:
                warnings.append(f"{intent}: {n} examples (recommended <= {MAX_EXAMPLES_PER_INTENT})")
        return warnings


def load_seed_corpus(path: Optional[Path] = None) -> SeedCorpus:
    """Load the seed corpus from YAML.

    Args:
        path: YAML file to read. Defaults to ``settings.seed_corpus_path``
            resolved against the project root.

    Returns:
        SeedCorpus with examples, priorities and version.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file holds no intents.
    """
    path = Path(path) if path is not None else settings.resolve_path(settings.seed_corpus_path)
    if not path.exists():
        raise FileNotFoundError(f"Seed corpus not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    # Support both nested format with 'intents' key and flat format
    if "intents" in data:
        intents = data["intents"] or {}
    else:
        intents = {k: v for k, v in data.items() if not k.startswith("_") and isinstance(v, list)}

    meta = data.get("_meta") or {}
    corpus = SeedCorpus.from_mapping(
        intents,
        priorities=data.get("priorities") or {},
        version=meta.get("version", "unversioned"),
    )

    for warning in corpus.validate_sizes():
        logger.warning(f"Seed corpus {path.name}: {warning}")

    logger.info(
        "Loaded seed corpus %s: %d examples across %d intents",
        corpus.version, len(corpus), len(corpus.intents),
    )
    return corpus
