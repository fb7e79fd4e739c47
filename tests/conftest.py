"""
Pytest configuration and fixtures for intent engine tests.

All fixtures are hermetic: embedding classifiers run on the lexical embedder
or on fake vectors, and entity extraction never loads spaCy unless a test
injects its own NER callable.
"""

from pathlib import Path

import pytest

from intent_engine.corpus import SeedCorpus, load_seed_corpus
from intent_engine.embeddings import LexicalEmbedder
from intent_engine.entities import EntityExtractor
from intent_engine.observability import metrics


@pytest.fixture
def project_root():
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def seed_corpus() -> SeedCorpus:
    """The shipped seed corpus (config/seed_corpus.yaml)."""
    return load_seed_corpus(Path(__file__).parent.parent / "config" / "seed_corpus.yaml")


@pytest.fixture(scope="session")
def lexical_embedder(seed_corpus) -> LexicalEmbedder:
    return LexicalEmbedder.from_corpus(seed_corpus)


@pytest.fixture
def regex_extractor() -> EntityExtractor:
    """Entity extractor that never touches spaCy."""
    return EntityExtractor(use_spacy=False)


@pytest.fixture
def tiny_corpus() -> SeedCorpus:
    return SeedCorpus.from_mapping(
        {
            "greeting": ["hello there", "good morning"],
            "question": ["what can you do", "how does this work"],
            "web_search": ["weather forecast today", "latest news"],
        },
        priorities={"web_search": 5, "question": 4},
        version="test",
    )


@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics are process-global; start every test from zero."""
    metrics.reset_all()
    yield
    metrics.reset_all()
