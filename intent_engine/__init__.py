"""
Intent Engine: utterance intent classification for assistant routing

This package classifies a free-text user message into one of a configurable
set of intents (store a memory, retrieve a memory, run a command, search the
web, ...) and extracts lightweight entities from it:
- Max-cosine similarity against a curated, versioned seed corpus
- Declarative heuristic boost rules over lexical and entity signals
- Floor and priority-based tie-break resolution
- Interchangeable classifier implementations with a fallback chain
"""

__version__ = "0.1.0"
