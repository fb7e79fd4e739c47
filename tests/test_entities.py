"""Tests for entity extraction (regex rules, injected NER, merging)."""

import pytest

from intent_engine.entities import EntityExtractor, map_ner_label, merge_adjacent
from intent_engine.errors import EntityExtractionFailure
from intent_engine.models import Entity


def _by_type(entities, type_):
    return [e.value for e in entities if e.type == type_]


def _fake_ner(text):
    """Tags every occurrence of a few known names."""
    spans = []
    for name, label in (("John", "PERSON"), ("Paris", "GPE"), ("Acme", "ORG")):
        start = text.find(name)
        if start >= 0:
            spans.append((label, start, start + len(name)))
    return spans


class TestRegexExtraction:

    def test_adjacent_temporal_spans_merge(self, regex_extractor):
        entities = regex_extractor.extract("Remember I have a meeting with John tomorrow at 3pm")
        assert _by_type(entities, "datetime") == ["tomorrow at 3pm"]

    def test_sentence_break_prevents_merge(self, regex_extractor):
        entities = regex_extractor.extract("See you tomorrow. Friday works too")
        assert _by_type(entities, "datetime") == ["tomorrow", "Friday"]

    @pytest.mark.parametrize("text,expected", [
        ("dinner next Friday", "next Friday"),
        ("trip next week", "next week"),
        ("due on March 3rd", "March 3rd"),
        ("expires 2026-08-31", "2026-08-31"),
        ("renew before 10/31", "10/31"),
        ("lunch at noon", "at noon"),
        ("call at 9:30am", "at 9:30am"),
    ])
    def test_temporal_expressions(self, regex_extractor, text, expected):
        assert expected in _by_type(regex_extractor.extract(text), "datetime")

    def test_universal_patterns(self, regex_extractor):
        text = "Email bob@example.com or call 555-123-4567 about https://example.com/x and it costs $42.50"
        entities = regex_extractor.extract(text)
        assert _by_type(entities, "email") == ["bob@example.com"]
        assert _by_type(entities, "phone") == ["555-123-4567"]
        assert _by_type(entities, "url") == ["https://example.com/x"]
        assert _by_type(entities, "money") == ["$42.50"]

    def test_times_are_not_money_or_phone(self, regex_extractor):
        entities = regex_extractor.extract("meeting at 3pm")
        assert {e.type for e in entities} == {"datetime"}

    def test_quantity_and_version(self, regex_extractor):
        entities = regex_extractor.extract("Upgrade to v2.4.1 and run 45 minutes")
        assert _by_type(entities, "version") == ["v2.4.1"]
        assert _by_type(entities, "quantity") == ["45 minutes"]

    def test_appointment_type(self, regex_extractor):
        entities = regex_extractor.extract("When is my dentist appointment?")
        assert _by_type(entities, "appointment_type") == ["dentist appointment"]

    def test_tech_terms(self, regex_extractor):
        entities = regex_extractor.extract("Deploy the FastAPI app with Docker")
        assert _by_type(entities, "tech_term") == ["FastAPI", "Docker"]

    def test_proper_noun_fallback(self, regex_extractor):
        entities = regex_extractor.extract("Remember I have a meeting with John tomorrow")
        assert _by_type(entities, "proper_noun") == ["John"]

    def test_sentence_initial_words_are_not_proper_nouns(self, regex_extractor):
        entities = regex_extractor.extract("Remember the milk")
        assert _by_type(entities, "proper_noun") == []

    def test_entities_sorted_with_valid_spans(self, regex_extractor):
        text = "Call Dr. Patel on Tuesday 9am at 555-123-4567"
        entities = regex_extractor.extract(text)
        assert [e.start for e in entities] == sorted(e.start for e in entities)
        for e in entities:
            assert text[e.start:e.end] == e.value
            assert 0.0 <= e.confidence <= 1.0

    def test_no_entities(self, regex_extractor):
        assert regex_extractor.extract("xyzzy plugh quux") == []


class TestInjectedNer:

    def test_ner_labels_are_mapped(self):
        extractor = EntityExtractor(ner=_fake_ner)
        entities = extractor.extract("Fly John from Paris to Acme HQ")
        assert _by_type(entities, "person") == ["John"]
        assert _by_type(entities, "location") == ["Paris"]
        assert _by_type(entities, "organization") == ["Acme"]

    def test_ner_disables_proper_noun_fallback(self):
        extractor = EntityExtractor(ner=_fake_ner)
        entities = extractor.extract("Remember I have a meeting with John and Maria tomorrow at 3pm")
        assert _by_type(entities, "proper_noun") == []
        assert _by_type(entities, "person") == ["John"]
        assert _by_type(entities, "datetime") == ["tomorrow at 3pm"]
        assert extractor.has_ner

    def test_ner_errors_become_extraction_failure(self):
        def _broken(text):
            raise RuntimeError("model crashed")

        with pytest.raises(EntityExtractionFailure, match="model crashed"):
            EntityExtractor(ner=_broken).extract("hello")

    def test_spacy_disabled_means_no_ner(self, regex_extractor):
        assert regex_extractor.has_ner is False

    @pytest.mark.parametrize("label,expected", [
        ("PERSON", "person"), ("PER", "person"), ("GPE", "location"), ("LOC", "location"),
        ("ORG", "organization"), ("DATE", "datetime"), ("TIME", "datetime"), ("EVENT", "event"),
    ])
    def test_map_ner_label(self, label, expected):
        assert map_ner_label(label) == expected


class TestMergeAdjacent:

    def _e(self, type_, text, start, end):
        return Entity(type=type_, value=text[start:end], start=start, end=end, confidence=0.9)

    def test_merges_within_gap(self):
        text = "tomorrow at 3pm"
        merged = merge_adjacent([self._e("datetime", text, 9, 15), self._e("datetime", text, 0, 8)], text)
        assert [(e.value, e.start, e.end) for e in merged] == [("tomorrow at 3pm", 0, 15)]

    def test_does_not_merge_different_types(self):
        text = "John tomorrow"
        merged = merge_adjacent([self._e("person", text, 0, 4), self._e("datetime", text, 5, 13)], text)
        assert len(merged) == 2

    def test_does_not_merge_beyond_gap(self):
        text = "Monday and Friday"
        merged = merge_adjacent([self._e("datetime", text, 0, 6), self._e("datetime", text, 11, 17)], text)
        assert len(merged) == 2

    def test_overlapping_spans_merge(self):
        text = "next Friday"
        merged = merge_adjacent([self._e("datetime", text, 0, 11), self._e("datetime", text, 5, 11)], text)
        assert [(e.value, e.start, e.end) for e in merged] == [("next Friday", 0, 11)]
