"""Tests for the keyword classifier and suggested responses."""

import pytest

from intent_engine.classifiers import keyword_classifier as keyword_module
from intent_engine.classifiers.keyword_classifier import KEYWORD_FLOOR, KeywordIntentClassifier, keyword_scores
from intent_engine.models import Intent, ParseOptions
from intent_engine.responses import DEFAULT_RESPONSE, RESPONDERS, get_suggested_response


# =============================================================================
# Keyword scoring
# =============================================================================

class TestKeywordScores:

    def test_every_builtin_intent_scored(self):
        assert set(keyword_scores("anything")) == {i.value for i in Intent}

    @pytest.mark.parametrize("text", [
        "Remember remember remember to save, store and keep and note this today at 5pm, I have to",
        "what? ? ?",
        "",
        "Hello hi hey good morning",
    ])
    def test_scores_clamped(self, text):
        assert all(0.0 <= s <= 1.0 for s in keyword_scores(text).values())

    def test_short_greeting_bonus(self):
        assert keyword_scores("Hello")["greeting"] == pytest.approx(1.0)

    def test_negative_weights_floor_at_zero(self):
        assert keyword_scores("Is it raining?")["memory_store"] == 0.0


class TestKeywordIntentClassifier:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text,expected", [
        ("Hello", "greeting"),
        ("Take a screenshot", "command_execute"),
        ("Remember I have a meeting tomorrow at 3pm", "memory_store"),
        ("How do I take a screenshot on my Mac?", "command_guide"),
    ])
    async def test_classifies(self, text, expected):
        result = await KeywordIntentClassifier().parse(text)
        assert result.intent == expected
        assert result.parser == "keyword"
        assert result.low_confidence is False

    @pytest.mark.asyncio
    async def test_nothing_matches(self):
        result = await KeywordIntentClassifier().parse("xyzzy plugh quux")
        assert result.intent == "question"
        assert result.low_confidence is True

    @pytest.mark.asyncio
    async def test_uses_stricter_floor(self):
        clf = KeywordIntentClassifier()
        assert clf._resolver.floor == KEYWORD_FLOOR

    @pytest.mark.asyncio
    async def test_regex_entities(self):
        result = await KeywordIntentClassifier().parse("Remember I have a meeting tomorrow at 3pm")
        assert [(e.type, e.value) for e in result.entities] == [("datetime", "tomorrow at 3pm")]

    @pytest.mark.asyncio
    async def test_options_respected(self):
        result = await KeywordIntentClassifier().parse(
            "Take a screenshot", ParseOptions(include_entities=False, include_suggested_response=False)
        )
        assert result.entities == ()
        assert result.suggested_response is None

    @pytest.mark.asyncio
    async def test_initialize_idempotent(self):
        clf = KeywordIntentClassifier(name="emergency")
        assert not clf.is_ready
        await clf.initialize()
        await clf.initialize()
        assert clf.is_ready
        assert (await clf.parse("hi")).parser == "emergency"

    @pytest.mark.asyncio
    async def test_lone_surrogate_still_gets_response(self):
        result = await KeywordIntentClassifier().parse("remember \ud800 tomorrow at 3pm")
        assert result.intent == "memory_store"
        assert result.suggested_response

    @pytest.mark.asyncio
    async def test_response_failure_leaves_result_intact(self, monkeypatch, caplog):
        def broken(intent, message, entities=()):
            raise RuntimeError("template missing")

        monkeypatch.setattr(keyword_module, "get_suggested_response", broken)
        result = await KeywordIntentClassifier().parse("Take a screenshot")

        assert result.intent == "command_execute"
        assert result.suggested_response is None
        assert "template missing" in caplog.text


# =============================================================================
# Suggested responses
# =============================================================================

class TestSuggestedResponses:

    def test_every_intent_has_a_responder(self):
        assert set(RESPONDERS) == set(Intent)

    @pytest.mark.parametrize("intent", [i.value for i in Intent])
    def test_non_empty_and_deterministic(self, intent):
        a = get_suggested_response(intent, "Some message")
        b = get_suggested_response(intent, "Some message")
        assert a and a == b

    def test_unknown_intent(self):
        assert get_suggested_response("made_up", "hi") == DEFAULT_RESPONSE

    @pytest.mark.parametrize("message,expected", [
        ("take a screenshot", "Taking a screenshot..."),
        ("open Spotify", "Opening the application..."),
        ("mute the volume", "Executing command..."),
    ])
    def test_command_responses(self, message, expected):
        assert get_suggested_response("command_execute", message) == expected

    @pytest.mark.parametrize("message,expected", [
        ("Why is the sky blue?", "The reason is..."),
        ("How are you?", "Here's how that works..."),
        ("Can you help?", "Let me answer that for you..."),
    ])
    def test_question_responses(self, message, expected):
        assert get_suggested_response("question", message) == expected
