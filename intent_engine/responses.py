"""Suggested acknowledgement responses per intent.

Selection is deterministic per message text (CRC32 of the text), so the same
input always yields the same suggestion.
"""

import zlib
from typing import Callable, Sequence

from .models import Entity, Intent

DEFAULT_RESPONSE = "I understand. How can I assist you?"

MEMORY_STORE_RESPONSES = (
    "I've noted that information.",
    "Got it, I'll remember that.",
    "Okay, I'll keep that in mind.",
    "Saving that for future reference.",
    "Noted and stored.",
    "I've logged that in your memory.",
    "That's been added to your timeline.",
    "I've written that down for you.",
    "Added to your notes.",
    "Consider it stored.",
)

MEMORY_RETRIEVE_RESPONSES = (
    "Let me check what I have stored.",
    "I'll look that up for you.",
    "Searching my memory.",
    "One moment, retrieving that now.",
    "Accessing your saved information.",
    "Let me pull that up.",
    "Checking your logs now.",
    "Reviewing your past entries.",
    "Scanning your history.",
    "Let me recall that detail.",
)

WEB_SEARCH_RESPONSES = (
    "Searching the web for you...",
    "Looking that up online...",
    "Checking the latest information...",
    "Searching for current data...",
    "Finding the most up-to-date info...",
    "Querying web sources...",
    "Gathering information from the web...",
    "Checking online resources...",
)

GENERAL_KNOWLEDGE_RESPONSES = (
    "Here's what I know about that.",
    "Allow me to explain.",
    "Let me walk you through it.",
    "I'll give you a concise explanation.",
)

GREETING_RESPONSES = (
    "Hello! How can I help you today?",
    "Hi there! What can I do for you?",
    "Good to see you! How can I assist?",
    "Hey! What's on your mind?",
    "Welcome back! Ready when you are.",
    "Hi! Need anything?",
    "Greetings! How can I help you today?",
    "Hey there! What's first?",
)

COMMAND_GUIDE_RESPONSES = (
    "Here's how to do that step by step...",
    "Let me walk you through the steps...",
    "I'll show you how to do that...",
)

# Keyword -> response, checked in order
COMMAND_KEYWORD_RESPONSES = (
    ("screenshot", "Taking a screenshot..."),
    ("open", "Opening the application..."),
    ("close", "Closing the application..."),
    ("search", "Searching..."),
)

# Leading word -> response
QUESTION_LEAD_RESPONSES = (
    ("what", "Let me explain that for you..."),
    ("how", "Here's how that works..."),
    ("why", "The reason is..."),
    ("when", "Let me check the timing..."),
    ("where", "Let me find that location..."),
    ("who", "Let me tell you about that..."),
)


def _pick(options: Sequence[str], message: str) -> str:
    return options[zlib.crc32(message.encode("utf-8", errors="surrogatepass")) % len(options)]


def _command_execute(message: str, entities: Sequence[Entity]) -> str:
    lowered = message.lower()
    for keyword, response in COMMAND_KEYWORD_RESPONSES:
        if keyword in lowered:
            return response
    return "Executing command..."


def _question(message: str, entities: Sequence[Entity]) -> str:
    lowered = message.strip().lower()
    for lead, response in QUESTION_LEAD_RESPONSES:
        if lowered.startswith(lead):
            return response
    return "Let me answer that for you..."


ResponseFn = Callable[[str, Sequence[Entity]], str]

RESPONDERS: dict[Intent, ResponseFn] = {
    Intent.MEMORY_STORE: lambda m, e: _pick(MEMORY_STORE_RESPONSES, m),
    Intent.MEMORY_RETRIEVE: lambda m, e: _pick(MEMORY_RETRIEVE_RESPONSES, m),
    Intent.COMMAND_EXECUTE: _command_execute,
    Intent.COMMAND_GUIDE: lambda m, e: _pick(COMMAND_GUIDE_RESPONSES, m),
    Intent.WEB_SEARCH: lambda m, e: _pick(WEB_SEARCH_RESPONSES, m),
    Intent.GENERAL_KNOWLEDGE: lambda m, e: _pick(GENERAL_KNOWLEDGE_RESPONSES, m),
    Intent.QUESTION: _question,
    Intent.GREETING: lambda m, e: _pick(GREETING_RESPONSES, m),
    Intent.CONTEXT: lambda m, e: "Let me review our conversation history...",
    Intent.SCREEN_INTELLIGENCE: lambda m, e: "Let me take a look at your screen...",
}


def get_suggested_response(intent: str, message: str, entities: Sequence[Entity] = ()) -> str:
    """Suggested response for ``intent``; intents outside ``Intent`` get a generic reply."""
    try:
        key = Intent(intent)
    except ValueError:
        return DEFAULT_RESPONSE
    return RESPONDERS[key](message, entities)
