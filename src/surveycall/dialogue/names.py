"""
Best-effort recipient name extraction from self-introduction phrases.

Explicit introductions ("my name is X", "call me X", "X speaking") are trusted
on any turn. Conversational forms ("this is X", "I'm X", "it's X") read just as
naturally as survey answers ("it's terrible", "I'm satisfied"), so they only
count on the introduction turn.
"""

from __future__ import annotations

import re
from typing import Protocol

from surveycall.dialogue.interpreter import is_rating_word

PLACEHOLDER_NAMES = frozenset({"user", "unknown", "contact", "customer", "patient"})


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)


_EXPLICIT_PATTERNS = _compile(
    r"my name is (\w+)",
    r"call me (\w+)",
    r"(\w+) speaking",
)

_INTRODUCTION_PATTERNS = _compile(
    r"this is (\w+)",
    r"(\w+) here",
    r"\bi am (\w+)",
    r"\bi'm (\w+)",
    r"\bit's (\w+)",
    r"hello.* (\w+) here",
    r"\bhi,? (?:this is )?(\w+)",
)

_SHORT_REPLY = re.compile(r"^(yes|no|yeah|nope|sure|okay|ok)$", re.IGNORECASE)

# Words the patterns above capture that are never names ("I'm fine", "it's good").
# Rating and sentiment words come from the interpreter's lexicons.
_NOT_NAMES = frozenset(
    {
        "fine", "well", "doing", "just", "very", "really", "happy", "unhappy",
        "busy", "sorry", "here", "there", "the", "that", "this", "what", "who",
        "glad", "all", "too", "also", "going", "calling", "speaking", "bad",
        "worse", "better", "best", "nice", "disappointed", "frustrated",
        "confused", "tired", "done", "ready", "interested", "neutral", "unsure",
        "quite", "pretty", "somewhat", "mostly", "so", "still", "kind", "a",
    }
)


def _looks_like_name(word: str, min_length: int) -> bool:
    lowered = word.lower()
    return (
        len(word) >= min_length
        and not word.isdigit()
        and lowered not in _NOT_NAMES
        and not is_rating_word(lowered)
    )


class NameExtractor(Protocol):
    """Finds a recipient's self-introduced name in recognized speech."""

    def extract(self, text: str, *, introduction: bool = False) -> str | None: ...


class PatternNameExtractor:
    """Regex extractor for phrases like "my name is X", "X speaking", "this is X"."""

    min_length = 3

    def extract(self, text: str, *, introduction: bool = False) -> str | None:
        candidate_text = (text or "").strip()
        if len(candidate_text) < self.min_length or _SHORT_REPLY.match(candidate_text):
            return None

        patterns = _EXPLICIT_PATTERNS + (_INTRODUCTION_PATTERNS if introduction else ())
        for pattern in patterns:
            match = pattern.search(candidate_text)
            if not match:
                continue
            name = match.group(1).strip()
            if not _looks_like_name(name, self.min_length):
                continue
            return name[:1].upper() + name[1:]
        return None


def get_name_extractor() -> NameExtractor:
    """FastAPI dependency for the extractor used on voice callbacks."""
    return PatternNameExtractor()


def is_placeholder_name(name: str | None, recipient_id: str | None = None) -> bool:
    """True when a stored name is missing or a stand-in that a real name should replace."""
    if not name or not name.strip():
        return True
    value = name.strip()
    if value.lower() in PLACEHOLDER_NAMES:
        return True
    if recipient_id and value == str(recipient_id)[:8]:
        return True
    return False
