"""
Response interpreter.

Turns recognized speech or keypad digits into a numeric value plus a short
insight phrase.

Numeric precedence:
    1. a literal number 0-10 ("5", "10")
    2. a spelled-out number word ("seven")
    3. affirmation / negation lexicon -> 1 / 0
    4. sentiment lexicon -> 1..5
    5. otherwise None ("unknown"; never a made-up value)

The insight phrase is presentation sugar: it is picked from a fixed pool for
the numeric bucket and says nothing about the answer beyond that bucket.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from enum import Enum

_DIGIT = re.compile(r"\b(10|[0-9])\b")

_NUMBER_WORDS: dict[str, int] = {
    "zero": 0,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
}
_NUMBER_WORD = re.compile(r"\b(" + "|".join(_NUMBER_WORDS) + r")\b")

AFFIRMATION = re.compile(r"\b(yes|yeah|yep|definitely|absolutely|of course|sure|certainly)\b")
NEGATION = re.compile(r"\b(no|nope|not|never)\b")

# Checked in order; first matching tier wins.
_SENTIMENT_TIERS: tuple[tuple[int, re.Pattern[str]], ...] = (
    (5, re.compile(r"\b(excellent|amazing|outstanding|great|perfect|fantastic)\b")),
    (4, re.compile(r"\b(good|positive|pleased|satisfied)\b")),
    (3, re.compile(r"\b(average|okay|ok|alright|decent|fair)\b")),
    (2, re.compile(r"\b(poor|disappointing|dissatisfied|inadequate)\b")),
    (1, re.compile(r"\b(terrible|awful|horrible|very bad)\b")),
)


class InsightBucket(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    AFFIRMATIVE = "affirmative"
    NEUTRAL = "neutral"


INSIGHT_POOLS: dict[InsightBucket, tuple[str, ...]] = {
    InsightBucket.LOW: (
        "Respondent reported a negative experience",
        "Dissatisfaction noted",
        "Respondent expressed concerns",
        "Respondent indicated problems that need follow-up",
        "Low rating given",
        "Respondent suggested significant improvements",
    ),
    InsightBucket.MEDIUM: (
        "Respondent had an average experience",
        "Respondent provided balanced feedback",
        "Feedback indicates room for improvement",
        "Some minor concerns were mentioned",
        "Respondent found the experience adequate",
        "Respondent had a satisfactory experience",
    ),
    InsightBucket.HIGH: (
        "Respondent expressed high satisfaction",
        "Very positive feedback",
        "Respondent highlighted excellent quality",
        "Strong positive sentiment",
        "Respondent was very pleased overall",
        "High rating given",
    ),
    InsightBucket.AFFIRMATIVE: (
        "Respondent confirmed",
        "Respondent answered yes",
        "Respondent agreed",
        "Respondent gave an affirmative answer",
        "Respondent indicated the expectation was met",
    ),
    InsightBucket.NEUTRAL: (
        "No clear rating in the answer",
        "Answer recorded without a numeric value",
        "Open answer recorded",
        "Respondent answered in their own words",
    ),
}


@dataclass(frozen=True)
class Interpretation:
    """Result of interpreting one answer."""

    numeric_value: int | None
    insight: str
    bucket: InsightBucket


def _first_lexicon_value(text: str) -> int | None:
    """1 for affirmation, 0 for negation; the earliest match in the text wins."""
    yes = AFFIRMATION.search(text)
    no = NEGATION.search(text)
    if yes and no:
        return 1 if yes.start() < no.start() else 0
    if yes:
        return 1
    if no:
        return 0
    return None


def extract_numeric_value(raw_text: str | None) -> int | None:
    """Numeric value of an answer, or None when the text carries no numeric signal."""
    if not raw_text:
        return None
    text = raw_text.strip().lower()
    if not text:
        return None

    digit = _DIGIT.search(text)
    if digit:
        return int(digit.group(1))

    word = _NUMBER_WORD.search(text)
    if word:
        return _NUMBER_WORDS[word.group(1)]

    lexicon = _first_lexicon_value(text)
    if lexicon is not None:
        return lexicon

    for value, pattern in _SENTIMENT_TIERS:
        if pattern.search(text):
            return value

    return None


def insight_bucket(numeric_value: int | None, raw_text: str | None = None) -> InsightBucket:
    if numeric_value is None:
        return InsightBucket.NEUTRAL
    if numeric_value == 0:
        return InsightBucket.LOW
    if numeric_value == 1 and AFFIRMATION.search((raw_text or "").lower()):
        return InsightBucket.AFFIRMATIVE
    if numeric_value <= 2:
        return InsightBucket.LOW
    if numeric_value <= 3:
        return InsightBucket.MEDIUM
    return InsightBucket.HIGH


def pick_insight(bucket: InsightBucket, raw_text: str | None = None) -> str:
    """Deterministic pick from the bucket pool (same text, same phrase)."""
    pool = INSIGHT_POOLS[bucket]
    digest = hashlib.sha256((raw_text or "").strip().lower().encode("utf-8")).digest()
    return pool[int.from_bytes(digest[:4], "big") % len(pool)]


def interpret(raw_text: str | None) -> Interpretation:
    """Interpret a recognized answer."""
    value = extract_numeric_value(raw_text)
    bucket = insight_bucket(value, raw_text)
    return Interpretation(numeric_value=value, insight=pick_insight(bucket, raw_text), bucket=bucket)


def is_affirmation(raw_text: str | None) -> bool:
    """True when the text opens with agreement rather than refusal."""
    return _first_lexicon_value((raw_text or "").lower()) == 1


def is_negation(raw_text: str | None) -> bool:
    return _first_lexicon_value((raw_text or "").lower()) == 0


def is_rating_word(word: str | None) -> bool:
    """True when word alone carries a numeric, yes/no or sentiment reading."""
    token = (word or "").strip().lower()
    if not token:
        return False
    if token in _NUMBER_WORDS or AFFIRMATION.fullmatch(token) or NEGATION.fullmatch(token):
        return True
    return any(pattern.fullmatch(token) for _, pattern in _SENTIMENT_TIERS)
