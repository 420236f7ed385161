"""
Voice formatting of survey questions.

A question read aloud needs an answer hint matching its response type, and
some question shapes do not work over the phone at all.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from surveycall.surveys.models import ResponseType

MIN_QUESTION_LENGTH = 10
MAX_OPTION_LENGTH = 50
MAX_OPTIONS = 5

_ALREADY_PROMPTED = re.compile(
    r"please (say|tell|respond|answer|select|choose)",
    re.IGNORECASE,
)


def normalize_response_type(response_type: str | None) -> ResponseType | None:
    """Map loosely written tags ("Yes-No", "yes_no", "Multiple Choice") onto ResponseType."""
    if not response_type:
        return None
    value = response_type.strip().lower().replace("_", "-").replace(" ", "-")
    value = {"yes/no": "yes-no", "yesno": "yes-no"}.get(value, value)
    try:
        return ResponseType(value)
    except ValueError:
        return None


def is_voice_friendly(text: str) -> bool:
    """True when the text already tells the recipient how to answer."""
    return bool(_ALREADY_PROMPTED.search(text or ""))


def answer_hint(response_type: str | None, options: Sequence[str] | None = None) -> str:
    """Spoken instruction telling the recipient how to answer."""
    kind = normalize_response_type(response_type)

    if kind is ResponseType.MULTIPLE_CHOICE:
        if options:
            quoted = ", ".join(f'"{option}"' for option in options)
            return f"Please say one of the following: {quoted}."
        return "Please select one of the options."
    if kind is ResponseType.YES_NO:
        return 'Please say "Yes" or "No".'
    if kind is ResponseType.NUMERIC:
        return "Please say a number."
    if kind is ResponseType.OPEN_ENDED:
        return "Please tell me in your own words."
    return "Please respond with your answer."


def format_question_for_voice(
    text: str,
    response_type: str | None = None,
    options: Sequence[str] | None = None,
) -> str:
    """Question text followed by its answer hint."""
    if is_voice_friendly(text):
        return text

    base = (text or "").strip()
    if base and not base.endswith(("?", ".")):
        base += "?"
    return f"{base} {answer_hint(response_type, options)}".strip()


def validate_voice_question(
    text: str,
    response_type: str | None = None,
    options: Sequence[str] | None = None,
) -> list[str]:
    """Problems that make a question unsuitable for a phone survey (empty when fine)."""
    stripped = (text or "").strip()
    if not stripped:
        return ["Question text cannot be empty"]

    problems: list[str] = []
    if not stripped.endswith(("?", ".", "!")):
        problems.append("Question should end with appropriate punctuation (?, ., !)")

    if normalize_response_type(response_type) is ResponseType.MULTIPLE_CHOICE and len(options or []) < 2:
        problems.append("Multiple-choice questions should have at least two options")

    for option in options or []:
        if len(option) > MAX_OPTION_LENGTH:
            problems.append(f"Option \"{option[:20]}...\" is too long for voice interaction")
    if len(options or []) > MAX_OPTIONS:
        problems.append("Too many options make a voice question hard to follow")

    if len(stripped) < MIN_QUESTION_LENGTH:
        problems.append("Question text is too short for clarity in voice interaction")

    return problems
