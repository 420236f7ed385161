"""
Fixed spoken phrases for survey calls.
"""

from __future__ import annotations

GREETING_TEMPLATE = "Hello{name}."
ASSISTANT_INTRO = "This is an AI research assistant calling about a short survey."
INTRO_LEAD = "I'd like to ask you a few quick questions."
INTRO_CLOSE = "Your feedback will really help improve our services. Is that okay?"

FIRST_QUESTION_LEAD = "Great. First question..."
CONFIRMED_START = "Great! Let's begin with the first question."
ANSWER_PROMPT = "Just let me know your answer after the tone."
QUESTION_PROMPT = "Please answer after the tone."
REPROMPT_LEAD = "I'm sorry, I didn't catch that. Let me ask again."
REPROMPT_HINT = "You can respond with your voice or press a key on your phone."

DECLINE_GOODBYE = (
    "No problem. Thank you for your time. I'll try to reach you another time. Have a great day!"
)
NO_RESPONSE_GOODBYE = (
    "I'm having trouble hearing your response. Thank you for your time. Goodbye."
)
COMPLETION = (
    "Thank you for completing our survey. Your feedback is valuable to us. Have a great day!"
)
ERROR_GOODBYE = "Thank you for your response. Goodbye."

ACKNOWLEDGMENTS: tuple[str, ...] = (
    "Thanks for that.",
    "I appreciate your response.",
    "Great, I've got that.",
    "Thanks, I understand.",
    "Perfect, thank you.",
)

TRANSITIONS: tuple[str, ...] = (
    "Now for question {number}...",
    "Let me ask you next...",
    "For my next question...",
    "I'd also like to know...",
)


def greeting(recipient_name: str | None) -> str:
    name = f" {recipient_name.strip()}" if recipient_name and recipient_name.strip() else ""
    return GREETING_TEMPLATE.format(name=name)


def introduction(survey_description: str | None) -> str:
    parts = [INTRO_LEAD]
    if survey_description and survey_description.strip():
        parts.append(survey_description.strip())
    parts.append(INTRO_CLOSE)
    return " ".join(parts)


def acknowledgment(answered_ordinal: int) -> str:
    return ACKNOWLEDGMENTS[max(answered_ordinal - 1, 0) % len(ACKNOWLEDGMENTS)]


def transition(next_ordinal: int) -> str:
    template = TRANSITIONS[next_ordinal % len(TRANSITIONS)]
    return template.format(number=next_ordinal)
