"""
Call turn engine.

Pure decision logic for one voice callback: given the ordinal the callback
refers to, the total question count, and whatever the recipient said, decide
what to record and what the gateway should do next. No I/O happens here;
persistence and rendering live in the turn service.

Ordinal semantics:
    0      -> introduction just finished (the reply is consent or refusal)
    n >= 1 -> the reply answers question n
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Union

from surveycall.dialogue import scripts
from surveycall.dialogue.interpreter import extract_numeric_value, is_negation
from surveycall.surveys.formatting import format_question_for_voice

INTRO_LISTEN_TIMEOUT_SECONDS = 5
QUESTION_LISTEN_TIMEOUT_SECONDS = 10

_INTRO_CONSENT = re.compile(
    r"\b(yes|yeah|yep|definitely|absolutely|of course|sure|certainly|okay|ok|alright|go ahead)\b",
    re.IGNORECASE,
)


class TurnState(str, Enum):
    INTRODUCTION = "introduction"
    QUESTION = "question"
    COMPLETED = "completed"
    DECLINED = "declined"


@dataclass(frozen=True)
class Speak:
    text: str
    audio_url: str | None = None


@dataclass(frozen=True)
class Listen:
    """Collect speech or keypad input, then call back for the given ordinal."""

    ordinal: int
    total_questions: int
    prompts: tuple[Speak, ...] = ()
    timeout_seconds: int = QUESTION_LISTEN_TIMEOUT_SECONDS


@dataclass(frozen=True)
class HangUp:
    pass


Step = Union[Speak, Listen, HangUp]


@dataclass(frozen=True)
class TurnPlan:
    """What one callback should record and speak."""

    state: TurnState
    ordinal: int
    steps: tuple[Step, ...]
    record_answer: str | None = None
    answered_ordinal: int | None = None

    @property
    def end_call(self) -> bool:
        return any(isinstance(step, HangUp) for step in self.steps) and not any(
            isinstance(step, Listen) for step in self.steps
        )

    def spoken_texts(self) -> list[str]:
        """Every spoken segment in playback order, including prompts inside listens."""
        texts: list[str] = []
        for step in self.steps:
            if isinstance(step, Speak):
                texts.append(step.text)
            elif isinstance(step, Listen):
                texts.extend(prompt.text for prompt in step.prompts)
        return texts

    def with_audio(self, urls: list[str | None]) -> "TurnPlan":
        """Copy of the plan with audio URLs attached, aligned with spoken_texts()."""
        remaining = iter(urls)
        steps: list[Step] = []
        for step in self.steps:
            if isinstance(step, Speak):
                steps.append(replace(step, audio_url=next(remaining, None)))
            elif isinstance(step, Listen):
                prompts = tuple(
                    replace(prompt, audio_url=next(remaining, None)) for prompt in step.prompts
                )
                steps.append(replace(step, prompts=prompts))
            else:
                steps.append(step)
        return replace(self, steps=tuple(steps))


@dataclass(frozen=True)
class QuestionPrompt:
    id: str
    text: str
    response_type: str = "open-ended"
    options: tuple[str, ...] = ()
    follow_up_trigger: str | None = None
    follow_up_text: str | None = None

    @property
    def voice_text(self) -> str:
        return format_question_for_voice(self.text, self.response_type, list(self.options))


@dataclass(frozen=True)
class SurveyScript:
    """Ordered survey content for one call."""

    survey_name: str
    questions: tuple[QuestionPrompt, ...]
    description: str | None = None
    recipient_name: str | None = None

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    def question_at(self, ordinal: int) -> QuestionPrompt | None:
        if 1 <= ordinal <= len(self.questions):
            return self.questions[ordinal - 1]
        return None


@dataclass(frozen=True)
class TurnInput:
    ordinal: int
    total_questions: int
    recognized: str | None = None
    confidence_present: bool = False

    @property
    def answer_text(self) -> str | None:
        text = (self.recognized or "").strip()
        return text or None


def _question_steps(
    question: QuestionPrompt, ordinal: int, total: int, lead: list[str], first_hint: str
) -> tuple[Step, ...]:
    steps: list[Step] = [Speak(text) for text in lead if text]
    steps.append(
        Listen(
            ordinal=ordinal,
            total_questions=total,
            prompts=(Speak(question.voice_text), Speak(first_hint)),
        )
    )
    steps.append(Speak(scripts.REPROMPT_LEAD))
    steps.append(
        Listen(
            ordinal=ordinal,
            total_questions=total,
            prompts=(Speak(question.voice_text), Speak(scripts.REPROMPT_HINT)),
        )
    )
    steps.append(Speak(scripts.NO_RESPONSE_GOODBYE))
    steps.append(HangUp())
    return tuple(steps)


def introduction_plan(script: SurveyScript) -> TurnPlan:
    """Opening turn served when the recipient answers the call."""
    total = script.total_questions
    if total <= 0:
        return _completed_plan(0, None)

    first = script.questions[0]
    steps: list[Step] = [
        Speak(scripts.greeting(script.recipient_name)),
        Speak(scripts.ASSISTANT_INTRO),
        Listen(
            ordinal=0,
            total_questions=total,
            prompts=(Speak(scripts.introduction(script.description)),),
            timeout_seconds=INTRO_LISTEN_TIMEOUT_SECONDS,
        ),
        Speak(scripts.FIRST_QUESTION_LEAD),
        Listen(
            ordinal=1,
            total_questions=total,
            prompts=(Speak(first.voice_text), Speak(scripts.ANSWER_PROMPT)),
        ),
        Speak(scripts.REPROMPT_LEAD),
        Listen(
            ordinal=1,
            total_questions=total,
            prompts=(Speak(first.voice_text), Speak(scripts.REPROMPT_HINT)),
        ),
        Speak(scripts.DECLINE_GOODBYE),
        HangUp(),
    ]
    return TurnPlan(state=TurnState.INTRODUCTION, ordinal=0, steps=tuple(steps))


def _completed_plan(ordinal: int, answer: str | None) -> TurnPlan:
    return TurnPlan(
        state=TurnState.COMPLETED,
        ordinal=ordinal,
        steps=(Speak(scripts.COMPLETION), HangUp()),
        record_answer=answer,
        answered_ordinal=ordinal if answer else None,
    )


def follow_up_applies(question: QuestionPrompt, answer: str | None) -> bool:
    """A follow-up fires when the trigger appears in the answer or equals its numeric value."""
    trigger = (question.follow_up_trigger or "").strip().lower()
    if not trigger or not question.follow_up_text or not answer:
        return False
    if trigger in answer.lower():
        return True
    value = extract_numeric_value(answer)
    return value is not None and trigger == str(value)


def next_turn(script: SurveyScript, turn: TurnInput) -> TurnPlan:
    """Decide the plan for a callback carrying `turn`.

    The script supplies question content; `turn.total_questions` is what the
    callback URL claimed, and the smaller of the two bounds the call.
    """
    ordinal = turn.ordinal
    total = min(turn.total_questions, script.total_questions) if turn.total_questions > 0 else 0
    answer = turn.answer_text

    if total <= 0 or (ordinal > 0 and ordinal >= total):
        return _completed_plan(ordinal, answer if ordinal > 0 else None)

    if ordinal <= 0:
        if answer and is_negation(answer) and not _INTRO_CONSENT.search(answer):
            return TurnPlan(
                state=TurnState.DECLINED,
                ordinal=0,
                steps=(Speak(scripts.DECLINE_GOODBYE), HangUp()),
            )
        first = script.questions[0]
        return TurnPlan(
            state=TurnState.QUESTION,
            ordinal=0,
            steps=_question_steps(first, 1, total, [scripts.CONFIRMED_START], scripts.QUESTION_PROMPT),
        )

    # A consent phrase that lands on question 1 without a recognition score is the
    # tail of the introduction, not an answer.
    if ordinal == 1 and answer and not turn.confidence_present and _INTRO_CONSENT.search(answer):
        first = script.questions[0]
        return TurnPlan(
            state=TurnState.QUESTION,
            ordinal=1,
            steps=_question_steps(first, 1, total, [scripts.CONFIRMED_START], scripts.QUESTION_PROMPT),
        )

    answered = script.question_at(ordinal)
    next_ordinal = ordinal + 1
    upcoming = script.questions[next_ordinal - 1]

    lead: list[str] = []
    if answer:
        lead.append(scripts.acknowledgment(ordinal))
        if answered is not None and follow_up_applies(answered, answer):
            lead.append(answered.follow_up_text or "")
    lead.append(scripts.transition(next_ordinal))

    return TurnPlan(
        state=TurnState.QUESTION,
        ordinal=ordinal,
        steps=_question_steps(upcoming, next_ordinal, total, lead, scripts.QUESTION_PROMPT),
        record_answer=answer,
        answered_ordinal=ordinal if answer else None,
    )
