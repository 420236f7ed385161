"""
Turn service.

Runs one voice callback end to end: loads the attempt and its survey, applies
the pure turn engine, persists the answer and outcome, renders audio and
returns TwiML. Bookkeeping failures are logged and never change what the
caller hears.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from surveycall.calls.models import CallAttempt, CallAttemptStatus
from surveycall.calls.repository import CallAttemptRepository
from surveycall.config import Settings
from surveycall.dialogue.call_config import CallConfig
from surveycall.dialogue.engine import (
    QuestionPrompt,
    SurveyScript,
    TurnInput,
    TurnPlan,
    TurnState,
    next_turn,
)
from surveycall.dialogue.interpreter import interpret
from surveycall.dialogue.names import NameExtractor, PatternNameExtractor, is_placeholder_name
from surveycall.shared.exceptions import AttemptNotFoundError
from surveycall.shared.logging import get_logger
from surveycall.speech.cache import SpeechRenderer
from surveycall.surveys.models import Question, Recipient
from surveycall.surveys.repository import RecipientRepository, ResponseRepository, SurveyRepository
from surveycall.telephony.twiml import TwimlRenderer

logger = get_logger(__name__)

DECLINED_NOTE = "Declined at introduction"


@dataclass(frozen=True)
class VoiceCallback:
    """Parameters of one voice webhook request."""

    ordinal: int = 1
    total_questions: int = 1
    attempt_id: str | None = None
    call_sid: str | None = None
    voice: str | None = None
    speech_result: str | None = None
    digits: str | None = None
    confidence: str | None = None

    @property
    def recognized(self) -> str | None:
        text = (self.speech_result or "").strip() or (self.digits or "").strip()
        return text or None

    @property
    def confidence_present(self) -> bool:
        return bool((self.confidence or "").strip())


def question_prompts(questions: Sequence[Question]) -> tuple[QuestionPrompt, ...]:
    return tuple(
        QuestionPrompt(
            id=str(q.id),
            text=q.text,
            response_type=q.response_type or "open-ended",
            options=tuple(q.options or ()),
            follow_up_trigger=q.follow_up_trigger,
            follow_up_text=q.follow_up_text,
        )
        for q in questions
    )


async def load_script(session: AsyncSession, attempt: CallAttempt) -> tuple[SurveyScript, Recipient | None]:
    """Survey content and recipient for an attempt."""
    surveys = SurveyRepository(session)
    survey = await surveys.get_by_id(attempt.survey_id)
    questions = await surveys.get_ordered_questions(attempt.survey_id)
    recipient = await RecipientRepository(session).get_by_id(attempt.recipient_id)

    name = None
    if recipient is not None and not is_placeholder_name(recipient.name, str(recipient.id)):
        name = recipient.name

    script = SurveyScript(
        survey_name=survey.name if survey else "",
        description=survey.description if survey else None,
        questions=question_prompts(questions),
        recipient_name=name,
    )
    return script, recipient


def resolve_call_config(
    attempt: CallAttempt,
    settings: Settings,
    renderer: SpeechRenderer,
    fallback_voice: str | None = None,
) -> CallConfig:
    return CallConfig.resolve(
        attempt.voice_option or fallback_voice,
        attempt.language_option,
        default_voice=settings.default_voice,
        default_language=settings.default_language,
        synthesis_available=renderer.available,
    )


async def render_plan(
    plan: TurnPlan,
    config: CallConfig,
    renderer: SpeechRenderer,
    twiml: TwimlRenderer,
) -> str:
    urls = await renderer.render(
        plan.spoken_texts(),
        config.synthesis_voice_id or "",
        config.use_synthesis,
    )
    return twiml.render(plan.with_audio(urls))


class TurnService:
    """Handles voice callbacks for in-flight survey calls."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        renderer: SpeechRenderer,
        name_extractor: NameExtractor | None = None,
    ) -> None:
        self._session = session
        self._settings = settings
        self._renderer = renderer
        self._names = name_extractor or PatternNameExtractor()
        self._attempts = CallAttemptRepository(session)
        self._responses = ResponseRepository(session)
        self._recipients = RecipientRepository(session)

    async def _find_attempt(self, callback: VoiceCallback) -> CallAttempt:
        attempt = None
        if callback.attempt_id:
            try:
                attempt = await self._attempts.get_by_id(UUID(callback.attempt_id))
            except ValueError:
                logger.warning("Malformed attemptId", extra={"attempt_id": callback.attempt_id})
        if attempt is None and callback.call_sid:
            attempt = await self._attempts.get_by_call_sid(callback.call_sid)
        if attempt is None:
            raise AttemptNotFoundError(callback.attempt_id or callback.call_sid or "unknown")
        return attempt

    async def handle(self, callback: VoiceCallback) -> str:
        """Process one callback and return the TwiML to send back."""
        attempt = await self._find_attempt(callback)
        script, recipient = await load_script(self._session, attempt)

        turn = TurnInput(
            ordinal=callback.ordinal,
            total_questions=callback.total_questions,
            recognized=callback.recognized,
            confidence_present=callback.confidence_present,
        )

        if recipient is not None and turn.answer_text:
            await self._maybe_learn_name(recipient, turn.answer_text, introduction=callback.ordinal == 0)

        plan = next_turn(script, turn)
        logger.info(
            "Turn planned",
            extra={
                "attempt_id": str(attempt.id),
                "ordinal": callback.ordinal,
                "state": plan.state.value,
                "recorded": plan.answered_ordinal is not None,
            },
        )

        call_sid = callback.call_sid or attempt.call_sid
        if plan.record_answer and plan.answered_ordinal is not None:
            question = script.question_at(plan.answered_ordinal)
            if question is not None:
                await self._record_answer(attempt, question, plan.answered_ordinal, plan.record_answer, call_sid)

        await self._settle(attempt, plan)

        config = resolve_call_config(attempt, self._settings, self._renderer, callback.voice)
        twiml = TwimlRenderer(
            self._settings.public_base_url,
            config,
            attempt_id=str(attempt.id),
            call_sid=call_sid,
        )
        return await render_plan(plan, config, self._renderer, twiml)

    async def _maybe_learn_name(self, recipient: Recipient, text: str, *, introduction: bool) -> None:
        if not is_placeholder_name(recipient.name, str(recipient.id)):
            return
        try:
            name = self._names.extract(text, introduction=introduction)
            if not name:
                return
            async with self._session.begin_nested():
                await self._recipients.update_name(recipient.id, name)
            logger.info("Recipient name learned", extra={"recipient_id": str(recipient.id)})
        except Exception:
            logger.exception("Name extraction failed", extra={"recipient_id": str(recipient.id)})

    async def _record_answer(
        self,
        attempt: CallAttempt,
        question: QuestionPrompt,
        ordinal: int,
        answer: str,
        call_sid: str | None,
    ) -> None:
        interpretation = interpret(answer)
        try:
            async with self._session.begin_nested():
                await self._responses.create(
                    recipient_id=attempt.recipient_id,
                    question_id=UUID(question.id),
                    call_attempt_id=attempt.id,
                    answer_text=answer,
                    numeric_value=interpretation.numeric_value,
                    key_insights=interpretation.insight,
                    call_sid=call_sid,
                )
                await self._attempts.advance_progress(attempt.id, ordinal)
                await self._attempts.merge_response(attempt, question.id, answer)
        except Exception:
            logger.exception(
                "Failed to record answer",
                extra={"attempt_id": str(attempt.id), "ordinal": ordinal},
            )

    async def _settle(self, attempt: CallAttempt, plan: TurnPlan) -> None:
        if plan.state == TurnState.COMPLETED:
            status, fields = CallAttemptStatus.COMPLETED, {}
        elif plan.state == TurnState.DECLINED:
            status, fields = CallAttemptStatus.ABANDONED, {"notes": DECLINED_NOTE}
        else:
            return
        try:
            async with self._session.begin_nested():
                await self._attempts.set_status(attempt, status, **fields)
            logger.info(
                "Call attempt settled",
                extra={"attempt_id": str(attempt.id), "status": status.value},
            )
        except Exception:
            logger.exception("Failed to settle attempt", extra={"attempt_id": str(attempt.id)})
