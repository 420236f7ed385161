"""
Outbound call placement.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from surveycall.calls.models import CallAttempt, CallAttemptStatus
from surveycall.calls.queue import CallQueueManager, PlacementResult
from surveycall.calls.repository import CallAttemptRepository
from surveycall.config import Settings
from surveycall.dialogue.engine import introduction_plan
from surveycall.dialogue.service import load_script, render_plan, resolve_call_config
from surveycall.shared.exceptions import RecipientNotFoundError, SurveyNotFoundError
from surveycall.shared.logging import get_logger
from surveycall.speech.cache import SpeechRenderer
from surveycall.surveys.repository import RecipientRepository, SurveyRepository
from surveycall.telephony.config import TelephonyConfig
from surveycall.telephony.interface import (
    CallInitiationRequest,
    TelephonyProvider,
    TelephonyProviderError,
)
from surveycall.telephony.twiml import TwimlRenderer, status_callback_url

logger = get_logger(__name__)


class CallPlacementService:
    """Places survey calls for queued attempts."""

    def __init__(
        self,
        session: AsyncSession,
        provider: TelephonyProvider,
        settings: Settings,
        telephony_config: TelephonyConfig,
        renderer: SpeechRenderer,
    ) -> None:
        self._session = session
        self._provider = provider
        self._settings = settings
        self._telephony_config = telephony_config
        self._renderer = renderer
        self._attempts = CallAttemptRepository(session)
        self._queue = CallQueueManager(session, placer=self)

    @property
    def queue(self) -> CallQueueManager:
        return self._queue

    async def _fail(self, attempt: CallAttempt, message: str) -> PlacementResult:
        error = f"Error: {message}"
        await self._attempts.set_status(
            attempt,
            CallAttemptStatus.FAILED,
            error_message=error,
            notes=error,
        )
        logger.error(
            "Call placement failed",
            extra={"attempt_id": str(attempt.id), "error": message},
        )
        return PlacementResult(attempt_id=attempt.id, success=False, error=error)

    async def place(self, attempt: CallAttempt) -> PlacementResult:
        """Place a fresh outbound call for the attempt."""
        script, recipient = await load_script(self._session, attempt)
        if recipient is None:
            return await self._fail(attempt, f"Recipient not found: {attempt.recipient_id}")
        if not recipient.phone_number:
            return await self._fail(attempt, "Recipient has no phone number")
        if script.total_questions == 0:
            return await self._fail(attempt, "Survey has no questions")

        config = resolve_call_config(attempt, self._settings, self._renderer)
        attempt_id = str(attempt.id)
        markup = await render_plan(
            introduction_plan(script),
            config,
            self._renderer,
            TwimlRenderer(self._settings.public_base_url, config, attempt_id=attempt_id),
        )

        claimed = await self._queue.mark_in_progress(attempt.id)
        if claimed is not None:
            attempt = claimed

        request = CallInitiationRequest(
            to=recipient.phone_number,
            from_number=self._telephony_config.twilio_from_number,
            twiml=markup,
            status_callback_url=status_callback_url(self._settings.public_base_url, attempt_id),
            attempt_id=attempt_id,
            metadata={"survey_id": str(attempt.survey_id), "voice": config.voice_option},
        )

        try:
            response = await self._provider.initiate_call(request)
        except TelephonyProviderError as e:
            return await self._fail(attempt, e.message)

        await self._attempts.set_status(
            attempt,
            CallAttemptStatus.IN_PROGRESS,
            call_sid=response.provider_call_id,
            call_status="initiated",
            error_message=None,
            voice_option=config.voice_option,
        )
        logger.info(
            "Call placed",
            extra={
                "attempt_id": attempt_id,
                "call_sid": response.provider_call_id,
                "attempt_count": attempt.attempt_count,
                "synthesis": config.use_synthesis,
            },
        )
        return PlacementResult(attempt_id=attempt.id, success=True, call_sid=response.provider_call_id)

    async def place_direct(
        self,
        recipient_id: UUID,
        survey_id: UUID,
        voice_option: str | None = None,
        language_option: str | None = None,
    ) -> PlacementResult:
        """Enqueue (or reset) the attempt for the pair and call right away."""
        if await RecipientRepository(self._session).get_by_id(recipient_id) is None:
            raise RecipientNotFoundError(recipient_id)
        if await SurveyRepository(self._session).get_by_id(survey_id) is None:
            raise SurveyNotFoundError(survey_id)

        attempt = await self._queue.enqueue(recipient_id, survey_id, voice_option, language_option)
        return await self.place(attempt)
