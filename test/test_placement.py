"""Tests for outbound call placement."""

from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import FakeSynthesisProvider, MemoryAudioStorage, create_recipient, create_survey
from surveycall.calls.models import CallAttemptStatus
from surveycall.calls.queue import CallQueueManager
from surveycall.config import Settings
from surveycall.shared.exceptions import RecipientNotFoundError, SurveyNotFoundError
from surveycall.speech.cache import SpeechRenderer, SpeechSynthesisCache
from surveycall.telephony.adapters.mock import MockTelephonyProvider
from surveycall.telephony.config import ProviderType, TelephonyConfig
from surveycall.telephony.interface import (
    CallInitiationError,
    CallInitiationRequest,
    CallInitiationResponse,
)
from surveycall.telephony.placement import CallPlacementService


class RejectingProvider(MockTelephonyProvider):
    async def initiate_call(self, request: CallInitiationRequest) -> CallInitiationResponse:
        self.requests.append(request)
        raise CallInitiationError("Invalid 'To' Phone Number", error_code="21211")


@pytest.fixture
def telephony_config() -> TelephonyConfig:
    return TelephonyConfig(provider_type=ProviderType.MOCK, twilio_from_number="+14155550000")


def _service(
    session: AsyncSession,
    provider: MockTelephonyProvider,
    settings: Settings,
    telephony_config: TelephonyConfig,
    renderer: SpeechRenderer | None = None,
) -> CallPlacementService:
    return CallPlacementService(session, provider, settings, telephony_config, renderer or SpeechRenderer(None))


class TestPlace:
    async def test_places_intro_call(
        self,
        db_session: AsyncSession,
        telephony_provider: MockTelephonyProvider,
        test_settings: Settings,
        telephony_config: TelephonyConfig,
    ) -> None:
        survey, _ = await create_survey(db_session)
        recipient = await create_recipient(db_session)
        service = _service(db_session, telephony_provider, test_settings, telephony_config)
        attempt = await service.queue.enqueue(recipient.id, survey.id)

        result = await service.place(attempt)

        assert result.success
        assert result.call_sid == "MOCK_CALL_000001"
        assert attempt.status == CallAttemptStatus.IN_PROGRESS
        assert attempt.attempt_count == 1
        assert attempt.call_sid == "MOCK_CALL_000001"
        assert attempt.call_status == "initiated"
        assert attempt.voice_option == test_settings.default_voice

        request = telephony_provider.requests[0]
        assert request.to == "+14155551234"
        assert request.from_number == "+14155550000"
        assert request.status_callback_url.endswith(f"/webhooks/telephony/status?attemptId={attempt.id}")
        assert "Hello Dana." in request.twiml
        assert f"question=0&amp;totalQuestions=3&amp;attemptId={attempt.id}" in request.twiml
        assert "<Hangup />" in request.twiml

    async def test_provider_error_fails_attempt(
        self,
        db_session: AsyncSession,
        test_settings: Settings,
        telephony_config: TelephonyConfig,
    ) -> None:
        survey, _ = await create_survey(db_session)
        recipient = await create_recipient(db_session)
        service = _service(db_session, RejectingProvider(), test_settings, telephony_config)
        attempt = await service.queue.enqueue(recipient.id, survey.id)

        result = await service.place(attempt)

        assert not result.success
        assert result.error == "Error: Invalid 'To' Phone Number"
        assert attempt.status == CallAttemptStatus.FAILED
        assert attempt.notes == "Error: Invalid 'To' Phone Number"
        assert attempt.error_message == "Error: Invalid 'To' Phone Number"
        assert attempt.attempt_count == 1

    async def test_survey_without_questions_fails_before_dialing(
        self,
        db_session: AsyncSession,
        telephony_provider: MockTelephonyProvider,
        test_settings: Settings,
        telephony_config: TelephonyConfig,
    ) -> None:
        survey, _ = await create_survey(db_session, questions=())
        recipient = await create_recipient(db_session)
        service = _service(db_session, telephony_provider, test_settings, telephony_config)
        attempt = await service.queue.enqueue(recipient.id, survey.id)

        result = await service.place(attempt)

        assert not result.success
        assert result.error == "Error: Survey has no questions"
        assert attempt.attempt_count == 0
        assert telephony_provider.requests == []

    async def test_synthesis_voice_plays_cached_audio(
        self,
        db_session: AsyncSession,
        telephony_provider: MockTelephonyProvider,
        test_settings: Settings,
        telephony_config: TelephonyConfig,
    ) -> None:
        survey, _ = await create_survey(db_session)
        recipient = await create_recipient(db_session)
        synthesis = FakeSynthesisProvider()
        renderer = SpeechRenderer(SpeechSynthesisCache(db_session, synthesis, MemoryAudioStorage()))
        service = _service(db_session, telephony_provider, test_settings, telephony_config, renderer)
        attempt = await service.queue.enqueue(recipient.id, survey.id, voice_option="RACHEL")

        result = await service.place(attempt)

        assert result.success
        twiml = telephony_provider.requests[0].twiml
        assert "<Play>https://surveys.example.com/audio/" in twiml
        assert "<Say" not in twiml
        assert "synth=1" in twiml
        # The repeated question prompt is synthesized once.
        assert len(synthesis.calls) == len({text for text, _ in synthesis.calls})


class TestPlaceDirect:
    async def test_enqueues_and_places(
        self,
        db_session: AsyncSession,
        telephony_provider: MockTelephonyProvider,
        test_settings: Settings,
        telephony_config: TelephonyConfig,
    ) -> None:
        survey, _ = await create_survey(db_session)
        recipient = await create_recipient(db_session)
        service = _service(db_session, telephony_provider, test_settings, telephony_config)

        first = await service.place_direct(recipient.id, survey.id, voice_option="Polly.Joanna")
        second = await service.place_direct(recipient.id, survey.id)

        assert first.success and second.success
        assert first.attempt_id == second.attempt_id
        attempts = await CallQueueManager(db_session).list_attempts(recipient_id=recipient.id)
        assert len(attempts) == 1
        assert attempts[0].attempt_count == 2

    async def test_unknown_recipient(
        self,
        db_session: AsyncSession,
        telephony_provider: MockTelephonyProvider,
        test_settings: Settings,
        telephony_config: TelephonyConfig,
    ) -> None:
        survey, _ = await create_survey(db_session)
        service = _service(db_session, telephony_provider, test_settings, telephony_config)

        with pytest.raises(RecipientNotFoundError):
            await service.place_direct(uuid4(), survey.id)

    async def test_unknown_survey(
        self,
        db_session: AsyncSession,
        telephony_provider: MockTelephonyProvider,
        test_settings: Settings,
        telephony_config: TelephonyConfig,
    ) -> None:
        recipient = await create_recipient(db_session)
        service = _service(db_session, telephony_provider, test_settings, telephony_config)

        with pytest.raises(SurveyNotFoundError):
            await service.place_direct(recipient.id, uuid4())
