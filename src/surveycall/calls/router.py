"""
Call queue API router.

Dashboard surface over the queue: list, enqueue, edit, retry, consolidate and
direct calls. Turn progress (responses, questions_answered) is never written
here.
"""

from dataclasses import asdict
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from sqlalchemy.ext.asyncio import AsyncSession

from surveycall.calls.models import CallAttempt, CallAttemptStatus
from surveycall.calls.schemas import (
    AttemptUpdateRequest,
    CallAttemptResponse,
    CallQueueListResponse,
    ConsolidationResponse,
    DirectCallRequest,
    EnqueueRequest,
    PlacementResponse,
)
from surveycall.config import Settings, get_settings
from surveycall.shared.database import get_db_session
from surveycall.shared.exceptions import RecipientNotFoundError, SurveyNotFoundError
from surveycall.shared.logging import get_logger
from surveycall.speech.factory import build_speech_renderer
from surveycall.surveys.repository import RecipientRepository, ResponseRepository, SurveyRepository
from surveycall.telephony.factory import get_telephony_config, get_telephony_provider
from surveycall.telephony.interface import TelephonyProvider
from surveycall.telephony.placement import CallPlacementService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/call-queue", tags=["call-queue"])
calls_router = APIRouter(prefix="/api/calls", tags=["calls"])


async def get_placement_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    provider: Annotated[TelephonyProvider, Depends(get_telephony_provider)],
) -> CallPlacementService:
    return CallPlacementService(
        session,
        provider,
        settings,
        get_telephony_config(),
        build_speech_renderer(session),
    )


Placement = Annotated[CallPlacementService, Depends(get_placement_service)]
Session = Annotated[AsyncSession, Depends(get_db_session)]


async def _to_response(session: AsyncSession, attempt: CallAttempt) -> CallAttemptResponse:
    response_count = await ResponseRepository(session).count_for_pair(attempt.recipient_id, attempt.survey_id)
    total_questions = await SurveyRepository(session).count_questions(attempt.survey_id)
    payload = CallAttemptResponse.model_validate(attempt)
    return payload.model_copy(update={"response_count": response_count, "total_questions": total_questions})


@router.get("", response_model=CallQueueListResponse)
async def list_queue(
    session: Session,
    placement: Placement,
    status_filter: Annotated[CallAttemptStatus | None, Query(alias="status")] = None,
    recipient_id: Annotated[UUID | None, Query(alias="recipientId")] = None,
    survey_id: Annotated[UUID | None, Query(alias="surveyId")] = None,
) -> CallQueueListResponse:
    attempts = await placement.queue.list_attempts(
        status=status_filter,
        recipient_id=recipient_id,
        survey_id=survey_id,
    )
    items = [await _to_response(session, attempt) for attempt in attempts]
    return CallQueueListResponse(items=items, total=len(items))


@router.post("", response_model=CallAttemptResponse, status_code=status.HTTP_201_CREATED)
async def enqueue(body: EnqueueRequest, session: Session, placement: Placement) -> CallAttemptResponse:
    if await RecipientRepository(session).get_by_id(body.recipient_id) is None:
        raise RecipientNotFoundError(body.recipient_id)
    if await SurveyRepository(session).get_by_id(body.survey_id) is None:
        raise SurveyNotFoundError(body.survey_id)

    attempt = await placement.queue.enqueue(
        body.recipient_id,
        body.survey_id,
        voice_option=body.voice_option,
        language_option=body.language_option,
        schedule_at=body.schedule_at,
    )
    return await _to_response(session, attempt)


@router.put("/{attempt_id}", response_model=CallAttemptResponse)
async def update_attempt(
    attempt_id: UUID,
    body: AttemptUpdateRequest,
    session: Session,
    placement: Placement,
) -> CallAttemptResponse:
    attempt = await placement.queue.update_attempt(attempt_id, **body.model_dump(exclude_unset=True))
    return await _to_response(session, attempt)


@router.post("/{attempt_id}/retry", response_model=PlacementResponse)
async def retry_attempt(attempt_id: UUID, placement: Placement) -> PlacementResponse:
    result = await placement.queue.retry(attempt_id)
    return PlacementResponse(**asdict(result))


@router.post("/consolidate", response_model=ConsolidationResponse)
async def consolidate(placement: Placement) -> ConsolidationResponse:
    result = await placement.queue.consolidate()
    logger.info(
        "Call queue consolidated",
        extra={"groups": result.groups, "removed": result.duplicates_removed},
    )
    return ConsolidationResponse(**asdict(result))


@calls_router.post("", response_model=PlacementResponse)
async def direct_call(body: DirectCallRequest, placement: Placement) -> PlacementResponse:
    result = await placement.place_direct(
        body.recipient_id,
        body.survey_id,
        voice_option=body.voice_option,
        language_option=body.language_option,
    )
    return PlacementResponse(**asdict(result))
