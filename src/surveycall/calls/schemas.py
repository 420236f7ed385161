"""
Pydantic schemas for the call queue API.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from surveycall.calls.models import CallAttemptStatus


class EnqueueRequest(BaseModel):
    """Request to queue a survey call for a recipient."""

    recipient_id: UUID
    survey_id: UUID
    voice_option: str | None = Field(None, max_length=128, description="Gateway or synthesis voice")
    language_option: str | None = Field(None, max_length=16, description="BCP-47 language tag")
    schedule_at: datetime | None = Field(None, description="Queue as scheduled for this time")


class DirectCallRequest(BaseModel):
    """Request to call a recipient right away."""

    recipient_id: UUID
    survey_id: UUID
    voice_option: str | None = Field(None, max_length=128)
    language_option: str | None = Field(None, max_length=16)


class AttemptUpdateRequest(BaseModel):
    """Dashboard edit of a queued attempt."""

    status: CallAttemptStatus | None = None
    next_attempt_at: datetime | None = None
    voice_option: str | None = Field(None, max_length=128)
    language_option: str | None = Field(None, max_length=16)
    notes: str | None = Field(None, max_length=5000)


class CallAttemptResponse(BaseModel):
    """Queue entry with progress counters."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    recipient_id: UUID
    survey_id: UUID
    status: CallAttemptStatus
    attempt_count: int
    last_attempt_at: datetime | None = None
    next_attempt_at: datetime | None = None
    call_sid: str | None = None
    call_status: str | None = None
    call_duration: int | None = None
    voice_option: str | None = None
    language_option: str | None = None
    responses: dict[str, Any] = Field(default_factory=dict)
    questions_answered: int = 0
    notes: str | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime
    response_count: int = 0
    total_questions: int = 0


class CallQueueListResponse(BaseModel):
    items: list[CallAttemptResponse]
    total: int


class PlacementResponse(BaseModel):
    attempt_id: UUID
    success: bool
    call_sid: str | None = None
    error: str | None = None


class ConsolidationResponse(BaseModel):
    groups: int
    duplicates_removed: int
    kept_ids: list[UUID]
