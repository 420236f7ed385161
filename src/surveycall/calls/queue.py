"""
Call queue manager.

Owns the CallAttempt lifecycle outside the turn path: enqueueing (as an upsert
per recipient/survey pair), counting placed calls, retries, consolidation of
historical duplicates and time-based reconciliation of stuck attempts.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from surveycall.calls.models import TERMINAL_STATUSES, CallAttempt, CallAttemptStatus
from surveycall.calls.repository import CallAttemptRepository
from surveycall.shared.database import as_utc, utcnow
from surveycall.shared.exceptions import (
    AttemptAlreadyCompletedError,
    AttemptNotFoundError,
    ValidationError,
)
from surveycall.shared.logging import get_logger
from surveycall.telephony.interface import StatusCallback

logger = get_logger(__name__)

STALE_REASON = "Stale in-progress attempt timed out"
EDITABLE_FIELDS = frozenset({"status", "next_attempt_at", "voice_option", "language_option", "notes"})


@dataclass(frozen=True)
class PlacementResult:
    """Outcome of one outbound call placement."""

    attempt_id: UUID
    success: bool
    call_sid: str | None = None
    error: str | None = None


class CallPlacer(Protocol):
    """Places an outbound call for an existing attempt."""

    async def place(self, attempt: CallAttempt) -> PlacementResult: ...


@dataclass
class ConsolidationResult:
    groups: int = 0
    duplicates_removed: int = 0
    kept_ids: list[UUID] = field(default_factory=list)


class CallQueueManager:
    """Queue operations over call attempts."""

    def __init__(self, session: AsyncSession, placer: CallPlacer | None = None) -> None:
        self._session = session
        self._repo = CallAttemptRepository(session)
        self._placer = placer

    async def enqueue(
        self,
        recipient_id: UUID,
        survey_id: UUID,
        voice_option: str | None = None,
        language_option: str | None = None,
        schedule_at: datetime | None = None,
    ) -> CallAttempt:
        """Create or reset the single live attempt for a (recipient, survey) pair."""
        status = CallAttemptStatus.SCHEDULED if schedule_at else CallAttemptStatus.PENDING
        existing = await self._repo.find_for_pair(recipient_id, survey_id)
        if existing:
            return await self._reset(existing[0], status, voice_option, language_option, schedule_at)

        try:
            async with self._session.begin_nested():
                attempt = await self._repo.create(
                    recipient_id,
                    survey_id,
                    status=status,
                    voice_option=voice_option,
                    language_option=language_option,
                    next_attempt_at=schedule_at,
                )
        except IntegrityError:
            # Lost a race with a concurrent enqueue; the winner's row is live.
            existing = await self._repo.find_for_pair(recipient_id, survey_id)
            if not existing:
                raise
            return await self._reset(existing[0], status, voice_option, language_option, schedule_at)

        logger.info(
            "Call attempt enqueued",
            extra={"attempt_id": str(attempt.id), "status": status.value},
        )
        return attempt

    async def _reset(
        self,
        attempt: CallAttempt,
        status: CallAttemptStatus,
        voice_option: str | None,
        language_option: str | None,
        schedule_at: datetime | None,
    ) -> CallAttempt:
        await self._repo.set_status(
            attempt,
            status,
            voice_option=voice_option,
            language_option=language_option,
            next_attempt_at=schedule_at,
            error_message=None,
        )
        logger.info(
            "Call attempt re-enqueued",
            extra={"attempt_id": str(attempt.id), "status": status.value},
        )
        return attempt

    async def mark_in_progress(self, attempt_id: UUID) -> CallAttempt | None:
        """Count one placed call against the attempt. Never raises."""
        try:
            async with self._session.begin_nested():
                attempt = await self._repo.claim_for_call(attempt_id)
        except SQLAlchemyError:
            logger.exception("Failed to mark attempt in progress", extra={"attempt_id": str(attempt_id)})
            return None

        if attempt is None:
            logger.warning("Attempt to mark in progress not found", extra={"attempt_id": str(attempt_id)})
        return attempt

    async def consolidate(self) -> ConsolidationResult:
        """Merge duplicate attempts per (recipient, survey) into the oldest one."""
        groups: dict[tuple[UUID, UUID], list[CallAttempt]] = defaultdict(list)
        for attempt in await self._repo.list_all_ordered():
            groups[(attempt.recipient_id, attempt.survey_id)].append(attempt)

        result = ConsolidationResult()
        to_delete: list[CallAttempt] = []
        for (recipient_id, survey_id), attempts in groups.items():
            if len(attempts) < 2:
                continue

            keeper, duplicates = attempts[0], attempts[1:]
            newest = max(attempts, key=lambda a: (as_utc(a.created_at), str(a.id)))
            keeper.attempt_count = sum(a.attempt_count for a in attempts)
            keeper.last_attempt_at = max(as_utc(a.last_attempt_at or a.created_at) for a in attempts)
            keeper.call_sid = newest.call_sid
            keeper.call_status = newest.call_status
            keeper.voice_option = newest.voice_option

            to_delete.extend(duplicates)
            result.groups += 1
            result.kept_ids.append(keeper.id)
            logger.info(
                "Consolidating duplicate attempts",
                extra={
                    "recipient_id": str(recipient_id),
                    "survey_id": str(survey_id),
                    "kept_id": str(keeper.id),
                    "removed": len(duplicates),
                },
            )

        await self._session.flush()
        for duplicate in to_delete:
            self._session.expunge(duplicate)
        result.duplicates_removed = await self._repo.delete_many([a.id for a in to_delete])
        return result

    async def retry(self, attempt_id: UUID) -> PlacementResult:
        """Place a fresh call for an existing attempt."""
        attempt = await self._repo.get_by_id(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(attempt_id)
        if attempt.status == CallAttemptStatus.COMPLETED:
            raise AttemptAlreadyCompletedError(attempt_id)
        if self._placer is None:
            raise ValidationError("No call placer configured for retries")

        logger.info(
            "Retrying call attempt",
            extra={"attempt_id": str(attempt_id), "attempt_count": attempt.attempt_count},
        )
        return await self._placer.place(attempt)

    async def sweep_stale(self, stale_after_minutes: int) -> int:
        """Fail in-progress attempts with no activity since the cutoff."""
        failed_ids = await self._repo.fail_stale_in_progress(stale_after_minutes, STALE_REASON)
        if failed_ids:
            logger.info(
                "Stale in-progress attempts failed",
                extra={"count": len(failed_ids), "stale_after_minutes": stale_after_minutes},
            )
        return len(failed_ids)

    async def due_scheduled(self, limit: int = 20) -> Sequence[CallAttempt]:
        return await self._repo.due_scheduled(utcnow(), limit)

    async def list_attempts(
        self,
        status: CallAttemptStatus | None = None,
        recipient_id: UUID | None = None,
        survey_id: UUID | None = None,
    ) -> Sequence[CallAttempt]:
        return await self._repo.search(status=status, recipient_id=recipient_id, survey_id=survey_id)

    async def update_attempt(self, attempt_id: UUID, **fields: Any) -> CallAttempt:
        """Dashboard edit of the scheduling fields of an attempt."""
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        attempt = await self._repo.get_by_id(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(attempt_id)

        status = fields.pop("status", None) or attempt.status
        return await self._repo.set_status(attempt, CallAttemptStatus(status), **fields)

    async def record_gateway_status(
        self,
        callback: StatusCallback,
        attempt_id: UUID | None = None,
    ) -> CallAttempt | None:
        """Store the gateway's view of a call and settle attempts that never connected."""
        attempt = None
        if attempt_id is not None:
            attempt = await self._repo.get_by_id(attempt_id)
        if attempt is None:
            attempt = await self._repo.get_by_call_sid(callback.provider_call_id)
        if attempt is None:
            logger.warning(
                "Status callback for unknown call",
                extra={"call_sid": callback.provider_call_id, "status": callback.raw_status},
            )
            return None

        # A status for an older call of this attempt must not touch the current one.
        if attempt.call_sid and attempt.call_sid != callback.provider_call_id:
            logger.info(
                "Ignoring status callback for superseded call",
                extra={"attempt_id": str(attempt.id), "call_sid": callback.provider_call_id},
            )
            return attempt

        fields: dict[str, Any] = {"call_status": callback.raw_status}
        if callback.duration_seconds is not None:
            fields["call_duration"] = callback.duration_seconds

        status = attempt.status
        if callback.status.is_unreachable and status not in TERMINAL_STATUSES:
            status = CallAttemptStatus.FAILED
            fields["error_message"] = callback.error_message or f"Call {callback.raw_status}"

        await self._repo.set_status(attempt, status, **fields)
        logger.info(
            "Gateway status recorded",
            extra={
                "attempt_id": str(attempt.id),
                "call_status": callback.raw_status,
                "status": status.value,
            },
        )
        return attempt
