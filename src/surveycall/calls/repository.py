"""
Repository for call attempt database operations.
"""

from datetime import datetime, timedelta
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from surveycall.calls.models import CallAttempt, CallAttemptStatus
from surveycall.shared.database import utcnow


class CallAttemptRepository:
    """Repository for call attempt database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def get_by_id(self, attempt_id: UUID, *, refresh: bool = False) -> CallAttempt | None:
        """Get call attempt by ID.

        Args:
            attempt_id: Call attempt UUID.
            refresh: Overwrite any stale identity-map copy with the row's current state.

        Returns:
            CallAttempt if found, None otherwise.
        """
        stmt = select(CallAttempt).where(CallAttempt.id == attempt_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_call_sid(self, call_sid: str) -> CallAttempt | None:
        stmt = (
            select(CallAttempt)
            .where(CallAttempt.call_sid == call_sid)
            .order_by(CallAttempt.updated_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_for_pair(self, recipient_id: UUID, survey_id: UUID) -> Sequence[CallAttempt]:
        """All attempts for a (recipient, survey) pair, newest first."""
        stmt = (
            select(CallAttempt)
            .where(CallAttempt.recipient_id == recipient_id)
            .where(CallAttempt.survey_id == survey_id)
            .order_by(CallAttempt.created_at.desc(), CallAttempt.id.desc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def search(
        self,
        status: CallAttemptStatus | None = None,
        recipient_id: UUID | None = None,
        survey_id: UUID | None = None,
        limit: int = 200,
    ) -> Sequence[CallAttempt]:
        """Filtered listing, newest first."""
        stmt = select(CallAttempt)
        if status is not None:
            stmt = stmt.where(CallAttempt.status == status)
        if recipient_id is not None:
            stmt = stmt.where(CallAttempt.recipient_id == recipient_id)
        if survey_id is not None:
            stmt = stmt.where(CallAttempt.survey_id == survey_id)
        stmt = stmt.order_by(CallAttempt.created_at.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_all_ordered(self) -> Sequence[CallAttempt]:
        """Every attempt grouped by pair, oldest first within a pair."""
        stmt = select(CallAttempt).order_by(
            CallAttempt.recipient_id,
            CallAttempt.survey_id,
            CallAttempt.created_at.asc(),
            CallAttempt.id.asc(),
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def create(
        self,
        recipient_id: UUID,
        survey_id: UUID,
        status: CallAttemptStatus = CallAttemptStatus.PENDING,
        **fields: Any,
    ) -> CallAttempt:
        """Create a new call attempt record."""
        attempt = CallAttempt(
            recipient_id=recipient_id,
            survey_id=survey_id,
            status=status,
            attempt_count=fields.pop("attempt_count", 0),
            responses={},
            questions_answered=0,
            **fields,
        )
        self._session.add(attempt)
        await self._session.flush()
        await self._session.refresh(attempt)
        return attempt

    async def claim_for_call(self, attempt_id: UUID) -> CallAttempt | None:
        """Count one more outbound call and move the attempt to in-progress.

        Single UPDATE so concurrent retries never lose an increment.
        """
        now = utcnow()
        stmt = (
            update(CallAttempt)
            .where(CallAttempt.id == attempt_id)
            .values(
                attempt_count=CallAttempt.attempt_count + 1,
                last_attempt_at=now,
                status=CallAttemptStatus.IN_PROGRESS,
                updated_at=now,
            )
            .returning(CallAttempt.id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.first() is None:
            return None
        return await self.get_by_id(attempt_id, refresh=True)

    async def advance_progress(self, attempt_id: UUID, questions_answered: int) -> bool:
        """Raise questions_answered to the given ordinal, never lowering it.

        Returns True when the counter moved.
        """
        stmt = (
            update(CallAttempt)
            .where(CallAttempt.id == attempt_id)
            .where(CallAttempt.questions_answered < questions_answered)
            .values(questions_answered=questions_answered, updated_at=utcnow())
            .returning(CallAttempt.id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def merge_response(self, attempt: CallAttempt, question_id: str, answer_text: str) -> None:
        """Add one question's raw answer to the denormalized responses map."""
        merged = dict(attempt.responses or {})
        merged[question_id] = answer_text
        attempt.responses = merged
        await self._session.flush()

    async def set_status(
        self,
        attempt: CallAttempt,
        status: CallAttemptStatus,
        **fields: Any,
    ) -> CallAttempt:
        attempt.status = status
        for key, value in fields.items():
            setattr(attempt, key, value)
        await self._session.flush()
        return attempt

    async def delete_many(self, attempt_ids: Sequence[UUID]) -> int:
        if not attempt_ids:
            return 0
        stmt = (
            delete(CallAttempt)
            .where(CallAttempt.id.in_(list(attempt_ids)))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return int(result.rowcount or 0)

    async def fail_stale_in_progress(self, stale_after_minutes: int, reason: str) -> Sequence[UUID]:
        """Move in-progress attempts with no activity since the cutoff to failed."""
        now = utcnow()
        cutoff = now - timedelta(minutes=stale_after_minutes)
        stmt = (
            update(CallAttempt)
            .where(CallAttempt.status == CallAttemptStatus.IN_PROGRESS)
            .where(
                or_(
                    CallAttempt.last_attempt_at.is_(None),
                    CallAttempt.last_attempt_at < cutoff,
                )
            )
            .where(CallAttempt.updated_at < cutoff)
            .values(status=CallAttemptStatus.FAILED, error_message=reason, updated_at=now)
            .returning(CallAttempt.id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def due_scheduled(self, now: datetime, limit: int) -> Sequence[CallAttempt]:
        stmt = (
            select(CallAttempt)
            .where(CallAttempt.status == CallAttemptStatus.SCHEDULED)
            .where(CallAttempt.next_attempt_at.is_not(None))
            .where(CallAttempt.next_attempt_at <= now)
            .order_by(CallAttempt.next_attempt_at.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

