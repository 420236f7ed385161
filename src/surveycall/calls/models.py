"""
SQLAlchemy models for call attempts (the call queue).
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from surveycall.shared.database import Base, utcnow


class CallAttemptStatus(str, Enum):
    """Lifecycle status of a queued survey call."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {CallAttemptStatus.COMPLETED, CallAttemptStatus.FAILED, CallAttemptStatus.ABANDONED}
)


class CallAttempt(Base):
    """One queued or executed outbound survey call for a (recipient, survey) pair."""

    __tablename__ = "call_attempts"
    __table_args__ = (
        # At most one live attempt per pair. Historical duplicates predate this
        # index and are merged by CallQueueManager.consolidate().
        Index(
            "uq_call_attempts_live_pair",
            "recipient_id",
            "survey_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'scheduled', 'in-progress')"),
        ).ddl_if(dialect="postgresql"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    recipient_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("recipients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    survey_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[CallAttemptStatus] = mapped_column(
        SQLEnum(
            CallAttemptStatus,
            name="call_attempt_status",
            native_enum=False,
            length=20,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=CallAttemptStatus.PENDING,
        index=True,
    )
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    call_sid: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    call_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    call_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)

    voice_option: Mapped[str | None] = mapped_column(String(128), nullable=True)
    language_option: Mapped[str | None] = mapped_column(String(16), nullable=True)

    responses: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    questions_answered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<CallAttempt(id={self.id}, status={self.status}, "
            f"attempt_count={self.attempt_count}, call_sid={self.call_sid})>"
        )
