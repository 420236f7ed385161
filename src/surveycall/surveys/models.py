"""
SQLAlchemy models for surveys, questions and recipients.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from surveycall.shared.database import Base, utcnow


class ResponseType(str, Enum):
    """Answer shape a question expects."""

    NUMERIC = "numeric"
    YES_NO = "yes-no"
    MULTIPLE_CHOICE = "multiple-choice"
    OPEN_ENDED = "open-ended"


class Survey(Base):
    """A named, ordered set of questions."""

    __tablename__ = "surveys"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    links: Mapped[list["SurveyQuestion"]] = relationship(
        "SurveyQuestion",
        back_populates="survey",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Survey(id={self.id}, name={self.name!r})>"


class Question(Base):
    """A single prompt in the fixed question bank."""

    __tablename__ = "questions"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    response_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    options: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    follow_up_trigger: Mapped[str | None] = mapped_column(String(255), nullable=True)
    follow_up_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, type={self.response_type})>"


class SurveyQuestion(Base):
    """Link placing a question at an ordinal position inside a survey."""

    __tablename__ = "survey_questions"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    survey_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    survey: Mapped[Survey] = relationship("Survey", back_populates="links")
    question: Mapped[Question] = relationship("Question", lazy="selectin")


class Recipient(Base):
    """A phone list entry that can be called."""

    __tablename__ = "recipients"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Recipient(id={self.id}, phone={self.phone_number})>"


class Response(Base):
    """One interpreted answer to one question within one call attempt (append-only)."""

    __tablename__ = "responses"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    recipient_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("recipients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    call_attempt_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("call_attempts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    answer_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    numeric_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    key_insights: Mapped[str | None] = mapped_column(Text, nullable=True)
    call_sid: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
