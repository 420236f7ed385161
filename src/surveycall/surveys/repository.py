"""
Repositories for survey, recipient and response records.
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from surveycall.surveys.models import Question, Recipient, Response, Survey, SurveyQuestion


class SurveyRepository:
    """Repository for surveys and their ordered questions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, survey_id: UUID) -> Survey | None:
        stmt = select(Survey).where(Survey.id == survey_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_ordered_questions(self, survey_id: UUID) -> Sequence[Question]:
        """Questions of a survey in ordinal order.

        Ties on position are broken by link creation order.
        """
        stmt = (
            select(Question)
            .join(SurveyQuestion, SurveyQuestion.question_id == Question.id)
            .where(SurveyQuestion.survey_id == survey_id)
            .order_by(
                SurveyQuestion.position.asc(),
                SurveyQuestion.created_at.asc(),
                SurveyQuestion.id.asc(),
            )
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def count_questions(self, survey_id: UUID) -> int:
        stmt = select(func.count(SurveyQuestion.id)).where(SurveyQuestion.survey_id == survey_id)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class RecipientRepository:
    """Repository for phone list recipients."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, recipient_id: UUID) -> Recipient | None:
        stmt = select(Recipient).where(Recipient.id == recipient_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_name(self, recipient_id: UUID, name: str) -> Recipient | None:
        recipient = await self.get_by_id(recipient_id)
        if recipient is None:
            return None
        recipient.name = name
        await self._session.flush()
        return recipient


class ResponseRepository:
    """Append-only store of interpreted answers."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        recipient_id: UUID,
        question_id: UUID,
        call_attempt_id: UUID | None,
        answer_text: str,
        numeric_value: float | None,
        key_insights: str | None,
        call_sid: str | None,
    ) -> Response:
        response = Response(
            recipient_id=recipient_id,
            question_id=question_id,
            call_attempt_id=call_attempt_id,
            answer_text=answer_text,
            numeric_value=numeric_value,
            key_insights=key_insights,
            call_sid=call_sid,
        )
        self._session.add(response)
        await self._session.flush()
        return response

    async def list_for_attempt(self, call_attempt_id: UUID) -> Sequence[Response]:
        stmt = (
            select(Response)
            .where(Response.call_attempt_id == call_attempt_id)
            .order_by(Response.recorded_at.asc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def count_for_pair(self, recipient_id: UUID, survey_id: UUID) -> int:
        """Number of answers a recipient has given to questions of a survey."""
        stmt = (
            select(func.count(Response.id))
            .join(SurveyQuestion, SurveyQuestion.question_id == Response.question_id)
            .where(Response.recipient_id == recipient_id)
            .where(SurveyQuestion.survey_id == survey_id)
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())
