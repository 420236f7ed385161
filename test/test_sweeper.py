"""Tests for the background queue sweeper."""

from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from conftest import create_recipient, create_survey
from surveycall.calls.models import CallAttempt, CallAttemptStatus
from surveycall.calls.queue import CallQueueManager
from surveycall.calls.repository import CallAttemptRepository
from surveycall.calls.sweeper import QueueSweeper
from surveycall.config import Settings
from surveycall.main import _advisory_lock_id
from surveycall.shared.database import DatabaseManager, utcnow
from surveycall.telephony.adapters.mock import MockTelephonyProvider
from surveycall.telephony.config import ProviderType, TelephonyConfig
from surveycall.telephony.interface import CallInitiationRequest, CallInitiationResponse


class TestQueueSweeper:
    async def test_run_once_fails_stale_and_places_due(
        self,
        db_engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        test_settings: Settings,
    ) -> None:
        async with session_factory() as session:
            survey, _ = await create_survey(session)
            stale_recipient = await create_recipient(session, phone_number="+14155550001")
            due_recipient = await create_recipient(session, phone_number="+14155550002")
            later_recipient = await create_recipient(session, phone_number="+14155550003")
            queue = CallQueueManager(session)

            stale = await queue.enqueue(stale_recipient.id, survey.id)
            await queue.mark_in_progress(stale.id)
            old = utcnow() - timedelta(hours=3)
            await session.execute(
                update(CallAttempt)
                .where(CallAttempt.id == stale.id)
                .values(updated_at=old, last_attempt_at=old)
                .execution_options(synchronize_session=False)
            )
            due = await queue.enqueue(due_recipient.id, survey.id, schedule_at=utcnow() - timedelta(minutes=1))
            later = await queue.enqueue(later_recipient.id, survey.id, schedule_at=utcnow() + timedelta(days=1))
            await session.commit()

        provider = MockTelephonyProvider()
        sweeper = QueueSweeper(
            DatabaseManager(engine=db_engine),
            provider,
            test_settings,
            TelephonyConfig(provider_type=ProviderType.MOCK),
        )

        result = await sweeper.run_once()

        assert result.stale_failed == 1
        assert result.placed == 1
        assert result.placement_failed == 0
        assert [request.to for request in provider.requests] == ["+14155550002"]

        async with session_factory() as session:
            repo = CallAttemptRepository(session)
            assert (await repo.get_by_id(stale.id)).status == CallAttemptStatus.FAILED
            placed = await repo.get_by_id(due.id)
            assert placed.status == CallAttemptStatus.IN_PROGRESS
            assert placed.call_sid == "MOCK_CALL_000001"
            assert (await repo.get_by_id(later.id)).status == CallAttemptStatus.SCHEDULED

    async def test_idle_sweep(self, db_engine: AsyncEngine, test_settings: Settings) -> None:
        sweeper = QueueSweeper(
            DatabaseManager(engine=db_engine),
            MockTelephonyProvider(),
            test_settings,
            TelephonyConfig(provider_type=ProviderType.MOCK),
        )

        result = await sweeper.run_once()

        assert (result.stale_failed, result.placed, result.placement_failed) == (0, 0, 0)

    async def test_failure_keeps_earlier_placements(
        self,
        db_engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        test_settings: Settings,
    ) -> None:
        class BreaksOnSecondCall(MockTelephonyProvider):
            async def initiate_call(self, request: CallInitiationRequest) -> CallInitiationResponse:
                if self.requests:
                    raise KeyError("sid")
                return await super().initiate_call(request)

        async with session_factory() as session:
            survey, _ = await create_survey(session)
            first_recipient = await create_recipient(session, phone_number="+14155550001")
            second_recipient = await create_recipient(session, phone_number="+14155550002")
            queue = CallQueueManager(session)
            first = await queue.enqueue(first_recipient.id, survey.id, schedule_at=utcnow() - timedelta(minutes=2))
            second = await queue.enqueue(second_recipient.id, survey.id, schedule_at=utcnow() - timedelta(minutes=1))
            await session.commit()

        provider = BreaksOnSecondCall()
        sweeper = QueueSweeper(
            DatabaseManager(engine=db_engine),
            provider,
            test_settings,
            TelephonyConfig(provider_type=ProviderType.MOCK),
        )

        result = await sweeper.run_once()

        assert (result.placed, result.placement_failed) == (1, 1)
        assert [request.to for request in provider.requests] == ["+14155550001"]

        async with session_factory() as session:
            repo = CallAttemptRepository(session)
            dialed = await repo.get_by_id(first.id)
            assert dialed.status == CallAttemptStatus.IN_PROGRESS
            assert dialed.call_sid == "MOCK_CALL_000001"
            assert dialed.attempt_count == 1
            broken = await repo.get_by_id(second.id)
            assert broken.status == CallAttemptStatus.FAILED
            assert broken.error_message.startswith("Error:")

        again = await sweeper.run_once()

        assert (again.placed, again.placement_failed) == (0, 0)
        assert len(provider.requests) == 1


def test_advisory_lock_id_is_stable_positive_bigint() -> None:
    first = _advisory_lock_id("surveycall_sweeper_v1")

    assert first == _advisory_lock_id("surveycall_sweeper_v1")
    assert first != _advisory_lock_id("other")
    assert 0 <= first < 2**63
