"""
Background queue sweeper.

Each tick fails stale in-progress attempts and places calls for scheduled
attempts that have come due. Every placement commits in its own session so a
failure on one attempt never rolls back calls already dialed in the same tick.
"""

import asyncio
from dataclasses import dataclass
from uuid import UUID

from surveycall.calls.models import CallAttemptStatus
from surveycall.calls.queue import CallQueueManager
from surveycall.calls.repository import CallAttemptRepository
from surveycall.config import Settings
from surveycall.shared.database import DatabaseManager
from surveycall.shared.logging import get_logger
from surveycall.speech.factory import build_speech_renderer
from surveycall.telephony.config import TelephonyConfig
from surveycall.telephony.interface import TelephonyProvider
from surveycall.telephony.placement import CallPlacementService

logger = get_logger(__name__)


@dataclass
class SweepResult:
    stale_failed: int = 0
    placed: int = 0
    placement_failed: int = 0


class QueueSweeper:
    """Time-based reconciliation of the call queue."""

    def __init__(
        self,
        db: DatabaseManager,
        provider: TelephonyProvider,
        settings: Settings,
        telephony_config: TelephonyConfig,
    ) -> None:
        self._db = db
        self._provider = provider
        self._settings = settings
        self._telephony_config = telephony_config

    async def run_forever(self) -> None:
        """Sweep every interval until cancelled."""
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Queue sweep failed")
            await asyncio.sleep(self._settings.sweeper_interval_seconds)

    async def run_once(self) -> SweepResult:
        """Run a single sweep."""
        result = SweepResult()

        async with self._db.session() as session:
            queue = CallQueueManager(session)
            result.stale_failed = await queue.sweep_stale(self._settings.stale_in_progress_minutes)
            due_ids = [a.id for a in await queue.due_scheduled(self._settings.sweeper_batch_size)]

        for attempt_id in due_ids:
            if await self._place_one(attempt_id):
                result.placed += 1
            else:
                result.placement_failed += 1

        if result.stale_failed or result.placed or result.placement_failed:
            logger.info(
                "Queue sweep finished",
                extra={
                    "stale_failed": result.stale_failed,
                    "placed": result.placed,
                    "placement_failed": result.placement_failed,
                },
            )
        return result

    async def _place_one(self, attempt_id: UUID) -> bool:
        try:
            async with self._db.session() as session:
                attempt = await CallAttemptRepository(session).get_by_id(attempt_id)
                if attempt is None or attempt.status != CallAttemptStatus.SCHEDULED:
                    return False
                placement = CallPlacementService(
                    session,
                    self._provider,
                    self._settings,
                    self._telephony_config,
                    build_speech_renderer(session),
                )
                outcome = await placement.place(attempt)
                return outcome.success
        except Exception as e:
            logger.exception("Scheduled placement failed", extra={"attempt_id": str(attempt_id)})
            await self._mark_failed(attempt_id, f"Error: {e}")
            return False

    async def _mark_failed(self, attempt_id: UUID, message: str) -> None:
        """Take the attempt out of the due set so later ticks do not dial it again."""
        try:
            async with self._db.session() as session:
                repo = CallAttemptRepository(session)
                attempt = await repo.get_by_id(attempt_id)
                if attempt is not None:
                    await repo.set_status(
                        attempt,
                        CallAttemptStatus.FAILED,
                        error_message=message,
                        notes=message,
                    )
        except Exception:
            logger.exception("Could not record placement failure", extra={"attempt_id": str(attempt_id)})
