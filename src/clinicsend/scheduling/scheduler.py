"""Scheduler: the single pending future submission.

The scheduler owns the one unique deferred job and the durable copy of its
fire time. It does not clear the stored time on ``cancel()``; callers pair
``cancel()`` with ``store.clear()`` themselves.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from clinicsend.errors import PastScheduleError
from clinicsend.scheduling.types import (
    UNIQUE_JOB_NAME,
    ExistingJobPolicy,
    JobInput,
    JobRecord,
    WorkResult,
    format_zoned,
)

if TYPE_CHECKING:
    from clinicsend.network import NetworkClient
    from clinicsend.scheduling.jobs import DeferredJobQueue
    from clinicsend.scheduling.store import ScheduleStore

logger = logging.getLogger(__name__)


class Scheduler:
    """Schedules, replaces and cancels the one pending submission.

    Example:
        scheduler = Scheduler(store, queue, client, timezone=ZoneInfo("Asia/Dhaka"))
        scheduler.schedule_at(datetime(2026, 1, 12, 9, 0), payload)
    """

    def __init__(
        self,
        store: ScheduleStore,
        queue: DeferredJobQueue,
        client: NetworkClient,
        timezone: ZoneInfo,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._queue = queue
        self._client = client
        self._timezone = timezone
        self._now = now or (lambda: datetime.now(self._timezone))
        queue.on_complete(self._on_job_complete)

    @property
    def store(self) -> ScheduleStore:
        return self._store

    @property
    def queue(self) -> DeferredJobQueue:
        return self._queue

    def localize(self, value: datetime) -> datetime:
        """Interpret naive datetimes in the scheduler's timezone."""
        if value.tzinfo is None:
            return value.replace(tzinfo=self._timezone)
        return value

    def schedule_at(self, target_time: datetime, payload: str) -> bool:
        """Schedule ``payload`` for ``target_time``, replacing any pending one.

        Raises:
            PastScheduleError: If target_time is not strictly in the future.
                Nothing is enqueued or persisted in that case.

        Returns:
            True if the job was enqueued and its time persisted.
        """
        target = self.localize(target_time)
        now = self._now()
        if target <= now:
            logger.info(
                "schedule_rejected_past",
                extra={"schedule.target": target.isoformat()},
            )
            raise PastScheduleError()

        iso = format_zoned(target)
        job_input = JobInput(payload_json=payload, scheduled_iso=iso, attempt=0)
        enqueued = self._queue.enqueue_unique(
            UNIQUE_JOB_NAME,
            target - now,
            job_input,
            policy=ExistingJobPolicy.REPLACE,
        )
        if not enqueued:
            logger.warning("schedule_enqueue_failed", extra={"schedule.iso": iso})
            return False

        saved = self._store.save(iso)
        logger.info(
            "schedule_set",
            extra={
                "schedule.iso": iso,
                "schedule.delay_seconds": round((target - now).total_seconds(), 1),
            },
        )
        return saved

    def cancel(self) -> bool:
        """Cancel the pending job. The stored time is left for the caller."""
        return self._queue.cancel_unique(UNIQUE_JOB_NAME)

    def pending(self) -> JobRecord | None:
        return self._queue.get_record(UNIQUE_JOB_NAME)

    async def send_now(self, payload: str) -> str:
        """Send immediately: one attempt, no retry loop."""
        return await self._client.send(payload)

    async def restore(self) -> bool:
        """Re-arm the persisted job after a restart."""
        restored = await self._queue.restore()
        return UNIQUE_JOB_NAME in restored

    async def wait(self) -> WorkResult | None:
        return await self._queue.wait(UNIQUE_JOB_NAME)

    def _on_job_complete(self, record: JobRecord, result: WorkResult | None) -> None:
        if record.name != UNIQUE_JOB_NAME:
            return
        # A replacement may already own the slot; only clear our own time
        if self._queue.is_pending(UNIQUE_JOB_NAME):
            return
        self._store.clear()
        logger.info(
            "schedule_completed",
            extra={
                "schedule.iso": record.input.scheduled_iso,
                "schedule.result": result.value if result else None,
            },
        )
