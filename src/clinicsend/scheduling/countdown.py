"""Foreground countdown to the scheduled fire time.

The countdown is independent of the submission worker: it only reads the
target time and ticks once a second while its owner keeps it running.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

from clinicsend.errors import ScheduleParseError
from clinicsend.notifications import COUNTDOWN_NOTICE_ID, Notifier
from clinicsend.scheduling.types import parse_zoned

logger = logging.getLogger(__name__)

COUNTDOWN_TITLE = "Scheduled Appointment"
TICK_SECONDS = 1.0


class CountdownStatus(Enum):
    NOT_SCHEDULED = "Not scheduled"
    PENDING = "Pending"
    PASSED = "Time passed"
    REACHED = "Running / Reached"
    INVALID = "Invalid saved schedule"


def format_remaining(seconds: int) -> str:
    """Format whole seconds as HH:MM:SS."""
    seconds = max(int(seconds), 0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class CountdownNotifier:
    """Ticks an ongoing notice until the target time is reached.

    Example:
        countdown = CountdownNotifier(notifier, timezone=tz)
        countdown.load(store.read())
        countdown.start()
        ...
        await countdown.stop()
    """

    def __init__(
        self,
        notifier: Notifier,
        timezone: ZoneInfo,
        now: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._notifier = notifier
        self._timezone = timezone
        self._now = now or (lambda: datetime.now(self._timezone))
        self._sleep = sleep
        self._target: datetime | None = None
        self._status = CountdownStatus.NOT_SCHEDULED
        self._remaining: int | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def status(self) -> CountdownStatus:
        return self._status

    @property
    def target(self) -> datetime | None:
        return self._target

    @property
    def remaining_seconds(self) -> int | None:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def load(self, iso: str | None) -> CountdownStatus:
        """Evaluate a persisted schedule string and set the initial status."""
        if not iso:
            self._target = None
            self._remaining = None
            self._status = CountdownStatus.NOT_SCHEDULED
            return self._status
        try:
            target = parse_zoned(iso, self._timezone)
        except ScheduleParseError:
            logger.warning("countdown_invalid_schedule", extra={"schedule.iso": iso})
            self._target = None
            self._remaining = None
            self._status = CountdownStatus.INVALID
            return self._status

        self.set_target(target)
        if self._status is CountdownStatus.REACHED:
            self._status = CountdownStatus.PASSED
        return self._status

    def set_target(self, target: datetime) -> CountdownStatus:
        self._target = target
        self._refresh()
        return self._status

    def clear(self) -> None:
        """Forget the target, e.g. after the schedule was cancelled."""
        self._cancel_task()
        self._target = None
        self._remaining = None
        self._status = CountdownStatus.NOT_SCHEDULED

    def tick(self) -> bool:
        """Recompute remaining time and update the notice.

        Returns:
            True while the countdown should keep ticking.
        """
        if self._target is None:
            return False
        self._refresh()
        if self._status is not CountdownStatus.PENDING:
            logger.debug("countdown_reached")
            return False
        try:
            self._notifier.notify(
                COUNTDOWN_NOTICE_ID,
                COUNTDOWN_TITLE,
                f"{format_remaining(self._remaining or 0)} remaining",
                ongoing=True,
            )
        except Exception as e:
            logger.debug("notice_failed", extra={"error.message": str(e)})
        return True

    def start(self) -> None:
        """Start ticking on the running loop, if a schedule is pending."""
        if self.running or self._status is not CountdownStatus.PENDING:
            return
        self._task = asyncio.create_task(self._tick_loop(), name="countdown")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def wait(self) -> None:
        """Wait until the countdown stops on its own."""
        if self._task is not None:
            await self._task

    async def _tick_loop(self) -> None:
        while self.tick():
            await self._sleep(TICK_SECONDS)

    def _refresh(self) -> None:
        assert self._target is not None
        seconds = int((self._target - self._now()).total_seconds())
        if seconds > 0:
            self._remaining = seconds
            self._status = CountdownStatus.PENDING
        else:
            self._remaining = 0
            self._status = CountdownStatus.REACHED

    def _cancel_task(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
