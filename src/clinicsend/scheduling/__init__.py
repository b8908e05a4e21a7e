"""Scheduling subsystem: one pending future submission with bounded retries.

Public API:
- ScheduleStore: Single-slot durable copy of the pending fire time
- DeferredJobQueue: Delayed asyncio jobs keyed by unique name
- Scheduler: Schedules, replaces and cancels the one pending submission
- SubmissionWorker: Fixed-backoff retry loop run when the schedule fires
- CountdownNotifier: Foreground ticking notice of time remaining

Types:
- JobInput: Payload, scheduled time and starting attempt for the worker
- WorkResult: Terminal outcome of a worker invocation
"""

from clinicsend.scheduling.countdown import (
    CountdownNotifier,
    CountdownStatus,
    format_remaining,
)
from clinicsend.scheduling.jobs import DeferredJobQueue
from clinicsend.scheduling.scheduler import Scheduler
from clinicsend.scheduling.store import ScheduleStore
from clinicsend.scheduling.types import (
    UNIQUE_JOB_NAME,
    ExistingJobPolicy,
    JobInput,
    JobRecord,
    WorkResult,
    parse_zoned,
)
from clinicsend.scheduling.worker import (
    Outcome,
    RetryState,
    SubmissionWorker,
    classify,
    shorten,
)

__all__ = [
    "UNIQUE_JOB_NAME",
    "CountdownNotifier",
    "CountdownStatus",
    "DeferredJobQueue",
    "ExistingJobPolicy",
    "JobInput",
    "JobRecord",
    "Outcome",
    "RetryState",
    "ScheduleStore",
    "Scheduler",
    "SubmissionWorker",
    "WorkResult",
    "classify",
    "format_remaining",
    "parse_zoned",
    "shorten",
]
