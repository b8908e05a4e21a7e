"""Deferred job queue: delayed asyncio tasks keyed by unique name.

Job records are persisted to a JSON file before anything runs, so a pending
job survives a restart and is re-armed by ``restore()``. Records are removed
when a job finishes (any outcome) or is cancelled, but not when the process
shuts down mid-job.
"""

from __future__ import annotations

import asyncio
import fcntl
import json
import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import IO, Any

from clinicsend.errors import PersistenceError
from clinicsend.scheduling.store import write_text_atomic
from clinicsend.scheduling.types import (
    ExistingJobPolicy,
    JobInput,
    JobRecord,
    WorkResult,
)

logger = logging.getLogger(__name__)

JobRunner = Callable[[JobInput, Callable[[], bool]], Awaitable[WorkResult | None]]
CompletionHandler = Callable[[JobRecord, WorkResult | None], Any]


class DeferredJobQueue:
    """Runs at most one job per unique name after a delay.

    Example:
        queue = DeferredJobQueue(get_jobs_file(), runner=worker.run)

        @queue.on_complete
        def done(record, result):
            store.clear()

        queue.enqueue_unique(UNIQUE_JOB_NAME, timedelta(minutes=5), job_input)
        await queue.wait(UNIQUE_JOB_NAME)
    """

    def __init__(
        self,
        jobs_file: Path,
        runner: JobRunner,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._jobs_file = jobs_file
        self._lock_file = jobs_file.with_name(f".{jobs_file.name}.lock")
        self._runner = runner
        self._sleep = sleep
        self._tasks: dict[str, asyncio.Task[WorkResult | None]] = {}
        self._completion_handlers: list[CompletionHandler] = []

    @property
    def jobs_file(self) -> Path:
        return self._jobs_file

    def on_complete(self, handler: CompletionHandler) -> CompletionHandler:
        """Decorator to register a completion handler."""
        self._completion_handlers.append(handler)
        return handler

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def enqueue_unique(
        self,
        name: str,
        delay: timedelta,
        job_input: JobInput,
        policy: ExistingJobPolicy = ExistingJobPolicy.REPLACE,
    ) -> bool:
        """Persist and arm a job under ``name``.

        With REPLACE, a pending job under the same name is cancelled first.
        With KEEP, the new job is dropped if one is pending.

        The task is only armed when an event loop is running; otherwise the
        job stays persisted until ``restore()`` runs in a later process.

        Returns:
            True if the job was persisted or armed.
        """
        if policy is ExistingJobPolicy.KEEP and self.is_pending(name):
            logger.info("deferred_job_kept_existing", extra={"job.name": name})
            return False

        record = JobRecord(
            name=name,
            run_at=datetime.now(UTC) + max(delay, timedelta(0)),
            input=job_input,
        )

        previous = self._tasks.pop(name, None)
        if previous is not None and not previous.done():
            previous.cancel()
            logger.info("deferred_job_replaced", extra={"job.name": name})

        def mutate(jobs: dict[str, Any]) -> None:
            jobs[name] = record.to_dict()

        persisted = True
        try:
            self._mutate(mutate)
        except PersistenceError as e:
            persisted = False
            logger.warning(
                "deferred_job_persist_failed",
                extra={"job.name": name, "error.message": str(e)},
            )

        armed = self._arm(record, check_record=persisted)
        logger.info(
            "deferred_job_enqueued",
            extra={
                "job.name": name,
                "job.id": record.id,
                "job.run_at": record.run_at.isoformat(),
                "job.armed": armed,
            },
        )
        return persisted or armed

    def cancel_unique(self, name: str) -> bool:
        """Cancel a pending or running job and forget its record.

        Cancelling interrupts any backoff the job is waiting in.

        Returns:
            True if there was anything to cancel.
        """
        task = self._tasks.pop(name, None)
        cancelled = task is not None and not task.done()
        if task is not None:
            task.cancel()

        removed = False

        def mutate(jobs: dict[str, Any]) -> None:
            nonlocal removed
            removed = jobs.pop(name, None) is not None

        try:
            self._mutate(mutate)
        except PersistenceError as e:
            logger.warning(
                "deferred_job_cancel_persist_failed",
                extra={"job.name": name, "error.message": str(e)},
            )

        if cancelled or removed:
            logger.info("deferred_job_cancelled", extra={"job.name": name})
        return cancelled or removed

    def get_record(self, name: str) -> JobRecord | None:
        raw = self._load().get(name)
        if not isinstance(raw, dict):
            return None
        return JobRecord.from_dict(name, raw)

    def is_pending(self, name: str) -> bool:
        task = self._tasks.get(name)
        if task is not None and not task.done():
            return True
        return self.get_record(name) is not None

    async def restore(self) -> list[str]:
        """Arm every persisted job that is not already running.

        Overdue jobs fire immediately. Must be called with a running loop.

        Returns:
            Names of the jobs that were armed.
        """
        restored: list[str] = []
        for name, raw in self._load().items():
            task = self._tasks.get(name)
            if task is not None and not task.done():
                continue
            record = JobRecord.from_dict(name, raw) if isinstance(raw, dict) else None
            if record is None:
                logger.warning("deferred_job_record_invalid", extra={"job.name": name})
                continue
            if self._arm(record):
                restored.append(name)
        if restored:
            logger.info("deferred_jobs_restored", extra={"job.names": restored})
        return restored

    async def wait(self, name: str) -> WorkResult | None:
        """Wait for a job to finish.

        Returns:
            The job's result, or None if nothing is armed under ``name``,
            the job was cancelled or superseded, or the runner raised.
        """
        task = self._tasks.get(name)
        if task is None:
            return None
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return None
            raise

    async def shutdown(self) -> None:
        """Cancel armed tasks without forgetting their records."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _arm(self, record: JobRecord, check_record: bool = True) -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        task = asyncio.create_task(
            self._run(record, check_record), name=f"job:{record.name}"
        )
        self._tasks[record.name] = task
        return True

    async def _run(
        self, record: JobRecord, check_record: bool = True
    ) -> WorkResult | None:
        delay = (record.run_at - datetime.now(UTC)).total_seconds()
        if delay > 0:
            await self._sleep(delay)

        def still_owned() -> bool:
            return not check_record or self._owns_record(record)

        # Another process may have cancelled or replaced the job while we slept
        if not still_owned():
            return self._superseded(record)

        logger.info(
            "deferred_job_started",
            extra={"job.name": record.name, "job.id": record.id},
        )
        result: WorkResult | None = None
        try:
            result = await self._runner(record.input, still_owned)
        except Exception as e:
            logger.error(
                "deferred_job_error",
                extra={"job.name": record.name, "error.message": str(e)},
            )

        # The runner stopped between retries because the record went away
        if result is None and not still_owned():
            return self._superseded(record)

        # Finished (any outcome): forget the record unless it was replaced
        self._forget(record)
        if self._tasks.get(record.name) is asyncio.current_task():
            self._tasks.pop(record.name, None)

        for handler in self._completion_handlers:
            try:
                handler(record, result)
            except Exception as e:
                logger.error(
                    "deferred_job_completion_handler_error",
                    extra={"job.name": record.name, "error.message": str(e)},
                )
        return result

    def _superseded(self, record: JobRecord) -> None:
        logger.info(
            "deferred_job_superseded",
            extra={"job.name": record.name, "job.id": record.id},
        )
        if self._tasks.get(record.name) is asyncio.current_task():
            self._tasks.pop(record.name, None)
        return None

    def _owns_record(self, record: JobRecord) -> bool:
        current = self._load().get(record.name)
        return isinstance(current, dict) and current.get("id") == record.id

    def _forget(self, record: JobRecord) -> None:
        def mutate(jobs: dict[str, Any]) -> None:
            current = jobs.get(record.name)
            if isinstance(current, dict) and current.get("id") == record.id:
                jobs.pop(record.name, None)

        try:
            self._mutate(mutate)
        except PersistenceError as e:
            logger.warning(
                "deferred_job_forget_failed",
                extra={"job.name": record.name, "error.message": str(e)},
            )

    def _load(self) -> dict[str, Any]:
        try:
            text = self._jobs_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                "deferred_jobs_read_failed",
                extra={"file.path": str(self._jobs_file), "error.message": str(e)},
            )
            return {}
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning(
                "corrupt_jobs_file", extra={"file.path": str(self._jobs_file)}
            )
            return {}
        return data if isinstance(data, dict) else {}

    def _mutate(self, mutate: Callable[[dict[str, Any]], Any]) -> None:
        try:
            self._lock_file.parent.mkdir(parents=True, exist_ok=True)
            with self._lock_file.open("a+") as lockf:
                with self._file_lock(lockf):
                    jobs = self._load()
                    mutate(jobs)
                    write_text_atomic(
                        self._jobs_file, json.dumps(jobs, indent=2) + "\n"
                    )
        except OSError as e:
            raise PersistenceError(str(e)) from e

    @contextmanager
    def _file_lock(self, file: IO) -> Iterator[None]:
        try:
            fcntl.flock(file.fileno(), fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(file.fileno(), fcntl.LOCK_UN)
