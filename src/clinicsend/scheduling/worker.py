"""Submission worker: the bounded retry loop run when a schedule fires.

One invocation sends the payload, and on an error result waits a fixed
backoff and tries again, up to ``max_retries`` retries after the first
attempt. Retry progress lives only in memory for the invocation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from clinicsend.network import ERROR_PREFIX, format_error
from clinicsend.notifications import WORKER_NOTICE_ID, Notifier
from clinicsend.payload import build_fallback_payload
from clinicsend.scheduling.types import JobInput, WorkResult

if TYPE_CHECKING:
    from clinicsend.config.models import ClinicSendConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2
DEFAULT_BACKOFF_SECONDS = 30.0
NOTICE_MAX_CHARS = 180


class Outcome(Enum):
    SUCCESS = "success"
    ERROR = "error"


def classify(result: str) -> Outcome:
    """ERROR iff the result starts with "Error:" (case-insensitive)."""
    if result[: len(ERROR_PREFIX)].lower() == ERROR_PREFIX.lower():
        return Outcome.ERROR
    return Outcome.SUCCESS


def shorten(text: str, max_chars: int = NOTICE_MAX_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


class PayloadSender(Protocol):
    async def send(self, payload: str) -> str: ...


@dataclass
class RetryState:
    """Attempt bookkeeping for a single worker invocation."""

    attempt: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS

    def record_failure(self) -> bool:
        """Count a failed attempt. Returns True if the budget is exhausted."""
        self.attempt += 1
        return self.attempt > self.max_retries


class SubmissionWorker:
    """Sends a payload with a fixed-backoff retry loop.

    Notices are best-effort: a notifier that raises never aborts the loop.
    The backoff is an ``await``, so cancelling the task stops the loop.
    """

    def __init__(
        self,
        sender: PayloadSender,
        notifier: Notifier,
        fallback_payload: Callable[[], str],
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._sender = sender
        self._notifier = notifier
        self._fallback_payload = fallback_payload
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: ClinicSendConfig,
        sender: PayloadSender,
        notifier: Notifier,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> SubmissionWorker:
        return cls(
            sender,
            notifier,
            fallback_payload=lambda: build_fallback_payload(config.clinic),
            max_retries=config.retry.max_retries,
            backoff_seconds=config.retry.backoff_seconds,
            sleep=sleep,
        )

    async def run(
        self,
        job_input: JobInput,
        still_owned: Callable[[], bool] | None = None,
    ) -> WorkResult | None:
        """Send with retries.

        ``still_owned`` is checked after every backoff. Once it returns False
        the job was cancelled or replaced elsewhere, and the loop stops with
        None before sending again.
        """
        payload = job_input.payload_json
        if payload is None:
            logger.warning(
                "submission_payload_missing",
                extra={"schedule.iso": job_input.scheduled_iso},
            )
            payload = self._fallback_payload()

        state = RetryState(
            attempt=job_input.attempt,
            max_retries=self._max_retries,
            backoff_seconds=self._backoff_seconds,
        )
        self._notify("Appointment worker", f"Starting attempt {state.attempt + 1}")

        while True:
            self._notify(
                "Appointment worker", f"Attempt {state.attempt + 1}: sending..."
            )
            result = await self._send(payload)

            if classify(result) is Outcome.SUCCESS:
                logger.info(
                    "submission_succeeded",
                    extra={"submission.attempt": state.attempt + 1},
                )
                self._notify(
                    "Appointment success", f"Sent successfully: {shorten(result)}"
                )
                return WorkResult.SUCCESS

            exhausted = state.record_failure()
            self._notify(
                "Appointment failed",
                f"Attempt {state.attempt} failed: {shorten(result)}",
            )
            if exhausted:
                logger.warning(
                    "submission_retries_exhausted",
                    extra={"submission.attempts": state.attempt},
                )
                self._notify("Appointment failure", "All attempts failed")
                return WorkResult.FAILURE

            logger.info(
                "submission_retry_scheduled",
                extra={
                    "submission.attempt": state.attempt + 1,
                    "submission.backoff_seconds": state.backoff_seconds,
                },
            )
            await self._sleep(state.backoff_seconds)

            if still_owned is not None and not still_owned():
                logger.info(
                    "submission_superseded",
                    extra={"submission.attempt": state.attempt + 1},
                )
                return None

    async def _send(self, payload: str) -> str:
        try:
            return await self._sender.send(payload)
        except Exception as e:
            return format_error(str(e) or "unknown")

    def _notify(self, title: str, body: str) -> None:
        try:
            self._notifier.notify(WORKER_NOTICE_ID, title, body)
        except Exception as e:
            logger.debug("notice_failed", extra={"error.message": str(e)})
