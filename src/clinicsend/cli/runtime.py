"""Shared runtime bootstrap helpers for CLI entrypoints."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from clinicsend.config import ClinicSendConfig
from clinicsend.config.paths import get_history_file, get_jobs_file, get_schedule_file
from clinicsend.history import HistoryLog
from clinicsend.network import NetworkClient
from clinicsend.notifications import ConsoleNotifier, Notifier
from clinicsend.scheduling import (
    CountdownNotifier,
    DeferredJobQueue,
    Scheduler,
    ScheduleStore,
    SubmissionWorker,
    WorkResult,
)


@dataclass(slots=True)
class Runtime:
    """Composed scheduling components for CLI command handlers."""

    config: ClinicSendConfig
    history: HistoryLog
    client: NetworkClient
    store: ScheduleStore
    worker: SubmissionWorker
    queue: DeferredJobQueue
    scheduler: Scheduler
    countdown: CountdownNotifier


def build_runtime(
    *,
    config: ClinicSendConfig,
    notifier: Notifier,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Runtime:
    """Wire history, network, worker, queue, scheduler and countdown."""
    history = HistoryLog(get_history_file())
    client = NetworkClient.from_config(config, history, transport=transport)
    store = ScheduleStore(get_schedule_file())
    worker = SubmissionWorker.from_config(config, client, notifier, sleep=sleep)
    queue = DeferredJobQueue(get_jobs_file(), runner=worker.run, sleep=sleep)
    scheduler = Scheduler(store, queue, client, timezone=config.tzinfo)
    countdown = CountdownNotifier(notifier, timezone=config.tzinfo, sleep=sleep)

    return Runtime(
        config=config,
        history=history,
        client=client,
        store=store,
        worker=worker,
        queue=queue,
        scheduler=scheduler,
        countdown=countdown,
    )


def load_cli_config(path: Path | None = None) -> ClinicSendConfig:
    """Load configuration for a command, exiting with a message on failure."""
    import typer
    from rich.markup import escape

    from clinicsend.cli.console import error
    from clinicsend.config import ConfigError, load_config

    try:
        return load_config(path)
    except FileNotFoundError as e:
        error(f"File not found: {escape(str(e))}")
        raise typer.Exit(1) from None
    except ConfigError as e:
        error(escape(str(e)))
        raise typer.Exit(1) from None


async def run_foreground(
    runtime: Runtime, notifier: ConsoleNotifier
) -> WorkResult | None:
    """Tick the countdown and wait for the armed job to finish.

    On exit (including Ctrl+C) armed tasks are cancelled but their records
    stay on disk, so ``clinicsend run`` can pick the job up again.
    """
    countdown = runtime.countdown
    countdown.load(runtime.store.read())
    countdown.start()

    async def close_when_reached() -> None:
        await countdown.wait()
        notifier.close()

    watcher = asyncio.create_task(close_when_reached())
    try:
        return await runtime.scheduler.wait()
    finally:
        watcher.cancel()
        await countdown.stop()
        await runtime.queue.shutdown()
        notifier.close()
