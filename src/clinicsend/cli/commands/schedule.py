"""Schedule management commands."""

from datetime import datetime
from pathlib import Path
from typing import Annotated

import click
import typer

from clinicsend.cli.console import console, dim, error, success, warning
from clinicsend.cli.options import (
    DobOption,
    MobileOption,
    PatientNameOption,
    PayloadOption,
    Sex,
    SexOption,
    VisitTypeOption,
)
from clinicsend.cli.runtime import Runtime
from clinicsend.notifications import ConsoleNotifier
from clinicsend.scheduling import WorkResult


def register(app: typer.Typer) -> None:
    """Register the schedule command."""

    @app.command()
    def schedule(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: set, status, cancel"),
        ] = None,
        at: Annotated[
            datetime | None,
            typer.Option(
                "--at",
                "-a",
                formats=["%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M:%S"],
                help="Local fire time, e.g. '2026-01-12 09:00'",
            ),
        ] = None,
        wait: Annotated[
            bool,
            typer.Option(
                "--wait",
                "-w",
                help="Stay in the foreground with a countdown until the job runs",
            ),
        ] = False,
        payload: PayloadOption = None,
        patient_name: PatientNameOption = "",
        mobile: MobileOption = "",
        dob: DobOption = "1970-01-01",
        sex: SexOption = Sex.FEMALE,
        visit_type: VisitTypeOption = "",
        config_path: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to configuration file"),
        ] = None,
    ) -> None:
        """Manage the one pending scheduled appointment.

        Setting a new schedule replaces any pending one. The visit date of a
        built payload is the date of the fire time.

        Examples:
            clinicsend schedule set --at "2026-01-12 09:00" -n "Jane Doe" --wait
            clinicsend schedule status
            clinicsend schedule cancel
        """
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        from clinicsend.cli.runtime import build_runtime, load_cli_config

        config = load_cli_config(config_path)

        if action == "set":
            if at is None:
                error("--at is required for set")
                raise typer.Exit(1)

            from clinicsend.cli.options import resolve_payload

            body = resolve_payload(
                config,
                payload=payload,
                visit_date=at.date(),
                patient_name=patient_name,
                mobile=mobile,
                dob=dob,
                sex=sex,
                visit_type=visit_type,
            )
            notifier = ConsoleNotifier()
            runtime = build_runtime(config=config, notifier=notifier)
            _schedule_set(runtime, notifier, at, body, wait)

        elif action == "status":
            runtime = build_runtime(config=config, notifier=ConsoleNotifier())
            _schedule_status(runtime)

        elif action == "cancel":
            runtime = build_runtime(config=config, notifier=ConsoleNotifier())
            _schedule_cancel(runtime)

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: set, status, cancel")
            raise typer.Exit(1)


def _schedule_set(
    runtime: Runtime,
    notifier: ConsoleNotifier,
    at: datetime,
    body: str,
    wait: bool,
) -> None:
    """Schedule the payload, optionally running it in the foreground."""
    import asyncio

    from clinicsend.cli.commands.run import report_result
    from clinicsend.cli.runtime import run_foreground
    from clinicsend.errors import PastScheduleError

    scheduler = runtime.scheduler
    target = scheduler.localize(at)

    if not wait:
        try:
            saved = scheduler.schedule_at(target, body)
        except PastScheduleError as e:
            error(str(e))
            raise typer.Exit(1) from None
        if not saved:
            error("Failed to save schedule")
            raise typer.Exit(1)
        success(f"Scheduled for {target.isoformat()}")
        dim("Run 'clinicsend run' to keep it armed until it fires")
        return

    async def do_set() -> tuple[bool, WorkResult | None]:
        if not scheduler.schedule_at(target, body):
            scheduler.cancel()
            await runtime.queue.shutdown()
            return False, None
        success(f"Scheduled for {target.isoformat()}")
        return True, await run_foreground(runtime, notifier)

    try:
        saved, result = asyncio.run(do_set())
    except PastScheduleError as e:
        error(str(e))
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        notifier.close()
        dim("Stopped; the schedule is still saved. Resume with 'clinicsend run'")
        raise typer.Exit(130) from None

    if not saved:
        error("Failed to save schedule")
        raise typer.Exit(1)

    report_result(result)


def _schedule_status(runtime: Runtime) -> None:
    """Show the saved schedule and its countdown status."""
    from rich.markup import escape

    from clinicsend.cli.console import create_table
    from clinicsend.scheduling import CountdownStatus, format_remaining

    iso = runtime.store.read()
    status = runtime.countdown.load(iso)
    record = runtime.scheduler.pending()

    if status is CountdownStatus.NOT_SCHEDULED and record is None:
        warning(status.value)
        return

    table = create_table(None, [("Field", "bold"), ("Value", "")])
    table.add_row("Scheduled for", escape(iso) if iso else "[dim]none[/dim]")
    table.add_row("Status", status.value)
    if status is CountdownStatus.PENDING:
        remaining = runtime.countdown.remaining_seconds or 0
        table.add_row("Remaining", format_remaining(remaining))
    table.add_row(
        "Pending job",
        f"{record.id} (attempt {record.input.attempt + 1})"
        if record
        else "[dim]none[/dim]",
    )
    console.print(table)


def _schedule_cancel(runtime: Runtime) -> None:
    """Cancel the pending job and clear the saved time."""
    had_time = runtime.store.read() is not None
    cancelled = runtime.scheduler.cancel()
    runtime.store.clear()

    if cancelled or had_time:
        success("Schedule cancelled")
    else:
        warning("No schedule to cancel")
