"""Foreground runner for a persisted schedule."""

from pathlib import Path
from typing import Annotated

import typer

from clinicsend.scheduling import WorkResult


def report_result(result: WorkResult | None) -> None:
    """Print the terminal outcome of a job and exit non-zero on failure."""
    from clinicsend.cli.console import error, success, warning

    if result is WorkResult.SUCCESS:
        success("Appointment sent")
    elif result is WorkResult.FAILURE:
        error("All attempts failed")
        raise typer.Exit(1)
    else:
        warning("Job did not complete")
        raise typer.Exit(1)


def register(app: typer.Typer) -> None:
    """Register the run command."""

    @app.command()
    def run(
        config_path: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to configuration file"),
        ] = None,
    ) -> None:
        """Run the saved schedule in the foreground.

        Re-arms the pending job saved by 'clinicsend schedule set', shows the
        countdown and sends when the time arrives. An overdue job is sent
        immediately.
        """
        import asyncio

        from clinicsend.cli.console import dim, info, warning
        from clinicsend.cli.runtime import (
            build_runtime,
            load_cli_config,
            run_foreground,
        )
        from clinicsend.notifications import ConsoleNotifier

        config = load_cli_config(config_path)
        notifier = ConsoleNotifier()
        runtime = build_runtime(config=config, notifier=notifier)

        record = runtime.scheduler.pending()
        if record is None:
            warning("No pending schedule")
            dim("Use 'clinicsend schedule set --at ...' to create one")
            return

        info(f"Scheduled for {record.input.scheduled_iso}")

        async def do_run() -> WorkResult | None:
            await runtime.scheduler.restore()
            return await run_foreground(runtime, notifier)

        try:
            result = asyncio.run(do_run())
        except KeyboardInterrupt:
            notifier.close()
            dim("Stopped; the schedule is still saved")
            raise typer.Exit(130) from None

        report_result(result)
