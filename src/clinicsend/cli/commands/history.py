"""Submission history commands."""

from typing import Annotated

import click
import typer

from clinicsend.cli.console import console, error, success, warning
from clinicsend.history import HistoryEntry, HistoryLog


def register(app: typer.Typer) -> None:
    """Register the history command."""

    @app.command()
    def history(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: list, show, clear"),
        ] = None,
        entry_id: Annotated[
            int | None,
            typer.Option("--id", "-i", help="Entry number (from 'history list')"),
        ] = None,
        limit: Annotated[
            int,
            typer.Option("--limit", "-n", help="Maximum entries to list"),
        ] = 20,
        force: Annotated[
            bool,
            typer.Option(
                "--force",
                "-f",
                help="Force action without confirmation",
            ),
        ] = False,
    ) -> None:
        """Browse submission history.

        Every send attempt, immediate or scheduled, is recorded newest first.

        Examples:
            clinicsend history list            # Latest attempts
            clinicsend history show --id 1     # Full response and payload
            clinicsend history clear --force   # Remove all entries
        """
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        from clinicsend.config.paths import get_history_file

        log = HistoryLog(get_history_file())

        if action == "list":
            _history_list(log, limit)

        elif action == "show":
            if entry_id is None:
                error("--id is required for show")
                raise typer.Exit(1)
            _history_show(log, entry_id)

        elif action == "clear":
            _history_clear(log, force)

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: list, show, clear")
            raise typer.Exit(1)


def _status_markup(entry: HistoryEntry) -> str:
    if entry.is_error:
        return "[red]ERROR[/red]"
    code = entry.status_code
    if code is None:
        return "[dim]?[/dim]"
    if 200 <= code < 300:
        return f"[green]{code}[/green]"
    return f"[yellow]{code}[/yellow]"


def _history_list(log: HistoryLog, limit: int) -> None:
    from rich.markup import escape

    from clinicsend.cli.console import create_table, dim

    entries = log.read()
    if not entries:
        warning("No history yet")
        return

    table = create_table(
        "Submission History",
        [
            ("#", "dim"),
            ("Time", ""),
            ("Status", ""),
            ("Patient", "cyan"),
            ("Visit", ""),
            ("Response", {"overflow": "ellipsis", "max_width": 50}),
        ],
    )
    for entry in entries[:limit]:
        summary = entry.summary
        response = entry.response_body
        if len(response) > 50:
            response = response[:50] + "..."
        table.add_row(
            str(entry.id),
            escape(entry.timestamp),
            _status_markup(entry),
            escape(summary.patient_name or "-"),
            escape(summary.visit_date or "-"),
            escape(response),
        )

    console.print(table)
    shown = min(limit, len(entries))
    dim(f"Showing {shown} of {len(entries)} entries")


def _history_show(log: HistoryLog, entry_id: int) -> None:
    import json

    from rich.markup import escape
    from rich.syntax import Syntax

    entry = log.get(entry_id)
    if entry is None:
        error(f"No history entry with ID {entry_id}")
        raise typer.Exit(1)

    summary = entry.summary
    console.print(f"[bold]Time:[/bold] {escape(entry.timestamp)}")
    console.print(f"[bold]Status:[/bold] {_status_markup(entry)}")
    for label, value in (
        ("Patient", summary.patient_name),
        ("Mobile", summary.mobile_no),
        ("Visit date", summary.visit_date),
        ("Visit type", summary.visit_type),
        ("Age", summary.age_text),
        ("Doctor", summary.doctor_name),
    ):
        if value:
            console.print(f"[bold]{label}:[/bold] {escape(value)}")

    console.print()
    console.print("[bold]Response:[/bold]")
    console.print(escape(entry.response_body) or "[dim](empty)[/dim]")

    console.print()
    console.print("[bold]Payload:[/bold]")
    try:
        pretty = json.dumps(json.loads(entry.raw_payload), indent=2, ensure_ascii=False)
    except json.JSONDecodeError:
        console.print(escape(entry.raw_payload) or "[dim](empty)[/dim]")
    else:
        console.print(Syntax(pretty, "json", theme="monokai"))


def _history_clear(log: HistoryLog, force: bool) -> None:
    from clinicsend.cli.console import confirm_or_cancel

    count = len(log.read())
    if count == 0:
        warning("History is already empty")
        return

    if not confirm_or_cancel(f"Delete {count} history entries?", force):
        return

    if log.clear():
        success(f"Cleared {count} history entries")
    else:
        error("Failed to clear history")
        raise typer.Exit(1)
