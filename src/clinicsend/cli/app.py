"""Main CLI application."""

from typing import Annotated

import typer

from clinicsend.cli.commands import config, history, run, schedule, send

app = typer.Typer(
    name="clinicsend",
    help="clinicsend - schedule and send clinic appointment requests",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
    log_file: Annotated[
        bool,
        typer.Option("--log-file", help="Also write JSONL logs under the home dir"),
    ] = False,
) -> None:
    """Configure logging before any command runs."""
    from clinicsend.logging import configure_logging

    configure_logging(
        level="DEBUG" if verbose else None,
        use_rich=True,
        log_to_file=log_file,
    )


send.register(app)
schedule.register(app)
run.register(app)
history.register(app)
config.register(app)


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
