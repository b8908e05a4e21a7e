"""Configuration management commands."""

from pathlib import Path
from typing import Annotated

import click
import typer

from clinicsend.cli.console import console, error, success


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, validate, paths"),
        ] = None,
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: $CLINICSEND_HOME/config.toml)",
            ),
        ] = None,
    ) -> None:
        """Manage configuration."""
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        from pydantic import ValidationError
        from rich.markup import escape
        from rich.syntax import Syntax

        from clinicsend.cli.console import create_table
        from clinicsend.config import ConfigError, load_config
        from clinicsend.config.paths import get_all_paths, get_config_path

        expanded_path = path.expanduser() if path else get_config_path()

        if action == "show":
            if not expanded_path.exists():
                error(f"Config file not found: {expanded_path}")
                console.print("Built-in defaults are used when no file exists")
                raise typer.Exit(1)

            content = expanded_path.read_text()
            syntax = Syntax(content, "toml", theme="monokai", line_numbers=True)
            console.print(f"[bold]Config file: {expanded_path}[/bold]\n")
            console.print(syntax)

        elif action == "validate":
            if not expanded_path.exists():
                error(f"Config file not found: {expanded_path}")
                raise typer.Exit(1)

            try:
                config_obj = load_config(expanded_path)
            except ConfigError as e:
                cause = e.__cause__
                if isinstance(cause, ValidationError):
                    error("Configuration validation failed:")
                    console.print()
                    for err in cause.errors():
                        loc = ".".join(str(x) for x in err["loc"])
                        console.print(
                            f"  [yellow]{escape(loc)}[/yellow]: {escape(err['msg'])}"
                        )
                else:
                    error(f"Error loading config: {escape(str(e))}")
                raise typer.Exit(1) from None

            table = create_table(
                "Configuration Summary", [("Setting", "cyan"), ("Value", "green")]
            )
            table.add_row("Timezone", config_obj.timezone)
            table.add_row("Server URL", escape(config_obj.server.url))
            table.add_row("Timeout", f"{config_obj.server.timeout:g}s")
            table.add_row(
                "Retries",
                f"{config_obj.retry.max_retries} "
                f"every {config_obj.retry.backoff_seconds:g}s",
            )
            table.add_row("Doctor", escape(config_obj.clinic.doctor_code))

            success("Configuration is valid!")
            console.print()
            console.print(table)

        elif action == "paths":
            table = create_table(None, [("Name", "cyan"), ("Path", "")])
            for name, value in get_all_paths().items():
                table.add_row(name, str(value))
            console.print(table)

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: show, validate, paths")
            raise typer.Exit(1)
