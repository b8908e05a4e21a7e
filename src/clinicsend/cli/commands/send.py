"""Immediate send command."""

from datetime import date, datetime
from pathlib import Path
from typing import Annotated

import typer

from clinicsend.cli.options import (
    DobOption,
    MobileOption,
    PatientNameOption,
    PayloadOption,
    Sex,
    SexOption,
    VisitTypeOption,
)


def register(app: typer.Typer) -> None:
    """Register the send command."""

    @app.command()
    def send(
        payload: PayloadOption = None,
        patient_name: PatientNameOption = "",
        mobile: MobileOption = "",
        dob: DobOption = "1970-01-01",
        sex: SexOption = Sex.FEMALE,
        visit_type: VisitTypeOption = "",
        visit_date: Annotated[
            datetime | None,
            typer.Option(
                "--visit-date",
                formats=["%Y-%m-%d"],
                help="Visit date (default: today)",
            ),
        ] = None,
        show_payload: Annotated[
            bool,
            typer.Option("--show-payload", help="Print the JSON before sending"),
        ] = False,
        config_path: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to configuration file"),
        ] = None,
    ) -> None:
        """Send an appointment request now.

        A single attempt is made; the result is recorded in history.

        Examples:
            clinicsend send -n "Jane Doe" -m 01700000000 --dob 1990-05-01
            clinicsend send --payload '{"PatientName": "Jane"}'
        """
        import asyncio

        from rich.syntax import Syntax

        from clinicsend.cli.console import console, dim, print_result
        from clinicsend.cli.options import resolve_payload
        from clinicsend.cli.runtime import build_runtime, load_cli_config
        from clinicsend.notifications import NullNotifier
        from clinicsend.scheduling import Outcome, classify

        config = load_cli_config(config_path)
        body = resolve_payload(
            config,
            payload=payload,
            visit_date=visit_date.date() if visit_date else date.today(),
            patient_name=patient_name,
            mobile=mobile,
            dob=dob,
            sex=sex,
            visit_type=visit_type,
        )
        if show_payload:
            console.print(Syntax(body, "json", theme="monokai"))

        runtime = build_runtime(config=config, notifier=NullNotifier())
        dim(f"Sending to {runtime.client.url}")
        result = asyncio.run(runtime.scheduler.send_now(body))
        print_result(result)

        if classify(result) is Outcome.ERROR:
            raise typer.Exit(1)
