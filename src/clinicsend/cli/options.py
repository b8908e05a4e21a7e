"""Appointment options shared by the send and schedule commands."""

from __future__ import annotations

import json
from datetime import date
from enum import Enum
from typing import Annotated

import typer

from clinicsend.config import ClinicSendConfig
from clinicsend.payload import FALLBACK_DOB, build_payload, compute_full_age


class Sex(str, Enum):
    FEMALE = "Female"
    MALE = "Male"
    OTHER = "Other"


PayloadOption = Annotated[
    str | None,
    typer.Option(
        "--payload",
        help="Raw JSON payload; overrides the appointment field options",
    ),
]
PatientNameOption = Annotated[
    str, typer.Option("--patient-name", "-n", help="Patient name")
]
MobileOption = Annotated[str, typer.Option("--mobile", "-m", help="Mobile number")]
DobOption = Annotated[
    str, typer.Option("--dob", help="Date of birth (YYYY-MM-DD)")
]
SexOption = Annotated[Sex, typer.Option("--sex", help="Patient sex")]
VisitTypeOption = Annotated[
    str, typer.Option("--visit-type", help="Visit type, e.g. New or Report")
]


def resolve_payload(
    config: ClinicSendConfig,
    *,
    payload: str | None,
    visit_date: date,
    patient_name: str = "",
    mobile: str = "",
    dob: str = FALLBACK_DOB,
    sex: Sex = Sex.FEMALE,
    visit_type: str = "",
) -> str:
    """Return the raw payload if given, else build one from the options.

    Raises:
        typer.BadParameter: If the raw payload is not valid JSON.
    """
    if payload is not None:
        try:
            json.loads(payload)
        except json.JSONDecodeError as e:
            raise typer.BadParameter(
                f"not valid JSON: {e}", param_hint="--payload"
            ) from None
        return payload

    return build_payload(
        visit_date=visit_date.isoformat(),
        doctor_code=config.clinic.doctor_code,
        doctor_name=config.clinic.doctor_name,
        patient_name=patient_name,
        mobile_no=mobile,
        dob=dob,
        age=compute_full_age(dob),
        sex=sex.value,
        visit_type=visit_type,
    )
