"""Appointment payload building.

The scheduling core treats payloads as opaque strings. These helpers build
them for the CLI and for the worker's fallback, and summarise stored payloads
for history display.
"""

import calendar
import json
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from clinicsend.config.models import ClinicConfig

UNKNOWN = "Unknown"
FALLBACK_DOB = "1970-01-01"


def compute_full_age(dob: str, today: date | None = None) -> tuple[int, int, int]:
    """Compute (years, months, days) between an ISO birth date and today.

    Unparseable or future dates yield (0, 0, 0).
    """
    try:
        birth = date.fromisoformat(dob)
    except ValueError:
        return (0, 0, 0)

    today = today or date.today()
    if birth > today:
        return (0, 0, 0)

    total_months = (today.year - birth.year) * 12 + today.month - birth.month
    days = today.day - birth.day
    if total_months > 0 and days < 0:
        total_months -= 1
        days = (today - _add_months(birth, total_months)).days

    years, months = divmod(total_months, 12)
    return (years, months, days)


def _add_months(start: date, months: int) -> date:
    """Add whole months, clamping the day to the target month's length."""
    index = start.year * 12 + start.month - 1 + months
    year, month = divmod(index, 12)
    month += 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def build_payload(
    *,
    visit_date: str,
    doctor_code: str,
    doctor_name: str,
    patient_name: str,
    mobile_no: str,
    dob: str,
    age: tuple[int, int, int],
    sex: str,
    visit_type: str,
) -> str:
    """Build the appointment JSON body.

    Every value is string-typed on the wire, including the age components.
    """
    years, months, days = age
    body = {
        "VisitDate": visit_date,
        "DrCode": doctor_code,
        "DrName": doctor_name,
        "PatientName": patient_name,
        "MobileNo": mobile_no,
        "Dob": dob,
        "AgeDay": str(days),
        "AgeMonth": str(months),
        "AgeYear": str(years),
        "Sex": sex,
        "VisitType": visit_type,
    }
    return json.dumps(body, indent=2, ensure_ascii=False)


def build_fallback_payload(clinic: "ClinicConfig", today: date | None = None) -> str:
    """Minimal placeholder used when a deferred job lost its payload."""
    return build_payload(
        visit_date=(today or date.today()).isoformat(),
        doctor_code=clinic.doctor_code,
        doctor_name=clinic.doctor_name,
        patient_name=UNKNOWN,
        mobile_no=UNKNOWN,
        dob=FALLBACK_DOB,
        age=(0, 0, 0),
        sex=UNKNOWN,
        visit_type="",
    )


@dataclass(frozen=True)
class PayloadSummary:
    """Human-facing fields pulled out of a raw payload."""

    patient_name: str | None = None
    visit_date: str | None = None
    mobile_no: str | None = None
    doctor_name: str | None = None
    visit_type: str | None = None
    age_years: int | None = None
    age_months: int | None = None
    age_days: int | None = None

    @property
    def age_text(self) -> str | None:
        if self.age_years is None:
            return None
        return f"{self.age_years}y {self.age_months or 0}m {self.age_days or 0}d"


def summarize_payload(raw: str) -> PayloadSummary:
    """Extract display fields from a raw payload, or an empty summary."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return PayloadSummary()
    if not isinstance(data, dict):
        return PayloadSummary()

    def text(key: str) -> str | None:
        value = data.get(key)
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def number(key: str) -> int | None:
        value: Any = data.get(key)
        try:
            return int(str(value).strip())
        except (TypeError, ValueError):
            return None

    return PayloadSummary(
        patient_name=text("PatientName"),
        visit_date=text("VisitDate"),
        mobile_no=text("MobileNo"),
        doctor_name=text("DrName"),
        visit_type=text("VisitType"),
        age_years=number("AgeYear"),
        age_months=number("AgeMonth"),
        age_days=number("AgeDay"),
    )
