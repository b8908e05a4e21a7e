"""Schedule types.

Public types:
- JobInput: Input handed to the submission worker by the deferred job
- JobRecord: A persisted deferred job (fire time plus input)
- WorkResult: Terminal outcome of one worker invocation
- ExistingJobPolicy: Conflict policy for unique job names
"""

import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from clinicsend.errors import ScheduleParseError

# The one unique job name; REPLACE on this key keeps a single pending submission
UNIQUE_JOB_NAME = "one_time_appointment_unique"

KEY_PAYLOAD_JSON = "payloadJson"
KEY_SCHEDULED_ISO = "scheduledIso"
KEY_ATTEMPT = "attempt"

# Optional "[Region/City]" suffix as written by ISO_ZONED_DATE_TIME formatters
_ZONE_ID_SUFFIX = re.compile(r"\[([^\]]+)\]$")


class WorkResult(Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class ExistingJobPolicy(Enum):
    """What to do when a job with the same unique name is already pending."""

    REPLACE = "replace"
    KEEP = "keep"


def format_zoned(value: datetime) -> str:
    """Format an aware datetime as ISO-8601 with offset."""
    if value.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return value.isoformat()


def parse_zoned(value: str, default_tz: ZoneInfo | None = None) -> datetime:
    """Parse an ISO-8601 zoned date-time.

    Accepts a trailing ``[Region/City]`` zone id, which takes precedence over
    the offset. Naive values are placed in ``default_tz`` (UTC if omitted).

    Raises:
        ScheduleParseError: If the value is not a valid date-time.
    """
    text = value.strip()
    zone: ZoneInfo | None = None
    if match := _ZONE_ID_SUFFIX.search(text):
        try:
            zone = ZoneInfo(match.group(1))
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ScheduleParseError(f"Unknown zone id in {value!r}") from e
        text = text[: match.start()]

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ScheduleParseError(f"Invalid zoned date-time: {value!r}") from e

    if zone is not None:
        return parsed.astimezone(zone) if parsed.tzinfo else parsed.replace(tzinfo=zone)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=default_tz or ZoneInfo("UTC"))
    return parsed


@dataclass(frozen=True)
class JobInput:
    """Input for one submission worker invocation.

    ``payload_json`` may be None when the input was lost; the worker then
    builds a fallback payload.
    """

    payload_json: str | None
    scheduled_iso: str
    attempt: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            KEY_SCHEDULED_ISO: self.scheduled_iso,
            KEY_ATTEMPT: self.attempt,
        }
        if self.payload_json is not None:
            data[KEY_PAYLOAD_JSON] = self.payload_json
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobInput":
        payload = data.get(KEY_PAYLOAD_JSON)
        try:
            attempt = max(int(data.get(KEY_ATTEMPT, 0)), 0)
        except (TypeError, ValueError):
            attempt = 0
        return cls(
            payload_json=payload if isinstance(payload, str) else None,
            scheduled_iso=str(data.get(KEY_SCHEDULED_ISO, "")),
            attempt=attempt,
        )


@dataclass(frozen=True)
class JobRecord:
    """A deferred job as persisted in the jobs file."""

    name: str
    run_at: datetime
    input: JobInput
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "run_at": format_zoned(self.run_at),
            "input": self.input.to_dict(),
        }

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "JobRecord | None":
        """Parse a record, returning None if it is malformed."""
        try:
            run_at = parse_zoned(str(data["run_at"]))
            raw_input = data.get("input") or {}
            if not isinstance(raw_input, dict):
                return None
        except (KeyError, TypeError, ScheduleParseError):
            return None
        record = cls(name=name, run_at=run_at, input=JobInput.from_dict(raw_input))
        if job_id := data.get("id"):
            record = replace(record, id=str(job_id))
        return record
