"""Error taxonomy.

Transport, persistence and parse failures are caught where they happen and
degraded to safe defaults. Only PastScheduleError reaches the caller.
"""


class ClinicSendError(Exception):
    """Base class for clinicsend errors."""


class TransportError(ClinicSendError):
    """The outbound call failed before a response was received."""


class PersistenceError(ClinicSendError):
    """A schedule, job or history file could not be read or written."""


class ScheduleParseError(ClinicSendError, ValueError):
    """A persisted schedule timestamp could not be parsed."""


class PastScheduleError(ClinicSendError, ValueError):
    """A schedule was requested for a time that is not in the future."""

    def __init__(self, message: str = "Pick a future time") -> None:
        super().__init__(message)
