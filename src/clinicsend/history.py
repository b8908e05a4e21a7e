"""Append-only history of submission attempts.

Each record is one line of four fields joined by " | ":

    timestamp | status code or ERROR | response or error text | raw payload

Fields are sanitised before writing so the four-field structure survives a
read even when a payload or response contains newlines or the separator.
"""

from __future__ import annotations

import fcntl
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import cached_property
from pathlib import Path
from typing import IO

from clinicsend.payload import PayloadSummary, summarize_payload

logger = logging.getLogger(__name__)

SEPARATOR = " | "
ERROR_STATUS = "ERROR"


def sanitize_field(value: str) -> str:
    """Replace line breaks and the field separator with a single space."""
    cleaned = value.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
    while SEPARATOR in cleaned:
        cleaned = cleaned.replace(SEPARATOR, " ")
    # A field edge must not merge with the joining separator
    if cleaned.endswith(" |"):
        cleaned = cleaned[:-1]
    if cleaned.startswith("| "):
        cleaned = cleaned[1:]
    return cleaned


@dataclass(frozen=True)
class HistoryEntry:
    """A single submission attempt as recorded in the history file."""

    timestamp: str
    status: str  # Status code digits, or "ERROR"
    response_body: str
    raw_payload: str
    id: int = 0

    @classmethod
    def success(
        cls,
        status_code: int,
        response_body: str,
        raw_payload: str,
        timestamp: datetime | None = None,
    ) -> HistoryEntry:
        return cls(
            timestamp=_format_timestamp(timestamp),
            status=str(status_code),
            response_body=response_body,
            raw_payload=raw_payload,
        )

    @classmethod
    def error(
        cls,
        message: str,
        raw_payload: str,
        timestamp: datetime | None = None,
    ) -> HistoryEntry:
        return cls(
            timestamp=_format_timestamp(timestamp),
            status=ERROR_STATUS,
            response_body=message,
            raw_payload=raw_payload,
        )

    @property
    def is_error(self) -> bool:
        return self.status.upper() == ERROR_STATUS

    @property
    def status_code(self) -> int | None:
        """The HTTP status code, or None for errors and degraded lines."""
        try:
            return int(self.status)
        except ValueError:
            return None

    @cached_property
    def summary(self) -> PayloadSummary:
        """Appointment fields extracted from the raw payload, if it parses."""
        return summarize_payload(self.raw_payload)

    def to_line(self) -> str:
        """Serialize to a single history line (without trailing newline)."""
        fields = (self.timestamp, self.status, self.response_body, self.raw_payload)
        return SEPARATOR.join(sanitize_field(f) for f in fields)

    @classmethod
    def from_line(cls, line: str, entry_id: int = 0) -> HistoryEntry:
        """Parse a history line.

        Lines with fewer than four fields degrade to a record with the
        missing fields left empty rather than being dropped.
        """
        parts = line.rstrip("\r\n").split(SEPARATOR, 3)
        parts += [""] * (4 - len(parts))
        return cls(
            timestamp=parts[0],
            status=parts[1],
            response_body=parts[2],
            raw_payload=parts[3],
            id=entry_id,
        )


def _format_timestamp(timestamp: datetime | None) -> str:
    return (timestamp or datetime.now()).replace(microsecond=0).isoformat()


class HistoryLog:
    """Append-only, newline-delimited history file.

    Appends are one write of one whole line under an exclusive lock, so the
    immediate send path and the deferred worker can both append safely.
    Every failure is logged and swallowed: history is best-effort.
    """

    def __init__(self, history_file: Path) -> None:
        self._history_file = history_file

    @property
    def history_file(self) -> Path:
        return self._history_file

    def append(self, entry: HistoryEntry) -> bool:
        """Append one entry. Returns False if the write failed."""
        line = entry.to_line() + "\n"
        try:
            self._history_file.parent.mkdir(parents=True, exist_ok=True)
            with self._history_file.open("a", encoding="utf-8") as f:
                with self._file_lock(f):
                    f.write(line)
                    f.flush()
        except OSError as e:
            logger.warning(
                "history_append_failed",
                extra={
                    "file.path": str(self._history_file),
                    "error.message": str(e),
                },
            )
            return False
        return True

    def read(self) -> list[HistoryEntry]:
        """Read all entries, most recent first."""
        try:
            with self._history_file.open(encoding="utf-8") as f:
                lines = [line for line in f.read().split("\n") if line.strip()]
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                "history_read_failed",
                extra={
                    "file.path": str(self._history_file),
                    "error.message": str(e),
                },
            )
            return []

        lines.reverse()
        return [
            HistoryEntry.from_line(line, entry_id=i)
            for i, line in enumerate(lines, 1)
        ]

    def get(self, entry_id: int) -> HistoryEntry | None:
        """Get an entry by its 1-based position in read() order."""
        entries = self.read()
        if 1 <= entry_id <= len(entries):
            return entries[entry_id - 1]
        return None

    def clear(self) -> bool:
        """Truncate the whole log. Returns False if the write failed."""
        try:
            self._history_file.parent.mkdir(parents=True, exist_ok=True)
            with self._history_file.open("w", encoding="utf-8") as f:
                with self._file_lock(f):
                    pass
        except OSError as e:
            logger.warning(
                "history_clear_failed",
                extra={
                    "file.path": str(self._history_file),
                    "error.message": str(e),
                },
            )
            return False
        logger.info("history_cleared", extra={"file.path": str(self._history_file)})
        return True

    @contextmanager
    def _file_lock(self, file: IO) -> Iterator[None]:
        try:
            fcntl.flock(file.fileno(), fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(file.fileno(), fcntl.LOCK_UN)
