"""Single-slot store for the pending schedule timestamp."""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from clinicsend.errors import PersistenceError
from clinicsend.scheduling.types import parse_zoned

logger = logging.getLogger(__name__)


class ScheduleStore:
    """Persists at most one ISO-8601 zoned timestamp.

    No history of past schedules is kept. Reads never raise: a missing,
    blank or unreadable slot reads as absent.
    """

    def __init__(self, schedule_file: Path) -> None:
        self._schedule_file = schedule_file

    @property
    def schedule_file(self) -> Path:
        return self._schedule_file

    def save(self, iso: str) -> bool:
        """Overwrite the slot. Returns False if the write failed."""
        try:
            write_text_atomic(self._schedule_file, iso)
        except PersistenceError as e:
            logger.warning(
                "schedule_save_failed",
                extra={
                    "file.path": str(self._schedule_file),
                    "error.message": str(e),
                },
            )
            return False
        logger.debug("schedule_saved", extra={"schedule.iso": iso})
        return True

    def read(self) -> str | None:
        try:
            text = self._schedule_file.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                "schedule_read_failed",
                extra={
                    "file.path": str(self._schedule_file),
                    "error.message": str(e),
                },
            )
            return None
        return text or None

    def read_datetime(self, default_tz: ZoneInfo | None = None) -> datetime | None:
        """Read and parse the slot.

        Raises:
            ScheduleParseError: If the slot holds something that is not a
                zoned date-time.
        """
        iso = self.read()
        if iso is None:
            return None
        return parse_zoned(iso, default_tz)

    def clear(self) -> bool:
        """Empty the slot. Returns False if the write failed."""
        try:
            write_text_atomic(self._schedule_file, "")
        except PersistenceError as e:
            logger.warning(
                "schedule_clear_failed",
                extra={
                    "file.path": str(self._schedule_file),
                    "error.message": str(e),
                },
            )
            return False
        return True


def write_text_atomic(path: Path, text: str) -> None:
    """Write text atomically via tempfile + fsync + os.replace()."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    except OSError as e:
        raise PersistenceError(str(e)) from e
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        Path(tmp).replace(path)
    except OSError as e:
        try:
            Path(tmp).unlink()
        except OSError:
            pass
        raise PersistenceError(str(e)) from e
