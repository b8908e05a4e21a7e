"""Local notification surface.

Two logical channels share one primitive, ``notify(id, title, body, ongoing)``:
transient attempt/result notices, and a single ongoing countdown notice that
is overwritten on every tick.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from rich.markup import escape

if TYPE_CHECKING:
    from rich.console import Console
    from rich.status import Status

logger = logging.getLogger(__name__)

# Attempt and result notices from the submission worker
WORKER_NOTICE_ID = 2001
# Ongoing countdown notice, replaced on every tick
COUNTDOWN_NOTICE_ID = 9999


class Notifier(Protocol):
    """Anything that can show a notice to the user."""

    def notify(self, id: int, title: str, body: str, ongoing: bool = False) -> None: ...


class NullNotifier:
    """Notifier that drops every notice."""

    def notify(self, id: int, title: str, body: str, ongoing: bool = False) -> None:
        logger.debug("notice_dropped", extra={"notice.id": id, "notice.title": title})


class ConsoleNotifier:
    """Render notices on a Rich console.

    Transient notices print as lines. Ongoing notices drive a single status
    line that is updated in place until ``close()`` is called.
    """

    def __init__(self, console: Console | None = None) -> None:
        if console is None:
            from clinicsend.cli.console import console as shared_console

            console = shared_console
        self._console = console
        self._status: Status | None = None
        self._status_id: int | None = None

    def notify(self, id: int, title: str, body: str, ongoing: bool = False) -> None:
        if ongoing:
            text = f"[bold]{escape(title)}[/bold] {escape(body)}"
            if self._status is None:
                self._status = self._console.status(text)
                self._status.start()
            else:
                self._status.update(text)
            self._status_id = id
            return

        if id == self._status_id:
            self.close()
        self._console.print(f"[cyan]{escape(title)}[/cyan]: {escape(body)}")

    def close(self) -> None:
        """Stop the ongoing status line, if one is showing."""
        if self._status is not None:
            self._status.stop()
            self._status = None
            self._status_id = None
