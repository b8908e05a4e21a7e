"""Outbound appointment submission.

One call to ``NetworkClient.send`` is one HTTP POST. The result is always a
string: ``"Status: <code>\\n<body>"`` when any response arrives, or
``"Error: <message>"`` when the request fails. Each call appends one entry to
the history log whatever the outcome.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from clinicsend.errors import TransportError
from clinicsend.history import HistoryEntry, HistoryLog

if TYPE_CHECKING:
    from clinicsend.config.models import ClinicSendConfig

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Error:"


def format_success(status_code: int, body: str) -> str:
    return f"Status: {status_code}\n{body}"


def format_error(message: str) -> str:
    return f"{ERROR_PREFIX} {message}"


class NetworkClient:
    """Posts appointment payloads and records every attempt.

    Example:
        client = NetworkClient(HistoryLog(get_history_file()), url=SERVER_URL)
        result = await client.send(payload_json)
    """

    def __init__(
        self,
        history: HistoryLog,
        url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._history = history
        self._url = url
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: ClinicSendConfig,
        history: HistoryLog,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> NetworkClient:
        return cls(
            history,
            url=config.server.url,
            timeout=config.server.timeout,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._url

    async def send(self, payload: str) -> str:
        """POST the payload and return the normalized result string."""
        try:
            status_code, body = await self._post(payload)
        except TransportError as e:
            message = str(e)
            logger.info(
                "submission_transport_error",
                extra={"http.url": self._url, "error.message": message},
            )
            self._record(HistoryEntry.error(message, payload))
            return format_error(message)

        logger.info(
            "submission_response",
            extra={"http.url": self._url, "http.status_code": status_code},
        )
        self._record(HistoryEntry.success(status_code, body, payload))
        return format_success(status_code, body)

    async def _post(self, payload: str) -> tuple[int, str]:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._url,
                    content=payload.encode("utf-8"),
                    headers={"Content-Type": "application/json; charset=utf-8"},
                )
                return response.status_code, response.text
        # Anything raised while posting is reported as a failed attempt
        except Exception as e:
            raise TransportError(str(e) or type(e).__name__) from e

    def _record(self, entry: HistoryEntry) -> None:
        # HistoryLog already logs its own failures; a broken log never
        # changes the submission result.
        try:
            self._history.append(entry)
        except Exception as e:
            logger.debug("history_record_failed", extra={"error.message": str(e)})
