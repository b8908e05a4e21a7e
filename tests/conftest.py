"""Shared test fixtures and factories."""

import asyncio
from collections.abc import Iterator
from datetime import datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

import httpx
import pytest

from clinicsend.config import get_default_config
from clinicsend.config.paths import ENV_VAR, get_clinicsend_home
from clinicsend.history import HistoryLog
from clinicsend.network import NetworkClient

UTC_ZONE = ZoneInfo("UTC")

# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def clinicsend_home(tmp_path: Path, monkeypatch) -> Iterator[Path]:
    """Point CLINICSEND_HOME at a temporary directory."""
    home = tmp_path / "home"
    monkeypatch.setenv(ENV_VAR, str(home))
    monkeypatch.delenv("CLINICSEND_SERVER_URL", raising=False)
    monkeypatch.chdir(tmp_path)
    get_clinicsend_home.cache_clear()
    yield home
    get_clinicsend_home.cache_clear()


@pytest.fixture
def config():
    return get_default_config()


@pytest.fixture
def config_toml_content() -> str:
    """Valid TOML config content."""
    return """
timezone = "Asia/Dhaka"

[server]
url = "http://clinic.test/Appointment/Save"
timeout = 10

[retry]
max_retries = 2
backoff_seconds = 30

[clinic]
doctor_code = "0200"
doctor_name = "Dr. Test"
"""


@pytest.fixture
def config_file(tmp_path: Path, config_toml_content: str) -> Path:
    """Create a temporary config file."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(config_toml_content)
    return config_path


# =============================================================================
# Fakes
# =============================================================================


class FakeClock:
    """Controllable ``now`` for schedulers and countdowns."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 12, 9, 0, tzinfo=UTC_ZONE)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class RecordingSleep:
    """Async sleep stand-in that records requested durations."""

    def __init__(self, on_sleep=None):
        self.calls: list[float] = []
        self._on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._on_sleep is not None:
            self._on_sleep(seconds)


class RecordingNotifier:
    """Notifier that keeps every notice."""

    def __init__(self):
        self.notices: list[tuple[int, str, str, bool]] = []

    def notify(self, id: int, title: str, body: str, ongoing: bool = False) -> None:
        self.notices.append((id, title, body, ongoing))

    def close(self) -> None:
        pass

    @property
    def bodies(self) -> list[str]:
        return [body for _, _, body, _ in self.notices]


class ScriptedSender:
    """PayloadSender returning canned results in order."""

    def __init__(self, results: list[str]):
        self._results = list(results)
        self.payloads: list[str] = []

    async def send(self, payload: str) -> str:
        self.payloads.append(payload)
        return self._results.pop(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def history(tmp_path: Path) -> HistoryLog:
    return HistoryLog(tmp_path / "history.jsonl")


def mock_transport(status_code: int = 200, text: str = "OK") -> httpx.MockTransport:
    """Transport answering every request with the same response."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text=text)

    return httpx.MockTransport(handler)


@pytest.fixture
def make_client(history: HistoryLog):
    """Factory for NetworkClients backed by a mock transport."""

    def factory(transport: httpx.AsyncBaseTransport) -> NetworkClient:
        return NetworkClient(
            history, url="http://clinic.test/save", transport=transport
        )

    return factory


# =============================================================================
# CLI Test Helpers
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})


class GateSleep:
    """Async sleep that blocks until released, for cancellation tests."""

    def __init__(self):
        self.calls: list[float] = []
        self.entered = asyncio.Event()
        self._release = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.entered.set()
        await self._release.wait()

    def release(self) -> None:
        self._release.set()
