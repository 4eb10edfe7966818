import asyncio
import io
from typing import Iterable, List

import pytest
from typer.testing import CliRunner

from wikiipsum.domain.interfaces.summary_source import SummarySource
from wikiipsum.domain.interfaces.user_interface import DiagnosticSink
from wikiipsum.domain.models.common import FetchOutcome
from wikiipsum.infrastructure.config.settings import clear_test_config


class ScriptedSource(SummarySource):
    """SummarySource that replays a fixed list of outcomes, then repeats a default one."""

    def __init__(self, outcomes: Iterable[FetchOutcome] = (), default: FetchOutcome = None, delay: float = 0.0):
        self._outcomes = list(outcomes)
        self.default = default or FetchOutcome.success(b"Lorem ipsum.")
        self.delay = delay
        self.calls = 0

    async def fetch(self, stop_event: asyncio.Event) -> FetchOutcome:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self._outcomes:
            return self._outcomes.pop(0)
        return self.default


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def mock_ui(mocker):
    return mocker.MagicMock(spec=DiagnosticSink)


@pytest.fixture
def sink():
    return io.BytesIO()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def scripted_source():
    """Factory for ScriptedSource instances."""
    def _make(outcomes: List[FetchOutcome] = (), **kwargs) -> ScriptedSource:
        return ScriptedSource(outcomes, **kwargs)
    return _make


@pytest.fixture(autouse=True)
def isolate_config(monkeypatch, tmp_path):
    """Keeps tests independent of the developer's environment and config files."""
    for key in ("WIKIIPSUM_USER_AGENT", "WIKIIPSUM_LANG", "WIKIIPSUM_RATE", "WIKIIPSUM_LOGGING_LEVEL"):
        # setenv first so teardown also removes values a test loads from a .env file
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("wikiipsum.infrastructure.config.settings.DEFAULT_CONFIG_FILE", tmp_path / "missing.yaml")
    monkeypatch.setattr("wikiipsum.infrastructure.config.settings._loaded", False)
    monkeypatch.setattr("wikiipsum.infrastructure.config.settings._config", {})
    yield
    clear_test_config()
