"""Shared test fixtures for toolscribe.

Provides fixture paths, an isolated configuration environment, output
managers and helpers for serving tool sources over a mock HTTP transport.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import httpx
import pytest

from toolscribe.loader import Fetcher
from toolscribe.models import LoaderConfig
from toolscribe.output import OutputFormat, OutputManager, reset_output, set_output

FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager keeps references to sys.stdout/sys.stderr. When
    Typer's CliRunner swaps those streams for a test, the references go
    stale afterwards ("I/O operation on closed file").
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Fixture paths
# ---------------------------------------------------------------------------


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def agent_dir() -> Path:
    """Directory holding a two-file tool tree with a reference cycle."""
    return FIXTURES_DIR / "agent"


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at subdirectories of tmp_path, clears the
    TOOLSCRIBE_* environment variables and changes into tmp_path.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("toolscribe.config._is_xdg_platform", lambda: True)

    for var in ["TOOLSCRIBE_DEFAULT_MODEL", "TOOLSCRIBE_TIMEOUT"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


class SourceServer:
    """Serve a dict of ``url -> text`` through :class:`httpx.MockTransport`.

    Every request is recorded in :attr:`requests` so tests can count fetches.
    Unknown URLs answer 404.
    """

    def __init__(self, sources: dict[str, str]) -> None:
        self.sources = sources
        self.requests: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url not in self.sources:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=self.sources[url])

    def fetcher(self, config: LoaderConfig | None = None) -> Fetcher:
        return Fetcher(config, transport=httpx.MockTransport(self.handler), backoff=0)


@pytest.fixture
def source_server() -> Callable[[dict[str, str]], SourceServer]:
    """Factory for :class:`SourceServer` instances."""
    return SourceServer


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
