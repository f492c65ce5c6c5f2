"""Shared test fixtures for fluxcache.

Provides reusable fixtures for isolated config environments, cache stores,
call-counting upstream stand-ins, output state, and the CLI runner. These
fixtures are automatically discovered by pytest and available to all test
modules without explicit imports.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Optional

import pytest

from fluxcache.cache import CacheStore
from fluxcache.exceptions import UpstreamUnavailableError
from fluxcache.models import ProxyConfig, UpstreamResponse
from fluxcache.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When CliRunner or capsys redirects those streams and the
    test finishes, the cached references become stale. Resetting forces a
    fresh manager to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Upstream stand-in
# ---------------------------------------------------------------------------


class FakeUpstream:
    """Call-counting stand-in for the upstream fetch capability.

    Each module path maps to a canned :class:`UpstreamResponse`; unknown
    paths answer 404. Setting ``fail`` simulates a transport failure, and
    ``gate`` (an Event) holds every fetch until it is set.
    """

    def __init__(self) -> None:
        self.responses: dict[str, UpstreamResponse] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail = False
        self.gate: Optional[threading.Event] = None
        self.on_fetch: Optional[Callable[[str, str], None]] = None
        self._lock = threading.Lock()

    def add(
        self,
        path: str,
        body: bytes,
        status_code: int = 200,
        headers: Optional[list[tuple[str, str]]] = None,
    ) -> None:
        self.responses[path] = UpstreamResponse(
            status_code=status_code,
            headers=headers if headers is not None else [("Content-Type", "application/json")],
            content=body,
        )

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def fetch(self, path: str, query: str = "") -> UpstreamResponse:
        with self._lock:
            self.calls.append((path, query))
        if self.on_fetch is not None:
            self.on_fetch(path, query)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail:
            raise UpstreamUnavailableError(f"Upstream request to {path} failed: refused")
        if path in self.responses:
            return self.responses[path]
        return UpstreamResponse(status_code=404, content=b"not found")


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    """A fresh call-counting upstream stand-in."""
    return FakeUpstream()


# ---------------------------------------------------------------------------
# Store / config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """A cache root under tmp_path (not yet created)."""
    return tmp_path / "fluxcache"


@pytest.fixture
def store(cache_dir: Path) -> CacheStore:
    """A CacheStore rooted at ``cache_dir``."""
    return CacheStore(cache_dir)


@pytest.fixture
def proxy_config(cache_dir: Path) -> ProxyConfig:
    """Config pointing at ``cache_dir`` and a fake upstream host."""
    return ProxyConfig(
        cache_dir=str(cache_dir),
        host="127.0.0.1",
        port=0,
        upstream="https://upstream.example.com",
    )


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config. Clears all FLUXCACHE_* environment variables and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("fluxcache.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "FLUXCACHE_CACHE_DIR",
        "FLUXCACHE_HOST",
        "FLUXCACHE_PORT",
        "FLUXCACHE_UPSTREAM",
        "FLUXCACHE_VERBOSE",
        "FLUXCACHE_UPSTREAM_TIMEOUT",
        "FLUXCACHE_SINGLE_FLIGHT",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet, plain, colourless OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def verbose_output() -> OutputManager:
    """Install a verbose, plain, colourless OutputManager for the test.

    Create it after ``capsys`` is active so that stderr is captured.
    """
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
