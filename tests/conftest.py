"""Shared test fixtures for micflow.

Provides an isolated config environment, a ready-made client config,
fake popups and HTTP transports, and output management.  These fixtures
are discovered by pytest and available to all test modules without
explicit imports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest
from pydantic import SecretStr

from micflow.auth.popup import NavigationEvent
from micflow.models import ClientConfig
from micflow.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams the
    cached references go stale once the test finishes.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Client config
# ---------------------------------------------------------------------------


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(
        app_key="kid_app",
        app_secret=SecretStr("app-secret"),
        mic_protocol="https",
        mic_host="auth.example.com",
    )


# ---------------------------------------------------------------------------
# Fake popup
# ---------------------------------------------------------------------------


class FakePopup:
    """In-memory popup that records its lifecycle and lets tests fire events."""

    def __init__(self, url: str = "", auto_navigate: Optional[str] = None) -> None:
        self.url = url
        self.auto_navigate = auto_navigate
        self.navigated_callbacks: list[Callable[[Any], None]] = []
        self.closed_callbacks: list[Callable[[], None]] = []
        self._ever_navigated: list[Callable[[Any], None]] = []
        self._ever_closed: list[Callable[[], None]] = []
        self.listeners_removed = 0
        self.closed = 0

    def on_navigated(self, callback: Callable[[Any], None]) -> None:
        self.navigated_callbacks.append(callback)
        self._ever_navigated.append(callback)
        if self.auto_navigate is not None:
            callback(NavigationEvent(url=self.auto_navigate))

    def on_closed(self, callback: Callable[[], None]) -> None:
        self.closed_callbacks.append(callback)
        self._ever_closed.append(callback)

    def remove_all_listeners(self) -> None:
        self.listeners_removed += 1
        self.navigated_callbacks.clear()
        self.closed_callbacks.clear()

    def close(self) -> None:
        self.closed += 1

    @property
    def has_listeners(self) -> bool:
        return bool(self.navigated_callbacks or self.closed_callbacks)

    # Test helpers; they also reach removed listeners so late events can be simulated.

    def navigate(self, url: str) -> None:
        for callback in list(self._ever_navigated):
            callback(NavigationEvent(url=url))

    def user_close(self) -> None:
        for callback in list(self._ever_closed):
            callback()


@pytest.fixture
def fake_popup_factory() -> Callable[..., Any]:
    """Return a factory of popup openers creating :class:`FakePopup` objects.

    ``make(auto_navigate=url)`` returns an opener whose popups report a
    navigation to *url* as soon as a navigation listener is registered.
    The opener records its popups in ``opened``.
    """

    def make(auto_navigate: Optional[str] = None) -> Callable[[str], FakePopup]:
        def opener(url: str) -> FakePopup:
            popup = FakePopup(url, auto_navigate)
            opener.opened.append(popup)  # type: ignore[attr-defined]
            return popup

        opener.opened = []  # type: ignore[attr-defined]
        return opener

    return make


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def recording_transport() -> Callable[..., Any]:
    """Build an :class:`httpx.MockTransport` that records requests.

    Call with a handler ``(request) -> httpx.Response``; the returned
    transport has a ``requests`` list.
    """

    def make(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.MockTransport:
        requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        transport = httpx.MockTransport(record)
        transport.requests = requests  # type: ignore[attr-defined]
        return transport

    return make


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME at subdirectories of tmp_path,
    forces the XDG code path, clears all MICFLOW_* environment variables
    and changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("micflow.config._is_xdg_platform", lambda: True)

    for var in [
        "MICFLOW_APP_KEY",
        "MICFLOW_APP_SECRET",
        "MICFLOW_APP_SECRET_SOURCE",
        "MICFLOW_MIC_PROTOCOL",
        "MICFLOW_MIC_HOST",
        "MICFLOW_MIC_AUTH_PATHNAME",
        "MICFLOW_MIC_TOKEN_PATHNAME",
        "MICFLOW_USER_COLLECTION_NAME",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
