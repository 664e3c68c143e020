"""Shared test fixtures for webverify.

Provides isolated config directories, a fake clock, a recording browser
presenter and a fake authorization server plugged into a real
:class:`~webverify.auth.transport.HttpTransport` through
:class:`httpx.MockTransport`. These fixtures are discovered by pytest and
available to every test module without explicit imports.
"""

from __future__ import annotations

import itertools
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union
from urllib.parse import parse_qsl

import httpx
import pytest

from webverify.auth.browser import BrowserPresenter
from webverify.auth.endpoint import ProviderEndpoints
from webverify.auth.storage import MemorySecureStorage
from webverify.auth.token_store import TokenStore
from webverify.auth.transport import HttpTransport
from webverify.client import WebVerify
from webverify.models import ClientCredentials, ScopeTokenRecord
from webverify.output import OutputFormat, OutputManager, reset_output, set_output

BASE_URL = "https://id.example.test/"
REDIRECT_URI = "myapp://callback"
START = datetime(2030, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> Iterator[None]:
    """Reset the global OutputManager after every test.

    The OutputManager keeps references to sys.stdout/sys.stderr from when it
    was created. CliRunner swaps those streams per invocation, so a manager
    left over from an earlier test would write to a closed file.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingPresenter(BrowserPresenter):
    """Browser presenter that records calls instead of opening anything."""

    def __init__(self, on_present: Optional[Callable[[str], None]] = None) -> None:
        self.presented: list[tuple[str, Any]] = []
        self.dismissed = 0
        self.on_present = on_present

    def present(self, url: str, context: Optional[Any] = None) -> None:  # noqa: ANN401
        self.presented.append((url, context))
        if self.on_present is not None:
            self.on_present(url)

    def dismiss(self) -> None:
        self.dismissed += 1

    @property
    def last_url(self) -> str:
        return self.presented[-1][0]


Scripted = Union[httpx.Response, Exception]


class FakeAuthServer:
    """``httpx.MockTransport`` handler standing in for the authorization server.

    Token requests are answered from :attr:`token_responses` in order; when
    the script is empty a fresh ``at-N`` / ``rt-N`` pair is issued. Setting
    :attr:`gate` holds every request until the event is set.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_responses: list[Scripted] = []
        self.profile_response: Scripted = httpx.Response(
            200, json={"email": "user@example.test", "fname": "Ada", "lname": None}
        )
        self.gate: Optional[threading.Event] = None
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        if self.gate is not None:
            self.gate.wait(timeout=10)

        if request.url.path.endswith("/oauth/token"):
            with self._lock:
                scripted = self.token_responses.pop(0) if self.token_responses else None
                serial = next(self._counter)
            if scripted is None:
                return httpx.Response(200, json=token_payload(f"at-{serial}", f"rt-{serial}"))
            return _play(scripted)
        if request.url.path.endswith("/api/public/v2/data.json"):
            return _play(self.profile_response)
        return httpx.Response(404)

    def token_requests(self) -> list[httpx.Request]:
        with self._lock:
            return [r for r in self.requests if r.url.path.endswith("/oauth/token")]

    def profile_requests(self) -> list[httpx.Request]:
        with self._lock:
            return [r for r in self.requests if r.url.path.endswith("/data.json")]


def _play(scripted: Scripted) -> httpx.Response:
    if isinstance(scripted, Exception):
        raise scripted
    return scripted


def token_payload(
    access: str = "at-1",
    refresh: str = "rt-1",
    expires_in: int = 3600,
    refresh_expires_in: int = 86400,
) -> dict[str, Any]:
    return {
        "access_token": access,
        "refresh_token": refresh,
        "expires_in": expires_in,
        "refresh_expires_in": refresh_expires_in,
        "token_type": "bearer",
    }


def form_of(request: httpx.Request) -> dict[str, str]:
    """Decode a form-encoded request body."""
    return dict(parse_qsl(request.content.decode("utf-8")))


def make_record(
    now: datetime = START,
    access: str = "at-0",
    refresh: str = "rt-0",
    access_in: int = 3600,
    refresh_in: int = 86400,
) -> ScopeTokenRecord:
    return ScopeTokenRecord(
        access_token=access,
        access_token_expiry=now + timedelta(seconds=access_in),
        refresh_token=refresh,
        refresh_token_expiry=now + timedelta(seconds=refresh_in),
    )


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll *predicate* until it holds; fail the test after *timeout* seconds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() >= deadline:
            pytest.fail("condition not reached in time")
        time.sleep(0.01)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture
def auth_server() -> FakeAuthServer:
    return FakeAuthServer()


@pytest.fixture
def transport(auth_server: FakeAuthServer) -> Iterator[HttpTransport]:
    client = httpx.Client(transport=httpx.MockTransport(auth_server))
    yield HttpTransport(client=client)
    client.close()


@pytest.fixture
def memory_storage() -> MemorySecureStorage:
    return MemorySecureStorage()


@pytest.fixture
def store(memory_storage: MemorySecureStorage) -> TokenStore:
    return TokenStore(memory_storage)


@pytest.fixture
def credentials() -> ClientCredentials:
    return ClientCredentials(
        client_id="client-123", client_secret="s3cret", redirect_uri=REDIRECT_URI
    )


@pytest.fixture
def endpoints(credentials: ClientCredentials, transport: HttpTransport) -> ProviderEndpoints:
    return ProviderEndpoints(BASE_URL, credentials, transport)


@pytest.fixture
def executor() -> Iterator[ThreadPoolExecutor]:
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def client(
    memory_storage: MemorySecureStorage,
    transport: HttpTransport,
    presenter: RecordingPresenter,
    clock: FakeClock,
) -> Iterator[WebVerify]:
    """An initialized :class:`WebVerify` wired to the fakes."""
    verify = WebVerify(
        base_url=BASE_URL,
        storage=memory_storage,
        transport=transport,
        presenter=presenter,
        clock=clock,
    )
    verify.initialize("client-123", "s3cret", REDIRECT_URI)
    yield verify
    verify.close()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME at subdirectories of tmp_path
    and clears every WEBVERIFY_* override so tests never touch real user
    config.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("webverify.config._is_xdg_platform", lambda: True)
    for var in [
        "WEBVERIFY_BASE_URL",
        "WEBVERIFY_CLIENT_ID",
        "WEBVERIFY_CLIENT_SECRET_SOURCE",
        "WEBVERIFY_REDIRECT_URI",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> Iterator[OutputManager]:
    """Install a quiet PLAIN-format output manager."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
