"""Tests for the loopback redirect listener."""

from __future__ import annotations

import socket
import threading
from urllib.parse import parse_qsl, urlsplit

import httpx
import pytest

from conftest import wait_until
from webverify.auth.endpoint import ProviderEndpoints
from webverify.auth.redirect_server import LoopbackRedirectListener, _page_for
from webverify.exceptions import ConfigError


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestConstruction:
    @pytest.mark.parametrize(
        "uri", ["myapp://callback", "https://127.0.0.1:8765/cb", "http:///callback"]
    )
    def test_rejects_non_loopback_http(self, uri: str) -> None:
        with pytest.raises(ConfigError):
            LoopbackRedirectListener(uri, lambda url: True, lambda: None)

    def test_port_in_use(self) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen(1)
            port = sock.getsockname()[1]
            listener = LoopbackRedirectListener(
                f"http://127.0.0.1:{port}/cb", lambda url: True, lambda: None
            )
            with pytest.raises(ConfigError):
                listener.start()


class TestPages:
    def test_success(self) -> None:
        assert "complete" in _page_for("http://127.0.0.1/cb?code=abc")

    def test_logout(self) -> None:
        assert "logged out" in _page_for("http://127.0.0.1/cb?type=logout")

    def test_logout_page_for_logout_url_redirect(self, endpoints: ProviderEndpoints) -> None:
        redirect = dict(parse_qsl(urlsplit(endpoints.logout_url()).query))["redirect_uri"]
        assert "logged out" in _page_for(redirect)

    def test_error_description_shown(self) -> None:
        page = _page_for("http://127.0.0.1/cb?error=access_denied&error_description=Nope")
        assert page == "Verification failed: Nope"

    def test_missing_code(self) -> None:
        assert _page_for("http://127.0.0.1/cb") == "Verification failed: no authorization code"


class TestServing:
    def test_forwards_full_url_and_stops(self) -> None:
        port = _free_port()
        received: list[str] = []

        def on_redirect(url: str) -> bool:
            received.append(url)
            return "code" in url

        with LoopbackRedirectListener(
            f"http://127.0.0.1:{port}/cb", on_redirect, lambda: None, timeout=10
        ) as listener:
            miss = httpx.get(f"http://127.0.0.1:{port}/favicon.ico")
            hit = httpx.get(f"http://127.0.0.1:{port}/cb?code=abc&state=1")
            wait_until(lambda: listener.received)

        assert miss.status_code == 404
        assert hit.status_code == 200
        assert "Verification complete" in hit.text
        assert received == [
            f"http://127.0.0.1:{port}/favicon.ico",
            f"http://127.0.0.1:{port}/cb?code=abc&state=1",
        ]

    def test_timeout_calls_back(self) -> None:
        fired = threading.Event()
        listener = LoopbackRedirectListener(
            f"http://127.0.0.1:{_free_port()}/cb",
            lambda url: False,
            fired.set,
            timeout=0.1,
        )
        listener.start()
        assert fired.wait(timeout=5)
        listener.close()
        assert not listener.received

    def test_close_releases_port(self) -> None:
        port = _free_port()
        uri = f"http://127.0.0.1:{port}/cb"
        with LoopbackRedirectListener(uri, lambda url: True, lambda: None, timeout=10):
            pass

        with LoopbackRedirectListener(uri, lambda url: True, lambda: None, timeout=10) as again:
            response = httpx.get(f"{uri}?code=abc")
            wait_until(lambda: again.received)

        assert response.status_code == 200
