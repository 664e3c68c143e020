"""One-shot loopback HTTP server that receives the authorization redirect.

Command line hosts have no "app opened via URL" event, so when the
registered redirect URI is ``http://127.0.0.1:<port>/<path>`` (or
``localhost``) the browser's redirect lands on this listener instead. Every
request is rebuilt into a full URL and forwarded to the ``on_redirect``
callback (normally :meth:`webverify.client.WebVerify.handle_redirect`). The
listener stops after the first request the callback consumes, or calls
``on_timeout`` (normally :meth:`~webverify.client.WebVerify.cancel_flow`)
when nothing arrives in time.
"""

from __future__ import annotations

import html
import logging
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

from webverify.auth.endpoint import LOGOUT_MARKER
from webverify.auth.flow import parse_redirect_query
from webverify.exceptions import ConfigError

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.5

_SUCCESS_PAGE = "Verification complete. You can close this window and return to the terminal."
_LOGOUT_PAGE = "You have been logged out. You can close this window."
_FAILURE_PAGE = "Verification failed: {reason}"


class LoopbackRedirectListener:
    """Serve the redirect URI on the loopback interface until a redirect is consumed.

    Args:
        redirect_uri: The registered redirect URI; must be ``http`` with an
            explicit host.
        on_redirect: Receives each full redirect URL; returns ``True`` once
            it consumed one.
        on_timeout: Called once if *timeout* elapses first.
        timeout: Seconds to wait for the redirect.

    Raises:
        ConfigError: If *redirect_uri* cannot be served locally.
    """

    def __init__(
        self,
        redirect_uri: str,
        on_redirect: Callable[[str], bool],
        on_timeout: Callable[[], Any],
        timeout: float = 300.0,
    ) -> None:
        parts = urlsplit(redirect_uri)
        if parts.scheme != "http" or not parts.hostname:
            raise ConfigError(
                f"Redirect URI {redirect_uri!r} is not an http:// loopback address"
            )
        self._address = (parts.hostname, parts.port or 80)
        self._origin = f"{parts.scheme}://{parts.netloc}"
        self._on_redirect = on_redirect
        self._on_timeout = on_timeout
        self._timeout = timeout
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def received(self) -> bool:
        """True once a redirect has been consumed."""
        return self._done.is_set()

    def start(self) -> None:
        """Bind the port and start serving on a daemon thread.

        Raises:
            ConfigError: If the address cannot be bound.
        """
        listener = self

        class RedirectHandler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                url = listener._origin + self.path
                handled = listener._on_redirect(url)
                if handled:
                    listener._done.set()
                body = _page_for(url) if handled else "Not found."
                self.send_response(200 if handled else 404)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.end_headers()
                self.wfile.write(
                    f"<html><body><h2>{html.escape(body)}</h2></body></html>".encode("utf-8")
                )

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("redirect listener: " + format, *args)

        try:
            server = HTTPServer(self._address, RedirectHandler)
        except OSError as exc:
            raise ConfigError(
                f"Cannot listen on {self._address[0]}:{self._address[1]}: {exc}"
            ) from exc
        server.timeout = _POLL_INTERVAL
        self._thread = threading.Thread(
            target=self._serve, args=(server,), name="webverify-redirect", daemon=True
        )
        self._thread.start()
        logger.debug("Listening for the redirect on %s", self._origin)

    def close(self) -> None:
        """Stop serving and release the port."""
        self._done.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def __enter__(self) -> LoopbackRedirectListener:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _serve(self, server: HTTPServer) -> None:
        deadline = time.monotonic() + self._timeout
        try:
            while not self._done.is_set():
                if time.monotonic() >= deadline:
                    logger.warning("No redirect received within %.0f seconds", self._timeout)
                    self._on_timeout()
                    break
                server.handle_request()
        finally:
            server.server_close()


def _page_for(url: str) -> str:
    params = parse_redirect_query(url)
    key, value = LOGOUT_MARKER
    if params.get(key) == value:
        return _LOGOUT_PAGE
    if "error" in params or "code" not in params:
        reason = params.get("error_description") or params.get("error") or "no authorization code"
        return _FAILURE_PAGE.format(reason=reason)
    return _SUCCESS_PAGE
