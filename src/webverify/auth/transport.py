"""HTTP transport collaborator.

The core never interprets HTTP beyond status code and body, so the transport
contract is small: :meth:`HttpTransport.post` sends a
form-encoded body, :meth:`HttpTransport.get` a plain request, and both return
an :class:`HttpResponse` with the raw status and bytes. A request that
produces no response at all (DNS failure, refused connection, timeout)
raises :class:`~webverify.exceptions.TransportError`.

Timeouts are owned by the transport; the token and refresh logic impose no
deadline of their own.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from webverify.exceptions import TransportError

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"


@dataclass(frozen=True)
class HttpResponse:
    """Raw status code and body of an HTTP exchange."""

    status_code: int
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:  # noqa: ANN401
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid UTF-8 JSON.
        """
        return json.loads(self.body.decode("utf-8"))


class HttpTransport:
    """Blocking HTTP transport built on :class:`httpx.Client`.

    The underlying client is thread-safe and shared by every exchange, so one
    transport serves concurrent refreshes of different scopes.

    Args:
        timeout: Per-request timeout in seconds.
        client: Pre-configured client (tests pass one with an
            :class:`httpx.MockTransport`).
    """

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.Client] = None) -> None:
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    def post(
        self,
        url: str,
        form: Mapping[str, str],
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        """POST *form* as ``application/x-www-form-urlencoded``."""
        merged = {"Content-Type": FORM_CONTENT_TYPE, "Accept": "application/json"}
        merged.update(headers or {})
        return self._send("POST", url, data=dict(form), headers=merged)

    def get(self, url: str, headers: Optional[Mapping[str, str]] = None) -> HttpResponse:
        return self._send("GET", url, headers=dict(headers or {}))

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _send(self, method: str, url: str, **kwargs: Any) -> HttpResponse:  # noqa: ANN401
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.debug("%s %s failed: %s", method, _redact(url), exc)
            raise TransportError(f"{method} request failed: {exc}") from exc
        logger.debug("%s %s -> %s", method, _redact(url), response.status_code)
        return HttpResponse(status_code=response.status_code, body=response.content)


def _redact(url: str) -> str:
    """Drop the query string, which may carry an access token."""
    return url.split("?", 1)[0]
