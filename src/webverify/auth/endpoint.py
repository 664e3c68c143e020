"""Authorization server endpoints: URL building and token/profile requests.

:class:`ProviderEndpoints` knows the server's URL layout relative to a base
URL and performs the three HTTP exchanges the core needs:

1. ``POST {base}/oauth/token`` with ``grant_type=authorization_code``
   (:meth:`~ProviderEndpoints.exchange_code`).
2. ``POST {base}/oauth/token`` with ``grant_type=refresh_token``
   (:meth:`~ProviderEndpoints.refresh`).
3. ``GET {base}/api/public/v2/data.json?access_token=...``
   (:meth:`~ProviderEndpoints.fetch_profile`).

Each call returns the typed payload or raises one classified
:class:`~webverify.exceptions.WebVerifyError`
(see :mod:`webverify.auth.classifier`).
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import urlencode

from webverify.auth.classifier import (
    Grant,
    classify_profile_transport_failure,
    classify_transport_failure,
    interpret_profile_response,
    interpret_token_response,
)
from webverify.auth.transport import HttpTransport
from webverify.exceptions import TransportError
from webverify.models import ClientCredentials, TokenResponse
from webverify.pkce import PKCEParams

AUTHORIZE_PATH = "oauth/authorize"
TOKEN_PATH = "oauth/token"
LOGOUT_PATH = "oauth/logout"
PROFILE_PATH = "api/public/v2/data.json"

API_ORIGIN_HEADER = "X-API-ORIGIN"
API_ORIGIN = "webverify-python"

LOGOUT_MARKER = ("type", "logout")


class ProviderEndpoints:
    """URL layout and HTTP exchanges of the authorization server.

    Args:
        base_url: Server root, e.g. ``https://api.id.me/``.
        credentials: Client registration used in every request.
        transport: HTTP collaborator.
    """

    def __init__(
        self,
        base_url: str,
        credentials: ClientCredentials,
        transport: HttpTransport,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._transport = transport

    @property
    def credentials(self) -> ClientCredentials:
        return self._credentials

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path}"

    # ------------------------------------------------------------------ #
    # Browser URLs
    # ------------------------------------------------------------------ #

    def authorize_url(
        self,
        scope: str,
        pkce: PKCEParams,
        extra_params: Optional[dict[str, str]] = None,
    ) -> str:
        """Build the authorize URL for one flow.

        Parameter order: ``client_id``, ``redirect_uri``, ``response_type``,
        ``scope``, any *extra_params* (``op``, ``connect``), then the PKCE
        ``code_challenge`` and ``code_challenge_method``.
        """
        params: dict[str, str] = {
            "client_id": self._credentials.client_id,
            "redirect_uri": self._credentials.redirect_uri,
            "response_type": "code",
            "scope": scope,
        }
        params.update(extra_params or {})
        params["code_challenge"] = pkce.code_challenge
        params["code_challenge_method"] = pkce.code_challenge_method
        return f"{self.url(AUTHORIZE_PATH)}?{urlencode(params)}"

    def logout_url(self) -> str:
        """Build the logout URL; the server redirects back with ``?type=logout``."""
        key, value = LOGOUT_MARKER
        params = {
            "client_id": self._credentials.client_id,
            "redirect_uri": f"{self._credentials.redirect_uri}?{key}={value}",
        }
        return f"{self.url(LOGOUT_PATH)}?{urlencode(params)}"

    # ------------------------------------------------------------------ #
    # Token endpoint
    # ------------------------------------------------------------------ #

    def exchange_code(self, code: str, code_verifier: str) -> TokenResponse:
        """Redeem an authorization code (``grant_type=authorization_code``)."""
        form = {
            "client_id": self._credentials.client_id,
            "client_secret": self._credentials.client_secret,
            "redirect_uri": self._credentials.redirect_uri,
            "code": code,
            "grant_type": Grant.AUTHORIZATION_CODE.value,
            "code_verifier": code_verifier,
        }
        return self._token_request(Grant.AUTHORIZATION_CODE, form)

    def refresh(self, refresh_token: str) -> TokenResponse:
        """Mint a new token set from *refresh_token* (``grant_type=refresh_token``)."""
        form = {
            "client_id": self._credentials.client_id,
            "client_secret": self._credentials.client_secret,
            "redirect_uri": self._credentials.redirect_uri,
            "refresh_token": refresh_token,
            "grant_type": Grant.REFRESH_TOKEN.value,
        }
        return self._token_request(Grant.REFRESH_TOKEN, form)

    def _token_request(self, grant: Grant, form: dict[str, str]) -> TokenResponse:
        try:
            response = self._transport.post(self.url(TOKEN_PATH), form)
        except TransportError as exc:
            raise classify_transport_failure(grant, exc) from exc
        return interpret_token_response(grant, response)

    # ------------------------------------------------------------------ #
    # Profile
    # ------------------------------------------------------------------ #

    def fetch_profile(self, access_token: str) -> dict[str, Any]:
        """Fetch the verified user's profile with *access_token*."""
        url = f"{self.url(PROFILE_PATH)}?{urlencode({'access_token': access_token})}"
        try:
            response = self._transport.get(url, headers={API_ORIGIN_HEADER: API_ORIGIN})
        except TransportError as exc:
            raise classify_profile_transport_failure(exc) from exc
        return interpret_profile_response(response)
