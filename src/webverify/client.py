"""The :class:`WebVerify` context object.

One :class:`WebVerify` instance owns everything a host needs to verify users:
the token store, the flow controller, the refresh coordinator, the HTTP
transport and a small thread pool for network exchanges. It is constructed
explicitly, initialized once with the client registration, and closed when
the host shuts down::

    with WebVerify(storage=MemorySecureStorage()) as verify:
        verify.initialize("client-id", "secret", "myapp://callback")
        future = verify.verify_user("military")
        # ... the host forwards the redirect:
        verify.handle_redirect("myapp://callback?code=abc")
        token = future.result()

Browser flows (:meth:`~WebVerify.verify_user` and friends,
:meth:`~WebVerify.logout`) return a :class:`~concurrent.futures.Future`
resolved exactly once. Token and profile calls block and raise.

See Also:
    :func:`WebVerify.from_config` to build an initialized instance from the
    CLI configuration.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Optional

from webverify.auth.browser import BrowserPresenter, SystemBrowserPresenter
from webverify.auth.endpoint import ProviderEndpoints
from webverify.auth.flow import AuthorizationFlowController
from webverify.auth.refresh import Clock, TokenRefreshCoordinator, utcnow
from webverify.auth.storage import FileSecureStorage, SecureStorage
from webverify.auth.token_store import TokenStore
from webverify.auth.transport import HttpTransport
from webverify.config import resolve_config, resolve_credential
from webverify.exceptions import AlreadyInitializedError, ConfigError, NotInitializedError
from webverify.models import (
    DEFAULT_BASE_URL,
    Affiliation,
    ClientCredentials,
    Connection,
    FlowState,
    LoginType,
    WebVerifyConfig,
)

logger = logging.getLogger(__name__)


class WebVerify:
    """Browser-based verification client.

    Args:
        base_url: Authorization server root.
        storage: Secure backend for the token store. Defaults to
            :class:`~webverify.auth.storage.FileSecureStorage` under the
            data directory.
        transport: HTTP collaborator. Defaults to a new
            :class:`~webverify.auth.transport.HttpTransport`, closed by
            :meth:`close`.
        presenter: Browser collaborator. Defaults to the system browser.
        clock: Returns the current UTC time.
        max_workers: Threads available for concurrent network exchanges.
        timeout: HTTP timeout in seconds for the default transport.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        storage: Optional[SecureStorage] = None,
        transport: Optional[HttpTransport] = None,
        presenter: Optional[BrowserPresenter] = None,
        clock: Clock = utcnow,
        max_workers: int = 4,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url
        self._store = TokenStore(storage if storage is not None else FileSecureStorage())
        self._owns_transport = transport is None
        self._transport = transport if transport is not None else HttpTransport(timeout=timeout)
        self._presenter = presenter if presenter is not None else SystemBrowserPresenter()
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="webverify")
        self._init_lock = threading.Lock()
        self._endpoints: Optional[ProviderEndpoints] = None
        self._flow: Optional[AuthorizationFlowController] = None
        self._refresher: Optional[TokenRefreshCoordinator] = None

    @classmethod
    def from_config(
        cls,
        config: Optional[WebVerifyConfig] = None,
        **kwargs: Any,
    ) -> WebVerify:
        """Build and initialize an instance from a :class:`WebVerifyConfig`.

        Args:
            config: Configuration to use. Defaults to
                :func:`~webverify.config.resolve_config`.
            **kwargs: Forwarded to the constructor (``storage``,
                ``presenter``, ...).

        Raises:
            ConfigError: If the client ID or redirect URI is missing, or the
                secret source cannot be resolved.
        """
        config = config if config is not None else resolve_config()
        if not config.client_id or not config.redirect_uri:
            raise ConfigError(
                "client_id and redirect_uri must be configured (run 'webverify configure')"
            )
        secret = (
            resolve_credential(config.client_secret_source)
            if config.client_secret_source
            else ""
        )
        kwargs.setdefault("timeout", config.timeout)
        client = cls(base_url=config.base_url, **kwargs)
        client.initialize(config.client_id, secret, config.redirect_uri)
        return client

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def initialize(self, client_id: str, client_secret: str, redirect_uri: str) -> None:
        """Register the client credentials. Must be called exactly once.

        Raises:
            AlreadyInitializedError: On a second call.
        """
        credentials = ClientCredentials(
            client_id=client_id, client_secret=client_secret, redirect_uri=redirect_uri
        )
        with self._init_lock:
            if self._endpoints is not None:
                raise AlreadyInitializedError("WebVerify.initialize() was already called")
            endpoints = ProviderEndpoints(self._base_url, credentials, self._transport)
            self._flow = AuthorizationFlowController(
                endpoints, self._store, self._presenter, self._executor, self._clock
            )
            self._refresher = TokenRefreshCoordinator(
                self._store, endpoints, self._executor, self._clock
            )
            self._endpoints = endpoints
        logger.debug("Initialized for %s", self._base_url)

    @property
    def is_initialized(self) -> bool:
        with self._init_lock:
            return self._endpoints is not None

    def close(self) -> None:
        """Wait for in-flight exchanges, then release threads and connections."""
        self._executor.shutdown(wait=True)
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> WebVerify:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Browser flows
    # ------------------------------------------------------------------ #

    def verify_user(self, scope: str, context: Optional[Any] = None) -> Future[str]:  # noqa: ANN401
        """Verify the user for *scope*; resolves with the access token."""
        return self._require_flow().begin_flow(scope, context)

    def register_or_login(
        self,
        scope: str,
        login_type: LoginType,
        context: Optional[Any] = None,  # noqa: ANN401
    ) -> Future[str]:
        """Open the sign-up or sign-in page for *scope*."""
        extra = {"op": LoginType(login_type).value}
        return self._require_flow().begin_flow(scope, context, extra_params=extra)

    def register_connection(
        self,
        scope: str,
        connection: Connection,
        context: Optional[Any] = None,  # noqa: ANN401
    ) -> Future[str]:
        """Connect a third-party account to the user's account."""
        extra = {"op": LoginType.SIGN_IN.value, "connect": Connection(connection).value}
        return self._require_flow().begin_flow(scope, context, extra_params=extra)

    def register_affiliation(
        self,
        scope: str,
        affiliation: Affiliation,
        context: Optional[Any] = None,  # noqa: ANN401
    ) -> Future[str]:
        """Add a group affiliation.

        The affiliation is requested as the server-side scope; the resulting
        tokens are stored under *scope*.
        """
        return self._require_flow().begin_flow(
            scope, context, provider_scope=Affiliation(affiliation).value
        )

    def logout(self, context: Optional[Any] = None) -> Future[None]:  # noqa: ANN401
        """Forget every stored scope and log out in the browser.

        Raises:
            FlowInProgressError: While an authorization or logout is pending.
        """
        return self._require_flow().begin_logout(context)

    def handle_redirect(self, url: str) -> bool:
        """Forward a URL the host was opened with.

        Returns:
            ``True`` if the URL was a redirect for this client and was
            consumed. Before :meth:`initialize` nothing is registered, so
            every URL is reported as not handled.
        """
        with self._init_lock:
            flow = self._flow
        if flow is None:
            return False
        return flow.handle_redirect(url)

    def cancel_flow(self) -> bool:
        """Report that the user dismissed the browser surface."""
        return self._require_flow().cancel()

    @property
    def flow_state(self) -> FlowState:
        return self._require_flow().state

    # ------------------------------------------------------------------ #
    # Tokens
    # ------------------------------------------------------------------ #

    def get_access_token(self, scope: Optional[str] = None, force_refresh: bool = False) -> str:
        """Return a valid access token, refreshing it when needed.

        Args:
            scope: Scope to use; ``None`` means the most recently stored one.
            force_refresh: Refresh even if the cached token is still valid.

        Raises:
            NoSuchScope: Nothing is stored for the scope.
            RefreshTokenExpired: The user must verify again.
            RefreshTokenFailed: The refresh exchange was rejected.
            InvalidResponseType: The server could not be reached.
        """
        return self._require_refresher().get_access_token(scope, force_refresh)

    def get_user_profile(self, scope: Optional[str] = None) -> dict[str, Any]:
        """Fetch the verified profile for *scope*.

        Raises:
            NotAuthorized: The server rejected the access token.
            VerificationFailedToFetchProfile: The server returned no usable
                profile.
            WebVerifyError: Anything :meth:`get_access_token` raises.
        """
        endpoints = self._require_endpoints()
        return endpoints.fetch_profile(self.get_access_token(scope))

    def is_logged_in(self) -> bool:
        """True when at least one scope has stored tokens."""
        return not self._store.is_empty()

    def scopes(self) -> list[str]:
        return self._store.scopes()

    @property
    def latest_scope(self) -> Optional[str]:
        return self._store.latest_scope

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _require_flow(self) -> AuthorizationFlowController:
        with self._init_lock:
            if self._flow is None:
                raise NotInitializedError("Call WebVerify.initialize() first")
            return self._flow

    def _require_refresher(self) -> TokenRefreshCoordinator:
        with self._init_lock:
            if self._refresher is None:
                raise NotInitializedError("Call WebVerify.initialize() first")
            return self._refresher

    def _require_endpoints(self) -> ProviderEndpoints:
        with self._init_lock:
            if self._endpoints is None:
                raise NotInitializedError("Call WebVerify.initialize() first")
            return self._endpoints
