"""Browser-based authorization handshake.

:class:`AuthorizationFlowController` runs one authorization (or logout) at a
time through the states::

    IDLE --begin_flow--> AWAITING_REDIRECT --code--> EXCHANGING_CODE --> IDLE
                                   |
                                   +--error / cancel--> IDLE

A flow starts with :meth:`~AuthorizationFlowController.begin_flow`, which
generates the PKCE pair, presents the authorize URL and returns a ``Future``.
The host forwards every incoming URL to
:meth:`~AuthorizationFlowController.handle_redirect`; a redirect carrying
``code`` is exchanged for tokens on the executor, stored, and the access
token is set on the ``Future``. Every other ending (``error``, missing code,
host-reported cancellation, failed exchange) sets exactly one
:class:`~webverify.exceptions.WebVerifyError` on it.

Starting a second flow while one is pending raises
:class:`~webverify.exceptions.FlowInProgressError` immediately and leaves the
first flow untouched. The presented surface is dismissed exactly once per
flow.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import parse_qsl, urlsplit

from webverify.auth.browser import BrowserPresenter
from webverify.auth.endpoint import LOGOUT_MARKER, ProviderEndpoints
from webverify.auth.refresh import Clock, utcnow
from webverify.auth.token_store import TokenStore
from webverify.exceptions import (
    AuthenticationFailed,
    FlowInProgressError,
    RandomnessUnavailable,
    VerificationCanceledByUser,
    VerificationDeniedByUser,
    WebVerifyError,
)
from webverify.models import FlowState
from webverify.pkce import PKCEParams, generate_pkce

logger = logging.getLogger(__name__)

ACCESS_DENIED = "access_denied"


@dataclass
class PendingAuthorization:
    """State of the flow currently waiting for its redirect."""

    pkce: PKCEParams
    scope: str
    future: Future[str]


def parse_redirect_query(url: str) -> dict[str, str]:
    """Decode the query of *url*; for repeated keys the last value wins.

    ``+`` decodes to a space and percent escapes are resolved.
    """
    return dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))


class AuthorizationFlowController:
    """Drive the authorize redirect handshake and the logout redirect.

    Args:
        endpoints: URL builder and token exchange.
        store: Receives the tokens of a successful exchange.
        presenter: Shows and dismisses the browser surface.
        executor: Runs the code exchange off the redirect thread.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        endpoints: ProviderEndpoints,
        store: TokenStore,
        presenter: BrowserPresenter,
        executor: Executor,
        clock: Clock = utcnow,
    ) -> None:
        self._endpoints = endpoints
        self._store = store
        self._presenter = presenter
        self._executor = executor
        self._clock = clock
        self._lock = threading.Lock()
        self._state = FlowState.IDLE
        self._pending: Optional[PendingAuthorization] = None
        self._pending_logout: Optional[Future[None]] = None
        self._presented = False

    @property
    def state(self) -> FlowState:
        with self._lock:
            return self._state

    @property
    def logout_pending(self) -> bool:
        with self._lock:
            return self._pending_logout is not None

    # ------------------------------------------------------------------ #
    # Authorization
    # ------------------------------------------------------------------ #

    def begin_flow(
        self,
        scope: str,
        context: Optional[Any] = None,  # noqa: ANN401
        extra_params: Optional[dict[str, str]] = None,
        provider_scope: Optional[str] = None,
    ) -> Future[str]:
        """Present the authorize URL and return the flow's ``Future``.

        Args:
            scope: Scope the resulting tokens are stored under.
            context: Passed to the presenter.
            extra_params: Additional authorize query parameters (``op``,
                ``connect``).
            provider_scope: Value of the ``scope`` query parameter when it
                differs from *scope* (affiliation flows).

        Returns:
            A ``Future`` resolved with the access token, or with the error
            that ended the flow.

        Raises:
            FlowInProgressError: An authorization or logout is already
                pending.
        """
        with self._lock:
            self._ensure_idle()
            try:
                pkce = generate_pkce()
            except RandomnessUnavailable as exc:
                failed: Future[str] = Future()
                failed.set_exception(exc)
                return failed
            future: Future[str] = Future()
            pending = PendingAuthorization(pkce=pkce, scope=scope, future=future)
            self._pending = pending
            self._state = FlowState.AWAITING_REDIRECT
            self._presented = True

        url = self._endpoints.authorize_url(provider_scope or scope, pkce, extra_params)
        logger.info("Starting authorization for scope %r", scope)
        try:
            self._presenter.present(url, context)
        except Exception:
            with self._lock:
                if self._pending is pending:
                    self._reset()
                    self._presented = False
            raise
        return future

    def handle_redirect(self, url: str) -> bool:
        """Consume a redirect forwarded by the host.

        Returns:
            ``True`` if the URL belonged to this client and was consumed;
            ``False`` if it does not start with the registered redirect URI
            or nothing is waiting for it. ``False`` changes no state.
        """
        if not url.startswith(self._endpoints.credentials.redirect_uri):
            return False
        params = parse_redirect_query(url)

        key, value = LOGOUT_MARKER
        if params.get(key) == value:
            self._complete_logout()
            return True

        with self._lock:
            pending = self._pending
            if pending is None or self._state is not FlowState.AWAITING_REDIRECT:
                logger.debug("Ignoring redirect: no authorization is waiting")
                return False
            code = params.get("code")
            if code:
                self._state = FlowState.EXCHANGING_CODE
            else:
                self._reset()
            presented = self._take_presented()

        # Dismiss before anything can resolve the future and start another flow.
        self._dismiss(presented)
        if code:
            logger.info("Received authorization code for scope %r", pending.scope)
            self._dispatch_exchange(pending, code)
        else:
            failure = _redirect_failure(params)
            logger.warning("Authorization for scope %r ended: %s", pending.scope, failure)
            pending.future.set_exception(failure)
        return True

    def cancel(self) -> bool:
        """Report that the user closed the browser surface.

        Resolves the waiting authorization or logout with
        :class:`~webverify.exceptions.VerificationCanceledByUser`.

        Returns:
            ``True`` if something was waiting for a redirect.
        """
        with self._lock:
            pending = self._pending if self._state is FlowState.AWAITING_REDIRECT else None
            if pending is not None:
                self._reset()
            logout, self._pending_logout = self._pending_logout, None
            if pending is None and logout is None:
                return False
            presented = self._take_presented()

        self._dismiss(presented)
        if pending is not None:
            logger.info("Authorization for scope %r canceled", pending.scope)
            pending.future.set_exception(VerificationCanceledByUser())
        if logout is not None:
            logger.info("Logout canceled")
            logout.set_exception(VerificationCanceledByUser())
        return True

    # ------------------------------------------------------------------ #
    # Logout
    # ------------------------------------------------------------------ #

    def begin_logout(self, context: Optional[Any] = None) -> Future[None]:  # noqa: ANN401
        """Clear every stored scope and present the logout URL.

        Returns:
            A ``Future`` resolved with ``None`` once the ``type=logout``
            redirect arrives.

        Raises:
            FlowInProgressError: An authorization or logout is already
                pending.
        """
        with self._lock:
            self._ensure_idle()
            self._store.clear()
            future: Future[None] = Future()
            self._pending_logout = future
            self._presented = True

        logger.info("Logging out")
        try:
            self._presenter.present(self._endpoints.logout_url(), context)
        except Exception:
            with self._lock:
                if self._pending_logout is future:
                    self._pending_logout = None
                    self._presented = False
            raise
        return future

    def _complete_logout(self) -> None:
        with self._lock:
            future, self._pending_logout = self._pending_logout, None
            if future is None:
                logger.debug("Logout redirect with no logout pending")
                return
            presented = self._take_presented()
        self._dismiss(presented)
        future.set_result(None)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _ensure_idle(self) -> None:
        if self._pending is not None:
            raise FlowInProgressError(
                f"An authorization for scope {self._pending.scope!r} is already in progress"
            )
        if self._pending_logout is not None:
            raise FlowInProgressError("A logout is already in progress")

    def _reset(self) -> None:
        self._pending = None
        self._state = FlowState.IDLE

    def _take_presented(self) -> bool:
        # Caller holds the lock.
        presented, self._presented = self._presented, False
        return presented

    def _dismiss(self, presented: bool) -> None:
        if presented:
            self._presenter.dismiss()

    def _dispatch_exchange(self, pending: PendingAuthorization, code: str) -> None:
        try:
            self._executor.submit(self._exchange, pending, code)
        except RuntimeError as exc:
            failure = AuthenticationFailed()
            failure.__cause__ = exc
            self._finish(pending, None, failure)

    def _exchange(self, pending: PendingAuthorization, code: str) -> None:
        token: Optional[str] = None
        failure: Optional[BaseException] = None
        try:
            response = self._endpoints.exchange_code(code, pending.pkce.code_verifier)
            record = response.to_record(self._clock())
            self._store.write(pending.scope, record)
            token = record.access_token
        except WebVerifyError as exc:
            failure = exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure while exchanging code for scope %r", pending.scope)
            failure = AuthenticationFailed()
            failure.__cause__ = exc
        self._finish(pending, token, failure)

    def _finish(
        self,
        pending: PendingAuthorization,
        token: Optional[str],
        failure: Optional[BaseException],
    ) -> None:
        # IDLE before the result is visible.
        with self._lock:
            if self._pending is pending:
                self._reset()
        if failure is None:
            logger.info("Authorization for scope %r complete", pending.scope)
            pending.future.set_result(token)
        else:
            logger.warning("Code exchange for scope %r failed: %s", pending.scope, failure)
            pending.future.set_exception(failure)


def _redirect_failure(params: dict[str, str]) -> WebVerifyError:
    error = params.get("error")
    if not error:
        return AuthenticationFailed("missing authorization code")
    message = params.get("error_description") or error
    if error == ACCESS_DENIED:
        return VerificationDeniedByUser(message)
    return AuthenticationFailed(message)
