"""Access token retrieval with deduplicated refresh.

:class:`TokenRefreshCoordinator` answers "give me a valid access token for
this scope". A cached token that has not expired is returned without any
network traffic. An expired one is refreshed with the stored refresh token,
unless that has expired too.

Refresh tokens are single-use: once the server rotates one, the old value is
dead. Two callers refreshing the same scope at the same time would therefore
race, and the loser would be locked out. The coordinator prevents this by
keeping, per scope, the list of callers waiting on the refresh that is
currently in flight:

* The first caller finds no list, registers one containing its own
  ``Future``, and dispatches the single network exchange.
* Later callers find the list and append their ``Future`` to it; no second
  request is sent.
* A caller arriving after a refresh already finished (its refresh token no
  longer matches the stored one) gets the stored access token right away.
* When the exchange completes, the list is removed under the lock and every
  waiter receives the same token or the same classified error (a separate
  instance per waiter, chained to the original).

The check and the act happen in one critical section of the coordination
lock. The network exchange itself runs on the executor, outside any lock.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future
from datetime import datetime, timezone
from typing import Callable, Optional

from webverify.auth.endpoint import ProviderEndpoints
from webverify.auth.token_store import TokenStore
from webverify.exceptions import (
    AuthenticationFailed,
    NoSuchScope,
    RefreshTokenExpired,
    RefreshTokenFailed,
    WebVerifyError,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenRefreshCoordinator:
    """Serve access tokens per scope, refreshing at most once at a time per scope.

    Args:
        store: Token records.
        endpoints: Server endpoints used for the refresh exchange.
        executor: Runs the refresh exchanges.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        store: TokenStore,
        endpoints: ProviderEndpoints,
        executor: Executor,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._endpoints = endpoints
        self._executor = executor
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: dict[str, list[Future[str]]] = {}

    def get_access_token(self, scope: Optional[str] = None, force_refresh: bool = False) -> str:
        """Return a valid access token for *scope*, refreshing it when needed.

        Args:
            scope: Scope to look up. ``None`` means the most recently written
                scope.
            force_refresh: Refresh even when the cached token is still valid.

        Raises:
            NoSuchScope: Nothing is stored for the resolved scope.
            RefreshTokenExpired: Both tokens have expired.
            RefreshTokenFailed: The refresh exchange failed.
            InvalidResponseType: The refresh request got no response.
        """
        return self.request_access_token(scope, force_refresh).result()

    def request_access_token(
        self, scope: Optional[str] = None, force_refresh: bool = False
    ) -> Future[str]:
        """Non-blocking :meth:`get_access_token`; the ``Future`` carries the outcome."""
        resolved = scope if scope is not None else self._store.latest_scope
        record = self._store.read(resolved) if resolved is not None else None
        if resolved is None or record is None:
            return _failed(NoSuchScope())

        if force_refresh:
            return self.refresh(resolved, record.refresh_token)

        now = self._clock()
        if not record.access_token_expired(now):
            return _succeeded(record.access_token)
        if record.refresh_token_expired(now):
            logger.info("Refresh token for scope %r has expired", resolved)
            return _failed(RefreshTokenExpired())
        return self.refresh(resolved, record.refresh_token)

    def refresh(self, scope: str, refresh_token_used: str) -> Future[str]:
        """Refresh *scope*, joining the in-flight refresh if there is one.

        Args:
            scope: Scope to refresh.
            refresh_token_used: The refresh token the caller read from the
                store. If the store now holds a different one, another caller
                already refreshed and its result is returned without a
                request.

        Returns:
            A ``Future`` resolved with the new access token or with the
            classified error.
        """
        waiter: Future[str] = Future()
        with self._lock:
            waiters = self._pending.get(scope)
            if waiters:
                waiters.append(waiter)
                logger.debug("Joined in-flight refresh for scope %r (%d waiting)", scope, len(waiters))
                return waiter

            current = self._store.read(scope)
            dispatch = current is not None and current.refresh_token == refresh_token_used
            if dispatch:
                self._pending[scope] = [waiter]

        if not dispatch:
            # Rotated by a refresh that already finished, or the scope is gone.
            if current is not None:
                waiter.set_result(current.access_token)
            else:
                waiter.set_exception(AuthenticationFailed())
            return waiter

        logger.info("Refreshing access token for scope %r", scope)
        try:
            self._executor.submit(self._run_refresh, scope, refresh_token_used)
        except RuntimeError as exc:
            # Executor shut down; nobody else will resolve the waiters.
            failure = RefreshTokenFailed()
            failure.__cause__ = exc
            self._deliver(scope, None, failure)
        return waiter

    def pending_waiters(self, scope: str) -> int:
        """Number of callers waiting on the in-flight refresh of *scope*."""
        with self._lock:
            return len(self._pending.get(scope, ()))

    def _run_refresh(self, scope: str, refresh_token: str) -> None:
        token: Optional[str] = None
        failure: Optional[WebVerifyError] = None
        try:
            response = self._endpoints.refresh(refresh_token)
            record = response.to_record(self._clock())
            self._store.write(scope, record)
            token = record.access_token
        except WebVerifyError as exc:
            failure = exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure while refreshing scope %r", scope)
            failure = RefreshTokenFailed()
            failure.__cause__ = exc

        self._deliver(scope, token, failure)

    def _deliver(
        self, scope: str, token: Optional[str], failure: Optional[WebVerifyError]
    ) -> None:
        with self._lock:
            waiters = self._pending.pop(scope, [])

        if failure is None:
            logger.info("Refreshed access token for scope %r (%d waiters)", scope, len(waiters))
        else:
            logger.warning("Refresh for scope %r failed: %s", scope, failure)
        for waiter in waiters:
            if failure is None:
                waiter.set_result(token)
            else:
                waiter.set_exception(_copy_failure(failure))


def _copy_failure(failure: WebVerifyError) -> WebVerifyError:
    """Same class and message, chained to *failure*; one instance per waiter."""
    copy = type(failure)(failure.message)
    copy.__cause__ = failure
    return copy


def _succeeded(value: str) -> Future[str]:
    future: Future[str] = Future()
    future.set_result(value)
    return future


def _failed(exc: BaseException) -> Future[str]:
    future: Future[str] = Future()
    future.set_exception(exc)
    return future
