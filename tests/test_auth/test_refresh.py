"""Tests for access token retrieval and deduplicated refresh."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from conftest import FakeAuthServer, FakeClock, form_of, make_record, wait_until
from webverify.auth.endpoint import ProviderEndpoints
from webverify.auth.refresh import TokenRefreshCoordinator
from webverify.auth.token_store import TokenStore
from webverify.exceptions import (
    AuthenticationFailed,
    InvalidResponseType,
    NoSuchScope,
    RefreshTokenExpired,
    RefreshTokenFailed,
)


@pytest.fixture()
def coordinator(
    store: TokenStore,
    endpoints: ProviderEndpoints,
    executor: ThreadPoolExecutor,
    clock: FakeClock,
) -> TokenRefreshCoordinator:
    return TokenRefreshCoordinator(store, endpoints, executor, clock)


class TestCachedToken:
    def test_valid_token_needs_no_network(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        auth_server: FakeAuthServer,
    ) -> None:
        store.write("student", make_record(access="cached"))
        assert coordinator.get_access_token("student") == "cached"
        assert auth_server.requests == []

    def test_defaults_to_latest_scope(
        self, coordinator: TokenRefreshCoordinator, store: TokenStore
    ) -> None:
        store.write("student", make_record(access="old-scope"))
        store.write("military", make_record(access="new-scope"))
        assert coordinator.get_access_token() == "new-scope"

    def test_unknown_scope(self, coordinator: TokenRefreshCoordinator, store: TokenStore) -> None:
        store.write("student", make_record())
        with pytest.raises(NoSuchScope):
            coordinator.get_access_token("teacher")

    def test_empty_store(self, coordinator: TokenRefreshCoordinator) -> None:
        with pytest.raises(NoSuchScope):
            coordinator.get_access_token()


class TestExpiry:
    def test_expired_access_token_is_refreshed(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        auth_server: FakeAuthServer,
        clock: FakeClock,
    ) -> None:
        store.write("student", make_record(access="stale", refresh="rt-0", access_in=60))
        clock.advance(60)

        assert coordinator.get_access_token("student") == "at-1"

        assert len(auth_server.token_requests()) == 1
        assert form_of(auth_server.token_requests()[0])["refresh_token"] == "rt-0"
        record = store.read("student")
        assert record is not None
        assert record.refresh_token == "rt-1"

    def test_refresh_stores_new_expiries(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        clock: FakeClock,
    ) -> None:
        store.write("student", make_record(access_in=10))
        clock.advance(100)
        coordinator.get_access_token("student")

        record = store.read("student")
        assert record is not None
        assert (record.access_token_expiry - clock.now).total_seconds() == 3600
        assert (record.refresh_token_expiry - clock.now).total_seconds() == 86400

    def test_expired_refresh_token(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        auth_server: FakeAuthServer,
        clock: FakeClock,
    ) -> None:
        store.write("student", make_record(access_in=60, refresh_in=120))
        clock.advance(120)

        with pytest.raises(RefreshTokenExpired):
            coordinator.get_access_token("student")
        assert auth_server.requests == []

    def test_force_refresh_valid_token(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        auth_server: FakeAuthServer,
    ) -> None:
        store.write("student", make_record(access="still-good"))
        assert coordinator.get_access_token("student", force_refresh=True) == "at-1"
        assert len(auth_server.token_requests()) == 1


class TestFailures:
    def test_rejected_refresh(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        auth_server: FakeAuthServer,
    ) -> None:
        original = make_record(access="keep")
        store.write("student", original)
        auth_server.token_responses.append(httpx.Response(400, json={"error": "invalid_grant"}))

        with pytest.raises(RefreshTokenFailed):
            coordinator.get_access_token("student", force_refresh=True)
        assert store.read("student") == original
        assert coordinator.pending_waiters("student") == 0

    def test_unreachable_server(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        auth_server: FakeAuthServer,
    ) -> None:
        store.write("student", make_record())
        auth_server.token_responses.append(httpx.ConnectError("refused"))

        with pytest.raises(InvalidResponseType):
            coordinator.get_access_token("student", force_refresh=True)

    def test_failed_refresh_can_be_retried(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        auth_server: FakeAuthServer,
    ) -> None:
        store.write("student", make_record())
        auth_server.token_responses.append(httpx.Response(503))
        with pytest.raises(RefreshTokenFailed):
            coordinator.get_access_token("student", force_refresh=True)

        assert coordinator.get_access_token("student", force_refresh=True) == "at-2"

    def test_executor_shut_down(
        self,
        store: TokenStore,
        endpoints: ProviderEndpoints,
        clock: FakeClock,
    ) -> None:
        pool = ThreadPoolExecutor(max_workers=1)
        pool.shutdown()
        coordinator = TokenRefreshCoordinator(store, endpoints, pool, clock)
        store.write("student", make_record())

        with pytest.raises(RefreshTokenFailed):
            coordinator.get_access_token("student", force_refresh=True)
        assert coordinator.pending_waiters("student") == 0


class TestDeduplication:
    def test_concurrent_callers_share_one_refresh(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        auth_server: FakeAuthServer,
        clock: FakeClock,
    ) -> None:
        store.write("student", make_record(access_in=60))
        clock.advance(61)
        auth_server.gate = threading.Event()
        callers = 8
        results: list[str] = []
        lock = threading.Lock()

        def caller() -> None:
            token = coordinator.get_access_token("student")
            with lock:
                results.append(token)

        threads = [threading.Thread(target=caller) for _ in range(callers)]
        for thread in threads:
            thread.start()
        wait_until(lambda: coordinator.pending_waiters("student") == callers)
        auth_server.gate.set()
        for thread in threads:
            thread.join(timeout=5)

        assert results == ["at-1"] * callers
        assert len(auth_server.token_requests()) == 1
        assert coordinator.pending_waiters("student") == 0

    def test_concurrent_callers_get_own_copy_of_one_failure(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        auth_server: FakeAuthServer,
    ) -> None:
        store.write("student", make_record())
        auth_server.gate = threading.Event()
        auth_server.token_responses.append(httpx.Response(500))

        futures = [coordinator.request_access_token("student", force_refresh=True) for _ in range(5)]
        assert coordinator.pending_waiters("student") == 5
        auth_server.gate.set()

        errors = [future.exception(timeout=5) for future in futures]
        assert all(isinstance(err, RefreshTokenFailed) for err in errors)
        assert len({id(err) for err in errors}) == len(errors)
        assert {err.message for err in errors} == {errors[0].message}
        original = errors[0].__cause__
        assert isinstance(original, RefreshTokenFailed)
        assert all(err.__cause__ is original for err in errors)
        assert len(auth_server.token_requests()) == 1

    def test_scopes_refresh_independently(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        auth_server: FakeAuthServer,
    ) -> None:
        store.write("student", make_record(refresh="rt-s"))
        store.write("military", make_record(refresh="rt-m"))
        auth_server.gate = threading.Event()

        first = coordinator.request_access_token("student", force_refresh=True)
        second = coordinator.request_access_token("military", force_refresh=True)
        wait_until(lambda: len(auth_server.token_requests()) == 2)
        auth_server.gate.set()

        assert {first.result(timeout=5), second.result(timeout=5)} == {"at-1", "at-2"}
        sent = {form_of(r)["refresh_token"] for r in auth_server.token_requests()}
        assert sent == {"rt-s", "rt-m"}

    def test_already_rotated_returns_stored_token(
        self,
        coordinator: TokenRefreshCoordinator,
        store: TokenStore,
        auth_server: FakeAuthServer,
    ) -> None:
        store.write("student", make_record(access="fresh", refresh="rt-new"))

        token = coordinator.refresh("student", "rt-old").result(timeout=5)

        assert token == "fresh"
        assert auth_server.requests == []

    def test_rotated_scope_missing(
        self, coordinator: TokenRefreshCoordinator, auth_server: FakeAuthServer
    ) -> None:
        future = coordinator.refresh("ghost", "rt-old")
        assert isinstance(future.exception(timeout=5), AuthenticationFailed)
        assert auth_server.requests == []
