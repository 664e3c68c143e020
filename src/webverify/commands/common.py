"""Client construction and browser-flow plumbing shared by the commands."""

from __future__ import annotations

from concurrent.futures import Future
from typing import Callable, TypeVar

from webverify.auth.redirect_server import LoopbackRedirectListener
from webverify.auth.storage import FileSecureStorage
from webverify.auth.token_store import TokenStore
from webverify.client import WebVerify
from webverify.config import resolve_config
from webverify.exceptions import ConfigError
from webverify.models import WebVerifyConfig
from webverify.output import info

T = TypeVar("T")


def build_client(config: WebVerifyConfig) -> WebVerify:
    """Return an initialized client for *config* using the on-disk token store."""
    return WebVerify.from_config(config, storage=FileSecureStorage())


def open_store() -> TokenStore:
    """Open the on-disk token store without any client configuration."""
    return TokenStore(FileSecureStorage())


def load_settings() -> WebVerifyConfig:
    return resolve_config()


def run_browser_flow(
    client: WebVerify,
    config: WebVerifyConfig,
    start: Callable[[], Future[T]],
) -> T:
    """Serve the redirect URI locally, start a browser flow, and wait for it.

    Args:
        client: Initialized client.
        config: Supplies the redirect URI and the callback timeout.
        start: Starts the flow and returns its ``Future``.

    Returns:
        The flow's result.

    Raises:
        WebVerifyError: Whatever the flow was resolved with; a timeout
            resolves it with ``VerificationCanceledByUser``.
        ConfigError: If the redirect URI is missing or cannot be served
            locally.
    """
    if not config.redirect_uri:
        raise ConfigError("redirect_uri is not configured (run 'webverify configure')")
    listener = LoopbackRedirectListener(
        config.redirect_uri,
        on_redirect=client.handle_redirect,
        on_timeout=client.cancel_flow,
        timeout=config.callback_timeout,
    )
    with listener:
        future = start()
        info("Continue in your browser...")
        return future.result()
