"""Exception hierarchy for webverify.

Runtime failures inherit from :class:`WebVerifyError`, which carries a
numeric ``code`` from :mod:`webverify.error_codes` and an ``exit_code`` from
:mod:`webverify.exit_codes`. These are delivered to the caller (raised, or set
on the flow's :class:`~concurrent.futures.Future`) and are never retried
silently.

Subclass hierarchy::

    WebVerifyError
    +-- VerificationFailedToFetchProfile   (1001)
    +-- VerificationDeniedByUser           (1002)
    +-- VerificationCanceledByUser         (1003)
    +-- AuthenticationFailed               (1004)
    +-- NoSuchScope                        (1005)
    +-- NotAuthorized                      (1006)
    +-- RefreshTokenFailed                 (1007)
    +-- RefreshTokenExpired                (1008)
    +-- NotImplementedError_               (1009)
    +-- InvalidResponseType                (1010)
    +-- RandomnessUnavailable              (1011)
    +-- ConfigError                        (1100)

Misuse of the API contract is a programming error, not a runtime outcome, and
is reported through a separate :class:`UsageError` branch derived from
:class:`AssertionError`::

    UsageError
    +-- AlreadyInitializedError
    +-- NotInitializedError
    +-- FlowInProgressError
"""

from __future__ import annotations

from webverify.error_codes import (
    ERROR_AUTHENTICATION_FAILED,
    ERROR_CONFIG,
    ERROR_INVALID_RESPONSE_TYPE,
    ERROR_NO_SUCH_SCOPE,
    ERROR_NOT_AUTHORIZED,
    ERROR_NOT_IMPLEMENTED,
    ERROR_RANDOMNESS_UNAVAILABLE,
    ERROR_REFRESH_TOKEN_EXPIRED,
    ERROR_REFRESH_TOKEN_FAILED,
    ERROR_VERIFICATION_CANCELED_BY_USER,
    ERROR_VERIFICATION_DENIED_BY_USER,
    ERROR_VERIFICATION_FAILED_TO_FETCH_PROFILE,
)
from webverify.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_REAUTH_REQUIRED,
)


class WebVerifyError(Exception):
    """Base exception for every runtime failure reported by webverify.

    Subclasses set a class-level ``code``, ``exit_code`` and
    ``default_message``. The message may be overridden per instance, e.g.
    with the ``error_description`` returned by the authorization server.

    Args:
        message: Human-readable description. Defaults to the class message.
    """

    code: int = 0
    exit_code: int = EXIT_GENERIC_FAILURE
    default_message: str = "webverify error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def to_payload(self) -> dict[str, object]:
        """Return a JSON-serialisable description **without secrets**."""
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
        }


class VerificationFailedToFetchProfile(WebVerifyError):
    """Raised when the profile endpoint does not return a usable profile."""

    code = ERROR_VERIFICATION_FAILED_TO_FETCH_PROFILE
    exit_code = EXIT_CONNECTION_ERROR
    default_message = "Failed to fetch the user profile."


class VerificationDeniedByUser(WebVerifyError):
    """Raised when the user denies access (``error=access_denied``)."""

    code = ERROR_VERIFICATION_DENIED_BY_USER
    exit_code = EXIT_AUTH_FAILURE
    default_message = "The user denied access."


class VerificationCanceledByUser(WebVerifyError):
    """Raised when the browser surface is closed before a redirect arrives."""

    code = ERROR_VERIFICATION_CANCELED_BY_USER
    exit_code = EXIT_CANCELED
    default_message = "The user exited the browser before being verified."


class AuthenticationFailed(WebVerifyError):
    code = ERROR_AUTHENTICATION_FAILED
    exit_code = EXIT_AUTH_FAILURE
    default_message = "Authorization process failed."


class NoSuchScope(WebVerifyError):
    code = ERROR_NO_SUCH_SCOPE
    exit_code = EXIT_REAUTH_REQUIRED
    default_message = "No tokens are stored for the requested scope."


class NotAuthorized(WebVerifyError):
    code = ERROR_NOT_AUTHORIZED
    exit_code = EXIT_AUTH_FAILURE
    default_message = "Not authorized."


class RefreshTokenFailed(WebVerifyError):
    code = ERROR_REFRESH_TOKEN_FAILED
    exit_code = EXIT_AUTH_FAILURE
    default_message = "Refreshing the access token failed."


class RefreshTokenExpired(WebVerifyError):
    code = ERROR_REFRESH_TOKEN_EXPIRED
    exit_code = EXIT_REAUTH_REQUIRED
    default_message = "The refresh token has expired."


class NotImplementedError_(WebVerifyError):
    """Raised for features the server or client does not support.

    Named with a trailing underscore to avoid shadowing the built-in
    ``NotImplementedError``.
    """

    code = ERROR_NOT_IMPLEMENTED
    default_message = "Not implemented."


class InvalidResponseType(WebVerifyError):
    """Raised when no usable HTTP response was received (network-level failure)."""

    code = ERROR_INVALID_RESPONSE_TYPE
    exit_code = EXIT_CONNECTION_ERROR
    default_message = "Invalid or missing response from the server."


class RandomnessUnavailable(WebVerifyError):
    code = ERROR_RANDOMNESS_UNAVAILABLE
    default_message = "The secure random source is unavailable."


class ConfigError(WebVerifyError):
    """Raised for configuration problems (invalid config file, bad credential sources)."""

    code = ERROR_CONFIG
    exit_code = EXIT_INVALID_USAGE
    default_message = "Invalid configuration."


# --- Transport ---


class TransportError(Exception):
    """Raised by the HTTP collaborator when no response could be obtained.

    Never escapes the core: the classifier in :mod:`webverify.auth.classifier`
    maps it onto the :class:`WebVerifyError` taxonomy.
    """


# --- API misuse ---


class UsageError(AssertionError):
    """Base class for violations of the API contract.

    These indicate a bug in the host application and are raised immediately
    rather than delivered through a flow's ``Future``.
    """


class AlreadyInitializedError(UsageError):
    """Raised when :meth:`~webverify.client.WebVerify.initialize` is called twice."""


class NotInitializedError(UsageError):
    """Raised when an operation runs before :meth:`~webverify.client.WebVerify.initialize`."""


class FlowInProgressError(UsageError):
    """Raised when a browser flow starts while another one is still pending."""
