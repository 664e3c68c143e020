"""Numeric error codes reported by :class:`~webverify.exceptions.WebVerifyError`.

The values are stable across releases so that hosts can persist or forward
them (analytics, crash reports) without depending on exception class names.

Example::

    try:
        verify.get_access_token("student")
    except WebVerifyError as exc:
        if exc.code == ERROR_REFRESH_TOKEN_EXPIRED:
            ...  # start a new verification
"""

ERROR_VERIFICATION_FAILED_TO_FETCH_PROFILE = 1001
"""The user was verified but the profile could not be fetched."""

ERROR_VERIFICATION_DENIED_BY_USER = 1002
"""The user denied access at the end of the authorization flow."""

ERROR_VERIFICATION_CANCELED_BY_USER = 1003
"""The user closed the browser surface before the flow completed."""

ERROR_AUTHENTICATION_FAILED = 1004
"""Authentication failed without the user cancelling."""

ERROR_NO_SUCH_SCOPE = 1005
"""No tokens are stored for the requested scope."""

ERROR_NOT_AUTHORIZED = 1006
"""No valid token, or the API answered 401."""

ERROR_REFRESH_TOKEN_FAILED = 1007
"""The refresh-token exchange failed."""

ERROR_REFRESH_TOKEN_EXPIRED = 1008
"""Both the access token and the refresh token have expired."""

ERROR_NOT_IMPLEMENTED = 1009
"""The requested feature is not available."""

ERROR_INVALID_RESPONSE_TYPE = 1010
"""No usable HTTP response was received."""

ERROR_RANDOMNESS_UNAVAILABLE = 1011
"""The secure random source failed while generating PKCE parameters."""

ERROR_CONFIG = 1100
"""The local configuration is missing or invalid."""
