"""Map transport, HTTP and parse outcomes onto the error taxonomy.

Every network result the core handles goes through one of the functions
below, which either return the typed payload or raise exactly one
:class:`~webverify.exceptions.WebVerifyError`:

=============================  ======================  ===================  ==================================
Situation                      Code exchange           Refresh              Profile
=============================  ======================  ===================  ==================================
no response (TransportError)   AuthenticationFailed    InvalidResponseType  InvalidResponseType
status outside 200-299         AuthenticationFailed    RefreshTokenFailed   401: NotAuthorized, else
                                                                            VerificationFailedToFetchProfile
unparsable / incomplete body   AuthenticationFailed    RefreshTokenFailed   VerificationFailedToFetchProfile
=============================  ======================  ===================  ==================================

Nothing here retries; classification is the last word on a failed exchange.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

from pydantic import ValidationError

from webverify.auth.transport import HttpResponse
from webverify.exceptions import (
    AuthenticationFailed,
    InvalidResponseType,
    NotAuthorized,
    RefreshTokenFailed,
    TransportError,
    VerificationFailedToFetchProfile,
    WebVerifyError,
)
from webverify.models import TokenResponse

logger = logging.getLogger(__name__)


class Grant(str, enum.Enum):
    """OAuth2 grant types sent to the token endpoint."""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"


def _token_failure(grant: Grant) -> WebVerifyError:
    if grant is Grant.AUTHORIZATION_CODE:
        return AuthenticationFailed()
    return RefreshTokenFailed()


def classify_transport_failure(grant: Grant, exc: TransportError) -> WebVerifyError:
    """Classify a token request that produced no response."""
    logger.warning("Token request (%s) got no response: %s", grant.value, exc)
    if grant is Grant.AUTHORIZATION_CODE:
        return AuthenticationFailed()
    return InvalidResponseType()


def interpret_token_response(grant: Grant, response: HttpResponse) -> TokenResponse:
    """Validate a token endpoint response.

    Raises:
        AuthenticationFailed: For any failed code exchange.
        RefreshTokenFailed: For any failed refresh.
    """
    if not response.ok:
        logger.warning("Token endpoint (%s) returned HTTP %s", grant.value, response.status_code)
        raise _token_failure(grant)
    try:
        return TokenResponse.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        logger.warning("Token endpoint (%s) returned an unusable body", grant.value)
        raise _token_failure(grant) from exc


def classify_profile_transport_failure(exc: TransportError) -> WebVerifyError:
    logger.warning("Profile request got no response: %s", exc)
    return InvalidResponseType()


def interpret_profile_response(response: HttpResponse) -> dict[str, Any]:
    """Turn a profile endpoint response into a profile mapping.

    Keys whose value is JSON ``null`` are dropped.

    Raises:
        NotAuthorized: On HTTP 401.
        VerificationFailedToFetchProfile: On any other status, or on a 200
            whose body is empty or not a JSON object.
    """
    if response.status_code == 401:
        raise NotAuthorized()
    if response.status_code != 200 or not response.body:
        logger.warning("Profile endpoint returned HTTP %s", response.status_code)
        raise VerificationFailedToFetchProfile()
    try:
        data = response.json()
    except ValueError as exc:
        raise VerificationFailedToFetchProfile() from exc
    if not isinstance(data, dict):
        raise VerificationFailedToFetchProfile()
    return {key: value for key, value in data.items() if value is not None}
