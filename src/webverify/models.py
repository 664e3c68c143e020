"""Canonical Pydantic models shared across all webverify modules.

The models fall into three groups:

**Persisted token data** -- serialised into the secure storage blob:
    :class:`ScopeTokenRecord` and :class:`TokenStoreState`.

**Wire payloads** -- parsed from the authorization server:
    :class:`TokenResponse`.

**Configuration and flow vocabulary**:
    :class:`WebVerifyConfig`, :class:`ClientCredentials`, :class:`LoginType`,
    :class:`Connection`, :class:`Affiliation` and :class:`FlowState`.

All models use Pydantic v2. Timestamps are timezone-aware UTC datetimes
truncated to whole seconds, which is the resolution they are persisted at.
"""

from __future__ import annotations

import enum
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _to_utc_seconds(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


# --- Persisted token data ---


class ScopeTokenRecord(BaseModel):
    """The complete token set stored for one scope.

    A record is only ever written as a whole; there is no way to update one
    field in place (the model is frozen).

    Example::

        ScopeTokenRecord(
            access_token="at",
            access_token_expiry=now + timedelta(hours=1),
            refresh_token="rt",
            refresh_token_expiry=now + timedelta(days=30),
        )
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    access_token_expiry: datetime
    refresh_token: str
    refresh_token_expiry: datetime

    @field_validator("access_token_expiry", "refresh_token_expiry")
    @classmethod
    def _normalise_expiry(cls, value: datetime) -> datetime:
        return _to_utc_seconds(value)

    def access_token_expired(self, now: datetime) -> bool:
        """True once *now* has reached the access token expiry."""
        return now >= self.access_token_expiry

    def refresh_token_expired(self, now: datetime) -> bool:
        """True once *now* has reached the refresh token expiry."""
        return now >= self.refresh_token_expiry


class TokenStoreState(BaseModel):
    """Snapshot of every stored scope plus the most recently written one."""

    records: dict[str, ScopeTokenRecord] = Field(default_factory=dict)
    latest_scope: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.records


# --- Wire payloads ---


class TokenResponse(BaseModel):
    """Successful response of the ``oauth/token`` endpoint.

    Both grants (``authorization_code`` and ``refresh_token``) must return all
    four fields; a response missing any of them fails validation.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)
    expires_in: int = Field(description="Access token lifetime in seconds")
    refresh_expires_in: int = Field(description="Refresh token lifetime in seconds")

    def to_record(self, received_at: datetime) -> ScopeTokenRecord:
        """Turn relative lifetimes into absolute expiries measured from *received_at*."""
        return ScopeTokenRecord(
            access_token=self.access_token,
            access_token_expiry=received_at + timedelta(seconds=self.expires_in),
            refresh_token=self.refresh_token,
            refresh_token_expiry=received_at + timedelta(seconds=self.refresh_expires_in),
        )


# --- Configuration ---


DEFAULT_BASE_URL = "https://api.id.me/"


class ClientCredentials(BaseModel):
    """Client registration supplied once through ``WebVerify.initialize``."""

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(min_length=1)
    client_secret: str
    redirect_uri: str = Field(min_length=1)


class WebVerifyConfig(BaseModel):
    """Persistent CLI configuration, stored as ``config.json``.

    ``client_secret_source`` is a credential source descriptor (``env:VAR``,
    ``file:/path`` or ``prompt``) rather than the secret itself, so the file
    can be shared without leaking it.
    """

    base_url: str = Field(default=DEFAULT_BASE_URL)
    client_id: Optional[str] = None
    client_secret_source: Optional[str] = Field(
        default=None, description="Credential source: env:VAR, file:/path, prompt"
    )
    redirect_uri: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    callback_timeout: float = Field(
        default=300.0, gt=0, description="Seconds to wait for the browser redirect"
    )


# --- Flow vocabulary ---


class LoginType(str, enum.Enum):
    """Desired action on the authorization page."""

    SIGN_UP = "signup"
    SIGN_IN = "signin"


class Connection(str, enum.Enum):
    """Third-party accounts a user can connect."""

    FACEBOOK = "facebook"
    GOOGLE_PLUS = "google"
    LINKEDIN = "linkedin"
    PAYPAL = "paypal"


class Affiliation(str, enum.Enum):
    """Group affiliations a user can add to their account."""

    GOVERNMENT = "government"
    MILITARY = "military"
    RESPONDER = "responder"
    STUDENT = "student"
    TEACHER = "teacher"


class FlowState(str, enum.Enum):
    """States of :class:`~webverify.auth.flow.AuthorizationFlowController`."""

    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING_CODE = "exchanging_code"
