"""PKCE (Proof Key for Code Exchange, :rfc:`7636`) helpers.

A random *code verifier* is generated at the start of every authorization
flow; its S256 *code challenge* goes into the authorize URL and the verifier
itself is sent with the code exchange, proving that the party redeeming the
code is the one that started the flow.

Verifiers are produced from ``size`` random bytes encoded as unpadded
base64url, so 64 bytes give an 86-character verifier (inside the 43-128 range
the RFC allows).

This module performs **no logging** of verifiers or challenges.
"""

from __future__ import annotations

import base64
import hashlib
import os
from dataclasses import dataclass
from typing import Final

from webverify.exceptions import RandomnessUnavailable

CODE_VERIFIER_SIZE: Final[int] = 64
CODE_CHALLENGE_METHOD: Final[str] = "S256"


def encode_base64url(data: bytes) -> str:
    """Base64url-encode *data* without ``=`` padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier(size: int = CODE_VERIFIER_SIZE) -> str:
    """Generate a code verifier from *size* cryptographically secure random bytes.

    Args:
        size: Number of random bytes (default 64). Must be at least 1.

    Returns:
        The unpadded base64url encoding of the random bytes.

    Raises:
        ValueError: If *size* is smaller than 1.
        RandomnessUnavailable: If the operating system's secure random
            source fails.
    """
    if size < 1:
        raise ValueError("code verifier size must be at least 1 byte")
    try:
        raw = os.urandom(size)
    except (OSError, NotImplementedError) as exc:
        raise RandomnessUnavailable() from exc
    return encode_base64url(raw)


def code_challenge(verifier: str) -> str:
    """Compute the S256 challenge: base64url(SHA-256(UTF-8 verifier)), unpadded."""
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return encode_base64url(digest)


@dataclass(frozen=True)
class PKCEParams:
    """A verifier together with its derived challenge."""

    code_verifier: str
    code_challenge: str
    code_challenge_method: str = CODE_CHALLENGE_METHOD


def generate_pkce(size: int = CODE_VERIFIER_SIZE) -> PKCEParams:
    """Generate a fresh :class:`PKCEParams` for one authorization flow."""
    verifier = generate_code_verifier(size)
    return PKCEParams(code_verifier=verifier, code_challenge=code_challenge(verifier))
