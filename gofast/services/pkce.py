"""PKCE parameters and the Garmin authorization URL."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

from authlib.common.security import generate_token
from authlib.oauth2.rfc7636 import create_s256_code_challenge

# RFC 7636 allows 43-128 characters.
CODE_VERIFIER_LENGTH = 64


@dataclass(frozen=True)
class PKCEPair:
    code_verifier: str
    code_challenge: str
    state: str


def generate_pkce() -> PKCEPair:
    """Create a fresh verifier, its S256 challenge and an unrelated state token."""

    code_verifier = generate_token(CODE_VERIFIER_LENGTH)
    return PKCEPair(
        code_verifier=code_verifier,
        code_challenge=create_s256_code_challenge(code_verifier),
        state=secrets.token_hex(16),
    )


def build_authorization_url(
    base_url: str, client_id: str, code_challenge: str, state: str
) -> str:
    """Compose the provider authorize URL for an authorization-code + PKCE flow."""

    if not client_id:
        raise ValueError("client_id is required")
    if not code_challenge:
        raise ValueError("code_challenge is required")
    if not state:
        raise ValueError("state is required")

    params = {
        "client_id": client_id,
        "response_type": "code",
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "state": state,
    }
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode(params)}"


__all__ = ["CODE_VERIFIER_LENGTH", "PKCEPair", "build_authorization_url", "generate_pkce"]
