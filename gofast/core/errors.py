"""Domain errors raised by the Garmin integration.

Every error carries a stable ``code`` string. Route handlers use it as the
``message`` query parameter on callback redirects and as the ``error`` field
of JSON responses, so the frontend can branch on it.
"""

from __future__ import annotations

from typing import Optional


class IntegrationError(Exception):
    """Base class for Garmin integration failures."""

    code = "integration_error"


class MissingParameters(IntegrationError):
    code = "missing_parameters"


class VerifierExpiredOrMissing(IntegrationError):
    """No PKCE verifier is stored for the athlete; the flow must restart."""

    code = "code_verifier_expired"

    def __init__(self, athlete_id: str) -> None:
        super().__init__(f"No code verifier stored for athlete {athlete_id}")
        self.athlete_id = athlete_id


class ProviderError(IntegrationError):
    """A Garmin endpoint answered with an error or could not be reached."""

    def __init__(
        self, message: str, status_code: Optional[int] = None, body: str = ""
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ExchangeFailed(ProviderError):
    code = "token_exchange_failed"


class TokenRefreshFailed(ProviderError):
    code = "token_refresh_failed"


class ProfileFetchFailed(ProviderError):
    code = "profile_fetch_failed"


class PersistenceFailed(IntegrationError):
    code = "token_save_failed"


class AthleteNotFound(IntegrationError):
    code = "athlete_not_found"

    def __init__(self, athlete_id: str) -> None:
        super().__init__(f"Athlete not found: {athlete_id}")
        self.athlete_id = athlete_id


__all__ = [
    "AthleteNotFound",
    "ExchangeFailed",
    "IntegrationError",
    "MissingParameters",
    "PersistenceFailed",
    "ProfileFetchFailed",
    "ProviderError",
    "TokenRefreshFailed",
    "VerifierExpiredOrMissing",
]
