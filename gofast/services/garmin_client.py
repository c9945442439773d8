"""Garmin Connect OAuth2 and profile API client."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from ..core.config import Settings
from ..core.errors import (
    ExchangeFailed,
    ProfileFetchFailed,
    ProviderError,
    TokenRefreshFailed,
)

logger = logging.getLogger(__name__)


@dataclass
class TokenSet:
    """Token endpoint response."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    provider_user_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "TokenSet":
        user_id = data.get("user_id") or data.get("userId")
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=int(expires_in) if expires_in is not None else None,
            scope=data.get("scope"),
            provider_user_id=str(user_id) if user_id else None,
            raw=data,
        )


def provider_user_id_from_profile(profile: Dict[str, Any]) -> Optional[str]:
    """Return the Garmin user id carried by a user-info or profile body."""

    user_id = profile.get("userId") or profile.get("id")
    return str(user_id) if user_id else None


def parse_profile_snapshots(profile: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Split a user-profile body into the sleep and preference snapshots."""

    user_data = profile.get("userData") or {}
    user_sleep = profile.get("userSleep") or {}
    return {
        "sleep": {
            "sleepTime": user_sleep.get("sleepTime"),
            "defaultSleepTime": user_sleep.get("defaultSleepTime"),
            "wakeTime": user_sleep.get("wakeTime"),
            "defaultWakeTime": user_sleep.get("defaultWakeTime"),
        },
        "preferences": {
            "measurementSystem": user_data.get("measurementSystem"),
            "timeFormat": user_data.get("timeFormat"),
            "intensityMinutesCalcMethod": user_data.get("intensityMinutesCalcMethod"),
            "availableTrainingDays": user_data.get("availableTrainingDays"),
            "preferredLongTrainingDays": user_data.get("preferredLongTrainingDays"),
        },
    }


class GarminClient:
    """Thin async wrapper over the Garmin token and profile endpoints.

    The ``httpx.AsyncClient`` is owned by the caller, which lets the app share
    one connection pool and lets tests plug in a ``MockTransport``.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self.settings = settings
        self.http = http_client

    async def exchange(self, code: str, code_verifier: str) -> TokenSet:
        """Trade an authorization code for tokens.

        Authorization codes are single use, so a failed exchange is never
        retried here.
        """

        logger.info("Exchanging Garmin authorization code for tokens")
        data = await self._post_token(
            {
                "grant_type": "authorization_code",
                "client_id": self.settings.garmin_client_id,
                "client_secret": self.settings.garmin_client_secret,
                "code": code,
                "code_verifier": code_verifier,
                "redirect_uri": self.settings.garmin_redirect_uri,
            },
            ExchangeFailed,
        )
        logger.info("Tokens received from Garmin")
        return TokenSet.from_response(data)

    async def refresh(self, refresh_token: str) -> TokenSet:
        logger.info("Refreshing Garmin access token")
        data = await self._post_token(
            {
                "grant_type": "refresh_token",
                "client_id": self.settings.garmin_client_id,
                "client_secret": self.settings.garmin_client_secret,
                "refresh_token": refresh_token,
            },
            TokenRefreshFailed,
        )
        return TokenSet.from_response(data)

    async def fetch_user_info(self, access_token: str) -> Dict[str, Any]:
        return await self._get_json(self.settings.garmin_user_info_url, access_token)

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        return await self._get_json(self.settings.garmin_profile_url, access_token)

    async def _post_token(
        self, form: Dict[str, str], error_cls: type[ProviderError]
    ) -> Dict[str, Any]:
        url = self.settings.garmin_token_url
        try:
            response = await self.http.post(
                url,
                data=form,
                headers={"Accept": "application/json"},
                timeout=self.settings.http_timeout,
            )
        except httpx.HTTPError as exc:
            logger.error("Garmin token request to %s failed: %s", url, exc)
            raise error_cls(f"Token request failed: {exc}") from exc

        if response.is_error:
            logger.error(
                "Garmin token endpoint returned %s: %s",
                response.status_code,
                response.text,
            )
            raise error_cls(
                f"Token request failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise error_cls(
                "Token endpoint returned invalid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from exc
        if not isinstance(data, dict) or not data.get("access_token"):
            raise error_cls(
                "Token response did not include an access token",
                status_code=response.status_code,
                body=response.text,
            )
        return data

    async def _get_json(self, url: str, access_token: str) -> Dict[str, Any]:
        try:
            response = await self.http.get(
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
                timeout=self.settings.http_timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("Garmin request to %s failed: %s", url, exc)
            raise ProfileFetchFailed(f"Request to {url} failed: {exc}") from exc

        if response.is_error:
            logger.warning(
                "Garmin %s returned %s: %s", url, response.status_code, response.text
            )
            raise ProfileFetchFailed(
                f"HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProfileFetchFailed(
                f"Invalid JSON from {url}",
                status_code=response.status_code,
                body=response.text,
            ) from exc
        if not isinstance(data, dict):
            raise ProfileFetchFailed(f"Unexpected body from {url}", body=response.text)
        return data


__all__ = [
    "GarminClient",
    "TokenSet",
    "parse_profile_snapshots",
    "provider_user_id_from_profile",
]
