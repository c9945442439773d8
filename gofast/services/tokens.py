"""Persisting Garmin tokens onto the athlete record."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..core.errors import (
    AthleteNotFound,
    PersistenceFailed,
    ProfileFetchFailed,
    TokenRefreshFailed,
)
from ..core.time import utcnow
from ..models import Athlete
from .garmin_client import (
    GarminClient,
    TokenSet,
    parse_profile_snapshots,
    provider_user_id_from_profile,
)
from .ingestion import ActivityIngestionService

logger = logging.getLogger(__name__)

READ_SCOPES = {"CONNECT_READ", "PARTNER_READ"}
WRITE_SCOPES = {"CONNECT_WRITE", "PARTNER_WRITE"}


@dataclass
class SaveResult:
    success: bool
    athlete_id: str
    provider_user_id: Optional[str]


def derive_permissions(scope: Optional[str], now: datetime) -> Dict[str, Any]:
    """Summarise a Garmin scope string into the stored permissions blob."""

    scope = scope or ""
    return {
        "read": "READ" in scope,
        "write": "WRITE" in scope,
        "scope": scope or None,
        "grantedAt": now.isoformat(),
        "lastChecked": now.isoformat(),
    }


def parse_scopes(scope: Optional[str]) -> Dict[str, bool]:
    granted = set((scope or "").split())
    return {
        "activities": bool(granted & READ_SCOPES),
        "training": bool(granted & WRITE_SCOPES),
    }


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class GarminTokenService:
    """Owns every write to an athlete's ``garmin_*`` fields.

    Each operation updates only the columns it owns, so a token refresh and a
    webhook touching ``garmin_last_sync_at`` never clobber each other.
    ``client`` is only needed by :meth:`save` and :meth:`refresh`.
    """

    def __init__(
        self,
        session: Session,
        client: Optional[GarminClient] = None,
        ingestion: Optional[ActivityIngestionService] = None,
    ) -> None:
        self.session = session
        self.client = client
        self.ingestion = ingestion or ActivityIngestionService(session)

    def _get_athlete(self, athlete_id: str) -> Athlete:
        athlete = self.session.get(Athlete, athlete_id)
        if athlete is None:
            raise AthleteNotFound(athlete_id)
        return athlete

    def _commit(self, athlete: Athlete) -> None:
        try:
            self.session.add(athlete)
            self.session.commit()
            self.session.refresh(athlete)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceFailed(f"Database write failed: {exc}") from exc

    async def save(self, athlete_id: str, tokens: TokenSet) -> SaveResult:
        """Store a fresh token pair and resolve the Garmin user id.

        Tokens are committed before any profile request, so the athlete stays
        connected even if the user id cannot be resolved.
        """

        logger.info("Saving Garmin tokens for athlete %s", athlete_id)
        try:
            athlete = self._get_athlete(athlete_id)
        except AthleteNotFound as exc:
            raise PersistenceFailed(str(exc)) from exc
        except SQLAlchemyError as exc:
            raise PersistenceFailed(f"Database read failed: {exc}") from exc

        now = utcnow()
        athlete.garmin_access_token = tokens.access_token
        athlete.garmin_refresh_token = tokens.refresh_token
        athlete.garmin_expires_in = tokens.expires_in
        athlete.garmin_scope = tokens.scope
        athlete.garmin_connected_at = now
        athlete.garmin_last_sync_at = now
        athlete.garmin_disconnected_at = None
        athlete.garmin_is_connected = True
        athlete.garmin_permissions = derive_permissions(tokens.scope, now)
        # Full overwrite: an id from a previous connection must not survive.
        athlete.garmin_user_id = tokens.provider_user_id
        athlete.garmin_user_profile = None
        athlete.garmin_user_sleep = None
        athlete.garmin_user_preferences = None
        self._commit(athlete)
        logger.info("Tokens saved for athlete %s", athlete_id)

        await self._resolve_from_user_info(athlete, tokens.access_token)
        if not tokens.provider_user_id:
            await self._resolve_from_profile(athlete, tokens.access_token)

        try:
            saved_user_id = self.session.exec(
                select(Athlete.garmin_user_id).where(Athlete.id == athlete_id)
            ).first()
        except SQLAlchemyError as exc:
            raise PersistenceFailed(f"Database read failed: {exc}") from exc

        if not saved_user_id:
            logger.critical(
                "garmin_user_id was NOT saved for athlete %s; webhooks for this "
                "athlete cannot be matched",
                athlete_id,
            )
        else:
            logger.info(
                "Verified garmin_user_id %s for athlete %s", saved_user_id, athlete_id
            )
            self._replay_parked(saved_user_id)

        return SaveResult(success=True, athlete_id=athlete_id, provider_user_id=saved_user_id)

    async def _resolve_from_user_info(self, athlete: Athlete, access_token: str) -> None:
        try:
            user_info = await self.client.fetch_user_info(access_token)
        except ProfileFetchFailed as exc:
            logger.warning("Could not fetch Garmin user info for athlete %s: %s", athlete.id, exc)
            return

        user_id = provider_user_id_from_profile(user_info)
        if not user_id:
            logger.warning("Garmin user info for athlete %s has no userId", athlete.id)
            return

        athlete.garmin_user_id = user_id
        athlete.garmin_user_profile = user_info
        athlete.garmin_last_sync_at = utcnow()
        self._commit(athlete)
        logger.info("Garmin user id %s saved from user info", user_id)

    async def _resolve_from_profile(self, athlete: Athlete, access_token: str) -> None:
        logger.info("Token response had no user id; fetching profile for athlete %s", athlete.id)
        try:
            profile = await self.client.fetch_profile(access_token)
        except ProfileFetchFailed as exc:
            logger.warning("Could not fetch Garmin profile for athlete %s: %s", athlete.id, exc)
            return

        snapshots = parse_profile_snapshots(profile)
        athlete.garmin_user_sleep = snapshots["sleep"]
        athlete.garmin_user_preferences = snapshots["preferences"]
        athlete.garmin_last_sync_at = utcnow()
        user_id = provider_user_id_from_profile(profile)
        if user_id:
            athlete.garmin_user_id = user_id
        else:
            logger.warning("Garmin profile for athlete %s has no user id", athlete.id)
        self._commit(athlete)

    def _replay_parked(self, garmin_user_id: str) -> None:
        # Tokens are committed by now; replay failures are logged only.
        try:
            self.ingestion.replay_for_user(garmin_user_id)
        except Exception:
            self.session.rollback()
            logger.exception("Replaying parked webhooks for %s failed", garmin_user_id)

    async def refresh(self, athlete_id: str) -> TokenSet:
        athlete = self._get_athlete(athlete_id)
        if not athlete.garmin_refresh_token:
            raise TokenRefreshFailed(f"Athlete {athlete_id} has no Garmin refresh token")

        tokens = await self.client.refresh(athlete.garmin_refresh_token)
        athlete.garmin_access_token = tokens.access_token
        if tokens.refresh_token:
            athlete.garmin_refresh_token = tokens.refresh_token
        athlete.garmin_expires_in = tokens.expires_in
        if tokens.scope:
            athlete.garmin_scope = tokens.scope
        athlete.garmin_last_sync_at = utcnow()
        self._commit(athlete)
        logger.info("Garmin tokens refreshed for athlete %s", athlete_id)
        return tokens

    def disconnect(self, athlete_id: str) -> Athlete:
        """Mark the connection inactive; tokens stay until overwritten."""

        athlete = self._get_athlete(athlete_id)
        athlete.garmin_is_connected = False
        athlete.garmin_disconnected_at = utcnow()
        self._commit(athlete)
        logger.info("Garmin disconnected for athlete %s", athlete_id)
        return athlete

    def deregister(self, garmin_user_id: str) -> int:
        """Handle a provider-side deregistration by wiping the token fields."""

        athletes = self.session.exec(
            select(Athlete).where(Athlete.garmin_user_id == garmin_user_id)
        ).all()
        if not athletes:
            logger.warning("No athlete found for deregistered Garmin user %s", garmin_user_id)
            return 0

        now = utcnow()
        for athlete in athletes:
            athlete.garmin_access_token = None
            athlete.garmin_refresh_token = None
            athlete.garmin_expires_in = None
            athlete.garmin_scope = None
            athlete.garmin_permissions = None
            athlete.garmin_is_connected = False
            athlete.garmin_disconnected_at = now
            self.session.add(athlete)
        self.session.commit()
        logger.info("Garmin tokens wiped for %d athlete(s), user %s", len(athletes), garmin_user_id)
        return len(athletes)

    def status(self, athlete_id: str) -> Dict[str, Any]:
        athlete = self._get_athlete(athlete_id)
        return {
            "connected": bool(athlete.garmin_is_connected and athlete.garmin_access_token),
            "scopes": parse_scopes(athlete.garmin_scope),
            "permissions": athlete.garmin_permissions or {},
            "lastSyncedAt": _isoformat(athlete.garmin_last_sync_at),
            "connectedAt": _isoformat(athlete.garmin_connected_at),
            "disconnectedAt": _isoformat(athlete.garmin_disconnected_at),
            "garminUserId": athlete.garmin_user_id,
        }


__all__ = [
    "GarminTokenService",
    "SaveResult",
    "derive_permissions",
    "parse_scopes",
]
