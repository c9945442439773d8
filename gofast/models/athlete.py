"""Database model for athletes and their Garmin connection."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field as ORMField, SQLModel

from ..core.time import utcnow


class Athlete(SQLModel, table=True):
    """Athlete profile owning the Garmin token record.

    Rows are created by the wider GoFast platform; this service only writes
    the ``garmin_*`` field set.
    """

    id: str = ORMField(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    firebase_id: Optional[str] = ORMField(default=None, index=True, unique=True)
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime = ORMField(default_factory=utcnow)

    garmin_user_id: Optional[str] = ORMField(default=None, index=True)
    garmin_access_token: Optional[str] = None
    garmin_refresh_token: Optional[str] = None
    garmin_expires_in: Optional[int] = None
    garmin_scope: Optional[str] = None
    garmin_connected_at: Optional[datetime] = None
    garmin_last_sync_at: Optional[datetime] = None
    garmin_disconnected_at: Optional[datetime] = None
    garmin_is_connected: bool = False
    garmin_permissions: Optional[Dict[str, Any]] = ORMField(
        default=None, sa_column=Column(JSON)
    )
    garmin_user_profile: Optional[Dict[str, Any]] = ORMField(
        default=None, sa_column=Column(JSON)
    )
    garmin_user_sleep: Optional[Dict[str, Any]] = ORMField(
        default=None, sa_column=Column(JSON)
    )
    garmin_user_preferences: Optional[Dict[str, Any]] = ORMField(
        default=None, sa_column=Column(JSON)
    )


__all__ = ["Athlete"]
