"""Database model for activities ingested from Garmin webhooks."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field as ORMField, SQLModel

from ..core.time import utcnow


class AthleteActivity(SQLModel, table=True):
    """One provider activity, hydrated in two phases (summary, then details)."""

    __tablename__ = "athlete_activity"

    id: Optional[int] = ORMField(default=None, primary_key=True)
    athlete_id: str = ORMField(foreign_key="athlete.id", index=True)
    source_activity_id: str = ORMField(index=True, unique=True)
    source: str = "garmin"

    activity_type: Optional[str] = None
    activity_name: Optional[str] = None
    start_time: Optional[datetime] = None
    duration: Optional[float] = None
    distance: Optional[float] = None
    average_speed: Optional[float] = None
    pace: Optional[float] = None
    calories: Optional[float] = None
    average_heart_rate: Optional[float] = None
    max_heart_rate: Optional[float] = None
    elevation_gain: Optional[float] = None
    steps: Optional[int] = None
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    end_latitude: Optional[float] = None
    end_longitude: Optional[float] = None
    summary_polyline: Optional[str] = None
    device_name: Optional[str] = None
    garmin_user_id: Optional[str] = None

    summary_data: Optional[Dict[str, Any]] = ORMField(
        default=None, sa_column=Column(JSON)
    )
    detail_data: Optional[Dict[str, Any]] = ORMField(
        default=None, sa_column=Column(JSON)
    )

    synced_at: datetime = ORMField(default_factory=utcnow)
    hydrated_at: Optional[datetime] = None
    last_updated_at: datetime = ORMField(default_factory=utcnow)


__all__ = ["AthleteActivity"]
