"""Dead-letter storage for webhook payloads that matched no local record."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field as ORMField, SQLModel

from ..core.time import utcnow


class WebhookKind(str, enum.Enum):
    ACTIVITY = "activity"
    ACTIVITY_DETAILS = "activity_details"


class UnmatchedWebhook(SQLModel, table=True):
    """A webhook payload parked until its provider identifier becomes known.

    ``provider_key`` is the Garmin user id for ``ACTIVITY`` payloads and the
    Garmin activity id for ``ACTIVITY_DETAILS`` payloads.
    """

    __tablename__ = "unmatched_webhook"

    id: Optional[int] = ORMField(default=None, primary_key=True)
    kind: WebhookKind = ORMField(index=True)
    provider_key: str = ORMField(index=True)
    payload: Dict[str, Any] = ORMField(default_factory=dict, sa_column=Column(JSON))
    received_at: datetime = ORMField(default_factory=utcnow)
    replayed_at: Optional[datetime] = None


__all__ = ["UnmatchedWebhook", "WebhookKind"]
