"""Processing of Garmin activity webhooks.

Summaries are matched to an athlete by Garmin user id; details are matched to
an existing activity by its Garmin activity id. Anything that matches nothing
is parked in ``UnmatchedWebhook`` and replayed once the missing link exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..core.time import utcnow
from ..models import Athlete, AthleteActivity, UnmatchedWebhook, WebhookKind
from .activity_mapper import (
    activity_id_of,
    map_activity_details,
    map_activity_summary,
    normalize_webhook_activity,
    user_id_of,
    validate_activity,
)

logger = logging.getLogger(__name__)

DETAIL_SUFFIX = "-detail"

# Raised by the mappers on payload fields of the wrong shape.
MAPPING_ERRORS = (ValueError, TypeError, AttributeError)


@dataclass
class IngestReport:
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)
    skipped: int = 0
    failed: int = 0


def details_activity_id(payload: Dict[str, Any]) -> Optional[str]:
    """Return the activity id an activity-details payload refers to."""

    nested = payload.get("activity") or {}
    value = (
        payload.get("summaryId")
        or payload.get("activityId")
        or payload.get("activitySummaryId")
        or (nested.get("summaryId") if isinstance(nested, dict) else None)
    )
    if value is None:
        return None
    value = str(value)
    if value.endswith(DETAIL_SUFFIX):
        value = value[: -len(DETAIL_SUFFIX)]
    return value


class ActivityIngestionService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self._replay_handlers: Dict[WebhookKind, Callable[[Dict[str, Any]], bool]] = {
            WebhookKind.ACTIVITY: self._replay_summaries,
            WebhookKind.ACTIVITY_DETAILS: self._replay_details,
        }

    # Lookups ----------------------------------------------------------------

    def find_athlete(self, garmin_user_id: str) -> Optional[Athlete]:
        return self.session.exec(
            select(Athlete).where(Athlete.garmin_user_id == garmin_user_id)
        ).first()

    def find_activity(self, source_activity_id: str) -> Optional[AthleteActivity]:
        return self.session.exec(
            select(AthleteActivity).where(
                AthleteActivity.source_activity_id == source_activity_id
            )
        ).first()

    # Summaries --------------------------------------------------------------

    def ingest_summaries(
        self, payload: Dict[str, Any], dead_letter: bool = True
    ) -> IngestReport:
        """Upsert every activity of an ``{"activities": [...]}`` push."""

        report = IngestReport()
        activities = payload.get("activities")
        if not isinstance(activities, list):
            logger.warning("Activity webhook without an activities list: %s", list(payload))
            return report

        logger.info("Garmin activity webhook with %d activities", len(activities))
        for raw in activities:
            if not isinstance(raw, dict):
                report.skipped += 1
                continue

            user_id = user_id_of(raw, payload)
            activity_id = activity_id_of(raw)
            if not user_id or not activity_id:
                logger.warning("Activity without userId/activityId: %s", sorted(raw))
                report.skipped += 1
                continue

            athlete = self.find_athlete(user_id)
            if athlete is None:
                logger.error(
                    "No athlete for Garmin user %s; activity %s not linked",
                    user_id,
                    activity_id,
                )
                report.unmatched.append(activity_id)
                if dead_letter:
                    self._park(
                        WebhookKind.ACTIVITY,
                        user_id,
                        {"userId": user_id, "activities": [raw]},
                    )
                continue

            try:
                record, created = self._upsert_summary(athlete, raw)
            except SQLAlchemyError:
                self.session.rollback()
                logger.exception("Could not save Garmin activity %s", activity_id)
                report.failed += 1
                continue
            except MAPPING_ERRORS:
                self.session.rollback()
                logger.exception("Garmin activity %s is malformed; skipped", activity_id)
                report.failed += 1
                continue

            if record is None:
                report.failed += 1
                continue
            (report.created if created else report.updated).append(activity_id)
            logger.info("Saved Garmin activity %s for athlete %s", activity_id, athlete.id)
            self.replay_for_activity(record.source_activity_id)

        return report

    def _upsert_summary(self, athlete: Athlete, raw: Dict[str, Any]):
        mapped = map_activity_summary(normalize_webhook_activity(raw), athlete.id)
        validation = validate_activity(mapped)
        if not validation.is_valid:
            logger.error(
                "Activity %s failed validation: %s",
                mapped.get("source_activity_id"),
                validation.errors,
            )
            return None, False
        if validation.warnings:
            logger.warning(
                "Activity %s validation warnings: %s",
                mapped["source_activity_id"],
                validation.warnings,
            )

        now = utcnow()
        record = self.find_activity(mapped["source_activity_id"])
        created = record is None
        if created:
            record = AthleteActivity(**mapped, synced_at=now, last_updated_at=now)
        else:
            for name, value in mapped.items():
                setattr(record, name, value)
            record.last_updated_at = now

        athlete.garmin_last_sync_at = now
        self.session.add(record)
        self.session.add(athlete)
        self.session.commit()
        self.session.refresh(record)
        return record, created

    # Details ----------------------------------------------------------------

    def apply_details_batch(self, payload: Dict[str, Any]) -> List[AthleteActivity]:
        """Accept both a single details body and an ``activityDetails`` list."""

        entries = payload.get("activityDetails")
        if not isinstance(entries, list):
            entries = [payload]
        hydrated = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            record = self.apply_details(entry)
            if record is not None:
                hydrated.append(record)
        return hydrated

    def apply_details(
        self, payload: Dict[str, Any], dead_letter: bool = True
    ) -> Optional[AthleteActivity]:
        """Merge detail metrics into the activity the payload refers to."""

        activity_id = details_activity_id(payload)
        if not activity_id:
            logger.error("Activity details payload without summaryId: %s", sorted(payload))
            return None

        record = self.find_activity(activity_id)
        if record is None:
            logger.error(
                "No activity %s for details payload; summary not received yet",
                activity_id,
            )
            if dead_letter:
                self._park(WebhookKind.ACTIVITY_DETAILS, activity_id, payload)
            return None

        try:
            mapped = map_activity_details(payload)
        except MAPPING_ERRORS:
            logger.exception("Details payload for activity %s is malformed", activity_id)
            return None
        if not mapped:
            logger.warning("Details payload for activity %s had no detail data", activity_id)
            return None

        now = utcnow()
        # Reassign so the JSON column is flagged dirty.
        record.detail_data = {**(record.detail_data or {}), **mapped}
        record.hydrated_at = now
        record.last_updated_at = now
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        logger.info("Activity %s hydrated with %s", activity_id, sorted(mapped))
        return record

    # Dead letters -----------------------------------------------------------

    def _park(self, kind: WebhookKind, provider_key: str, payload: Dict[str, Any]) -> None:
        self.session.add(
            UnmatchedWebhook(kind=kind, provider_key=provider_key, payload=payload)
        )
        self.session.commit()
        logger.warning("Parked unmatched %s webhook for %s", kind.value, provider_key)

    def pending(self, kind: WebhookKind, provider_key: str) -> List[UnmatchedWebhook]:
        return list(
            self.session.exec(
                select(UnmatchedWebhook).where(
                    UnmatchedWebhook.kind == kind,
                    UnmatchedWebhook.provider_key == provider_key,
                    UnmatchedWebhook.replayed_at.is_(None),
                )
            ).all()
        )

    def replay_for_user(self, garmin_user_id: str) -> int:
        """Replay parked summaries now that ``garmin_user_id`` maps to an athlete."""

        return self._replay(self.pending(WebhookKind.ACTIVITY, garmin_user_id))

    def replay_for_activity(self, source_activity_id: str) -> int:
        return self._replay(self.pending(WebhookKind.ACTIVITY_DETAILS, source_activity_id))

    def _replay(self, letters: List[UnmatchedWebhook]) -> int:
        replayed = 0
        for letter in letters:
            handler = self._replay_handlers[letter.kind]
            if not handler(letter.payload):
                continue
            letter.replayed_at = utcnow()
            self.session.add(letter)
            self.session.commit()
            replayed += 1
        if replayed:
            logger.info("Replayed %d parked webhook(s)", replayed)
        return replayed

    def _replay_summaries(self, payload: Dict[str, Any]) -> bool:
        report = self.ingest_summaries(payload, dead_letter=False)
        return not report.unmatched and not report.failed

    def _replay_details(self, payload: Dict[str, Any]) -> bool:
        return self.apply_details(payload, dead_letter=False) is not None


__all__ = ["ActivityIngestionService", "IngestReport", "details_activity_id"]
