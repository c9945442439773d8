"""Mapping Garmin activity push payloads onto ``AthleteActivity`` columns."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..core.time import utcnow

METERS_PER_SECOND_TO_MIN_PER_MILE = 26.8224

# Garmin push payloads and the Connect API disagree on field names.
_FIELD_ALIASES = {
    "averageSpeed": "averageSpeedInMetersPerSecond",
    "calories": "activeKilocalories",
    "averageHeartRate": "averageHeartRateInBeatsPerMinute",
    "maxHeartRate": "maxHeartRateInBeatsPerMinute",
    "elevationGain": "totalElevationGainInMeters",
}

_DETAIL_PASSTHROUGH = {
    "lapSummaries": "lapSummaries",
    "splitSummaries": "splitSummaries",
    "timeInHeartRateZones": "heartRateZones",
    "samples": "samples",
}


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def activity_id_of(activity: Dict[str, Any]) -> Optional[str]:
    value = (
        activity.get("activityId")
        or activity.get("summaryId")
        or activity.get("activitySummaryId")
    )
    return str(value) if value is not None else None


def user_id_of(activity: Dict[str, Any], payload: Dict[str, Any]) -> Optional[str]:
    value = (
        activity.get("userId")
        or activity.get("user_id")
        or activity.get("userIdString")
        or activity.get("garminUserId")
        or payload.get("userId")
    )
    return str(value) if value is not None else None


def normalize_webhook_activity(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Fold push-format field names into the shape the mapper reads."""

    activity = dict(raw)
    if isinstance(activity.get("activityType"), str):
        activity["activityType"] = {"typeKey": activity["activityType"]}
    if not activity.get("startTimeLocal") and activity.get("startTimeInSeconds"):
        activity["startTimeLocal"] = datetime.fromtimestamp(
            int(activity["startTimeInSeconds"]), tz=timezone.utc
        ).isoformat()
    for name, alias in _FIELD_ALIASES.items():
        if activity.get(name) is None and activity.get(alias) is not None:
            activity[name] = activity[alias]
    return activity


def calculate_pace(average_speed: Optional[float]) -> Optional[float]:
    """Convert metres per second into minutes per mile."""

    if not average_speed or average_speed <= 0:
        return None
    return round(METERS_PER_SECOND_TO_MIN_PER_MILE / average_speed, 2)


def _parse_start_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _summary_extras(activity: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    extras: Dict[str, Any] = {}
    activity_type = activity.get("activityType") or {}
    if activity_type.get("parentTypeId"):
        extras["activityCategory"] = activity_type["parentTypeId"]
    for key in ("deviceMetaData", "activityDescription", "eventType", "activityLevel"):
        if activity.get(key):
            extras[key] = activity[key]
    return extras or None


def map_activity_summary(activity: Dict[str, Any], athlete_id: str) -> Dict[str, Any]:
    """Map a normalized summary payload to ``AthleteActivity`` column values."""

    activity_type = activity.get("activityType") or {}
    device = activity.get("deviceMetaData") or {}
    average_speed = activity.get("averageSpeed")
    user_id = activity.get("userId")
    return {
        "athlete_id": athlete_id,
        "source_activity_id": activity_id_of(activity),
        "source": "garmin",
        "activity_type": activity_type.get("typeKey"),
        "activity_name": activity.get("activityName"),
        "start_time": _parse_start_time(activity.get("startTimeLocal")),
        "duration": activity.get("durationInSeconds"),
        "distance": activity.get("distanceInMeters"),
        "average_speed": average_speed,
        "pace": calculate_pace(average_speed),
        "calories": activity.get("calories"),
        "average_heart_rate": activity.get("averageHeartRate"),
        "max_heart_rate": activity.get("maxHeartRate"),
        "elevation_gain": activity.get("elevationGain"),
        "steps": activity.get("steps"),
        "start_latitude": activity.get("startLatitude")
        or activity.get("startingLatitudeInDegree"),
        "start_longitude": activity.get("startLongitude")
        or activity.get("startingLongitudeInDegree"),
        "end_latitude": activity.get("endLatitude"),
        "end_longitude": activity.get("endLongitude"),
        "summary_polyline": activity.get("summaryPolyline"),
        "device_name": device.get("deviceName") or activity.get("deviceName"),
        "garmin_user_id": str(user_id) if user_id is not None else None,
        "summary_data": _summary_extras(activity),
    }


def map_activity_details(details: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Extract the deep metrics of an activity-details payload.

    Returns ``None`` when the payload carries nothing worth storing.
    """

    mapped: Dict[str, Any] = {}
    for source, target in _DETAIL_PASSTHROUGH.items():
        if details.get(source):
            mapped[target] = details[source]

    average_cadence = details.get("averageRunCadence") or details.get("averageCadence")
    if average_cadence:
        mapped["cadence"] = {
            "average": average_cadence,
            "max": details.get("maxRunCadence") or details.get("maxCadence"),
        }
    if details.get("averagePower") or details.get("maxPower"):
        mapped["power"] = {
            "average": details.get("averagePower"),
            "max": details.get("maxPower"),
        }
    if details.get("aerobicTrainingEffect") or details.get("anaerobicTrainingEffect"):
        mapped["trainingEffect"] = {
            "aerobic": details.get("aerobicTrainingEffect"),
            "anaerobic": details.get("anaerobicTrainingEffect"),
            "label": details.get("trainingEffectLabel"),
        }
    return mapped or None


def validate_activity(mapped: Dict[str, Any]) -> ValidationResult:
    result = ValidationResult()
    if not mapped.get("athlete_id"):
        result.errors.append("athlete_id is required")
    if not mapped.get("source_activity_id"):
        result.errors.append("source_activity_id is required")

    for name in ("duration", "distance", "calories"):
        value = mapped.get(name)
        if value is not None and value < 0:
            result.errors.append(f"{name} cannot be negative")

    if not mapped.get("activity_type"):
        result.warnings.append("activity_type is missing")
    if not mapped.get("start_time"):
        result.warnings.append("start_time is missing")
    heart_rate = mapped.get("average_heart_rate")
    if heart_rate is not None and not 30 <= heart_rate <= 250:
        result.warnings.append(f"average_heart_rate looks implausible: {heart_rate}")
    start_time = mapped.get("start_time")
    if start_time is not None and start_time.tzinfo is not None and start_time > utcnow():
        result.warnings.append("start_time is in the future")
    return result


__all__ = [
    "ValidationResult",
    "activity_id_of",
    "calculate_pace",
    "map_activity_details",
    "map_activity_summary",
    "normalize_webhook_activity",
    "user_id_of",
    "validate_activity",
]
