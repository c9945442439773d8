from sqlmodel import select

from gofast.models import Athlete, AthleteActivity, UnmatchedWebhook, WebhookKind
from gofast.services.activity_mapper import (
    calculate_pace,
    map_activity_details,
    map_activity_summary,
    normalize_webhook_activity,
    validate_activity,
)
from gofast.services.ingestion import ActivityIngestionService, details_activity_id

PUSHED_RUN = {
    "userId": "garmin-user-1",
    "summaryId": "9001",
    "activityId": 9001,
    "activityName": "Morning Run",
    "activityType": "RUNNING",
    "startTimeInSeconds": 1740812400,
    "durationInSeconds": 1800,
    "distanceInMeters": 5000.0,
    "averageSpeedInMetersPerSecond": 2.78,
    "activeKilocalories": 350,
    "averageHeartRateInBeatsPerMinute": 152,
    "deviceName": "Forerunner 265",
}

RUN_DETAILS = {
    "summaryId": "9001-detail",
    "samples": [{"startTimeInSeconds": 1740812400, "heartRate": 120}],
    "lapSummaries": [{"startTimeInSeconds": 1740812400}],
    "averageRunCadence": 168,
    "maxRunCadence": 181,
}


def connect(session, garmin_user_id="garmin-user-1"):
    athlete = Athlete(id="A1", garmin_user_id=garmin_user_id, garmin_is_connected=True)
    session.add(athlete)
    session.commit()
    return athlete


def activities(session):
    return session.exec(select(AthleteActivity)).all()


def letters(session):
    return session.exec(select(UnmatchedWebhook)).all()


def test_summary_creates_activity_for_known_user(session):
    connect(session)

    report = ActivityIngestionService(session).ingest_summaries({"activities": [PUSHED_RUN]})

    assert report.created == ["9001"]
    (activity,) = activities(session)
    assert activity.athlete_id == "A1"
    assert activity.activity_type == "RUNNING"
    assert activity.distance == 5000.0
    assert activity.calories == 350
    assert activity.pace == calculate_pace(2.78)
    assert activity.device_name == "Forerunner 265"
    assert session.get(Athlete, "A1").garmin_last_sync_at is not None


def test_repeated_summary_updates_in_place(session):
    connect(session)
    service = ActivityIngestionService(session)
    service.ingest_summaries({"activities": [PUSHED_RUN]})

    report = service.ingest_summaries(
        {"activities": [{**PUSHED_RUN, "activityName": "Renamed Run"}]}
    )

    assert report.updated == ["9001"]
    (activity,) = activities(session)
    assert activity.activity_name == "Renamed Run"


def test_summary_for_unknown_user_is_parked(session):
    report = ActivityIngestionService(session).ingest_summaries({"activities": [PUSHED_RUN]})

    assert report.unmatched == ["9001"]
    assert activities(session) == []
    (letter,) = letters(session)
    assert letter.kind == WebhookKind.ACTIVITY
    assert letter.provider_key == "garmin-user-1"
    assert letter.payload["activities"][0]["activityId"] == 9001


def test_summary_without_ids_is_skipped(session):
    report = ActivityIngestionService(session).ingest_summaries(
        {"activities": [{"activityName": "no ids"}, "garbage"]}
    )

    assert report.skipped == 2
    assert letters(session) == []


def test_details_hydrate_matching_activity(session):
    connect(session)
    service = ActivityIngestionService(session)
    service.ingest_summaries({"activities": [PUSHED_RUN]})

    record = service.apply_details(RUN_DETAILS)

    assert record is not None
    assert record.hydrated_at is not None
    assert record.detail_data["samples"] == RUN_DETAILS["samples"]
    assert record.detail_data["cadence"] == {"average": 168, "max": 181}


def test_details_merge_with_existing_detail_data(session):
    connect(session)
    service = ActivityIngestionService(session)
    service.ingest_summaries({"activities": [PUSHED_RUN]})
    service.apply_details(RUN_DETAILS)

    record = service.apply_details({"summaryId": "9001", "averagePower": 250, "maxPower": 400})

    assert set(record.detail_data) == {"samples", "lapSummaries", "cadence", "power"}


def test_unmatched_details_leave_activities_untouched(session):
    connect(session)
    service = ActivityIngestionService(session)
    service.ingest_summaries({"activities": [PUSHED_RUN]})

    assert service.apply_details({**RUN_DETAILS, "summaryId": "7777"}) is None

    (activity,) = activities(session)
    assert activity.hydrated_at is None
    assert activity.detail_data is None
    letter = letters(session)[-1]
    assert letter.kind == WebhookKind.ACTIVITY_DETAILS
    assert letter.provider_key == "7777"


def test_early_details_replay_when_summary_arrives(session):
    connect(session)
    service = ActivityIngestionService(session)
    service.apply_details(RUN_DETAILS)

    service.ingest_summaries({"activities": [PUSHED_RUN]})

    (activity,) = activities(session)
    assert activity.hydrated_at is not None
    assert activity.detail_data["lapSummaries"] == RUN_DETAILS["lapSummaries"]
    (letter,) = letters(session)
    assert letter.replayed_at is not None


def test_details_batch(session):
    connect(session)
    service = ActivityIngestionService(session)
    service.ingest_summaries({"activities": [PUSHED_RUN]})

    hydrated = service.apply_details_batch({"activityDetails": [RUN_DETAILS, "junk"]})

    assert [record.source_activity_id for record in hydrated] == ["9001"]


def test_details_activity_id_variants():
    assert details_activity_id({"summaryId": "12-detail"}) == "12"
    assert details_activity_id({"activityId": 12}) == "12"
    assert details_activity_id({"activity": {"summaryId": "13"}}) == "13"
    assert details_activity_id({}) is None


def test_mapper_normalizes_push_fields():
    activity = normalize_webhook_activity(PUSHED_RUN)
    mapped = map_activity_summary(activity, "A1")

    assert mapped["source_activity_id"] == "9001"
    assert mapped["start_time"].year == 2025
    assert mapped["average_heart_rate"] == 152
    assert mapped["garmin_user_id"] == "garmin-user-1"
    assert validate_activity(mapped).is_valid


def test_calculate_pace():
    assert calculate_pace(None) is None
    assert calculate_pace(0) is None
    assert calculate_pace(26.8224) == 1.0


def test_validation_rejects_negative_values():
    result = validate_activity(
        {"athlete_id": "A1", "source_activity_id": "1", "distance": -5}
    )

    assert not result.is_valid
    assert "distance cannot be negative" in result.errors
    assert "activity_type is missing" in result.warnings


def test_details_without_metrics_map_to_none():
    assert map_activity_details({"summaryId": "1"}) is None


MALFORMED_RUN = {
    "userId": "garmin-user-1",
    "activityId": 1,
    "startTimeInSeconds": "not-a-number",
}


def test_malformed_entry_does_not_abort_batch(session):
    connect(session)
    odd_type = {"userId": "garmin-user-1", "activityId": 3, "activityType": ["RUNNING"]}

    report = ActivityIngestionService(session).ingest_summaries(
        {"activities": [MALFORMED_RUN, odd_type, PUSHED_RUN]}
    )

    assert report.failed == 2
    assert report.created == ["9001"]
    assert [row.source_activity_id for row in activities(session)] == ["9001"]


def test_malformed_parked_entry_fails_replay_quietly(session):
    service = ActivityIngestionService(session)
    service.ingest_summaries({"activities": [MALFORMED_RUN, PUSHED_RUN]})
    connect(session)

    assert service.replay_for_user("garmin-user-1") == 1

    assert [row.source_activity_id for row in activities(session)] == ["9001"]
    pending = service.pending(WebhookKind.ACTIVITY, "garmin-user-1")
    assert [letter.payload["activities"][0]["activityId"] for letter in pending] == [1]
