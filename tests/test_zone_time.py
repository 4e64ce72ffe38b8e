from datetime import date, datetime, timezone

from event_ingest.utils.zone_time import (
    local_date_from_iso,
    local_date_from_unix,
    local_hhmm_from_iso,
    local_time_to_utc_iso,
    local_today,
    midnight_to_utc_iso,
    parse_calendar_date,
    parse_iso_utc,
    utc_offset_label,
)


def test_winter_local_time_to_utc():
    assert local_time_to_utc_iso("2026-02-25", "20:00") == "2026-02-25T18:00:00.000Z"


def test_summer_local_time_to_utc():
    assert local_time_to_utc_iso("2026-07-01", "20:00") == "2026-07-01T17:00:00.000Z"


def test_local_time_rejects_bad_input():
    assert local_time_to_utc_iso("2026-02-30", "20:00") is None
    assert local_time_to_utc_iso("2026-02-25", "25:00") is None
    assert local_time_to_utc_iso("2026-02-25", "evening") is None


def test_midnight_is_previous_utc_day():
    assert midnight_to_utc_iso("2026-02-25") == "2026-02-24T22:00:00.000Z"


def test_parse_calendar_date():
    assert parse_calendar_date("2026-02-25") == date(2026, 2, 25)
    assert parse_calendar_date("2026-02-30") is None
    assert parse_calendar_date("25/02/2026") is None
    assert parse_calendar_date(None) is None


def test_parse_iso_utc():
    assert parse_iso_utc("2026-02-25T18:00:00.000Z") == datetime(
        2026, 2, 25, 18, 0, tzinfo=timezone.utc
    )
    assert parse_iso_utc("2026-02-25T18:00:00") == datetime(
        2026, 2, 25, 18, 0, tzinfo=timezone.utc
    )
    assert parse_iso_utc("not a date") is None


def test_local_views_of_utc_timestamps():
    assert local_date_from_iso("2026-02-24T22:30:00.000Z") == "2026-02-25"
    assert local_hhmm_from_iso("2026-02-25T18:00:00.000Z") == "20:00"
    assert local_date_from_unix(
        datetime(2026, 2, 24, 23, 0, tzinfo=timezone.utc).timestamp()
    ) == "2026-02-25"


def test_local_today_and_offset_label():
    assert local_today(datetime(2026, 2, 24, 23, 0, tzinfo=timezone.utc)) == date(2026, 2, 25)
    assert utc_offset_label(date(2026, 2, 25)) == "UTC+2"
    assert utc_offset_label(date(2026, 7, 1)) == "UTC+3"
