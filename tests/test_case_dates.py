from datetime import date, datetime, timedelta, timezone

import pytest

from app.services.case_dates import parse_timestamp, resolve_case_dates

NOW = datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)
EXPECTED = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value",
    [
        "1700000000000",
        1700000000000,
        1700000000,
        "1700000000",
        "2023-11-14T22:13:20Z",
        "2023-11-14T23:13:20+01:00",
        datetime(2023, 11, 14, 22, 13, 20),
        datetime(2023, 11, 14, 23, 13, 20, tzinfo=timezone(timedelta(hours=1))),
    ],
)
def test_parse_timestamp_accepts_supported_formats(value):
    parsed = parse_timestamp(value)

    assert parsed == EXPECTED
    assert parsed.tzinfo is timezone.utc


@pytest.mark.parametrize("value", [None, "", "   ", "not a date", True, "2024-13-45", {"ms": 1}])
def test_parse_timestamp_returns_none_for_invalid_input(value):
    assert parse_timestamp(value) is None


def test_date_only_values_get_start_hour_in_configured_timezone():
    from_string = parse_timestamp("2024-03-01", timezone_name="Europe/Stockholm", start_hour=8)
    from_date = parse_timestamp(date(2024, 7, 1), timezone_name="Europe/Stockholm", start_hour=8)

    assert from_string == datetime(2024, 3, 1, 7, 0, tzinfo=timezone.utc)
    assert from_date == datetime(2024, 7, 1, 6, 0, tzinfo=timezone.utc)


def test_unknown_timezone_falls_back_to_utc():
    parsed = parse_timestamp("2024-03-01", timezone_name="Mars/Olympus", start_hour=9)

    assert parsed == datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_start_falls_back_to_creation_date_and_due_is_optional():
    task = {"start_date": None, "date_created": "1700000000000", "due_date": None}

    dates = resolve_case_dates(task, False, now=NOW)

    assert dates.start == EXPECTED
    assert dates.due is None
    assert dates.completed is None


def test_start_and_due_prefer_explicit_values():
    task = {"start_date": "2024-01-10", "date_created": "1700000000000", "due_date": "1706000000000"}

    dates = resolve_case_dates(task, False, now=NOW, timezone_name="UTC", start_hour=8)

    assert dates.start == datetime(2024, 1, 10, 8, 0, tzinfo=timezone.utc)
    assert dates.due == datetime.fromtimestamp(1706000000, tz=timezone.utc)


def test_completed_date_follows_fallback_chain():
    closed = {"date_closed": "1700000000000", "date_updated": "1700500000000"}
    updated_only = {"date_updated": "1700000000000"}

    assert resolve_case_dates(closed, True, now=NOW).completed == EXPECTED
    assert resolve_case_dates(updated_only, True, now=NOW).completed == EXPECTED
    assert resolve_case_dates({}, True, now=NOW).completed == NOW
    assert resolve_case_dates(closed, False, now=NOW).completed is None


def test_completed_fallback_is_used_before_now():
    previous = datetime(2024, 4, 1, 9, 30, tzinfo=timezone.utc)

    dates = resolve_case_dates({}, True, now=NOW, completed_fallback=previous)

    assert dates.completed == previous
