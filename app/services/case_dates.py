"""Derive start, due and completion timestamps for a ClickUp task.

Every function here is total: unparseable input resolves to ``None`` and all
returned datetimes are timezone-aware UTC.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_START_HOUR = 8

# Epoch values above this are treated as milliseconds.
_MILLISECOND_THRESHOLD = 100_000_000_000
_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DIGITS = re.compile(r"^-?\d+(\.\d+)?$")


@dataclass(frozen=True, slots=True)
class CaseDates:
    start: datetime | None
    due: datetime | None
    completed: datetime | None


def _zone(timezone_name: str | None) -> ZoneInfo | timezone:
    if not timezone_name:
        return timezone.utc
    try:
        return ZoneInfo(str(timezone_name))
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def _at_start_of_day(day: date, timezone_name: str | None, start_hour: int) -> datetime:
    hour = start_hour if 0 <= start_hour <= 23 else DEFAULT_START_HOUR
    local = datetime.combine(day, time(hour=hour), tzinfo=_zone(timezone_name))
    return local.astimezone(timezone.utc)


def _from_epoch(value: float) -> datetime | None:
    seconds = value / 1000 if abs(value) >= _MILLISECOND_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(
    value: Any,
    *,
    timezone_name: str | None = "UTC",
    start_hour: int = DEFAULT_START_HOUR,
) -> datetime | None:
    """Parse a ClickUp timestamp into an aware UTC datetime.

    Accepts epoch milliseconds or seconds (numbers or digit strings), ISO-8601
    strings including a trailing ``Z``, dates and datetimes. Date-only values
    are placed at ``start_hour`` in ``timezone_name``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return _at_start_of_day(value, timezone_name, start_hour)
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    text = str(value).strip()
    if not text:
        return None
    if _DIGITS.match(text):
        return _from_epoch(float(text))
    if _DATE_ONLY.match(text):
        try:
            return _at_start_of_day(date.fromisoformat(text), timezone_name, start_hour)
        except ValueError:
            return None
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def resolve_case_dates(
    task: Mapping[str, Any],
    is_terminal: bool,
    *,
    now: datetime,
    timezone_name: str | None = "UTC",
    start_hour: int = DEFAULT_START_HOUR,
    completed_fallback: datetime | None = None,
) -> CaseDates:
    """Apply the start/due/completed fallback chains to a task payload.

    ``completed_fallback`` is used before ``now`` when a terminal task carries
    neither ``date_closed`` nor ``date_updated``.
    """

    def parse(key: str) -> datetime | None:
        return parse_timestamp(task.get(key), timezone_name=timezone_name, start_hour=start_hour)

    start = parse("start_date") or parse("date_created")
    due = parse("due_date")
    completed: datetime | None = None
    if is_terminal:
        completed = (
            parse("date_closed")
            or parse("date_updated")
            or (_as_utc(completed_fallback) if completed_fallback else None)
            or _as_utc(now)
        )
    return CaseDates(start=start, due=due, completed=completed)
