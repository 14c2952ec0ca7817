"""Calendar-day helpers and the streak utility.

All detectors reason in the user's local calendar days. Timestamps are
projected into the configured IANA timezone (UTC when none is set).
"""

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_ASSUMED_TIMEZONE = "UTC"
TIMEZONE_ASSUMPTION_DISCLOSURE = (
    "No explicit timezone preference found; using UTC until the user confirms one."
)


def normalize_timezone_name(value: Any) -> str | None:
    """Normalize timezone preference and verify it's a valid IANA name."""
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw.upper() == "UTC":
        return "UTC"
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        return None
    return raw


def resolve_timezone_context(timezone_pref: Any) -> dict[str, Any]:
    """Return timezone context with explicit assumption disclosure when missing."""
    normalized = normalize_timezone_name(timezone_pref)
    if normalized:
        return {
            "timezone": normalized,
            "source": "preference",
            "assumed": False,
            "assumption_disclosure": None,
        }
    return {
        "timezone": DEFAULT_ASSUMED_TIMEZONE,
        "source": "assumed_default",
        "assumed": True,
        "assumption_disclosure": TIMEZONE_ASSUMPTION_DISCLOSURE,
    }


def local_date(ts: datetime | date, timezone_name: str = DEFAULT_ASSUMED_TIMEZONE) -> date:
    """Project a timestamp into the local calendar date. Dates pass through."""
    if not isinstance(ts, datetime):
        return ts
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(ZoneInfo(timezone_name)).date()


def start_of_local_day(d: date, timezone_name: str = DEFAULT_ASSUMED_TIMEZONE) -> datetime:
    return datetime.combine(d, time.min, tzinfo=ZoneInfo(timezone_name))


def unique_days_desc(
    points: Iterable[datetime | date],
    timezone_name: str = DEFAULT_ASSUMED_TIMEZONE,
) -> list[date]:
    return sorted({local_date(p, timezone_name) for p in points}, reverse=True)


def _current_run(days_desc: list[date]) -> list[date]:
    if not days_desc:
        return []
    run = [days_desc[0]]
    for newer, older in zip(days_desc, days_desc[1:]):
        if (newer - older).days != 1:
            break
        run.append(older)
    return run


def consecutive_day_streak(
    points: Iterable[datetime | date],
    timezone_name: str = DEFAULT_ASSUMED_TIMEZONE,
) -> int:
    """Length of the run of consecutive calendar days ending at the most recent day.

    Days are de-duplicated first; the walk stops at the first gap. No input
    yields 0, a single day yields 1.
    """
    return len(_current_run(unique_days_desc(points, timezone_name)))


def streak_start(
    points: Iterable[datetime | date],
    timezone_name: str = DEFAULT_ASSUMED_TIMEZONE,
) -> date | None:
    """First calendar day of the current streak, or None without input."""
    run = _current_run(unique_days_desc(points, timezone_name))
    return run[-1] if run else None


def days_ago(now: datetime, days: int) -> datetime:
    return now - timedelta(days=days)
