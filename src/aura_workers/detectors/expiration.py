"""Expiration sweeper: demote achievements whose activity has gone stale.

Monotone downgrade only. Revival happens through a fresh detector upsert.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta

from ..dates import start_of_local_day
from ..models import Achievement

STALE_AFTER_DAYS = 7


def is_stale(achievement: Achievement, now: datetime, timezone_name: str = "UTC") -> bool:
    """Last activity day began more than STALE_AFTER_DAYS before ``now``."""
    if achievement.last_event_date is None:
        return False
    last_day_start = start_of_local_day(achievement.last_event_date, timezone_name)
    return last_day_start < now - timedelta(days=STALE_AFTER_DAYS)


def find_expired(
    achievements: Iterable[Achievement], now: datetime, timezone_name: str = "UTC"
) -> list[Achievement]:
    return [
        a for a in achievements
        if a.status != "expired" and is_stale(a, now, timezone_name)
    ]
