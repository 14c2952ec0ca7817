"""Shared context and output types for achievement detectors.

Detectors are pure: they read the parsed events of one user and return
the Achievement and AchievementProgress rows they want written. The
engine owns all store access.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from ..dates import local_date
from ..models import Achievement, AchievementProgress, TimelineEvent


@dataclass(frozen=True)
class DetectionContext:
    user_id: str
    now: datetime
    events: tuple[TimelineEvent, ...]  # newest first
    timezone_name: str = "UTC"

    @property
    def today(self) -> date:
        return local_date(self.now, self.timezone_name)

    def day_of(self, event: TimelineEvent) -> date:
        return local_date(event.event_date, self.timezone_name)

    def since(self, days: int) -> datetime:
        return self.now - timedelta(days=days)

    def of_type(self, event_type: str, *, within_days: int | None = None) -> list[TimelineEvent]:
        cutoff = self.since(within_days) if within_days is not None else None
        return [
            e for e in self.events
            if e.event_type == event_type and (cutoff is None or e.event_date >= cutoff)
        ]


@dataclass
class DetectorOutput:
    achievements: list[Achievement] = field(default_factory=list)
    progress: list[AchievementProgress] = field(default_factory=list)
