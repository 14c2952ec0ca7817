"""Shared fixtures: an in-memory AchievementStore and event row factories."""

from __future__ import annotations

import itertools
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from aura_workers.models import (
    Achievement,
    AchievementKey,
    AchievementNotification,
    AchievementPreferences,
    AchievementProgress,
    InferredPattern,
    LifestyleAchievement,
    LifestyleFocus,
    as_utc,
)

USER_ID = "00000000-0000-0000-0000-000000000001"
OTHER_USER_ID = "00000000-0000-0000-0000-000000000002"

# Midday, so "N days ago at 09:00" never crosses a calendar boundary by accident.
NOW = datetime(2024, 1, 10, 12, 0, tzinfo=UTC)


def event_row(
    event_type: str,
    when: datetime,
    *,
    user_id: str = USER_ID,
    activity_type: str | None = None,
    severity: str | None = None,
    description: str | None = None,
    structured_data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """A timeline_events row as the store returns it."""
    return {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "event_type": event_type,
        "event_date": when,
        "activity_type": activity_type,
        "severity": severity,
        "description": description,
        "structured_data": structured_data,
    }


def days_before(now: datetime, days: int, hour: int = 9) -> datetime:
    """``hour`` o'clock on the calendar day ``days`` before ``now``."""
    day = (now - timedelta(days=days)).date()
    return datetime(day.year, day.month, day.day, hour, 0, tzinfo=UTC)


class FakeStore:
    """In-memory AchievementStore with the same keyed-upsert semantics as PostgresStore."""

    def __init__(self, events: list[dict[str, Any]] | None = None) -> None:
        self.events: list[dict[str, Any]] = list(events or [])
        self.preferences: dict[str, AchievementPreferences] = {}
        self.achievements: dict[AchievementKey, Achievement] = {}
        self.progress: dict[AchievementKey, AchievementProgress] = {}
        self.focuses: list[LifestyleFocus] = []
        self.lifestyle: list[LifestyleAchievement] = []
        self.patterns: dict[tuple[str, str], InferredPattern] = {}
        self.notifications: list[AchievementNotification] = []
        self.locked: list[str] = []
        self.transactions = 0
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # -- helpers for tests --------------------------------------------------

    def add_events(self, *rows: dict[str, Any]) -> None:
        self.events.extend(rows)

    def set_preferences(self, user_id: str = USER_ID, **fields: Any) -> None:
        self.preferences[user_id] = AchievementPreferences(user_id=user_id, **fields)

    def add_focus(self, focus_type: str, *, user_id: str = USER_ID, status: str = "active") -> LifestyleFocus:
        focus = LifestyleFocus(
            id=str(uuid.uuid4()),
            user_id=user_id,
            focus_type=focus_type,
            status=status,
            start_date=NOW.date() - timedelta(days=30),
        )
        self.focuses.append(focus)
        return focus

    def achievements_for(self, user_id: str = USER_ID) -> list[Achievement]:
        return [a for a in self.achievements.values() if a.user_id == user_id]

    # -- AchievementStore ---------------------------------------------------

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield self

    async def lock_user(self, user_id: str) -> None:
        self.locked.append(user_id)

    async def fetch_events(
        self, user_id: str, date_from: datetime, date_to: datetime
    ) -> list[dict[str, Any]]:
        rows = []
        for row in self.events:
            if row.get("user_id") != user_id:
                continue
            when = row.get("event_date")
            # Rows without a date are passed through, as a corrupt row would be.
            if when is not None and not (date_from <= as_utc(when) <= date_to):
                continue
            rows.append(row)
        epoch = datetime.min.replace(tzinfo=UTC)
        return sorted(rows, key=lambda r: as_utc(r["event_date"]) if r.get("event_date") else epoch, reverse=True)

    async def fetch_preferences(self, user_id: str) -> AchievementPreferences:
        return self.preferences.get(user_id) or AchievementPreferences(user_id=user_id)

    async def fetch_achievements(self, user_id: str) -> list[Achievement]:
        return self.achievements_for(user_id)

    async def upsert_achievement(self, achievement: Achievement) -> tuple[Achievement, bool]:
        existing = self.achievements.get(achievement.key)
        if existing is not None:
            saved = achievement.model_copy(update={"id": existing.id})
            created = False
        else:
            saved = achievement.model_copy(update={"id": self._next_id("ach")})
            created = True
        self.achievements[saved.key] = saved
        return saved, created

    async def expire_achievements(self, achievement_ids: list[str]) -> int:
        count = 0
        for key, achievement in list(self.achievements.items()):
            if achievement.id in achievement_ids and achievement.status != "expired":
                self.achievements[key] = achievement.model_copy(update={"status": "expired"})
                count += 1
        return count

    async def upsert_progress(self, progress: AchievementProgress) -> None:
        self.progress[progress.key] = progress

    async def delete_progress(self, key: AchievementKey) -> None:
        self.progress.pop(key, None)

    async def fetch_active_focuses(self, user_id: str) -> list[LifestyleFocus]:
        return [
            f for f in self.focuses
            if f.user_id == user_id and f.status in ("active", "user_declared")
        ]

    async def fetch_lifestyle_achievements(
        self, user_id: str, since: datetime
    ) -> list[LifestyleAchievement]:
        return [
            a for a in self.lifestyle
            if a.user_id == user_id and a.date_triggered >= since
        ]

    async def insert_lifestyle_achievement(
        self, achievement: LifestyleAchievement
    ) -> LifestyleAchievement:
        saved = achievement.model_copy(update={"id": self._next_id("life")})
        self.lifestyle.append(saved)
        return saved

    async def upsert_inferred_pattern(self, pattern: InferredPattern) -> InferredPattern:
        key = (pattern.user_id, pattern.pattern_type)
        existing = self.patterns.get(key)
        if existing is not None:
            pattern = pattern.model_copy(update={
                "confirmation_shown": existing.confirmation_shown,
                "user_response": existing.user_response,
            })
        self.patterns[key] = pattern
        return pattern

    async def fetch_recently_active_users(self, since: datetime) -> list[str]:
        return sorted({
            r["user_id"] for r in self.events
            if r.get("event_date") is not None and as_utc(r["event_date"]) >= since
        })

    async def insert_notification(self, notification: AchievementNotification) -> None:
        self.notifications.append(notification)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
