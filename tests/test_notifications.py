from datetime import date

import pytest
from conftest import NOW, USER_ID, FakeStore

from aura_workers.models import Achievement, LifestyleAchievement
from aura_workers.notifications import (
    build_notification,
    collect_notifications,
    notify_new_achievements,
)


def _achievement(type_="consistency", category="workout"):
    return Achievement(
        id="ach-1",
        user_id=USER_ID,
        type=type_,
        category=category,
        start_date=date(2024, 1, 8),
        current_streak=3,
        last_event_date=date(2024, 1, 10),
        insight_text=f"{type_} insight",
    )


def _lifestyle():
    return LifestyleAchievement(
        id="life-1",
        user_id=USER_ID,
        achievement_type="avoidance",
        title="Safe Choice",
        insight_text="No caffeine today. Calmer nervous system ahead.",
        confidence=0.7,
        date_triggered=NOW,
    )


class TestBuildNotification:
    @pytest.mark.parametrize(
        ("achievement_type", "expected"),
        [
            ("consistency", "unlock"),
            ("reduction", "unlock"),
            ("lifestyle", "unlock"),
            ("correlation", "correlation"),
        ],
    )
    def test_type_mapping(self, achievement_type, expected):
        notification = build_notification(_achievement(achievement_type))
        assert notification.notification_type == expected
        assert notification.message == f"{achievement_type} insight"
        assert notification.achievement_id == "ach-1"


class TestCollect:
    def test_achievements_then_lifestyle(self):
        assert collect_notifications([_achievement()]) == [build_notification(_achievement())]

        notifications = collect_notifications([], [_lifestyle()])
        assert [n.notification_type for n in notifications] == ["shift"]
        assert notifications[0].message == "Safe Choice: No caffeine today. Calmer nervous system ahead."
        assert notifications[0].achievement_id is None


@pytest.mark.asyncio
async def test_notify_new_achievements_writes_rows():
    store = FakeStore()
    count = await notify_new_achievements(store, USER_ID, [_achievement()], [_lifestyle()])
    assert count == 2
    assert [n.notification_type for n in store.notifications] == ["unlock", "shift"]


@pytest.mark.asyncio
async def test_notify_nothing():
    store = FakeStore()
    assert await notify_new_achievements(store, USER_ID, []) == 0
    assert store.notifications == []
