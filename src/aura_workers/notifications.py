"""Translate derived records into user-facing notifications.

Delivery (toast, push, email) belongs to the caller; the worker only
writes achievement_notifications rows. Progress rows are rewritten on
every pass and never notify; the client reads them directly.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .models import (
    Achievement,
    AchievementNotification,
    LifestyleAchievement,
    NotificationType,
)
from .store import AchievementStore

logger = logging.getLogger(__name__)

_TYPE_BY_ACHIEVEMENT: dict[str, NotificationType] = {
    "consistency": "unlock",
    "reduction": "unlock",
    "lifestyle": "unlock",
    "correlation": "correlation",
}


def build_notification(achievement: Achievement) -> AchievementNotification:
    return AchievementNotification(
        user_id=achievement.user_id,
        achievement_id=achievement.id,
        notification_type=_TYPE_BY_ACHIEVEMENT.get(achievement.type, "unlock"),
        message=achievement.insight_text,
    )


def build_lifestyle_notification(achievement: LifestyleAchievement) -> AchievementNotification:
    return AchievementNotification(
        user_id=achievement.user_id,
        notification_type="shift",
        message=f"{achievement.title}: {achievement.insight_text}",
    )


def collect_notifications(
    achievements: Iterable[Achievement],
    lifestyle: Iterable[LifestyleAchievement] = (),
) -> list[AchievementNotification]:
    notifications = [build_notification(a) for a in achievements]
    notifications.extend(build_lifestyle_notification(a) for a in lifestyle)
    return notifications


async def notify_new_achievements(
    store: AchievementStore,
    user_id: str,
    achievements: Iterable[Achievement],
    lifestyle: Iterable[LifestyleAchievement] = (),
) -> int:
    """Write one notification row per new record. Returns the number written."""
    notifications = collect_notifications(achievements, lifestyle)
    for notification in notifications:
        await store.insert_notification(notification)
    if notifications:
        logger.info(
            "Queued %d notifications for user %s",
            len(notifications), user_id,
            extra={"aura_user_id": user_id},
        )
    return len(notifications)
