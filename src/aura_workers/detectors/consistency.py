"""Consistency detector: per-category runs of consecutive logging days.

A streak of 3+ days unlocks (or refreshes) a consistency achievement. A
shorter history yields an "almost there" progress row instead.
"""

import logging

from ..dates import consecutive_day_streak, streak_start
from ..models import Achievement, AchievementProgress
from ..registry import detector
from .base import DetectionContext, DetectorOutput

logger = logging.getLogger(__name__)

CONSISTENCY_CATEGORIES: tuple[str, ...] = ("workout", "meal", "medication", "symptom", "note")
WINDOW_DAYS = 30
REQUIRED_DAYS = 3

_CATEGORY_LABELS: dict[str, str] = {
    "workout": "movement",
    "meal": "nutrition",
    "medication": "medication",
    "symptom": "symptom",
    "note": "journaling",
}

_INSIGHTS: dict[str, str] = {
    "workout": "Your movement rhythm is established: {streak} consecutive days of physical activity.",
    "meal": "Nutrition tracking is becoming routine: {streak} consecutive days logged.",
    "medication": "Medication adherence is strong: {streak} consecutive days maintained.",
    "symptom": "Health awareness is consistent: {streak} consecutive days of symptom tracking.",
    "note": "Reflective practice is taking root: {streak} consecutive days of journaling.",
}


def category_label(category: str) -> str:
    return _CATEGORY_LABELS.get(category, category)


def consistency_insight(category: str, streak: int) -> str:
    template = _INSIGHTS.get(category, "{category} tracking maintained for {streak} days.")
    return template.format(category=category.capitalize(), streak=streak)


def progress_message(category: str, streak: int, unique_days: int) -> str:
    label = category_label(category)
    if streak == REQUIRED_DAYS - 1:
        return f"1 more {label} day to unlock a {label} pattern insight"
    remaining = max(REQUIRED_DAYS - unique_days, 1)
    noun = "day" if remaining == 1 else "days"
    return f"{remaining} more {noun} to unlock {label} insights"


@detector("consistency", min_level=1)
def detect_consistency(ctx: DetectionContext) -> DetectorOutput:
    output = DetectorOutput()

    for category in CONSISTENCY_CATEGORIES:
        events = ctx.of_type(category, within_days=WINDOW_DAYS)
        if not events:
            continue

        days = {ctx.day_of(e) for e in events}
        streak = consecutive_day_streak(days)

        if streak >= REQUIRED_DAYS:
            output.achievements.append(Achievement(
                user_id=ctx.user_id,
                type="consistency",
                category=category,
                start_date=streak_start(days),
                current_streak=streak,
                last_event_date=max(days),
                insight_text=consistency_insight(category, streak),
                status="active",
            ))
            continue

        current = streak if streak == REQUIRED_DAYS - 1 else len(days)
        output.progress.append(AchievementProgress(
            user_id=ctx.user_id,
            type="consistency",
            category=category,
            current_count=current,
            required_count=REQUIRED_DAYS,
            progress_message=progress_message(category, streak, len(days)),
            last_updated=ctx.now,
        ))

    logger.debug(
        "Consistency for user %s: %d achievements, %d progress rows",
        ctx.user_id, len(output.achievements), len(output.progress),
    )
    return output
