"""Correlation detector: flexibility workouts followed by calmer symptom days.

Heuristic next-day co-occurrence, not a statistical test. A flexibility
day D counts when day D+1 has no symptoms, or only mild ones.
"""

from datetime import date, timedelta

from ..models import Achievement
from ..registry import detector
from ..signals import FLEXIBILITY_ACTIVITIES
from .base import DetectionContext, DetectorOutput

CATEGORY = "flexibility_pain"
MIN_WORKOUTS = 2
MIN_SYMPTOMS = 2
MIN_FLEXIBILITY_DAYS = 2
REQUIRED_CALM_DAYS = 2


def correlation_insight(activity: str) -> str:
    return f"{activity.capitalize()} sessions correlate with fewer symptoms the following day."


@detector("correlation", min_level=3)
def detect_correlation(ctx: DetectionContext) -> DetectorOutput:
    output = DetectorOutput()
    workouts = ctx.of_type("workout")
    symptoms = ctx.of_type("symptom")
    if len(workouts) < MIN_WORKOUTS or len(symptoms) < MIN_SYMPTOMS:
        return output

    flexibility = [w for w in workouts if w.activity_type in FLEXIBILITY_ACTIVITIES]
    flex_days = sorted({ctx.day_of(w) for w in flexibility})
    if len(flex_days) < MIN_FLEXIBILITY_DAYS:
        return output

    severities_by_day: dict[date, list[str | None]] = {}
    for s in symptoms:
        severities_by_day.setdefault(ctx.day_of(s), []).append(s.severity)

    calm_days = 0
    for day in flex_days:
        next_day = severities_by_day.get(day + timedelta(days=1), [])
        if all(severity == "mild" for severity in next_day):
            calm_days += 1

    if calm_days < REQUIRED_CALM_DAYS:
        return output

    earliest = min(flexibility, key=lambda w: w.event_date)
    output.achievements.append(Achievement(
        user_id=ctx.user_id,
        type="correlation",
        category=CATEGORY,
        start_date=flex_days[0],
        current_streak=calm_days,
        last_event_date=flex_days[-1],
        insight_text=correlation_insight(earliest.activity_type or "stretching"),
        status="active",
        metadata={"flexibility_days": len(flex_days)},
    ))
    return output
