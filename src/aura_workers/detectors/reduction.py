"""Reduction detector: fewer symptom events this week than the week before."""

from ..models import Achievement
from ..registry import detector
from .base import DetectionContext, DetectorOutput

WEEK_DAYS = 7


def reduction_insight(reduction: int) -> str:
    return (
        f"Your symptoms decreased by {reduction} events this week. "
        "Your body is responding positively."
    )


@detector("reduction", min_level=2)
def detect_reduction(ctx: DetectionContext) -> DetectorOutput:
    output = DetectorOutput()
    current_start = ctx.since(WEEK_DAYS)
    previous_start = ctx.since(2 * WEEK_DAYS)

    symptoms = ctx.of_type("symptom")
    current_week = [e for e in symptoms if e.event_date >= current_start]
    previous_week = [e for e in symptoms if previous_start <= e.event_date < current_start]

    # 0 vs N is not a reduction: both windows must have data.
    if not current_week or not previous_week:
        return output
    if len(current_week) >= len(previous_week):
        return output

    days = [ctx.day_of(e) for e in current_week]
    reduction = len(previous_week) - len(current_week)
    output.achievements.append(Achievement(
        user_id=ctx.user_id,
        type="reduction",
        category="symptom",
        start_date=min(days),
        current_streak=reduction,
        last_event_date=max(days),
        insight_text=reduction_insight(reduction),
        status="active",
        metadata={"current_week": len(current_week), "previous_week": len(previous_week)},
    ))
    return output
