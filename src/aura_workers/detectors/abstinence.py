"""Note-based lifestyle detector: sustained abstinence phrases in notes.

Each row of ABSTINENCE_SIGNALS is evaluated independently; three matching
notes unlock a lifestyle achievement whose streak is the run of
consecutive days with a matching note.
"""

from ..dates import consecutive_day_streak, streak_start
from ..models import Achievement
from ..registry import detector
from ..signals import ABSTINENCE_SIGNALS, AbstinenceSignal
from .base import DetectionContext, DetectorOutput

MIN_MATCHING_NOTES = 3


def abstinence_insight(signal: AbstinenceSignal, streak: int) -> str:
    return (
        f"Intentionally tracking {streak} {signal.label} days. "
        "This mindful choice supports your health goals."
    )


@detector("abstinence", min_level=4)
def detect_abstinence(ctx: DetectionContext) -> DetectorOutput:
    output = DetectorOutput()
    notes = ctx.of_type("note")

    for signal in ABSTINENCE_SIGNALS:
        matching = [n for n in notes if signal.rule.matches(n)]
        if len(matching) < MIN_MATCHING_NOTES:
            continue
        days = {ctx.day_of(n) for n in matching}
        streak = consecutive_day_streak(days)
        output.achievements.append(Achievement(
            user_id=ctx.user_id,
            type="lifestyle",
            category=signal.category,
            start_date=streak_start(days),
            current_streak=streak,
            last_event_date=max(days),
            insight_text=abstinence_insight(signal, streak),
            status="active",
            metadata={"matching_notes": len(matching)},
        ))
    return output
