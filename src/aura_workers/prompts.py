"""Contextual prompts: nudges for gaps in what a user tracks."""

from collections.abc import Iterable
from datetime import datetime, timedelta

from .models import TimelineEvent

WINDOW_DAYS = 7


def contextual_prompts(events: Iterable[TimelineEvent], now: datetime) -> list[str]:
    cutoff = now - timedelta(days=WINDOW_DAYS)
    recent = [e for e in events if e.event_date >= cutoff]
    types = {e.event_type for e in recent}
    prompts: list[str] = []

    if "workout" in types and "symptom" not in types:
        prompts.append("Tracking symptoms alongside workouts could reveal recovery patterns.")
    if "symptom" in types and "meal" not in types:
        prompts.append("Logging meals with symptoms might uncover dietary connections.")
    if "meal" in types and "workout" not in types and len(recent) > 3:
        prompts.append("Adding movement tracking completes your health picture.")
    return prompts
