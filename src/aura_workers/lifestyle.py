"""Lifestyle focus detector suite.

Each detector observes one user-declared or accepted focus over the last
14 days of events and proposes at most one LifestyleAchievement. Records
are append-only; re-triggering is throttled by a per-kind time window
looked up in the already-emitted records.

Recovery-safe does not depend on the focus type. It is evaluated once
per user per pass and its dedup window is user-scoped.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from .dates import local_date
from .models import LifestyleAchievement, LifestyleFocus, TimelineEvent
from .signals import (
    AVOIDANCE_SIGNALS,
    LOW_INTENSITY_ACTIVITIES,
    REST_DAY_RULE,
    SHIFT_SIGNALS,
    matches_any,
    restart_category,
)

WINDOW_DAYS = 14
RECENT_SYMPTOM_DAYS = 3
RESTART_MIN_GAP_DAYS = 3


@dataclass(frozen=True)
class LifestyleKind:
    title: str
    confidence: float
    dedup_days: int
    per_focus: bool = True


LIFESTYLE_KINDS: dict[str, LifestyleKind] = {
    "lifestyle_shift": LifestyleKind("Intention in Action", 0.6, 3),
    "avoidance": LifestyleKind("Safe Choice", 0.7, 1),
    "recovery_safe": LifestyleKind("Recovery-Minded", 0.75, 2, per_focus=False),
    "restart": LifestyleKind("Welcome Back", 0.65, 7),
}

MAX_DEDUP_DAYS = max(k.dedup_days for k in LIFESTYLE_KINDS.values())


@dataclass
class LifestyleContext:
    user_id: str
    now: datetime
    events: tuple[TimelineEvent, ...]  # newest first
    timezone_name: str = "UTC"
    recent: list[LifestyleAchievement] = field(default_factory=list)

    @property
    def today(self) -> date:
        return local_date(self.now, self.timezone_name)

    def day_of(self, event: TimelineEvent) -> date:
        return local_date(event.event_date, self.timezone_name)

    def todays_events(self) -> list[TimelineEvent]:
        today = self.today
        return [e for e in self.events if self.day_of(e) == today]

    def is_suppressed(self, achievement_type: str, focus_id: str | None = None) -> bool:
        kind = LIFESTYLE_KINDS[achievement_type]
        cutoff = self.now - timedelta(days=kind.dedup_days)
        for record in self.recent:
            if record.achievement_type != achievement_type or record.date_triggered < cutoff:
                continue
            if not kind.per_focus or record.focus_id == focus_id:
                return True
        return False

    def build(
        self,
        achievement_type: str,
        insight_text: str,
        metadata: dict,
        focus: LifestyleFocus | None = None,
    ) -> LifestyleAchievement:
        kind = LIFESTYLE_KINDS[achievement_type]
        return LifestyleAchievement(
            user_id=self.user_id,
            focus_id=focus.id if focus is not None else None,
            achievement_type=achievement_type,
            title=kind.title,
            insight_text=insight_text,
            confidence=kind.confidence,
            date_triggered=self.now,
            metadata=metadata,
        )


def detect_shift(ctx: LifestyleContext, focus: LifestyleFocus) -> LifestyleAchievement | None:
    """Any aligned behaviour today, even a single one."""
    signal = SHIFT_SIGNALS.get(focus.focus_type)
    if signal is None or ctx.is_suppressed("lifestyle_shift", focus.id):
        return None
    if not any(matches_any(signal.rules, e) for e in ctx.todays_events()):
        return None
    return ctx.build(
        "lifestyle_shift",
        signal.insight_text,
        {"focus_type": focus.focus_type, "date": ctx.today.isoformat()},
        focus,
    )


def detect_avoidance(ctx: LifestyleContext, focus: LifestyleFocus) -> LifestyleAchievement | None:
    """An explicit note today that a tracked behaviour was avoided."""
    signal = AVOIDANCE_SIGNALS.get(focus.focus_type)
    if signal is None or ctx.is_suppressed("avoidance", focus.id):
        return None
    if not any(matches_any(signal.rules, e) for e in ctx.todays_events()):
        return None
    return ctx.build(
        "avoidance",
        signal.insight_text,
        {"focus_type": focus.focus_type, "date": ctx.today.isoformat()},
        focus,
    )


def detect_recovery_safe(ctx: LifestyleContext) -> LifestyleAchievement | None:
    """Rest or gentle movement today after a moderate/severe symptom."""
    cutoff = ctx.now - timedelta(days=RECENT_SYMPTOM_DAYS)
    recent_symptoms = [
        e for e in ctx.events
        if e.event_type == "symptom"
        and e.event_date >= cutoff
        and e.severity in ("moderate", "severe")
    ]
    if not recent_symptoms or ctx.is_suppressed("recovery_safe"):
        return None

    todays = ctx.todays_events()
    workouts = [e for e in todays if e.event_type == "workout"]
    gentle = all(w.activity_type in LOW_INTENSITY_ACTIVITIES for w in workouts)
    rested = any(REST_DAY_RULE.matches(e) for e in todays)
    if not (gentle or rested):
        return None

    symptom_type = recent_symptoms[0].description or "discomfort"
    return ctx.build(
        "recovery_safe",
        f"You honored your body's need for rest. Stronger recovery from {symptom_type} ahead.",
        {"symptom_type": symptom_type, "date": ctx.today.isoformat()},
    )


def detect_restart(ctx: LifestyleContext, focus: LifestyleFocus) -> LifestyleAchievement | None:
    """Activity resumed today or yesterday after a break of 3+ days."""
    category = restart_category(focus.focus_type)
    if category is None or ctx.is_suppressed("restart", focus.id):
        return None

    category_events = sorted(
        (e for e in ctx.events if e.event_type == category),
        key=lambda e: e.event_date,
        reverse=True,
    )
    if len(category_events) < 2:
        return None

    latest = ctx.day_of(category_events[0])
    previous = ctx.day_of(category_events[1])
    if (ctx.today - latest).days > 1:
        return None
    days_away = (latest - previous).days
    if days_away < RESTART_MIN_GAP_DAYS:
        return None

    activity_label = "movement" if category == "workout" else "tracking"
    return ctx.build(
        "restart",
        f"You returned to {activity_label}. We'll continue learning your rhythm.",
        {"category": category, "days_away": days_away, "date": ctx.today.isoformat()},
        focus,
    )


FocusDetector = Callable[[LifestyleContext, LifestyleFocus], "LifestyleAchievement | None"]

FOCUS_DETECTORS: tuple[tuple[str, FocusDetector], ...] = (
    ("lifestyle_shift", detect_shift),
    ("avoidance", detect_avoidance),
    ("restart", detect_restart),
)


def observable_focuses(focuses: Iterable[LifestyleFocus]) -> list[LifestyleFocus]:
    return [f for f in focuses if f.status in ("active", "user_declared")]
