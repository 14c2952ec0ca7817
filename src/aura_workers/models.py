"""Record types read and written by the achievement engine.

TimelineEvent is read-only input. Achievement, AchievementProgress and
InferredPattern are keyed singletons; LifestyleAchievement is an
append-only observation log.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EventType = Literal[
    "meal",
    "workout",
    "medication",
    "symptom",
    "doctor_visit",
    "injury",
    "note",
    "moment",
]
Severity = Literal["mild", "moderate", "severe"]
AchievementType = Literal["consistency", "reduction", "correlation", "lifestyle"]
AchievementStatus = Literal["active", "expired"]
FocusStatus = Literal["active", "user_declared", "removed"]
LifestyleAchievementType = Literal["lifestyle_shift", "avoidance", "recovery_safe", "restart"]
UserResponse = Literal["accepted", "dismissed"]
NotificationType = Literal["unlock", "progress", "shift", "correlation"]

_SEVERITIES: frozenset[str] = frozenset({"mild", "moderate", "severe"})


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Typed structured_data payloads, discriminated by the owning event_type
# ---------------------------------------------------------------------------


def _text_or_none(value: Any) -> str | None:
    # Client payloads are loosely typed; a wrong-typed value is dropped, not rejected.
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _number_or_none(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


class _EventData(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


class MealData(_EventData):
    kind: Literal["meal"] = "meal"
    sugar_level: str | None = None
    meal_type: str | None = None

    normalize_text_fields = field_validator("sugar_level", "meal_type", mode="before")(_text_or_none)


class WorkoutData(_EventData):
    kind: Literal["workout"] = "workout"
    intensity: str | None = None
    duration_minutes: float | None = None

    normalize_text_fields = field_validator("intensity", mode="before")(_text_or_none)
    normalize_number_fields = field_validator("duration_minutes", mode="before")(_number_or_none)


class MomentData(_EventData):
    kind: Literal["moment"] = "moment"
    moment_type: str | None = None

    normalize_text_fields = field_validator("moment_type", mode="before")(_text_or_none)


class SymptomData(_EventData):
    kind: Literal["symptom"] = "symptom"
    body_area: str | None = None

    normalize_text_fields = field_validator("body_area", mode="before")(_text_or_none)


class GenericData(_EventData):
    kind: Literal["generic"] = "generic"


EventData = Annotated[
    Union[MealData, WorkoutData, MomentData, SymptomData, GenericData],
    Field(discriminator="kind"),
]

_DATA_KIND_BY_EVENT_TYPE: dict[str, str] = {
    "meal": "meal",
    "workout": "workout",
    "moment": "moment",
    "symptom": "symptom",
}


class TimelineEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    event_type: EventType
    event_date: datetime
    activity_type: str | None = None
    severity: Severity | None = None
    description: str | None = None
    structured_data: EventData

    @model_validator(mode="before")
    @classmethod
    def tag_structured_data(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        raw = data.get("structured_data")
        if isinstance(raw, BaseModel):
            return data
        kind = _DATA_KIND_BY_EVENT_TYPE.get(str(data.get("event_type") or ""), "generic")
        payload = dict(raw) if isinstance(raw, dict) else {}
        payload["kind"] = kind
        return {**data, "structured_data": payload}

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def stringify_ids(cls, value: Any) -> Any:
        if value is None:
            return value
        return str(value)

    @field_validator("activity_type", mode="before")
    @classmethod
    def normalize_activity_type(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        cleaned = value.strip().lower()
        return cleaned or None

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, value: Any) -> str | None:
        # Free-text severities outside the scale are dropped, not rejected.
        if not isinstance(value, str):
            return None
        cleaned = value.strip().lower()
        return cleaned if cleaned in _SEVERITIES else None

    @field_validator("event_date")
    @classmethod
    def event_date_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    def text(self) -> str:
        """Lower-cased description used by phrase matching."""
        return (self.description or "").lower()


# ---------------------------------------------------------------------------
# Derived state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AchievementKey:
    """Composite unique key of Achievement and AchievementProgress rows."""

    user_id: str
    type: str
    category: str


class Achievement(BaseModel):
    id: str | None = None
    user_id: str
    type: AchievementType
    category: str
    start_date: date
    current_streak: int = Field(ge=0)
    last_event_date: date | None = None
    insight_text: str
    status: AchievementStatus = "active"
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> AchievementKey:
        return AchievementKey(self.user_id, self.type, self.category)

    def same_state(self, other: "Achievement") -> bool:
        """True when a write of ``other`` would not change this row."""
        return (
            self.start_date == other.start_date
            and self.current_streak == other.current_streak
            and self.last_event_date == other.last_event_date
            and self.insight_text == other.insight_text
            and self.status == other.status
        )


class AchievementProgress(BaseModel):
    user_id: str
    type: AchievementType
    category: str
    current_count: int = Field(ge=0)
    required_count: int = Field(ge=1)
    progress_message: str
    last_updated: datetime

    @property
    def key(self) -> AchievementKey:
        return AchievementKey(self.user_id, self.type, self.category)


class LifestyleFocus(BaseModel):
    id: str
    user_id: str
    focus_type: str
    status: FocusStatus
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    start_date: date

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def stringify_ids(cls, value: Any) -> Any:
        return str(value) if value is not None else value


class LifestyleAchievement(BaseModel):
    id: str | None = None
    user_id: str
    focus_id: str | None = None
    achievement_type: LifestyleAchievementType
    title: str
    insight_text: str
    confidence: float = Field(ge=0.0, le=1.0)
    date_triggered: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class InferredPattern(BaseModel):
    user_id: str
    pattern_type: str
    detection_count: int = Field(ge=0)
    last_detected: datetime
    confirmation_shown: bool = False
    user_response: UserResponse | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    message: str = ""


class AchievementPreferences(BaseModel):
    user_id: str
    progressive_complexity: int = 1
    notifications_enabled: bool = True
    timezone: str | None = None

    @field_validator("progressive_complexity", mode="before")
    @classmethod
    def default_level(cls, value: Any) -> Any:
        return 1 if value is None else value

    @field_validator("notifications_enabled", mode="before")
    @classmethod
    def default_enabled(cls, value: Any) -> Any:
        return True if value is None else value


class AchievementNotification(BaseModel):
    user_id: str
    achievement_id: str | None = None
    notification_type: NotificationType
    message: str
