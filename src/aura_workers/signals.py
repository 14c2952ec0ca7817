"""Declarative signal tables for lifestyle detection.

A behaviour is described as data: which event types count, which
description phrases and which structured-data tags mark it. Adding a new
tracked behaviour means adding a row here, not a new code path.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import GenericData, MealData, MomentData, SymptomData, TimelineEvent, WorkoutData


def event_tags(event: TimelineEvent) -> frozenset[str]:
    """Structured-data tags of an event, as "field:value" strings."""
    data = event.structured_data
    tags: set[str] = set()
    if isinstance(data, MomentData):
        if data.moment_type:
            tags.add(f"moment_type:{data.moment_type.lower()}")
    elif isinstance(data, MealData):
        if data.sugar_level:
            tags.add(f"sugar_level:{data.sugar_level.lower()}")
        if data.meal_type:
            tags.add(f"meal_type:{data.meal_type.lower()}")
    elif isinstance(data, WorkoutData):
        if data.intensity:
            tags.add(f"intensity:{data.intensity.lower()}")
    elif isinstance(data, SymptomData):
        if data.body_area:
            tags.add(f"body_area:{data.body_area.lower()}")
    elif isinstance(data, GenericData):
        pass
    else:
        raise TypeError(f"Unhandled structured_data type: {type(data).__name__}")
    return frozenset(tags)


@dataclass(frozen=True)
class SignalRule:
    """Match events by type plus any of the phrases or tags.

    ``event_types=None`` accepts every event type.
    """

    event_types: frozenset[str] | None = None
    phrases: tuple[str, ...] = ()
    tags: frozenset[str] = field(default_factory=frozenset)

    def matches(self, event: TimelineEvent) -> bool:
        if self.event_types is not None and event.event_type not in self.event_types:
            return False
        if self.phrases:
            text = event.text()
            if any(phrase in text for phrase in self.phrases):
                return True
        if self.tags and event_tags(event) & self.tags:
            return True
        return False


def matches_any(rules: tuple[SignalRule, ...], event: TimelineEvent) -> bool:
    return any(rule.matches(event) for rule in rules)


def _rule(*event_types: str, phrases: tuple[str, ...] = (), tags: tuple[str, ...] = ()) -> SignalRule:
    return SignalRule(
        event_types=frozenset(event_types) if event_types else None,
        phrases=phrases,
        tags=frozenset(tags),
    )


# ---------------------------------------------------------------------------
# Note-based abstinence streaks (achievement type "lifestyle")
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AbstinenceSignal:
    category: str
    label: str
    rule: SignalRule


ABSTINENCE_SIGNALS: tuple[AbstinenceSignal, ...] = (
    AbstinenceSignal("alcohol_free", "alcohol-free", _rule("note", phrases=("no alcohol", "alcohol-free"))),
    AbstinenceSignal("sugar_free", "sugar-free", _rule("note", phrases=("no sugar", "sugar-free"))),
    AbstinenceSignal("caffeine_free", "caffeine-free", _rule("note", phrases=("no caffeine", "caffeine-free"))),
)


# ---------------------------------------------------------------------------
# Lifestyle focus signals
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FocusSignal:
    focus_type: str
    rules: tuple[SignalRule, ...]
    insight_text: str


_ALCOHOL_FREE_RULES = (
    _rule("moment", tags=("moment_type:alcohol_free",)),
    _rule("note", phrases=("no alcohol", "alcohol-free")),
)

SHIFT_SIGNALS: dict[str, FocusSignal] = {
    s.focus_type: s
    for s in (
        FocusSignal(
            "alcohol_free",
            _ALCOHOL_FREE_RULES,
            "You chose no alcohol today. Aura will observe how this affects your sleep rhythm.",
        ),
        FocusSignal(
            "reduce_sugar",
            (_rule("meal", phrases=("no sugar", "low sugar", "sugar-free"), tags=("sugar_level:low",)),),
            "Low-sugar choices today. Let's observe how your energy responds.",
        ),
        FocusSignal(
            "improve_sleep",
            (_rule("note", phrases=("early bed", "sleep", "rest")),),
            "Earlier rest tonight. Aura will watch how this shapes your rhythm.",
        ),
        FocusSignal(
            "reduce_caffeine",
            (
                _rule("moment", tags=("moment_type:caffeine_skip",)),
                _rule("note", phrases=("no caffeine", "caffeine-free")),
            ),
            "Caffeine-free today. We'll observe your sleep quality tonight.",
        ),
        FocusSignal(
            "reduce_late_meals",
            (_rule("note", phrases=("early dinner", "no late meal")),),
            "Earlier eating window today. Digestion will appreciate the rest.",
        ),
        FocusSignal(
            "gut_health",
            (_rule("meal", phrases=("fiber", "vegetables", "probiotic")),),
            "Gut-supporting choices today. Steady changes reshape your microbiome.",
        ),
    )
}

AVOIDANCE_SIGNALS: dict[str, FocusSignal] = {
    s.focus_type: s
    for s in (
        FocusSignal(
            "reduce_late_meals",
            (_rule("note", phrases=("no late meal", "stopped eating early")),),
            "No late meals today. Easier digestion expected tonight.",
        ),
        FocusSignal(
            "reduce_caffeine",
            (_rule(phrases=("no coffee", "skipped caffeine")),),
            "No caffeine today. Calmer nervous system ahead.",
        ),
    )
}

LOW_INTENSITY_ACTIVITIES: frozenset[str] = frozenset({"yoga", "stretching", "walking"})
FLEXIBILITY_ACTIVITIES: frozenset[str] = frozenset({"yoga", "pilates", "stretching"})

REST_DAY_RULE = _rule("note", phrases=("rest day", "taking it easy", "recovery"))

# focus_type substring -> event category observed by the restart detector
RESTART_CATEGORIES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("workout", "movement"), "workout"),
    (("meal", "nutrition"), "meal"),
)


def restart_category(focus_type: str) -> str | None:
    for needles, category in RESTART_CATEGORIES:
        if any(needle in focus_type for needle in needles):
            return category
    return None


# ---------------------------------------------------------------------------
# Pattern inference signatures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PatternSignature:
    name: str
    pattern_type: str
    rules: tuple[SignalRule, ...]
    base: float
    increment: float
    cap: float
    message: str
    min_count: int = 3

    def confidence(self, count: int) -> float:
        return round(min(self.base + count * self.increment, self.cap), 4)


PATTERN_SIGNATURES: tuple[PatternSignature, ...] = (
    PatternSignature(
        "alcohol_free_mentions",
        "alcohol_free",
        _ALCOHOL_FREE_RULES,
        0.5, 0.1, 0.9,
        "It looks like you're choosing alcohol-free days. Want Aura to observe this?",
    ),
    PatternSignature(
        "caffeine_skips",
        "reduce_caffeine",
        (_rule("moment", tags=("moment_type:caffeine_skip",)),),
        0.5, 0.1, 0.9,
        "It looks like you're reducing caffeine. Want Aura to observe this?",
    ),
    PatternSignature(
        "tea_substitution",
        "reduce_caffeine",
        (_rule("moment", tags=("moment_type:tea",)),),
        0.4, 0.08, 0.8,
        "It looks like you're choosing tea more often. Want Aura to observe this shift?",
    ),
    PatternSignature(
        "early_sleep_mentions",
        "improve_sleep",
        (_rule("note", phrases=("early bed", "earlier sleep")),),
        0.5, 0.1, 0.9,
        "It looks like you're choosing earlier sleep. Want Aura to observe this?",
    ),
    PatternSignature(
        "vegetable_meals",
        "gut_health",
        (_rule("meal", phrases=("vegetables", "salad", "greens")),),
        0.5, 0.1, 0.9,
        "It looks like you're increasing vegetable intake. Want Aura to observe gut health?",
    ),
    PatternSignature(
        "low_sugar_meals",
        "reduce_sugar",
        (_rule("meal", tags=("sugar_level:low",)),),
        0.5, 0.1, 0.9,
        "It looks like you're choosing lower sugar meals. Want Aura to observe this?",
    ),
)
