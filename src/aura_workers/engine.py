"""Achievement engine entry points.

Three re-entrant calculations per user, each reading the event store and
the derived-state store and writing derived records back:

- run_achievement_calculation: gated detectors, then the expiration sweeper
- run_lifestyle_calculation: the focus detector suite
- run_pattern_inference: focus proposals from raw behaviour

A detector that raises is logged and skipped; the remaining detectors and
the sweeper still run. Store errors propagate and abort the user's pass.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from .dates import resolve_timezone_context
from .detectors.base import DetectionContext, DetectorOutput
from .detectors.consistency import WINDOW_DAYS as ACHIEVEMENT_LOOKBACK_DAYS
from .detectors.expiration import find_expired, is_stale
from .errors import DetectorError, classify_error
from .events import load_events
from .gate import select_detectors
from .inference import WINDOW_DAYS as INFERENCE_LOOKBACK_DAYS
from .inference import infer_patterns
from .lifestyle import (
    FOCUS_DETECTORS,
    MAX_DEDUP_DAYS,
    LifestyleContext,
    detect_recovery_safe,
    observable_focuses,
)
from .lifestyle import WINDOW_DAYS as LIFESTYLE_LOOKBACK_DAYS
from .metrics import record_detector_invocation, record_user_processed
from .models import (
    Achievement,
    AchievementKey,
    AchievementPreferences,
    AchievementProgress,
    InferredPattern,
    LifestyleAchievement,
    as_utc,
)
from .notifications import notify_new_achievements
from .prompts import WINDOW_DAYS as PROMPT_LOOKBACK_DAYS
from .prompts import contextual_prompts
from .store import AchievementStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AchievementCalculation:
    new_achievements: list[Achievement] = field(default_factory=list)
    updated_achievements: list[Achievement] = field(default_factory=list)
    expired_achievements: list[Achievement] = field(default_factory=list)
    progress: list[AchievementProgress] = field(default_factory=list)
    failed_detectors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "new_achievements": [a.model_dump(mode="json") for a in self.new_achievements],
            "progress": [p.model_dump(mode="json") for p in self.progress],
        }


@dataclass
class UserPassResult:
    user_id: str
    achievements: AchievementCalculation
    lifestyle: list[LifestyleAchievement]
    patterns: list[InferredPattern]
    notifications_sent: int = 0
    prompts: list[str] = field(default_factory=list)


@dataclass
class SweepResult:
    processed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def _resolve_now(now: datetime | None) -> datetime:
    return as_utc(now) if now is not None else datetime.now(UTC)


def _guarded(name: str, user_id: str, fn: Callable[[], T]) -> tuple[bool, T | None]:
    """Run one detector, timing it. Failures are logged, never raised."""
    t0 = time.monotonic()
    try:
        value = fn()
    except Exception as exc:
        duration_ms = (time.monotonic() - t0) * 1000
        record_detector_invocation(name, duration_ms, success=False)
        error = DetectorError(name, exc)
        logger.exception(
            "%s (user %s)",
            error, user_id,
            extra={
                "aura_detector": name,
                "aura_user_id": user_id,
                "aura_duration_ms": duration_ms,
                "aura_error_class": classify_error(error),
            },
        )
        return False, None
    duration_ms = (time.monotonic() - t0) * 1000
    record_detector_invocation(name, duration_ms, success=True)
    return True, value


async def _load_preferences(
    store: AchievementStore, user_id: str, preferences: AchievementPreferences | None
) -> AchievementPreferences:
    if preferences is not None:
        return preferences
    return await store.fetch_preferences(user_id)


# ---------------------------------------------------------------------------
# Pattern & achievement detection
# ---------------------------------------------------------------------------


async def _apply_achievement(
    store: AchievementStore,
    draft: Achievement,
    existing: dict[AchievementKey, Achievement],
    result: AchievementCalculation,
    now: datetime,
    timezone_name: str,
) -> None:
    current = existing.get(draft.key)
    if current is not None and current.same_state(draft):
        return
    # A detection whose activity is already stale neither creates nor revives.
    if (current is None or current.status == "expired") and is_stale(draft, now, timezone_name):
        return

    saved, created = await store.upsert_achievement(draft)
    existing[saved.key] = saved

    if created:
        result.new_achievements.append(saved)
    else:
        result.updated_achievements.append(saved)

    if created or (current is not None and current.status == "expired"):
        await store.delete_progress(saved.key)
        logger.info(
            "Achievement %s/%s %s for user %s (streak=%d)",
            saved.type, saved.category,
            "unlocked" if created else "reactivated",
            saved.user_id, saved.current_streak,
        )


async def _sweep_expired(
    store: AchievementStore,
    user_id: str,
    existing: dict[AchievementKey, Achievement],
    result: AchievementCalculation,
    now: datetime,
    timezone_name: str,
) -> None:
    ok, stale = _guarded(
        "expiration", user_id,
        lambda: find_expired(existing.values(), now, timezone_name),
    )
    if not ok:
        result.failed_detectors.append("expiration")
        return
    if not stale:
        return

    await store.expire_achievements([a.id for a in stale if a.id is not None])
    for achievement in stale:
        expired = achievement.model_copy(update={"status": "expired"})
        existing[expired.key] = expired
        result.expired_achievements.append(expired)


async def run_achievement_calculation(
    store: AchievementStore,
    user_id: str,
    *,
    now: datetime | None = None,
    preferences: AchievementPreferences | None = None,
) -> AchievementCalculation:
    """Run the gated detectors for one user, then the expiration sweeper."""
    now = _resolve_now(now)
    preferences = await _load_preferences(store, user_id, preferences)
    timezone_name = resolve_timezone_context(preferences.timezone)["timezone"]

    rows = await store.fetch_events(
        user_id, now - timedelta(days=ACHIEVEMENT_LOOKBACK_DAYS), now
    )
    ctx = DetectionContext(
        user_id=user_id, now=now, events=load_events(rows), timezone_name=timezone_name
    )
    existing = {a.key: a for a in await store.fetch_achievements(user_id)}
    result = AchievementCalculation()

    for spec in select_detectors(preferences.progressive_complexity):
        ok, output = _guarded(spec.name, user_id, lambda: spec.fn(ctx))
        if not ok or output is None:
            result.failed_detectors.append(spec.name)
            continue
        await _apply_output(store, output, existing, result, now, timezone_name)

    await _sweep_expired(store, user_id, existing, result, now, timezone_name)

    logger.info(
        "Achievement pass for user %s: %d new, %d updated, %d expired, %d progress, failed=%s",
        user_id,
        len(result.new_achievements),
        len(result.updated_achievements),
        len(result.expired_achievements),
        len(result.progress),
        result.failed_detectors or "none",
        extra={"aura_user_id": user_id},
    )
    return result


async def _apply_output(
    store: AchievementStore,
    output: DetectorOutput,
    existing: dict[AchievementKey, Achievement],
    result: AchievementCalculation,
    now: datetime,
    timezone_name: str,
) -> None:
    for draft in output.achievements:
        await _apply_achievement(store, draft, existing, result, now, timezone_name)
    for progress in output.progress:
        await store.upsert_progress(progress)
        result.progress.append(progress)


# ---------------------------------------------------------------------------
# Lifestyle focus suite
# ---------------------------------------------------------------------------


async def run_lifestyle_calculation(
    store: AchievementStore,
    user_id: str,
    *,
    now: datetime | None = None,
    preferences: AchievementPreferences | None = None,
) -> list[LifestyleAchievement]:
    """Evaluate every observable focus; returns the records inserted in this pass."""
    now = _resolve_now(now)
    focuses = observable_focuses(await store.fetch_active_focuses(user_id))
    if not focuses:
        logger.debug("No active lifestyle focuses for user %s", user_id)
        return []

    rows = await store.fetch_events(user_id, now - timedelta(days=LIFESTYLE_LOOKBACK_DAYS), now)
    events = load_events(rows)
    if not events:
        return []

    preferences = await _load_preferences(store, user_id, preferences)
    ctx = LifestyleContext(
        user_id=user_id,
        now=now,
        events=events,
        timezone_name=resolve_timezone_context(preferences.timezone)["timezone"],
        recent=await store.fetch_lifestyle_achievements(
            user_id, now - timedelta(days=MAX_DEDUP_DAYS)
        ),
    )
    created: list[LifestyleAchievement] = []

    async def emit(record: LifestyleAchievement | None) -> None:
        if record is None:
            return
        saved = await store.insert_lifestyle_achievement(record)
        ctx.recent.append(saved)
        created.append(saved)

    for focus in focuses:
        for name, fn in FOCUS_DETECTORS:
            _ok, record = _guarded(name, user_id, lambda: fn(ctx, focus))
            await emit(record)

    _ok, record = _guarded("recovery_safe", user_id, lambda: detect_recovery_safe(ctx))
    await emit(record)

    logger.info(
        "Lifestyle pass for user %s: %d focuses, %d new records",
        user_id, len(focuses), len(created),
        extra={"aura_user_id": user_id},
    )
    return created


# ---------------------------------------------------------------------------
# Pattern inference
# ---------------------------------------------------------------------------


async def run_pattern_inference(
    store: AchievementStore,
    user_id: str,
    *,
    now: datetime | None = None,
) -> list[InferredPattern]:
    now = _resolve_now(now)
    rows = await store.fetch_events(user_id, now - timedelta(days=INFERENCE_LOOKBACK_DAYS), now)
    events = load_events(rows)
    if not events:
        return []

    ok, proposals = _guarded("pattern_inference", user_id, lambda: infer_patterns(user_id, events, now))
    if not ok or not proposals:
        return []
    return [await store.upsert_inferred_pattern(p) for p in proposals]


# ---------------------------------------------------------------------------
# Per-user pass and batch sweep
# ---------------------------------------------------------------------------


async def calculate_for_user(
    store: AchievementStore,
    user_id: str,
    *,
    now: datetime | None = None,
    preferences: AchievementPreferences | None = None,
) -> UserPassResult:
    """All three calculations for one user, then notifications and data-gap prompts."""
    now = _resolve_now(now)
    preferences = await _load_preferences(store, user_id, preferences)

    achievements = await run_achievement_calculation(
        store, user_id, now=now, preferences=preferences
    )
    lifestyle = await run_lifestyle_calculation(store, user_id, now=now, preferences=preferences)
    patterns = await run_pattern_inference(store, user_id, now=now)

    sent = 0
    if preferences.notifications_enabled:
        sent = await notify_new_achievements(
            store, user_id, achievements.new_achievements, lifestyle
        )

    recent_rows = await store.fetch_events(user_id, now - timedelta(days=PROMPT_LOOKBACK_DAYS), now)
    prompts = contextual_prompts(load_events(recent_rows), now)

    return UserPassResult(
        user_id=user_id,
        achievements=achievements,
        lifestyle=lifestyle,
        patterns=patterns,
        notifications_sent=sent,
        prompts=prompts,
    )


async def run_batch_sweep(
    store: AchievementStore,
    *,
    now: datetime | None = None,
    active_window_hours: int = 24,
    user_ids: Iterable[str] | None = None,
) -> SweepResult:
    """Recalculate every recently active user; one user's failure never blocks others."""
    now = _resolve_now(now)
    if user_ids is None:
        user_ids = await store.fetch_recently_active_users(now - timedelta(hours=active_window_hours))
    result = SweepResult()

    for user_id in user_ids:
        try:
            async with store.transaction():
                await store.lock_user(user_id)
                preferences = await store.fetch_preferences(user_id)
                if not preferences.notifications_enabled:
                    logger.info("Skipping user %s: notifications disabled", user_id)
                    result.skipped.append(user_id)
                    continue
                await calculate_for_user(store, user_id, now=now, preferences=preferences)
        except Exception as exc:
            error_class = classify_error(exc)
            result.failed[user_id] = error_class
            record_user_processed(success=False)
            logger.exception(
                "Achievement sweep failed for user %s (%s)",
                user_id, error_class,
                extra={"aura_user_id": user_id},
            )
            continue
        result.processed.append(user_id)
        record_user_processed(success=True)

    logger.info(
        "Achievement sweep complete: %d processed, %d skipped, %d failed",
        len(result.processed), len(result.skipped), len(result.failed),
    )
    return result
