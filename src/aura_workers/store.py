"""Event store and derived-state store access.

``AchievementStore`` is the seam the engine depends on. ``PostgresStore``
implements it on a psycopg async connection; uniqueness of achievements,
progress rows and inferred patterns is enforced by the schema and every
keyed write is a single INSERT ... ON CONFLICT statement.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import AbstractAsyncContextManager, contextmanager
from datetime import datetime
from typing import Any, Protocol

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row
from psycopg.types.json import Json

from .errors import AchievementConflictError, StoreUnavailableError
from .models import (
    Achievement,
    AchievementKey,
    AchievementNotification,
    AchievementPreferences,
    AchievementProgress,
    InferredPattern,
    LifestyleAchievement,
    LifestyleFocus,
)

logger = logging.getLogger(__name__)


class AchievementStore(Protocol):
    """Queries the engine needs from the event and derived-state stores."""

    def transaction(self) -> AbstractAsyncContextManager[Any]: ...

    async def lock_user(self, user_id: str) -> None: ...

    async def fetch_events(
        self, user_id: str, date_from: datetime, date_to: datetime
    ) -> list[dict[str, Any]]: ...

    async def fetch_preferences(self, user_id: str) -> AchievementPreferences: ...

    async def fetch_achievements(self, user_id: str) -> list[Achievement]: ...

    async def upsert_achievement(self, achievement: Achievement) -> tuple[Achievement, bool]: ...

    async def expire_achievements(self, achievement_ids: list[str]) -> int: ...

    async def upsert_progress(self, progress: AchievementProgress) -> None: ...

    async def delete_progress(self, key: AchievementKey) -> None: ...

    async def fetch_active_focuses(self, user_id: str) -> list[LifestyleFocus]: ...

    async def fetch_lifestyle_achievements(
        self, user_id: str, since: datetime
    ) -> list[LifestyleAchievement]: ...

    async def insert_lifestyle_achievement(
        self, achievement: LifestyleAchievement
    ) -> LifestyleAchievement: ...

    async def upsert_inferred_pattern(self, pattern: InferredPattern) -> InferredPattern: ...

    async def fetch_recently_active_users(self, since: datetime) -> list[str]: ...

    async def insert_notification(self, notification: AchievementNotification) -> None: ...


@contextmanager
def _translate_store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except pg_errors.UniqueViolation as exc:
        raise AchievementConflictError(f"{operation}: unique key conflict ({exc})") from exc
    except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
        raise StoreUnavailableError(f"{operation}: store unavailable ({exc})") from exc


_ACHIEVEMENT_COLUMNS = (
    "id::text AS id, user_id::text AS user_id, type, category, start_date, "
    "current_streak, last_event_date, insight_text, status, metadata"
)


def _achievement_from_row(row: dict[str, Any]) -> Achievement:
    return Achievement.model_validate({**row, "metadata": row.get("metadata") or {}})


class PostgresStore:
    """AchievementStore on a psycopg async connection.

    The caller owns the connection and the surrounding transaction.
    """

    def __init__(self, conn: psycopg.AsyncConnection[Any]) -> None:
        self.conn = conn

    def transaction(self) -> AbstractAsyncContextManager[Any]:
        return self.conn.transaction()

    async def lock_user(self, user_id: str) -> None:
        """Serialize achievement passes for the same user (transaction-scoped)."""
        with _translate_store_errors("lock_user"):
            await self.conn.execute(
                "SELECT pg_advisory_xact_lock(hashtext(%s)::bigint)",
                (str(user_id),),
            )

    async def fetch_events(
        self, user_id: str, date_from: datetime, date_to: datetime
    ) -> list[dict[str, Any]]:
        with _translate_store_errors("fetch_events"):
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT id::text AS id, user_id::text AS user_id, event_type, event_date,
                           activity_type, severity, description, structured_data
                    FROM timeline_events
                    WHERE user_id = %s
                      AND event_date >= %s
                      AND event_date <= %s
                    ORDER BY event_date DESC
                    """,
                    (user_id, date_from, date_to),
                )
                return await cur.fetchall()

    async def fetch_preferences(self, user_id: str) -> AchievementPreferences:
        with _translate_store_errors("fetch_preferences"):
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT progressive_complexity, notifications_enabled, timezone
                    FROM user_achievement_preferences
                    WHERE user_id = %s
                    """,
                    (user_id,),
                )
                row = await cur.fetchone()
        if row is None:
            return AchievementPreferences(user_id=user_id)
        return AchievementPreferences(user_id=user_id, **row)

    async def fetch_achievements(self, user_id: str) -> list[Achievement]:
        with _translate_store_errors("fetch_achievements"):
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    f"SELECT {_ACHIEVEMENT_COLUMNS} FROM achievements WHERE user_id = %s",
                    (user_id,),
                )
                rows = await cur.fetchall()
        return [_achievement_from_row(r) for r in rows]

    async def upsert_achievement(self, achievement: Achievement) -> tuple[Achievement, bool]:
        """Insert or update by (user_id, type, category). Returns (row, created)."""
        with _translate_store_errors("upsert_achievement"):
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    f"""
                    INSERT INTO achievements (
                        user_id, type, category, start_date, current_streak,
                        last_event_date, insight_text, status, metadata
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, type, category) DO UPDATE SET
                        start_date = EXCLUDED.start_date,
                        current_streak = EXCLUDED.current_streak,
                        last_event_date = EXCLUDED.last_event_date,
                        insight_text = EXCLUDED.insight_text,
                        status = EXCLUDED.status,
                        metadata = EXCLUDED.metadata,
                        updated_at = NOW()
                    RETURNING {_ACHIEVEMENT_COLUMNS}, (xmax = 0) AS created
                    """,
                    (
                        achievement.user_id,
                        achievement.type,
                        achievement.category,
                        achievement.start_date,
                        achievement.current_streak,
                        achievement.last_event_date,
                        achievement.insight_text,
                        achievement.status,
                        Json(achievement.metadata),
                    ),
                )
                row = await cur.fetchone()
        created = bool(row.pop("created"))
        return _achievement_from_row(row), created

    async def expire_achievements(self, achievement_ids: list[str]) -> int:
        if not achievement_ids:
            return 0
        with _translate_store_errors("expire_achievements"):
            async with self.conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE achievements
                    SET status = 'expired', updated_at = NOW()
                    WHERE id = ANY(%s::uuid[]) AND status <> 'expired'
                    """,
                    (achievement_ids,),
                )
                return cur.rowcount

    async def upsert_progress(self, progress: AchievementProgress) -> None:
        with _translate_store_errors("upsert_progress"):
            await self.conn.execute(
                """
                INSERT INTO achievement_progress (
                    user_id, type, category, current_count, required_count,
                    progress_message, last_updated
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (user_id, type, category) DO UPDATE SET
                    current_count = EXCLUDED.current_count,
                    required_count = EXCLUDED.required_count,
                    progress_message = EXCLUDED.progress_message,
                    last_updated = EXCLUDED.last_updated
                """,
                (
                    progress.user_id,
                    progress.type,
                    progress.category,
                    progress.current_count,
                    progress.required_count,
                    progress.progress_message,
                    progress.last_updated,
                ),
            )

    async def delete_progress(self, key: AchievementKey) -> None:
        with _translate_store_errors("delete_progress"):
            await self.conn.execute(
                "DELETE FROM achievement_progress WHERE user_id = %s AND type = %s AND category = %s",
                (key.user_id, key.type, key.category),
            )

    async def fetch_active_focuses(self, user_id: str) -> list[LifestyleFocus]:
        with _translate_store_errors("fetch_active_focuses"):
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT id::text AS id, user_id::text AS user_id, focus_type, status,
                           COALESCE(confidence, 0.5) AS confidence, start_date
                    FROM lifestyle_focus
                    WHERE user_id = %s AND status IN ('active', 'user_declared')
                    ORDER BY start_date, id
                    """,
                    (user_id,),
                )
                rows = await cur.fetchall()
        return [LifestyleFocus.model_validate(r) for r in rows]

    async def fetch_lifestyle_achievements(
        self, user_id: str, since: datetime
    ) -> list[LifestyleAchievement]:
        with _translate_store_errors("fetch_lifestyle_achievements"):
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT id::text AS id, user_id::text AS user_id, focus_id::text AS focus_id,
                           achievement_type, title, insight_text,
                           COALESCE(confidence, 0) AS confidence, date_triggered,
                           COALESCE(metadata, '{}'::jsonb) AS metadata
                    FROM lifestyle_achievements
                    WHERE user_id = %s AND date_triggered >= %s
                    ORDER BY date_triggered DESC
                    """,
                    (user_id, since),
                )
                rows = await cur.fetchall()
        return [LifestyleAchievement.model_validate(r) for r in rows]

    async def insert_lifestyle_achievement(
        self, achievement: LifestyleAchievement
    ) -> LifestyleAchievement:
        with _translate_store_errors("insert_lifestyle_achievement"):
            async with self.conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO lifestyle_achievements (
                        user_id, focus_id, achievement_type, title, insight_text,
                        confidence, date_triggered, metadata
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING id::text
                    """,
                    (
                        achievement.user_id,
                        achievement.focus_id,
                        achievement.achievement_type,
                        achievement.title,
                        achievement.insight_text,
                        achievement.confidence,
                        achievement.date_triggered,
                        Json(achievement.metadata),
                    ),
                )
                row = await cur.fetchone()
        return achievement.model_copy(update={"id": row[0]})

    async def upsert_inferred_pattern(self, pattern: InferredPattern) -> InferredPattern:
        """Refresh detection_count/last_detected; the user's response is left untouched."""
        with _translate_store_errors("upsert_inferred_pattern"):
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    INSERT INTO inferred_patterns (
                        user_id, pattern_type, detection_count, last_detected, metadata
                    )
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, pattern_type) DO UPDATE SET
                        detection_count = EXCLUDED.detection_count,
                        last_detected = EXCLUDED.last_detected,
                        metadata = EXCLUDED.metadata
                    RETURNING COALESCE(confirmation_shown, FALSE) AS confirmation_shown,
                              user_response
                    """,
                    (
                        pattern.user_id,
                        pattern.pattern_type,
                        pattern.detection_count,
                        pattern.last_detected,
                        Json({"confidence": pattern.confidence, "message": pattern.message}),
                    ),
                )
                row = await cur.fetchone()
        return pattern.model_copy(update=row)

    async def fetch_recently_active_users(self, since: datetime) -> list[str]:
        with _translate_store_errors("fetch_recently_active_users"):
            async with self.conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT DISTINCT user_id::text
                    FROM timeline_events
                    WHERE created_at >= %s
                    ORDER BY 1
                    """,
                    (since,),
                )
                rows = await cur.fetchall()
        return [r[0] for r in rows]

    async def insert_notification(self, notification: AchievementNotification) -> None:
        with _translate_store_errors("insert_notification"):
            await self.conn.execute(
                """
                INSERT INTO achievement_notifications (
                    user_id, achievement_id, notification_type, message
                )
                VALUES (%s, %s, %s, %s)
                """,
                (
                    notification.user_id,
                    notification.achievement_id,
                    notification.notification_type,
                    notification.message,
                ),
            )
