"""Background job handlers for achievement calculation.

achievements.calculate  one user, enqueued after an event write
achievements.sweep      every user active in the recent window, scheduled

Per-user work runs under a transaction-scoped advisory lock so that a
synchronous pass and a scheduled pass for the same user never interleave
their lookup-then-write steps.
"""

import logging
import uuid
from typing import Any

import psycopg

from .engine import calculate_for_user, run_batch_sweep
from .registry import register
from .store import PostgresStore

logger = logging.getLogger(__name__)

DEFAULT_ACTIVE_WINDOW_HOURS = 24


def _require_user_id(payload: dict[str, Any], job_type: str) -> str:
    user_id = payload.get("user_id")
    if not user_id:
        raise ValueError(f"Missing user_id in {job_type} payload")
    try:
        return str(uuid.UUID(str(user_id)))
    except ValueError as exc:
        raise ValueError(f"Invalid user_id in {job_type} payload: {user_id!r}") from exc


@register("achievements.calculate")
async def handle_achievements_calculate(
    conn: psycopg.AsyncConnection[Any], payload: dict[str, Any]
) -> None:
    user_id = _require_user_id(payload, "achievements.calculate")
    store = PostgresStore(conn)
    await store.lock_user(user_id)
    result = await calculate_for_user(store, user_id)
    logger.info(
        "achievements.calculate done for user %s: %d new achievements, %d lifestyle, %d patterns",
        user_id,
        len(result.achievements.new_achievements),
        len(result.lifestyle),
        len(result.patterns),
        extra={"aura_user_id": user_id},
    )


@register("achievements.sweep")
async def handle_achievements_sweep(
    conn: psycopg.AsyncConnection[Any], payload: dict[str, Any]
) -> None:
    try:
        window_hours = max(1, int(payload.get("active_window_hours", DEFAULT_ACTIVE_WINDOW_HOURS)))
    except (TypeError, ValueError):
        window_hours = DEFAULT_ACTIVE_WINDOW_HOURS
    result = await run_batch_sweep(PostgresStore(conn), active_window_hours=window_hours)
    if result.failed:
        logger.warning("achievements.sweep finished with %d failed users", len(result.failed))
