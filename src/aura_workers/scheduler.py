"""Durable recurring scheduler for the periodic achievement sweep."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Json

from .models import as_utc

logger = logging.getLogger(__name__)

SWEEP_SCHEDULER_KEY = "achievement_sweep"
SWEEP_JOB_TYPE = "achievements.sweep"


def due_run_count(now: datetime, next_run_at: datetime, interval_hours: int) -> int:
    """Return how many runs are due, including missed catch-up slots."""
    if interval_hours <= 0:
        raise ValueError("interval_hours must be positive")

    now_utc = as_utc(now)
    next_run_utc = as_utc(next_run_at)
    if now_utc < next_run_utc:
        return 0

    elapsed_seconds = (now_utc - next_run_utc).total_seconds()
    return int(elapsed_seconds // (interval_hours * 3600)) + 1


async def ensure_sweep_job(
    conn: psycopg.AsyncConnection[Any],
    interval_hours: int,
    active_window_hours: int,
) -> int | None:
    """Keep at most one sweep job in flight. Returns the new job id, if any.

    Missed slots collapse into a single sweep; the next run is pushed past
    all of them.
    """
    async with conn.cursor(row_factory=dict_row) as cur:
        await cur.execute(
            """
            INSERT INTO achievement_scheduler_state (scheduler_key, interval_hours, next_run_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (scheduler_key) DO NOTHING
            """,
            (SWEEP_SCHEDULER_KEY, interval_hours),
        )
        await cur.execute(
            """
            SELECT next_run_at, in_flight_job_id
            FROM achievement_scheduler_state
            WHERE scheduler_key = %s
            FOR UPDATE
            """,
            (SWEEP_SCHEDULER_KEY,),
        )
        state = await cur.fetchone()
        if state is None:
            return None

        if state["in_flight_job_id"] is not None:
            await cur.execute(
                "SELECT status, error_message FROM background_jobs WHERE id = %s",
                (state["in_flight_job_id"],),
            )
            job = await cur.fetchone()
            if job is not None and job["status"] in ("pending", "processing"):
                return None
            status = "completed" if job is not None and job["status"] == "completed" else "failed"
            await cur.execute(
                """
                UPDATE achievement_scheduler_state
                SET in_flight_job_id = NULL,
                    last_run_status = %s,
                    last_error = %s,
                    total_runs = total_runs + CASE WHEN %s = 'completed' THEN 1 ELSE 0 END,
                    updated_at = NOW()
                WHERE scheduler_key = %s
                """,
                (
                    status,
                    None if status == "completed" else (job or {}).get("error_message") or "sweep job missing",
                    status,
                    SWEEP_SCHEDULER_KEY,
                ),
            )

        run_count = due_run_count(datetime.now(timezone.utc), state["next_run_at"], interval_hours)
        if run_count == 0:
            return None

        await cur.execute(
            """
            INSERT INTO background_jobs (job_type, payload, scheduled_for)
            VALUES (%s, %s, NOW())
            RETURNING id
            """,
            (SWEEP_JOB_TYPE, Json({"active_window_hours": active_window_hours, "due_runs": run_count})),
        )
        row = await cur.fetchone()
        job_id = int(row["id"])

        await cur.execute(
            """
            UPDATE achievement_scheduler_state
            SET in_flight_job_id = %s,
                interval_hours = %s,
                last_run_status = 'running',
                next_run_at = next_run_at + make_interval(hours => %s),
                updated_at = NOW()
            WHERE scheduler_key = %s
            """,
            (job_id, interval_hours, interval_hours * run_count, SWEEP_SCHEDULER_KEY),
        )

    logger.info("Scheduled %s (job_id=%d, due_runs=%d)", SWEEP_JOB_TYPE, job_id, run_count)
    return job_id
