"""End-to-end against a real PostgreSQL. Skipped unless DATABASE_URL is set."""

import os
import uuid
from datetime import UTC, datetime, timedelta
from importlib import resources

import psycopg
import pytest

from aura_workers.engine import calculate_for_user, run_achievement_calculation
from aura_workers.store import PostgresStore

DATABASE_URL = os.environ.get("DATABASE_URL")

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="DATABASE_URL not set")

NOW = datetime.now(UTC).replace(hour=12, minute=0, second=0, microsecond=0)


@pytest.fixture
async def conn():
    async with await psycopg.AsyncConnection.connect(DATABASE_URL) as conn:
        schema = resources.files("aura_workers").joinpath("sql/schema.sql").read_text()
        await conn.execute(schema)
        await conn.commit()
        yield conn
        await conn.rollback()


async def _insert_workouts(conn, user_id, *days_ago):
    for d in days_ago:
        await conn.execute(
            """
            INSERT INTO timeline_events (user_id, event_type, event_date, activity_type)
            VALUES (%s, 'workout', %s, 'running')
            """,
            (user_id, NOW - timedelta(days=d)),
        )


@pytest.mark.asyncio
async def test_consistency_round_trip_is_idempotent(conn):
    user_id = str(uuid.uuid4())
    await _insert_workouts(conn, user_id, 0, 1, 2)
    store = PostgresStore(conn)

    async with conn.transaction():
        await store.lock_user(user_id)
        first = await calculate_for_user(store, user_id, now=NOW)
    async with conn.transaction():
        await store.lock_user(user_id)
        second = await run_achievement_calculation(store, user_id, now=NOW)

    assert [a.category for a in first.achievements.new_achievements] == ["workout"]
    assert second.new_achievements == []

    async with conn.cursor() as cur:
        await cur.execute(
            "SELECT count(*) FROM achievements WHERE user_id = %s AND type = 'consistency'",
            (user_id,),
        )
        assert (await cur.fetchone())[0] == 1
        await cur.execute(
            "SELECT notification_type FROM achievement_notifications WHERE user_id = %s",
            (user_id,),
        )
        assert await cur.fetchall() == [("unlock",)]


@pytest.mark.asyncio
async def test_expiry_and_revival(conn):
    user_id = str(uuid.uuid4())
    await _insert_workouts(conn, user_id, 10, 11, 12)
    store = PostgresStore(conn)

    await run_achievement_calculation(store, user_id, now=NOW - timedelta(days=10))
    expired = await run_achievement_calculation(store, user_id, now=NOW)
    assert [a.category for a in expired.expired_achievements] == ["workout"]

    await _insert_workouts(conn, user_id, 0, 1, 2)
    revived = await run_achievement_calculation(store, user_id, now=NOW)
    [achievement] = revived.updated_achievements
    assert achievement.status == "active"
    assert achievement.id == expired.expired_achievements[0].id
