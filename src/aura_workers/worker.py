import asyncio
import logging
import signal
from typing import Any

import psycopg
from psycopg.rows import dict_row

from .config import Config
from .errors import classify_error, is_retryable
from .metrics import record_job_completed, record_job_dead, record_job_failed
from .registry import get_handler
from .scheduler import ensure_sweep_job

logger = logging.getLogger(__name__)

LISTEN_CHANNEL = "aura_jobs"
RECONNECT_DELAY_SECONDS = 5

_CLAIM_SQL = """
    UPDATE background_jobs
    SET status = 'processing', started_at = NOW(), attempt = attempt + 1
    WHERE id IN (
        SELECT id FROM background_jobs
        WHERE status = 'pending' AND scheduled_for <= NOW()
        ORDER BY scheduled_for, priority DESC, id
        LIMIT %s
        FOR UPDATE SKIP LOCKED
    )
    RETURNING id, user_id, job_type, payload, attempt, max_retries
"""

_COMPLETE_SQL = """
    UPDATE background_jobs
    SET status = 'completed', completed_at = NOW()
    WHERE id = %s
"""

_DEAD_SQL = """
    UPDATE background_jobs
    SET status = 'dead', error_message = %s, completed_at = NOW()
    WHERE id = %s
"""

_RESCHEDULE_SQL = """
    UPDATE background_jobs
    SET status = 'pending',
        error_message = %s,
        scheduled_for = NOW() + make_interval(secs => %s)
    WHERE id = %s
"""


def retry_delay_seconds(attempt: int) -> float:
    return float(2**attempt)


class Worker:
    """Drains ``background_jobs``.

    NOTIFY on ``aura_jobs`` only wakes the drain loop; the loop also runs
    every ``poll_interval_seconds`` so that retries scheduled in the future
    and the sweep scheduler tick without any notification.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self._shutdown = asyncio.Event()
        self._wake = asyncio.Event()

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.stop)

        logger.info(
            "Worker starting (poll_interval=%.1fs, batch_size=%d, sweep_interval=%dh)",
            self.config.poll_interval_seconds,
            self.config.batch_size,
            self.config.sweep_interval_hours,
        )
        if self.config.listen_database_url != self.config.database_url:
            logger.info("Worker LISTEN uses dedicated database URL")

        async with asyncio.TaskGroup() as tg:
            tg.create_task(self._listen())
            tg.create_task(self._drain())

    def stop(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown.set()
        self._wake.set()

    async def _listen(self) -> None:
        while not self._shutdown.is_set():
            try:
                async with await psycopg.AsyncConnection.connect(
                    self.config.listen_database_url, autocommit=True
                ) as conn:
                    await conn.execute(f"LISTEN {LISTEN_CHANNEL}")
                    logger.info("Listening on %s channel", LISTEN_CHANNEL)
                    while not self._shutdown.is_set():
                        # notifies() ends on timeout; the connection stays open.
                        async for notify in conn.notifies(timeout=self.config.poll_interval_seconds):
                            logger.debug("NOTIFY received: %s", notify.payload)
                            self._wake.set()
            except psycopg.OperationalError:
                if self._shutdown.is_set():
                    break
                logger.warning("LISTEN connection lost, reconnecting in %ds", RECONNECT_DELAY_SECONDS)
                await asyncio.sleep(RECONNECT_DELAY_SECONDS)
        logger.info("Listener stopped")

    async def _drain(self) -> None:
        while not self._shutdown.is_set():
            await self._process_batch()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.config.poll_interval_seconds)
            except TimeoutError:
                pass
            self._wake.clear()
        logger.info("Drain loop stopped")

    async def _process_batch(self) -> None:
        try:
            async with await psycopg.AsyncConnection.connect(self.config.database_url) as conn:
                await self._tick_scheduler(conn)
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(_CLAIM_SQL, (self.config.batch_size,))
                    claimed = await cur.fetchall()
                # Claims are committed before any handler runs.
                await conn.commit()
                for job in claimed:
                    await self._process_job(conn, job)
        except Exception:
            logger.exception("Job batch aborted")

    async def _tick_scheduler(self, conn: psycopg.AsyncConnection[Any]) -> None:
        try:
            await ensure_sweep_job(
                conn,
                self.config.sweep_interval_hours,
                self.config.active_user_window_hours,
            )
            await conn.commit()
        except Exception as exc:
            await conn.rollback()
            logger.warning("Sweep scheduler tick skipped: %s", exc)

    async def _process_job(self, conn: psycopg.AsyncConnection[Any], job: dict[str, Any]) -> None:
        """Run one claimed job; the handler's writes and the completion mark commit together."""
        job_id, job_type = job["id"], job["job_type"]

        handler = get_handler(job_type)
        if handler is None:
            logger.warning("No handler for job_type=%s (job_id=%d)", job_type, job_id)
            await self._finish(conn, _DEAD_SQL, (f"No handler for job_type={job_type}", job_id))
            return

        try:
            async with conn.transaction():
                await handler(conn, job["payload"] or {})
                await conn.execute(_COMPLETE_SQL, (job_id,))
        except Exception as exc:
            await self._handle_failure(conn, job, exc)
        else:
            record_job_completed()
            logger.info("Job %d completed (type=%s)", job_id, job_type)

    async def _handle_failure(
        self,
        conn: psycopg.AsyncConnection[Any],
        job: dict[str, Any],
        exc: Exception,
    ) -> None:
        job_id, attempt = job["id"], job["attempt"]
        error_class = classify_error(exc)
        logger.exception(
            "Job %d failed (type=%s, error_class=%s)",
            job_id, job["job_type"], error_class,
            extra={"aura_job_id": job_id, "aura_error_class": error_class},
        )

        retry_budget = min(job["max_retries"], self.config.max_retries)
        if is_retryable(exc) and attempt < retry_budget:
            delay = retry_delay_seconds(attempt)
            record_job_failed()
            logger.info("Job %d retrying in %.0fs (attempt=%d)", job_id, delay, attempt)
            await self._finish(conn, _RESCHEDULE_SQL, (str(exc), delay, job_id))
            return

        record_job_dead()
        logger.error("Job %d is dead: %s", job_id, exc)
        await self._finish(conn, _DEAD_SQL, (str(exc), job_id))

    async def _finish(self, conn: psycopg.AsyncConnection[Any], sql: str, params: tuple) -> None:
        async with conn.cursor() as cur:
            await cur.execute(sql, params)
        await conn.commit()
