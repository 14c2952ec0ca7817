"""Health and metrics HTTP endpoint for container probes.

Served with asyncio.start_server so the worker needs no web framework.
  GET /health   -> {"status", "uptime_seconds", "db", "metrics"} (503 when the DB is down)
  GET /metrics  -> detector and job counters only
"""

import asyncio
import json
import logging

import psycopg

from .metrics import get_metrics

logger = logging.getLogger(__name__)

_STATUS_LINES = {
    200: "HTTP/1.1 200 OK",
    404: "HTTP/1.1 404 Not Found",
    503: "HTTP/1.1 503 Service Unavailable",
}


def _render(status: int, payload: dict) -> bytes:
    body = json.dumps(payload)
    return (
        f"{_STATUS_LINES[status]}\r\nContent-Type: application/json\r\n"
        f"Content-Length: {len(body)}\r\n\r\n{body}"
    ).encode()


async def check_database(db_url: str, timeout_seconds: float = 2.0) -> str:
    """Run SELECT 1 within the timeout. Returns 'ok' or 'error'."""
    try:
        async with asyncio.timeout(timeout_seconds):
            async with await psycopg.AsyncConnection.connect(db_url, autocommit=True) as conn:
                await conn.execute("SELECT 1")
        return "ok"
    except Exception:
        logger.warning("Health check could not reach the database", exc_info=True)
        return "error"


async def build_response(path: str, db_url: str) -> bytes:
    if path == "/health":
        db_status = await check_database(db_url)
        metrics = get_metrics()
        status = "ok" if db_status == "ok" else "degraded"
        return _render(200 if status == "ok" else 503, {
            "status": status,
            "uptime_seconds": metrics["uptime_seconds"],
            "db": db_status,
            "metrics": metrics,
        })
    if path == "/metrics":
        return _render(200, get_metrics())
    return _render(404, {"error": "not_found"})


async def _handle_request(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    db_url: str,
) -> None:
    try:
        request_line = await asyncio.wait_for(reader.readline(), timeout=5)
        parts = request_line.decode("utf-8", errors="replace").strip().split()
        path = parts[1] if len(parts) >= 2 else "/"
        writer.write(await build_response(path, db_url))
        await writer.drain()
    except Exception:
        logger.debug("Health endpoint request error", exc_info=True)
    finally:
        writer.close()
        await writer.wait_closed()


async def start_health_server(port: int, db_url: str) -> asyncio.Server:
    """Start the health HTTP server. Returns the asyncio.Server for lifecycle management."""

    async def handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await _handle_request(reader, writer, db_url)

    server = await asyncio.start_server(handler, "0.0.0.0", port)
    logger.info("Health endpoint listening on port %d", port)
    return server
