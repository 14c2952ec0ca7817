"""In-memory worker metrics.

Asyncio is single-threaded, so plain dicts are safe without locking.
"""

import time

_start_time = time.monotonic()

_metrics: dict = {
    "jobs_processed": 0,
    "jobs_failed": 0,
    "jobs_dead": 0,
    "users_processed": 0,
    "users_failed": 0,
    "detectors": {},
}


def record_detector_invocation(detector_name: str, duration_ms: float, success: bool) -> None:
    """Record a single detector invocation with timing."""
    d = _metrics["detectors"].setdefault(detector_name, {
        "invocations": 0,
        "successes": 0,
        "failures": 0,
        "total_duration_ms": 0.0,
    })
    d["invocations"] += 1
    d["total_duration_ms"] += duration_ms
    if success:
        d["successes"] += 1
    else:
        d["failures"] += 1


def record_user_processed(success: bool) -> None:
    if success:
        _metrics["users_processed"] += 1
    else:
        _metrics["users_failed"] += 1


def record_job_completed() -> None:
    _metrics["jobs_processed"] += 1


def record_job_failed() -> None:
    _metrics["jobs_failed"] += 1


def record_job_dead() -> None:
    _metrics["jobs_dead"] += 1


def get_metrics() -> dict:
    """Return a snapshot of current metrics."""
    return {
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "jobs_processed": _metrics["jobs_processed"],
        "jobs_failed": _metrics["jobs_failed"],
        "jobs_dead": _metrics["jobs_dead"],
        "users_processed": _metrics["users_processed"],
        "users_failed": _metrics["users_failed"],
        "detectors": {
            name: dict(stats)
            for name, stats in _metrics["detectors"].items()
        },
    }
