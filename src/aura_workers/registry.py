import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import psycopg

if TYPE_CHECKING:
    from .detectors.base import DetectionContext, DetectorOutput

logger = logging.getLogger(__name__)

# Job handler signature: async def handler(conn: AsyncConnection, payload: dict) -> None
HandlerFn = Callable[[psycopg.AsyncConnection[Any], dict[str, Any]], Awaitable[None]]

# Detector signature: def detector(ctx: DetectionContext) -> DetectorOutput
DetectorFn = Callable[["DetectionContext"], "DetectorOutput"]


@dataclass(frozen=True)
class DetectorSpec:
    name: str
    min_level: int
    fn: DetectorFn


# Job-level registry: one handler per job_type
_registry: dict[str, HandlerFn] = {}

# Achievement detectors in registration order
_detectors: list[DetectorSpec] = []


def register(job_type: str) -> Callable[[HandlerFn], HandlerFn]:
    """Register a handler for a job_type (e.g. 'achievements.calculate')."""

    def decorator(fn: HandlerFn) -> HandlerFn:
        if job_type in _registry:
            raise ValueError(f"Duplicate handler for job_type={job_type!r}")
        _registry[job_type] = fn
        logger.info("Registered handler for job_type=%s", job_type)
        return fn

    return decorator


def detector(
    name: str, *, min_level: int
) -> Callable[[DetectorFn], DetectorFn]:
    """Register an achievement detector.

    ``min_level`` is the lowest progressive complexity level at which the
    detector runs. Detectors run in registration order.

    Usage:
        @detector("reduction", min_level=2)
        def detect_reduction(ctx):
            ...
    """

    def decorator(fn: DetectorFn) -> DetectorFn:
        if any(spec.name == name for spec in _detectors):
            raise ValueError(f"Duplicate detector name={name!r}")
        if min_level < 1:
            raise ValueError(f"min_level must be >= 1 for detector {name!r}")
        _detectors.append(DetectorSpec(name=name, min_level=min_level, fn=fn))
        logger.info("Registered detector %s (min_level=%d)", name, min_level)
        return fn

    return decorator


def get_handler(job_type: str) -> HandlerFn | None:
    return _registry.get(job_type)


def registered_types() -> list[str]:
    return list(_registry.keys())


def registered_detectors() -> list[DetectorSpec]:
    return list(_detectors)
