"""Error taxonomy for achievement calculation.

Classes:
- store_unavailable: the event or derived-state store cannot be reached;
  the user's pass aborts and is retried by the job worker.
- malformed_event: a single timeline row is unusable; it is skipped.
- detector_failure: one detector raised; the others and the sweeper still run.
- conflict: a unique-key race on an upsert; retryable.
"""

from __future__ import annotations

from typing import Literal

ErrorClass = Literal[
    "store_unavailable",
    "malformed_event",
    "detector_failure",
    "conflict",
    "other",
]


class AchievementEngineError(Exception):
    """Base class for engine errors."""

    retryable: bool = False


class StoreUnavailableError(AchievementEngineError):
    retryable = True


class MalformedEventError(AchievementEngineError):
    def __init__(self, event_id: str | None, reason: str) -> None:
        super().__init__(f"Malformed event {event_id or '<unknown>'}: {reason}")
        self.event_id = event_id
        self.reason = reason


class DetectorError(AchievementEngineError):
    def __init__(self, detector_name: str, cause: BaseException) -> None:
        super().__init__(f"Detector {detector_name} failed: {cause}")
        self.detector_name = detector_name
        self.cause = cause


class AchievementConflictError(AchievementEngineError):
    """A concurrent pass wrote the same unique key first."""

    retryable = True


def classify_error(exc: BaseException) -> ErrorClass:
    if isinstance(exc, StoreUnavailableError):
        return "store_unavailable"
    if isinstance(exc, MalformedEventError):
        return "malformed_event"
    if isinstance(exc, DetectorError):
        return "detector_failure"
    if isinstance(exc, AchievementConflictError):
        return "conflict"
    return "other"


def is_retryable(exc: BaseException) -> bool:
    """Job-level retry decision. Unknown errors are retried; bad payloads are not."""
    if isinstance(exc, AchievementEngineError):
        return exc.retryable
    if isinstance(exc, ValueError):
        return False
    return True
