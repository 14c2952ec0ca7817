"""Timeline event loading.

Rows come straight from the event store. A row without a usable id, type
or date is skipped with a warning; one bad row never aborts a detector.
"""

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from .errors import MalformedEventError
from .models import TimelineEvent

logger = logging.getLogger(__name__)


def parse_event(row: dict[str, Any]) -> TimelineEvent:
    event_id = row.get("id")
    if not row.get("event_type"):
        raise MalformedEventError(event_id, "missing event_type")
    if row.get("event_date") is None:
        raise MalformedEventError(event_id, "missing event_date")
    try:
        return TimelineEvent.model_validate(row)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise MalformedEventError(event_id, f"invalid fields: {', '.join(fields)}") from exc


def load_events(rows: Iterable[dict[str, Any]]) -> tuple[TimelineEvent, ...]:
    """Parse rows into events, newest first, skipping malformed rows."""
    events: list[TimelineEvent] = []
    skipped = 0
    for row in rows:
        try:
            events.append(parse_event(row))
        except MalformedEventError as exc:
            skipped += 1
            logger.warning("Skipping event: %s", exc, extra={"aura_event_id": exc.event_id})
    if skipped:
        logger.info("Skipped %d malformed events out of %d", skipped, skipped + len(events))
    events.sort(key=lambda e: e.event_date, reverse=True)
    return tuple(events)
