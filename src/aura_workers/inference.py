"""Pattern inference: propose lifestyle focuses from raw behaviour.

Scans the last 10 days for the fixed signatures in PATTERN_SIGNATURES.
Nothing here creates a LifestyleFocus; accepted proposals are turned into
focuses by the confirmation flow outside this worker.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from .models import InferredPattern, TimelineEvent
from .signals import PATTERN_SIGNATURES, PatternSignature, matches_any

WINDOW_DAYS = 10


def count_matches(signature: PatternSignature, events: Iterable[TimelineEvent]) -> int:
    return sum(1 for e in events if matches_any(signature.rules, e))


def infer_patterns(
    user_id: str,
    events: Iterable[TimelineEvent],
    now: datetime,
    signatures: tuple[PatternSignature, ...] = PATTERN_SIGNATURES,
) -> list[InferredPattern]:
    """Evaluate every signature; one proposal per pattern_type.

    Two signatures can point at the same pattern_type (caffeine skips and
    tea substitution). Only the one with more matching events is proposed,
    the first listed on a tie. Proposing both and upserting them in order
    would let the later signature overwrite a higher count, so the stored
    count would depend on signature order rather than on the evidence.
    """
    events = list(events)
    best: dict[str, InferredPattern] = {}
    for signature in signatures:
        count = count_matches(signature, events)
        if count < signature.min_count:
            continue
        candidate = InferredPattern(
            user_id=user_id,
            pattern_type=signature.pattern_type,
            detection_count=count,
            last_detected=now,
            confidence=signature.confidence(count),
            message=signature.message,
        )
        current = best.get(signature.pattern_type)
        if current is None or candidate.detection_count > current.detection_count:
            best[signature.pattern_type] = candidate
    return list(best.values())
