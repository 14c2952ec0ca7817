from datetime import timedelta

import pytest
from conftest import NOW, USER_ID, event_row

from aura_workers.events import load_events
from aura_workers.inference import count_matches, infer_patterns
from aura_workers.signals import PATTERN_SIGNATURES


def _moments(moment_type, n):
    return [
        event_row("moment", NOW - timedelta(days=i), structured_data={"moment_type": moment_type})
        for i in range(n)
    ]


def _infer(rows):
    return {p.pattern_type: p for p in infer_patterns(USER_ID, load_events(rows), NOW)}


class TestInferPatterns:
    def test_below_threshold(self):
        assert _infer(_moments("alcohol_free", 2)) == {}

    def test_alcohol_free_from_tags_and_notes(self):
        rows = _moments("alcohol_free", 2) + [event_row("note", NOW, description="No alcohol this week")]
        pattern = _infer(rows)["alcohol_free"]
        assert pattern.detection_count == 3
        assert pattern.confidence == pytest.approx(0.8)
        assert pattern.last_detected == NOW
        assert pattern.confirmation_shown is False
        assert pattern.user_response is None
        assert "alcohol-free" in pattern.message

    def test_confidence_is_capped(self):
        pattern = _infer(_moments("alcohol_free", 8))["alcohol_free"]
        assert pattern.confidence == pytest.approx(0.9)

    def test_tea_signature_constants(self):
        pattern = _infer(_moments("tea", 4))["reduce_caffeine"]
        assert pattern.confidence == pytest.approx(0.72)

    def test_same_pattern_type_keeps_higher_count(self):
        rows = _moments("caffeine_skip", 3) + _moments("tea", 5)
        patterns = _infer(rows)
        assert list(patterns) == ["reduce_caffeine"]
        assert patterns["reduce_caffeine"].detection_count == 5
        assert patterns["reduce_caffeine"].confidence == pytest.approx(0.8)

    def test_earlier_signature_with_more_matches_is_not_overwritten(self):
        rows = _moments("caffeine_skip", 5) + _moments("tea", 3)
        [pattern] = infer_patterns(USER_ID, load_events(rows), NOW)
        assert pattern.pattern_type == "reduce_caffeine"
        assert pattern.detection_count == 5

    def test_tie_keeps_first_signature(self):
        rows = _moments("caffeine_skip", 3) + _moments("tea", 3)
        pattern = _infer(rows)["reduce_caffeine"]
        assert pattern.confidence == pytest.approx(0.8)

    def test_meal_signatures(self):
        rows = [
            event_row("meal", NOW - timedelta(days=i), description="Big salad with greens",
                      structured_data={"sugar_level": "low"})
            for i in range(3)
        ]
        assert set(_infer(rows)) == {"gut_health", "reduce_sugar"}

    def test_early_sleep_notes(self):
        rows = [event_row("note", NOW - timedelta(days=i), description="Early bed tonight") for i in range(3)]
        assert set(_infer(rows)) == {"improve_sleep"}


def test_count_matches():
    signature = next(s for s in PATTERN_SIGNATURES if s.name == "caffeine_skips")
    events = load_events(_moments("caffeine_skip", 2) + _moments("tea", 2))
    assert count_matches(signature, events) == 2


def test_six_signatures():
    assert len(PATTERN_SIGNATURES) == 6
