from conftest import NOW, USER_ID, days_before, event_row

from aura_workers.detectors.base import DetectionContext
from aura_workers.detectors.correlation import detect_correlation
from aura_workers.events import load_events


def _run(rows):
    ctx = DetectionContext(user_id=USER_ID, now=NOW, events=load_events(rows))
    return detect_correlation(ctx).achievements


def _workout(days_ago, activity="yoga"):
    return event_row("workout", days_before(NOW, days_ago), activity_type=activity)


def _symptom(days_ago, severity="moderate"):
    return event_row("symptom", days_before(NOW, days_ago), severity=severity, description="back pain")


class TestDetectCorrelation:
    def test_two_symptom_free_next_days(self):
        # yoga on day -9 and -7; symptoms on -5 and -4, nothing on -8 or -6
        rows = [_workout(9), _workout(7), _symptom(5), _symptom(4)]
        [achievement] = _run(rows)
        assert achievement.type == "correlation"
        assert achievement.category == "flexibility_pain"
        assert achievement.current_streak == 2
        assert achievement.start_date == days_before(NOW, 9).date()
        assert achievement.last_event_date == days_before(NOW, 7).date()
        assert achievement.insight_text == "Yoga sessions correlate with fewer symptoms the following day."

    def test_mild_next_day_symptoms_still_count(self):
        rows = [_workout(9), _workout(7), _symptom(8, "mild"), _symptom(6, "mild")]
        [achievement] = _run(rows)
        assert achievement.current_streak == 2

    def test_moderate_next_day_symptom_breaks_it(self):
        rows = [_workout(9), _workout(7), _symptom(8, "severe"), _symptom(4)]
        assert _run(rows) == []

    def test_mixed_severities_on_next_day_break_it(self):
        rows = [_workout(9), _workout(7), _symptom(8, "mild"), _symptom(8, "moderate")]
        assert _run(rows) == []

    def test_requires_two_symptoms(self):
        assert _run([_workout(9), _workout(7), _symptom(4)]) == []

    def test_requires_two_workouts(self):
        assert _run([_workout(9), _symptom(5), _symptom(4)]) == []

    def test_requires_two_flexibility_days(self):
        rows = [_workout(9), _workout(9, "stretching"), _workout(7, "running"), _symptom(5), _symptom(4)]
        assert _run(rows) == []

    def test_insight_names_earliest_flexibility_activity(self):
        rows = [_workout(9, "pilates"), _workout(7, "yoga"), _symptom(5), _symptom(4)]
        [achievement] = _run(rows)
        assert achievement.insight_text.startswith("Pilates sessions")

    def test_counts_every_calm_flexibility_day(self):
        rows = [_workout(9), _workout(7), _workout(5, "stretching"), _symptom(2), _symptom(1)]
        [achievement] = _run(rows)
        assert achievement.current_streak == 3
        assert achievement.metadata == {"flexibility_days": 3}
