from datetime import UTC, date, datetime, timedelta

from conftest import NOW, USER_ID

from aura_workers.detectors.expiration import find_expired, is_stale
from aura_workers.models import Achievement


def _achievement(last: date | None, status="active"):
    return Achievement(
        id="ach-1",
        user_id=USER_ID,
        type="consistency",
        category="workout",
        start_date=(last or NOW.date()) - timedelta(days=2),
        current_streak=3,
        last_event_date=last,
        insight_text="x",
        status=status,
    )


class TestIsStale:
    def test_eight_days_ago_is_stale(self):
        assert is_stale(_achievement(NOW.date() - timedelta(days=8)), NOW)

    def test_six_days_ago_is_fresh(self):
        assert not is_stale(_achievement(NOW.date() - timedelta(days=6)), NOW)

    def test_scenario_jan_third_stale_on_jan_tenth(self):
        assert is_stale(_achievement(date(2024, 1, 3)), datetime(2024, 1, 10, 9, 0, tzinfo=UTC))

    def test_no_last_event_date_never_stale(self):
        assert not is_stale(_achievement(None), NOW)

    def test_timezone_shifts_the_day_start(self):
        last = NOW.date() - timedelta(days=7)
        now = datetime.combine(NOW.date(), datetime.min.time(), tzinfo=UTC) + timedelta(hours=1)
        # The day starts five hours later in New York, after the cutoff.
        assert is_stale(_achievement(last), now)
        assert not is_stale(_achievement(last), now, "America/New_York")


class TestFindExpired:
    def test_skips_already_expired(self):
        old = NOW.date() - timedelta(days=20)
        assert find_expired([_achievement(old, status="expired")], NOW) == []

    def test_returns_only_stale(self):
        stale = _achievement(NOW.date() - timedelta(days=9))
        fresh = _achievement(NOW.date() - timedelta(days=1)).model_copy(update={"category": "meal"})
        assert find_expired([stale, fresh], NOW) == [stale]
