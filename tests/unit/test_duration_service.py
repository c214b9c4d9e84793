"""
Unit tests for active duration tracking
"""

from datetime import datetime, timedelta
from types import SimpleNamespace
import pytest

from models import BookingStatus
from services.duration_service import active_duration, format_duration, pause_minutes, active_hours
from timezone_utils import whole_minutes_between, format_hours_minutes, start_of_week, start_of_month

pytestmark = pytest.mark.unit

T = datetime(2026, 3, 10, 9, 0)


def booking_at(status, **fields):
    values = dict(status=status, started_at=None, paused_at=None, completed_at=None, total_pause_duration=0)
    values.update(fields)
    return SimpleNamespace(**values)


class TestActiveDuration:

    def test_zero_before_start(self):
        booking = booking_at(BookingStatus.PICKED)
        assert active_duration(booking, T + timedelta(hours=3)) == timedelta(0)
        assert format_duration(booking, T) == "0h 0m"

    def test_running_job_counts_wall_time_minus_closed_pauses(self):
        booking = booking_at(BookingStatus.IN_PROGRESS, started_at=T, total_pause_duration=15)
        assert active_duration(booking, T + timedelta(minutes=80)) == timedelta(minutes=65)
        assert format_duration(booking, T + timedelta(minutes=80)) == "1h 5m"

    def test_timer_is_frozen_while_paused(self):
        booking = booking_at(BookingStatus.PAUSED, started_at=T,
                             paused_at=T + timedelta(minutes=30), total_pause_duration=5)
        at_pause = active_duration(booking, T + timedelta(minutes=30))
        later = active_duration(booking, T + timedelta(minutes=95, seconds=17))
        assert at_pause == later == timedelta(minutes=25)

    def test_completed_job_stops_at_completion(self):
        booking = booking_at(BookingStatus.COMPLETED, started_at=T + timedelta(minutes=10),
                             completed_at=T + timedelta(minutes=70), total_pause_duration=10)
        assert active_duration(booking, T + timedelta(days=2)) == timedelta(minutes=50)
        assert active_hours(booking, T) == pytest.approx(50 / 60)

    def test_never_negative(self):
        booking = booking_at(BookingStatus.IN_PROGRESS, started_at=T, total_pause_duration=120)
        assert active_duration(booking, T + timedelta(minutes=30)) == timedelta(0)

    def test_pause_minutes_only_counts_open_pause(self):
        paused = booking_at(BookingStatus.PAUSED, started_at=T, paused_at=T)
        assert pause_minutes(paused, T + timedelta(minutes=9, seconds=59)) == 9
        running = booking_at(BookingStatus.IN_PROGRESS, started_at=T)
        assert pause_minutes(running, T + timedelta(hours=1)) == 0


class TestTimeHelpers:

    def test_whole_minutes_truncate(self):
        assert whole_minutes_between(T, T + timedelta(seconds=119)) == 1
        assert whole_minutes_between(T, T - timedelta(minutes=5)) == 0
        assert whole_minutes_between(None, T) == 0

    def test_format_hours_minutes(self):
        assert format_hours_minutes(timedelta(hours=2, minutes=3, seconds=50)) == "2h 3m"
        assert format_hours_minutes(timedelta(seconds=-30)) == "0h 0m"

    def test_week_starts_monday_by_default(self):
        # 10 March 2026 is a Tuesday
        assert start_of_week(T) == datetime(2026, 3, 9)
        assert start_of_week(T, first_weekday=6) == datetime(2026, 3, 8)
        assert start_of_week(datetime(2026, 3, 9, 23, 59)) == datetime(2026, 3, 9)

    def test_start_of_month(self):
        assert start_of_month(T) == datetime(2026, 3, 1)
