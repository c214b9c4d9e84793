"""
Duration Tracker

Active working time of a booking: wall time since start, minus the closed
pause minutes, minus the currently open pause. The timer is frozen while a
booking is paused and stops at completion.
"""

from datetime import timedelta
from models import BookingStatus
from timezone_utils import whole_minutes_between, format_hours_minutes


def pause_minutes(booking, now):
    """Whole minutes the booking has been paused in its open pause interval."""
    if booking.status != BookingStatus.PAUSED:
        return 0
    return whole_minutes_between(booking.paused_at, now)


def active_duration(booking, now) -> timedelta:
    """Active time as a timedelta, never negative; zero before the job starts."""
    if booking.started_at is None:
        return timedelta(0)

    end = booking.completed_at or now
    elapsed = end - booking.started_at
    elapsed -= timedelta(minutes=booking.total_pause_duration or 0)

    if booking.status == BookingStatus.PAUSED and booking.paused_at is not None:
        # Open pause, counted to the second so the display does not tick
        elapsed -= max(end - booking.paused_at, timedelta(0))

    return max(elapsed, timedelta(0))


def active_hours(booking, now) -> float:
    return active_duration(booking, now).total_seconds() / 3600


def format_duration(booking, now) -> str:
    return format_hours_minutes(active_duration(booking, now))
