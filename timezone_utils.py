from datetime import datetime, timedelta
import pytz

DEFAULT_TIMEZONE = 'Asia/Kolkata'


def get_ist_time_naive():
    """Get current IST time as naive datetime for database storage"""
    ist = pytz.timezone(DEFAULT_TIMEZONE)
    return datetime.now(ist).replace(tzinfo=None)


class Clock:
    """Wall clock in the business timezone, returning naive datetimes."""

    def __init__(self, timezone_name=DEFAULT_TIMEZONE):
        self.tz = pytz.timezone(timezone_name)

    def now(self):
        return datetime.now(self.tz).replace(tzinfo=None)


def app_clock():
    """Clock for the running Flask app's configured timezone."""
    from flask import current_app
    return Clock(current_app.config.get('APP_TIMEZONE', DEFAULT_TIMEZONE))


def whole_minutes_between(start, end):
    """Elapsed whole minutes from start to end, truncated down and never negative."""
    if start is None or end is None:
        return 0
    seconds = (end - start).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 60)


def start_of_day(moment):
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(moment, first_weekday=0):
    """Midnight of the most recent first_weekday (0 = Monday, 6 = Sunday)."""
    day = start_of_day(moment)
    return day - timedelta(days=(day.weekday() - first_weekday) % 7)


def start_of_month(moment):
    return start_of_day(moment).replace(day=1)


def format_hours_minutes(duration):
    """Render a timedelta as whole hours and minutes, e.g. '1h 5m'."""
    total_minutes = max(int(duration.total_seconds() // 60), 0)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"
