# ==============================================================================
# staxreports/scheduling/calculator.py
# ------------------------------------------------------------------------------
# Works out when a scheduled report runs next. Pure functions: no database, no
# clock. All datetimes are naive UTC.
# ==============================================================================

import calendar
from datetime import datetime, timedelta

from staxreports.reporting.validator import parse_time

DEFAULT_SCHEDULE_DAY = 1


class ScheduleError(ValueError):
    """A schedule definition for which no next run instant exists."""


def _at(day, schedule_time):
    return datetime.combine(day, schedule_time)


def _clamped_day(year, month, day_of_month):
    """A day of month past the end of a short month falls on its last day."""
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(day_of_month, last_day)).date()


def _next_daily(schedule_time, now):
    candidate = _at(now.date(), schedule_time)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def _next_weekly(schedule_time, schedule_day, now):
    if not 0 <= schedule_day <= 6:
        raise ScheduleError(f"Weekly schedule day must be 0 (Sunday) to 6, got {schedule_day}")
    # schedule_day counts from Sunday; date.weekday() counts from Monday
    target_weekday = (schedule_day - 1) % 7
    days_ahead = (target_weekday - now.weekday()) % 7
    candidate = _at(now.date() + timedelta(days=days_ahead), schedule_time)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


def _next_monthly(schedule_time, schedule_day, now):
    if not 1 <= schedule_day <= 31:
        raise ScheduleError(f"Monthly schedule day must be 1 to 31, got {schedule_day}")
    candidate = _at(_clamped_day(now.year, now.month, schedule_day), schedule_time)
    if candidate <= now:
        year, month = (now.year + 1, 1) if now.month == 12 else (now.year, now.month + 1)
        candidate = _at(_clamped_day(year, month, schedule_day), schedule_time)
    return candidate


def compute_next_run(schedule_type, schedule_time, schedule_day, now):
    """
    Returns the first execution instant strictly after `now`.

    Args:
        schedule_type (str): 'daily', 'weekly' or 'monthly'.
        schedule_time (time | str): Time of day, a datetime.time or 'HH:MM[:SS]'.
        schedule_day (int): Weekday for weekly schedules (0 = Sunday), day of
            month for monthly ones. Ignored for daily. Defaults to 1.
        now (datetime): The reference instant.

    Raises:
        ScheduleError: Unknown schedule type, bad time or out-of-range day.
    """
    parsed_time = parse_time(schedule_time)
    if parsed_time is None:
        raise ScheduleError(f"Invalid schedule time: {schedule_time!r}")
    day = DEFAULT_SCHEDULE_DAY if schedule_day is None else schedule_day

    if schedule_type == 'daily':
        return _next_daily(parsed_time, now)
    if schedule_type == 'weekly':
        return _next_weekly(parsed_time, day, now)
    if schedule_type == 'monthly':
        return _next_monthly(parsed_time, day, now)
    raise ScheduleError(f"Unknown schedule type: {schedule_type!r}")


def next_run_for(schedule, now):
    """compute_next_run() for a ScheduledReport (or anything with the same attributes)."""
    return compute_next_run(schedule.schedule_type, schedule.schedule_time, schedule.schedule_day, now)
