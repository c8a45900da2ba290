"""Week arithmetic helpers.

Every series in the system is keyed by the Monday that starts an ISO week.
These helpers keep that convention in one place so the builder, detector,
providers, and tracker all agree on what "the previous week" means.
"""

from datetime import date, datetime, timedelta

WEEK = timedelta(days=7)


def week_start_of(day: date | datetime) -> date:
    """Return the Monday of the week containing day."""
    if isinstance(day, datetime):
        day = day.date()
    return day - timedelta(days=day.weekday())


def previous_week(week_start: date, weeks: int = 1) -> date:
    return week_start - WEEK * weeks


def next_week(week_start: date, weeks: int = 1) -> date:
    return week_start + WEEK * weeks


def week_range(first: date, last: date) -> list[date]:
    """Return every week start from first to last inclusive, ascending.

    Both bounds are normalised to their Monday first. An inverted range
    returns an empty list rather than raising.
    """
    current = week_start_of(first)
    end = week_start_of(last)
    weeks = []
    while current <= end:
        weeks.append(current)
        current += WEEK
    return weeks


def trailing_weeks(upto_week: date, num_weeks: int) -> list[date]:
    """Return the num_weeks week starts ending at upto_week, ascending."""
    end = week_start_of(upto_week)
    return [end - WEEK * offset for offset in range(num_weeks - 1, -1, -1)]
