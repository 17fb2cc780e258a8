"""Date manipulation utilities"""

import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Tuple


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form transaction dates are stored in"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    return utc_now().date()


def generate_date_range(start: date, end: date) -> List[date]:
    """Generate list of dates from start to end (inclusive)"""
    days = (end - start).days + 1
    return [start + timedelta(days=i) for i in range(days)]


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


def month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    """First day 00:00 through last day 23:59:59.999999 of a calendar month"""
    last_day = calendar.monthrange(year, month)[1]
    return start_of_day(date(year, month, 1)), end_of_day(date(year, month, last_day))


def previous_month(today: date) -> Tuple[int, int]:
    """(year, month) of the calendar month before today's"""
    first_of_month = today.replace(day=1)
    last_month = first_of_month - timedelta(days=1)
    return last_month.year, last_month.month


def previous_day_bounds(today: date) -> Tuple[datetime, datetime]:
    yesterday = today - timedelta(days=1)
    return start_of_day(yesterday), end_of_day(yesterday)
