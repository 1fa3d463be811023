"""
Date Resolver Service

- Converts relative calendar references into concrete DateRange windows
- Every window is grounded on an explicit `now`, so resolution is reproducible
"""

from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from core.metric import PeriodUnit
from models.query import DateRange

_ONE_SECOND = timedelta(seconds=1)


def get_now() -> datetime:
    """Return the current local time (system clock)."""
    return datetime.now()


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def day_range(moment: datetime) -> DateRange:
    start = start_of_day(moment)
    return DateRange(start=start, end=start + timedelta(days=1) - _ONE_SECOND)


def month_range(moment: datetime) -> DateRange:
    start = start_of_day(moment).replace(day=1)
    return DateRange(start=start, end=start + relativedelta(months=1) - _ONE_SECOND)


def previous_month_range(now: datetime) -> DateRange:
    return month_range(month_range(now).start - relativedelta(months=1))


def year_range(moment: datetime) -> DateRange:
    start = start_of_day(moment).replace(month=1, day=1)
    return DateRange(start=start, end=start + relativedelta(years=1) - _ONE_SECOND)


def previous_year_range(now: datetime) -> DateRange:
    return year_range(year_range(now).start - relativedelta(years=1))


def quarter_start(moment: datetime) -> datetime:
    first_month = ((moment.month - 1) // 3) * 3 + 1
    return start_of_day(moment).replace(month=first_month, day=1)


def week_start(moment: datetime) -> datetime:
    """Monday of the week containing `moment`."""
    return start_of_day(moment) - timedelta(days=moment.weekday())


def named_month_range(month: int, now: datetime, year: Optional[int] = None) -> DateRange:
    """
    A named month without a year means its most recent occurrence
    (a month later than the current one belongs to last year).
    """
    if year is None:
        year = now.year - 1 if month > now.month else now.year
    return month_range(datetime(year, month, 1))


def past_periods_range(quantity: int, unit: PeriodUnit, now: datetime) -> Optional[DateRange]:
    """
    Closed window covering the current period and the `quantity - 1`
    periods before it.
    """
    if quantity <= 0:
        return None

    back = quantity - 1

    if unit is PeriodUnit.DAY:
        end = start_of_day(now)
        return DateRange(start=end - timedelta(days=back), end=end)

    if unit is PeriodUnit.WEEK:
        start_of_week = week_start(now)
        return DateRange(
            start=start_of_week - timedelta(weeks=back),
            end=start_of_week + timedelta(days=6),
        )

    if unit is PeriodUnit.MONTH:
        current = month_range(now)
        return DateRange(start=current.start - relativedelta(months=back), end=current.end)

    if unit is PeriodUnit.QUARTER:
        start_of_quarter = quarter_start(now)
        return DateRange(
            start=start_of_quarter - relativedelta(months=back * 3),
            end=start_of_quarter + relativedelta(months=3) - _ONE_SECOND,
        )

    current = year_range(now)
    return DateRange(start=current.start - relativedelta(years=back), end=current.end)


def rolling_range(quantity: int, unit: str, now: datetime) -> Optional[DateRange]:
    """Rolling window ending now: `last 7 days`, `past 2 weeks`, `last 3 months`."""
    if quantity <= 0:
        return None

    today = start_of_day(now)
    if unit in ("day", "days"):
        return DateRange(start=today - timedelta(days=quantity - 1), end=now)
    if unit in ("week", "weeks"):
        return DateRange(start=today - timedelta(days=quantity * 7 - 1), end=now)
    if unit in ("month", "months"):
        return DateRange(start=start_of_day(now - relativedelta(months=quantity)), end=now)
    return None
