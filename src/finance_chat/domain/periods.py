"""Calendar arithmetic for query date ranges.

All ranges are UTC and inclusive on both ends. Ranges that describe the current
period ("this month") end at ``now``; completed periods end one microsecond
before the next one starts.
"""
from calendar import monthrange
from datetime import date, datetime, time, timedelta, timezone

from dateutil.relativedelta import relativedelta

from finance_chat.models import DateRange, Granularity, ensure_utc

TICK = timedelta(microseconds=1)

# Labels of ranges that line up with calendar units.
RELATIVE_KEYS = (
    "today",
    "yesterday",
    "this_week",
    "last_week",
    "this_month",
    "last_month",
    "this_year",
    "last_year",
)
COUNTED_KEYS = (
    "last_n_days",
    "last_n_weeks",
    "last_n_months",
    "last_n_years",
    "days_ago",
    "weeks_ago",
    "months_ago",
    "years_ago",
)

def start_of_day(value: datetime | date) -> datetime:
    if isinstance(value, datetime):
        value = ensure_utc(value).date()
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def end_of_day(value: datetime | date) -> datetime:
    return start_of_day(value) + timedelta(days=1) - TICK


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    moved = date(year, month, 1) + relativedelta(months=delta)
    return moved.year, moved.month


def month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1, tzinfo=timezone.utc)


def month_end(year: int, month: int) -> datetime:
    return end_of_day(date(year, month, monthrange(year, month)[1]))


def week_start(value: datetime) -> datetime:
    day = start_of_day(value)
    return day - timedelta(days=day.weekday())


def month_range(year: int, month: int, label: str = "month") -> DateRange:
    return DateRange(
        start=month_start(year, month),
        end=month_end(year, month),
        granularity=Granularity.MONTH,
        label=label,
    )


def year_range(year: int, label: str = "year") -> DateRange:
    return DateRange(
        start=month_start(year, 1),
        end=month_end(year, 12),
        granularity=Granularity.YEAR,
        label=label,
    )


def day_range(value: date, label: str = "day") -> DateRange:
    return DateRange(start=start_of_day(value), end=end_of_day(value), granularity=Granularity.DAY, label=label)


def custom_range(first: date, last: date) -> DateRange:
    if first > last:
        first, last = last, first
    if first == last:
        return day_range(first)
    return DateRange(start=start_of_day(first), end=end_of_day(last), granularity=Granularity.CUSTOM, label="custom")


def resolve_period(key: str, now: datetime, count: int | None = None) -> DateRange:
    """Turn a canonical period key into a concrete range relative to ``now``.

    Unknown keys resolve to the current month.
    """
    now = ensure_utc(now)
    n = max(1, count or 1)

    if key == "today":
        return DateRange(start=start_of_day(now), end=now, granularity=Granularity.DAY, label=key)
    if key == "yesterday":
        return day_range((now - timedelta(days=1)).date(), label=key)
    if key == "this_week":
        return DateRange(start=week_start(now), end=now, granularity=Granularity.WEEK, label=key)
    if key == "last_week":
        start = week_start(now) - timedelta(weeks=1)
        return DateRange(start=start, end=start + timedelta(weeks=1) - TICK, granularity=Granularity.WEEK, label=key)
    if key == "last_month":
        year, month = shift_month(now.year, now.month, -1)
        return month_range(year, month, label=key)
    if key == "this_year":
        return DateRange(start=month_start(now.year, 1), end=now, granularity=Granularity.YEAR, label=key)
    if key == "last_year":
        return year_range(now.year - 1, label=key)
    if key == "last_n_days":
        start = start_of_day(now - timedelta(days=n - 1))
        return DateRange(start=start, end=now, granularity=Granularity.DAY, label=key, count=n)
    if key == "last_n_weeks":
        start = start_of_day(now - timedelta(days=7 * n - 1))
        return DateRange(start=start, end=now, granularity=Granularity.WEEK, label=key, count=n)
    if key == "last_n_months":
        year, month = shift_month(now.year, now.month, -(n - 1))
        return DateRange(start=month_start(year, month), end=now, granularity=Granularity.MONTH, label=key, count=n)
    if key == "last_n_years":
        start = month_start(now.year, 1) - relativedelta(years=n - 1)
        return DateRange(start=start, end=now, granularity=Granularity.YEAR, label=key, count=n)
    if key == "days_ago":
        return day_range((now - timedelta(days=n)).date(), label=key).model_copy(update={"count": n})
    if key == "weeks_ago":
        start = week_start(now) - timedelta(weeks=n)
        return DateRange(
            start=start,
            end=start + timedelta(weeks=1) - TICK,
            granularity=Granularity.WEEK,
            label=key,
            count=n,
        )
    if key == "months_ago":
        year, month = shift_month(now.year, now.month, -n)
        return month_range(year, month, label=key).model_copy(update={"count": n})
    if key == "years_ago":
        return year_range(now.year - n, label=key).model_copy(update={"count": n})

    return DateRange(
        start=month_start(now.year, now.month),
        end=now,
        granularity=Granularity.MONTH,
        label="this_month",
    )


def _months_spanned(window: DateRange) -> int:
    gap = relativedelta(window.end + TICK, window.start)
    return gap.years * 12 + gap.months


def is_whole_unit(window: DateRange) -> bool:
    """True when ``window`` covers complete calendar units of its granularity."""
    start, end = window.start, window.end
    if window.granularity is Granularity.DAY:
        return start == start_of_day(start) and end == end_of_day(end)
    if window.granularity is Granularity.WEEK:
        return start == week_start(start) and end == week_start(end) + timedelta(weeks=1) - TICK
    if window.granularity is Granularity.MONTH:
        return start == month_start(start.year, start.month) and end == month_end(end.year, end.month)
    if window.granularity is Granularity.YEAR:
        return start == month_start(start.year, 1) and end == month_end(end.year, 12)
    return False


def preceding_range(window: DateRange) -> DateRange:
    """The range of equal length that ends just before ``window`` starts.

    Completed calendar units ("last month", "2023") shift by whole units.
    Running periods such as "this month" get a range of exactly the same
    duration.
    """
    start = window.start
    if is_whole_unit(window):
        if window.granularity is Granularity.YEAR:
            shift = relativedelta(years=window.end.year - start.year + 1)
        elif window.granularity is Granularity.MONTH:
            shift = relativedelta(months=_months_spanned(window))
        elif window.granularity is Granularity.WEEK:
            shift = relativedelta(weeks=(window.end - start) // timedelta(weeks=1) + 1)
        else:
            shift = relativedelta(days=window.days)
        return DateRange(start=start - shift, end=start - TICK, granularity=window.granularity, label="previous_period")

    end = start - TICK
    return DateRange(start=end - window.duration, end=end, granularity=Granularity.CUSTOM, label="previous_period")


def month_windows(now: datetime, periods: int) -> list[DateRange]:
    """The ``periods`` most recent completed calendar months, oldest first."""
    now = ensure_utc(now)
    windows = []
    for offset in range(periods, 0, -1):
        year, month = shift_month(now.year, now.month, -offset)
        windows.append(month_range(year, month))
    return windows


def week_windows(now: datetime, periods: int) -> list[DateRange]:
    """The ``periods`` most recent completed Monday-based weeks, oldest first."""
    current = week_start(ensure_utc(now))
    windows = []
    for offset in range(periods, 0, -1):
        start = current - timedelta(weeks=offset)
        windows.append(DateRange(
            start=start,
            end=start + timedelta(weeks=1) - TICK,
            granularity=Granularity.WEEK,
            label="week",
        ))
    return windows


def covers_single_month(window: DateRange) -> bool:
    return (window.start.year, window.start.month) == (window.end.year, window.end.month)


def span(windows: list[DateRange]) -> DateRange:
    """Smallest range that contains every window."""
    return DateRange(
        start=min(w.start for w in windows),
        end=max(w.end for w in windows),
        granularity=Granularity.CUSTOM,
        label="custom",
    )
