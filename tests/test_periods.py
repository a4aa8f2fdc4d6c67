from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from finance_chat.domain.periods import (
    TICK,
    covers_single_month,
    custom_range,
    is_whole_unit,
    month_range,
    month_windows,
    preceding_range,
    resolve_period,
    shift_month,
    span,
    week_windows,
    year_range,
)
from finance_chat.models import DateRange, Granularity

UTC = timezone.utc


def at(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


def end_of(year: int, month: int, day: int) -> datetime:
    return at(year, month, day) + timedelta(days=1) - TICK


def test_this_month_ends_now(now: datetime) -> None:
    window = resolve_period("this_month", now)
    assert window.start == at(2024, 1, 1)
    assert window.end == now
    assert window.granularity is Granularity.MONTH


def test_last_month_crosses_year(now: datetime) -> None:
    window = resolve_period("last_month", now)
    assert window.start == at(2023, 12, 1)
    assert window.end == end_of(2023, 12, 31)
    assert window.label == "last_month"


def test_last_month_handles_leap_february() -> None:
    window = resolve_period("last_month", at(2024, 3, 1, 0, 30))
    assert window.start == at(2024, 2, 1)
    assert window.end == end_of(2024, 2, 29)


def test_weeks_start_on_monday(now: datetime) -> None:
    # 2024-01-25 is a Thursday.
    assert resolve_period("this_week", now).start == at(2024, 1, 22)
    last_week = resolve_period("last_week", now)
    assert last_week.start == at(2024, 1, 15)
    assert last_week.end == end_of(2024, 1, 21)


def test_today_and_yesterday(now: datetime) -> None:
    assert resolve_period("today", now).start == at(2024, 1, 25)
    yesterday = resolve_period("yesterday", now)
    assert (yesterday.start, yesterday.end) == (at(2024, 1, 24), end_of(2024, 1, 24))


def test_year_keys(now: datetime) -> None:
    assert resolve_period("this_year", now).start == at(2024, 1, 1)
    last_year = resolve_period("last_year", now)
    assert (last_year.start, last_year.end) == (at(2023, 1, 1), end_of(2023, 12, 31))


def test_counted_keys(now: datetime) -> None:
    months = resolve_period("last_n_months", now, 3)
    assert months.start == at(2023, 11, 1)
    assert months.end == now
    assert months.count == 3

    days = resolve_period("last_n_days", now, 7)
    assert days.start == at(2024, 1, 19)
    assert days.days == 7

    ago = resolve_period("months_ago", now, 2)
    assert (ago.start, ago.end) == (at(2023, 11, 1), end_of(2023, 11, 30))
    assert ago.count == 2


def test_unknown_key_falls_back_to_this_month(now: datetime) -> None:
    window = resolve_period("fortnight", now)
    assert window.label == "this_month"
    assert window.start == at(2024, 1, 1)


def test_shift_month() -> None:
    assert shift_month(2024, 1, -1) == (2023, 12)
    assert shift_month(2023, 11, 3) == (2024, 2)
    assert shift_month(2024, 6, -18) == (2022, 12)
    assert shift_month(2024, 12, 1) == (2025, 1)


def test_custom_range_orders_dates() -> None:
    window = custom_range(date(2024, 1, 10), date(2024, 1, 5))
    assert window.start == at(2024, 1, 5)
    assert window.end == end_of(2024, 1, 10)
    assert custom_range(date(2024, 1, 5), date(2024, 1, 5)).granularity is Granularity.DAY


def test_preceding_range_of_running_month_has_equal_length(now: datetime) -> None:
    current = resolve_period("this_month", now)

    previous = preceding_range(current)

    assert previous.end == at(2024, 1, 1) - TICK
    assert previous.duration == current.duration
    assert previous.start == at(2023, 12, 7, 11, 59, 59, 999999)
    assert previous.granularity is Granularity.CUSTOM
    assert previous.label == "previous_period"


def test_preceding_range_of_completed_month_is_previous_month(now: datetime) -> None:
    previous = preceding_range(resolve_period("last_month", now))
    assert (previous.start, previous.end) == (at(2023, 11, 1), end_of(2023, 11, 30))
    assert previous.granularity is Granularity.MONTH


def test_preceding_range_of_year() -> None:
    previous = preceding_range(year_range(2023))
    assert (previous.start, previous.end) == (at(2022, 1, 1), end_of(2022, 12, 31))
    assert previous.granularity is Granularity.YEAR


def test_preceding_range_of_last_n_months_has_equal_length(now: datetime) -> None:
    current = resolve_period("last_n_months", now, 3)

    previous = preceding_range(current)

    assert previous.end == at(2023, 11, 1) - TICK
    assert previous.duration == current.duration
    assert previous.end < current.start


def test_preceding_range_of_completed_months_shifts_whole_months() -> None:
    window = DateRange(start=at(2023, 10, 1), end=end_of(2023, 12, 31), granularity=Granularity.MONTH)
    previous = preceding_range(window)
    assert (previous.start, previous.end) == (at(2023, 7, 1), end_of(2023, 9, 30))


def test_preceding_range_of_day(now: datetime) -> None:
    previous = preceding_range(resolve_period("yesterday", now))
    assert (previous.start, previous.end) == (at(2024, 1, 23), end_of(2024, 1, 23))
    assert previous.granularity is Granularity.DAY


def test_preceding_range_of_running_day(now: datetime) -> None:
    current = resolve_period("today", now)
    previous = preceding_range(current)
    assert previous.end == at(2024, 1, 25) - TICK
    assert previous.duration == current.duration


def test_preceding_range_of_completed_week(now: datetime) -> None:
    previous = preceding_range(resolve_period("last_week", now))
    assert (previous.start, previous.end) == (at(2024, 1, 8), end_of(2024, 1, 14))


def test_preceding_range_of_custom_range_has_equal_length() -> None:
    window = custom_range(date(2024, 1, 10), date(2024, 1, 19))
    previous = preceding_range(window)
    assert previous.end == at(2024, 1, 10) - TICK
    assert previous.start == at(2023, 12, 31)
    assert previous.duration == window.duration
    assert previous.label == "previous_period"


def test_month_windows_are_completed_months(now: datetime) -> None:
    windows = month_windows(now, 3)
    assert [(w.start.year, w.start.month) for w in windows] == [(2023, 10), (2023, 11), (2023, 12)]
    assert windows[-1].end < now


def test_week_windows(now: datetime) -> None:
    windows = week_windows(now, 2)
    assert [w.start for w in windows] == [at(2024, 1, 8), at(2024, 1, 15)]
    assert windows[-1].end == end_of(2024, 1, 21)


def test_span_and_single_month() -> None:
    joined = span([month_range(2023, 11), month_range(2024, 1)])
    assert (joined.start, joined.end) == (at(2023, 11, 1), end_of(2024, 1, 31))
    assert covers_single_month(month_range(2024, 2))
    assert not covers_single_month(joined)


def test_date_range_rejects_inverted_bounds() -> None:
    with pytest.raises(ValidationError):
        DateRange(start=at(2024, 2, 1), end=at(2024, 1, 1))


def test_date_range_treats_naive_datetimes_as_utc() -> None:
    window = DateRange(start=datetime(2024, 1, 1), end=datetime(2024, 1, 2))
    assert window.start.tzinfo is not None
    assert window.contains(datetime(2024, 1, 1, 12))


def test_is_whole_unit(now: datetime) -> None:
    assert is_whole_unit(resolve_period("last_month", now))
    assert is_whole_unit(year_range(2023))
    assert not is_whole_unit(resolve_period("this_month", now))
    assert not is_whole_unit(custom_range(date(2024, 1, 1), date(2024, 1, 31)))
