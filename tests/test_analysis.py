from datetime import datetime, timezone
from decimal import Decimal

import pytest

from finance_chat.domain.periods import TICK, resolve_period
from finance_chat.domain.records import build_records
from finance_chat.models import Granularity, Metric, QueryIntent, QueryParameters, TrendDirection
from finance_chat.services.analysis import (
    AnalysisEngine,
    UNCATEGORIZED,
    least_squares_slope,
    percent_change,
    rank_categories,
    savings_rate,
    trend_direction,
)

UTC = timezone.utc


def expense(id: str, amount: str, category: str | None, day: str, currency: str = "EUR") -> dict:
    return {"id": id, "user_id": "u1", "amount": f"-{amount}", "currency": currency, "category": category,
            "date": f"{day}T12:00:00Z", "type": "expense"}


def income(id: str, amount: str, day: str) -> dict:
    return {"id": id, "user_id": "u1", "amount": amount, "category": "salary", "date": f"{day}T09:00:00Z",
            "type": "income"}


def params_for(now: datetime, key: str = "this_month", **kwargs) -> QueryParameters:
    return QueryParameters(date_range=resolve_period(key, now), currency="EUR", **kwargs)


@pytest.fixture
def engine() -> AnalysisEngine:
    return AnalysisEngine()


def test_percent_change() -> None:
    assert percent_change(Decimal("150"), Decimal("100")) == Decimal("50.0")
    assert percent_change(Decimal("80"), Decimal("120")) == Decimal(-40) / Decimal(120) * 100
    assert percent_change(Decimal("100"), Decimal("30")) == Decimal(70) / Decimal(30) * 100
    assert percent_change(Decimal("80"), Decimal("0")) is None
    assert percent_change(Decimal("80"), None) is None


def test_savings_rate() -> None:
    assert savings_rate(Decimal("1000"), Decimal("920")) == Decimal("92.0")
    assert savings_rate(Decimal("0"), Decimal("-50")) == Decimal("0")


def test_rank_categories_orders_by_amount_then_name() -> None:
    records = build_records([
        expense("1", "30", "Transport", "2024-01-03"),
        expense("2", "50", "food", "2024-01-04"),
        expense("3", "30", "bills", "2024-01-05"),
        expense("4", "20", None, "2024-01-06"),
        expense("5", "20", "Food", "2024-01-07"),
        income("6", "999", "2024-01-08"),
    ])

    ranked = rank_categories(records, "EUR")

    assert [(c.category, c.amount) for c in ranked] == [
        ("food", Decimal("70.00")),
        ("bills", Decimal("30.00")),
        ("Transport", Decimal("30.00")),
        (UNCATEGORIZED, Decimal("20.00")),
    ]
    assert ranked[0].count == 2
    assert ranked[0].share == Decimal("46.7")


def test_least_squares_slope() -> None:
    assert least_squares_slope([Decimal(1), Decimal(2), Decimal(3)]) == Decimal(1)
    assert least_squares_slope([Decimal(5)]) == Decimal(0)


@pytest.mark.parametrize(
    ("values", "expected"),
    [
        (["100", "120", "140"], TrendDirection.INCREASING),
        (["140", "120", "100"], TrendDirection.DECREASING),
        (["100", "101", "99", "100"], TrendDirection.FLAT),
        (["0", "0", "0"], TrendDirection.FLAT),
    ],
)
def test_trend_direction(values, expected) -> None:
    direction, _ = trend_direction([Decimal(v) for v in values])
    assert direction is expected


def test_spending_filters_categories(engine: AnalysisEngine, now: datetime, january_rows) -> None:
    records = build_records(january_rows + [expense("t4", "12.50", "bills", "2024-01-10")])
    params = params_for(now, categories=("food",))

    result = engine.analyze(QueryIntent.SPENDING, records, params, now)

    assert result.total == Decimal("80.00")
    assert result.count == 2
    assert result.average == Decimal("40.00")
    assert result.daily_average == Decimal("3.20")


def test_income_ignores_categories(engine: AnalysisEngine, now: datetime, january_rows) -> None:
    params = params_for(now)
    result = engine.analyze(QueryIntent.INCOME, build_records(january_rows), params, now)
    assert result.total == Decimal("1000.00")
    assert result.metric is Metric.INCOME


def test_savings(engine: AnalysisEngine, now: datetime, january_rows) -> None:
    result = engine.analyze(QueryIntent.SAVINGS, build_records(january_rows), params_for(now), now)
    assert result.balance == Decimal("920.00")
    assert result.income == Decimal("1000.00")
    assert result.expenses == Decimal("80.00")
    assert result.savings_rate == Decimal("92.0")


def test_transfers_are_not_spending(engine: AnalysisEngine, now: datetime) -> None:
    records = build_records([
        expense("1", "40", "food", "2024-01-10"),
        {"id": "2", "user_id": "u1", "amount": "-500", "date": "2024-01-11", "type": "transfer"},
    ])
    result = engine.analyze(QueryIntent.BALANCE, records, params_for(now), now)
    assert result.balance == Decimal("-40.00")
    assert result.count == 1


def test_comparison_period_against_previous_month(engine: AnalysisEngine, now: datetime, january_rows) -> None:
    records = build_records(january_rows + [expense("d1", "100", "food", "2023-12-15")])
    params = params_for(now)

    result = engine.analyze(QueryIntent.COMPARISON_PERIOD, records, params, now)

    assert result.baseline_range.end == datetime(2024, 1, 1, tzinfo=UTC) - TICK
    assert result.baseline_range.duration == result.date_range.duration
    assert result.total == Decimal("80.00")
    assert result.baseline_total == Decimal("100.00")
    assert result.delta == Decimal("-20.00")
    assert result.percent_change == Decimal("-20.0")


def test_comparison_with_empty_baseline_is_not_applicable(engine: AnalysisEngine, now: datetime, january_rows) -> None:
    result = engine.analyze(QueryIntent.COMPARISON_PERIOD, build_records(january_rows), params_for(now), now)
    assert result.baseline_total == Decimal("0.00")
    assert result.percent_change is None


def test_comparison_amount(engine: AnalysisEngine, now: datetime, january_rows) -> None:
    params = params_for(now, comparison_amount=Decimal("50"))
    result = engine.analyze(QueryIntent.COMPARISON_AMOUNT, build_records(january_rows), params, now)
    assert result.target_amount == Decimal("50.00")
    assert result.delta == Decimal("30.00")
    assert result.percent_change == Decimal("60.0")


def test_plan_range_covers_baseline(engine: AnalysisEngine, now: datetime) -> None:
    plan = engine.plan_range(QueryIntent.COMPARISON_PERIOD, params_for(now), now)
    assert plan.start == datetime(2023, 12, 7, 11, 59, 59, 999999, tzinfo=UTC)
    assert plan.end == now


def test_trend_series(engine: AnalysisEngine, now: datetime) -> None:
    records = build_records([
        expense("1", "100", "food", "2023-10-10"),
        expense("2", "150", "food", "2023-11-10"),
        expense("3", "200", "food", "2023-12-10"),
        # The running month is not part of the series.
        expense("4", "999", "food", "2024-01-10"),
    ])
    params = params_for(now, periods=3)

    result = engine.analyze(QueryIntent.TREND, records, params, now)

    assert [point.total for point in result.series] == [Decimal("100.00"), Decimal("150.00"), Decimal("200.00")]
    assert [point.percent_change for point in result.series] == [None, Decimal(50), Decimal(50) / Decimal(150) * 100]
    assert result.direction is TrendDirection.INCREASING
    assert result.slope == Decimal("50.00")
    assert result.percent_change == Decimal("100.0")
    assert result.date_range.start == datetime(2023, 10, 1, tzinfo=UTC)


def test_weekly_trend_windows(engine: AnalysisEngine, now: datetime) -> None:
    params = params_for(now, periods=4, trend_unit=Granularity.WEEK)
    windows = engine.trend_windows(params, now)
    assert len(windows) == 4
    assert all(w.granularity is Granularity.WEEK for w in windows)


def test_category_breakdown(engine: AnalysisEngine, now: datetime, january_rows) -> None:
    result = engine.analyze(QueryIntent.CATEGORY_BREAKDOWN, build_records(january_rows), params_for(now), now)
    assert [c.category for c in result.categories] == ["food"]
    assert result.categories[0].share == Decimal("100.0")


def test_spending_raises_exceeded_alerts_only(engine: AnalysisEngine, now: datetime, january_rows) -> None:
    thresholds = {"food": Decimal("60"), "bills": Decimal("100")}
    result = engine.analyze(QueryIntent.SPENDING, build_records(january_rows), params_for(now), now, thresholds)
    assert [(a.category, a.level) for a in result.alerts] == [("food", "exceeded")]


def test_budget_status_lists_every_budget(engine: AnalysisEngine, now: datetime, january_rows) -> None:
    thresholds = {"food": Decimal("100"), "bills": Decimal("50")}
    params = params_for(now, "last_year")

    result = engine.analyze(QueryIntent.BUDGET_STATUS, build_records(january_rows), params, now, thresholds)

    # Budgets always track the running month.
    assert result.date_range.label == "this_month"
    assert [(a.category, a.level, a.percent_of_threshold) for a in result.alerts] == [
        ("food", "warning", Decimal("80.0")),
        ("bills", "ok", Decimal("0.0")),
    ]


def test_thresholds_only_when_needed(engine: AnalysisEngine, now: datetime) -> None:
    assert engine.needs_thresholds(QueryIntent.BUDGET_STATUS, params_for(now, "last_year"))
    assert engine.needs_thresholds(QueryIntent.SPENDING, params_for(now))
    assert not engine.needs_thresholds(QueryIntent.SPENDING, params_for(now, "last_n_months"))
    assert not engine.needs_thresholds(QueryIntent.INCOME, params_for(now))
