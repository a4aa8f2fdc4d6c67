from collections.abc import Iterable, Mapping
from datetime import datetime
from decimal import Decimal

from finance_chat.domain.money import quantize_money, quantize_percent
from finance_chat.domain.periods import (
    covers_single_month,
    month_windows,
    preceding_range,
    resolve_period,
    span,
    week_windows,
)
from finance_chat.domain.vocabulary import category_group
from finance_chat.logger import get_logger
from finance_chat.models import (
    AnalysisResult,
    BudgetAlert,
    CategoryTotal,
    DateRange,
    Granularity,
    Metric,
    QueryIntent,
    QueryParameters,
    TransactionRecord,
    TransactionType,
    TrendDirection,
    TrendPoint,
)
from finance_chat.services.budget import BudgetNotifier

logger = get_logger(__name__)

HUNDRED = Decimal("100")
ZERO = Decimal("0")
UNCATEGORIZED = "uncategorized"
DEFAULT_TREND_THRESHOLD = Decimal("5")

# Intents whose answer narrows to the categories named in the query.
CATEGORY_FILTERED_INTENTS = frozenset({
    QueryIntent.SPENDING,
    QueryIntent.COMPARISON_PERIOD,
    QueryIntent.COMPARISON_AMOUNT,
    QueryIntent.TREND,
})


def expense_total(records: Iterable[TransactionRecord]) -> Decimal:
    return sum((abs(r.amount) for r in records if r.type is TransactionType.EXPENSE), ZERO)


def income_total(records: Iterable[TransactionRecord]) -> Decimal:
    return sum((abs(r.amount) for r in records if r.type is TransactionType.INCOME), ZERO)


def metric_total(records: list[TransactionRecord], metric: Metric) -> Decimal:
    if metric is Metric.INCOME:
        return income_total(records)
    if metric is Metric.BALANCE:
        return income_total(records) - expense_total(records)
    return expense_total(records)


def metric_count(records: Iterable[TransactionRecord], metric: Metric) -> int:
    if metric is Metric.INCOME:
        return sum(1 for r in records if r.type is TransactionType.INCOME)
    if metric is Metric.SPENDING:
        return sum(1 for r in records if r.type is TransactionType.EXPENSE)
    return sum(1 for r in records if r.type is not TransactionType.TRANSFER)


def percent_change(current: Decimal, baseline: Decimal | None) -> Decimal | None:
    """Relative change in percent, or None when there is no baseline to divide by."""
    if baseline is None or baseline == 0:
        return None
    return (current - baseline) / baseline * HUNDRED


def savings_rate(income: Decimal, balance: Decimal) -> Decimal:
    if income == 0:
        return ZERO
    return quantize_percent(balance / income * HUNDRED)


def _group_expenses(records: Iterable[TransactionRecord]) -> dict[str, tuple[Decimal, int]]:
    groups: dict[str, tuple[Decimal, int]] = {}
    names: dict[str, str] = {}
    for record in records:
        if record.type is not TransactionType.EXPENSE:
            continue
        name = (record.category or "").strip() or UNCATEGORIZED
        name = names.setdefault(name.casefold(), name)
        amount, count = groups.get(name, (ZERO, 0))
        groups[name] = (amount + abs(record.amount), count + 1)
    return groups


def category_spending(records: Iterable[TransactionRecord]) -> dict[str, Decimal]:
    return {name: amount for name, (amount, _) in _group_expenses(records).items()}


def rank_categories(records: list[TransactionRecord], currency: str | None = None) -> list[CategoryTotal]:
    """Expense totals per category, largest first, ties broken alphabetically."""
    groups = _group_expenses(records)
    grand_total = sum((amount for amount, _ in groups.values()), ZERO)
    ranked = [
        CategoryTotal(
            category=name,
            amount=quantize_money(amount, currency),
            count=count,
            share=quantize_percent(amount / grand_total * HUNDRED) if grand_total else ZERO,
        )
        for name, (amount, count) in groups.items()
    ]
    ranked.sort(key=lambda item: (-item.amount, item.category.casefold(), item.category))
    return ranked


def least_squares_slope(values: list[Decimal]) -> Decimal:
    n = len(values)
    if n < 2:
        return ZERO
    mean_x = Decimal(n - 1) / 2
    mean_y = sum(values, ZERO) / n
    numerator = sum(((Decimal(i) - mean_x) * (y - mean_y) for i, y in enumerate(values)), ZERO)
    denominator = sum(((Decimal(i) - mean_x) ** 2 for i in range(n)), ZERO)
    return numerator / denominator


def trend_direction(values: list[Decimal], threshold_percent: Decimal = DEFAULT_TREND_THRESHOLD) -> tuple[TrendDirection, Decimal]:
    """Direction from the fitted change across the whole series relative to its mean."""
    slope = least_squares_slope(values)
    if len(values) < 2 or slope == 0:
        return TrendDirection.FLAT, slope
    mean = sum(values, ZERO) / len(values)
    if mean == 0:
        return (TrendDirection.INCREASING if slope > 0 else TrendDirection.DECREASING), slope
    relative = slope * (len(values) - 1) / abs(mean) * HUNDRED
    if relative >= threshold_percent:
        return TrendDirection.INCREASING, slope
    if relative <= -threshold_percent:
        return TrendDirection.DECREASING, slope
    return TrendDirection.FLAT, slope


def _within(records: Iterable[TransactionRecord], window: DateRange) -> list[TransactionRecord]:
    return [r for r in records if window.contains(r.date)]


def _in_categories(records: Iterable[TransactionRecord], categories: tuple[str, ...]) -> list[TransactionRecord]:
    wanted = {category_group(name) for name in categories}
    return [r for r in records if category_group(r.category) in wanted]


class AnalysisEngine:
    def __init__(
        self,
        trend_threshold: Decimal = DEFAULT_TREND_THRESHOLD,
        notifier: BudgetNotifier | None = None,
    ):
        self.trend_threshold = Decimal(trend_threshold)
        self.notifier = notifier or BudgetNotifier()

    # -- planning ------------------------------------------------------

    def trend_windows(self, params: QueryParameters, now: datetime) -> list[DateRange]:
        if params.trend_unit is Granularity.WEEK:
            return week_windows(now, params.periods)
        return month_windows(now, params.periods)

    def effective_range(self, intent: QueryIntent, params: QueryParameters, now: datetime) -> DateRange:
        if intent is QueryIntent.BUDGET_STATUS:
            return resolve_period("this_month", now)
        if intent is QueryIntent.TREND:
            return span(self.trend_windows(params, now))
        return params.date_range

    def baseline_range(self, params: QueryParameters) -> DateRange:
        return params.comparison_range or preceding_range(params.date_range)

    def plan_range(self, intent: QueryIntent, params: QueryParameters, now: datetime) -> DateRange:
        """Smallest range of transactions the intent needs."""
        current = self.effective_range(intent, params, now)
        if intent is QueryIntent.COMPARISON_PERIOD:
            return span([current, self.baseline_range(params)])
        return current

    def uses_categories(self, intent: QueryIntent, params: QueryParameters) -> bool:
        return bool(params.categories) and intent in CATEGORY_FILTERED_INTENTS and params.metric is Metric.SPENDING

    def needs_thresholds(self, intent: QueryIntent, params: QueryParameters) -> bool:
        if intent is QueryIntent.BUDGET_STATUS:
            return True
        return intent in (QueryIntent.SPENDING, QueryIntent.CATEGORY_BREAKDOWN) and covers_single_month(
            params.date_range
        )

    # -- analysis ------------------------------------------------------

    def analyze(
        self,
        intent: QueryIntent,
        records: list[TransactionRecord],
        params: QueryParameters,
        now: datetime,
        thresholds: Mapping[str, Decimal] | None = None,
    ) -> AnalysisResult:
        currency = params.currency
        window = self.effective_range(intent, params, now)
        if self.uses_categories(intent, params):
            records = _in_categories(records, params.categories)
        current = _within(records, window)

        result = AnalysisResult(intent=intent, currency=currency, date_range=window)

        if intent in (QueryIntent.SPENDING, QueryIntent.INCOME):
            metric = Metric.INCOME if intent is QueryIntent.INCOME else Metric.SPENDING
            total = metric_total(current, metric)
            count = metric_count(current, metric)
            result.metric = metric
            result.total = quantize_money(total, currency)
            result.count = count
            if metric is Metric.SPENDING:
                result.expenses = result.total
            else:
                result.income = result.total
            result.average = quantize_money(total / count, currency) if count else None
            result.daily_average = quantize_money(total / window.days, currency)

        elif intent in (QueryIntent.BALANCE, QueryIntent.SAVINGS):
            income = income_total(current)
            expenses = expense_total(current)
            balance = income - expenses
            result.metric = Metric.BALANCE
            result.income = quantize_money(income, currency)
            result.expenses = quantize_money(expenses, currency)
            result.balance = quantize_money(balance, currency)
            result.total = result.balance
            result.count = metric_count(current, Metric.BALANCE)
            if intent is QueryIntent.SAVINGS:
                result.savings_rate = savings_rate(income, balance)

        elif intent is QueryIntent.COMPARISON_PERIOD:
            baseline_window = self.baseline_range(params)
            total = metric_total(current, params.metric)
            baseline = metric_total(_within(records, baseline_window), params.metric)
            result.metric = params.metric
            result.total = quantize_money(total, currency)
            result.count = metric_count(current, params.metric)
            result.baseline_range = baseline_window
            result.baseline_total = quantize_money(baseline, currency)
            result.delta = quantize_money(total - baseline, currency)
            result.percent_change = percent_change(total, baseline)

        elif intent is QueryIntent.COMPARISON_AMOUNT:
            total = metric_total(current, params.metric)
            result.metric = params.metric
            result.total = quantize_money(total, currency)
            result.count = metric_count(current, params.metric)
            if params.comparison_amount is not None:
                target = params.comparison_amount
                result.target_amount = quantize_money(target, currency)
                result.delta = quantize_money(total - target, currency)
                result.percent_change = percent_change(total, target)

        elif intent is QueryIntent.CATEGORY_BREAKDOWN:
            result.metric = Metric.SPENDING
            result.categories = rank_categories(current, currency)
            result.total = quantize_money(expense_total(current), currency)
            result.expenses = result.total
            result.count = metric_count(current, Metric.SPENDING)

        elif intent is QueryIntent.TREND:
            self._trend(result, records, params, now)

        elif intent is QueryIntent.BUDGET_STATUS:
            result.metric = Metric.SPENDING
            result.total = quantize_money(expense_total(current), currency)
            result.expenses = result.total
            result.count = metric_count(current, Metric.SPENDING)

        if thresholds:
            result.alerts = self._alerts(intent, current, params, thresholds)

        logger.debug(
            "[ANALYSIS] %s over %d records -> total=%s",
            intent.value,
            len(current),
            result.total,
        )
        return result

    def _trend(
        self,
        result: AnalysisResult,
        records: list[TransactionRecord],
        params: QueryParameters,
        now: datetime,
    ) -> None:
        windows = self.trend_windows(params, now)
        totals = [metric_total(_within(records, w), params.metric) for w in windows]
        series = []
        previous: Decimal | None = None
        for window, total in zip(windows, totals):
            series.append(TrendPoint(
                start=window.start,
                end=window.end,
                total=quantize_money(total, params.currency),
                percent_change=percent_change(total, previous) if previous is not None else None,
            ))
            previous = total
        direction, slope = trend_direction(totals, self.trend_threshold)
        overall = sum(totals, ZERO)

        result.metric = params.metric
        result.series = series
        result.direction = direction
        result.slope = quantize_money(slope, params.currency)
        result.total = quantize_money(overall, params.currency)
        result.average = quantize_money(overall / len(totals), params.currency) if totals else None
        result.count = metric_count(_within(records, result.date_range), params.metric)
        if len(totals) >= 2:
            result.baseline_total = series[0].total
            result.percent_change = percent_change(totals[-1], totals[0])

    def _alerts(
        self,
        intent: QueryIntent,
        records: list[TransactionRecord],
        params: QueryParameters,
        thresholds: Mapping[str, Decimal],
    ) -> list[BudgetAlert]:
        spending = category_spending(records)
        if intent is QueryIntent.BUDGET_STATUS:
            if params.categories:
                wanted = {category_group(name) for name in params.categories}
                thresholds = {k: v for k, v in thresholds.items() if category_group(k) in wanted} or thresholds
            return self.notifier.evaluate(spending, thresholds)
        return self.notifier.check(spending, thresholds)
