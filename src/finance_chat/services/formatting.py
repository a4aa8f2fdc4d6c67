from decimal import Decimal
from typing import Any

from finance_chat.domain.money import format_date, format_money, format_percent, month_label, quantize_percent
from finance_chat.domain.periods import RELATIVE_KEYS, month_end, month_start
from finance_chat.errors import RateUnavailable
from finance_chat.models import (
    AnalysisResult,
    DateRange,
    Granularity,
    IntentMatch,
    Metric,
    QueryAnswer,
    QueryIntent,
    QueryParameters,
)
from finance_chat.services.analysis import CATEGORY_FILTERED_INTENTS, UNCATEGORIZED
from finance_chat.services.language import SUPPORTED_LANGUAGES
from finance_chat.services.templates import TEMPLATES, template, validate_templates

_COUNTED_LABELS = ("last_n_days", "last_n_weeks", "last_n_months", "last_n_years")


class ResponseFormatter:
    def __init__(self, templates: dict[tuple[str, str], str] | None = None):
        self.templates = TEMPLATES if templates is None else templates

    def validate(self, languages: tuple[str, ...] = SUPPORTED_LANGUAGES) -> None:
        validate_templates(languages, self.templates)

    def render(self, key: str, language: str, **values: Any) -> str:
        return template(key, language, self.templates).format(**values)

    def quick_actions(self, intent: QueryIntent, language: str) -> list[str]:
        raw = self.render(f"actions_{intent.value}", language)
        return [action.strip() for action in raw.split("|") if action.strip()]

    # -- value rendering -----------------------------------------------

    def money(self, amount: Decimal | None, currency: str, language: str) -> str:
        return format_money(amount or Decimal(0), currency, language)

    def signed_money(self, amount: Decimal | None, currency: str, language: str) -> str:
        text = self.money(amount, currency, language)
        return f"+{text}" if amount and amount > 0 else text

    def percent(self, value: Decimal | None, language: str) -> str:
        if value is None:
            return self.render("not_applicable", language)
        return format_percent(value, language)

    def period_label(self, window: DateRange, language: str) -> str:
        label = window.label
        if label in RELATIVE_KEYS:
            return self.render(f"period_{label}", language)
        if label in _COUNTED_LABELS and window.count:
            return self.render(f"period_{label}", language, count=window.count)

        start, end = window.start, window.end
        if start.date() == end.date():
            return self.render("period_day", language, date=format_date(start, language))
        if start == month_start(start.year, start.month) and end == month_end(start.year, start.month):
            return self.render("period_month", language, month=month_label(start.year, start.month, language))
        if window.granularity is Granularity.YEAR and start == month_start(start.year, 1) and end == month_end(start.year, 12):
            return self.render("period_year", language, year=start.year)
        return self.render(
            "period_custom",
            language,
            start=format_date(start, language),
            end=format_date(end, language),
        )

    def category_name(self, name: str, language: str) -> str:
        return self.render("uncategorized", language) if name == UNCATEGORIZED else name

    def join(self, items: list[str], language: str) -> str:
        if len(items) <= 1:
            return "".join(items)
        return ", ".join(items[:-1]) + self.render("list_and", language) + items[-1]

    def category_clause(self, intent: QueryIntent, result: AnalysisResult, params: QueryParameters, language: str) -> str:
        if not params.categories or intent not in CATEGORY_FILTERED_INTENTS or result.metric is not Metric.SPENDING:
            return ""
        return self.render("category_clause", language, categories=self.join(list(params.categories), language))

    def transactions(self, count: int, language: str) -> str:
        if count == 1:
            return self.render("transaction_one", language)
        return self.render("transaction_many", language, count=count)

    # -- answers -------------------------------------------------------

    def format(
        self,
        match: IntentMatch,
        result: AnalysisResult,
        params: QueryParameters,
        language: str,
    ) -> QueryAnswer:
        intent = match.intent
        currency = result.currency
        common = {
            "period": self.period_label(result.date_range, language),
            "category_clause": self.category_clause(intent, result, params, language),
            "metric": self.render(f"metric_{(result.metric or Metric.SPENDING).value}", language),
            "total": self.money(result.total, currency, language),
        }
        response_type = "text"

        if intent in (QueryIntent.SPENDING, QueryIntent.INCOME):
            key = intent.value if result.count else f"{intent.value}_empty"
            text = self.render(key, language, transactions=self.transactions(result.count, language), **common)

        elif intent in (QueryIntent.BALANCE, QueryIntent.SAVINGS):
            values = {
                "balance": self.money(result.balance, currency, language),
                "income": self.money(result.income, currency, language),
                "expenses": self.money(result.expenses, currency, language),
                "rate": self.percent(result.savings_rate, language),
            }
            key = intent.value
            if intent is QueryIntent.SAVINGS:
                response_type = "insight"
                if result.balance is not None and result.balance < 0:
                    key = "savings_negative"
                    values["deficit"] = self.money(-result.balance, currency, language)
                    response_type = "warning"
            text = self.render(key, language, **{**common, **values})

        elif intent is QueryIntent.COMPARISON_PERIOD:
            text = self.render(
                "comparison_period",
                language,
                baseline_total=self.money(result.baseline_total, currency, language),
                baseline_period=self.period_label(result.baseline_range or result.date_range, language),
                change=self._change(result, language),
                **common,
            )
            response_type = "insight"

        elif intent is QueryIntent.COMPARISON_AMOUNT:
            if result.target_amount is None:
                text = self.render("comparison_amount_missing", language, **common)
            else:
                text = self.render("comparison_amount", language, relation=self._relation(result, language), **common)
            response_type = "insight"

        elif intent is QueryIntent.CATEGORY_BREAKDOWN:
            if result.categories:
                lines = [
                    self.render(
                        "category_line",
                        language,
                        rank=rank,
                        category=self.category_name(item.category, language),
                        amount=self.money(item.amount, currency, language),
                        share=self.percent(item.share, language),
                    )
                    for rank, item in enumerate(result.categories, start=1)
                ]
                text = self.render("category_breakdown", language, lines="\n".join(lines), **common)
                response_type = "insight"
            else:
                text = self.render("category_breakdown_empty", language, **common)

        elif intent is QueryIntent.TREND:
            text = self._trend(result, params, language, common)
            response_type = "insight"

        elif intent is QueryIntent.BUDGET_STATUS:
            if result.alerts:
                lines = [
                    self.render(
                        "budget_line",
                        language,
                        category=self.category_name(alert.category, language),
                        current=self.money(alert.current, currency, language),
                        threshold=self.money(alert.threshold, currency, language),
                        percent=self.percent(alert.percent_of_threshold, language),
                        status=self.render(f"status_{alert.level}", language),
                    )
                    for alert in result.alerts
                ]
                text = self.render("budget_status", language, lines="\n".join(lines), **common)
                response_type = "warning" if any(alert.exceeded for alert in result.alerts) else "insight"
            else:
                text = self.render("budget_status_empty", language, **common)
                response_type = "suggestion"

        else:
            return self.unrecognized(language)

        notes = []
        exceeded = [alert for alert in result.alerts if alert.exceeded]
        if exceeded and intent is not QueryIntent.BUDGET_STATUS:
            items = [
                self.render(
                    "budget_alert_item",
                    language,
                    category=self.category_name(alert.category, language),
                    current=self.money(alert.current, currency, language),
                    threshold=self.money(alert.threshold, currency, language),
                )
                for alert in exceeded
            ]
            notes.append(self.render("budget_alert", language, categories=", ".join(items)))
            response_type = "warning"
        if result.stale_rates:
            notes.append(self.render("stale_rate_note", language, pairs=", ".join(result.stale_rates)))

        return QueryAnswer(
            text="\n".join([text, *notes]),
            data=result,
            language=language,
            intent=intent,
            quick_actions=self.quick_actions(intent, language),
            response_type=response_type,
        )

    def _change(self, result: AnalysisResult, language: str) -> str:
        delta = self.signed_money(result.delta, result.currency, language)
        if result.percent_change is None:
            return self.render(
                "change_na",
                language,
                delta=delta,
                not_applicable=self.render("not_applicable", language),
            )
        shown = quantize_percent(result.percent_change)
        if shown > 0:
            return self.render("change_up", language, percent=self.percent(shown, language), delta=delta)
        if shown < 0:
            return self.render("change_down", language, percent=self.percent(-shown, language), delta=delta)
        return self.render("change_flat", language)

    def _relation(self, result: AnalysisResult, language: str) -> str:
        delta = result.delta or Decimal(0)
        target = self.money(result.target_amount, result.currency, language)
        if delta == 0:
            return self.render("relation_equal", language, target=target)
        percent = result.percent_change
        values = {
            "difference": self.money(abs(delta), result.currency, language),
            "target": target,
            "percent": self.percent(abs(percent) if percent is not None else None, language),
        }
        key = "relation_above" if delta > 0 else "relation_below"
        return self.render(key, language, **values)

    def _trend(self, result: AnalysisResult, params: QueryParameters, language: str, common: dict[str, str]) -> str:
        unit = self.render(f"unit_{'week' if params.trend_unit is Granularity.WEEK else 'month'}", language)
        values = {**common, "periods": len(result.series), "unit": unit}
        if not result.series or all(point.total == 0 for point in result.series):
            return self.render("trend_empty", language, **values)

        lines = []
        for point in result.series:
            if params.trend_unit is Granularity.WEEK:
                label = format_date(point.start, language)
            else:
                label = month_label(point.start.year, point.start.month, language)
            total = self.money(point.total, result.currency, language)
            if point.percent_change is None:
                lines.append(self.render("trend_line", language, label=label, total=total))
            else:
                change = self.percent(point.percent_change, language)
                if quantize_percent(point.percent_change) > 0:
                    change = f"+{change}"
                lines.append(self.render("trend_line_change", language, label=label, total=total, percent=change))

        direction = self.render(f"direction_{(result.direction.value if result.direction else 'flat')}", language)
        return self.render("trend", language, direction=direction, lines="\n".join(lines), **values)

    def unrecognized(self, language: str) -> QueryAnswer:
        return QueryAnswer(
            text=self.render("unrecognized", language),
            data=None,
            language=language,
            intent=QueryIntent.UNRECOGNIZED,
            quick_actions=self.quick_actions(QueryIntent.UNRECOGNIZED, language),
            response_type="suggestion",
        )

    def rate_unavailable(self, exc: RateUnavailable, language: str, intent: QueryIntent) -> QueryAnswer:
        return QueryAnswer(
            text=self.render("rate_unavailable", language, pair=exc.pair),
            data=None,
            language=language,
            intent=intent,
            quick_actions=self.quick_actions(intent, language),
            response_type="warning",
        )
