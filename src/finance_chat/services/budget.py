from collections.abc import Mapping
from decimal import Decimal

from finance_chat.domain.money import quantize_money, quantize_percent
from finance_chat.logger import get_logger
from finance_chat.models import BudgetAlert

logger = get_logger(__name__)

DEFAULT_WARNING_PERCENT = Decimal("80")
HUNDRED = Decimal("100")


class BudgetNotifier:
    def __init__(self, warning_percent: Decimal = DEFAULT_WARNING_PERCENT):
        self.warning_percent = Decimal(warning_percent)

    def evaluate(
        self,
        spending: Mapping[str, Decimal],
        thresholds: Mapping[str, Decimal],
    ) -> list[BudgetAlert]:
        """Status of every budgeted category, most consumed first."""
        spent_by_key = {}
        for category, amount in spending.items():
            key = category.casefold()
            spent_by_key[key] = spent_by_key.get(key, Decimal(0)) + amount

        alerts: list[BudgetAlert] = []
        for category, threshold in thresholds.items():
            if threshold <= 0:
                logger.warning("[BUDGET] Ignoring non-positive threshold %s for '%s'", threshold, category)
                continue
            current = spent_by_key.get(category.casefold(), Decimal(0))
            percent = current / threshold * HUNDRED
            if current >= threshold:
                level = "exceeded"
            elif percent >= self.warning_percent:
                level = "warning"
            else:
                level = "ok"
            alerts.append(BudgetAlert(
                category=category,
                threshold=threshold,
                current=quantize_money(current),
                exceeded=current >= threshold,
                percent_of_threshold=quantize_percent(percent),
                remaining=quantize_money(threshold - current),
                level=level,
            ))

        alerts.sort(key=lambda alert: (-alert.percent_of_threshold, alert.category))
        exceeded = sum(1 for alert in alerts if alert.exceeded)
        if exceeded:
            logger.info("[BUDGET] %d of %d budgets exceeded", exceeded, len(alerts))
        return alerts

    def check(
        self,
        spending: Mapping[str, Decimal],
        thresholds: Mapping[str, Decimal],
    ) -> list[BudgetAlert]:
        """Only the categories at or over their threshold."""
        return [alert for alert in self.evaluate(spending, thresholds) if alert.exceeded]
