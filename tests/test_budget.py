from decimal import Decimal

from finance_chat.services.budget import BudgetNotifier


def test_evaluate_levels_and_order() -> None:
    notifier = BudgetNotifier()
    spending = {"Food": Decimal("120"), "bills": Decimal("85"), "fun": Decimal("10")}
    thresholds = {"food": Decimal("100"), "Bills": Decimal("100"), "fun": Decimal("50"), "rent": Decimal("700")}

    alerts = notifier.evaluate(spending, thresholds)

    assert [(a.category, a.level) for a in alerts] == [
        ("food", "exceeded"),
        ("Bills", "warning"),
        ("fun", "ok"),
        ("rent", "ok"),
    ]
    food = alerts[0]
    assert food.exceeded is True
    assert food.current == Decimal("120.00")
    assert food.percent_of_threshold == Decimal("120.0")
    assert food.remaining == Decimal("-20.00")


def test_reaching_the_threshold_counts_as_exceeded() -> None:
    alerts = BudgetNotifier().check({"food": Decimal("100")}, {"food": Decimal("100")})
    assert len(alerts) == 1
    assert alerts[0].level == "exceeded"


def test_check_returns_only_exceeded() -> None:
    alerts = BudgetNotifier().check(
        {"food": Decimal("99.99"), "bills": Decimal("300")},
        {"food": Decimal("100"), "bills": Decimal("250")},
    )
    assert [a.category for a in alerts] == ["bills"]


def test_non_positive_thresholds_are_ignored() -> None:
    alerts = BudgetNotifier().evaluate({"food": Decimal("10")}, {"food": Decimal("0"), "bills": Decimal("-5")})
    assert alerts == []


def test_custom_warning_level() -> None:
    alerts = BudgetNotifier(warning_percent=Decimal("50")).evaluate({"food": Decimal("60")}, {"food": Decimal("100")})
    assert alerts[0].level == "warning"
