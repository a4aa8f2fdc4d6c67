from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from finance_chat.app import create_engine
from finance_chat.core.settings import EngineSettings
from finance_chat.errors import DataFetchFailed
from finance_chat.integration.gateway import InMemoryGateway
from finance_chat.models import (
    ChatMessage,
    ExchangeRate,
    PartnershipContext,
    QueryIntent,
    TransactionRecord,
    TransactionType,
    UserProfile,
)
from finance_chat.services.currency import CurrencyNormalizer, RateCache
from finance_chat.services.engine import QueryEngine


def build_engine(gateway, provider, now: datetime, cache: RateCache | None = None) -> QueryEngine:
    normalizer = CurrencyNormalizer(provider, cache=cache if cache is not None else RateCache(), clock=lambda: now)
    return QueryEngine(gateway, normalizer, clock=lambda: now)


@pytest.fixture
def engine(gateway: InMemoryGateway, make_provider, now: datetime) -> QueryEngine:
    return build_engine(gateway, make_provider(), now)


@pytest.mark.anyio
async def test_spending_on_category(engine: QueryEngine, gateway: InMemoryGateway) -> None:
    answer = await engine.answer("u1", "How much did I spend on food this month?")

    assert answer.intent is QueryIntent.SPENDING
    assert answer.language == "en"
    assert answer.data.total == Decimal("80.00")
    assert answer.data.currency == "EUR"
    assert answer.text == "You spent €80.00 on food this month across 2 transactions."
    assert answer.quick_actions
    # profile, partnership, transactions and budgets
    assert gateway.call_count == 4


@pytest.mark.anyio
async def test_savings_this_month(engine: QueryEngine) -> None:
    answer = await engine.answer("u1", "Am I saving money?")

    assert answer.intent is QueryIntent.SAVINGS
    assert answer.data.balance == Decimal("920.00")
    assert answer.data.savings_rate == Decimal("92.0")
    assert "92.0%" in answer.text
    assert answer.response_type == "insight"


@pytest.mark.anyio
async def test_unrecognized_query_never_touches_gateway(engine: QueryEngine, gateway: InMemoryGateway) -> None:
    answer = await engine.answer("u1", "asdkjh qweqwe")

    assert answer.intent is QueryIntent.UNRECOGNIZED
    assert answer.data is None
    assert answer.response_type == "suggestion"
    assert gateway.call_count == 0


@pytest.mark.anyio
async def test_greek_query_overrides_english_preference(engine: QueryEngine) -> None:
    answer = await engine.answer("u1", "Πόσα ξόδεψα για φαγητό αυτόν τον μήνα;", language_preference="en")

    assert answer.language == "el"
    assert answer.intent is QueryIntent.SPENDING
    assert answer.text == "Ξοδέψατε 80,00 € για food αυτόν τον μήνα σε 2 συναλλαγές."


@pytest.mark.anyio
async def test_follow_up_uses_history(engine: QueryEngine) -> None:
    history = [ChatMessage(role="user", message="How much did I spend on food this month?")]

    answer = await engine.answer("u1", "and groceries?", history=history)

    assert answer.intent is QueryIntent.SPENDING


@pytest.mark.anyio
async def test_comparison_with_previous_month(gateway: InMemoryGateway, make_provider, now: datetime) -> None:
    gateway.transactions.append(TransactionRecord(
        id="d1",
        user_id="u1",
        amount=Decimal("-100"),
        category="food",
        date=datetime(2023, 12, 15, tzinfo=now.tzinfo),
        type=TransactionType.EXPENSE,
    ))
    engine = build_engine(gateway, make_provider(), now)

    answer = await engine.answer("u1", "Am I spending more than last month?")

    assert answer.intent is QueryIntent.COMPARISON_PERIOD
    assert answer.data.baseline_total == Decimal("100.00")
    assert answer.data.percent_change == Decimal("-20.0")
    assert "down 20.0%" in answer.text


@pytest.mark.anyio
async def test_exceeded_budget_is_flagged(january_rows, make_provider, now: datetime) -> None:
    gateway = InMemoryGateway(transactions=january_rows, budgets={"u1": {"food": "60"}})
    engine = build_engine(gateway, make_provider(), now)

    answer = await engine.answer("u1", "How much did I spend this month?")

    assert answer.response_type == "warning"
    assert "Over budget: food (€80.00 of €60.00)." in answer.text


@pytest.mark.anyio
async def test_answer_in_requested_currency(gateway: InMemoryGateway, make_provider, now: datetime) -> None:
    provider = make_provider({("EUR", "USD"): Decimal("2")})
    engine = build_engine(gateway, provider, now)

    answer = await engine.answer("u1", "How much did I spend on food this month in dollars?")

    assert answer.data.currency == "USD"
    assert answer.data.total == Decimal("160.00")
    assert "$160.00" in answer.text
    assert provider.calls == [("EUR", "USD")]


@pytest.mark.anyio
async def test_budget_thresholds_follow_display_currency(january_rows, make_provider, now: datetime) -> None:
    gateway = InMemoryGateway(
        transactions=january_rows,
        budgets={"u1": {"food": "100"}},
        profiles={"u1": UserProfile(user_id="u1", base_currency="EUR")},
    )
    engine = build_engine(gateway, make_provider({("EUR", "USD"): Decimal("2")}), now)

    answer = await engine.answer("u1", "Am I over budget in dollars?")

    alert = answer.data.alerts[0]
    assert alert.threshold == Decimal("200")
    assert alert.current == Decimal("160.00")
    assert alert.level == "warning"


@pytest.mark.anyio
async def test_missing_rate_gives_localized_message(january_rows, make_provider, now: datetime) -> None:
    rows = january_rows + [{
        "id": "t9", "user_id": "u1", "amount": "-10", "currency": "GBP", "category": "food",
        "date": "2024-01-10T10:00:00Z", "type": "expense",
    }]
    gateway = InMemoryGateway(transactions=rows)
    engine = build_engine(gateway, make_provider(error=RuntimeError("offline")), now)

    answer = await engine.answer("u1", "Πόσα ξόδεψα;", language_preference="el")

    assert answer.language == "el"
    assert answer.data is None
    assert answer.response_type == "warning"
    assert "GBP/EUR" in answer.text


@pytest.mark.anyio
async def test_stale_rate_is_disclosed(january_rows, make_provider, now: datetime) -> None:
    rows = january_rows + [{
        "id": "t9", "user_id": "u1", "amount": "-10", "currency": "USD", "category": "food",
        "date": "2024-01-10T10:00:00Z", "type": "expense",
    }]
    cache = RateCache()
    cache.put(ExchangeRate(base="USD", quote="EUR", rate=Decimal("0.5"), timestamp=now.replace(year=2023)))
    engine = build_engine(InMemoryGateway(transactions=rows), make_provider(error=RuntimeError("offline")), now, cache)

    answer = await engine.answer("u1", "How much did I spend on food?")

    assert answer.data.total == Decimal("85.00")
    assert answer.data.stale_rates == ["USD/EUR"]
    assert "may be out of date" in answer.text


@pytest.mark.anyio
async def test_synonym_finds_records_without_profile_categories(make_provider, now: datetime) -> None:
    rows = [
        {"id": "r1", "user_id": "u1", "amount": "-700", "category": "rent", "date": "2024-01-03", "type": "expense"},
        {"id": "r2", "user_id": "u1", "amount": "-50", "category": "Mortgage", "date": "2024-01-04",
         "type": "expense"},
        {"id": "f1", "user_id": "u1", "amount": "-50", "category": "food", "date": "2024-01-05", "type": "expense"},
    ]
    gateway = InMemoryGateway(transactions=rows, profiles={"u1": UserProfile(user_id="u1", categories=())})
    engine = build_engine(gateway, make_provider(), now)

    answer = await engine.answer("u1", "How much did I pay for rent this month?")

    assert answer.intent is QueryIntent.SPENDING
    assert answer.data.total == Decimal("750.00")
    assert answer.data.count == 2


@pytest.mark.anyio
async def test_partner_transactions_are_included(january_rows, make_provider, now: datetime) -> None:
    rows = january_rows + [
        {"id": "p1", "user_id": "u2", "amount": "-20", "category": "food", "date": "2024-01-12", "type": "expense"},
        {"id": "x1", "user_id": "u3", "amount": "-999", "category": "food", "date": "2024-01-12", "type": "expense"},
    ]
    gateway = InMemoryGateway(
        transactions=rows,
        partnerships={"u1": PartnershipContext(user_id="u1", partner_id="u2", active=True)},
    )
    engine = build_engine(gateway, make_provider(), now)

    answer = await engine.answer("u1", "How much did we spend on food this month?")

    assert answer.data.total == Decimal("100.00")


@pytest.mark.anyio
async def test_inactive_partnership_is_ignored(january_rows, make_provider, now: datetime) -> None:
    rows = january_rows + [
        {"id": "p1", "user_id": "u2", "amount": "-20", "category": "food", "date": "2024-01-12", "type": "expense"},
    ]
    gateway = InMemoryGateway(
        transactions=rows,
        partnerships={"u1": PartnershipContext(user_id="u1", partner_id="u2", active=False)},
    )
    engine = build_engine(gateway, make_provider(), now)

    answer = await engine.answer("u1", "How much did we spend on food this month?")

    assert answer.data.total == Decimal("80.00")


@pytest.mark.anyio
async def test_partnership_of_another_user_does_not_widen_scope(january_rows, make_provider, now: datetime) -> None:
    rows = january_rows + [
        {"id": "p1", "user_id": "u2", "amount": "-20", "category": "food", "date": "2024-01-12", "type": "expense"},
        {"id": "x1", "user_id": "u9", "amount": "-40", "category": "food", "date": "2024-01-12", "type": "expense"},
    ]
    gateway = InMemoryGateway(
        transactions=rows,
        partnerships={"u1": PartnershipContext(user_id="u9", partner_id="u2", active=True)},
    )
    engine = build_engine(gateway, make_provider(), now)

    answer = await engine.answer("u1", "How much did we spend on food this month?")

    assert answer.data.total == Decimal("80.00")


@pytest.mark.anyio
async def test_partnership_seen_from_the_partner_side(january_rows, make_provider, now: datetime) -> None:
    rows = january_rows + [
        {"id": "p1", "user_id": "u2", "amount": "-20", "category": "food", "date": "2024-01-12", "type": "expense"},
    ]
    gateway = InMemoryGateway(
        transactions=rows,
        partnerships={"u1": PartnershipContext(user_id="u2", partner_id="u1", active=True)},
    )
    engine = build_engine(gateway, make_provider(), now)

    answer = await engine.answer("u1", "How much did we spend on food this month?")

    assert answer.data.total == Decimal("100.00")


@pytest.mark.anyio
async def test_out_of_scope_records_from_gateway_are_dropped(
    gateway: InMemoryGateway, engine: QueryEngine, now: datetime
) -> None:
    leaked = TransactionRecord(
        id="x1", user_id="u3", amount=Decimal("-999"), category="food", date=now, type=TransactionType.EXPENSE,
    )
    own = await gateway.fetch_transactions("u1", None, engine.extractor.extract("this month", "en", now).date_range)

    with patch.object(gateway, "fetch_transactions", AsyncMock(return_value=own + [leaked])):
        answer = await engine.answer("u1", "How much did I spend on food this month?")

    assert answer.data.total == Decimal("80.00")


@pytest.mark.anyio
async def test_gateway_failure_surfaces_as_data_fetch_failed(engine: QueryEngine, gateway: InMemoryGateway) -> None:
    with patch.object(gateway, "fetch_transactions", AsyncMock(side_effect=RuntimeError("db down"))):
        with pytest.raises(DataFetchFailed) as exc_info:
            await engine.answer("u1", "How much did I spend?")

    assert exc_info.value.operation == "fetch_transactions"
    assert "db down" in str(exc_info.value)


@pytest.mark.anyio
async def test_aclose_closes_rate_provider(engine: QueryEngine) -> None:
    await engine.aclose()
    assert engine.normalizer.provider.closed is True


def test_create_engine_uses_settings(gateway: InMemoryGateway, make_provider) -> None:
    settings = EngineSettings(
        default_language="el",
        base_currency="usd",
        rate_provider_url="http://rates.local",
        rate_provider_token=None,
        rate_provider_timeout=5.0,
        rate_cache_ttl=60.0,
        trend_periods=4,
        trend_threshold_percent=Decimal("10"),
        budget_warning_percent=Decimal("90"),
        fuzzy_intent_threshold=0.0,
    )
    provider = make_provider()

    with patch("finance_chat.app.setup_logging"):
        engine = create_engine(gateway, provider=provider, engine_settings=settings)

    assert engine.default_language == "el"
    assert engine.default_currency == "USD"
    assert engine.normalizer.provider is provider
    assert engine.normalizer.ttl_seconds == 60.0
    assert engine.intents.fuzzy is None
    assert engine.extractor.default_periods == 4
    assert engine.analysis.trend_threshold == Decimal("10")
    assert engine.analysis.notifier.warning_percent == Decimal("90")
