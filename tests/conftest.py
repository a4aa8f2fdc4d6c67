from datetime import datetime, timezone
from decimal import Decimal

import pytest

from finance_chat.integration.gateway import InMemoryGateway
from finance_chat.models import ExchangeRate, PartnershipContext, UserProfile
from finance_chat.services.currency import RateCache

NOW = datetime(2024, 1, 25, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def january_rows() -> list[dict]:
    return [
        {"id": "t1", "user_id": "u1", "amount": "-50.00", "currency": "EUR", "category": "food",
         "date": "2024-01-05T10:00:00Z", "type": "expense"},
        {"id": "t2", "user_id": "u1", "amount": "-30.00", "currency": "EUR", "category": "food",
         "date": "2024-01-20T18:30:00Z", "type": "expense"},
        {"id": "t3", "user_id": "u1", "amount": "1000.00", "currency": "EUR", "category": "salary",
         "date": "2024-01-01T00:00:00Z", "type": "income"},
    ]


@pytest.fixture
def gateway(january_rows: list[dict]) -> InMemoryGateway:
    return InMemoryGateway(
        transactions=january_rows,
        profiles={"u1": UserProfile(user_id="u1", base_currency="EUR", language="en")},
        partnerships={"u1": PartnershipContext(user_id="u1")},
    )


class StaticRateProvider:
    """Provider double returning fixed rates and counting calls."""

    def __init__(self, rates: dict[tuple[str, str], Decimal] | None = None, error: Exception | None = None):
        self.rates = rates or {}
        self.error = error
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def get_rate(self, base: str, quote: str) -> ExchangeRate:
        self.calls.append((base, quote))
        if self.error is not None:
            raise self.error
        return ExchangeRate(base=base, quote=quote, rate=self.rates[(base, quote)], timestamp=NOW)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def rate_cache() -> RateCache:
    return RateCache()


@pytest.fixture
def make_provider():
    return StaticRateProvider
