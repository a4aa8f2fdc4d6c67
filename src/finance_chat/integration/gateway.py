from abc import ABC, abstractmethod
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from finance_chat.domain.records import build_records, parse_amount
from finance_chat.domain.text import normalize_text
from finance_chat.domain.vocabulary import normalize_categories
from finance_chat.models import DateRange, PartnershipContext, TransactionRecord, UserProfile


class DataGateway(ABC):
    """Read access to the finance store, scoped per user."""

    @abstractmethod
    async def fetch_transactions(
        self,
        user_id: str,
        partner_id: str | None,
        date_range: DateRange,
        categories: Iterable[str] | None = None,
    ) -> list[TransactionRecord]:
        pass

    @abstractmethod
    async def fetch_budget_thresholds(self, user_id: str) -> dict[str, Decimal]:
        pass

    @abstractmethod
    async def fetch_partnership(self, user_id: str) -> PartnershipContext:
        pass

    @abstractmethod
    async def fetch_profile(self, user_id: str) -> UserProfile:
        pass


class InMemoryGateway(DataGateway):
    """Gateway over plain row dicts, for tests and local tooling."""

    def __init__(
        self,
        transactions: list[dict[str, Any]] | list[TransactionRecord] | None = None,
        budgets: dict[str, dict[str, Any]] | None = None,
        partnerships: dict[str, PartnershipContext] | None = None,
        profiles: dict[str, UserProfile] | None = None,
    ):
        rows = list(transactions or [])
        dict_rows = [row for row in rows if isinstance(row, dict)]
        records = [row for row in rows if isinstance(row, TransactionRecord)]
        self.transactions: list[TransactionRecord] = records + build_records(dict_rows)
        self.budgets = {
            user_id: {category: parse_amount(value) for category, value in thresholds.items()}
            for user_id, thresholds in (budgets or {}).items()
        }
        self.partnerships = dict(partnerships or {})
        self.profiles = dict(profiles or {})
        self.call_count = 0

    async def fetch_transactions(
        self,
        user_id: str,
        partner_id: str | None,
        date_range: DateRange,
        categories: Iterable[str] | None = None,
    ) -> list[TransactionRecord]:
        self.call_count += 1
        members = {user_id} | ({partner_id} if partner_id else set())
        wanted = {normalize_text(name) for name in normalize_categories(list(categories or []))}
        matches = [
            record for record in self.transactions
            if record.user_id in members
            and date_range.contains(record.date)
            and (not wanted or normalize_text(record.category) in wanted)
        ]
        matches.sort(key=lambda record: (record.date, record.id))
        return matches

    async def fetch_budget_thresholds(self, user_id: str) -> dict[str, Decimal]:
        self.call_count += 1
        return dict(self.budgets.get(user_id, {}))

    async def fetch_partnership(self, user_id: str) -> PartnershipContext:
        self.call_count += 1
        return self.partnerships.get(user_id) or PartnershipContext(user_id=user_id)

    async def fetch_profile(self, user_id: str) -> UserProfile:
        self.call_count += 1
        return self.profiles.get(user_id) or UserProfile(user_id=user_id)
