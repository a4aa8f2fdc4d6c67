from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_decimal(value: object) -> object:
    # Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    if isinstance(value, float):
        return Decimal(str(value))
    return value


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class QueryIntent(str, Enum):
    SPENDING = "spending"
    INCOME = "income"
    BALANCE = "balance"
    SAVINGS = "savings"
    COMPARISON_PERIOD = "comparison_period"
    COMPARISON_AMOUNT = "comparison_amount"
    CATEGORY_BREAKDOWN = "category_breakdown"
    TREND = "trend"
    BUDGET_STATUS = "budget_status"
    UNRECOGNIZED = "unrecognized"


class Metric(str, Enum):
    SPENDING = "spending"
    INCOME = "income"
    BALANCE = "balance"


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    CUSTOM = "custom"


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    FLAT = "flat"


class TransactionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    partnership_id: str | None = None
    amount: Decimal
    currency: str = "EUR"
    category: str | None = None
    date: datetime
    type: TransactionType
    attachment: str | None = None
    description: str | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_decimal(cls, value: object) -> object:
        return _to_decimal(value)

    @field_validator("currency")
    @classmethod
    def _currency_upper(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("date")
    @classmethod
    def _date_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class PartnershipContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    partner_id: str | None = None
    active: bool = False

    @property
    def effective_partner_id(self) -> str | None:
        if self.active and self.partner_id and self.partner_id != self.user_id:
            return self.partner_id
        return None


class UserProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    base_currency: str | None = None
    language: str | None = None
    categories: tuple[str, ...] = ()

    @field_validator("base_currency")
    @classmethod
    def _currency_upper(cls, value: str | None) -> str | None:
        return value.strip().upper() if value else None


class ChatMessage(BaseModel):
    role: Literal["user", "bot"]
    message: str
    timestamp: datetime | None = None


class IntentMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: QueryIntent
    confidence: float = Field(ge=0.0, le=1.0)
    priority: int | None = None
    source: Literal["pattern", "fuzzy", "none"] = "pattern"
    rule: str | None = None


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    granularity: Granularity = Granularity.CUSTOM
    label: str = "custom"
    count: int | None = None

    @field_validator("start", "end")
    @classmethod
    def _bounds_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError(f"start {self.start.isoformat()} is after end {self.end.isoformat()}")
        return self

    def contains(self, moment: datetime) -> bool:
        return self.start <= ensure_utc(moment) <= self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def days(self) -> int:
        return (self.end.date() - self.start.date()).days + 1


class QueryParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    date_range: DateRange
    categories: tuple[str, ...] = ()
    currency: str
    comparison_range: DateRange | None = None
    comparison_amount: Decimal | None = None
    metric: Metric = Metric.SPENDING
    periods: int = 6
    trend_unit: Granularity = Granularity.MONTH
    period_key: str = "default"


class ExchangeRate(BaseModel):
    model_config = ConfigDict(frozen=True)

    base: str
    quote: str
    rate: Decimal = Field(gt=0)
    timestamp: datetime
    source: Literal["live", "cached-fallback"] = "live"

    @field_validator("rate", mode="before")
    @classmethod
    def _rate_decimal(cls, value: object) -> object:
        return _to_decimal(value)

    @field_validator("base", "quote")
    @classmethod
    def _code_upper(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def pair(self) -> tuple[str, str]:
        return (self.base, self.quote)

    def is_stale(self, as_of: datetime, ttl_seconds: float) -> bool:
        return (ensure_utc(as_of) - self.timestamp).total_seconds() > ttl_seconds


class NormalizedAmount(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: str
    rate: ExchangeRate | None = None
    stale: bool = False


class CategoryTotal(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    amount: Decimal
    count: int
    share: Decimal


class TrendPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    total: Decimal
    percent_change: Decimal | None = None


class BudgetAlert(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    threshold: Decimal
    current: Decimal
    exceeded: bool
    percent_of_threshold: Decimal
    remaining: Decimal
    level: Literal["ok", "warning", "exceeded"] = "ok"


class AnalysisResult(BaseModel):
    intent: QueryIntent
    currency: str
    date_range: DateRange
    metric: Metric | None = None
    total: Decimal | None = None
    income: Decimal | None = None
    expenses: Decimal | None = None
    balance: Decimal | None = None
    savings_rate: Decimal | None = None
    count: int = 0
    average: Decimal | None = None
    daily_average: Decimal | None = None
    baseline_range: DateRange | None = None
    baseline_total: Decimal | None = None
    target_amount: Decimal | None = None
    delta: Decimal | None = None
    # None means the percentage is not applicable (zero baseline).
    percent_change: Decimal | None = None
    categories: list[CategoryTotal] = Field(default_factory=list)
    series: list[TrendPoint] = Field(default_factory=list)
    direction: TrendDirection | None = None
    slope: Decimal | None = None
    alerts: list[BudgetAlert] = Field(default_factory=list)
    stale_rates: list[str] = Field(default_factory=list)


class QueryAnswer(BaseModel):
    text: str
    data: AnalysisResult | None = None
    language: str
    intent: QueryIntent
    quick_actions: list[str] = Field(default_factory=list)
    response_type: Literal["text", "insight", "warning", "suggestion"] = "text"
