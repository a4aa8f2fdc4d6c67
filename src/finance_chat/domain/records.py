from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from finance_chat.models import TransactionRecord, TransactionType, ensure_utc

_TYPE_ALIASES = {
    "income": TransactionType.INCOME,
    "deposit": TransactionType.INCOME,
    "credit": TransactionType.INCOME,
    "expense": TransactionType.EXPENSE,
    "withdrawal": TransactionType.EXPENSE,
    "debit": TransactionType.EXPENSE,
    "transfer": TransactionType.TRANSFER,
}


def parse_date(value: str | date | datetime | None) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            return ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError as exc:
            raise ValueError(f"Unparseable transaction date: {value!r}") from exc
    raise ValueError("Transaction date is missing")


def parse_amount(value: Any) -> Decimal:
    """Parse an amount written with either separator convention.

    "1,234.56", "1.234,56" and "1234,5" all parse; floats go through str().
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Unparseable amount: {value!r}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    text = str(value).strip().replace(" ", "").replace("\u00a0", "")
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        head, _, tail = text.rpartition(",")
        # A single comma followed by exactly three digits is a thousands separator.
        if text.count(",") == 1 and len(tail) == 3 and head.lstrip("-+").isdigit():
            text = head + tail
        else:
            text = text.replace(",", ".") if text.count(",") == 1 else text.replace(",", "")
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Unparseable amount: {value!r}") from exc


def parse_type(value: Any, amount: Decimal) -> TransactionType:
    if isinstance(value, TransactionType):
        return value
    if value:
        alias = _TYPE_ALIASES.get(str(value).strip().lower())
        if alias:
            return alias
        raise ValueError(f"Unknown transaction type: {value!r}")
    return TransactionType.INCOME if amount > 0 else TransactionType.EXPENSE


def _first(row: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None and value != "":
            return value
    return None


def build_record(row: dict[str, Any]) -> TransactionRecord:
    """Build a record from a loosely shaped row (snake or camel case keys)."""
    amount = parse_amount(_first(row, "amount", "value"))
    category = _first(row, "category", "category_name", "categoryName")
    partnership = _first(row, "partnership_id", "partnershipId")
    return TransactionRecord(
        id=str(_first(row, "id", "transaction_id", "transactionId")),
        user_id=str(_first(row, "user_id", "userId")),
        partnership_id=str(partnership) if partnership is not None else None,
        amount=amount,
        currency=_first(row, "currency", "currency_code", "currencyCode") or "EUR",
        category=str(category).strip() if category else None,
        date=parse_date(_first(row, "date", "created_at", "createdAt")),
        type=parse_type(_first(row, "type", "transaction_type"), amount),
        attachment=_first(row, "attachment", "attachment_url", "attachmentUrl"),
        description=_first(row, "description", "notes"),
    )


def build_records(rows: list[dict[str, Any]]) -> list[TransactionRecord]:
    return [build_record(row) for row in rows]
