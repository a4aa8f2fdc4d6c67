from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
TENTH = Decimal("0.1")

CURRENCY_SYMBOLS: dict[str, str] = {
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
    "JPY": "¥",
    "CHF": "CHF",
}

ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "HUF", "ISK"})

_MONTHS = {
    "en": ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"),
    "el": ("Ιαν", "Φεβ", "Μαρ", "Απρ", "Μαΐ", "Ιουν", "Ιουλ", "Αυγ", "Σεπ", "Οκτ", "Νοε", "Δεκ"),
}


def quantize_money(amount: Decimal, currency: str | None = None) -> Decimal:
    exponent = Decimal("1") if currency in ZERO_DECIMAL_CURRENCIES else CENT
    return amount.quantize(exponent, rounding=ROUND_HALF_UP)


def quantize_percent(value: Decimal) -> Decimal:
    return value.quantize(TENTH, rounding=ROUND_HALF_UP)


def _group(digits: str, separator: str) -> str:
    parts = []
    while len(digits) > 3:
        parts.insert(0, digits[-3:])
        digits = digits[:-3]
    parts.insert(0, digits)
    return separator.join(parts)


def _number(value: Decimal, places: int, language: str) -> str:
    thousands, decimal_mark = (".", ",") if language == "el" else (",", ".")
    text = f"{abs(value):.{places}f}"
    whole, _, fraction = text.partition(".")
    grouped = _group(whole, thousands)
    return f"{grouped}{decimal_mark}{fraction}" if fraction else grouped


def format_money(amount: Decimal, currency: str, language: str = "en") -> str:
    """Render an amount the way the language writes money.

    en: ``€1,234.56`` / ``-€12.00``; el: ``1.234,56 €`` / ``-12,00 €``.
    """
    currency = currency.upper()
    value = quantize_money(amount, currency)
    places = 0 if currency in ZERO_DECIMAL_CURRENCIES else 2
    number = _number(value, places, language)
    sign = "-" if value < 0 else ""
    symbol = CURRENCY_SYMBOLS.get(currency)

    if language == "el":
        return f"{sign}{number} {symbol or currency}"
    if symbol and len(symbol) == 1:
        return f"{sign}{symbol}{number}"
    return f"{sign}{number} {symbol or currency}"


def format_percent(value: Decimal, language: str = "en") -> str:
    rounded = quantize_percent(value)
    number = _number(rounded, 1, language)
    sign = "-" if rounded < 0 else ""
    return f"{sign}{number}%"


def format_date(value: datetime, language: str = "en") -> str:
    months = _MONTHS.get(language, _MONTHS["en"])
    month = months[value.month - 1]
    if language == "el":
        return f"{value.day} {month} {value.year}"
    return f"{month} {value.day}, {value.year}"


def month_label(year: int, month: int, language: str = "en") -> str:
    months = _MONTHS.get(language, _MONTHS["en"])
    return f"{months[month - 1]} {year}"
