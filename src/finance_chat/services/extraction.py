"""Pull dates, categories, currency and comparison targets out of a query.

Everything here works on normalized text (see ``domain.text.normalize_text``)
and resolves relative phrases against an explicit ``now`` so results are
reproducible. Ambiguity never raises: anything that cannot be understood is
left at its default.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from dateutil import parser as date_parser
from rapidfuzz import fuzz, process

from finance_chat.domain.periods import (
    custom_range,
    day_range,
    month_range,
    preceding_range,
    resolve_period,
    year_range,
)
from finance_chat.domain.records import parse_amount
from finance_chat.domain.text import normalize_text, tokenize
from finance_chat.domain.vocabulary import build_vocabulary
from finance_chat.logger import get_logger
from finance_chat.models import DateRange, Granularity, Metric, QueryIntent, QueryParameters, ensure_utc

logger = get_logger(__name__)

CATEGORY_FUZZY_THRESHOLD = 85.0
MAX_TREND_PERIODS = 36

_NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
    "ενα": 1, "μια": 1, "μιας": 1, "ενος": 1, "δυο": 2, "τρεις": 3, "τρια": 3,
    "τεσσερις": 4, "τεσσερα": 4, "πεντε": 5, "εξι": 6, "επτα": 7, "εφτα": 7,
    "οκτω": 8, "οχτω": 8, "εννεα": 9, "εννια": 9, "δεκα": 10, "εντεκα": 11, "δωδεκα": 12,
}
_NUM = r"(\d{1,3}|" + "|".join(sorted(_NUMBER_WORDS, key=len, reverse=True)) + r")"

_EN_UNIT = r"(day|week|month|year)s?"
_EL_UNIT = r"(ημερ|μερ|εβδομαδ|μην|χρον|ετ)\w*"
_EL_UNITS = {"ημερ": "day", "μερ": "day", "εβδομαδ": "week", "μην": "month", "χρον": "year", "ετ": "year"}

_MONTHS_EN = (
    ("january", "jan"), ("february", "feb"), ("march", "mar"), ("april", "apr"),
    ("may",), ("june", "jun"), ("july", "jul"), ("august", "aug"),
    ("september", "sept", "sep"), ("october", "oct"), ("november", "nov"), ("december", "dec"),
)
_MONTHS_EL = (
    "ιανουαρι", "φεβρουαρι", "μαρτι", "απριλι", "μαι", "ιουνι",
    "ιουλι", "αυγουστ", "σεπτεμβρι", "οκτωβρι", "νοεμβρι", "δεκεμβρι",
)
# Names that double as ordinary words only count after a preposition or before a year.
_AMBIGUOUS_MONTHS = frozenset({"may", "mar", "jan", "jun", "jul", "aug", "sep", "sept", "oct", "nov", "dec", "feb", "apr"})

_MONTH_LOOKUP: dict[str, int] = {}
for _index, _names in enumerate(_MONTHS_EN, start=1):
    for _name in _names:
        _MONTH_LOOKUP[_name] = _index
_MONTH_NAME = (
    r"(?:" + "|".join(sorted(_MONTH_LOOKUP, key=len, reverse=True)) + r"|"
    + "|".join(stem + r"(?:ος|ου|ο)" for stem in _MONTHS_EL) + r")"
)
_MONTH_REGEX = re.compile(rf"\b(?:(in|during|for|of|since|στον|στο|τον|του|το)\s+)?({_MONTH_NAME})\b(?:\s+((?:19|20)\d\d)\b)?")

_ISO_DATE = r"\d{4}-\d{1,2}-\d{1,2}"
_DMY_DATE = r"\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}"
_DATE_REGEX = re.compile(rf"\b(?:{_ISO_DATE}|{_DMY_DATE})\b")
_POINT = rf"(?:{_ISO_DATE}|{_DMY_DATE}|{_MONTH_NAME}(?:\s+(?:19|20)\d\d)?)"
_RANGE_REGEXES = (
    re.compile(rf"\b(?:between|μεταξυ)\s+({_POINT})\s+(?:and|και)\s+({_POINT})"),
    re.compile(rf"\b(?:from|since|απο)\s+(?:(?:τις|την|τον|το)\s+)?({_POINT})\s+(?:to|until|till|through|thru|εως|μεχρι|ως)\s+(?:(?:τις|την|τον|το)\s+)?({_POINT})"),
)
_YEAR_REGEX = re.compile(r"\b(?:in|during|for|of|στο|το|του|μεσα στο)\s+((?:19|20)\d\d)\b")

_RELATIVE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (key, re.compile(pattern)) for key, pattern in (
        # English
        ("last_n", rf"\b(?:last|past|previous|prior)\s+{_NUM}\s+{_EN_UNIT}\b"),
        ("last_n", rf"\b(?:over|within)\s+(?:the\s+)?{_NUM}\s+{_EN_UNIT}\b"),
        ("ago", rf"\b{_NUM}\s+{_EN_UNIT}\s+(?:ago|back)\b"),
        ("today", r"\btoday\b"),
        ("yesterday", r"\byesterday\b"),
        ("this_week", r"\b(?:this|current)\s+week\b|\bweek to date\b"),
        ("last_week", r"\b(?:last|previous|prior|past)\s+week\b"),
        ("this_month", r"\b(?:this|current)\s+month\b|\bmonth to date\b|\bmtd\b"),
        ("last_month", r"\b(?:last|previous|prior|past)\s+month\b"),
        ("this_year", r"\b(?:this|current)\s+year\b|\byear to date\b|\bytd\b"),
        ("last_year", r"\b(?:last|previous|prior|past)\s+year\b"),
        # Greek
        ("last_n", rf"\b(?:τελευται|περασμεν|προηγουμεν)\w*\s+{_NUM}\s+{_EL_UNIT}"),
        ("last_n", rf"\bμεσα σε\s+{_NUM}\s+{_EL_UNIT}"),
        ("ago", rf"\bπριν\s+(?:απο\s+)?{_NUM}\s+{_EL_UNIT}"),
        ("ago", rf"\b{_NUM}\s+{_EL_UNIT}\s+πριν\b"),
        ("today", r"\bσημερα\b"),
        ("yesterday", r"\bχθες\b|\bχτες\b"),
        ("this_week", r"\b(?:αυτη|τρεχουσα)\s+(?:τη[ν]?\s+)?εβδομαδα\b"),
        ("last_week", r"\b(?:προηγουμενη|περασμενη)\s+εβδομαδα\b"),
        ("this_month", r"\b(?:αυτο[ν]?|τρεχοντα|τρεχον)\s+(?:το[ν]?\s+)?μηνα\b"),
        ("last_month", r"\b(?:προηγουμενο[ν]?|περασμενο[ν]?)\s+μηνα\b|\b(?:προηγουμενος|περασμενος)\s+μηνας\b"),
        ("this_year", r"\bφετος\b|\bφετιν\w*|\b(?:αυτη|τρεχουσα)\s+(?:τη[ν]?\s+)?χρονια\b|\b(?:αυτο|τρεχον)\s+(?:το\s+)?ετος\b"),
        ("last_year", r"\bπερσι\b|\bπερυσι\b|\bπερσιν\w*|\b(?:προηγουμενη|περασμενη)\s+χρονια\b|\b(?:προηγουμενο|περασμενο)\s+ετος\b"),
    )
)

_BASELINE_MARKERS = re.compile(
    r"(?:\bthan|\bvs\.?|\bversus|\bto|\bwith|\bagainst|\bαπο|\bμε|\bεναντι|\bσε σχεση με)"
    r"\s+(?:(?:the|in|during|τον|την|τη|το|τα|τους|τις|του|της|στο|στον|στην)\s+)?$"
)

_PREVIOUS_TO_CURRENT = {
    "last_month": "this_month",
    "last_week": "this_week",
    "last_year": "this_year",
    "yesterday": "today",
}

_CURRENCY_CODES = frozenset({
    "EUR", "USD", "GBP", "JPY", "CHF", "CAD", "AUD", "SEK", "NOK", "DKK",
    "PLN", "CZK", "HUF", "BGN", "CNY", "INR",
})
_CURRENCY_SYMBOLS = {"€": "EUR", "$": "USD", "£": "GBP", "¥": "JPY"}
_CURRENCY_NAMES = (
    (re.compile(r"\beuros?\b|\bευρω\b"), "EUR"),
    (re.compile(r"\bdollars?\b|\bδολαρι\w*"), "USD"),
    (re.compile(r"\bpounds?(?: sterling)?\b|\bλιρ(?:α|ες|ων)\b"), "GBP"),
    (re.compile(r"\byen\b|\bγιεν\b"), "JPY"),
    (re.compile(r"\bfrancs?\b|\bφραγκ\w*"), "CHF"),
)

_AMOUNT = r"([$€£¥]\s*)?(\d[\d.,]*)(\s*k\b)?"
_COMPARATORS = (
    r"more|less|fewer|over|under|above|below|beyond|exceed\w*|reach\w*|hit|pass\w*"
    r"|compared? (?:to|with)|vs\.?|versus|against|than|of"
    r"|περισσοτερ\w*|λιγοτερ\w*|πανω|κατω|ανω|ξεπερασ\w*|απο|εναντι|σε σχεση με|συγκριτικα με"
)
_COMPARISON_AMOUNT = re.compile(
    rf"\b(?:{_COMPARATORS})(?:\s+(?:than|απο))?(?:\s+(?:the|τα|το|των))?\s*{_AMOUNT}"
)
_ANY_AMOUNT = re.compile(rf"(?<![\w.,]){_AMOUNT}")
_UNIT_AFTER = re.compile(rf"\s*(?:{_EN_UNIT}|{_EL_UNIT}|%|percent|τοις)")

_INCOME_WORDS = re.compile(r"\b(?:income|earn\w*|salar\w*|wages?|revenue|paid me|εσοδ\w*|μισθ\w*|κερδ\w*|εβγαλ\w*|αποδοχ\w*)")
_BALANCE_WORDS = re.compile(r"\b(?:balance|sav\w*|left|net|remaining|υπολοιπ\w*|αποταμιε?υ\w*|εξοικονομ\w*|καθαρ\w*)")
_WEEK_WORDS = re.compile(r"\bweek(?:s|ly)?\b|\bεβδομαδ\w*")

# Query words that must never be read as a misspelled category.
_STOPWORDS = frozenset({
    "much", "many", "spend", "spent", "spending", "expense", "expenses", "money", "cost", "costs",
    "total", "income", "earn", "earned", "balance", "savings", "saving", "saved", "budget",
    "budgets", "trend", "trends", "month", "months", "week", "weeks", "year", "years", "days",
    "today", "yesterday", "last", "this", "past", "previous", "compare", "compared", "than",
    "more", "less", "over", "under", "show", "what", "where", "which", "does", "have", "with",
    "from", "between", "category", "categories", "breakdown", "about", "spends", "paid",
    "ποσο", "ποσα", "ξοδεψα", "ξοδεψαμε", "εξοδα", "εσοδα", "χρηματα", "λεφτα", "μηνα", "μηνες",
    "εβδομαδα", "χρονια", "φετος", "περσι", "σημερα", "υπολοιπο", "προυπολογισμος", "κατηγοριες",
    "κατηγορια", "συγκρινε", "περισσοτερα", "λιγοτερα", "αυτο", "αυτον", "αυτη", "τελευταιους",
})


@dataclass(frozen=True)
class _Mention:
    start: int
    end: int
    window: DateRange
    baseline: bool = False


def _to_number(token: str) -> int | None:
    if token.isdigit():
        return int(token)
    return _NUMBER_WORDS.get(token)


def _unit(token: str) -> str:
    for stem, unit in _EL_UNITS.items():
        if token.startswith(stem):
            return unit
    return token.rstrip("s")


def _month_number(name: str) -> int | None:
    if name in _MONTH_LOOKUP:
        return _MONTH_LOOKUP[name]
    for index, stem in enumerate(_MONTHS_EL, start=1):
        if name.startswith(stem):
            return index
    return None


def _parse_date(text: str) -> date:
    """Parse an ISO or day-first numeric date; raises ``ValueError`` when invalid."""
    text = text.strip()
    if re.fullmatch(_ISO_DATE, text):
        return date_parser.parse(text, yearfirst=True, dayfirst=False).date()
    return date_parser.parse(text, dayfirst=True).date()


def _most_recent_month(month: int, now: datetime) -> int:
    return now.year if month <= now.month else now.year - 1


def _parse_point(text: str, now: datetime) -> tuple[date, date]:
    """First and last day covered by a date or ``Month [year]`` phrase."""
    match = re.fullmatch(rf"({_MONTH_NAME})(?:\s+((?:19|20)\d\d))?", text.strip())
    if match:
        month = _month_number(match.group(1))
        if month is None:
            raise ValueError(text)
        year = int(match.group(2)) if match.group(2) else _most_recent_month(month, now)
        window = month_range(year, month)
        return window.start.date(), window.end.date()
    day = _parse_date(text)
    return day, day


def _distinct_baseline(current: DateRange, baseline: DateRange | None) -> DateRange | None:
    # "last 3 months vs the previous 3 months" names the same window twice.
    if baseline is not None and (baseline.start, baseline.end) == (current.start, current.end):
        return preceding_range(current)
    return baseline


class ParameterExtractor:
    def __init__(self, fuzzy_threshold: float = CATEGORY_FUZZY_THRESHOLD, default_periods: int = 6):
        self.fuzzy_threshold = fuzzy_threshold
        self.default_periods = default_periods

    def extract(
        self,
        text: str,
        language: str,
        now: datetime,
        vocabulary: list[str] | tuple[str, ...] | None = None,
        base_currency: str = "EUR",
        intent: QueryIntent | None = None,
        default_periods: int | None = None,
    ) -> QueryParameters:
        normalized = normalize_text(text)
        now = ensure_utc(now)
        periods = default_periods or self.default_periods

        mentions = self._find_periods(normalized, now)
        date_range, comparison_range = self._pick_ranges(mentions, intent, now)

        params = QueryParameters(
            date_range=date_range,
            comparison_range=comparison_range,
            categories=tuple(self.extract_categories(normalized, vocabulary)),
            currency=self.extract_currency(normalized, text) or (base_currency or "EUR").upper(),
            comparison_amount=self.extract_amount(normalized, intent),
            metric=self.extract_metric(normalized, intent),
            periods=self._trend_periods(date_range, periods),
            trend_unit=Granularity.WEEK if _WEEK_WORDS.search(normalized) else Granularity.MONTH,
            period_key=date_range.label if mentions else "default",
        )
        logger.debug(
            "[EXTRACT] range=%s (%s -> %s) categories=%s currency=%s amount=%s metric=%s",
            params.date_range.label,
            params.date_range.start.isoformat(),
            params.date_range.end.isoformat(),
            list(params.categories),
            params.currency,
            params.comparison_amount,
            params.metric.value,
        )
        return params

    # -- dates ---------------------------------------------------------

    def _find_periods(self, text: str, now: datetime) -> list[_Mention]:
        mentions: list[_Mention] = []
        taken: list[tuple[int, int]] = []

        def free(start: int, end: int) -> bool:
            return all(end <= s or start >= e for s, e in taken)

        def add(start: int, end: int, window: DateRange) -> None:
            mentions.append(_Mention(start, end, window, bool(_BASELINE_MARKERS.search(text[:start]))))
            taken.append((start, end))

        for regex in _RANGE_REGEXES:
            for match in regex.finditer(text):
                if not free(match.start(), match.end()):
                    continue
                try:
                    first, _ = _parse_point(match.group(1), now)
                    _, last = _parse_point(match.group(2), now)
                except ValueError:
                    continue
                add(match.start(), match.end(), custom_range(first, last))

        for match in _DATE_REGEX.finditer(text):
            if not free(match.start(), match.end()):
                continue
            try:
                add(match.start(), match.end(), day_range(_parse_date(match.group(0))))
            except ValueError:
                continue

        for match in _MONTH_REGEX.finditer(text):
            if not free(match.start(), match.end()):
                continue
            preposition, name, year = match.group(1), match.group(2), match.group(3)
            if name in _AMBIGUOUS_MONTHS and not (preposition or year):
                continue
            month = _month_number(name)
            if month is None:
                continue
            resolved_year = int(year) if year else _most_recent_month(month, now)
            start = match.start(2)
            add(start, match.end(), month_range(resolved_year, month))

        for match in _YEAR_REGEX.finditer(text):
            if free(match.start(1), match.end(1)):
                add(match.start(1), match.end(1), year_range(int(match.group(1))))

        for key, regex in _RELATIVE_PATTERNS:
            for match in regex.finditer(text):
                if not free(match.start(), match.end()):
                    continue
                window = self._relative(key, match, now)
                if window is not None:
                    add(match.start(), match.end(), window)

        mentions.sort(key=lambda mention: mention.start)
        return mentions

    def _relative(self, key: str, match: re.Match[str], now: datetime) -> DateRange | None:
        if key not in ("last_n", "ago"):
            return resolve_period(key, now)
        count = _to_number(match.group(1))
        if not count:
            return None
        unit = _unit(match.group(2))
        if key == "last_n":
            return resolve_period(f"last_n_{unit}s", now, count)
        return resolve_period(f"{unit}s_ago", now, count)

    def _pick_ranges(
        self,
        mentions: list[_Mention],
        intent: QueryIntent | None,
        now: datetime,
    ) -> tuple[DateRange, DateRange | None]:
        primary = [m for m in mentions if not m.baseline]
        baselines = [m for m in mentions if m.baseline]

        if not mentions:
            return resolve_period("this_month", now), None

        if not baselines and intent is QueryIntent.COMPARISON_PERIOD and len(primary) >= 2:
            # "compare january and february": the later period is the current one.
            first, second = sorted((primary[0].window, primary[1].window), key=lambda w: w.start)
            return second, _distinct_baseline(second, first)

        baseline = baselines[0].window if baselines else None
        if primary:
            current = primary[0].window
        else:
            current = resolve_period(_PREVIOUS_TO_CURRENT.get(baseline.label, "this_month"), now)

        if baseline is not None and _PREVIOUS_TO_CURRENT.get(current.label) == baseline.label:
            # "last month vs this month" reads the same as "this month vs last month".
            current, baseline = baseline, current
        return current, _distinct_baseline(current, baseline)

    def _trend_periods(self, date_range: DateRange, default: int) -> int:
        if date_range.label in ("last_n_months", "last_n_weeks") and date_range.count:
            return max(2, min(date_range.count, MAX_TREND_PERIODS))
        return max(2, min(default, MAX_TREND_PERIODS))

    # -- categories ----------------------------------------------------

    def extract_categories(self, text: str, user_categories: list[str] | tuple[str, ...] | None = None) -> list[str]:
        vocabulary = build_vocabulary(user_categories)
        found: list[tuple[int, str]] = []
        taken: list[tuple[int, int]] = []

        for spelling in sorted(vocabulary, key=len, reverse=True):
            if not spelling:
                continue
            for match in re.finditer(rf"\b{re.escape(spelling)}\b", text):
                if any(match.start() < e and match.end() > s for s, e in taken):
                    continue
                taken.append((match.start(), match.end()))
                found.append((match.start(), vocabulary[spelling]))

        if not found:
            single_words = [spelling for spelling in vocabulary if " " not in spelling and len(spelling) > 3]
            for position, token in enumerate(tokenize(text)):
                if len(token) <= 3 or token in _STOPWORDS or token.isdigit():
                    continue
                result = process.extractOne(token, single_words, scorer=fuzz.ratio, score_cutoff=self.fuzzy_threshold)
                if result:
                    spelling, score, _ = result
                    logger.debug("[EXTRACT] Fuzzy category '%s' -> '%s' (%.1f)", token, vocabulary[spelling], score)
                    found.append((position, vocabulary[spelling]))

        categories: list[str] = []
        for _, name in sorted(found, key=lambda item: item[0]):
            if name not in categories:
                categories.append(name)
        return categories

    # -- currency ------------------------------------------------------

    def extract_currency(self, normalized: str, raw: str = "") -> str | None:
        for token in re.findall(r"\b[a-z]{3}\b", normalized):
            if token.upper() in _CURRENCY_CODES:
                return token.upper()
        for symbol, code in _CURRENCY_SYMBOLS.items():
            if symbol in normalized or symbol in raw:
                return code
        for regex, code in _CURRENCY_NAMES:
            if regex.search(normalized):
                return code
        return None

    # -- comparison amount ---------------------------------------------

    def extract_amount(self, text: str, intent: QueryIntent | None = None) -> Decimal | None:
        for match in _COMPARISON_AMOUNT.finditer(text):
            amount = self._amount_from(match, text)
            if amount is not None:
                return amount
        if intent is QueryIntent.COMPARISON_AMOUNT:
            for match in _ANY_AMOUNT.finditer(text):
                amount = self._amount_from(match, text)
                if amount is not None:
                    return amount
        return None

    def _amount_from(self, match: re.Match[str], text: str) -> Decimal | None:
        symbol, digits, thousands = match.group(1), match.group(2).rstrip(".,"), match.group(3)
        if _UNIT_AFTER.match(text, match.end()):
            return None
        if not symbol and not thousands and re.fullmatch(r"(?:19|20)\d\d", digits):
            return None
        # Part of a date such as 05/01/2024.
        if re.match(r"[/-]\d", text[match.end():match.end() + 2]):
            return None
        try:
            amount = parse_amount(digits)
        except ValueError:
            return None
        if thousands:
            amount *= 1000
        return amount if amount > 0 else None

    # -- metric --------------------------------------------------------

    def extract_metric(self, text: str, intent: QueryIntent | None = None) -> Metric:
        if intent is QueryIntent.INCOME:
            return Metric.INCOME
        if intent in (QueryIntent.BALANCE, QueryIntent.SAVINGS):
            return Metric.BALANCE
        if intent in (QueryIntent.SPENDING, QueryIntent.CATEGORY_BREAKDOWN, QueryIntent.BUDGET_STATUS):
            return Metric.SPENDING
        if _INCOME_WORDS.search(text):
            return Metric.INCOME
        if _BALANCE_WORDS.search(text):
            return Metric.BALANCE
        return Metric.SPENDING
