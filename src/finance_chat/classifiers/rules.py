"""Ordered intent rules per language.

Rules are evaluated top to bottom and the first match wins, so the more
specific phrasings (budgets, comparisons against an amount) come before the
general ones (plain spending). Patterns run against normalized text: lower
case, no diacritics, single spaces.
"""
import re
from dataclasses import dataclass, field

from finance_chat.models import QueryIntent

# A number that is neither a four digit year nor a length of time ("2 weeks").
_AMOUNT = (
    r"(?:[$€£]\s*)?(?!(?:19|20)\d\d\b)"
    r"(?!\d[\d.,]*\s*(?:(?:day|week|month|year)s?\b|ημερ|μερ|εβδομαδ|μην|χρον|ετ))\d"
)


@dataclass(frozen=True)
class IntentRule:
    language: str
    intent: QueryIntent
    pattern: str
    priority: int
    regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "regex", re.compile(self.pattern))

    def matches(self, text: str) -> bool:
        return self.regex.search(text) is not None


_ENGLISH_RULES: tuple[tuple[QueryIntent, tuple[str, ...]], ...] = (
    (QueryIntent.BUDGET_STATUS, (
        r"\bbudgets?\b",
        r"\b(?:over|under|within|on) budget\b",
        r"\bspending limits?\b",
        r"\b(?:category|monthly) limits?\b",
    )),
    (QueryIntent.COMPARISON_AMOUNT, (
        rf"\b(?:more|less|over|under|above|below|beyond)\b(?: than)?\s*{_AMOUNT}",
        rf"\bexceed(?:s|ed|ing)?\s*{_AMOUNT}",
        rf"\b(?:compared?|vs\.?|versus|against)\b(?: (?:to|with))?\s*{_AMOUNT}",
        rf"\b(?:reach|hit|pass)(?:ed)?\s*{_AMOUNT}",
    )),
    (QueryIntent.COMPARISON_PERIOD, (
        r"\bcompar(?:e|ed|es|ing|ison)\b",
        r"\b(?:vs\.?|versus)(?:\s|$)",
        r"\b(?:more|less|fewer|higher|lower|better|worse)\b.*\bthan\b",
        r"\b(?:than|against) (?:the )?(?:last|previous|prior)\b",
        r"\b(?:month|year|week) over (?:month|year|week)\b",
        r"\bdifference between\b",
    )),
    (QueryIntent.TREND, (
        r"\btrend(?:s|ing)?\b",
        r"\bover time\b",
        r"\b(?:month|week) (?:by|to|after) (?:month|week)\b",
        r"\b(?:going|gone|went|trending) (?:up|down)\b",
        r"\b(?:increasing|decreasing|rising|falling|growing|shrinking)\b",
        r"\bhow (?:has|have|did) .*\bchang(?:e|ed|ing)\b",
        r"\bhistory of\b",
    )),
    (QueryIntent.CATEGORY_BREAKDOWN, (
        r"\b(?:by|per|each|every|across) categor(?:y|ies)\b",
        r"\bcategor(?:y|ies) breakdown\b",
        r"\bbreak ?down\b",
        r"\b(?:top|biggest|largest|main|highest|major) (?:spending |expense )?categor(?:y|ies)\b",
        r"\bwhich categor(?:y|ies)\b",
        r"\bwhere (?:does|did|do|is|has) (?:my|our|the|all the) money go",
        r"\bspen[dt] (?:the )?most (?:on|in)\b",
        r"\bspending (?:distribution|split|by)\b",
        r"\bcategories\b",
    )),
    (QueryIntent.SAVINGS, (
        r"\bsav(?:e|es|ed|ing|ings)\b",
        r"\b(?:put|set) (?:aside|away)\b",
        r"\bsavings rate\b",
    )),
    (QueryIntent.BALANCE, (
        r"\bbalance\b",
        r"\b(?:money|cash|funds|much) (?:is |do (?:i|we) have )?left\b",
        r"\bleft ?over\b",
        r"\bremaining\b",
        r"\bnet (?:income|position|result|cash ?flow)\b",
        r"\bin the (?:black|red)\b",
        r"\bfinancial position\b",
    )),
    (QueryIntent.INCOME, (
        r"\bincome\b",
        r"\bearn(?:ed|ing|ings|s)?\b",
        r"\bsalar(?:y|ies)\b",
        r"\bwages?\b",
        r"\bpay ?checks?\b",
        r"\brevenue\b",
        r"\bgot paid\b",
        r"\b(?:how much|what) (?:money )?(?:did|have|do) (?:i|we) (?:make|made)\b",
    )),
    (QueryIntent.SPENDING, (
        r"\bspen(?:d|t|ds|ding)\b",
        r"\bexpen(?:se|ses|diture|ditures)\b",
        r"\bcost(?:s|ing)?\b",
        r"\b(?:paid|pay) for\b",
        r"\b(?:bought|purchases?)\b",
        r"\bcharges?\b",
        r"\bhow much (?:did|have|do) (?:i|we) (?:pay|paid)\b",
    )),
)

_GREEK_RULES: tuple[tuple[QueryIntent, tuple[str, ...]], ...] = (
    (QueryIntent.BUDGET_STATUS, (
        r"προυπολογισμ\w*",
        r"\bορι(?:ο|α) (?:δαπανων|εξοδων)\b",
    )),
    (QueryIntent.COMPARISON_AMOUNT, (
        rf"\b(?:περισσοτερ\w*|λιγοτερ\w*|πανω|κατω|ανω)\b(?: απο)?(?: τα| το)?\s*{_AMOUNT}",
        rf"\bξεπερασ\w*\s*(?:τα |το )?{_AMOUNT}",
        rf"\b(?:σε σχεση με|συγκριτικα με|εναντι)\s*(?:τα |το )?{_AMOUNT}",
    )),
    (QueryIntent.COMPARISON_PERIOD, (
        r"\bσυγκρ\w*",
        r"\bεναντι\b",
        r"\b(?:vs\.?|versus)(?:\s|$)",
        r"\bσε σχεση με\b",
        r"\b(?:περισσοτερ|λιγοτερ|καλυτερ|χειροτερ)\w*.*\bαπο\b",
        r"\bδιαφορα\b",
    )),
    (QueryIntent.TREND, (
        r"\bτασ(?:η|εις|ης)\b",
        r"\bδιαχρονικ\w*",
        r"\bεξελιξη\b",
        r"\b(?:αυξανον|μειωνον|ανεβαινουν|πεφτουν)\w*",
        r"\bμηνα (?:με|προς) (?:το )?μηνα\b",
        r"\bπως (?:εχουν |εχει )?αλλαξ\w*",
    )),
    (QueryIntent.CATEGORY_BREAKDOWN, (
        r"\bανα κατηγορια\b",
        r"\bκατηγοριες\b",
        r"\bκατηγοριων\b",
        r"\bποια κατηγορια\b",
        r"\bαναλυση (?:εξοδων|δαπανων)\b",
        r"\bπου (?:πηγαν|πανε|πηγε|παει) (?:τα|ολα τα) (?:χρηματα|λεφτα)\b",
        r"\bπερισσοτερα (?:για|σε)\b",
    )),
    (QueryIntent.SAVINGS, (
        r"\bαποταμιε?υ\w*",
        r"\bεξοικονομ\w*",
        r"\bγλιτω\w*",
        r"\bκρατησ\w* (?:στην ακρη|στην μπαντα)",
    )),
    (QueryIntent.BALANCE, (
        r"\bυπολοιπ\w*",
        r"\b(?:εμειν|απομεν|μενουν)\w*",
        r"\bκαθαρ(?:ο|α) (?:αποτελεσμα|εσοδα)\b",
        r"\bοικονομικη (?:θεση|κατασταση)\b",
    )),
    (QueryIntent.INCOME, (
        r"\bεσοδ\w*",
        r"\bεβγαλ\w*",
        r"\bκερδ\w*",
        r"\bμισθ\w*",
        r"\bαποδοχ\w*",
        r"\bπληρωθηκ\w*",
    )),
    (QueryIntent.SPENDING, (
        r"\bξοδε\w*",
        r"\bξοδευ\w*",
        r"\bεξοδ\w*",
        r"\bδαπαν\w*",
        r"\bπληρωσ\w*",
        r"\bαγορ(?:ες|ασα|ασαμε|ασες)\b",
        r"\bκοστισ\w*",
    )),
)

# Stems used by the fuzzy fallback to catch misspellings, in rule order.
FUZZY_KEYWORDS: dict[str, tuple[tuple[QueryIntent, tuple[str, ...]], ...]] = {
    "en": (
        (QueryIntent.BUDGET_STATUS, ("budget", "budgets")),
        (QueryIntent.COMPARISON_PERIOD, ("compare", "comparison", "versus")),
        (QueryIntent.TREND, ("trend", "trends", "trending")),
        (QueryIntent.CATEGORY_BREAKDOWN, ("breakdown", "categories", "category")),
        (QueryIntent.SAVINGS, ("savings", "saving", "saved")),
        (QueryIntent.BALANCE, ("balance", "remaining", "leftover")),
        (QueryIntent.INCOME, ("income", "earned", "earnings", "salary", "revenue")),
        (QueryIntent.SPENDING, ("spent", "spend", "spending", "expenses", "expense")),
    ),
    "el": (
        (QueryIntent.BUDGET_STATUS, ("προυπολογισμος", "προυπολογισμου", "προυπολογισμο")),
        (QueryIntent.COMPARISON_PERIOD, ("συγκρινε", "συγκριση")),
        (QueryIntent.TREND, ("ταση", "τασεις", "εξελιξη")),
        (QueryIntent.CATEGORY_BREAKDOWN, ("κατηγοριες", "κατηγορια")),
        (QueryIntent.SAVINGS, ("αποταμιευση", "αποταμιευσεις", "αποταμιευσα")),
        (QueryIntent.BALANCE, ("υπολοιπο", "υπολοιπα")),
        (QueryIntent.INCOME, ("εσοδα", "εβγαλα", "μισθος", "κερδη")),
        (QueryIntent.SPENDING, ("ξοδεψα", "ξοδεψαμε", "εξοδα", "δαπανες")),
    ),
}


def _build_rules(
    language: str,
    table: tuple[tuple[QueryIntent, tuple[str, ...]], ...],
) -> tuple[IntentRule, ...]:
    rules: list[IntentRule] = []
    for intent, patterns in table:
        for pattern in patterns:
            rules.append(IntentRule(
                language=language,
                intent=intent,
                pattern=pattern,
                priority=len(rules),
            ))
    return tuple(rules)


RULES: dict[str, tuple[IntentRule, ...]] = {
    "en": _build_rules("en", _ENGLISH_RULES),
    "el": _build_rules("el", _GREEK_RULES),
}


def rules_for(language: str) -> tuple[IntentRule, ...]:
    return RULES.get(language, ())


def validate_rules(languages: tuple[str, ...] | None = None) -> None:
    """Fail fast when a language lacks rules for an answerable intent."""
    expected = {intent for intent in QueryIntent if intent is not QueryIntent.UNRECOGNIZED}
    for language in languages or tuple(RULES):
        rules = rules_for(language)
        covered = {rule.intent for rule in rules}
        missing = expected - covered
        if missing:
            names = ", ".join(sorted(intent.value for intent in missing))
            raise ValueError(f"Intent rules for '{language}' do not cover: {names}")
        priorities = [rule.priority for rule in rules]
        if len(set(priorities)) != len(priorities):
            raise ValueError(f"Intent rules for '{language}' have duplicate priorities")
        fuzzy_covered = {intent for intent, _ in FUZZY_KEYWORDS.get(language, ())}
        if expected - {QueryIntent.COMPARISON_AMOUNT} - fuzzy_covered:
            raise ValueError(f"Fuzzy keywords for '{language}' are incomplete")
