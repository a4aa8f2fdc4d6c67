"""Localized response templates keyed by (key, language).

Templates use ``str.format`` placeholders. Every key in ``REQUIRED_KEYS`` must
exist for every supported language; ``validate_templates`` is run when the
query engine is built.
"""
from finance_chat.errors import TemplateMissing
from finance_chat.models import QueryIntent
from finance_chat.services.language import SUPPORTED_LANGUAGES

_ENGLISH: dict[str, str] = {
    # answers
    "spending": "You spent {total}{category_clause} {period} across {transactions}.",
    "spending_empty": "I found no spending{category_clause} {period}.",
    "income": "Your income {period} was {total} from {transactions}.",
    "income_empty": "I found no income {period}.",
    "balance": "Your balance {period} is {balance}: {income} in and {expenses} out.",
    "savings": "You saved {balance} {period}, {rate} of your income ({income} in, {expenses} out).",
    "savings_negative": (
        "You spent {deficit} more than you earned {period} ({income} in, {expenses} out), "
        "a savings rate of {rate}."
    ),
    "comparison_period": (
        "Your {metric}{category_clause} {period} was {total} compared with {baseline_total} "
        "{baseline_period}: {change}."
    ),
    "comparison_amount": "Your {metric}{category_clause} {period} is {total}, {relation}.",
    "comparison_amount_missing": (
        "Your {metric}{category_clause} {period} is {total}. "
        "Tell me an amount to compare it with, for example \"more than 500\"."
    ),
    "category_breakdown": "Your spending {period} by category ({total} in total):\n{lines}",
    "category_breakdown_empty": "I found no spending {period} to break down.",
    "trend": "Your {metric}{category_clause} over the last {periods} {unit} is {direction}:\n{lines}",
    "trend_empty": "I found no {metric} in the last {periods} {unit}.",
    "budget_status": "Budget status {period}:\n{lines}",
    "budget_status_empty": (
        "You have no budgets set up yet. Add a monthly limit for a category to track it here."
    ),
    "unrecognized": (
        "I'm not sure what you mean. You can ask things like \"How much did I spend this month?\", "
        "\"What's my balance?\" or \"Compare my spending with last month\"."
    ),
    # pieces
    "change_up": "up {percent} ({delta})",
    "change_down": "down {percent} ({delta})",
    "change_flat": "no change",
    "change_na": "a difference of {delta} ({not_applicable})",
    "relation_above": "{difference} above {target} ({percent})",
    "relation_below": "{difference} below {target} ({percent})",
    "relation_equal": "exactly {target}",
    "category_line": "{rank}. {category}: {amount} ({share})",
    "trend_line": "{label}: {total}",
    "trend_line_change": "{label}: {total} ({percent})",
    "budget_line": "{category}: {current} of {threshold} ({percent}), {status}",
    "status_ok": "on track",
    "status_warning": "close to the limit",
    "status_exceeded": "over budget",
    "budget_alert": "Over budget: {categories}.",
    "budget_alert_item": "{category} ({current} of {threshold})",
    "stale_rate_note": "Note: exchange rates for {pairs} may be out of date.",
    "rate_unavailable": (
        "I can't convert {pair} right now because no exchange rate is available. "
        "Please try again later."
    ),
    "category_clause": " on {categories}",
    "transaction_one": "1 transaction",
    "transaction_many": "{count} transactions",
    "list_and": " and ",
    "not_applicable": "N/A",
    "uncategorized": "uncategorized",
    "metric_spending": "spending",
    "metric_income": "income",
    "metric_balance": "balance",
    "unit_month": "months",
    "unit_week": "weeks",
    "direction_increasing": "increasing",
    "direction_decreasing": "decreasing",
    "direction_flat": "stable",
    # periods
    "period_today": "today",
    "period_yesterday": "yesterday",
    "period_this_week": "this week",
    "period_last_week": "last week",
    "period_this_month": "this month",
    "period_last_month": "last month",
    "period_this_year": "this year",
    "period_last_year": "last year",
    "period_last_n_days": "in the last {count} days",
    "period_last_n_weeks": "in the last {count} weeks",
    "period_last_n_months": "in the last {count} months",
    "period_last_n_years": "in the last {count} years",
    "period_day": "on {date}",
    "period_month": "in {month}",
    "period_year": "in {year}",
    "period_custom": "from {start} to {end}",
    # follow-up suggestions, separated by "|"
    "actions_spending": "Show spending by category|Compare with last month|Check my budgets",
    "actions_income": "What's my balance?|How much did I save?|Compare income with last month",
    "actions_balance": "How much did I save?|Show spending by category|Show my spending trend",
    "actions_savings": "Compare savings with last year|Show spending by category|Check my budgets",
    "actions_comparison_period": "Show spending by category|Show my spending trend|Check my budgets",
    "actions_comparison_amount": "Show spending by category|Compare with last month|Check my budgets",
    "actions_category_breakdown": "Compare with last month|Show my spending trend|Check my budgets",
    "actions_trend": "Show spending by category|Compare with last month|How much did I save?",
    "actions_budget_status": "Show spending by category|How much did I spend this month?|Compare with last month",
    "actions_unrecognized": "How much did I spend this month?|What's my balance?|Show spending by category",
}

_GREEK: dict[str, str] = {
    # answers
    "spending": "Ξοδέψατε {total}{category_clause} {period} σε {transactions}.",
    "spending_empty": "Δεν βρήκα έξοδα{category_clause} {period}.",
    "income": "Τα έσοδά σας {period} ήταν {total} από {transactions}.",
    "income_empty": "Δεν βρήκα έσοδα {period}.",
    "balance": "Το υπόλοιπό σας {period} είναι {balance}: {income} έσοδα και {expenses} έξοδα.",
    "savings": (
        "Αποταμιεύσατε {balance} {period}, δηλαδή {rate} του εισοδήματός σας "
        "({income} έσοδα, {expenses} έξοδα)."
    ),
    "savings_negative": (
        "Ξοδέψατε {deficit} περισσότερα από όσα κερδίσατε {period} ({income} έσοδα, "
        "{expenses} έξοδα), ποσοστό αποταμίευσης {rate}."
    ),
    "comparison_period": (
        "{metric}{category_clause} {period}: {total} έναντι {baseline_total} {baseline_period}, {change}."
    ),
    "comparison_amount": "{metric}{category_clause} {period}: {total}, {relation}.",
    "comparison_amount_missing": (
        "{metric}{category_clause} {period}: {total}. "
        "Πείτε μου ένα ποσό για σύγκριση, για παράδειγμα «περισσότερα από 500»."
    ),
    "category_breakdown": "Τα έξοδά σας {period} ανά κατηγορία (σύνολο {total}):\n{lines}",
    "category_breakdown_empty": "Δεν βρήκα έξοδα {period} για ανάλυση.",
    "trend": "{metric}{category_clause} για {periods} {unit}: {direction}.\n{lines}",
    "trend_empty": "Δεν βρήκα δεδομένα για {periods} {unit}.",
    "budget_status": "Κατάσταση προϋπολογισμού {period}:\n{lines}",
    "budget_status_empty": (
        "Δεν έχετε ορίσει προϋπολογισμούς ακόμα. "
        "Προσθέστε ένα μηνιαίο όριο σε μια κατηγορία για να το παρακολουθείτε εδώ."
    ),
    "unrecognized": (
        "Δεν είμαι σίγουρος τι εννοείτε. Μπορείτε να ρωτήσετε για παράδειγμα "
        "«Πόσα ξόδεψα αυτόν τον μήνα;», «Ποιο είναι το υπόλοιπό μου;» ή "
        "«Σύγκρινε τα έξοδά μου με τον προηγούμενο μήνα»."
    ),
    # pieces
    "change_up": "αύξηση {percent} ({delta})",
    "change_down": "μείωση {percent} ({delta})",
    "change_flat": "καμία αλλαγή",
    "change_na": "διαφορά {delta} ({not_applicable})",
    "relation_above": "{difference} πάνω από {target} ({percent})",
    "relation_below": "{difference} κάτω από {target} ({percent})",
    "relation_equal": "ακριβώς {target}",
    "category_line": "{rank}. {category}: {amount} ({share})",
    "trend_line": "{label}: {total}",
    "trend_line_change": "{label}: {total} ({percent})",
    "budget_line": "{category}: {current} από {threshold} ({percent}), {status}",
    "status_ok": "εντός ορίου",
    "status_warning": "κοντά στο όριο",
    "status_exceeded": "εκτός προϋπολογισμού",
    "budget_alert": "Υπέρβαση προϋπολογισμού: {categories}.",
    "budget_alert_item": "{category} ({current} από {threshold})",
    "stale_rate_note": "Σημείωση: οι ισοτιμίες για {pairs} μπορεί να μην είναι ενημερωμένες.",
    "rate_unavailable": (
        "Δεν μπορώ να μετατρέψω {pair} αυτή τη στιγμή, επειδή δεν υπάρχει διαθέσιμη ισοτιμία. "
        "Δοκιμάστε ξανά αργότερα."
    ),
    "category_clause": " για {categories}",
    "transaction_one": "1 συναλλαγή",
    "transaction_many": "{count} συναλλαγές",
    "list_and": " και ",
    "not_applicable": "Μ/Δ",
    "uncategorized": "χωρίς κατηγορία",
    "metric_spending": "Έξοδα",
    "metric_income": "Έσοδα",
    "metric_balance": "Υπόλοιπο",
    "unit_month": "μήνες",
    "unit_week": "εβδομάδες",
    "direction_increasing": "ανοδική τάση",
    "direction_decreasing": "πτωτική τάση",
    "direction_flat": "σταθερή πορεία",
    # periods
    "period_today": "σήμερα",
    "period_yesterday": "χθες",
    "period_this_week": "αυτή την εβδομάδα",
    "period_last_week": "την προηγούμενη εβδομάδα",
    "period_this_month": "αυτόν τον μήνα",
    "period_last_month": "τον προηγούμενο μήνα",
    "period_this_year": "φέτος",
    "period_last_year": "πέρσι",
    "period_last_n_days": "τις τελευταίες {count} ημέρες",
    "period_last_n_weeks": "τις τελευταίες {count} εβδομάδες",
    "period_last_n_months": "τους τελευταίους {count} μήνες",
    "period_last_n_years": "τα τελευταία {count} χρόνια",
    "period_day": "στις {date}",
    "period_month": "τον {month}",
    "period_year": "το {year}",
    "period_custom": "από {start} έως {end}",
    # follow-up suggestions, separated by "|"
    "actions_spending": "Έξοδα ανά κατηγορία|Σύγκριση με τον προηγούμενο μήνα|Έλεγχος προϋπολογισμού",
    "actions_income": "Ποιο είναι το υπόλοιπό μου;|Πόσα αποταμίευσα;|Σύγκριση εσόδων με τον προηγούμενο μήνα",
    "actions_balance": "Πόσα αποταμίευσα;|Έξοδα ανά κατηγορία|Τάση εξόδων",
    "actions_savings": "Σύγκριση αποταμίευσης με πέρσι|Έξοδα ανά κατηγορία|Έλεγχος προϋπολογισμού",
    "actions_comparison_period": "Έξοδα ανά κατηγορία|Τάση εξόδων|Έλεγχος προϋπολογισμού",
    "actions_comparison_amount": "Έξοδα ανά κατηγορία|Σύγκριση με τον προηγούμενο μήνα|Έλεγχος προϋπολογισμού",
    "actions_category_breakdown": "Σύγκριση με τον προηγούμενο μήνα|Τάση εξόδων|Έλεγχος προϋπολογισμού",
    "actions_trend": "Έξοδα ανά κατηγορία|Σύγκριση με τον προηγούμενο μήνα|Πόσα αποταμίευσα;",
    "actions_budget_status": "Έξοδα ανά κατηγορία|Πόσα ξόδεψα αυτόν τον μήνα;|Σύγκριση με τον προηγούμενο μήνα",
    "actions_unrecognized": "Πόσα ξόδεψα αυτόν τον μήνα;|Ποιο είναι το υπόλοιπό μου;|Έξοδα ανά κατηγορία",
}

TEMPLATES: dict[tuple[str, str], str] = {
    **{(key, "en"): text for key, text in _ENGLISH.items()},
    **{(key, "el"): text for key, text in _GREEK.items()},
}

INTENT_KEYS = tuple(intent.value for intent in QueryIntent)
REQUIRED_KEYS: frozenset[str] = frozenset(_ENGLISH) | frozenset(INTENT_KEYS) | frozenset(
    f"actions_{key}" for key in INTENT_KEYS
)


def template(key: str, language: str, templates: dict[tuple[str, str], str] | None = None) -> str:
    table = TEMPLATES if templates is None else templates
    text = table.get((key, language))
    if not text:
        raise TemplateMissing(key, language)
    return text


def validate_templates(
    languages: tuple[str, ...] = SUPPORTED_LANGUAGES,
    templates: dict[tuple[str, str], str] | None = None,
) -> None:
    """Raise ``TemplateMissing`` for the first required key a language lacks."""
    for language in languages:
        for key in sorted(REQUIRED_KEYS):
            template(key, language, templates)
