from typing import Any

from finance_chat.domain.text import normalize_text

# Canonical category -> spellings users type, accent-free and lower case.
CATEGORY_SYNONYMS: dict[str, tuple[str, ...]] = {
    "groceries": (
        "groceries", "grocery", "supermarket", "super market",
        "σουπερ μαρκετ", "σουπερμαρκετ", "ψωνια", "τροφιμα",
    ),
    "food": (
        "food", "meals", "eating", "φαγητο", "φαγητα", "τροφη",
    ),
    "dining": (
        "dining", "restaurant", "restaurants", "eating out", "takeaway", "delivery",
        "εστιατοριο", "εστιατορια", "ταβερνα", "ντελιβερι",
    ),
    "transport": (
        "transport", "transportation", "travel", "fuel", "gas", "petrol", "taxi", "bus", "metro",
        "μεταφορα", "μεταφορες", "μετακινηση", "μετακινησεις", "βενζινη", "ταξι", "λεωφορειο",
    ),
    "entertainment": (
        "entertainment", "fun", "movies", "cinema", "games", "going out",
        "ψυχαγωγια", "διασκεδαση", "σινεμα",
    ),
    "bills": (
        "bills", "utilities", "electricity", "water", "internet", "phone",
        "λογαριασμοι", "λογαριασμος", "ρευμα", "νερο", "τηλεφωνο",
    ),
    "shopping": (
        "shopping", "clothes", "clothing", "αγορες", "ρουχα",
    ),
    "health": (
        "health", "healthcare", "medical", "doctor", "pharmacy", "medicine",
        "υγεια", "γιατρος", "φαρμακειο", "φαρμακα",
    ),
    "housing": (
        "housing", "rent", "mortgage", "home", "house",
        "στεγαση", "ενοικιο", "νοικι", "σπιτι",
    ),
    "education": (
        "education", "school", "tuition", "courses", "books",
        "εκπαιδευση", "σχολειο", "διδακτρα", "μαθηματα", "βιβλια",
    ),
    "personal": (
        "personal", "personal care", "beauty", "haircut",
        "προσωπικα", "περιποιηση", "κομμωτηριο",
    ),
    "subscription": (
        "subscription", "subscriptions", "netflix", "spotify", "streaming",
        "συνδρομη", "συνδρομες",
    ),
}


def parse_category_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    return normalize_categories(raw.split(","))


def normalize_categories(value: Any) -> list[str]:
    """Trimmed, de-duplicated (case-insensitively) category names in order."""
    if not value:
        return []
    if isinstance(value, str):
        return parse_category_list(value)
    if not isinstance(value, (list, tuple, set, frozenset)):
        return []
    categories: list[str] = []
    seen = set()
    for item in value:
        name = str(item).strip()
        key = name.casefold()
        if name and key not in seen:
            categories.append(name)
            seen.add(key)
    return categories


def merge_categories(existing: list[str] | tuple[str, ...] | None, extra: list[str] | tuple[str, ...]) -> list[str]:
    return normalize_categories([*(existing or []), *extra])


_GROUPS: dict[str, str] = {
    normalize_text(spelling): canonical
    for canonical, spellings in CATEGORY_SYNONYMS.items()
    for spelling in (canonical, *spellings)
}


def category_group(name: str | None) -> str:
    """Built-in group a category name belongs to, or the normalized name itself."""
    key = normalize_text(name)
    return _GROUPS.get(key, key)


def expand_categories(names: list[str] | tuple[str, ...]) -> list[str]:
    """``names`` plus every built-in spelling of their groups.

    Stored records use whatever name the household picked ("rent", "Mortgage"),
    so a request for "housing" has to ask for all of them.
    """
    expanded: list[str] = []
    for name in names:
        expanded.append(name)
        expanded.extend(CATEGORY_SYNONYMS.get(category_group(name), ()))
    return normalize_categories(expanded)


def build_vocabulary(user_categories: list[str] | tuple[str, ...] | None = None) -> dict[str, str]:
    """Map every known spelling to the category name to report.

    The user's own category names win over the built-in canonical names, so a
    user who tracks "Groceries" gets "Groceries" back for "supermarket" and a
    user who tracks "Rent" gets "Rent" back for "mortgage".
    """
    user_names = {normalize_text(name): name for name in normalize_categories(user_categories)}
    vocabulary: dict[str, str] = {}

    for canonical, spellings in CATEGORY_SYNONYMS.items():
        own = [user_names[key] for key in map(normalize_text, (canonical, *spellings)) if key in user_names]
        target = own[0] if own else canonical
        for spelling in spellings:
            vocabulary.setdefault(normalize_text(spelling), target)

    for key, name in user_names.items():
        vocabulary[key] = name
    return vocabulary
