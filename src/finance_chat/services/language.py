from finance_chat.domain.text import letter_script, normalize_text, tokenize
from finance_chat.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_LANGUAGES: tuple[str, ...] = ("en", "el")
DEFAULT_LANGUAGE = "en"

_SCRIPTS = {
    "en": "LATIN",
    "el": "GREEK",
}

# Words that signal a finance question in each language, accent-free.
_KEYWORDS: dict[str, frozenset[str]] = {
    "en": frozenset({
        "how", "much", "what", "did", "do", "we", "i", "my", "our", "spend", "spent",
        "spending", "expenses", "income", "earn", "earned", "balance", "saving", "savings",
        "save", "budget", "month", "week", "year", "today", "last", "this", "compare",
        "trend", "category", "categories", "money", "left", "more", "less", "than",
    }),
    "el": frozenset({
        "ποσο", "ποσα", "τι", "ξοδεψα", "ξοδεψαμε", "ξοδευω", "εξοδα", "εσοδα", "εβγαλα",
        "υπολοιπο", "αποταμιευση", "αποταμιευω", "προυπολογισμος", "μηνα", "μηνας",
        "εβδομαδα", "χρονο", "ετος", "σημερα", "φετος", "περσι", "συγκρινε", "ταση",
        "κατηγορια", "κατηγοριες", "χρηματα", "λεφτα", "μου", "μας", "για", "στο", "στα",
    }),
}


def resolve_language(preference: str | None, default: str = DEFAULT_LANGUAGE) -> str:
    """Map a stored preference such as ``el-GR`` onto a supported language."""
    fallback = default if default in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE
    if not preference:
        return fallback
    code = preference.strip().lower().replace("_", "-").split("-", 1)[0]
    if code in SUPPORTED_LANGUAGES:
        return code
    return fallback


def language_scores(text: str) -> dict[str, float]:
    """Match density per language: keyword share plus script share, halved."""
    normalized = normalize_text(text)
    tokens = tokenize(normalized)
    letters = [script for script in (letter_script(ch) for ch in normalized) if script]

    scores: dict[str, float] = {}
    for language in SUPPORTED_LANGUAGES:
        if not tokens:
            scores[language] = 0.0
            continue
        keyword_hits = sum(1 for token in tokens if token in _KEYWORDS[language])
        keyword_share = keyword_hits / len(tokens)
        script_share = (
            sum(1 for script in letters if script == _SCRIPTS[language]) / len(letters)
            if letters
            else 0.0
        )
        scores[language] = (keyword_share + script_share) / 2
    return scores


def detect_language(text: str, preference: str | None, default: str = DEFAULT_LANGUAGE) -> str:
    preferred = resolve_language(preference, default)
    scores = language_scores(text)
    best = max(SUPPORTED_LANGUAGES, key=lambda language: (scores[language], language == preferred))
    if best != preferred and scores[best] > scores[preferred]:
        logger.debug(
            "[LANG] Overriding preference '%s' with '%s' (%.2f > %.2f).",
            preferred,
            best,
            scores[best],
            scores[preferred],
        )
        return best
    return preferred
