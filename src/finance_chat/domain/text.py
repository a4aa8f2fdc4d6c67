import re
import unicodedata

_WHITESPACE = re.compile(r"\s+")
_TOKEN = re.compile(r"[^\W_]+")
# Includes the Greek question mark (U+037E) and ano teleia (U+0387).
_EDGE_PUNCTUATION = "?!.,;:\"'()[]{};·¿¡"


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return unicodedata.normalize("NFC", stripped)


def normalize_text(text: str | None) -> str:
    """Lower-case, drop diacritics and collapse whitespace.

    Diacritics are removed so "πόσο" and "ποσο" match the same rules.
    """
    if not text:
        return ""
    lowered = strip_accents(text).lower()
    collapsed = _WHITESPACE.sub(" ", lowered).strip()
    return collapsed.strip(_EDGE_PUNCTUATION).strip()


def tokenize(text: str) -> list[str]:
    return _TOKEN.findall(text)


def letter_script(char: str) -> str | None:
    if not char.isalpha():
        return None
    try:
        name = unicodedata.name(char)
    except ValueError:
        return None
    return name.split(" ", 1)[0]
