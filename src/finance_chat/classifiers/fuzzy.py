from rapidfuzz import fuzz, process

from finance_chat.classifiers.rules import FUZZY_KEYWORDS
from finance_chat.domain.text import tokenize
from finance_chat.models import IntentMatch, QueryIntent

from .base import IntentClassifier

MIN_TOKEN_LENGTH = 4
# Typo matches are less certain than a rule hit.
FUZZY_CONFIDENCE_FACTOR = 0.6


class FuzzyIntentClassifier(IntentClassifier):
    def __init__(self, threshold: float = 85.0):
        self.threshold = threshold
        self._keywords: dict[str, list[str]] = {}
        self._intents: dict[str, dict[str, tuple[QueryIntent, int]]] = {}
        for language, table in FUZZY_KEYWORDS.items():
            keywords: list[str] = []
            lookup: dict[str, tuple[QueryIntent, int]] = {}
            for rank, (intent, words) in enumerate(table):
                for word in words:
                    if word not in lookup:
                        keywords.append(word)
                        lookup[word] = (intent, rank)
            self._keywords[language] = keywords
            self._intents[language] = lookup

    def classify(self, text: str, language: str) -> IntentMatch | None:
        keywords = self._keywords.get(language)
        if not keywords:
            return None

        best: tuple[float, int, str] | None = None
        for token in tokenize(text):
            if len(token) < MIN_TOKEN_LENGTH:
                continue
            result = process.extractOne(token, keywords, scorer=fuzz.ratio)
            if not result:
                continue
            keyword, score, _ = result
            if score < self.threshold:
                continue
            _, rank = self._intents[language][keyword]
            # Higher score first, then the more specific intent.
            candidate = (score, -rank, keyword)
            if best is None or candidate > best:
                best = candidate

        if best is None:
            return None

        score, _, keyword = best
        intent, rank = self._intents[language][keyword]
        return IntentMatch(
            intent=intent,
            confidence=round(score / 100.0 * FUZZY_CONFIDENCE_FACTOR, 3),
            priority=rank,
            source="fuzzy",
            rule=keyword,
        )
