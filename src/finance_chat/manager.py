from collections.abc import Sequence

from finance_chat.classifiers.base import IntentClassifier
from finance_chat.classifiers.fuzzy import FuzzyIntentClassifier
from finance_chat.classifiers.patterns import PatternIntentClassifier
from finance_chat.domain.text import normalize_text, tokenize
from finance_chat.logger import get_logger
from finance_chat.models import ChatMessage, IntentMatch, QueryIntent

logger = get_logger(__name__)

SHORT_QUERY_WORDS = 4
HISTORY_MESSAGES = 6
HISTORY_KEYWORDS = 3

_COMMON_WORDS = frozenset({
    "the", "this", "that", "what", "how", "when", "where", "which", "who", "why", "can",
    "could", "would", "should", "will", "with", "from", "about", "have", "has", "had",
    "are", "was", "were", "been", "being", "did", "does", "show", "tell", "much", "many",
    "please", "thanks", "and",
    "και", "που", "πως", "ποσο", "ποσα", "αυτο", "αυτη", "εχω", "εχουμε", "μου", "μας",
    "δειξε", "πες", "παρακαλω", "ευχαριστω",
})


def history_keywords(history: Sequence[ChatMessage] | None, limit: int = HISTORY_KEYWORDS) -> list[str]:
    """Meaningful words from the most recent user messages, oldest first."""
    if not history:
        return []
    recent = list(history)[-HISTORY_MESSAGES:]
    keywords: list[str] = []
    for message in reversed(recent):
        if message.role != "user":
            continue
        for word in tokenize(normalize_text(message.message)):
            if len(word) > 3 and word not in _COMMON_WORDS and word not in keywords:
                keywords.append(word)
        if keywords:
            break
    return keywords[:limit]


class IntentService:
    def __init__(self, fuzzy_threshold: float = 85.0):
        self.classifiers: list[IntentClassifier] = []

        # 1. Ordered pattern rules (authoritative)
        self.patterns = PatternIntentClassifier()
        self.classifiers.append(self.patterns)

        # 2. Fuzzy keyword fallback for misspellings
        if fuzzy_threshold > 0:
            self.fuzzy: FuzzyIntentClassifier | None = FuzzyIntentClassifier(threshold=fuzzy_threshold)
            self.classifiers.append(self.fuzzy)
        else:
            self.fuzzy = None
            logger.info("[INTENT] Fuzzy intent fallback disabled.")

    def classify(
        self,
        text: str,
        language: str,
        history: Sequence[ChatMessage] | None = None,
    ) -> IntentMatch:
        match = self._run_chain(text, language)
        if match:
            return match

        if history and len(text.split()) < SHORT_QUERY_WORDS:
            keywords = history_keywords(history)
            if keywords:
                enriched = f"{text} {' '.join(keywords)}".strip()
                logger.debug("[INTENT] Retrying with conversation context: '%s' -> '%s'", text, enriched)
                match = self._run_chain(enriched, language)
                if match:
                    return match

        logger.debug("[INTENT] No classifier matched for: '%s'", text[:80])
        return IntentMatch(intent=QueryIntent.UNRECOGNIZED, confidence=0.0, source="none")

    def _run_chain(self, text: str, language: str) -> IntentMatch | None:
        for classifier in self.classifiers:
            classifier_name = classifier.__class__.__name__
            result = classifier.classify(text, language)
            if result:
                logger.debug(
                    "[INTENT] %s matched '%s' (confidence: %.2f, rule: %s)",
                    classifier_name,
                    result.intent.value,
                    result.confidence,
                    result.rule,
                )
                return result
        return None
