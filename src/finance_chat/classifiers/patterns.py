from finance_chat.classifiers.rules import IntentRule, rules_for
from finance_chat.models import IntentMatch

from .base import IntentClassifier


class PatternIntentClassifier(IntentClassifier):
    def __init__(self, rules: dict[str, tuple[IntentRule, ...]] | None = None):
        self._rules = rules

    def rules(self, language: str) -> tuple[IntentRule, ...]:
        if self._rules is not None:
            return self._rules.get(language, ())
        return rules_for(language)

    def classify(self, text: str, language: str) -> IntentMatch | None:
        if not text:
            return None

        for rule in self.rules(language):
            if rule.matches(text):
                return IntentMatch(
                    intent=rule.intent,
                    confidence=1.0,
                    priority=rule.priority,
                    source="pattern",
                    rule=rule.pattern,
                )
        return None
