from abc import ABC, abstractmethod

from finance_chat.models import IntentMatch


class IntentClassifier(ABC):
    @abstractmethod
    def classify(self, text: str, language: str) -> IntentMatch | None:
        """Attempt to classify normalized query text."""
        pass
