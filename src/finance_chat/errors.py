class FinanceChatError(Exception):
    """Base class for query engine failures."""


class RateUnavailable(FinanceChatError):
    """No usable exchange rate exists for a currency pair."""

    def __init__(self, base: str, quote: str, reason: str | None = None):
        self.base = base
        self.quote = quote
        self.reason = reason
        message = f"No exchange rate available for {base}->{quote}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    @property
    def pair(self) -> str:
        return f"{self.base}/{self.quote}"


class DataFetchFailed(FinanceChatError):
    """The data gateway failed; callers may retry."""

    def __init__(self, operation: str, reason: str | None = None):
        self.operation = operation
        self.reason = reason
        message = f"Data fetch failed during {operation}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class TemplateMissing(FinanceChatError):
    """A response template is missing for a supported language."""

    def __init__(self, key: str, language: str):
        self.key = key
        self.language = language
        super().__init__(f"Missing response template '{key}' for language '{language}'")
