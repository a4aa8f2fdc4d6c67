import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from decimal import Decimal
from time import monotonic
from typing import TypeVar

from finance_chat.classifiers.rules import validate_rules
from finance_chat.domain.text import normalize_text
from finance_chat.domain.vocabulary import expand_categories
from finance_chat.errors import DataFetchFailed, RateUnavailable
from finance_chat.integration.gateway import DataGateway
from finance_chat.logger import get_logger
from finance_chat.manager import IntentService
from finance_chat.models import (
    ChatMessage,
    PartnershipContext,
    QueryAnswer,
    QueryIntent,
    TransactionRecord,
    ensure_utc,
)
from finance_chat.services.analysis import AnalysisEngine
from finance_chat.services.currency import CurrencyNormalizer
from finance_chat.services.extraction import ParameterExtractor
from finance_chat.services.formatting import ResponseFormatter
from finance_chat.services.language import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES, detect_language

logger = get_logger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueryEngine:
    """Answers one free-text question per call.

    The stages run in a fixed order: language, intent, parameters, data,
    currency, analysis and formatting. Unrecognized questions stop after the
    intent stage without touching the gateway.
    """

    def __init__(
        self,
        gateway: DataGateway,
        normalizer: CurrencyNormalizer,
        intents: IntentService | None = None,
        extractor: ParameterExtractor | None = None,
        analysis: AnalysisEngine | None = None,
        formatter: ResponseFormatter | None = None,
        default_language: str = DEFAULT_LANGUAGE,
        default_currency: str = "EUR",
        default_periods: int = 6,
        clock: Callable[[], datetime] | None = None,
    ):
        self.gateway = gateway
        self.normalizer = normalizer
        self.intents = intents or IntentService()
        self.extractor = extractor or ParameterExtractor(default_periods=default_periods)
        self.analysis = analysis or AnalysisEngine()
        self.formatter = formatter or ResponseFormatter()
        self.default_language = default_language
        self.default_currency = default_currency.upper()
        self.default_periods = default_periods
        self._clock = clock or _utcnow

        validate_rules(SUPPORTED_LANGUAGES)
        self.formatter.validate(SUPPORTED_LANGUAGES)

    async def aclose(self) -> None:
        await self.normalizer.provider.aclose()

    async def answer(
        self,
        user_id: str,
        raw_text: str,
        language_preference: str | None = None,
        history: Sequence[ChatMessage] | None = None,
        now: datetime | None = None,
    ) -> QueryAnswer:
        started = monotonic()
        now = ensure_utc(now) if now else self._clock()

        language = detect_language(raw_text, language_preference, self.default_language)
        text = normalize_text(raw_text)
        match = self.intents.classify(text, language, history)
        logger.info(
            "[ENGINE] user=%s language=%s intent=%s (source=%s, confidence=%.2f)",
            user_id,
            language,
            match.intent.value,
            match.source,
            match.confidence,
        )
        if match.intent is QueryIntent.UNRECOGNIZED:
            return self.formatter.unrecognized(language)

        profile, partnership = await asyncio.gather(
            self._call("fetch_profile", self.gateway.fetch_profile(user_id)),
            self._call("fetch_partnership", self.gateway.fetch_partnership(user_id)),
        )
        partner_id = self._partner_of(user_id, partnership)
        base_currency = (profile.base_currency or self.default_currency).upper()
        params = self.extractor.extract(
            raw_text,
            language,
            now,
            vocabulary=profile.categories,
            base_currency=base_currency,
            intent=match.intent,
            default_periods=self.default_periods,
        )

        fetch_range = self.analysis.plan_range(match.intent, params, now)
        categories = expand_categories(params.categories) if self.analysis.uses_categories(match.intent, params) else []
        records = await self._call(
            "fetch_transactions",
            self.gateway.fetch_transactions(
                user_id,
                partner_id,
                fetch_range,
                categories,
            ),
        )
        records = self._scope(records, user_id, partner_id)

        thresholds: dict[str, Decimal] = {}
        if self.analysis.needs_thresholds(match.intent, params):
            thresholds = await self._call("fetch_budget_thresholds", self.gateway.fetch_budget_thresholds(user_id))

        try:
            converted, stale = await self.normalizer.convert_records(records, params.currency)
            if thresholds and base_currency != params.currency:
                thresholds, stale_thresholds = await self._convert_thresholds(thresholds, base_currency, params.currency)
                stale = sorted(set(stale) | set(stale_thresholds))
        except RateUnavailable as exc:
            logger.warning("[ENGINE] Cannot answer in %s: %s", params.currency, exc)
            return self.formatter.rate_unavailable(exc, language, match.intent)

        result = self.analysis.analyze(match.intent, converted, params, now, thresholds)
        result.stale_rates = stale
        answer = self.formatter.format(match, result, params, language)

        logger.info(
            "[ENGINE] Answered %s for user=%s over %d records in %.1f ms",
            match.intent.value,
            user_id,
            len(records),
            (monotonic() - started) * 1000,
        )
        return answer

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except DataFetchFailed:
            raise
        except Exception as exc:
            logger.error("[ENGINE] Gateway %s failed: %s", operation, exc)
            raise DataFetchFailed(operation, str(exc)) from exc

    def _partner_of(self, user_id: str, partnership: PartnershipContext) -> str | None:
        partner = partnership.effective_partner_id
        if partner is None:
            return None
        if partnership.user_id == user_id:
            return partner
        if partner == user_id:
            return partnership.user_id
        logger.warning(
            "[ENGINE] Partnership for user=%s does not include user=%s; ignoring it.",
            partnership.user_id,
            user_id,
        )
        return None

    def _scope(self, records: list[TransactionRecord], user_id: str, partner_id: str | None) -> list[TransactionRecord]:
        members = {user_id} | ({partner_id} if partner_id else set())
        scoped = [record for record in records if record.user_id in members]
        dropped = len(records) - len(scoped)
        if dropped:
            logger.warning(
                "[ENGINE] Gateway returned %d records outside user=%s's scope; ignoring them.",
                dropped,
                user_id,
            )
        return scoped

    async def _convert_thresholds(
        self,
        thresholds: dict[str, Decimal],
        from_currency: str,
        to_currency: str,
    ) -> tuple[dict[str, Decimal], list[str]]:
        converted: dict[str, Decimal] = {}
        stale: set[str] = set()
        for category, amount in thresholds.items():
            normalized = await self.normalizer.normalize(amount, from_currency, to_currency)
            converted[category] = normalized.amount
            if normalized.stale and normalized.rate is not None:
                stale.add(f"{normalized.rate.base}/{normalized.rate.quote}")
        return converted, sorted(stale)
