"""Currency conversion with a process-wide rate cache.

Reads take a snapshot of the cache and never lock. Writes replace the whole
mapping, so a reader holding a snapshot is never affected by a concurrent
refresh. Concurrent misses for the same pair share one in-flight fetch, even
across normalizers that use the same cache.
"""
import asyncio
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from decimal import Decimal
from functools import partial
from types import MappingProxyType

from finance_chat.errors import RateUnavailable
from finance_chat.integration.rates import RateProvider
from finance_chat.logger import get_logger
from finance_chat.models import ExchangeRate, NormalizedAmount, TransactionRecord, ensure_utc

logger = get_logger(__name__)

Pair = tuple[str, str]

DEFAULT_RATE_CACHE_TTL_SECONDS = 3600.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateCache:
    def __init__(self) -> None:
        self._rates: dict[Pair, ExchangeRate] = {}
        self._inflight: dict[Pair, asyncio.Task[ExchangeRate]] = {}

    def snapshot(self) -> Mapping[Pair, ExchangeRate]:
        return MappingProxyType(self._rates)

    def get(self, base: str, quote: str) -> ExchangeRate | None:
        return self._rates.get((base.upper(), quote.upper()))

    def put(self, rate: ExchangeRate) -> None:
        rates = dict(self._rates)
        rates[rate.pair] = rate
        self._rates = rates

    def pending(self, pair: Pair) -> asyncio.Task[ExchangeRate] | None:
        return self._inflight.get(pair)

    def track(self, pair: Pair, task: asyncio.Task[ExchangeRate]) -> None:
        self._inflight[pair] = task
        task.add_done_callback(partial(self._forget, pair))

    def _forget(self, pair: Pair, task: asyncio.Task[ExchangeRate]) -> None:
        if self._inflight.get(pair) is task:
            del self._inflight[pair]
        if not task.cancelled():
            # Mark the exception retrieved when every waiter went away.
            task.exception()

    def __len__(self) -> int:
        return len(self._rates)


_shared_cache = RateCache()


def shared_rate_cache() -> RateCache:
    return _shared_cache


def _inverted(rate: ExchangeRate, source: str | None = None) -> ExchangeRate:
    return ExchangeRate(
        base=rate.quote,
        quote=rate.base,
        rate=Decimal(1) / rate.rate,
        timestamp=rate.timestamp,
        source=source or rate.source,
    )


class CurrencyNormalizer:
    def __init__(
        self,
        provider: RateProvider,
        cache: RateCache | None = None,
        ttl_seconds: float = DEFAULT_RATE_CACHE_TTL_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ):
        self.provider = provider
        self.cache = cache if cache is not None else shared_rate_cache()
        self.ttl_seconds = ttl_seconds
        self._clock = clock or _utcnow

    async def get_rate(self, base: str, quote: str, as_of: datetime | None = None) -> ExchangeRate:
        base, quote = base.upper(), quote.upper()
        now = ensure_utc(as_of) if as_of else self._clock()
        if base == quote:
            return ExchangeRate(base=base, quote=quote, rate=Decimal(1), timestamp=now)

        snapshot = self.cache.snapshot()
        cached = snapshot.get((base, quote))
        if cached is not None and not cached.is_stale(now, self.ttl_seconds):
            return cached
        inverse = snapshot.get((quote, base))
        if inverse is not None and not inverse.is_stale(now, self.ttl_seconds):
            logger.debug("[RATES] Using inverse of cached %s/%s", quote, base)
            return _inverted(inverse)

        try:
            return await self._fetch((base, quote))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            fallback = self._fallback(base, quote)
            if fallback is None:
                logger.error("[RATES] No rate for %s/%s: %s", base, quote, exc)
                raise RateUnavailable(base, quote, str(exc)) from exc
            logger.warning(
                "[RATES] Live fetch for %s/%s failed (%s); using cached rate from %s",
                base,
                quote,
                exc,
                fallback.timestamp.isoformat(),
            )
            return fallback

    def _fallback(self, base: str, quote: str) -> ExchangeRate | None:
        snapshot = self.cache.snapshot()
        cached = snapshot.get((base, quote))
        if cached is not None:
            return cached.model_copy(update={"source": "cached-fallback"})
        inverse = snapshot.get((quote, base))
        if inverse is not None:
            return _inverted(inverse, source="cached-fallback")
        return None

    async def _fetch(self, pair: Pair) -> ExchangeRate:
        task = self.cache.pending(pair)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(pair))
            self.cache.track(pair, task)
        else:
            logger.debug("[RATES] Joining in-flight fetch for %s/%s", *pair)
        # A cancelled waiter must not cancel the fetch other callers share.
        return await asyncio.shield(task)

    async def _fetch_and_store(self, pair: Pair) -> ExchangeRate:
        rate = await self.provider.get_rate(*pair)
        self.cache.put(rate)
        return rate

    async def normalize(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        as_of: datetime | None = None,
    ) -> NormalizedAmount:
        from_currency, to_currency = from_currency.upper(), to_currency.upper()
        if from_currency == to_currency:
            return NormalizedAmount(amount=amount, currency=to_currency)
        rate = await self.get_rate(from_currency, to_currency, as_of)
        return NormalizedAmount(
            amount=amount * rate.rate,
            currency=to_currency,
            rate=rate,
            stale=rate.source == "cached-fallback",
        )

    async def resolve_rates(
        self,
        currencies: Iterable[str],
        to_currency: str,
        as_of: datetime | None = None,
    ) -> dict[str, ExchangeRate]:
        """Rates for every distinct foreign currency, fetched concurrently."""
        to_currency = to_currency.upper()
        foreign = sorted({code.upper() for code in currencies} - {to_currency})
        if not foreign:
            return {}
        rates = await asyncio.gather(*(self.get_rate(code, to_currency, as_of) for code in foreign))
        return dict(zip(foreign, rates))

    async def convert_records(
        self,
        records: list[TransactionRecord],
        to_currency: str,
        as_of: datetime | None = None,
    ) -> tuple[list[TransactionRecord], list[str]]:
        """Records restated in ``to_currency`` plus the pairs served from stale rates."""
        to_currency = to_currency.upper()
        rates = await self.resolve_rates((record.currency for record in records), to_currency, as_of)
        converted = []
        for record in records:
            rate = rates.get(record.currency)
            if rate is None:
                converted.append(record)
                continue
            converted.append(record.model_copy(update={
                "amount": record.amount * rate.rate,
                "currency": to_currency,
            }))
        stale = sorted(f"{r.base}/{r.quote}" for r in rates.values() if r.source == "cached-fallback")
        return converted, stale
