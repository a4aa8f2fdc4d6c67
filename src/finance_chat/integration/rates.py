import asyncio
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from finance_chat.logger import get_logger
from finance_chat.models import ExchangeRate

logger = get_logger(__name__)

DEFAULT_RATE_PROVIDER_URL = "https://api.frankfurter.app"
DEFAULT_TIMEOUT_SECONDS = 10.0


class RateProvider(ABC):
    @abstractmethod
    async def get_rate(self, base: str, quote: str) -> ExchangeRate:
        """Fetch a live rate for one unit of ``base`` in ``quote``."""
        pass

    async def aclose(self) -> None:
        return None


class FrankfurterRateProvider(RateProvider):
    """Live rates from a Frankfurter-compatible ``/latest`` endpoint.

    Errors propagate; the currency normalizer decides whether a cached rate
    can stand in.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or os.getenv("RATE_PROVIDER_URL") or DEFAULT_RATE_PROVIDER_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else DEFAULT_TIMEOUT_SECONDS
        self.token = token or os.getenv("RATE_PROVIDER_TOKEN") or None
        self.headers = {"Accept": "application/json"}
        if self.token:
            self.headers["Authorization"] = f"Bearer {self.token}"
        self._client = client
        self._client_lock = asyncio.Lock()

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _get_client(self) -> httpx.AsyncClient:
        # Fast path: client already exists and is open
        client = self._client
        if client is not None and not client.is_closed:
            return client

        # Slow path: create or recreate client with lock protection
        async with self._client_lock:
            client = self._client
            if client is None or client.is_closed:
                client = httpx.AsyncClient(timeout=self.timeout)
                self._client = client
            return client

    async def get_rate(self, base: str, quote: str) -> ExchangeRate:
        base, quote = base.upper(), quote.upper()
        client = await self._get_client()
        response = await client.get(
            f"{self.base_url}/latest",
            headers=self.headers,
            params={"from": base, "to": quote},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json(parse_float=Decimal)
        rate = self._parse_rate(data, quote)
        logger.info("[RATES] Fetched %s/%s = %s", base, quote, rate)
        return ExchangeRate(
            base=base,
            quote=quote,
            rate=rate,
            timestamp=datetime.now(timezone.utc),
            source="live",
        )

    @staticmethod
    def _parse_rate(data: Any, quote: str) -> Decimal:
        if not isinstance(data, dict):
            raise ValueError("Rate response is not a JSON object")
        rates = data.get("rates")
        if not isinstance(rates, dict) or quote not in rates:
            raise ValueError(f"Rate response has no rate for {quote}")
        try:
            rate = Decimal(str(rates[quote]))
        except InvalidOperation as exc:
            raise ValueError(f"Rate for {quote} is not a number: {rates[quote]!r}") from exc
        if rate <= 0:
            raise ValueError(f"Rate for {quote} must be positive, got {rate}")
        return rate
