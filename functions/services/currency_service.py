"""Currency conversion service for Gracemark.

Converts amounts between currencies through an ordered chain of
exchange-rate providers. Rates are cached per currency pair and
concurrent lookups of the same pair share one in-flight fetch.
"""

import asyncio
import math
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.errors import ConversionError, ValidationError
from config.secrets import get_exchangerate_api_key
from config.settings import settings

logger = structlog.get_logger()

_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")

# Display metadata for the currencies the quote tool commonly sees
CURRENCY_INFO: Dict[str, Tuple[str, str]] = {
    "USD": ("US Dollar", "$"),
    "EUR": ("Euro", "€"),
    "GBP": ("British Pound", "£"),
    "CAD": ("Canadian Dollar", "CA$"),
    "AUD": ("Australian Dollar", "A$"),
    "BRL": ("Brazilian Real", "R$"),
    "MXN": ("Mexican Peso", "MX$"),
    "ARS": ("Argentine Peso", "ARS$"),
    "COP": ("Colombian Peso", "COL$"),
    "CLP": ("Chilean Peso", "CLP$"),
    "INR": ("Indian Rupee", "₹"),
    "PHP": ("Philippine Peso", "₱"),
    "JPY": ("Japanese Yen", "¥"),
    "CNY": ("Chinese Yuan", "CN¥"),
    "CHF": ("Swiss Franc", "CHF"),
    "SEK": ("Swedish Krona", "kr"),
    "PLN": ("Polish Zloty", "zł"),
    "ZAR": ("South African Rand", "R"),
    "NGN": ("Nigerian Naira", "₦"),
    "TRY": ("Turkish Lira", "₺"),
}


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    name: str
    symbol: str

    @classmethod
    def for_code(cls, code: str) -> "CurrencyInfo":
        name, symbol = CURRENCY_INFO.get(code, (code, code))
        return cls(code=code, name=name, symbol=symbol)


@dataclass(frozen=True)
class ConversionData:
    """Result of one conversion."""

    exchange_rate: float
    source_currency: CurrencyInfo
    target_currency: CurrencyInfo
    source_amount: float
    target_amount: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# RATE PROVIDERS
# =============================================================================


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
)
async def _fetch_json(
    url: str,
    params: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """GET a JSON document, retrying transport failures only.

    Raises:
        httpx.HTTPStatusError: On non-2xx responses.
        httpx.TransportError: After retries are exhausted.
    """
    async with httpx.AsyncClient(
        timeout=timeout or settings.http_timeout_seconds,
        transport=transport,
    ) as client:
        response = await client.get(url, params=params)
        response.raise_for_status()
        return response.json()


class RateProvider(ABC):
    """Source of exchange rates."""

    name = "base"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    @abstractmethod
    async def fetch_rate(self, source: str, target: str) -> float:
        """Return how many ``target`` units one ``source`` unit buys."""
        raise NotImplementedError

    @staticmethod
    def _validated(rate: Any, source: str, target: str) -> float:
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate <= 0:
            raise ValueError(f"invalid rate for {source}->{target}: {rate!r}")
        return float(rate)


class ExchangerateApiProvider(RateProvider):
    """exchangerate-api.com; uses the keyed pair endpoint when a key exists."""

    name = "exchangerate-api"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        fallback_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(transport)
        self.api_key = api_key
        self.base_url = (base_url or settings.exchangerate_api_url).rstrip("/")
        self.fallback_url = (fallback_url or settings.exchangerate_api_fallback_url).rstrip("/")

    async def fetch_rate(self, source: str, target: str) -> float:
        if self.api_key:
            data = await _fetch_json(
                f"{self.base_url}/{self.api_key}/pair/{source}/{target}",
                transport=self.transport,
            )
            if data.get("result") not in (None, "success"):
                raise ValueError(f"exchangerate-api error: {data.get('error-type', 'unknown')}")
            return self._validated(data.get("conversion_rate"), source, target)

        data = await _fetch_json(f"{self.fallback_url}/{source}", transport=self.transport)
        rates = data.get("rates") or {}
        return self._validated(rates.get(target), source, target)


class ExchangerateHostProvider(RateProvider):
    """exchangerate.host convert endpoint."""

    name = "exchangerate.host"

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(transport)
        self.base_url = base_url or settings.exchangerate_host_url

    async def fetch_rate(self, source: str, target: str) -> float:
        data = await _fetch_json(
            self.base_url,
            params={"from": source, "to": target, "amount": 1},
            transport=self.transport,
        )
        if data.get("success") is False:
            raise ValueError("exchangerate.host reported failure")
        rate = (data.get("info") or {}).get("rate", data.get("result"))
        return self._validated(rate, source, target)


def default_rate_providers() -> List[RateProvider]:
    """Primary provider first, then fallbacks."""
    return [
        ExchangerateApiProvider(api_key=get_exchangerate_api_key()),
        ExchangerateHostProvider(),
    ]


# =============================================================================
# CONVERTER
# =============================================================================


class CurrencyConverter:
    """Converts amounts using cached rates from a provider chain."""

    def __init__(
        self,
        providers: Optional[List[RateProvider]] = None,
        cache_ttl_seconds: Optional[int] = None,
    ):
        self._providers = providers
        self.cache_ttl_seconds = (
            cache_ttl_seconds if cache_ttl_seconds is not None else settings.currency_cache_ttl_seconds
        )
        self._cache: Dict[str, Tuple[float, float]] = {}
        self._inflight: Dict[str, "asyncio.Future[float]"] = {}

    @property
    def providers(self) -> List[RateProvider]:
        """Rate providers (lazy so secrets are read on first use)."""
        if self._providers is None:
            self._providers = default_rate_providers()
        return self._providers

    def _cached_rate(self, key: str) -> Optional[float]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        rate, fetched_at = entry
        if time.monotonic() - fetched_at > self.cache_ttl_seconds:
            del self._cache[key]
            return None
        return rate

    async def _fetch_from_chain(self, source: str, target: str) -> float:
        errors = []
        for provider in self.providers:
            try:
                rate = await provider.fetch_rate(source, target)
            except Exception as e:
                logger.warning(
                    "exchange_rate_provider_failed",
                    provider=provider.name,
                    source=source,
                    target=target,
                    error=str(e),
                )
                errors.append(f"{provider.name}: {e}")
                continue

            self._cache[f"{source}_{target}"] = (rate, time.monotonic())
            logger.info(
                "exchange_rate_fetched",
                provider=provider.name,
                source=source,
                target=target,
                rate=rate,
            )
            return rate

        raise ConversionError(
            message=" | ".join(errors) or "No exchange rate providers configured",
            source_currency=source,
            target_currency=target,
        )

    async def get_rate(self, source: str, target: str) -> float:
        """Exchange rate for a pair, using the cache and in-flight dedupe.

        Raises:
            ConversionError: If every provider fails.
        """
        if source == target:
            return 1.0

        key = f"{source}_{target}"
        cached = self._cached_rate(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_from_chain(source, target))
            self._inflight[key] = task

            def _release(done: "asyncio.Future[float]") -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_release)

        # One caller being cancelled must not cancel the shared fetch
        return await asyncio.shield(task)

    async def convert(self, amount: float, source: str, target: str) -> ConversionData:
        """Convert an amount between two currencies.

        Args:
            amount: Finite amount in ``source`` currency.
            source: ISO 4217 source currency code.
            target: ISO 4217 target currency code.

        Returns:
            ConversionData with the rate and converted amount.

        Raises:
            ValidationError: On malformed currency codes or amount.
            ConversionError: If no provider returns a rate.
        """
        source = (source or "").strip().upper()
        target = (target or "").strip().upper()
        if not _CURRENCY_CODE.match(source):
            raise ValidationError("Invalid source currency code", field="source_currency")
        if not _CURRENCY_CODE.match(target):
            raise ValidationError("Invalid target currency code", field="target_currency")
        if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount):
            raise ValidationError("Amount must be a finite number", field="amount")

        if amount == 0 or source == target:
            return ConversionData(
                exchange_rate=1.0,
                source_currency=CurrencyInfo.for_code(source),
                target_currency=CurrencyInfo.for_code(target),
                source_amount=float(amount),
                target_amount=float(amount),
            )

        rate = await self.get_rate(source, target)
        return ConversionData(
            exchange_rate=rate,
            source_currency=CurrencyInfo.for_code(source),
            target_currency=CurrencyInfo.for_code(target),
            source_amount=float(amount),
            target_amount=round(amount * rate, 2),
        )

    async def convert_amount(self, amount: float, source: str, target: str) -> float:
        """Shorthand returning only the converted amount."""
        result = await self.convert(amount, source, target)
        return result.target_amount


_converter: Optional[CurrencyConverter] = None


def get_currency_converter() -> CurrencyConverter:
    """Process-wide converter so the rate cache is shared."""
    global _converter
    if _converter is None:
        _converter = CurrencyConverter()
    return _converter
