"""Currency conversion with exchange-rate providers and fallback rates."""

from __future__ import annotations

import enum
import logging
import math
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

import httpx

from .errors import ConversionError, TransactionValidationError

logger = logging.getLogger(__name__)

U64_MAX = 2**64 - 1

EXCHANGERATE_API_URL = "https://api.exchangerate-api.com/v4/latest/USD"
FIXER_URL = "http://data.fixer.io/api/latest"
CURRENCYLAYER_URL = "http://api.currencylayer.com/live"

_DEFAULT_FEES = {
    "USD": 0.001,
    "EUR": 0.0012,
    "GBP": 0.0015,
    "JPY": 0.001,
    "CAD": 0.0013,
    "AUD": 0.0014,
    "CHF": 0.0016,
    "CNY": 0.002,
}

_SUPPORTED = ("USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY", "ASTOR")

_FALLBACK_RATES = (
    ("ASTOR", "USD", 1.0),
    ("ASTOR", "EUR", 0.85),
    ("ASTOR", "GBP", 0.73),
    ("ASTOR", "JPY", 110.0),
    ("ASTOR", "CAD", 1.25),
    ("ASTOR", "AUD", 1.35),
    ("ASTOR", "CHF", 0.92),
    ("ASTOR", "CNY", 6.45),
)

_DEFAULT_FEE_RATE = 0.001


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _round_to_u64(value: float) -> int:
    """Round half away from zero and saturate into the unsigned 64-bit range."""
    if math.isnan(value) or value <= 0:
        return 0
    if math.isinf(value):
        return U64_MAX
    return min(math.floor(value + 0.5), U64_MAX)


def _as_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


@dataclass
class ExchangeRate:
    from_currency: str
    to_currency: str
    rate: float
    bid: float
    ask: float
    timestamp: datetime
    source: str
    volatility: float
    daily_change: float

    @property
    def key(self) -> str:
        return f"{self.from_currency}_{self.to_currency}"


class ConversionStatus(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ConversionRequest:
    account_id: str
    from_currency: str
    to_currency: str
    amount: int
    requested_at: datetime


@dataclass
class ConversionResponse:
    request_id: str
    converted_amount: int
    exchange_rate_used: float
    fees: int
    status: ConversionStatus
    processed_at: datetime
    failure_reason: Optional[str] = None


@dataclass
class ConversionResult:
    original_amount: int
    converted_amount: int
    exchange_rate: float
    fees: int
    slippage: float
    timestamp: datetime


class ConversionService:
    """Holds exchange rates and converts amounts between currencies."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        rate_cache_duration: float = 300.0,
    ) -> None:
        self._rates: dict[str, ExchangeRate] = {}
        self._supported = _SUPPORTED
        self._client = client
        self._api_keys: dict[str, str] = {}
        self._rate_cache_duration = rate_cache_duration
        self._last_update: Optional[float] = None
        self._fees = dict(_DEFAULT_FEES)

    def update_exchange_rate(self, rate: ExchangeRate) -> None:
        self._rates[rate.key] = rate

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> float:
        """Return the direct rate, or the inverse of the reverse rate."""
        direct = self._rates.get(f"{from_currency}_{to_currency}")
        if direct is not None:
            return direct.rate
        reverse = self._rates.get(f"{to_currency}_{from_currency}")
        if reverse is not None:
            return 1.0 / reverse.rate if reverse.rate != 0 else math.inf
        raise TransactionValidationError(
            f"Exchange rate not available for {from_currency} to {to_currency}"
        )

    def convert_amount(self, amount: int, from_currency: str, to_currency: str) -> int:
        if from_currency == to_currency:
            return amount
        rate = self.get_exchange_rate(from_currency, to_currency)
        return _round_to_u64(amount * rate)

    async def fetch_live_rates(self) -> None:
        """Refresh rates from providers in turn, falling back to fixed rates."""
        if (
            self._last_update is not None
            and time.monotonic() - self._last_update < self._rate_cache_duration
        ):
            return

        providers = (
            ("exchangerate-api", self._fetch_from_exchangerate_api),
            ("fixer", self._fetch_from_fixer),
            ("currencylayer", self._fetch_from_currencylayer),
        )
        for name, fetch in providers:
            try:
                await fetch()
            except ConversionError as exc:
                logger.warning("Failed to fetch from %s: %s", name, exc)
                continue
            self._last_update = time.monotonic()
            return

        self._use_fallback_rates()

    def add_api_key(self, provider: str, key: str) -> None:
        self._api_keys[provider] = key

    def get_exchange_rate_info(self, from_currency: str, to_currency: str) -> ExchangeRate:
        rate = self._rates.get(f"{from_currency}_{to_currency}")
        if rate is None:
            raise ConversionError(
                f"Exchange rate not available for {from_currency} to {to_currency}"
            )
        return rate

    async def convert_with_fees(
        self,
        amount: int,
        from_currency: str,
        to_currency: str,
        max_slippage: Optional[float] = None,
    ) -> ConversionResult:
        """Convert with fresh rates, deducting the target currency's fee."""
        if from_currency == to_currency:
            return ConversionResult(
                original_amount=amount,
                converted_amount=amount,
                exchange_rate=1.0,
                fees=0,
                slippage=0.0,
                timestamp=_now(),
            )

        await self.fetch_live_rates()
        info = self.get_exchange_rate_info(from_currency, to_currency)

        if max_slippage is not None and info.volatility > max_slippage:
            raise ConversionError(
                f"Slippage {info.volatility} exceeds maximum {max_slippage}"
            )

        converted = _round_to_u64(amount * info.rate)
        fee_rate = self._fees.get(to_currency, _DEFAULT_FEE_RATE)
        fees = _round_to_u64(converted * fee_rate)

        return ConversionResult(
            original_amount=amount,
            converted_amount=max(converted - fees, 0),
            exchange_rate=info.rate,
            fees=fees,
            slippage=info.volatility,
            timestamp=_now(),
        )

    @property
    def supported_currencies(self) -> tuple[str, ...]:
        return self._supported

    def is_supported_currency(self, currency: str) -> bool:
        return currency in self._supported

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient() as client:
                yield client

    async def _get_json(self, url: str, params: dict[str, str], label: str) -> Any:
        async with self._http() as client:
            try:
                response = await client.get(url, params=params or None)
            except httpx.HTTPError as exc:
                raise ConversionError(f"{label} request failed: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise ConversionError(f"JSON parsing failed: {exc}") from exc

    def _store_rate(self, from_currency: str, to_currency: str, value: Any, source: str) -> None:
        rate = _as_float(value)
        self.update_exchange_rate(
            ExchangeRate(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=rate,
                bid=rate * 0.999,
                ask=rate * 1.001,
                timestamp=_now(),
                source=source,
                volatility=0.01,
                daily_change=0.0,
            )
        )

    async def _fetch_from_exchangerate_api(self) -> None:
        data = await self._get_json(EXCHANGERATE_API_URL, {}, "API")
        rates = data.get("rates") if isinstance(data, dict) else None
        if isinstance(rates, dict):
            for currency, value in rates.items():
                if currency in self._supported:
                    self._store_rate("USD", currency, value, "exchangerate-api")

    async def _fetch_from_fixer(self) -> None:
        api_key = self._api_keys.get("fixer")
        if api_key is None:
            return
        data = await self._get_json(FIXER_URL, {"access_key": api_key}, "Fixer API")
        if not isinstance(data, dict) or data.get("success") is not True:
            return
        rates = data.get("rates")
        if isinstance(rates, dict):
            for currency, value in rates.items():
                if currency in self._supported:
                    self._store_rate("EUR", currency, value, "fixer")

    async def _fetch_from_currencylayer(self) -> None:
        api_key = self._api_keys.get("currencylayer")
        if api_key is None:
            return
        data = await self._get_json(
            CURRENCYLAYER_URL, {"access_key": api_key}, "CurrencyLayer API"
        )
        if not isinstance(data, dict) or data.get("success") is not True:
            return
        quotes = data.get("quotes")
        if isinstance(quotes, dict):
            for pair, value in quotes.items():
                if pair.startswith("USD"):
                    to_currency = pair[3:]
                    if to_currency in self._supported:
                        self._store_rate("USD", to_currency, value, "currencylayer")

    def _use_fallback_rates(self) -> None:
        for from_currency, to_currency, rate in _FALLBACK_RATES:
            self.update_exchange_rate(
                ExchangeRate(
                    from_currency=from_currency,
                    to_currency=to_currency,
                    rate=rate,
                    bid=rate * 0.999,
                    ask=rate * 1.001,
                    timestamp=_now(),
                    source="fallback",
                    volatility=0.02,
                    daily_change=0.0,
                )
            )