from datetime import datetime, timezone

import httpx
import pytest
import respx

from astor.conversion import (
    CURRENCYLAYER_URL,
    EXCHANGERATE_API_URL,
    FIXER_URL,
    ConversionService,
    ExchangeRate,
)
from astor.errors import ConversionError, TransactionValidationError


def make_rate(from_currency, to_currency, rate, volatility=0.01):
    return ExchangeRate(
        from_currency=from_currency,
        to_currency=to_currency,
        rate=rate,
        bid=rate,
        ask=rate,
        timestamp=datetime.now(timezone.utc),
        source="test",
        volatility=volatility,
        daily_change=0.0,
    )


def test_direct_and_reverse_rates():
    service = ConversionService()
    service.update_exchange_rate(make_rate("USD", "EUR", 0.5))
    assert service.get_exchange_rate("USD", "EUR") == 0.5
    assert service.get_exchange_rate("EUR", "USD") == 1.0 / 0.5


def test_missing_rate_raises():
    service = ConversionService()
    with pytest.raises(TransactionValidationError, match="USD to GBP"):
        service.get_exchange_rate("USD", "GBP")


def test_convert_same_currency_is_identity():
    service = ConversionService()
    assert service.convert_amount(1234, "USD", "USD") == 1234


def test_convert_rounds_half_away_from_zero():
    service = ConversionService()
    service.update_exchange_rate(make_rate("USD", "EUR", 0.5))
    assert service.convert_amount(3, "USD", "EUR") == 2


def test_supported_currencies():
    service = ConversionService()
    assert "ASTOR" in service.supported_currencies
    assert len(service.supported_currencies) == 9
    assert service.is_supported_currency("EUR") is True
    assert service.is_supported_currency("XYZ") is False


def test_rate_info_only_direct():
    service = ConversionService()
    service.update_exchange_rate(make_rate("USD", "EUR", 0.5))
    assert service.get_exchange_rate_info("USD", "EUR").rate == 0.5
    with pytest.raises(ConversionError):
        service.get_exchange_rate_info("EUR", "USD")


@pytest.mark.asyncio
async def test_fetch_from_exchangerate_api_and_cache():
    service = ConversionService()
    with respx.mock(assert_all_called=False) as router:
        route = router.get(EXCHANGERATE_API_URL).mock(
            return_value=httpx.Response(
                200, json={"rates": {"USD": 1.0, "EUR": 0.9, "XYZ": 3.0}}
            )
        )
        await service.fetch_live_rates()
        await service.fetch_live_rates()
        assert route.call_count == 1
    info = service.get_exchange_rate_info("USD", "EUR")
    assert info.rate == 0.9
    assert info.source == "exchangerate-api"
    assert info.bid < info.rate < info.ask
    with pytest.raises(TransactionValidationError):
        service.get_exchange_rate("USD", "XYZ")


@pytest.mark.asyncio
async def test_fixer_used_when_first_provider_fails():
    service = ConversionService()
    service.add_api_key("fixer", "placeholder")
    with respx.mock(assert_all_called=False) as router:
        router.get(EXCHANGERATE_API_URL).mock(side_effect=httpx.ConnectError)
        router.get(url__startswith=FIXER_URL).mock(
            return_value=httpx.Response(
                200, json={"success": True, "rates": {"GBP": 0.85}}
            )
        )
        await service.fetch_live_rates()
    info = service.get_exchange_rate_info("EUR", "GBP")
    assert info.rate == 0.85
    assert info.source == "fixer"


@pytest.mark.asyncio
async def test_currencylayer_quotes():
    service = ConversionService()
    service.add_api_key("fixer", "placeholder")
    service.add_api_key("currencylayer", "placeholder")
    with respx.mock(assert_all_called=False) as router:
        router.get(EXCHANGERATE_API_URL).mock(side_effect=httpx.ConnectError)
        router.get(url__startswith=FIXER_URL).mock(side_effect=httpx.ConnectError)
        router.get(url__startswith=CURRENCYLAYER_URL).mock(
            return_value=httpx.Response(
                200,
                json={"success": True, "quotes": {"USDEUR": 0.8, "EURGBP": 1.1}},
            )
        )
        await service.fetch_live_rates()
    assert service.get_exchange_rate_info("USD", "EUR").source == "currencylayer"
    assert service.get_exchange_rate("USD", "EUR") == 0.8
    with pytest.raises(ConversionError):
        service.get_exchange_rate_info("EUR", "GBP")


@pytest.mark.asyncio
async def test_fallback_rates_when_all_providers_fail():
    service = ConversionService()
    service.add_api_key("fixer", "placeholder")
    service.add_api_key("currencylayer", "placeholder")
    with respx.mock(assert_all_called=False) as router:
        router.get(EXCHANGERATE_API_URL).mock(side_effect=httpx.ConnectError)
        router.get(url__startswith=FIXER_URL).mock(side_effect=httpx.ConnectError)
        router.get(url__startswith=CURRENCYLAYER_URL).mock(
            side_effect=httpx.ConnectError
        )
        await service.fetch_live_rates()
    info = service.get_exchange_rate_info("ASTOR", "EUR")
    assert info.rate == 0.85
    assert info.source == "fallback"
    assert info.volatility == 0.02
    assert service.get_exchange_rate("ASTOR", "JPY") == 110.0


@pytest.mark.asyncio
async def test_convert_with_fees_same_currency():
    service = ConversionService()
    result = await service.convert_with_fees(1000, "USD", "USD")
    assert result.converted_amount == 1000
    assert result.fees == 0
    assert result.exchange_rate == 1.0


@pytest.mark.asyncio
async def test_convert_with_fees_deducts_fee():
    service = ConversionService()
    with respx.mock(assert_all_called=False) as router:
        router.get(EXCHANGERATE_API_URL).mock(
            return_value=httpx.Response(200, json={"rates": {"EUR": 0.5}})
        )
        result = await service.convert_with_fees(1000, "USD", "EUR", None)
    gross = service.convert_amount(1000, "USD", "EUR")
    assert result.converted_amount + result.fees == gross
    assert result.fees > 0
    assert result.exchange_rate == 0.5
    assert result.original_amount == 1000


@pytest.mark.asyncio
async def test_convert_with_fees_slippage_and_direct_only():
    service = ConversionService()
    with respx.mock(assert_all_called=False) as router:
        router.get(EXCHANGERATE_API_URL).mock(
            return_value=httpx.Response(200, json={"rates": {"EUR": 0.5}})
        )
        with pytest.raises(ConversionError, match="exceeds maximum"):
            await service.convert_with_fees(1000, "USD", "EUR", 0.001)
        with pytest.raises(ConversionError, match="EUR to USD"):
            await service.convert_with_fees(1000, "EUR", "USD")