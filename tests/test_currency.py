"""Tests for exchange rate managers and reporting-currency normalization."""

from decimal import Decimal

import pytest

from folioscope.currency import (
    Currency,
    CurrencyNormalizer,
    ExchangeRateManager,
    FixedExchangeRateManager,
    RateSource,
    YFinanceExchangeRateManager,
    parse_currency,
)
from folioscope.quotes import Quote


class CountingRateManager(ExchangeRateManager):
    """Live manager whose rate rises by 1 on every lookup."""

    def __init__(self, start="10"):
        self.rate = Decimal(start)
        self.calls = 0

    def get_exchange_rate(self, from_currency, to_currency, datetime=None):
        self.calls += 1
        rate = self.rate
        self.rate += 1
        return rate


class FlakyRateManager(ExchangeRateManager):
    """Live manager that succeeds until ``fail`` is set."""

    def __init__(self, rate):
        self.rate = Decimal(rate)
        self.fail = False

    def get_exchange_rate(self, from_currency, to_currency, datetime=None):
        if self.fail:
            raise ValueError("rate service down")
        return self.rate


def test_fixed_rates_direct_inverse_and_triangulated():
    """Verify the fixed table answers direct, inverse and USD-crossed pairs."""
    manager = FixedExchangeRateManager()

    assert manager.get_exchange_rate(Currency.USD, Currency.SEK) == Decimal("10.5")
    assert manager.get_exchange_rate(Currency.SEK, Currency.USD) == Decimal("1") / Decimal("10.5")
    assert manager.get_exchange_rate(Currency.CAD, Currency.JPY) == (Decimal("1") / Decimal("1.37")) * Decimal("150.0")
    assert manager.get_exchange_rate(Currency.EUR, Currency.EUR) == Decimal("1")


def test_fixed_rates_custom_override():
    """Verify custom and later-set rates take precedence over the defaults."""
    manager = FixedExchangeRateManager({(Currency.USD, Currency.SEK): Decimal("9")})
    assert manager.get_exchange_rate(Currency.USD, Currency.SEK) == Decimal("9")

    manager.set_exchange_rate(Currency.USD, Currency.SEK, Decimal("11"))
    assert manager.get_exchange_rate(Currency.USD, Currency.SEK) == Decimal("11")


def test_fixed_rates_missing_pair():
    """Verify a pair without any route raises ValueError."""
    manager = FixedExchangeRateManager()
    manager.exchange_rates = {}

    with pytest.raises(ValueError, match="not available"):
        manager.get_exchange_rate(Currency.CHF, Currency.SEK)


def test_parse_currency():
    assert parse_currency(" usd ") == Currency.USD
    assert parse_currency(None) == Currency.SEK
    assert parse_currency("", default=Currency.EUR) == Currency.EUR
    with pytest.raises(ValueError, match="Unsupported currency"):
        parse_currency("XYZ")


def test_live_rate_is_used_when_available():
    normalizer = CurrencyNormalizer(Currency.SEK, live=FlakyRateManager("10"))

    rate = normalizer.resolve_rate(Currency.USD)

    assert rate.rate == Decimal("10")
    assert rate.source == RateSource.LIVE
    assert not rate.is_fallback


def test_last_known_rate_after_live_failure():
    """Verify the last live rate is preferred over the fixed table once the live source fails."""
    live = FlakyRateManager("9.87")
    normalizer = CurrencyNormalizer(Currency.SEK, live=live)
    normalizer.resolve_rate(Currency.USD)

    live.fail = True
    rate = normalizer.resolve_rate(Currency.USD)

    assert rate.rate == Decimal("9.87")
    assert rate.source == RateSource.LAST_KNOWN
    assert rate.is_fallback


def test_fixed_fallback_when_live_never_worked(caplog):
    """Verify the fixed table is used, and logged, when no live rate was ever fetched."""
    live = FlakyRateManager("1")
    live.fail = True
    normalizer = CurrencyNormalizer(Currency.SEK, live=live)

    with caplog.at_level("WARNING", logger="folioscope.currency"):
        rate = normalizer.resolve_rate(Currency.USD)

    assert rate.rate == Decimal("10.5")
    assert rate.source == RateSource.FALLBACK
    assert "fallback rate" in caplog.text


def test_unavailable_rate_converts_at_one():
    """Verify conversion never raises, even when no source knows the pair."""
    fallback = FixedExchangeRateManager()
    fallback.exchange_rates = {}
    normalizer = CurrencyNormalizer(Currency.SEK, fallback=fallback)

    rate = normalizer.resolve_rate(Currency.CHF)

    assert rate.rate == Decimal("1")
    assert rate.source == RateSource.UNAVAILABLE
    assert normalizer.convert(Decimal("5"), Currency.CHF) == Decimal("5")


def test_one_rate_per_pair_within_a_pass():
    """Verify every conversion in a pass uses the first rate fetched for the pair."""
    live = CountingRateManager("10")
    normalizer = CurrencyNormalizer(Currency.SEK, live=live)
    conversion = normalizer.begin_pass()

    assert conversion.convert(Decimal("1"), Currency.USD) == Decimal("10")
    assert conversion.convert(Decimal("2"), Currency.USD) == Decimal("20")
    assert conversion.convert(Decimal("3"), Currency.SEK) == Decimal("3")
    assert live.calls == 1
    assert [r.from_currency for r in conversion.rates_used] == [Currency.USD]

    # A new pass fetches again
    assert normalizer.begin_pass().convert(Decimal("1"), Currency.USD) == Decimal("11")


def test_convert_quote_converts_monetary_fields():
    """Verify price fields are converted while percentages and volume are kept."""
    normalizer = CurrencyNormalizer(Currency.SEK, live=FlakyRateManager("10"))
    quote = Quote(
        ticker="AAPL",
        price=Decimal("150"),
        change=Decimal("3"),
        change_percent=Decimal("2.04"),
        day_high=Decimal("151"),
        volume=1000,
        currency=Currency.USD,
    )

    converted = normalizer.begin_pass().convert_quote(quote)

    assert converted.price == Decimal("1500")
    assert converted.change == Decimal("30")
    assert converted.day_high == Decimal("1510")
    assert converted.day_low is None
    assert converted.change_percent == Decimal("2.04")
    assert converted.volume == 1000
    assert converted.currency == Currency.SEK
    assert converted.original_currency == Currency.USD


def test_yfinance_rate_uses_currency_symbol(monkeypatch):
    """Verify the live manager asks Yahoo for the FROMTO=X symbol."""
    requested = []

    class FakeTicker:
        def __init__(self, symbol):
            requested.append(symbol)
            self.fast_info = {"lastPrice": 10.25}

    monkeypatch.setattr("folioscope.currency.yf.Ticker", FakeTicker)

    rate = YFinanceExchangeRateManager().get_exchange_rate(Currency.USD, Currency.SEK)

    assert rate == Decimal("10.25")
    assert requested == ["USDSEK=X"]


def test_yfinance_rate_missing_price(monkeypatch):
    class FakeTicker:
        def __init__(self, symbol):
            self.fast_info = {"lastPrice": float("nan")}

    monkeypatch.setattr("folioscope.currency.yf.Ticker", FakeTicker)

    with pytest.raises(ValueError, match="No exchange rate available"):
        YFinanceExchangeRateManager().get_exchange_rate(Currency.EUR, Currency.SEK)
