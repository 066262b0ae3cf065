from enum import Enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from decimal import Decimal
from datetime import datetime
import logging
import threading
from typing import TYPE_CHECKING

import yfinance as yf  # type: ignore[import-untyped]

if TYPE_CHECKING:
    from .quotes import Quote

logger = logging.getLogger(__name__)


class Currency(Enum):
    """Supported currencies for exchange rate conversions."""

    SEK = "SEK"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    NOK = "NOK"
    DKK = "DKK"
    CAD = "CAD"
    CHF = "CHF"
    JPY = "JPY"
    AUD = "AUD"
    HKD = "HKD"


def parse_currency(value: "str | Currency | None", default: Currency = Currency.SEK) -> Currency:
    """Parse a currency code, falling back to ``default`` when empty.

    Raises:
        ValueError: If the code is not a supported currency.
    """
    if isinstance(value, Currency):
        return value
    if value is None or not str(value).strip():
        return default
    code = str(value).strip().upper()
    try:
        return Currency(code)
    except ValueError:
        raise ValueError(f"Unsupported currency: {value!r}") from None


class ExchangeRateManager(ABC):
    """Abstract base class for currency exchange rate providers."""

    @abstractmethod
    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, datetime: datetime | None = None) -> Decimal:
        """Get the exchange rate between two currencies.

        Args:
            from_currency: The source currency.
            to_currency: The target currency.
            datetime: The date for the rate lookup. If None, uses the current date.

        Returns:
            The number of ``to_currency`` units one ``from_currency`` unit buys.

        Raises:
            ValueError: When no rate is available for the pair.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")


class FixedExchangeRateManager(ExchangeRateManager):
    """Exchange rate manager using fixed, hardcoded rates.

    Used as the fallback when live rates cannot be fetched, and in tests.
    """

    global_exchange_rates = {
        (Currency.USD, Currency.SEK): Decimal("10.5"),
        (Currency.EUR, Currency.SEK): Decimal("11.5"),
        (Currency.GBP, Currency.SEK): Decimal("13.2"),
        (Currency.NOK, Currency.SEK): Decimal("1.0"),
        (Currency.DKK, Currency.SEK): Decimal("1.55"),
        (Currency.USD, Currency.EUR): Decimal("0.92"),
        (Currency.USD, Currency.GBP): Decimal("0.79"),
        (Currency.USD, Currency.NOK): Decimal("10.6"),
        (Currency.USD, Currency.DKK): Decimal("6.85"),
        (Currency.USD, Currency.CAD): Decimal("1.37"),
        (Currency.USD, Currency.CHF): Decimal("0.88"),
        (Currency.USD, Currency.JPY): Decimal("150.0"),
        (Currency.USD, Currency.AUD): Decimal("1.52"),
        (Currency.USD, Currency.HKD): Decimal("7.80"),
    }

    def __init__(self, exchange_rates: dict[tuple[Currency, Currency], Decimal] | None = None):
        """Initialize with optional custom exchange rates.

        Args:
            exchange_rates: Custom rates to use. Missing pairs are filled
                from global_exchange_rates defaults.
        """
        self.exchange_rates: dict[tuple[Currency, Currency], Decimal] = dict(exchange_rates or {})
        for pair, rate in self.global_exchange_rates.items():
            self.exchange_rates.setdefault(pair, rate)

    def set_exchange_rate(self, from_currency: Currency, to_currency: Currency, rate: Decimal):
        """Set or override the exchange rate for a currency pair."""
        self.exchange_rates[(from_currency, to_currency)] = rate

    def _lookup(self, from_currency: Currency, to_currency: Currency) -> Decimal | None:
        if from_currency == to_currency:
            return Decimal("1")
        if (from_currency, to_currency) in self.exchange_rates:
            return self.exchange_rates[(from_currency, to_currency)]
        if (to_currency, from_currency) in self.exchange_rates:
            return Decimal("1") / self.exchange_rates[(to_currency, from_currency)]
        return None

    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, datetime: datetime | None = None) -> Decimal:
        """Get the fixed exchange rate between two currencies.

        Tries a direct pair, then the inverse pair, then converts via USD.

        Raises:
            ValueError: If no rate is available for the currency pair.
        """
        rate = self._lookup(from_currency, to_currency)
        if rate is not None:
            return rate

        if Currency.USD not in (from_currency, to_currency):
            rate_to_usd = self._lookup(from_currency, Currency.USD)
            rate_from_usd = self._lookup(Currency.USD, to_currency)
            if rate_to_usd is not None and rate_from_usd is not None:
                return rate_to_usd * rate_from_usd

        raise ValueError(f"Exchange rate from {from_currency.value} to {to_currency.value} not available.")


class YFinanceExchangeRateManager(ExchangeRateManager):
    """Live exchange rates from Yahoo Finance currency symbols (e.g. ``USDSEK=X``).

    Only the latest rate is available; the ``datetime`` argument is ignored.
    """

    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, datetime: datetime | None = None) -> Decimal:
        if from_currency == to_currency:
            return Decimal("1")

        symbol = f"{from_currency.value}{to_currency.value}=X"
        try:
            last_price = yf.Ticker(symbol).fast_info.get("lastPrice")
        except Exception as e:
            raise ValueError(f"Exchange rate lookup failed for {symbol}: {e}") from e

        if last_price is None or last_price != last_price or last_price <= 0:
            raise ValueError(f"No exchange rate available for {symbol}")
        return Decimal(str(last_price))


class RateSource(Enum):
    """Where an exchange rate used in a computation came from."""

    LIVE = "live"
    LAST_KNOWN = "last_known"
    FALLBACK = "fallback"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ExchangeRate:
    """An exchange rate as applied during one conversion pass."""

    from_currency: Currency
    to_currency: Currency
    rate: Decimal
    source: RateSource
    fetched_at: datetime = field(default_factory=datetime.now)

    @property
    def is_fallback(self) -> bool:
        return self.source != RateSource.LIVE

    def to_dict(self) -> dict[str, object]:
        return {
            "from": self.from_currency.value,
            "to": self.to_currency.value,
            "rate": float(self.rate),
            "source": self.source.value,
            "fetchedAt": self.fetched_at.isoformat(),
        }


class ConversionPass:
    """Currency conversions for one valuation pass.

    The first lookup of a currency pair fixes its rate for the lifetime of the
    pass, so every field converted in the pass uses the same rate.
    """

    def __init__(self, normalizer: "CurrencyNormalizer"):
        self._normalizer = normalizer
        self._rates: dict[Currency, ExchangeRate] = {}

    @property
    def reporting_currency(self) -> Currency:
        return self._normalizer.reporting_currency

    @property
    def rates_used(self) -> list[ExchangeRate]:
        """Rates resolved so far, excluding identity conversions."""
        return [r for r in self._rates.values() if r.from_currency != r.to_currency]

    def rate(self, from_currency: Currency) -> ExchangeRate:
        if from_currency not in self._rates:
            self._rates[from_currency] = self._normalizer.resolve_rate(from_currency)
        return self._rates[from_currency]

    def convert(self, amount: Decimal | None, from_currency: Currency) -> Decimal | None:
        if amount is None:
            return None
        return amount * self.rate(from_currency).rate

    def convert_quote(self, quote: "Quote") -> "Quote":
        """Return a copy of ``quote`` with all monetary fields in the reporting currency."""
        if quote.currency == self.reporting_currency:
            return quote
        source = quote.currency
        return replace(
            quote,
            price=self.convert(quote.price, source),
            change=self.convert(quote.change, source),
            day_high=self.convert(quote.day_high, source),
            day_low=self.convert(quote.day_low, source),
            fifty_two_week_high=self.convert(quote.fifty_two_week_high, source),
            fifty_two_week_low=self.convert(quote.fifty_two_week_low, source),
            fifty_day_average=self.convert(quote.fifty_day_average, source),
            two_hundred_day_average=self.convert(quote.two_hundred_day_average, source),
            market_cap=self.convert(quote.market_cap, source),
            currency=self.reporting_currency,
            original_currency=quote.original_currency or source,
        )


class CurrencyNormalizer:
    """Converts native-currency amounts into the reporting currency.

    Rates come from the live manager when possible. When the live lookup
    fails, the last rate successfully fetched for the pair is used, then the
    fixed fallback table. Conversion never raises: a pair missing from every
    source converts at 1 and is reported as UNAVAILABLE.
    """

    def __init__(
        self,
        reporting_currency: Currency = Currency.SEK,
        live: ExchangeRateManager | None = None,
        fallback: ExchangeRateManager | None = None,
    ):
        self.reporting_currency = reporting_currency
        self.live = live
        self.fallback = fallback if fallback is not None else FixedExchangeRateManager()
        self._last_known: dict[tuple[Currency, Currency], Decimal] = {}
        self._lock = threading.Lock()

    def begin_pass(self) -> ConversionPass:
        return ConversionPass(self)

    def convert(self, amount: Decimal, from_currency: Currency) -> Decimal:
        return amount * self.begin_pass().rate(from_currency).rate

    def resolve_rate(self, from_currency: Currency) -> ExchangeRate:
        to_currency = self.reporting_currency
        if from_currency == to_currency:
            return ExchangeRate(from_currency, to_currency, Decimal("1"), RateSource.LIVE)

        pair = (from_currency, to_currency)
        if self.live is not None:
            try:
                rate = self.live.get_exchange_rate(from_currency, to_currency)
            except ValueError as e:
                logger.warning("Live rate %s->%s unavailable: %s", from_currency.value, to_currency.value, e)
            else:
                with self._lock:
                    self._last_known[pair] = rate
                return ExchangeRate(from_currency, to_currency, rate, RateSource.LIVE)

        with self._lock:
            last_known = self._last_known.get(pair)
        if last_known is not None:
            logger.warning(
                "Using last known rate %s for %s->%s", last_known, from_currency.value, to_currency.value
            )
            return ExchangeRate(from_currency, to_currency, last_known, RateSource.LAST_KNOWN)

        try:
            rate = self.fallback.get_exchange_rate(from_currency, to_currency)
        except ValueError:
            logger.error(
                "No exchange rate for %s->%s from any source, converting at 1",
                from_currency.value,
                to_currency.value,
            )
            return ExchangeRate(from_currency, to_currency, Decimal("1"), RateSource.UNAVAILABLE)

        if self.live is not None:
            logger.warning("Using fallback rate %s for %s->%s", rate, from_currency.value, to_currency.value)
        return ExchangeRate(from_currency, to_currency, rate, RateSource.FALLBACK)
