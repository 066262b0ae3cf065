from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping
import concurrent.futures
import logging
import math
import time

import yfinance as yf  # type: ignore[import-untyped]

from .currency import Currency

logger = logging.getLogger(__name__)

# Upper bound on how late a timed-out ticker is noticed, in seconds
POLL_INTERVAL = 0.05

# Stockholm listings that the ledger records without an exchange suffix
SWEDISH_TICKERS = ("VOLV-B", "ERIC-B", "HM-B", "SEB-A", "SWED-A", "ABB", "ASSA-B", "ATCO-A", "ATCO-B")


@dataclass(frozen=True)
class Quote:
    """Latest market data for one ticker.

    A quote whose lookup failed has ``error=True`` and no numeric data.
    Quotes are never persisted.
    """

    ticker: str
    price: Decimal | None = None
    change: Decimal | None = None
    change_percent: Decimal | None = None
    day_high: Decimal | None = None
    day_low: Decimal | None = None
    volume: int | None = None
    currency: Currency = Currency.USD
    fetched_at: datetime = field(default_factory=datetime.now)
    error: bool = False
    error_message: str | None = None
    name: str | None = None
    exchange: str | None = None
    market_cap: Decimal | None = None
    fifty_two_week_high: Decimal | None = None
    fifty_two_week_low: Decimal | None = None
    fifty_day_average: Decimal | None = None
    two_hundred_day_average: Decimal | None = None
    dividend_yield: Decimal | None = None
    original_currency: Currency | None = None

    @property
    def current(self) -> Decimal | None:
        return self.price

    @property
    def is_usable(self) -> bool:
        return not self.error and self.price is not None

    @classmethod
    def failed(cls, ticker: str, message: str, currency: Currency = Currency.USD) -> "Quote":
        return cls(ticker=ticker, currency=currency, error=True, error_message=message)

    def to_dict(self) -> dict[str, Any]:
        def num(value: Decimal | None) -> float | None:
            return float(value) if value is not None else None

        return {
            "ticker": self.ticker,
            "price": num(self.price),
            "current": num(self.price),
            "change": num(self.change),
            "changePercent": num(self.change_percent),
            "dayHigh": num(self.day_high),
            "dayLow": num(self.day_low),
            "volume": self.volume,
            "currency": self.currency.value,
            "originalCurrency": self.original_currency.value if self.original_currency else None,
            "fetchedAt": self.fetched_at.isoformat(),
            "error": self.error,
            "errorMessage": self.error_message,
            "name": self.name,
            "exchange": self.exchange,
            "marketCap": num(self.market_cap),
            "fiftyTwoWeekHigh": num(self.fifty_two_week_high),
            "fiftyTwoWeekLow": num(self.fifty_two_week_low),
            "fiftyDayAverage": num(self.fifty_day_average),
            "twoHundredDayAverage": num(self.two_hundred_day_average),
            "dividendYield": num(self.dividend_yield),
        }


def parse_tickers(tickers: str | Iterable[str]) -> list[str]:
    """Normalize a comma-delimited string or iterable of tickers.

    Blank entries are dropped and duplicates removed, keeping first-seen order.
    """
    raw = tickers.split(",") if isinstance(tickers, str) else list(tickers)
    result: list[str] = []
    for ticker in raw:
        cleaned = ticker.strip().upper()
        if cleaned and cleaned not in result:
            result.append(cleaned)
    return result


def to_provider_symbol(ticker: str) -> str:
    """Map a ledger ticker to the Yahoo Finance symbol.

    Known Stockholm listings get the ``.ST`` suffix with the share-class dash
    removed (``VOLV-B`` -> ``VOLVB.ST``). Anything else is passed through.
    """
    upper = ticker.upper()
    if upper in SWEDISH_TICKERS:
        return upper.replace("-", "") + ".ST"
    return ticker


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return Decimal(str(number))


class QuoteProvider(ABC):
    """Abstract base class for market data providers."""

    @abstractmethod
    def get_quote(self, ticker: str) -> Quote:
        """Fetch the latest quote for ``ticker``.

        Raises:
            ValueError: If no price is available. Other exceptions from the
                underlying client may also propagate.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")


class FixedQuoteProvider(QuoteProvider):
    """Provider returning preset quotes, for tests and offline use."""

    def __init__(self, quotes: Mapping[str, Quote] | None = None, default_price: Decimal | None = None,
                 currency: Currency = Currency.USD):
        """Initialize with preset quotes.

        Args:
            quotes: Quotes keyed by ticker.
            default_price: Price for tickers not in ``quotes``. When None,
                unknown tickers raise ValueError.
            currency: Currency for default-price quotes.
        """
        self.quotes = dict(quotes or {})
        self.default_price = default_price
        self.currency = currency

    def get_quote(self, ticker: str) -> Quote:
        if ticker in self.quotes:
            return self.quotes[ticker]
        if self.default_price is None:
            raise ValueError(f"Unknown symbol: {ticker}")
        return Quote(ticker=ticker, price=self.default_price, change=Decimal("0"),
                     change_percent=Decimal("0"), currency=self.currency)


class YFinanceQuoteProvider(QuoteProvider):
    """Quotes from Yahoo Finance through yfinance.

    Price, change and day range come from ``fast_info``. With
    ``include_fundamentals`` the slower ``info`` lookup adds the company name
    and dividend yield; a failure there does not fail the quote.
    """

    def __init__(self, include_fundamentals: bool = False):
        self.include_fundamentals = include_fundamentals

    def get_quote(self, ticker: str) -> Quote:
        symbol = to_provider_symbol(ticker)
        yf_ticker = yf.Ticker(symbol)
        fast_info = yf_ticker.fast_info

        price = _to_decimal(fast_info.get("lastPrice"))
        if price is None:
            raise ValueError(f"No price data available for {ticker}")

        previous_close = _to_decimal(fast_info.get("previousClose"))
        change: Decimal | None = None
        change_percent: Decimal | None = None
        if previous_close:
            change = price - previous_close
            change_percent = change / previous_close * 100

        currency_code = str(fast_info.get("currency") or "USD").upper()
        try:
            currency = Currency(currency_code)
        except ValueError:
            raise ValueError(f"{ticker} is quoted in unsupported currency {currency_code}") from None

        volume = fast_info.get("lastVolume")
        name: str | None = None
        dividend_yield: Decimal | None = None
        if self.include_fundamentals:
            try:
                info = yf_ticker.info or {}
                name = info.get("longName") or info.get("shortName")
                dividend_yield = _to_decimal(info.get("dividendYield"))
            except Exception as e:
                logger.info("Fundamentals unavailable for %s: %s", ticker, e)

        return Quote(
            ticker=ticker,
            price=price,
            change=change,
            change_percent=change_percent,
            day_high=_to_decimal(fast_info.get("dayHigh")),
            day_low=_to_decimal(fast_info.get("dayLow")),
            volume=int(volume) if _to_decimal(volume) is not None else None,
            currency=currency,
            name=name,
            exchange=fast_info.get("exchange"),
            market_cap=_to_decimal(fast_info.get("marketCap")),
            fifty_two_week_high=_to_decimal(fast_info.get("yearHigh")),
            fifty_two_week_low=_to_decimal(fast_info.get("yearLow")),
            fifty_day_average=_to_decimal(fast_info.get("fiftyDayAverage")),
            two_hundred_day_average=_to_decimal(fast_info.get("twoHundredDayAverage")),
            dividend_yield=dividend_yield,
        )


class QuoteFetcher:
    """Fetches quotes for many tickers concurrently.

    Each ticker is fetched in its own worker. A ticker that raises or does not
    finish within ``timeout`` seconds gets an error-marked quote; the others
    are returned normally. Nothing is cached between calls.
    """

    def __init__(self, provider: QuoteProvider, timeout: float = 5.0, max_workers: int = 8):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.provider = provider
        self.timeout = timeout
        self.max_workers = max_workers

    def _fetch_one(self, ticker: str, started: dict[str, float]) -> Quote:
        started[ticker] = time.monotonic()
        quote = self.provider.get_quote(ticker)
        if quote.ticker != ticker:
            quote = replace(quote, ticker=ticker)
        return quote

    def fetch(self, tickers: str | Iterable[str]) -> dict[str, Quote]:
        """Fetch quotes for ``tickers`` (comma-delimited string or iterable).

        Each ticker gets ``timeout`` seconds from the moment a worker picks it
        up. A ticker still queued once every batch of ``max_workers`` could
        have used its full timeout is also marked as timed out.

        Returns:
            A mapping with one entry per requested ticker, in request order.
        """
        symbols = parse_tickers(tickers)
        if not symbols:
            return {}

        results: dict[str, Quote] = {}
        started: dict[str, float] = {}
        workers = min(self.max_workers, len(symbols))
        queue_deadline = time.monotonic() + self.timeout * math.ceil(len(symbols) / workers)
        poll_interval = min(POLL_INTERVAL, self.timeout)
        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix="quote",
        )
        try:
            futures = {pool.submit(self._fetch_one, ticker, started): ticker for ticker in symbols}
            pending = set(futures)
            while pending:
                done, pending = concurrent.futures.wait(
                    pending, timeout=poll_interval, return_when=concurrent.futures.FIRST_COMPLETED
                )
                for future in done:
                    ticker = futures[future]
                    try:
                        results[ticker] = future.result()
                    except Exception as e:
                        logger.warning("Quote fetch failed for %s: %s", ticker, e)
                        results[ticker] = Quote.failed(ticker, str(e) or type(e).__name__)

                now = time.monotonic()
                for future in list(pending):
                    ticker = futures[future]
                    start = started.get(ticker)
                    deadline = start + self.timeout if start is not None else queue_deadline
                    if now < deadline:
                        continue
                    pending.discard(future)
                    future.cancel()
                    logger.warning("Quote fetch for %s timed out after %.1fs", ticker, self.timeout)
                    results[ticker] = Quote.failed(ticker, f"Timed out after {self.timeout:g}s")
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return {ticker: results[ticker] for ticker in symbols}
