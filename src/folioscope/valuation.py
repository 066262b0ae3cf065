"""Portfolio valuation from holdings and live quotes.

A holding whose quote is missing or failed is valued at its average cost, so
a transient quote failure never makes the portfolio look smaller than it is.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping

from .currency import ConversionPass, Currency, CurrencyNormalizer, ExchangeRate
from .holdings import Holding
from .quotes import Quote

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    """``part / whole * 100``, or 0 when ``whole`` is 0."""
    if whole == 0:
        return ZERO
    return part / whole * HUNDRED


@dataclass
class HoldingValuation:
    """Valuation of a single holding in the reporting currency."""

    ticker: str
    quantity: Decimal
    average_price: Decimal
    current_price: Decimal
    market_value: Decimal
    cost_basis: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal
    daily_change: Decimal
    change_percent: Decimal
    currency: Currency
    allocation_percent: Decimal = ZERO
    price_is_stale: bool = False
    name: str | None = None
    dividend_yield: Decimal | None = None
    native_currency: Currency | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticker": self.ticker,
            "name": self.name,
            "quantity": float(self.quantity),
            "averagePrice": float(self.average_price),
            "currentPrice": float(self.current_price),
            "marketValue": float(self.market_value),
            "costBasis": float(self.cost_basis),
            "profitLoss": float(self.profit_loss),
            "profitLossPercent": float(self.profit_loss_percent),
            "dailyChange": float(self.daily_change),
            "changePercent": float(self.change_percent),
            "allocationPercent": float(self.allocation_percent),
            "currency": self.currency.value,
            "nativeCurrency": self.native_currency.value if self.native_currency else None,
            "priceIsStale": self.price_is_stale,
        }


@dataclass
class PortfolioValuation:
    """Aggregate valuation handed to the presentation layer."""

    as_of: datetime
    currency: Currency
    total_value: Decimal
    total_cost: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal
    daily_change: Decimal
    daily_change_percent: Decimal
    dividend_yield: Decimal
    holdings: list[HoldingValuation] = field(default_factory=list)
    exchange_rates: list[ExchangeRate] = field(default_factory=list)

    @property
    def stale_tickers(self) -> list[str]:
        return [h.ticker for h in self.holdings if h.price_is_stale]

    @property
    def uses_fallback_rates(self) -> bool:
        return any(rate.is_fallback for rate in self.exchange_rates)

    def to_dict(self) -> dict[str, Any]:
        return {
            "asOf": self.as_of.isoformat(),
            "currency": self.currency.value,
            "totalValue": float(self.total_value),
            "totalCost": float(self.total_cost),
            "profitLoss": float(self.profit_loss),
            "profitLossPercent": float(self.profit_loss_percent),
            "dailyChange": float(self.daily_change),
            "dailyChangePercent": float(self.daily_change_percent),
            "dividendYield": float(self.dividend_yield),
            "holdings": [h.to_dict() for h in self.holdings],
            "exchangeRates": [r.to_dict() for r in self.exchange_rates],
            "usesFallbackRates": self.uses_fallback_rates,
            "staleTickers": self.stale_tickers,
        }


def _value_holding(holding: Holding, quote: Quote | None, conversion: ConversionPass | None) -> HoldingValuation:
    if quote is not None and not quote.is_usable:
        quote = None

    if conversion is not None:
        average_price = holding.average_price * conversion.rate(holding.currency).rate
        currency = conversion.reporting_currency
        if quote is not None:
            quote = conversion.convert_quote(quote)
    else:
        average_price = holding.average_price
        currency = holding.currency
        if quote is not None and quote.currency != holding.currency:
            raise ValueError(
                f"Quote for {holding.ticker} is in {quote.currency.value} but the holding is in "
                f"{holding.currency.value}; a CurrencyNormalizer is required"
            )

    current_price = average_price
    change = ZERO
    change_percent = ZERO
    dividend_yield: Decimal | None = None
    if quote is not None and quote.price is not None:
        current_price = quote.price
        change = quote.change if quote.change is not None else ZERO
        change_percent = quote.change_percent if quote.change_percent is not None else ZERO
        dividend_yield = quote.dividend_yield

    market_value = holding.quantity * current_price
    cost_basis = holding.quantity * average_price
    profit_loss = market_value - cost_basis

    return HoldingValuation(
        ticker=holding.ticker,
        quantity=holding.quantity,
        average_price=average_price,
        current_price=current_price,
        market_value=market_value,
        cost_basis=cost_basis,
        profit_loss=profit_loss,
        profit_loss_percent=_percent(profit_loss, cost_basis),
        daily_change=holding.quantity * change,
        change_percent=change_percent,
        currency=currency,
        price_is_stale=quote is None,
        name=(quote.name if quote is not None else None) or holding.company_name,
        dividend_yield=dividend_yield,
        native_currency=holding.currency,
    )


def value_portfolio(
    holdings: Iterable[Holding],
    quotes: Mapping[str, Quote],
    normalizer: CurrencyNormalizer | None = None,
    as_of: datetime | None = None,
) -> PortfolioValuation:
    """Compute portfolio value, cost, P/L, daily change and allocation.

    Args:
        holdings: Current holdings.
        quotes: Quotes keyed by ticker. Missing and error-marked quotes fall
            back to the holding's average price.
        normalizer: Converts all amounts into its reporting currency with one
            rate per currency for the whole computation. Without it every
            holding must share one currency.
        as_of: Valuation timestamp. Defaults to now.

    Returns:
        A PortfolioValuation. Percentages are 0 where their denominator is 0.

    Raises:
        ValueError: Without a normalizer, when holdings or quotes are in
            different currencies.
    """
    holdings = list(holdings)
    conversion = normalizer.begin_pass() if normalizer is not None else None

    if conversion is not None:
        currency = conversion.reporting_currency
    else:
        currencies = {h.currency for h in holdings}
        if len(currencies) > 1:
            raise ValueError(
                f"Holdings span several currencies ({', '.join(sorted(c.value for c in currencies))}); "
                "a CurrencyNormalizer is required"
            )
        currency = currencies.pop() if currencies else Currency.SEK

    valued = [_value_holding(h, quotes.get(h.ticker), conversion) for h in holdings]

    total_value = sum((h.market_value for h in valued), ZERO)
    total_cost = sum((h.cost_basis for h in valued), ZERO)
    daily_change = sum((h.daily_change for h in valued), ZERO)
    profit_loss = total_value - total_cost

    for h in valued:
        h.allocation_percent = _percent(h.market_value, total_value)

    dividend_income = sum(
        (h.market_value * h.dividend_yield for h in valued if h.dividend_yield is not None), ZERO
    )

    # Change relative to yesterday's value, as shown on the dashboard
    daily_change_percent = _percent(daily_change, total_value - daily_change) if total_value > 0 else ZERO

    return PortfolioValuation(
        as_of=as_of or datetime.now(),
        currency=currency,
        total_value=total_value,
        total_cost=total_cost,
        profit_loss=profit_loss,
        profit_loss_percent=_percent(profit_loss, total_cost),
        daily_change=daily_change,
        daily_change_percent=daily_change_percent,
        dividend_yield=_percent(dividend_income, total_value),
        holdings=valued,
        exchange_rates=conversion.rates_used if conversion is not None else [],
    )


def allocation_by(valuation: PortfolioValuation, key: Callable[[HoldingValuation], str]) -> dict[str, Decimal]:
    """Sum allocation percentages of holdings grouped by ``key``."""
    groups: dict[str, Decimal] = defaultdict(Decimal)
    for h in valuation.holdings:
        groups[key(h)] += h.allocation_percent
    return dict(sorted(groups.items(), key=lambda item: item[1], reverse=True))
