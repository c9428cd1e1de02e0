from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from deepdex_bot.core.errors import PriceUnavailableError
from deepdex_bot.core.types import PRICE_DECIMALS, MarketPair
from deepdex_bot.exchanges.base_gateway import ExchangeGateway
from deepdex_bot.execution.quantizer import Numeric, from_fixed_point, to_decimal

DEFAULT_SLIPPAGE_BUFFER = Decimal("0.05")


@dataclass(frozen=True)
class PriceQuote:
    symbol: str
    price: Decimal
    source: str


class OraclePriceFeed:
    """Live oracle prices from the venue, fixed-point with ``PRICE_DECIMALS``.

    Gateway errors propagate; only a missing or zero entry counts as a miss.
    """

    name = "oracle"

    def __init__(self, gateway: ExchangeGateway) -> None:
        self.gateway = gateway

    def fetch(self, symbol: str) -> Optional[Decimal]:
        for entry in self.gateway.resolve_oracle_prices():
            if entry.symbol == symbol and entry.price > 0:
                return from_fixed_point(entry.price, PRICE_DECIMALS)
        return None


class MarketReferencePrice:
    """Last known price recorded on the market listing."""

    name = "market_reference"

    def __init__(self, market: MarketPair) -> None:
        self.market = market

    def fetch(self, symbol: str) -> Optional[Decimal]:
        if symbol != self.market.base.symbol:
            return None
        price = self.market.reference_price
        return price if price > 0 else None


class PriceSource:
    """Ordered fallback chain; the first feed with a positive price wins."""

    def __init__(self, feeds: Sequence) -> None:
        self._feeds: Tuple = tuple(feeds)

    @classmethod
    def for_market(cls, gateway: ExchangeGateway, market: MarketPair) -> "PriceSource":
        return cls([OraclePriceFeed(gateway), MarketReferencePrice(market)])

    @property
    def feeds(self) -> Tuple:
        return self._feeds

    @property
    def precedence(self) -> List[str]:
        return [f.name for f in self._feeds]

    def lookup(self, symbol: str) -> Optional[PriceQuote]:
        for feed in self._feeds:
            price = feed.fetch(symbol)
            if price is not None and price > 0:
                return PriceQuote(symbol=symbol, price=price, source=feed.name)
        return None

    def resolve(self, symbol: str) -> PriceQuote:
        quote = self.lookup(symbol)
        if quote is None:
            raise PriceUnavailableError(symbol, self.precedence)
        return quote


def estimate_notional(amount: Numeric, price: Numeric, is_buy: bool,
                      slippage_buffer: Numeric = DEFAULT_SLIPPAGE_BUFFER) -> Decimal:
    buffer = to_decimal(slippage_buffer)
    factor = Decimal(1) + buffer if is_buy else Decimal(1) - buffer
    return to_decimal(amount) * to_decimal(price) * factor
