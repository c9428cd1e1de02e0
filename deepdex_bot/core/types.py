from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union

PRICE_DECIMALS = 6
FUNDING_RATE_DECIMALS = 18

ORDER_TYPE_MARKET = 0
ORDER_TYPE_LIMIT = 1


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def is_buy(self) -> bool:
        return self is Side.BUY


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    decimals: int
    address: Optional[str] = None


@dataclass(frozen=True)
class MarketPair:
    identifier: str
    base: TokenInfo
    quote: TokenInfo
    tick_size: Decimal
    step_size: Decimal
    pair_id: str
    is_perp: bool = False
    label: Optional[str] = None
    market_id: Optional[int] = None
    reference_price: Decimal = Decimal("0")

    @property
    def perp_market_id(self) -> int:
        if self.market_id is not None:
            return self.market_id
        return int(self.pair_id)


@dataclass(frozen=True)
class Subaccount:
    address: str
    name: str
    is_margin_enabled: bool = False


@dataclass(frozen=True)
class OraclePrice:
    symbol: str
    price: int  # fixed-point, PRICE_DECIMALS


@dataclass(frozen=True)
class OpenOrder:
    order_id: int
    side: Side
    price: Decimal
    size: Decimal
    status: str = "open"

    @property
    def is_buy(self) -> bool:
        return self.side.is_buy


@dataclass(frozen=True)
class PerpMarketState:
    market_id: int
    funding_rate: int  # fixed-point, FUNDING_RATE_DECIMALS
    oracle_price: int  # fixed-point, PRICE_DECIMALS
    mark_price: Optional[int] = None


@dataclass(frozen=True)
class PerpPositionState:
    market_id: int
    size: int  # base asset amount, fixed-point in base token decimals
    is_long: bool
    entry_price: int = 0
    leverage: int = 1
    last_funding_rate: int = 0

    @property
    def is_open(self) -> bool:
        return self.size > 0


@dataclass(frozen=True)
class InventoryState:
    base_balance: Decimal
    quote_balance: Decimal
    ratio: Decimal


# Actions produced by strategies and carried out by the executor.


@dataclass(frozen=True)
class DesiredOrder:
    side: Side
    price: Decimal
    size: Decimal
    post_only: bool = True
    reduce_only: bool = False


@dataclass(frozen=True)
class OrderBatch:
    market: MarketPair
    cancel: List[OpenOrder] = field(default_factory=list)
    place: List[DesiredOrder] = field(default_factory=list)
    settle_delay_s: float = 0.0
    spacing_s: float = 0.0


@dataclass(frozen=True)
class MarketOrder:
    market: MarketPair
    is_buy: bool
    quote_amount: int
    base_amount: int
    auto_cancel: bool = True
    reduce_only: bool = False


@dataclass(frozen=True)
class PerpOrder:
    market: MarketPair
    is_long: bool
    size: int
    price: int
    order_type: int = ORDER_TYPE_MARKET
    leverage: int = 1
    take_profit: int = 0
    stop_loss: int = 0
    reduce_only: bool = False
    post_only: bool = False


@dataclass(frozen=True)
class ClosePerp:
    market: MarketPair
    price: int
    slippage_bps: int


Action = Union[OrderBatch, MarketOrder, PerpOrder, ClosePerp]
