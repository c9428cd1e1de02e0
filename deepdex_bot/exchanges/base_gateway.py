from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Sequence

from deepdex_bot.core.types import (
    MarketPair,
    OpenOrder,
    OraclePrice,
    PerpMarketState,
    PerpOrder,
    PerpPositionState,
    Subaccount,
)


class ExchangeGateway(ABC):
    """Venue contract consumed by the strategy engine.

    Spot amounts, balances and oracle prices are fixed-point integers: token
    amounts in the token's own decimals, oracle prices in ``PRICE_DECIMALS``
    and funding rates in ``FUNDING_RATE_DECIMALS``. Submission methods return
    whatever handle the venue hands back. Venue failures surface as
    ``TransientGatewayError``.
    """

    @abstractmethod
    def get_signing_account(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def get_subaccounts(self, owner: str) -> List[Subaccount]:
        raise NotImplementedError

    @abstractmethod
    def resolve_oracle_prices(self) -> List[OraclePrice]:
        raise NotImplementedError

    @abstractmethod
    def get_subaccount_balance(self, subaccount: str, token_symbol: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def get_open_spot_orders(self, subaccount: str, market: MarketPair) -> List[OpenOrder]:
        raise NotImplementedError

    @abstractmethod
    def place_limit_order(
        self,
        subaccount: str,
        market: MarketPair,
        is_buy: bool,
        quote_amount: int,
        base_amount: int,
        post_only: bool = True,
        reduce_only: bool = False,
    ) -> Any:
        raise NotImplementedError

    @abstractmethod
    def place_market_order(
        self,
        subaccount: str,
        market: MarketPair,
        is_buy: bool,
        quote_amount: int,
        base_amount: int,
        auto_cancel: bool = True,
        reduce_only: bool = False,
    ) -> Any:
        raise NotImplementedError

    @abstractmethod
    def cancel_order(self, subaccount: str, market: MarketPair, order_id: int, is_buy: bool) -> Any:
        raise NotImplementedError

    @abstractmethod
    def place_perp_order(self, subaccount: str, order: PerpOrder) -> Any:
        raise NotImplementedError

    @abstractmethod
    def close_perp_position(self, subaccount: str, market_id: int, price: int, slippage_bps: int) -> Any:
        raise NotImplementedError

    @abstractmethod
    def get_perp_positions(self, subaccount: str, market_ids: Sequence[int]) -> List[PerpPositionState]:
        raise NotImplementedError

    @abstractmethod
    def get_perp_market(self, market_id: int) -> PerpMarketState:
        raise NotImplementedError
