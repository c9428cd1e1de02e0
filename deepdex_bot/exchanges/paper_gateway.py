from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from deepdex_bot.core.errors import TransientGatewayError
from deepdex_bot.core.types import (
    PRICE_DECIMALS,
    MarketPair,
    OpenOrder,
    OraclePrice,
    PerpMarketState,
    PerpOrder,
    PerpPositionState,
    Side,
    Subaccount,
)
from deepdex_bot.exchanges.base_gateway import ExchangeGateway
from deepdex_bot.execution.quantizer import floor_size, from_fixed_point, to_fixed_point


@dataclass
class Submission:
    operation: str
    subaccount: str
    payload: Dict[str, Any]


@dataclass
class _RestingOrder:
    order: OpenOrder
    pair_id: str


class PaperGateway(ExchangeGateway):
    """In-memory venue for dry runs and tests.

    Limit orders rest until cancelled; market orders and perp orders fill
    immediately against the seeded balances and positions. Every submission
    is recorded in ``submissions``. ``fail_next`` makes the next calls of an
    operation raise ``TransientGatewayError``.
    """

    def __init__(
        self,
        owner: str = "0x0000000000000000000000000000000000000001",
        subaccounts: Optional[List[Subaccount]] = None,
        oracle_prices: Optional[Dict[str, int]] = None,
        balances: Optional[Dict[Tuple[str, str], int]] = None,
        perp_markets: Optional[Dict[int, PerpMarketState]] = None,
    ) -> None:
        self.owner = owner
        self.subaccounts: List[Subaccount] = list(subaccounts or [Subaccount(address=owner, name="default")])
        self.oracle_prices: Dict[str, int] = dict(oracle_prices or {})
        self.balances: Dict[Tuple[str, str], int] = dict(balances or {})
        self.perp_markets: Dict[int, PerpMarketState] = dict(perp_markets or {})
        self.positions: Dict[Tuple[str, int], PerpPositionState] = {}
        self.submissions: List[Submission] = []
        self._orders: Dict[str, List[_RestingOrder]] = {}
        self._next_oid = 1
        self._failures: Dict[str, List[Optional[BaseException]]] = {}

    # Seeding and inspection

    def set_balance(self, subaccount: str, symbol: str, amount: int) -> None:
        self.balances[(subaccount, symbol)] = int(amount)

    def set_position(self, subaccount: str, position: PerpPositionState) -> None:
        self.positions[(subaccount, position.market_id)] = position

    def add_open_order(self, subaccount: str, market: MarketPair, side: Side, price, size) -> OpenOrder:
        order = OpenOrder(order_id=self._take_oid(), side=side, price=price, size=size)
        self._orders.setdefault(subaccount, []).append(_RestingOrder(order=order, pair_id=market.pair_id))
        return order

    def fail_next(self, operation: str, times: int = 1, error: Optional[BaseException] = None) -> None:
        self._failures.setdefault(operation, []).extend([error] * times)

    def submitted(self, operation: str) -> List[Submission]:
        return [s for s in self.submissions if s.operation == operation]

    def _take_oid(self) -> int:
        oid = self._next_oid
        self._next_oid += 1
        return oid

    def _maybe_fail(self, operation: str) -> None:
        pending = self._failures.get(operation)
        if pending:
            error = pending.pop(0)
            if error is not None:
                raise error
            raise TransientGatewayError(operation, "injected failure")

    def _record(self, operation: str, subaccount: str, **payload: Any) -> Dict[str, Any]:
        self.submissions.append(Submission(operation=operation, subaccount=subaccount, payload=payload))
        return {"status": "ok", "operation": operation, "seq": len(self.submissions)}

    def _adjust(self, subaccount: str, symbol: str, delta: int) -> None:
        key = (subaccount, symbol)
        self.balances[key] = max(0, self.balances.get(key, 0) + delta)

    def _fill_base(self, market: MarketPair, quote_amount: int) -> int:
        # quote-denominated orders fill at the seeded oracle price
        price = self.oracle_prices.get(market.base.symbol, 0)
        if price <= 0:
            raise TransientGatewayError("place_market_order", f"no price for {market.base.symbol}")
        notional = from_fixed_point(quote_amount, market.quote.decimals)
        size = floor_size(market, notional / from_fixed_point(price, PRICE_DECIMALS))
        return to_fixed_point(size, market.base.decimals)

    # ExchangeGateway

    def get_signing_account(self) -> str:
        self._maybe_fail("get_signing_account")
        return self.owner

    def get_subaccounts(self, owner: str) -> List[Subaccount]:
        self._maybe_fail("get_subaccounts")
        if owner != self.owner:
            return []
        return list(self.subaccounts)

    def resolve_oracle_prices(self) -> List[OraclePrice]:
        self._maybe_fail("resolve_oracle_prices")
        return [OraclePrice(symbol=s, price=p) for s, p in self.oracle_prices.items()]

    def get_subaccount_balance(self, subaccount: str, token_symbol: str) -> int:
        self._maybe_fail("get_subaccount_balance")
        return self.balances.get((subaccount, token_symbol), 0)

    def get_open_spot_orders(self, subaccount: str, market: MarketPair) -> List[OpenOrder]:
        self._maybe_fail("get_open_spot_orders")
        return [r.order for r in self._orders.get(subaccount, []) if r.pair_id == market.pair_id]

    def place_limit_order(self, subaccount, market, is_buy, quote_amount, base_amount, post_only=True, reduce_only=False):
        self._maybe_fail("place_limit_order")
        size = from_fixed_point(base_amount, market.base.decimals)
        price = from_fixed_point(quote_amount, market.quote.decimals) / size if size else size
        self.add_open_order(subaccount, market, Side.BUY if is_buy else Side.SELL, price, size)
        return self._record(
            "place_limit_order",
            subaccount,
            pair_id=market.pair_id,
            is_buy=is_buy,
            quote_amount=quote_amount,
            base_amount=base_amount,
            post_only=post_only,
            reduce_only=reduce_only,
        )

    def place_market_order(self, subaccount, market, is_buy, quote_amount, base_amount, auto_cancel=True, reduce_only=False):
        self._maybe_fail("place_market_order")
        if base_amount == 0 and quote_amount > 0:
            base_amount = self._fill_base(market, quote_amount)
        if is_buy:
            self._adjust(subaccount, market.base.symbol, base_amount)
            self._adjust(subaccount, market.quote.symbol, -quote_amount)
        else:
            self._adjust(subaccount, market.base.symbol, -base_amount)
            self._adjust(subaccount, market.quote.symbol, quote_amount)
        return self._record(
            "place_market_order",
            subaccount,
            pair_id=market.pair_id,
            is_buy=is_buy,
            quote_amount=quote_amount,
            base_amount=base_amount,
            auto_cancel=auto_cancel,
            reduce_only=reduce_only,
        )

    def cancel_order(self, subaccount, market, order_id, is_buy):
        self._maybe_fail("cancel_order")
        resting = self._orders.get(subaccount, [])
        self._orders[subaccount] = [r for r in resting if r.order.order_id != order_id]
        return self._record("cancel_order", subaccount, pair_id=market.pair_id, order_id=order_id, is_buy=is_buy)

    def place_perp_order(self, subaccount: str, order: PerpOrder):
        self._maybe_fail("place_perp_order")
        market_id = order.market.perp_market_id
        current = self.positions.get((subaccount, market_id))
        if order.reduce_only or (current is not None and current.is_open and current.is_long != order.is_long):
            remaining = (current.size if current else 0) - order.size
            if remaining > 0 and current is not None:
                self.positions[(subaccount, market_id)] = PerpPositionState(
                    market_id=market_id, size=remaining, is_long=current.is_long,
                    entry_price=current.entry_price, leverage=current.leverage,
                )
            else:
                self.positions.pop((subaccount, market_id), None)
        else:
            size = order.size + (current.size if current is not None else 0)
            self.positions[(subaccount, market_id)] = PerpPositionState(
                market_id=market_id, size=size, is_long=order.is_long,
                entry_price=order.price, leverage=order.leverage,
            )
        return self._record(
            "place_perp_order",
            subaccount,
            market_id=market_id,
            is_long=order.is_long,
            size=order.size,
            price=order.price,
            order_type=order.order_type,
            leverage=order.leverage,
            reduce_only=order.reduce_only,
            post_only=order.post_only,
        )

    def close_perp_position(self, subaccount: str, market_id: int, price: int, slippage_bps: int):
        self._maybe_fail("close_perp_position")
        self.positions.pop((subaccount, market_id), None)
        return self._record("close_perp_position", subaccount, market_id=market_id, price=price, slippage_bps=slippage_bps)

    def get_perp_positions(self, subaccount: str, market_ids: Sequence[int]) -> List[PerpPositionState]:
        self._maybe_fail("get_perp_positions")
        out = []
        for market_id in market_ids:
            pos = self.positions.get((subaccount, market_id))
            if pos is not None:
                market = self.perp_markets.get(market_id)
                if market is not None:
                    pos = PerpPositionState(
                        market_id=pos.market_id, size=pos.size, is_long=pos.is_long,
                        entry_price=pos.entry_price, leverage=pos.leverage,
                        last_funding_rate=market.funding_rate,
                    )
                out.append(pos)
        return out

    def get_perp_market(self, market_id: int) -> PerpMarketState:
        self._maybe_fail("get_perp_market")
        market = self.perp_markets.get(market_id)
        if market is None:
            raise TransientGatewayError("get_perp_market", f"unknown market {market_id}")
        return market
