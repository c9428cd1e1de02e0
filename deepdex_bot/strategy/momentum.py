from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple

from deepdex_bot.core.config import MomentumParams
from deepdex_bot.core.context import BotContext
from deepdex_bot.core.logging import JsonLogger
from deepdex_bot.core.types import PRICE_DECIMALS, Action, ClosePerp, MarketPair, PerpOrder, PerpPositionState
from deepdex_bot.execution.price_source import PriceSource
from deepdex_bot.execution.quantizer import quantize_size, to_fixed_point
from deepdex_bot.strategy.base import Strategy


def moving_average(prices: Sequence[Decimal]) -> Decimal:
    return sum(prices, Decimal("0")) / len(prices)


@dataclass(frozen=True)
class MomentumSnapshot:
    price: Decimal
    history: Tuple[Decimal, ...]
    position: Optional[PerpPositionState]
    slippage_bps: int = 50


class MomentumStrategy(Strategy):
    """Perp trend follower on a simple moving average of polled prices.

    Price history is the only state kept between ticks; it is appended in
    ``observe`` so ``decide`` stays a function of its snapshot.
    """

    kind = "momentum"

    def __init__(self, params: MomentumParams, market: MarketPair, logger: Optional[JsonLogger] = None) -> None:
        super().__init__(logger)
        self.params = params
        self.market = market
        self.history: Deque[Decimal] = deque(maxlen=params.period)

    def interval_s(self) -> float:
        return self.params.interval_ms / 1000.0

    def describe(self) -> Dict[str, Any]:
        return {
            "strategy": self.kind,
            "pair": self.market.identifier,
            "period": self.params.period,
            "leverage": self.params.leverage,
            "amount": self.params.amount,
        }

    def observe(self, ctx: BotContext) -> MomentumSnapshot:
        quote = PriceSource.for_market(ctx.gateway, self.market).resolve(self.market.base.symbol)
        self.history.append(quote.price)
        position = None
        if len(self.history) == self.params.period:
            market_id = self.market.perp_market_id
            positions = ctx.gateway.get_perp_positions(ctx.subaccount.address, [market_id])
            position = next((p for p in positions if p.market_id == market_id and p.is_open), None)
        return MomentumSnapshot(
            price=quote.price,
            history=tuple(self.history),
            position=position,
            slippage_bps=ctx.trading.slippage_bps,
        )

    def decide(self, snapshot: MomentumSnapshot) -> List[Action]:
        if len(snapshot.history) < self.params.period:
            self.logger.info("momentum_collecting", samples=len(snapshot.history), period=self.params.period)
            return []

        price = snapshot.price
        ma = moving_average(snapshot.history)
        position = snapshot.position
        self.logger.info("momentum_signal", price=price, ma=ma, period=self.params.period)
        if price == ma:
            return []

        go_long = price > ma
        price_fixed = to_fixed_point(price, PRICE_DECIMALS)
        actions: List[Action] = []
        if position is not None and position.is_long != go_long:
            actions.append(ClosePerp(market=self.market, price=price_fixed, slippage_bps=snapshot.slippage_bps))
        if position is None or position.is_long != go_long:
            size = quantize_size(self.market, self.params.amount / price)
            if size <= 0:
                self.logger.warn("momentum_size_zero", amount=self.params.amount, price=price)
                return actions
            actions.append(
                PerpOrder(
                    market=self.market,
                    is_long=go_long,
                    size=to_fixed_point(size, self.market.base.decimals),
                    price=price_fixed,
                    leverage=self.params.leverage,
                )
            )
        return actions
