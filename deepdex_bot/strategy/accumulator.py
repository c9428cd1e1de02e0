from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from deepdex_bot.core.config import AccumulatorParams
from deepdex_bot.core.context import BotContext
from deepdex_bot.core.logging import JsonLogger
from deepdex_bot.core.types import Action, MarketOrder, MarketPair
from deepdex_bot.execution.price_source import PriceQuote, PriceSource, estimate_notional
from deepdex_bot.execution.quantizer import quantize_size, to_fixed_point
from deepdex_bot.strategy.base import Strategy


@dataclass(frozen=True)
class AccumulatorSnapshot:
    price: Optional[PriceQuote] = None


class ScheduledAccumulator(Strategy):
    """Buys a fixed base or quote amount at market on every interval."""

    kind = "simple"

    def __init__(self, params: AccumulatorParams, market: MarketPair, logger: Optional[JsonLogger] = None) -> None:
        super().__init__(logger)
        self.params = params
        self.market = market

    def interval_s(self) -> float:
        return self.params.interval_ms / 1000.0

    def describe(self) -> Dict[str, Any]:
        return {
            "strategy": self.kind,
            "pair": self.market.identifier,
            "amount": self.params.amount,
            "amount_type": self.params.amount_type,
            "interval_ms": self.params.interval_ms,
        }

    def observe(self, ctx: BotContext) -> AccumulatorSnapshot:
        if self.params.amount_type == "quote":
            return AccumulatorSnapshot()
        price = PriceSource.for_market(ctx.gateway, self.market).resolve(self.market.base.symbol)
        return AccumulatorSnapshot(price=price)

    def decide(self, snapshot: AccumulatorSnapshot) -> List[Action]:
        if self.params.amount_type == "quote":
            quote_amount = to_fixed_point(self.params.amount, self.market.quote.decimals)
            return [MarketOrder(market=self.market, is_buy=True, quote_amount=quote_amount, base_amount=0)]

        if snapshot.price is None:
            return []
        size = quantize_size(self.market, self.params.amount)
        if size <= 0:
            self.logger.warn("dca_size_zero", amount=self.params.amount, step=self.market.step_size)
            return []
        notional = estimate_notional(size, snapshot.price.price, is_buy=True)
        self.logger.info("dca_buy", size=size, price=snapshot.price.price, source=snapshot.price.source, notional=notional)
        return [
            MarketOrder(
                market=self.market,
                is_buy=True,
                quote_amount=to_fixed_point(notional, self.market.quote.decimals),
                base_amount=to_fixed_point(size, self.market.base.decimals),
            )
        ]
