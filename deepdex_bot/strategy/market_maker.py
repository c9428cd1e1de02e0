from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set, Tuple

from deepdex_bot.core.config import MarketMakerParams
from deepdex_bot.core.context import BotContext
from deepdex_bot.core.logging import JsonLogger
from deepdex_bot.core.types import Action, DesiredOrder, MarketPair, OpenOrder, OrderBatch, Side
from deepdex_bot.execution.price_source import PriceQuote, PriceSource
from deepdex_bot.execution.quantizer import Numeric, from_fixed_point, quantize_price, quantize_size, to_decimal
from deepdex_bot.strategy.base import Strategy
from deepdex_bot.strategy.skew import inventory_skew, inventory_state

CANCEL_SETTLE_S = 1.0
LEVEL_SPACING_S = 0.2


def quote_levels(mid: Numeric, spread: Numeric, levels: int, level_spacing: Numeric,
                 skew: Numeric = 0) -> List[Tuple[Decimal, Decimal]]:
    """(bid, ask) per level, before quantization."""
    m = to_decimal(mid)
    half = to_decimal(spread) / 2
    spacing = to_decimal(level_spacing)
    shift = 1 - to_decimal(skew)
    out = []
    for i in range(levels):
        offset = spacing * i
        bid = m * (1 - half - offset) * shift
        ask = m * (1 + half + offset) * shift
        out.append((bid, ask))
    return out


@dataclass(frozen=True)
class MarketMakerSnapshot:
    price: PriceQuote
    base_balance: Decimal
    quote_balance: Decimal
    open_orders: List[OpenOrder]


class MarketMakerStrategy(Strategy):
    """Full cancel-and-replace quoting around the mid price every refresh."""

    kind = "mm"

    def __init__(self, params: MarketMakerParams, market: MarketPair, logger: Optional[JsonLogger] = None) -> None:
        super().__init__(logger)
        self.params = params
        self.market = market

    def interval_s(self) -> float:
        return self.params.refresh_interval_ms / 1000.0

    def describe(self) -> Dict[str, Any]:
        p = self.params
        return {
            "strategy": self.kind,
            "pair": self.market.identifier,
            "spread": p.spread,
            "levels": p.levels,
            "level_spacing": p.level_spacing,
            "order_size": p.order_size,
            "inventory_target": p.inventory_target,
            "max_skew": p.max_skew,
        }

    def observe(self, ctx: BotContext) -> MarketMakerSnapshot:
        gw = ctx.gateway
        sub = ctx.subaccount.address
        price = PriceSource.for_market(gw, self.market).resolve(self.market.base.symbol)
        base = gw.get_subaccount_balance(sub, self.market.base.symbol)
        quote = gw.get_subaccount_balance(sub, self.market.quote.symbol)
        orders = gw.get_open_spot_orders(sub, self.market)
        return MarketMakerSnapshot(
            price=price,
            base_balance=from_fixed_point(base, self.market.base.decimals),
            quote_balance=from_fixed_point(quote, self.market.quote.decimals),
            open_orders=orders,
        )

    def decide(self, snapshot: MarketMakerSnapshot) -> List[Action]:
        p = self.params
        mid = snapshot.price.price
        inventory = inventory_state(snapshot.base_balance, snapshot.quote_balance, mid)
        skew = inventory_skew(inventory.ratio, p.inventory_target, p.max_skew)
        size = quantize_size(self.market, p.order_size)
        self.logger.info("mm_quote", mid=mid, inventory_ratio=inventory.ratio, skew=skew, cancelling=len(snapshot.open_orders))

        place: List[DesiredOrder] = []
        seen: Set[Tuple[Side, Decimal]] = set()
        if size > 0:
            for bid, ask in quote_levels(mid, p.spread, p.levels, p.level_spacing, skew):
                for side, raw in ((Side.BUY, bid), (Side.SELL, ask)):
                    price = quantize_price(self.market, raw)
                    # coarse ticks can collapse adjacent levels onto one price
                    if (side, price) in seen or price <= 0:
                        continue
                    seen.add((side, price))
                    place.append(DesiredOrder(side=side, price=price, size=size))
        else:
            self.logger.warn("mm_size_zero", order_size=p.order_size, step=self.market.step_size)

        return [
            OrderBatch(
                market=self.market,
                cancel=list(snapshot.open_orders),
                place=place,
                settle_delay_s=CANCEL_SETTLE_S,
                spacing_s=LEVEL_SPACING_S,
            )
        ]
