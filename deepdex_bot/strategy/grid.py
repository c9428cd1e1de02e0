from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from deepdex_bot.core.config import GridParams
from deepdex_bot.core.context import BotContext
from deepdex_bot.core.logging import JsonLogger
from deepdex_bot.core.types import Action, DesiredOrder, MarketPair, OpenOrder, OrderBatch, Side
from deepdex_bot.execution.price_source import PriceQuote, PriceSource
from deepdex_bot.execution.quantizer import Numeric, from_fixed_point, quantize_price, quantize_size, to_decimal
from deepdex_bot.strategy.base import Strategy
from deepdex_bot.strategy.skew import grid_inventory_ratio, inventory_skew

GRID_INTERVAL_S = 10.0
GRID_ORDER_SPACING_S = 0.5
GRID_SKEW_TARGET = Decimal("0.5")
GRID_SKEW_INTENSITY = Decimal("0.05")
# levels this close to the current price would take liquidity
MIN_DISTANCE_FROM_PRICE = Decimal("0.005")


def compute_grid_levels(lower: Numeric, upper: Numeric, grids: int) -> List[Decimal]:
    low = to_decimal(lower)
    high = to_decimal(upper)
    step = (high - low) / grids
    levels = [low + step * i for i in range(grids)]
    levels.append(high)
    return levels


@dataclass(frozen=True)
class GridSnapshot:
    price: PriceQuote
    open_orders: List[OpenOrder]
    base_balance: Optional[Decimal] = None


class GridStrategy(Strategy):
    kind = "grid"

    def __init__(self, params: GridParams, market: MarketPair, logger: Optional[JsonLogger] = None) -> None:
        super().__init__(logger)
        self.params = params
        self.market = market
        self.levels = compute_grid_levels(params.lower_price, params.upper_price, params.grids)

    def interval_s(self) -> float:
        return GRID_INTERVAL_S

    def describe(self) -> Dict[str, Any]:
        return {
            "strategy": self.kind,
            "pair": self.market.identifier,
            "levels": [str(level) for level in self.levels],
            "amount_per_grid": self.params.amount_per_grid,
        }

    def observe(self, ctx: BotContext) -> GridSnapshot:
        price = PriceSource.for_market(ctx.gateway, self.market).resolve(self.market.base.symbol)
        orders = ctx.gateway.get_open_spot_orders(ctx.subaccount.address, self.market)
        base_balance = None
        if not orders:
            raw = ctx.gateway.get_subaccount_balance(ctx.subaccount.address, self.market.base.symbol)
            base_balance = from_fixed_point(raw, self.market.base.decimals)
        return GridSnapshot(price=price, open_orders=orders, base_balance=base_balance)

    def decide(self, snapshot: GridSnapshot) -> List[Action]:
        if snapshot.open_orders:
            self.logger.info("grid_monitoring", active_orders=len(snapshot.open_orders))
            return []

        current = snapshot.price.price
        ratio = grid_inventory_ratio(snapshot.base_balance or Decimal("0"), self.params.grids, self.params.amount_per_grid)
        skew = inventory_skew(ratio, GRID_SKEW_TARGET, GRID_SKEW_INTENSITY, GRID_SKEW_INTENSITY)
        size = quantize_size(self.market, self.params.amount_per_grid)
        self.logger.info("grid_placing", price=current, inventory_ratio=ratio, skew=skew)
        if size <= 0:
            self.logger.warn("grid_size_zero", amount_per_grid=self.params.amount_per_grid, step=self.market.step_size)
            return []

        orders: List[DesiredOrder] = []
        for raw_level in self.levels:
            level = raw_level * (1 - skew)
            if abs(level - current) / current < MIN_DISTANCE_FROM_PRICE:
                continue
            side = Side.BUY if level < current else Side.SELL
            orders.append(DesiredOrder(side=side, price=quantize_price(self.market, level), size=size))
        if not orders:
            return []
        return [OrderBatch(market=self.market, place=orders, spacing_s=GRID_ORDER_SPACING_S)]
