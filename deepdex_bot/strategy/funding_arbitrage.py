from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from deepdex_bot.core.config import ArbitrageParams
from deepdex_bot.core.context import BotContext
from deepdex_bot.core.logging import JsonLogger
from deepdex_bot.core.types import (
    FUNDING_RATE_DECIMALS,
    PRICE_DECIMALS,
    Action,
    ClosePerp,
    MarketOrder,
    MarketPair,
    PerpOrder,
    PerpPositionState,
)
from deepdex_bot.execution.price_source import PriceSource
from deepdex_bot.execution.quantizer import floor_size, from_fixed_point, quantize_size, to_fixed_point
from deepdex_bot.strategy.base import Strategy

ARBITRAGE_INTERVAL_S = 60.0


def funding_rate_percent(raw_rate: int) -> Decimal:
    """Fixed-point (1e18) funding rate as a percentage: 1e14 -> 0.01."""
    return from_fixed_point(raw_rate, FUNDING_RATE_DECIMALS) * 100


@dataclass(frozen=True)
class ArbitrageSnapshot:
    funding_percent: Decimal
    oracle_price: int  # fixed-point, PRICE_DECIMALS
    position: Optional[PerpPositionState]
    spot_base_balance: int = 0
    slippage_bps: int = 50


class FundingArbitrage(Strategy):
    """Long spot / short perp while funding pays shorts; unwinds on negative funding."""

    kind = "arbitrage"

    def __init__(self, params: ArbitrageParams, spot: MarketPair, perp: MarketPair,
                 logger: Optional[JsonLogger] = None) -> None:
        super().__init__(logger)
        self.params = params
        self.spot = spot
        self.perp = perp

    def interval_s(self) -> float:
        return ARBITRAGE_INTERVAL_S

    def describe(self) -> Dict[str, Any]:
        return {
            "strategy": self.kind,
            "spot": self.spot.identifier,
            "perp": self.perp.identifier,
            "min_funding_rate": self.params.min_funding_rate,
            "amount": self.params.amount,
        }

    def observe(self, ctx: BotContext) -> ArbitrageSnapshot:
        gw = ctx.gateway
        sub = ctx.subaccount.address
        market_id = self.perp.perp_market_id
        state = gw.get_perp_market(market_id)
        oracle_price = state.oracle_price
        if oracle_price <= 0:
            quote = PriceSource.for_market(gw, self.perp).resolve(self.perp.base.symbol)
            oracle_price = to_fixed_point(quote.price, PRICE_DECIMALS)
        positions = gw.get_perp_positions(sub, [market_id])
        position = next((p for p in positions if p.market_id == market_id and p.is_open), None)
        spot_balance = 0
        if position is not None:
            spot_balance = gw.get_subaccount_balance(sub, self.spot.base.symbol)
        return ArbitrageSnapshot(
            funding_percent=funding_rate_percent(state.funding_rate),
            oracle_price=oracle_price,
            position=position,
            spot_base_balance=spot_balance,
            slippage_bps=ctx.trading.slippage_bps,
        )

    def decide(self, snapshot: ArbitrageSnapshot) -> List[Action]:
        rate = snapshot.funding_percent
        if snapshot.position is None:
            if rate > self.params.min_funding_rate:
                return self._open(snapshot)
            self.logger.info("arbitrage_waiting", funding_pct=rate, min_funding_pct=self.params.min_funding_rate)
            return []
        if rate < 0:
            return self._close(snapshot)
        self.logger.info("arbitrage_holding", funding_pct=rate, position_size=snapshot.position.size)
        return []

    def _open(self, snapshot: ArbitrageSnapshot) -> List[Action]:
        half = self.params.amount / 2
        price = from_fixed_point(snapshot.oracle_price, PRICE_DECIMALS)
        size = quantize_size(self.perp, half / price)
        if size <= 0:
            self.logger.warn("arbitrage_size_zero", notional=half, price=price, step=self.perp.step_size)
            return []
        self.logger.info("arbitrage_open", funding_pct=snapshot.funding_percent, spot_quote=half, perp_size=size)
        return [
            MarketOrder(
                market=self.spot,
                is_buy=True,
                quote_amount=to_fixed_point(half, self.spot.quote.decimals),
                base_amount=0,
            ),
            PerpOrder(
                market=self.perp,
                is_long=False,
                size=to_fixed_point(size, self.perp.base.decimals),
                price=snapshot.oracle_price,
                leverage=1,
            ),
        ]

    def _close(self, snapshot: ArbitrageSnapshot) -> List[Action]:
        self.logger.info("arbitrage_close", funding_pct=snapshot.funding_percent)
        actions: List[Action] = [
            ClosePerp(market=self.perp, price=snapshot.oracle_price, slippage_bps=snapshot.slippage_bps),
        ]
        held = from_fixed_point(snapshot.spot_base_balance, self.spot.base.decimals)
        # balances carry more decimals than the book accepts; never sell more than is held
        sell = floor_size(self.spot, held)
        if sell > 0:
            actions.append(
                MarketOrder(
                    market=self.spot,
                    is_buy=False,
                    quote_amount=0,
                    base_amount=to_fixed_point(sell, self.spot.base.decimals),
                )
            )
        else:
            self.logger.warn("arbitrage_no_spot_balance", symbol=self.spot.base.symbol, balance=held)
        return actions
