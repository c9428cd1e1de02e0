from __future__ import annotations

from typing import Optional

from deepdex_bot.core.config import (
    AccumulatorParams,
    ArbitrageParams,
    BotConfig,
    GridParams,
    MarketMakerParams,
    MomentumParams,
)
from deepdex_bot.core.errors import ConfigurationError
from deepdex_bot.core.logging import JsonLogger
from deepdex_bot.core.markets import MarketRegistry
from deepdex_bot.strategy.accumulator import ScheduledAccumulator
from deepdex_bot.strategy.base import Strategy
from deepdex_bot.strategy.funding_arbitrage import FundingArbitrage
from deepdex_bot.strategy.grid import GridStrategy
from deepdex_bot.strategy.market_maker import MarketMakerStrategy
from deepdex_bot.strategy.momentum import MomentumStrategy


def build_strategy(bot: BotConfig, registry: MarketRegistry, logger: Optional[JsonLogger] = None) -> Strategy:
    """Resolve the configured markets and build the strategy; raises ``MarketNotFoundError``."""
    params = bot.params
    log = logger or JsonLogger(f"strategy.{params.kind}")
    if isinstance(params, GridParams):
        return GridStrategy(params, registry.require(params.pair), logger=log)
    if isinstance(params, MarketMakerParams):
        return MarketMakerStrategy(params, registry.require(params.pair), logger=log)
    if isinstance(params, AccumulatorParams):
        return ScheduledAccumulator(params, registry.require(params.pair), logger=log)
    if isinstance(params, ArbitrageParams):
        spot = registry.require(params.spot_pair)
        perp = registry.require(params.perp_pair, perp=True)
        return FundingArbitrage(params, spot, perp, logger=log)
    if isinstance(params, MomentumParams):
        return MomentumStrategy(params, registry.require(params.pair, perp=True), logger=log)
    raise ConfigurationError(f"Unknown strategy params: {type(params).__name__}")
