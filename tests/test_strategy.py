from decimal import Decimal

import pytest

from deepdex_bot.core.clock import TimeProvider
from deepdex_bot.core.config import (
    AccumulatorParams,
    ArbitrageParams,
    BotConfig,
    GridParams,
    MarketMakerParams,
    MomentumParams,
)
from deepdex_bot.core.context import BotContext
from deepdex_bot.core.errors import MarketNotFoundError, PriceUnavailableError
from deepdex_bot.core.markets import MarketRegistry
from deepdex_bot.core.types import (
    ClosePerp,
    MarketOrder,
    MarketPair,
    OpenOrder,
    InventoryState,
    OrderBatch,
    PerpMarketState,
    PerpOrder,
    PerpPositionState,
    Side,
    Subaccount,
    TokenInfo,
)
from deepdex_bot.exchanges.paper_gateway import PaperGateway
from deepdex_bot.execution.price_source import PriceQuote
from deepdex_bot.execution.quantizer import to_fixed_point
from deepdex_bot.strategy.accumulator import AccumulatorSnapshot, ScheduledAccumulator
from deepdex_bot.strategy.factory import build_strategy
from deepdex_bot.strategy.funding_arbitrage import ArbitrageSnapshot, FundingArbitrage, funding_rate_percent
from deepdex_bot.strategy.grid import GridSnapshot, GridStrategy, compute_grid_levels
from deepdex_bot.strategy.market_maker import MarketMakerSnapshot, MarketMakerStrategy, quote_levels
from deepdex_bot.strategy.momentum import MomentumSnapshot, MomentumStrategy, moving_average
from deepdex_bot.strategy.skew import grid_inventory_ratio, inventory_skew, inventory_state, value_inventory_ratio

SUB = Subaccount(address="0xsub", name="main")


def _spot(tick="0.01", step="0.001", reference_price="0"):
    return MarketPair(
        identifier="ETH/USDC",
        base=TokenInfo("ETH", 18),
        quote=TokenInfo("USDC", 6),
        tick_size=Decimal(tick),
        step_size=Decimal(step),
        pair_id="1",
        reference_price=Decimal(reference_price),
    )


def _perp():
    return MarketPair(
        identifier="ETH-PERP",
        base=TokenInfo("ETH", 18),
        quote=TokenInfo("USDC", 6),
        tick_size=Decimal("0.01"),
        step_size=Decimal("0.001"),
        pair_id="7",
        is_perp=True,
        label="ETH",
    )


def _quote(price, symbol="ETH"):
    return PriceQuote(symbol=symbol, price=Decimal(price), source="oracle")


def _ctx(gw):
    return BotContext(gateway=gw, subaccount=SUB, owner=gw.owner, clock=TimeProvider(sleep_fn=lambda s: None))


# skew


def test_skew_bound_holds_for_all_ratios():
    for i in range(0, 101):
        ratio = Decimal(i) / 100
        for intensity in (1, 2, 5):
            assert abs(inventory_skew(ratio, "0.5", "0.03", intensity)) <= Decimal("0.03")


def test_skew_sign_and_value():
    assert inventory_skew("0.51", "0.5", "0.03") == Decimal("0.02")
    assert inventory_skew("0.9", "0.5", "0.03") == Decimal("0.03")
    assert inventory_skew("0.1", "0.5", "0.03") == Decimal("-0.03")
    assert inventory_skew("1", "0.5", "0.05", "0.05") == Decimal("0.05")


def test_inventory_ratios():
    assert grid_inventory_ratio(Decimal("2"), 10, Decimal("0.1")) == 1
    assert grid_inventory_ratio(Decimal("0.25"), 10, Decimal("0.1")) == Decimal("0.25")
    assert value_inventory_ratio(0, 0, 100) == Decimal("0.5")
    assert value_inventory_ratio(1, 100, 100) == Decimal("0.5")


def test_inventory_state_carries_balances_and_value_ratio():
    state = inventory_state("3", "100", "100")
    assert state == InventoryState(base_balance=Decimal("3"), quote_balance=Decimal("100"), ratio=Decimal("0.75"))


# grid


def test_grid_levels_are_arithmetic_with_exact_endpoints():
    levels = compute_grid_levels(60000, 70000, 10)
    assert len(levels) == 11
    assert levels[0] == 60000
    assert levels[5] == 65000
    assert levels[10] == 70000
    assert compute_grid_levels("1", "2", 3)[-1] == Decimal("2")


def _grid(amount="0.1"):
    params = GridParams(pair="ETH/USDC", lower_price=Decimal("60000"), upper_price=Decimal("70000"), grids=10,
                        amount_per_grid=Decimal(amount))
    return GridStrategy(params, _spot())


def test_grid_places_full_grid_when_no_orders():
    actions = _grid().decide(GridSnapshot(price=_quote("65000"), open_orders=[], base_balance=Decimal("0.5")))
    assert len(actions) == 1
    batch = actions[0]
    assert isinstance(batch, OrderBatch)
    assert batch.spacing_s == 0.5
    # level at the current price is skipped
    assert len(batch.place) == 10
    buys = [o for o in batch.place if o.side is Side.BUY]
    sells = [o for o in batch.place if o.side is Side.SELL]
    assert [o.price for o in buys] == [Decimal(p) for p in (60000, 61000, 62000, 63000, 64000)]
    assert [o.price for o in sells] == [Decimal(p) for p in (66000, 67000, 68000, 69000, 70000)]
    assert all(o.post_only and o.size == Decimal("0.100") for o in batch.place)


def test_grid_skews_levels_down_when_inventory_full():
    actions = _grid().decide(GridSnapshot(price=_quote("65000"), open_orders=[], base_balance=Decimal("1.0")))
    prices = [o.price for o in actions[0].place]
    assert prices[0] == Decimal("57000.00")
    assert max(prices) == Decimal("66500.00")


def test_grid_leaves_existing_orders_alone():
    existing = [OpenOrder(order_id=1, side=Side.BUY, price=Decimal("60000"), size=Decimal("0.1"))]
    assert _grid().decide(GridSnapshot(price=_quote("65000"), open_orders=existing)) == []


def test_grid_observe_reads_balance_only_when_empty():
    gw = PaperGateway(oracle_prices={"ETH": 65_000_000_000})
    gw.set_balance(SUB.address, "ETH", to_fixed_point("0.5", 18))
    snapshot = _grid().observe(_ctx(gw))
    assert snapshot.price.price == Decimal("65000")
    assert snapshot.base_balance == Decimal("0.5")


# market maker


def test_mm_level_zero_prices():
    (bid, ask), = quote_levels(100, "0.002", 1, "0.001", 0)
    assert bid == Decimal("99.9")
    assert ask == Decimal("100.1")


def _mm(tick="0.01", levels=3):
    params = MarketMakerParams(pair="ETH/USDC", order_size=Decimal("0.5"), levels=levels)
    return MarketMakerStrategy(params, _spot(tick=tick))


def _mm_snapshot(base="1", quote="100", orders=()):
    return MarketMakerSnapshot(price=_quote("100"), base_balance=Decimal(base), quote_balance=Decimal(quote),
                               open_orders=list(orders))


def test_mm_cancels_everything_and_quotes_each_level():
    existing = [OpenOrder(order_id=i, side=Side.BUY, price=Decimal("99"), size=Decimal("1")) for i in (4, 5)]
    (batch,) = _mm().decide(_mm_snapshot(orders=existing))
    assert batch.cancel == existing
    assert batch.settle_delay_s == 1.0
    assert batch.spacing_s == 0.2
    assert [(o.side, o.price) for o in batch.place] == [
        (Side.BUY, Decimal("99.90")),
        (Side.SELL, Decimal("100.10")),
        (Side.BUY, Decimal("99.80")),
        (Side.SELL, Decimal("100.20")),
        (Side.BUY, Decimal("99.70")),
        (Side.SELL, Decimal("100.30")),
    ]


def test_mm_skew_shifts_quotes_down_with_excess_base():
    (batch,) = _mm(levels=1).decide(_mm_snapshot(base="10", quote="0"))
    assert [o.price for o in batch.place] == [Decimal("96.90"), Decimal("97.10")]


def test_mm_is_deterministic():
    strategy = _mm()
    snapshot = _mm_snapshot(base="3", quote="50")
    assert strategy.decide(snapshot) == strategy.decide(snapshot)


def test_mm_never_quotes_same_price_twice_per_side():
    (batch,) = _mm(tick="1").decide(_mm_snapshot())
    keys = [(o.side, o.price) for o in batch.place]
    assert len(keys) == len(set(keys)) == 2


def test_mm_interval_follows_refresh():
    params = MarketMakerParams(pair="ETH/USDC", order_size=Decimal("1"), refresh_interval_ms=2500)
    assert MarketMakerStrategy(params, _spot()).interval_s() == 2.5


# accumulator


def test_dca_quote_amount_buys_fixed_notional():
    params = AccumulatorParams(pair="ETH/USDC", amount=Decimal("100"), interval_ms=60_000, amount_type="quote")
    strategy = ScheduledAccumulator(params, _spot())
    (order,) = strategy.decide(AccumulatorSnapshot())
    assert order == MarketOrder(market=_spot(), is_buy=True, quote_amount=100_000_000, base_amount=0)


def test_dca_base_amount_adds_slippage_buffer():
    params = AccumulatorParams(pair="ETH/USDC", amount=Decimal("0.01"), interval_ms=60_000)
    (order,) = ScheduledAccumulator(params, _spot()).decide(AccumulatorSnapshot(price=_quote("2000")))
    assert order.base_amount == 10 ** 16
    assert order.quote_amount == 21_000_000
    assert order.auto_cancel is True


def test_dca_without_price_fails_the_tick():
    params = AccumulatorParams(pair="ETH/USDC", amount=Decimal("0.01"), interval_ms=60_000)
    with pytest.raises(PriceUnavailableError):
        ScheduledAccumulator(params, _spot()).observe(_ctx(PaperGateway()))


def test_dca_uses_reference_price_when_oracle_missing():
    params = AccumulatorParams(pair="ETH/USDC", amount=Decimal("0.01"), interval_ms=60_000)
    snapshot = ScheduledAccumulator(params, _spot(reference_price="1900")).observe(_ctx(PaperGateway()))
    assert snapshot.price.source == "market_reference"


# funding arbitrage


def test_funding_rate_conversion():
    assert funding_rate_percent(10 ** 14) == Decimal("0.01")
    assert funding_rate_percent(-(10 ** 14)) == Decimal("-0.01")


def _arb(amount="1000", min_rate="0.01"):
    params = ArbitrageParams(spot_pair="ETH/USDC", perp_pair="ETH-PERP", min_funding_rate=Decimal(min_rate),
                             amount=Decimal(amount))
    return FundingArbitrage(params, _spot(), _perp())


def _arb_snapshot(raw_rate, position=None, spot_balance=0):
    return ArbitrageSnapshot(
        funding_percent=funding_rate_percent(raw_rate),
        oracle_price=2_000_000_000,
        position=position,
        spot_base_balance=spot_balance,
        slippage_bps=50,
    )


def test_arbitrage_entry_requires_rate_strictly_above_threshold():
    assert _arb().decide(_arb_snapshot(10 ** 14)) == []
    actions = _arb().decide(_arb_snapshot(10 ** 14 + 1))
    spot, perp = actions
    assert isinstance(spot, MarketOrder) and spot.is_buy and spot.quote_amount == 500_000_000 and spot.base_amount == 0
    assert isinstance(perp, PerpOrder)
    assert perp.is_long is False
    assert perp.leverage == 1
    assert perp.price == 2_000_000_000
    assert perp.size == to_fixed_point("0.25", 18)


def test_arbitrage_skips_entry_when_size_rounds_to_zero():
    assert _arb(amount="0.001").decide(_arb_snapshot(10 ** 15)) == []


def test_arbitrage_exit_requires_negative_rate():
    held = PerpPositionState(market_id=7, size=10 ** 17, is_long=False)
    assert _arb().decide(_arb_snapshot(0, position=held, spot_balance=10 ** 17)) == []
    assert _arb().decide(_arb_snapshot(10 ** 15, position=held, spot_balance=10 ** 17)) == []
    close, sell = _arb().decide(_arb_snapshot(-1, position=held, spot_balance=10 ** 17))
    assert close == ClosePerp(market=_perp(), price=2_000_000_000, slippage_bps=50)
    assert isinstance(sell, MarketOrder) and not sell.is_buy and sell.base_amount == 10 ** 17


def test_arbitrage_exit_with_no_spot_balance_only_closes_perp():
    held = PerpPositionState(market_id=7, size=10 ** 17, is_long=False)
    actions = _arb().decide(_arb_snapshot(-(10 ** 14), position=held, spot_balance=0))
    assert len(actions) == 1 and isinstance(actions[0], ClosePerp)


def _ubtc_arb():
    spot = MarketPair(
        identifier="UBTC/USDC",
        base=TokenInfo("UBTC", 8),
        quote=TokenInfo("USDC", 8),
        tick_size=Decimal("1"),
        step_size=Decimal("0.01"),
        pair_id="@142",
    )
    params = ArbitrageParams(spot_pair="UBTC/USDC", perp_pair="ETH-PERP", min_funding_rate=Decimal("0.01"),
                             amount=Decimal("1000"))
    return FundingArbitrage(params, spot, _perp())


def test_arbitrage_exit_sells_balance_floored_to_step():
    held = PerpPositionState(market_id=7, size=10 ** 17, is_long=False)
    close, sell = _ubtc_arb().decide(_arb_snapshot(-1, position=held, spot_balance=12_345_678))
    assert isinstance(close, ClosePerp)
    assert sell.base_amount == 12_000_000
    assert sell.quote_amount == 0 and not sell.is_buy


def test_arbitrage_exit_skips_dust_below_step():
    held = PerpPositionState(market_id=7, size=10 ** 17, is_long=False)
    actions = _ubtc_arb().decide(_arb_snapshot(-1, position=held, spot_balance=999_999))
    assert len(actions) == 1 and isinstance(actions[0], ClosePerp)


def test_arbitrage_observe_reads_perp_state():
    gw = PaperGateway(perp_markets={7: PerpMarketState(market_id=7, funding_rate=2 * 10 ** 14, oracle_price=2_000_000_000)})
    gw.set_position(SUB.address, PerpPositionState(market_id=7, size=10 ** 17, is_long=False))
    gw.set_balance(SUB.address, "ETH", 10 ** 17)
    snapshot = _arb().observe(_ctx(gw))
    assert snapshot.funding_percent == Decimal("0.02")
    assert snapshot.position.size == 10 ** 17
    assert snapshot.spot_base_balance == 10 ** 17


# momentum


def _momentum(period=3):
    params = MomentumParams(pair="ETH-PERP", interval_ms=60_000, period=period, leverage=2, amount=Decimal("100"))
    return MomentumStrategy(params, _perp())


def _history(*prices):
    return tuple(Decimal(p) for p in prices)


def test_momentum_collects_until_period_filled():
    snap = MomentumSnapshot(price=Decimal("100"), history=_history("100", "101"), position=None)
    assert _momentum().decide(snap) == []


def test_momentum_opens_long_above_average():
    snap = MomentumSnapshot(price=Decimal("110"), history=_history("100", "100", "110"), position=None)
    (order,) = _momentum().decide(snap)
    assert isinstance(order, PerpOrder)
    assert order.is_long and order.leverage == 2
    assert order.size == to_fixed_point("0.909", 18)
    assert order.price == 110_000_000


def test_momentum_flips_short_to_long():
    short = PerpPositionState(market_id=7, size=10 ** 17, is_long=False)
    snap = MomentumSnapshot(price=Decimal("110"), history=_history("100", "100", "110"), position=short, slippage_bps=25)
    close, order = _momentum().decide(snap)
    assert close == ClosePerp(market=_perp(), price=110_000_000, slippage_bps=25)
    assert order.is_long


def test_momentum_holds_matching_position_and_flat_signal():
    long = PerpPositionState(market_id=7, size=10 ** 17, is_long=True)
    up = MomentumSnapshot(price=Decimal("110"), history=_history("100", "100", "110"), position=long)
    assert _momentum().decide(up) == []
    flat = MomentumSnapshot(price=Decimal("100"), history=_history("100", "100", "100"), position=None)
    assert _momentum().decide(flat) == []


def test_momentum_opens_short_below_average_and_closes_long():
    long = PerpPositionState(market_id=7, size=10 ** 17, is_long=True)
    snap = MomentumSnapshot(price=Decimal("90"), history=_history("100", "100", "90"), position=long)
    close, order = _momentum().decide(snap)
    assert isinstance(close, ClosePerp)
    assert order.is_long is False


def test_momentum_history_keeps_last_period_prices():
    gw = PaperGateway(oracle_prices={"ETH": 100_000_000})
    strategy = _momentum(period=3)
    ctx = _ctx(gw)
    for px in (100, 101, 102, 103):
        gw.oracle_prices["ETH"] = px * 1_000_000
        snapshot = strategy.observe(ctx)
    assert snapshot.history == _history("101", "102", "103")
    assert moving_average(snapshot.history) == Decimal("102")


# factory


def test_factory_resolves_markets():
    registry = MarketRegistry([_spot(), _perp()])
    arb = build_strategy(
        BotConfig(account="main", params=ArbitrageParams("ETH/USDC", "ETH-PERP", Decimal("0.01"), Decimal("100"))),
        registry,
    )
    assert isinstance(arb, FundingArbitrage)
    with pytest.raises(MarketNotFoundError):
        build_strategy(
            BotConfig(account="main", params=MomentumParams("ETH/USDC", 1000, 3, 1, Decimal("10"))),
            registry,
        )
    with pytest.raises(MarketNotFoundError):
        build_strategy(
            BotConfig(account="main", params=AccumulatorParams("BTC/USDC", Decimal("1"), 1000)),
            registry,
        )
