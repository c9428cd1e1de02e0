import json
from decimal import Decimal

import pytest

from deepdex_bot.core.config import (
    AccumulatorParams,
    ArbitrageParams,
    ConfigurationError,
    GridParams,
    MarketMakerParams,
    MomentumParams,
    TradingConfig,
    load_app_config,
    load_bot_config,
    load_trading_config,
    parse_bot_config,
    parse_duration,
)


def test_parse_duration_units():
    assert parse_duration("1h") == 3_600_000
    assert parse_duration("30m") == 1_800_000
    assert parse_duration("10s") == 10_000
    assert parse_duration("2d") == 172_800_000
    assert parse_duration(5000) == 5000


@pytest.mark.parametrize("bad", ["abc", "10", "1w", "-5s", ""])
def test_parse_duration_rejects_bad_format(bad):
    with pytest.raises(ValueError, match="Invalid duration format"):
        parse_duration(bad)


def test_parse_duration_rejects_other_types():
    with pytest.raises(ConfigurationError):
        parse_duration(1.5)
    with pytest.raises(ConfigurationError):
        parse_duration(True)


def test_grid_config_with_legacy_keys():
    bot = parse_bot_config({
        "strategy": "grid",
        "account": "main",
        "config": {"pair": "ETH/USDC", "lowerPrice": "60000", "upperPrice": 70000, "grids": 10, "amountPerGrid": "0.1"},
    })
    assert bot.strategy == "grid"
    assert bot.account == "main"
    assert bot.params == GridParams(
        pair="ETH/USDC",
        lower_price=Decimal("60000"),
        upper_price=Decimal("70000"),
        grids=10,
        amount_per_grid=Decimal("0.1"),
    )


def test_market_maker_defaults():
    bot = parse_bot_config({"strategy": "mm", "config": {"pair": "ETH/USDC", "order_size": "0.5"}})
    p = bot.params
    assert isinstance(p, MarketMakerParams)
    assert p.spread == Decimal("0.002")
    assert p.levels == 3
    assert p.level_spacing == Decimal("0.001")
    assert p.refresh_interval_ms == 5000
    assert p.inventory_target == Decimal("0.5")
    assert p.max_skew == Decimal("0.03")


def test_market_maker_refresh_interval_accepts_duration():
    bot = parse_bot_config({"strategy": "mm", "config": {"pair": "ETH/USDC", "orderSize": 1, "refreshInterval": "30s"}})
    assert bot.params.refresh_interval_ms == 30_000


def test_accumulator_and_flat_shape():
    bot = parse_bot_config({"strategy": "simple", "pair": "BTC/USDC", "amount": "0.001", "interval": "1h"})
    assert isinstance(bot.params, AccumulatorParams)
    assert bot.params.interval_ms == 3_600_000
    assert bot.params.amount_type == "base"
    assert bot.account == "default"


def test_arbitrage_and_momentum():
    arb = parse_bot_config({
        "strategy": "arbitrage",
        "config": {"spotPair": "ETH/USDC", "perpPair": "ETH-PERP", "minFundingRate": "0.01", "amount": "1000"},
    })
    assert isinstance(arb.params, ArbitrageParams)
    assert arb.params.min_funding_rate == Decimal("0.01")
    mom = parse_bot_config({
        "strategy": "momentum",
        "config": {"pair": "ETH-PERP", "interval": "15m", "period": 20, "leverage": 2, "amount": "100"},
    })
    assert isinstance(mom.params, MomentumParams)
    assert mom.params.interval_ms == 900_000


def test_account_resolution_order():
    raw = {"strategy": "simple", "account": "file", "config": {"pair": "X/Y", "amount": 1, "interval": "1m"}}
    assert parse_bot_config(raw, account="cli").account == "cli"
    assert parse_bot_config(raw).account == "file"


def test_missing_fields_are_reported():
    with pytest.raises(ConfigurationError, match="Missing required config: upper_price, amount_per_grid"):
        parse_bot_config({"strategy": "grid", "config": {"pair": "ETH/USDC", "lower_price": 1, "grids": 4}})


def test_unknown_strategy():
    with pytest.raises(ConfigurationError, match="Unknown strategy"):
        parse_bot_config({"strategy": "scalper", "config": {}})


def test_params_validate_on_construction():
    with pytest.raises(ConfigurationError):
        GridParams(pair="ETH/USDC", lower_price=Decimal("70000"), upper_price=Decimal("60000"), grids=10,
                   amount_per_grid=Decimal("0.1"))
    with pytest.raises(ConfigurationError):
        AccumulatorParams(pair="ETH/USDC", amount=Decimal("1"), interval_ms=1000, amount_type="notional")
    with pytest.raises(ConfigurationError):
        MarketMakerParams(pair="ETH/USDC", order_size=Decimal("1"), max_skew=Decimal("1.5"))


def test_trading_slippage_bps_rounds_half_up():
    assert TradingConfig().slippage_bps == 50
    assert TradingConfig(max_slippage_percent=Decimal("0.125")).slippage_bps == 13
    assert TradingConfig(max_slippage_percent=Decimal("1")).slippage_bps == 100


def test_load_app_and_bot_config(tmp_path):
    app_path = tmp_path / "config.json"
    app_path.write_text(json.dumps({
        "credentials": {"account_address": "0x1", "secret_key": "0x2", "base_url": "https://api.example"},
        "trading": {"max_slippage": 0.3, "default_leverage": 2},
        "telemetry": {"log_level": "DEBUG"},
        "markets_file": "markets.json",
    }))
    app = load_app_config(str(app_path))
    trading = load_trading_config(app)
    assert trading.max_slippage_percent == Decimal("0.3")
    assert trading.slippage_bps == 30
    assert app.telemetry.log_level == "DEBUG"
    assert app.markets_file == "markets.json"

    bot_path = tmp_path / "bot.json"
    bot_path.write_text(json.dumps({"strategy": "simple", "account": "main",
                                    "config": {"pair": "ETH/USDC", "amount": "50", "interval": "1d", "amountType": "quote"}}))
    bot = load_bot_config(str(bot_path))
    assert bot.params.amount_type == "quote"


def test_load_config_errors(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_bot_config(str(tmp_path / "missing.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ConfigurationError, match="Invalid config file"):
        load_app_config(str(bad))
    wrong_url = tmp_path / "url.json"
    wrong_url.write_text(json.dumps({"credentials": {"base_url": "ftp://x"}}))
    with pytest.raises(ConfigurationError):
        load_app_config(str(wrong_url))
