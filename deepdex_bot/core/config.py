from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, ClassVar, Dict, Optional, Union

from deepdex_bot.core.errors import ConfigurationError


@dataclass
class Credentials:
    account_address: str
    secret_key: str
    base_url: str

    def build_signer(self):
        # Local signing account; the SDK expects an eth-account LocalAccount
        from eth_account import Account

        return Account.from_key(self.secret_key)


@dataclass
class TradingConfig:
    max_slippage_percent: Decimal = Decimal("0.5")
    default_leverage: int = 1

    @property
    def slippage_bps(self) -> int:
        return int((self.max_slippage_percent * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass
class TelemetryParams:
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int | None = None
    log_backup_count: int | None = None
    disable_console_logging: bool | None = None


@dataclass
class AppConfig:
    credentials: Credentials
    trading: TradingConfig = field(default_factory=TradingConfig)
    telemetry: TelemetryParams = field(default_factory=TelemetryParams)
    markets_file: Optional[str] = None


def _to_decimal(value: Any, name: str = "value") -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"{name} must be a decimal number, got {value!r}") from e


def _to_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigurationError(message)


_DURATION_RE = re.compile(r"^(\d+)([smhd])$")
_DURATION_UNITS_MS = {"s": 1000, "m": 60 * 1000, "h": 60 * 60 * 1000, "d": 24 * 60 * 60 * 1000}


def parse_duration(value: Union[str, int]) -> int:
    """Parse ``"30m"``-style durations into milliseconds; integers are already ms."""
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration type: {type(value).__name__}")
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ConfigurationError(f"Invalid duration type: {type(value).__name__}")
    match = _DURATION_RE.match(value.strip())
    if not match:
        raise ConfigurationError(f"Invalid duration format: {value}. Use format like '1h', '30m', '10s'")
    return int(match.group(1)) * _DURATION_UNITS_MS[match.group(2)]


# Strategy parameter sets. Each one validates itself on construction.


@dataclass(frozen=True)
class GridParams:
    kind: ClassVar[str] = "grid"

    pair: str
    lower_price: Decimal
    upper_price: Decimal
    grids: int
    amount_per_grid: Decimal

    def __post_init__(self) -> None:
        _require(bool(self.pair), "grid: pair is required")
        _require(self.lower_price > 0, "grid: lower_price must be positive")
        _require(self.upper_price > self.lower_price, "grid: upper_price must be above lower_price")
        _require(self.grids >= 1, "grid: grids must be at least 1")
        _require(self.amount_per_grid > 0, "grid: amount_per_grid must be positive")


@dataclass(frozen=True)
class MarketMakerParams:
    kind: ClassVar[str] = "mm"

    pair: str
    order_size: Decimal
    spread: Decimal = Decimal("0.002")
    levels: int = 3
    level_spacing: Decimal = Decimal("0.001")
    refresh_interval_ms: int = 5000
    inventory_target: Decimal = Decimal("0.5")
    max_skew: Decimal = Decimal("0.03")

    def __post_init__(self) -> None:
        _require(bool(self.pair), "mm: pair is required")
        _require(self.order_size > 0, "mm: order_size must be positive")
        _require(Decimal("0") <= self.spread < Decimal("2"), "mm: spread must be in [0, 2)")
        _require(self.levels >= 1, "mm: levels must be at least 1")
        _require(self.level_spacing >= 0, "mm: level_spacing must be non-negative")
        _require(self.refresh_interval_ms > 0, "mm: refresh_interval must be positive")
        _require(Decimal("0") <= self.inventory_target <= Decimal("1"), "mm: inventory_target must be in [0, 1]")
        _require(Decimal("0") <= self.max_skew < Decimal("1"), "mm: max_skew must be in [0, 1)")


@dataclass(frozen=True)
class AccumulatorParams:
    kind: ClassVar[str] = "simple"

    pair: str
    amount: Decimal
    interval_ms: int
    amount_type: str = "base"

    def __post_init__(self) -> None:
        _require(bool(self.pair), "simple: pair is required")
        _require(self.amount > 0, "simple: amount must be positive")
        _require(self.interval_ms > 0, "simple: interval must be positive")
        _require(self.amount_type in ("base", "quote"), "simple: amount_type must be 'base' or 'quote'")


@dataclass(frozen=True)
class ArbitrageParams:
    kind: ClassVar[str] = "arbitrage"

    spot_pair: str
    perp_pair: str
    min_funding_rate: Decimal  # percent
    amount: Decimal  # quote units

    def __post_init__(self) -> None:
        _require(bool(self.spot_pair), "arbitrage: spot_pair is required")
        _require(bool(self.perp_pair), "arbitrage: perp_pair is required")
        _require(self.amount > 0, "arbitrage: amount must be positive")


@dataclass(frozen=True)
class MomentumParams:
    kind: ClassVar[str] = "momentum"

    pair: str
    interval_ms: int
    period: int
    leverage: int
    amount: Decimal  # quote units per entry

    def __post_init__(self) -> None:
        _require(bool(self.pair), "momentum: pair is required")
        _require(self.interval_ms > 0, "momentum: interval must be positive")
        _require(self.period >= 1, "momentum: period must be at least 1")
        _require(self.leverage >= 1, "momentum: leverage must be at least 1")
        _require(self.amount > 0, "momentum: amount must be positive")


StrategyParams = Union[GridParams, MarketMakerParams, AccumulatorParams, ArbitrageParams, MomentumParams]

STRATEGY_KINDS = ("grid", "mm", "simple", "arbitrage", "momentum")


@dataclass(frozen=True)
class BotConfig:
    account: str
    params: StrategyParams

    @property
    def strategy(self) -> str:
        return self.params.kind


# camelCase keys written by older bot config files
_LEGACY_KEYS = {
    "lowerPrice": "lower_price",
    "upperPrice": "upper_price",
    "amountPerGrid": "amount_per_grid",
    "orderSize": "order_size",
    "levelSpacing": "level_spacing",
    "refreshInterval": "refresh_interval",
    "inventoryTarget": "inventory_target",
    "maxSkew": "max_skew",
    "amountType": "amount_type",
    "spotPair": "spot_pair",
    "perpPair": "perp_pair",
    "minFundingRate": "min_funding_rate",
}


def _coerce_legacy_schema(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {_LEGACY_KEYS.get(k, k): v for k, v in raw.items()}


def _missing(params: Dict[str, Any], *names: str) -> None:
    absent = [n for n in names if params.get(n) in (None, "", 0)]
    if absent:
        raise ConfigurationError(f"Missing required config: {', '.join(absent)}")


def _build_params(kind: str, p: Dict[str, Any]) -> StrategyParams:
    if kind == "grid":
        _missing(p, "pair", "lower_price", "upper_price", "grids", "amount_per_grid")
        return GridParams(
            pair=str(p["pair"]),
            lower_price=_to_decimal(p["lower_price"], "lower_price"),
            upper_price=_to_decimal(p["upper_price"], "upper_price"),
            grids=_to_int(p["grids"], "grids"),
            amount_per_grid=_to_decimal(p["amount_per_grid"], "amount_per_grid"),
        )
    if kind == "mm":
        _missing(p, "pair", "order_size")
        return MarketMakerParams(
            pair=str(p["pair"]),
            order_size=_to_decimal(p["order_size"], "order_size"),
            spread=_to_decimal(p.get("spread", "0.002"), "spread"),
            levels=_to_int(p.get("levels", 3), "levels"),
            level_spacing=_to_decimal(p.get("level_spacing", "0.001"), "level_spacing"),
            refresh_interval_ms=parse_duration(p.get("refresh_interval", 5000)),
            inventory_target=_to_decimal(p.get("inventory_target", "0.5"), "inventory_target"),
            max_skew=_to_decimal(p.get("max_skew", "0.03"), "max_skew"),
        )
    if kind == "simple":
        _missing(p, "pair", "amount", "interval")
        return AccumulatorParams(
            pair=str(p["pair"]),
            amount=_to_decimal(p["amount"], "amount"),
            interval_ms=parse_duration(p["interval"]),
            amount_type=str(p.get("amount_type") or "base"),
        )
    if kind == "arbitrage":
        _missing(p, "spot_pair", "perp_pair", "min_funding_rate", "amount")
        return ArbitrageParams(
            spot_pair=str(p["spot_pair"]),
            perp_pair=str(p["perp_pair"]),
            min_funding_rate=_to_decimal(p["min_funding_rate"], "min_funding_rate"),
            amount=_to_decimal(p["amount"], "amount"),
        )
    if kind == "momentum":
        _missing(p, "pair", "interval", "period", "leverage", "amount")
        return MomentumParams(
            pair=str(p["pair"]),
            interval_ms=parse_duration(p["interval"]),
            period=_to_int(p["period"], "period"),
            leverage=_to_int(p["leverage"], "leverage"),
            amount=_to_decimal(p["amount"], "amount"),
        )
    raise ConfigurationError(f"Unknown strategy: {kind}. Available: {', '.join(STRATEGY_KINDS)}")


def parse_bot_config(raw: Dict[str, Any], account: Optional[str] = None, strategy: Optional[str] = None) -> BotConfig:
    if not isinstance(raw, dict):
        raise ConfigurationError("bot config must be a JSON object")
    kind = str(strategy or raw.get("strategy") or "")
    if not kind:
        raise ConfigurationError("bot config is missing 'strategy'")
    inner = raw.get("config", raw)
    if not isinstance(inner, dict):
        raise ConfigurationError("bot config 'config' must be an object")
    params = _build_params(kind, _coerce_legacy_schema(inner))
    account_name = account or raw.get("account") or "default"
    return BotConfig(account=str(account_name), params=params)


def load_bot_config(path: str, account: Optional[str] = None, strategy: Optional[str] = None) -> BotConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid config file: {path}") from e
    return parse_bot_config(raw, account=account, strategy=strategy)


def load_app_config(path: str) -> AppConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid config file: {path}") from e
    creds = raw.get("credentials", {})
    trading = raw.get("trading", {})
    tel = raw.get("telemetry", {"log_level": "INFO"})

    app = AppConfig(
        credentials=Credentials(
            account_address=str(creds.get("account_address", "")),
            secret_key=str(creds.get("secret_key", "")),
            base_url=str(creds.get("base_url", "")),
        ),
        trading=TradingConfig(
            max_slippage_percent=_to_decimal(trading.get("max_slippage", trading.get("max_slippage_percent", "0.5")), "max_slippage"),
            default_leverage=_to_int(trading.get("default_leverage", 1), "default_leverage"),
        ),
        telemetry=TelemetryParams(
            log_level=str(tel.get("log_level", "INFO")),
            log_file=str(tel.get("log_file")) if tel.get("log_file") is not None else None,
            log_max_bytes=int(tel.get("log_max_bytes")) if tel.get("log_max_bytes") is not None else None,
            log_backup_count=int(tel.get("log_backup_count")) if tel.get("log_backup_count") is not None else None,
            disable_console_logging=bool(tel.get("disable_console_logging")) if tel.get("disable_console_logging") is not None else None,
        ),
        markets_file=str(raw["markets_file"]) if raw.get("markets_file") else None,
    )
    _validate(app)
    return app


def load_trading_config(app: AppConfig) -> TradingConfig:
    return app.trading


def _validate(cfg: AppConfig) -> None:
    if cfg.credentials.base_url:
        _require(cfg.credentials.base_url.startswith("http"), "base_url must be http(s)")
    _require(cfg.trading.max_slippage_percent >= 0, "trading.max_slippage must be non-negative")
    _require(cfg.trading.default_leverage >= 1, "trading.default_leverage must be at least 1")
