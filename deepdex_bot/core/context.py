from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from deepdex_bot.core.clock import TimeProvider
from deepdex_bot.core.config import TradingConfig
from deepdex_bot.core.errors import SubaccountNotFoundError
from deepdex_bot.core.logging import JsonLogger
from deepdex_bot.core.metrics import BotMetrics
from deepdex_bot.core.types import Subaccount
from deepdex_bot.exchanges.base_gateway import ExchangeGateway


@dataclass
class BotContext:
    """Everything one bot needs at runtime, handed to strategies and the executor."""

    gateway: ExchangeGateway
    subaccount: Subaccount
    owner: str
    trading: TradingConfig = field(default_factory=TradingConfig)
    clock: TimeProvider = field(default_factory=TimeProvider)
    logger: JsonLogger = field(default_factory=lambda: JsonLogger("bot"))
    metrics: BotMetrics = field(default_factory=BotMetrics)


def resolve_context(
    gateway: ExchangeGateway,
    account_name: str,
    trading: Optional[TradingConfig] = None,
    clock: Optional[TimeProvider] = None,
    logger: Optional[JsonLogger] = None,
    metrics: Optional[BotMetrics] = None,
) -> BotContext:
    owner = gateway.get_signing_account()
    subaccounts = gateway.get_subaccounts(owner)
    subaccount = next((s for s in subaccounts if s.name == account_name), None)
    if subaccount is None:
        raise SubaccountNotFoundError(account_name, owner)
    return BotContext(
        gateway=gateway,
        subaccount=subaccount,
        owner=owner,
        trading=trading or TradingConfig(),
        clock=clock or TimeProvider(),
        logger=logger or JsonLogger("bot"),
        metrics=metrics or BotMetrics(),
    )
