from __future__ import annotations

from typing import Any, Optional


class BotError(Exception):
    """Root of every error raised by the strategy engine."""


# Startup errors: raised before the polling loop begins and surfaced to the operator.


class StartupError(BotError):
    pass


class ConfigurationError(StartupError, ValueError):
    pass


class MarketNotFoundError(StartupError):
    def __init__(self, pair: str, reason: str = "not found") -> None:
        super().__init__(f"market {pair!r} {reason}")
        self.pair = pair


class SubaccountNotFoundError(StartupError):
    def __init__(self, name: str, owner: str) -> None:
        super().__init__(f"subaccount {name!r} not found for owner {owner}")
        self.name = name
        self.owner = owner


# Tick errors: abort at most the current tick (or a single order within it).


class TickError(BotError):
    pass


class PriceUnavailableError(TickError):
    def __init__(self, symbol: str, tried: Optional[list[str]] = None) -> None:
        tried = tried or []
        super().__init__(f"no price available for {symbol} (tried: {', '.join(tried) or 'none'})")
        self.symbol = symbol
        self.tried = tried


class TransientGatewayError(TickError):
    def __init__(self, operation: str, detail: Any = None) -> None:
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


class PartialSubmissionFailure(TickError):
    def __init__(self, order: Any, cause: BaseException) -> None:
        super().__init__(f"failed to submit {order}: {cause}")
        self.order = order
        self.cause = cause
