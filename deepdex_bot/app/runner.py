from __future__ import annotations

import argparse
import os
from decimal import Decimal
from typing import Any, Optional

from deepdex_bot.core.clock import PeriodicTask, TimeProvider
from deepdex_bot.core.config import (
    AppConfig,
    BotConfig,
    Credentials,
    TradingConfig,
    load_app_config,
    load_bot_config,
    load_trading_config,
)
from deepdex_bot.core.context import BotContext, resolve_context
from deepdex_bot.core.errors import ConfigurationError, StartupError
from deepdex_bot.core.logging import JsonLogger
from deepdex_bot.core.markets import MarketRegistry
from deepdex_bot.core.metrics import BotMetrics
from deepdex_bot.core.persistence import Event, RunJournal
from deepdex_bot.core.types import PRICE_DECIMALS, PerpMarketState, Subaccount
from deepdex_bot.exchanges.base_gateway import ExchangeGateway
from deepdex_bot.exchanges.paper_gateway import PaperGateway
from deepdex_bot.execution.order_reconciler import ActionExecutor, ReconcileReport
from deepdex_bot.execution.price_source import PriceQuote
from deepdex_bot.execution.quantizer import to_fixed_point
from deepdex_bot.strategy.base import Strategy
from deepdex_bot.strategy.factory import build_strategy
from deepdex_bot.utils.logging_utils import setup_app_logger


def _snapshot_price(snapshot: Any) -> Optional[Decimal]:
    price = getattr(snapshot, "price", None)
    if isinstance(price, PriceQuote):
        return price.price
    if isinstance(price, Decimal):
        return price
    return None


class StrategyRunner:
    """Single-threaded polling loop around one strategy.

    A tick is observe -> decide -> execute. Anything a tick raises is logged,
    counted and journaled; the loop then sleeps and tries again.
    """

    def __init__(self, strategy: Strategy, ctx: BotContext, journal: Optional[RunJournal] = None) -> None:
        self.strategy = strategy
        self.ctx = ctx
        self.journal = journal
        self.logger = ctx.logger
        self.executor = ActionExecutor(ctx)
        self.ticks = 0
        self.task = PeriodicTask(step=self.tick, interval_s=strategy.interval_s, clock=ctx.clock)

    def start(self) -> None:
        self.logger.info(
            "bot_started",
            subaccount=self.ctx.subaccount.address,
            interval_s=self.strategy.interval_s(),
            **self.strategy.describe(),
        )
        if self.journal is not None:
            self.journal.record_status(
                pid=os.getpid(),
                strategy=self.strategy.kind,
                account=self.ctx.subaccount.name,
                started_at=self.ctx.clock.now(),
                subaccount=self.ctx.subaccount.address,
            )

    def tick(self) -> bool:
        self.ticks += 1
        tick_no = self.ticks
        try:
            snapshot = self.strategy.observe(self.ctx)
            price = _snapshot_price(snapshot)
            if price is not None:
                self.ctx.metrics.gauge("last_price").set(float(price))
            actions = self.strategy.decide(snapshot)
            results = self.executor.execute(actions)
        except Exception as e:
            self.ctx.metrics.inc("ticks_failed")
            self.logger.error("tick_failed", tick=tick_no, error_type=type(e).__name__, error=str(e))
            self._journal("tick_error", tick=tick_no, error_type=type(e).__name__, error=str(e))
            return False

        reports = [r for r in results if isinstance(r, ReconcileReport)]
        summary = {
            "actions": len(actions),
            "placed": sum(len(r.placed) for r in reports),
            "failed": sum(len(r.failures) for r in reports),
            "cancelled": sum(len(r.cancelled) for r in reports),
        }
        self.ctx.metrics.inc("ticks_ok")
        self.logger.info("tick_ok", tick=tick_no, **summary)
        self.logger.debug("metrics", **self.ctx.metrics.snapshot())
        self._journal("tick_ok", tick=tick_no, **summary)
        return True

    def _journal(self, kind: str, **data: Any) -> None:
        if self.journal is None:
            return
        try:
            self.journal.append_event(Event(ts=self.ctx.clock.now(), kind=kind, data=data))
        except Exception as e:
            self.logger.warn("journal_write_failed", error=str(e))

    def run(self, max_ticks: Optional[int] = None) -> int:
        self.start()
        try:
            self.task.run(max_iterations=max_ticks)
        except KeyboardInterrupt:
            self.logger.warn("shutdown_requested", ticks=self.ticks)
        return self.ticks


def run_bot(
    bot: BotConfig,
    gateway: ExchangeGateway,
    registry: MarketRegistry,
    trading: Optional[TradingConfig] = None,
    clock: Optional[TimeProvider] = None,
    journal: Optional[RunJournal] = None,
    max_ticks: Optional[int] = None,
) -> int:
    """Validate markets and subaccount, then run the loop.

    Startup problems raise before the first tick. With ``max_ticks`` unset
    this does not return under normal operation.
    """
    logger = JsonLogger(f"bot.{bot.strategy}").bind(strategy=bot.strategy, account=bot.account)
    strategy = build_strategy(bot, registry, logger=logger)
    ctx = resolve_context(gateway, bot.account, trading=trading, clock=clock, logger=logger, metrics=BotMetrics())
    return StrategyRunner(strategy, ctx, journal=journal).run(max_ticks=max_ticks)


def _paper_gateway(registry: MarketRegistry, account: str) -> PaperGateway:
    # seed oracle prices and perp markets from the listings so a dry run can tick
    gw = PaperGateway()
    for m in registry:
        if m.reference_price > 0:
            gw.oracle_prices.setdefault(m.base.symbol, to_fixed_point(m.reference_price, PRICE_DECIMALS))
        if m.is_perp:
            gw.perp_markets[m.perp_market_id] = PerpMarketState(
                market_id=m.perp_market_id,
                funding_rate=0,
                oracle_price=to_fixed_point(m.reference_price, PRICE_DECIMALS),
            )
    if account not in {s.name for s in gw.subaccounts}:
        gw.subaccounts.append(Subaccount(address=gw.owner, name=account))
    return gw


def _init_logging(app: Optional[AppConfig]) -> None:
    tel = app.telemetry if app is not None else None
    meta = setup_app_logger(
        log_level=os.environ.get("LOG_LEVEL", getattr(tel, "log_level", "INFO") or "INFO"),
        log_file=getattr(tel, "log_file", None),
        log_max_bytes=getattr(tel, "log_max_bytes", None),
        log_backup_count=getattr(tel, "log_backup_count", None),
        disable_console_logging=getattr(tel, "disable_console_logging", None),
    )
    JsonLogger("runner").info(
        "log_init",
        file=meta.get("file"),
        level=meta.get("level"),
        max_bytes=str(meta.get("max_bytes")),
        backup_count=str(meta.get("backup_count")),
        disable_console=bool(meta.get("disable_console")),
    )


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="DeepDex strategy bot runner")
    parser.add_argument("--config", default="config.json", help="app config (credentials, trading, telemetry)")
    parser.add_argument("--bot", required=True, help="bot config with strategy and parameters")
    parser.add_argument("--account", default=None, help="subaccount name, overrides the bot config")
    parser.add_argument("--markets", default=None, help="markets JSON file, overrides the app config")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--once", action="store_true")
    parser.add_argument("--state-db", default=":memory:")
    args = parser.parse_args(argv)

    logger = JsonLogger("runner")
    try:
        app = load_app_config(args.config) if (os.path.exists(args.config) or not args.dry_run) else None
        _init_logging(app)
        bot = load_bot_config(args.bot, account=args.account)
        trading = load_trading_config(app) if app is not None else TradingConfig()
        markets_file = args.markets or (app.markets_file if app is not None else None)

        if args.dry_run:
            if not markets_file:
                raise StartupError("--dry-run needs a markets file (--markets or markets_file)")
            registry = MarketRegistry.from_file(markets_file)
            gateway: ExchangeGateway = _paper_gateway(registry, bot.account)
        else:
            from deepdex_bot.exchanges.hyperliquid.hl_gateway import connect

            creds: Credentials = app.credentials
            if not creds.secret_key:
                raise ConfigurationError("credentials.secret_key is required unless --dry-run is set")
            static = MarketRegistry.from_file(markets_file) if markets_file else None
            try:
                hl = connect(creds, markets=list(static) if static is not None else None)
            except Exception as e:
                raise StartupError(f"could not connect to {creds.base_url or 'hyperliquid'}: {e}") from e
            registry = static or MarketRegistry(hl.markets)
            gateway = hl
        logger.info("runner_init", strategy=bot.strategy, account=bot.account, dry_run=bool(args.dry_run), markets=len(registry))
        journal = RunJournal(str(args.state_db))
    except StartupError as e:
        logger.error("startup_failed", error_type=type(e).__name__, error=str(e))
        return 2

    try:
        run_bot(bot, gateway, registry, trading=trading, journal=journal, max_ticks=1 if args.once else None)
    except StartupError as e:
        logger.error("startup_failed", error_type=type(e).__name__, error=str(e))
        return 2
    finally:
        journal.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
