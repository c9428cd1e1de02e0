from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Sequence, Tuple

from deepdex_bot.core.context import BotContext
from deepdex_bot.core.errors import PartialSubmissionFailure
from deepdex_bot.core.types import (
    Action,
    ClosePerp,
    DesiredOrder,
    MarketOrder,
    OrderBatch,
    PerpOrder,
)
from deepdex_bot.execution.quantizer import to_fixed_point


@dataclass
class ReconcileReport:
    cancelled: List[int] = field(default_factory=list)
    cancel_failures: List[Tuple[int, str]] = field(default_factory=list)
    placed: List[DesiredOrder] = field(default_factory=list)
    failures: List[PartialSubmissionFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancel_failures


class OrderReconciler:
    """Cancel-then-place for one ``OrderBatch``.

    Each cancel and each placement is attempted on its own; a failure is
    logged and recorded in the report, and the rest of the batch proceeds.
    """

    def __init__(self, ctx: BotContext) -> None:
        self.ctx = ctx
        self.logger = ctx.logger.bind(component="reconciler")

    def apply(self, batch: OrderBatch) -> ReconcileReport:
        report = ReconcileReport()
        gw = self.ctx.gateway
        sub = self.ctx.subaccount.address
        market = batch.market

        for order in batch.cancel:
            try:
                gw.cancel_order(sub, market, order.order_id, order.is_buy)
                report.cancelled.append(order.order_id)
                self.ctx.metrics.inc("orders_cancelled")
            except Exception as e:
                report.cancel_failures.append((order.order_id, str(e)))
                self.ctx.metrics.inc("cancel_failures")
                self.logger.warn("cancel_failed", order_id=order.order_id, error=str(e))
        if batch.cancel:
            self.logger.info("orders_cancelled", requested=len(batch.cancel), cancelled=len(report.cancelled))
            self.ctx.clock.sleep(batch.settle_delay_s)

        for i, desired in enumerate(batch.place):
            if i > 0:
                self.ctx.clock.sleep(batch.spacing_s)
            base_amount = to_fixed_point(desired.size, market.base.decimals)
            quote_amount = to_fixed_point(desired.size * desired.price, market.quote.decimals)
            try:
                gw.place_limit_order(
                    sub,
                    market,
                    desired.side.is_buy,
                    quote_amount,
                    base_amount,
                    post_only=desired.post_only,
                    reduce_only=desired.reduce_only,
                )
            except Exception as e:
                failure = PartialSubmissionFailure(desired, e)
                report.failures.append(failure)
                self.ctx.metrics.inc("orders_failed")
                self.logger.warn(
                    "order_failed",
                    side=desired.side.value,
                    price=desired.price,
                    size=desired.size,
                    error=str(e),
                )
                continue
            report.placed.append(desired)
            self.ctx.metrics.inc("orders_placed")
            self.logger.info("order_placed", side=desired.side.value, price=desired.price, size=desired.size)
        return report


class ActionExecutor:
    """Carries out a tick's actions in order.

    Order batches isolate their own failures. Any other action that fails
    aborts the remaining actions of the tick by propagating the error.
    """

    def __init__(self, ctx: BotContext) -> None:
        self.ctx = ctx
        self.reconciler = OrderReconciler(ctx)
        self.logger = ctx.logger.bind(component="executor")

    def execute(self, actions: Sequence[Action]) -> List[Any]:
        results: List[Any] = []
        for action in actions:
            results.append(self._dispatch(action))
        return results

    def _dispatch(self, action: Action) -> Any:
        gw = self.ctx.gateway
        sub = self.ctx.subaccount.address
        if isinstance(action, OrderBatch):
            return self.reconciler.apply(action)
        if isinstance(action, MarketOrder):
            handle = gw.place_market_order(
                sub,
                action.market,
                action.is_buy,
                action.quote_amount,
                action.base_amount,
                auto_cancel=action.auto_cancel,
                reduce_only=action.reduce_only,
            )
            self.ctx.metrics.inc("market_orders")
            self.logger.info(
                "market_order_submitted",
                pair=action.market.identifier,
                side="buy" if action.is_buy else "sell",
                quote_amount=action.quote_amount,
                base_amount=action.base_amount,
                handle=handle,
            )
            return handle
        if isinstance(action, PerpOrder):
            handle = gw.place_perp_order(sub, action)
            self.ctx.metrics.inc("perp_orders")
            self.logger.info(
                "perp_order_submitted",
                pair=action.market.identifier,
                side="long" if action.is_long else "short",
                size=action.size,
                price=action.price,
                leverage=action.leverage,
                handle=handle,
            )
            return handle
        if isinstance(action, ClosePerp):
            handle = gw.close_perp_position(sub, action.market.perp_market_id, action.price, action.slippage_bps)
            self.ctx.metrics.inc("perp_orders")
            self.logger.info(
                "perp_close_submitted",
                pair=action.market.identifier,
                price=action.price,
                slippage_bps=action.slippage_bps,
                handle=handle,
            )
            return handle
        raise TypeError(f"unsupported action: {type(action).__name__}")
