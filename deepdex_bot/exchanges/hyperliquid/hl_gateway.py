from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from hyperliquid.exchange import Exchange
from hyperliquid.info import Info
from hyperliquid.utils import constants

from deepdex_bot.core.config import Credentials
from deepdex_bot.core.errors import TransientGatewayError
from deepdex_bot.core.logging import JsonLogger
from deepdex_bot.core.types import (
    FUNDING_RATE_DECIMALS,
    ORDER_TYPE_MARKET,
    PRICE_DECIMALS,
    MarketPair,
    OpenOrder,
    OraclePrice,
    PerpMarketState,
    PerpOrder,
    PerpPositionState,
    Side,
    Subaccount,
)
from deepdex_bot.exchanges.base_gateway import ExchangeGateway
from deepdex_bot.exchanges.hyperliquid.hl_markets import PERP_QUOTE, fetch_market_pairs
from deepdex_bot.execution.quantizer import floor_size, from_fixed_point, quantize_price, quantize_size, to_fixed_point

DEFAULT_MARKET_SLIPPAGE = Decimal("0.05")
MAIN_ACCOUNT_NAME = "default"


def _d(value: Any) -> Decimal:
    return Decimal(str(value))


def _check(operation: str, resp: Any) -> Any:
    # {"status": "ok", "response": {"data": {"statuses": [...]}}}; per-order errors sit in statuses
    if not isinstance(resp, dict):
        return resp
    if resp.get("status") != "ok":
        raise TransientGatewayError(operation, resp.get("response", resp))
    statuses = ((resp.get("response") or {}).get("data") or {}).get("statuses") or []
    for s in statuses:
        if isinstance(s, dict) and "error" in s:
            raise TransientGatewayError(operation, s["error"])
    return resp


class HyperliquidGateway(ExchangeGateway):
    """``ExchangeGateway`` on hyperliquid-python-sdk.

    ``exchange_factory(vault_address)`` returns an ``Exchange`` acting for a
    subaccount (``None`` for the owner's main account). Exchanges are cached
    per subaccount.
    """

    def __init__(
        self,
        info: Any,
        exchange_factory: Callable[[Optional[str]], Any],
        owner: str,
        markets: Iterable[MarketPair],
        market_slippage: Decimal = DEFAULT_MARKET_SLIPPAGE,
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self.info = info
        self.exchange_factory = exchange_factory
        self.owner = owner
        self.market_slippage = market_slippage
        self.logger = logger or JsonLogger("gateway.hyperliquid")
        self.markets: List[MarketPair] = list(markets)
        self._perp_by_id: Dict[int, MarketPair] = {m.perp_market_id: m for m in self.markets if m.is_perp}
        self._perp_by_coin: Dict[str, MarketPair] = {m.label or m.base.symbol: m for m in self._perp_by_id.values()}
        self._token_decimals: Dict[str, int] = {}
        for m in self.markets:
            if not m.is_perp:
                self._token_decimals.setdefault(m.base.symbol, m.base.decimals)
                self._token_decimals.setdefault(m.quote.symbol, m.quote.decimals)
        self._exchanges: Dict[str, Any] = {}

    def _exchange(self, subaccount: str) -> Any:
        if subaccount not in self._exchanges:
            vault = None if subaccount.lower() == self.owner.lower() else subaccount
            self._exchanges[subaccount] = self.exchange_factory(vault)
        return self._exchanges[subaccount]

    def _call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except TransientGatewayError:
            raise
        except Exception as e:
            self.logger.warn("gateway_call_failed", operation=operation, error=str(e))
            raise TransientGatewayError(operation, e) from e

    def _perp(self, market_id: int) -> MarketPair:
        market = self._perp_by_id.get(market_id)
        if market is None:
            raise TransientGatewayError("perp_lookup", f"unknown perp market {market_id}")
        return market

    def _asset_ctxs(self) -> tuple[list, list]:
        data = self._call("meta_and_asset_ctxs", self.info.meta_and_asset_ctxs)
        # [meta, assetCtxs]
        universe = (data[0] or {}).get("universe", []) if isinstance(data, list) and data else []
        ctxs = data[1] if isinstance(data, list) and len(data) > 1 else []
        return universe, ctxs

    def get_signing_account(self) -> str:
        return self.owner

    def get_subaccounts(self, owner: str) -> List[Subaccount]:
        subs = [Subaccount(address=owner, name=MAIN_ACCOUNT_NAME, is_margin_enabled=True)]
        for entry in self._call("query_sub_accounts", self.info.query_sub_accounts, owner) or []:
            subs.append(Subaccount(address=str(entry["subAccountUser"]), name=str(entry["name"]), is_margin_enabled=True))
        return subs

    def resolve_oracle_prices(self) -> List[OraclePrice]:
        universe, ctxs = self._asset_ctxs()
        out = []
        for meta, ctx in zip(universe, ctxs):
            px = (ctx or {}).get("oraclePx")
            if px is None:
                continue
            out.append(OraclePrice(symbol=str(meta["name"]), price=to_fixed_point(_d(px), PRICE_DECIMALS)))
        # spot-only tokens (UBTC, PURR, ...) have no perp oracle; use their USDC book
        seen = {p.symbol for p in out}
        for symbol, px in self._spot_prices().items():
            if symbol not in seen:
                out.append(OraclePrice(symbol=symbol, price=to_fixed_point(px, PRICE_DECIMALS)))
        return out

    def _spot_prices(self) -> Dict[str, Decimal]:
        data = self._call("spot_meta_and_asset_ctxs", self.info.spot_meta_and_asset_ctxs)
        if not isinstance(data, list) or len(data) < 2:
            return {}
        spot_meta, ctxs = data[0] or {}, data[1] or []
        tokens = {int(t["index"]): str(t["name"]) for t in spot_meta.get("tokens", [])}
        bases: Dict[str, str] = {}
        for entry in spot_meta.get("universe", []):
            try:
                base, quote = (tokens[int(i)] for i in entry["tokens"][:2])
            except (KeyError, ValueError):
                continue
            if quote == PERP_QUOTE.symbol:
                bases[str(entry["name"])] = base
        out: Dict[str, Decimal] = {}
        for ctx in ctxs:
            ctx = ctx or {}
            base = bases.get(str(ctx.get("coin")))
            px = ctx.get("midPx") or ctx.get("markPx")
            if base is None or px is None:
                continue
            price = _d(px)
            if price > 0:
                out.setdefault(base, price)
        return out

    def get_subaccount_balance(self, subaccount: str, token_symbol: str) -> int:
        state = self._call("spot_user_state", self.info.spot_user_state, subaccount) or {}
        decimals = self._token_decimals.get(token_symbol, 8)
        for b in state.get("balances") or []:
            if str(b.get("coin")) == token_symbol:
                return to_fixed_point(_d(b.get("total", "0")), decimals)
        return 0

    def get_open_spot_orders(self, subaccount: str, market: MarketPair) -> List[OpenOrder]:
        orders = self._call("open_orders", self.info.open_orders, subaccount) or []
        out = []
        for o in orders:
            if str(o.get("coin")) != market.pair_id:
                continue
            out.append(
                OpenOrder(
                    order_id=int(o["oid"]),
                    side=Side.BUY if o.get("side") == "B" else Side.SELL,
                    price=_d(o.get("limitPx", "0")),
                    size=_d(o.get("sz", "0")),
                )
            )
        return out

    def place_limit_order(self, subaccount, market, is_buy, quote_amount, base_amount, post_only=True, reduce_only=False):
        size = from_fixed_point(base_amount, market.base.decimals)
        if size <= 0:
            raise TransientGatewayError("place_limit_order", "size must be positive")
        price = quantize_price(market, from_fixed_point(quote_amount, market.quote.decimals) / size)
        order_type = {"limit": {"tif": "Alo" if post_only else "Gtc"}}
        resp = self._call(
            "place_limit_order",
            self._exchange(subaccount).order,
            market.pair_id,
            bool(is_buy),
            float(size),
            float(price),
            order_type,
            reduce_only=bool(reduce_only),
        )
        return _check("place_limit_order", resp)

    def _mid(self, coin: str) -> Decimal:
        mids = self._call("all_mids", self.info.all_mids) or {}
        if coin not in mids:
            raise TransientGatewayError("all_mids", f"no mid price for {coin}")
        return _d(mids[coin])

    def place_market_order(self, subaccount, market, is_buy, quote_amount, base_amount, auto_cancel=True, reduce_only=False):
        if base_amount > 0:
            size = floor_size(market, from_fixed_point(base_amount, market.base.decimals))
        else:
            # quote-denominated order: size it off the current mid
            notional = from_fixed_point(quote_amount, market.quote.decimals)
            size = quantize_size(market, notional / self._mid(market.pair_id))
        if size <= 0:
            raise TransientGatewayError("place_market_order", "size must be positive")
        resp = self._call(
            "place_market_order",
            self._exchange(subaccount).market_open,
            market.pair_id,
            bool(is_buy),
            float(size),
            None,
            float(self.market_slippage),
        )
        return _check("place_market_order", resp)

    def cancel_order(self, subaccount, market, order_id, is_buy):
        resp = self._call("cancel_order", self._exchange(subaccount).cancel, market.pair_id, int(order_id))
        return _check("cancel_order", resp)

    def place_perp_order(self, subaccount: str, order: PerpOrder):
        market = self._perp(order.market.perp_market_id)
        coin = market.label or market.base.symbol
        exchange = self._exchange(subaccount)
        _check("update_leverage", self._call("update_leverage", exchange.update_leverage, int(order.leverage), coin, True))
        size = float(from_fixed_point(order.size, market.base.decimals))
        px = from_fixed_point(order.price, PRICE_DECIMALS)
        if order.order_type == ORDER_TYPE_MARKET:
            resp = self._call(
                "place_perp_order",
                exchange.market_open,
                coin,
                bool(order.is_long),
                size,
                float(px) if px > 0 else None,
                float(self.market_slippage),
            )
        else:
            order_type = {"limit": {"tif": "Alo" if order.post_only else "Gtc"}}
            resp = self._call(
                "place_perp_order",
                exchange.order,
                coin,
                bool(order.is_long),
                size,
                float(quantize_price(market, px)),
                order_type,
                reduce_only=bool(order.reduce_only),
            )
        return _check("place_perp_order", resp)

    def close_perp_position(self, subaccount: str, market_id: int, price: int, slippage_bps: int):
        market = self._perp(market_id)
        coin = market.label or market.base.symbol
        px = from_fixed_point(price, PRICE_DECIMALS)
        resp = self._call(
            "close_perp_position",
            self._exchange(subaccount).market_close,
            coin,
            None,
            float(px) if px > 0 else None,
            float(Decimal(slippage_bps) / Decimal(10000)),
        )
        if resp is None:
            # market_close returns None when there is nothing to close
            raise TransientGatewayError("close_perp_position", f"no open position on {coin}")
        return _check("close_perp_position", resp)

    def get_perp_positions(self, subaccount: str, market_ids: Sequence[int]) -> List[PerpPositionState]:
        state = self._call("user_state", self.info.user_state, subaccount) or {}
        wanted = set(int(i) for i in market_ids)
        out = []
        for item in state.get("assetPositions") or []:
            pos = (item or {}).get("position") or {}
            market = self._perp_by_coin.get(str(pos.get("coin")))
            if market is None or market.perp_market_id not in wanted:
                continue
            szi = _d(pos.get("szi", "0"))
            leverage = (pos.get("leverage") or {}).get("value", 1)
            entry = pos.get("entryPx")
            out.append(
                PerpPositionState(
                    market_id=market.perp_market_id,
                    size=to_fixed_point(abs(szi), market.base.decimals),
                    is_long=szi > 0,
                    entry_price=to_fixed_point(_d(entry), PRICE_DECIMALS) if entry is not None else 0,
                    leverage=int(leverage),
                )
            )
        return out

    def get_perp_market(self, market_id: int) -> PerpMarketState:
        market = self._perp(market_id)
        universe, ctxs = self._asset_ctxs()
        coin = market.label or market.base.symbol
        for meta, ctx in zip(universe, ctxs):
            if str(meta.get("name")) != coin:
                continue
            ctx = ctx or {}
            mark = ctx.get("markPx")
            return PerpMarketState(
                market_id=market_id,
                funding_rate=to_fixed_point(_d(ctx.get("funding", "0")), FUNDING_RATE_DECIMALS),
                oracle_price=to_fixed_point(_d(ctx.get("oraclePx", "0")), PRICE_DECIMALS),
                mark_price=to_fixed_point(_d(mark), PRICE_DECIMALS) if mark is not None else None,
            )
        raise TransientGatewayError("get_perp_market", f"no asset context for {coin}")


def connect(credentials: Credentials, market_slippage: Decimal = DEFAULT_MARKET_SLIPPAGE,
            markets: Optional[Iterable[MarketPair]] = None) -> HyperliquidGateway:
    """Build a gateway from credentials; market metadata is fetched unless given."""
    base_url = credentials.base_url or constants.MAINNET_API_URL
    wallet = credentials.build_signer()
    owner = credentials.account_address or wallet.address
    info = Info(base_url, skip_ws=True)

    def exchange_factory(vault_address: Optional[str]) -> Exchange:
        if vault_address is None:
            return Exchange(wallet, base_url, account_address=owner)
        return Exchange(wallet, base_url, vault_address=vault_address)

    pairs = list(markets) if markets is not None else fetch_market_pairs(info)
    return HyperliquidGateway(info, exchange_factory, owner, pairs, market_slippage=market_slippage)
