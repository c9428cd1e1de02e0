from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from deepdex_bot.core.errors import ConfigurationError, MarketNotFoundError
from deepdex_bot.core.types import MarketPair, TokenInfo


class MarketRegistry:
    """Immutable lookup of loaded markets; spot identifiers win over perp ones."""

    def __init__(self, markets: Iterable[MarketPair]) -> None:
        self._markets: List[MarketPair] = list(markets)

    def __iter__(self):
        return iter(self._markets)

    def __len__(self) -> int:
        return len(self._markets)

    @property
    def spot(self) -> List[MarketPair]:
        return [m for m in self._markets if not m.is_perp]

    @property
    def perp(self) -> List[MarketPair]:
        return [m for m in self._markets if m.is_perp]

    def find_market(self, pair: str) -> Optional[MarketPair]:
        wanted = pair.upper()
        for m in self.spot:
            if m.identifier.upper() == wanted:
                return m
        for m in self.perp:
            if m.identifier.upper() == wanted or (m.label or "").upper() == wanted:
                return m
        return None

    def require(self, pair: str, perp: bool = False) -> MarketPair:
        market = self.find_market(pair)
        if market is None:
            raise MarketNotFoundError(pair)
        if perp and not market.is_perp:
            raise MarketNotFoundError(pair, "is not a perpetual market")
        return market

    @classmethod
    def from_file(cls, path: str) -> "MarketRegistry":
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Markets file not found: {path}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid markets file: {path}") from e
        items = raw.get("markets", raw) if isinstance(raw, dict) else raw
        if not isinstance(items, list):
            raise ConfigurationError(f"Markets file must hold a list of markets: {path}")
        return cls(market_from_dict(item) for item in items)


def _token(raw: Dict[str, Any]) -> TokenInfo:
    return TokenInfo(symbol=str(raw["symbol"]), decimals=int(raw["decimals"]), address=raw.get("address"))


def market_from_dict(raw: Dict[str, Any]) -> MarketPair:
    try:
        # older listings keep both tokens in a "tokens" array, base first
        if "tokens" in raw:
            base, quote = (_token(t) for t in raw["tokens"][:2])
        else:
            base, quote = _token(raw["base"]), _token(raw["quote"])
        market_id = raw.get("market_id")
        return MarketPair(
            identifier=str(raw.get("identifier") or raw["value"]),
            base=base,
            quote=quote,
            tick_size=Decimal(str(raw.get("tick_size", raw.get("tickSize", "0")))),
            step_size=Decimal(str(raw.get("step_size", raw.get("stepSize", "0")))),
            pair_id=str(raw.get("pair_id") or raw["pairId"]),
            is_perp=bool(raw.get("is_perp", raw.get("isPerp", False))),
            label=raw.get("label"),
            market_id=int(market_id) if market_id is not None else None,
            reference_price=Decimal(str(raw.get("reference_price", raw.get("price", "0")) or "0")),
        )
    except (KeyError, ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid market entry {raw!r}: {e}") from e
