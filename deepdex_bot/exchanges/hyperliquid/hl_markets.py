from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List

from deepdex_bot.core.types import MarketPair, TokenInfo

SPOT_MAX_DECIMALS = 8
PERP_MAX_DECIMALS = 6
PERP_QUOTE = TokenInfo(symbol="USDC", decimals=6)


def _unit(decimals: int) -> Decimal:
    return Decimal(1).scaleb(-max(0, int(decimals)))


def spot_pairs(spot_meta: Dict[str, Any]) -> List[MarketPair]:
    tokens = {int(t["index"]): t for t in spot_meta.get("tokens", [])}
    out: List[MarketPair] = []
    for entry in spot_meta.get("universe", []):
        try:
            base_raw, quote_raw = (tokens[int(i)] for i in entry["tokens"][:2])
        except (KeyError, ValueError):
            continue
        sz_decimals = int(base_raw.get("szDecimals", 0))
        base = TokenInfo(symbol=str(base_raw["name"]), decimals=int(base_raw.get("weiDecimals", sz_decimals)),
                         address=base_raw.get("tokenId"))
        quote = TokenInfo(symbol=str(quote_raw["name"]), decimals=int(quote_raw.get("weiDecimals", 6)),
                          address=quote_raw.get("tokenId"))
        out.append(
            MarketPair(
                identifier=f"{base.symbol}/{quote.symbol}",
                base=base,
                quote=quote,
                tick_size=_unit(SPOT_MAX_DECIMALS - sz_decimals),
                step_size=_unit(sz_decimals),
                # the SDK addresses spot books by their universe name ("PURR/USDC" or "@107")
                pair_id=str(entry["name"]),
                is_perp=False,
                label=str(entry["name"]),
            )
        )
    return out


def perp_pairs(meta: Dict[str, Any]) -> List[MarketPair]:
    out: List[MarketPair] = []
    for index, entry in enumerate(meta.get("universe", [])):
        if entry.get("isDelisted"):
            continue
        name = str(entry["name"])
        sz_decimals = int(entry.get("szDecimals", 0))
        out.append(
            MarketPair(
                identifier=f"{name}-PERP",
                base=TokenInfo(symbol=name, decimals=sz_decimals),
                quote=PERP_QUOTE,
                tick_size=_unit(PERP_MAX_DECIMALS - sz_decimals),
                step_size=_unit(sz_decimals),
                pair_id=str(index),
                is_perp=True,
                label=name,
                market_id=index,
            )
        )
    return out


def fetch_market_pairs(info: Any) -> List[MarketPair]:
    """Spot then perp markets from the venue metadata."""
    return spot_pairs(info.spot_meta()) + perp_pairs(info.meta())
