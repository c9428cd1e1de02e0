from __future__ import annotations

from decimal import Decimal

from deepdex_bot.core.types import InventoryState
from deepdex_bot.execution.quantizer import Numeric, to_decimal

_ZERO = Decimal("0")
_ONE = Decimal("1")
_HALF = Decimal("0.5")


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return min(max(value, low), high)


def inventory_skew(ratio: Numeric, target: Numeric, max_skew: Numeric, intensity: Numeric = 1) -> Decimal:
    """Bounded price shift from an inventory imbalance.

    ``(ratio - target) * 2 * intensity`` clamped to ``[-max_skew, max_skew]``.
    Positive means too much base: quotes move down.
    """
    bound = abs(to_decimal(max_skew))
    raw = (to_decimal(ratio) - to_decimal(target)) * 2 * to_decimal(intensity)
    return clamp(raw, -bound, bound)


def grid_inventory_ratio(base_balance: Numeric, grids: int, amount_per_grid: Numeric) -> Decimal:
    # a full grid of fills is treated as the maximum inventory
    capacity = to_decimal(amount_per_grid) * grids
    if capacity <= _ZERO:
        return _HALF
    return clamp(to_decimal(base_balance) / capacity, _ZERO, _ONE)


def value_inventory_ratio(base_balance: Numeric, quote_balance: Numeric, price: Numeric) -> Decimal:
    base_value = to_decimal(base_balance) * to_decimal(price)
    total = base_value + to_decimal(quote_balance)
    if total == _ZERO:
        return _HALF
    return base_value / total


def inventory_state(base_balance: Numeric, quote_balance: Numeric, price: Numeric) -> InventoryState:
    base = to_decimal(base_balance)
    quote = to_decimal(quote_balance)
    return InventoryState(base_balance=base, quote_balance=quote, ratio=value_inventory_ratio(base, quote, price))
