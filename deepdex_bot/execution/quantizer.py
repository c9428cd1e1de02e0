from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, localcontext
from typing import Union

from deepdex_bot.core.types import MarketPair

Numeric = Union[str, int, float, Decimal]

_ZERO = Decimal("0")
_MIN_PRECISION = 28


def to_decimal(value: Numeric) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _decimal_places(granularity: Decimal) -> int:
    exponent = granularity.normalize().as_tuple().exponent
    return max(0, -int(exponent))


def _width(value: Decimal) -> int:
    # digits needed to hold the value exactly once its exponent is expanded
    _, digits, exponent = value.as_tuple()
    if not isinstance(exponent, int):
        return len(digits)
    return len(digits) + abs(exponent)


def _precision(*values: Decimal, extra: int = 0) -> int:
    return max(_MIN_PRECISION, sum(_width(v) for v in values) + abs(extra) + 2)


def quantize(value: Numeric, granularity: Numeric) -> str:
    """Round ``value`` to the nearest multiple of ``granularity`` (half up).

    The result carries as many decimal places as the granularity implies,
    e.g. ``0.01`` gives two. A zero granularity leaves the value untouched.
    Precision grows with the operands, so 18-decimal fixed-point integers
    come through exactly.
    """
    v = to_decimal(value)
    g = to_decimal(granularity)
    if g == _ZERO:
        return format(v, "f")
    places = _decimal_places(g)
    with localcontext() as ctx:
        ctx.prec = _precision(v, g, extra=places)
        steps = (v / g).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        return format((steps * g).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP), "f")


def floor_to_step(value: Numeric, step: Numeric) -> Decimal:
    """Largest multiple of ``step`` not above ``value``; never negative."""
    v = to_decimal(value)
    s = to_decimal(step)
    if v <= _ZERO:
        return _ZERO
    if s == _ZERO:
        return v
    with localcontext() as ctx:
        ctx.prec = _precision(v, s)
        return (v / s).to_integral_value(rounding=ROUND_DOWN) * s


def to_fixed_point(value: Numeric, decimals: int) -> int:
    v = to_decimal(value)
    with localcontext() as ctx:
        ctx.prec = _precision(v, extra=decimals)
        return int(v.scaleb(decimals).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_fixed_point(amount: int, decimals: int) -> Decimal:
    raw = Decimal(int(amount))
    with localcontext() as ctx:
        ctx.prec = _precision(raw)
        return raw.scaleb(-decimals)


def quantize_price(market: MarketPair, value: Numeric) -> Decimal:
    return Decimal(quantize(value, market.tick_size))


def quantize_size(market: MarketPair, value: Numeric) -> Decimal:
    size = Decimal(quantize(value, market.step_size))
    return size if size > _ZERO else _ZERO


def floor_size(market: MarketPair, value: Numeric) -> Decimal:
    """Size rounded down to the step, for selling no more than is held."""
    return floor_to_step(value, market.step_size)
