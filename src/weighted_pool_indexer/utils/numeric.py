"""Fixed-point helpers shared by every aggregation."""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Context, Decimal, localcontext
from typing import Optional, Union

from .constants import SECONDS_PER_DAY

# 34 significant digits matches the precision of on-chain BigDecimal values.
DECIMAL_CONTEXT = Context(prec=34, rounding=ROUND_HALF_EVEN)

ZERO_BD = Decimal(0)
ZERO_BI = 0

Numeric = Union[int, str, float, Decimal]


def to_decimal(value: Optional[Numeric]) -> Decimal:
    """Coerce ``value`` into a Decimal, treating ``None`` as zero."""

    if value is None:
        return ZERO_BD
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr keeps the shortest round-tripping form instead of the binary expansion
        return Decimal(repr(value))
    return Decimal(value)


def add(left: Decimal, right: Decimal) -> Decimal:
    return DECIMAL_CONTEXT.add(left, right)


def multiply(left: Decimal, right: Decimal) -> Decimal:
    return DECIMAL_CONTEXT.multiply(left, right)


def divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Divide under the shared context; callers guard the denominator."""

    return DECIMAL_CONTEXT.divide(numerator, denominator)


def scale_amount(raw_amount: int, decimals: int) -> Decimal:
    """Convert a raw integer token amount into whole units."""

    with localcontext(DECIMAL_CONTEXT):
        return Decimal(raw_amount).scaleb(-int(decimals))


def day_id(timestamp: int) -> int:
    """Unix day number containing ``timestamp`` (seconds)."""

    return int(timestamp) // SECONDS_PER_DAY


__all__ = [
    "DECIMAL_CONTEXT",
    "ZERO_BD",
    "ZERO_BI",
    "Numeric",
    "add",
    "day_id",
    "divide",
    "multiply",
    "scale_amount",
    "to_decimal",
]
