"""
Issuance Engine - Precise Fixed-Point Arithmetic.

============================================================
PURPOSE
============================================================
18-decimal fixed-point helpers used for every unit and
notional computation in the engine.

ROUNDING RULE:
    "Flows paid BY the caller round up.
     Flows paid TO the caller round down."

All helpers operate on Python ints. Unsigned helpers reject
negative operands so a sign error surfaces immediately
instead of silently flipping the rounding direction.

============================================================
"""

from decimal import Decimal
from typing import Tuple


# ============================================================
# CONSTANTS
# ============================================================

PRECISE_UNIT: int = 10 ** 18
"""1.0 in 18-decimal fixed point."""


# ============================================================
# GUARDS
# ============================================================

def _require_unsigned(*values: int) -> None:
    for value in values:
        if value < 0:
            raise ValueError(f"Unsigned operand expected, got {value}")


def _require_divisor(divisor: int) -> None:
    if divisor == 0:
        raise ZeroDivisionError("Cant divide by 0")


# ============================================================
# MULTIPLICATION
# ============================================================

def precise_mul(a: int, b: int) -> int:
    """Multiply two fixed-point values, rounding down."""
    _require_unsigned(a, b)
    return a * b // PRECISE_UNIT


def precise_mul_ceil(a: int, b: int) -> int:
    """
    Multiply two fixed-point values, rounding up.

    Returns 0 when either operand is 0.
    """
    _require_unsigned(a, b)
    if a == 0 or b == 0:
        return 0
    return (a * b - 1) // PRECISE_UNIT + 1


def precise_mul_signed(a: int, b: int) -> int:
    """Signed multiply, truncating toward zero."""
    product = a * b
    quotient = abs(product) // PRECISE_UNIT
    return -quotient if product < 0 else quotient


# ============================================================
# DIVISION
# ============================================================

def precise_div(a: int, b: int) -> int:
    """Divide two fixed-point values, rounding down."""
    _require_unsigned(a, b)
    _require_divisor(b)
    return a * PRECISE_UNIT // b


def precise_div_ceil(a: int, b: int) -> int:
    """Divide two fixed-point values, rounding up."""
    _require_unsigned(a, b)
    _require_divisor(b)
    if a == 0:
        return 0
    return (a * PRECISE_UNIT - 1) // b + 1


def mul_div(a: int, b: int, c: int) -> int:
    """floor(a * b / c)"""
    _require_unsigned(a, b, c)
    _require_divisor(c)
    return a * b // c


def mul_div_ceil(a: int, b: int, c: int) -> int:
    """ceil(a * b / c) computed as floor((a * b + c - 1) / c)."""
    _require_unsigned(a, b, c)
    _require_divisor(c)
    return (a * b + c - 1) // c


# ============================================================
# HELPERS
# ============================================================

def split_rounded(a: int, b: int) -> Tuple[int, int]:
    """
    Return (floor, ceil) of a * b / 1e18.

    Convenience for tests and diagnostics comparing both rounding
    directions of the same product.
    """
    return precise_mul(a, b), precise_mul_ceil(a, b)


def ether(value) -> int:
    """
    Convert a human amount to 18-decimal units.

    Accepts ints, strings and Decimals. Floats are converted through
    their shortest repr so ether(0.005) == 5 * 10**15.
    """
    amount = Decimal(str(value)) * PRECISE_UNIT
    if amount != amount.to_integral_value():
        raise ValueError(f"{value} has more than 18 decimals")
    return int(amount)
