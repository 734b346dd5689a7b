"""
Fixed Point Math Tests.

Rounding direction of every helper, including the exact
ceil(a*b/1e18) formulation at its edges.
"""

import pytest

from issuance_engine import (
    PRECISE_UNIT,
    ether,
    mul_div,
    mul_div_ceil,
    precise_div,
    precise_div_ceil,
    precise_mul,
    precise_mul_ceil,
    precise_mul_signed,
)
from issuance_engine.precise_math import split_rounded


class TestPreciseMul:
    """Tests for multiplication helpers."""

    def test_exact_product(self):
        assert precise_mul(ether(2), ether(3)) == ether(6)
        assert precise_mul_ceil(ether(2), ether(3)) == ether(6)

    def test_floor_and_ceil_differ_on_remainder(self):
        third = PRECISE_UNIT // 3
        assert precise_mul(2, third) == 0
        assert precise_mul_ceil(2, third) == 1

    def test_ceil_of_zero_is_zero(self):
        assert precise_mul_ceil(0, ether(5)) == 0
        assert precise_mul_ceil(ether(5), 0) == 0

    def test_ceil_exactly_one_above_floor(self):
        for a, b in [(7, 3), (10 ** 18 + 1, 10 ** 17 + 3), (12345, 67890)]:
            floor, ceil = split_rounded(a, b)
            if (a * b) % PRECISE_UNIT:
                assert ceil == floor + 1
            else:
                assert ceil == floor

    def test_unsigned_operands_required(self):
        with pytest.raises(ValueError):
            precise_mul(-1, ether(1))
        with pytest.raises(ValueError):
            precise_mul_ceil(ether(1), -1)

    def test_signed_truncates_toward_zero(self):
        assert precise_mul_signed(-3, PRECISE_UNIT // 2) == -1
        assert precise_mul_signed(3, PRECISE_UNIT // 2) == 1
        assert precise_mul_signed(-ether(2), ether(3)) == -ether(6)


class TestPreciseDiv:
    """Tests for division helpers."""

    def test_exact_quotient(self):
        assert precise_div(ether(6), ether(3)) == ether(2)
        assert precise_div_ceil(ether(6), ether(3)) == ether(2)

    def test_rounding(self):
        assert precise_div(1, 3) == PRECISE_UNIT // 3
        assert precise_div_ceil(1, 3) == PRECISE_UNIT // 3 + 1

    def test_ceil_of_zero_is_zero(self):
        assert precise_div_ceil(0, 7) == 0

    def test_division_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            precise_div(1, 0)
        with pytest.raises(ZeroDivisionError):
            precise_div_ceil(1, 0)


class TestMulDiv:
    """Tests for mul_div helpers."""

    def test_mul_div(self):
        assert mul_div(10, 10, 3) == 33
        assert mul_div_ceil(10, 10, 3) == 34
        assert mul_div_ceil(9, 10, 3) == 30

    def test_division_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            mul_div_ceil(1, 1, 0)


class TestEther:
    """Tests for the human amount converter."""

    def test_conversions(self):
        assert ether(1) == 10 ** 18
        assert ether("0.005") == 5 * 10 ** 15
        assert ether(0.005) == 5 * 10 ** 15
        assert ether("100.5") == 1005 * 10 ** 17

    def test_too_many_decimals(self):
        with pytest.raises(ValueError):
            ether("0.0000000000000000001")
