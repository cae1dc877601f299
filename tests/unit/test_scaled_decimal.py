"""Tests for the ScaledDecimal fixed-point value object."""

from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from inventory_kernel.domain.values import (
    MONEY_SCALE,
    QUANTITY_SCALE,
    ScaledDecimal,
    money,
    percent,
    quantity,
)
from inventory_kernel.exceptions import ArithmeticDomainError, DivisionByZeroError


class TestConstruction:
    """Parsing from str, int and Decimal; rejection of floats."""

    def test_string_keeps_natural_scale(self):
        value = ScaledDecimal.of("10.50")
        assert value.units == 1050
        assert value.scale == 2
        assert str(value) == "10.50"

    def test_int_has_scale_zero(self):
        assert ScaledDecimal.of(42) == ScaledDecimal(42, 0)

    def test_decimal_with_positive_exponent(self):
        value = ScaledDecimal.of(Decimal("1E+2"))
        assert value.units == 100
        assert value.scale == 0

    def test_explicit_scale_truncates(self):
        assert str(ScaledDecimal.of("1.239", 2)) == "1.23"

    def test_explicit_scale_truncates_negative_toward_zero(self):
        assert str(ScaledDecimal.of("-1.239", 2)) == "-1.23"

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            ScaledDecimal.of(1.5)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            ScaledDecimal.of(True)

    def test_malformed_string_rejected(self):
        with pytest.raises(ValueError):
            ScaledDecimal.of("ten")

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError):
            ScaledDecimal.of("Infinity")

    def test_negative_scale_rejected(self):
        with pytest.raises(ValueError):
            ScaledDecimal(1, -1)

    def test_canonical_helpers(self):
        assert quantity("5").scale == QUANTITY_SCALE
        assert money("2.5").scale == MONEY_SCALE
        assert str(percent("5")) == "5.00"


class TestArithmetic:
    """Every operation names its output scale and truncates toward zero."""

    def test_add_at_requested_scale(self):
        result = ScaledDecimal.of("1.25").add("2.005", 2)
        assert str(result) == "3.25"

    def test_sub_can_go_negative(self):
        assert str(ScaledDecimal.of("5").sub("8", 6)) == "-3.000000"

    def test_mul_truncates(self):
        # 1.05 * 10.5 = 11.025
        assert str(ScaledDecimal.of("1.05").mul("10.5", 2)) == "11.02"

    def test_div_truncates_not_rounds(self):
        assert str(ScaledDecimal.of("2").div("3", 4)) == "0.6666"

    def test_div_negative_truncates_toward_zero(self):
        assert str(ScaledDecimal.of("-10").div("3", 4)) == "-3.3333"

    def test_div_by_zero(self):
        with pytest.raises(DivisionByZeroError) as exc_info:
            ScaledDecimal.of("1").div("0.000", 6)
        assert exc_info.value.code == "DIVISION_BY_ZERO"
        assert isinstance(exc_info.value, ArithmeticDomainError)

    def test_sum_of(self):
        total = ScaledDecimal.sum_of(["1.5", "2.25", ScaledDecimal.of("0.125")], 2)
        assert str(total) == "3.87"

    def test_negate_and_abs(self):
        value = ScaledDecimal.of("-0.005")
        assert str(value) == "-0.005"
        assert str(value.negate()) == "0.005"
        assert value.abs() == ScaledDecimal.of("0.005")

    def test_rescale_widens_exactly(self):
        assert str(ScaledDecimal.of("1.5").rescale(4)) == "1.5000"


class TestComparison:
    """Comparison is exact across scales."""

    def test_equal_across_scales(self):
        assert ScaledDecimal.of("10.50") == ScaledDecimal.of("10.5")
        assert hash(ScaledDecimal.of("10.50")) == hash(ScaledDecimal.of("10.5"))

    def test_no_tolerance(self):
        assert ScaledDecimal.of("1.000001") != ScaledDecimal.of("1")

    def test_ordering(self):
        assert ScaledDecimal.of("0.99") < ScaledDecimal.of("1.0")
        assert ScaledDecimal.of("1.0").compare("0.99") == 1
        assert ScaledDecimal.of("2") >= 2

    def test_predicates(self):
        assert ScaledDecimal.zero(6).is_zero
        assert ScaledDecimal.of("0.000001").is_positive
        assert ScaledDecimal.of("-0.1").is_negative


class TestProperties:
    """Algebraic properties over generated values."""

    @given(
        st.integers(min_value=-10**12, max_value=10**12),
        st.integers(min_value=-10**12, max_value=10**12),
        st.integers(min_value=0, max_value=8),
    )
    def test_add_commutes(self, a, b, scale):
        x = ScaledDecimal(a, 4)
        y = ScaledDecimal(b, 2)
        assert x.add(y, scale) == y.add(x, scale)

    @given(
        st.integers(min_value=-10**12, max_value=10**12),
        st.integers(min_value=0, max_value=6),
    )
    def test_rescale_never_grows_magnitude(self, units, scale):
        value = ScaledDecimal(units, 6)
        assert value.rescale(scale).abs() <= value.abs()

    @given(
        st.integers(min_value=-10**9, max_value=10**9),
        st.integers(min_value=1, max_value=10**6),
    )
    def test_div_matches_truncated_decimal(self, numerator, denominator):
        result = ScaledDecimal(numerator, 0).div(ScaledDecimal(denominator, 0), 6)
        exact = Decimal(numerator) / Decimal(denominator)
        assert abs(result.to_decimal() - exact) < Decimal("0.000001")
        assert abs(result.to_decimal()) <= abs(exact)
