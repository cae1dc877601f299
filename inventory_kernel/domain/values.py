"""
Values -- Immutable fixed-point decimal value object.

Responsibility:
    Provides ``ScaledDecimal``, the numeric type behind every quantity,
    cost, price and rate in the inventory core.  A value is a signed
    integer number of units plus a scale (count of fractional digits).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module, engine and service.

Invariants enforced:
    - Every arithmetic operation takes an explicit output scale and
      truncates toward zero on excess fractional digits (never rounds).
    - Division by zero raises ``DivisionByZeroError``.
    - Comparison is exact: ``10.50 == 10.5`` and there is no tolerance.
    - Floats are rejected at construction.

Failure modes:
    - TypeError on float (or other unsupported) input
    - ValueError on malformed strings, non-finite values or negative scale
    - DivisionByZeroError from ``div`` with a zero divisor

Audit relevance:
    Truncation is deterministic, so recomputing a BOM explosion or an
    order total from stored inputs reproduces historical figures exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, Union

from inventory_kernel.exceptions import DivisionByZeroError

# Canonical scales used across the system
QUANTITY_SCALE = 6
MONEY_SCALE = 4
RATE_SCALE = 4
PERCENT_SCALE = 2

ScaledInput = Union["ScaledDecimal", Decimal, int, str]


def _truncating_div(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero (floor division rounds down)."""
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


@dataclass(frozen=True, slots=True, eq=False)
class ScaledDecimal:
    """
    Fixed-point decimal: ``units / 10**scale``.

    Contract:
        Immutable.  Arithmetic methods (``add``, ``sub``, ``mul``, ``div``)
        require the caller to name the output scale; the exact result is
        truncated toward zero to that scale.

    Guarantees:
        - Hashable, with hash consistent with exact numeric equality
        - ``str()`` renders exactly ``scale`` fractional digits
        - Never touches binary floating point

    Non-goals:
        - No operator overloads for ``+ - * /``: an implicit scale would
          hide the truncation point.
    """

    units: int
    scale: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.units, bool) or not isinstance(self.units, int):
            raise TypeError(
                f"ScaledDecimal units must be int, got {type(self.units).__name__}"
            )
        if isinstance(self.scale, bool) or not isinstance(self.scale, int):
            raise TypeError("ScaledDecimal scale must be int")
        if self.scale < 0:
            raise ValueError(f"ScaledDecimal scale must be >= 0, got {self.scale}")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def of(cls, value: ScaledInput, scale: int | None = None) -> ScaledDecimal:
        """
        Build a value from str, int, Decimal or ScaledDecimal.

        Without ``scale`` the natural scale of the input is kept
        (``"10.50"`` -> scale 2).  With ``scale`` the value is rescaled,
        truncating toward zero.
        """
        if isinstance(value, ScaledDecimal):
            return value if scale is None else value.rescale(scale)
        if isinstance(value, float):
            raise TypeError("ScaledDecimal does not accept float input; use str or Decimal")
        if isinstance(value, bool):
            raise TypeError("ScaledDecimal does not accept bool input")
        if isinstance(value, int):
            result = cls(value, 0)
            return result if scale is None else result.rescale(scale)
        if isinstance(value, str):
            try:
                value = Decimal(value.strip())
            except InvalidOperation as e:
                raise ValueError(f"Invalid decimal string: {value!r}") from e
        if not isinstance(value, Decimal):
            raise TypeError(
                f"Cannot build ScaledDecimal from {type(value).__name__}"
            )
        if not value.is_finite():
            raise ValueError(f"ScaledDecimal requires a finite value, got {value}")

        sign, digits, exponent = value.as_tuple()
        units = int("".join(str(d) for d in digits) or "0")
        if sign:
            units = -units
        if exponent >= 0:
            result = cls(units * 10 ** exponent, 0)
        else:
            result = cls(units, -exponent)
        return result if scale is None else result.rescale(scale)

    @classmethod
    def zero(cls, scale: int = 0) -> ScaledDecimal:
        """Zero at the given scale."""
        return cls(0, scale)

    @classmethod
    def sum_of(cls, values: Iterable[ScaledInput], scale: int) -> ScaledDecimal:
        """Sum values exactly, truncating once to ``scale`` at each step."""
        total = cls.zero(scale)
        for value in values:
            total = total.add(value, scale)
        return total

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def rescale(self, scale: int) -> ScaledDecimal:
        """Same value at another scale, truncating toward zero when narrowing."""
        if scale < 0:
            raise ValueError(f"Scale must be >= 0, got {scale}")
        if scale == self.scale:
            return self
        if scale > self.scale:
            return ScaledDecimal(self.units * 10 ** (scale - self.scale), scale)
        return ScaledDecimal(
            _truncating_div(self.units, 10 ** (self.scale - scale)), scale
        )

    def add(self, other: ScaledInput, scale: int) -> ScaledDecimal:
        a, b, common = self._aligned(_coerce(other))
        return ScaledDecimal(a + b, common).rescale(scale)

    def sub(self, other: ScaledInput, scale: int) -> ScaledDecimal:
        a, b, common = self._aligned(_coerce(other))
        return ScaledDecimal(a - b, common).rescale(scale)

    def mul(self, other: ScaledInput, scale: int) -> ScaledDecimal:
        o = _coerce(other)
        return ScaledDecimal(self.units * o.units, self.scale + o.scale).rescale(scale)

    def div(self, other: ScaledInput, scale: int) -> ScaledDecimal:
        """
        Divide, producing a result at ``scale`` truncated toward zero.

        Raises:
            DivisionByZeroError: if ``other`` is zero.
        """
        if scale < 0:
            raise ValueError(f"Scale must be >= 0, got {scale}")
        o = _coerce(other)
        if o.units == 0:
            raise DivisionByZeroError(self, scale)
        # (A / 10^sa) / (B / 10^sb) = A * 10^sb / (B * 10^sa)
        numerator = self.units * 10 ** (o.scale + scale)
        denominator = o.units * 10 ** self.scale
        return ScaledDecimal(_truncating_div(numerator, denominator), scale)

    def negate(self) -> ScaledDecimal:
        return ScaledDecimal(-self.units, self.scale)

    def abs(self) -> ScaledDecimal:
        return ScaledDecimal(abs(self.units), self.scale)

    def __neg__(self) -> ScaledDecimal:
        return self.negate()

    def __abs__(self) -> ScaledDecimal:
        return self.abs()

    # ------------------------------------------------------------------
    # Predicates and comparison
    # ------------------------------------------------------------------

    @property
    def is_zero(self) -> bool:
        return self.units == 0

    @property
    def is_positive(self) -> bool:
        return self.units > 0

    @property
    def is_negative(self) -> bool:
        return self.units < 0

    def compare(self, other: ScaledInput) -> int:
        """Return -1, 0 or 1 as self is less than, equal to or greater than other."""
        a, b, _ = self._aligned(_coerce(other))
        return (a > b) - (a < b)

    def _aligned(self, other: ScaledDecimal) -> tuple[int, int, int]:
        common = max(self.scale, other.scale)
        return (
            self.units * 10 ** (common - self.scale),
            other.units * 10 ** (common - other.scale),
            common,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, (ScaledDecimal, int, Decimal)) or isinstance(other, bool):
            return NotImplemented
        return self.compare(other) == 0

    def __hash__(self) -> int:
        return hash(self.to_decimal())

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, (ScaledDecimal, int, Decimal)):
            return NotImplemented
        return self.compare(other) < 0

    def __le__(self, other: object) -> bool:
        if not isinstance(other, (ScaledDecimal, int, Decimal)):
            return NotImplemented
        return self.compare(other) <= 0

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, (ScaledDecimal, int, Decimal)):
            return NotImplemented
        return self.compare(other) > 0

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, (ScaledDecimal, int, Decimal)):
            return NotImplemented
        return self.compare(other) >= 0

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_decimal(self) -> Decimal:
        return Decimal(self.units).scaleb(-self.scale)

    def __str__(self) -> str:
        sign = "-" if self.units < 0 else ""
        digits = str(abs(self.units))
        if self.scale == 0:
            return f"{sign}{digits}"
        digits = digits.rjust(self.scale + 1, "0")
        return f"{sign}{digits[:-self.scale]}.{digits[-self.scale:]}"

    def __repr__(self) -> str:
        return f"ScaledDecimal('{self}')"


def _coerce(value: ScaledInput) -> ScaledDecimal:
    if isinstance(value, ScaledDecimal):
        return value
    return ScaledDecimal.of(value)


def quantity(value: ScaledInput) -> ScaledDecimal:
    """Parse a quantity at the canonical quantity scale."""
    return ScaledDecimal.of(value, QUANTITY_SCALE)


def money(value: ScaledInput) -> ScaledDecimal:
    """Parse a monetary amount at the canonical money scale."""
    return ScaledDecimal.of(value, MONEY_SCALE)


def percent(value: ScaledInput) -> ScaledDecimal:
    """Parse a percentage (waste factor, tax rate) at scale 2."""
    return ScaledDecimal.of(value, PERCENT_SCALE)
