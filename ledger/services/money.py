"""Money / rounding helpers.

Centralized so validation, persistence and the query engine use identical
rounding semantics. Amounts travel as floats in major units at the edges and
as integer minor units in storage; every conversion goes through `Decimal`
built from the float's shortest repr so no binary rounding error leaks in.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP

from ledger.models.constants import MINOR_UNITS_PER_MAJOR

_CENT = Decimal("0.01")
_ONE = Decimal("1")


def to_decimal(value: float) -> Decimal:
    return Decimal(repr(value)) if isinstance(value, float) else Decimal(value)


def round2(value: float) -> float:
    return float(to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP))


def to_minor_units(amount: float) -> int:
    minor = to_decimal(amount) * MINOR_UNITS_PER_MAJOR
    return int(minor.quantize(_ONE, rounding=ROUND_HALF_UP))


def to_display_units(minor: int) -> float:
    return float(Decimal(minor) / MINOR_UNITS_PER_MAJOR)
