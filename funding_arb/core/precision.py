"""
Precision Engine
================
Rounds quantities and prices to a venue's minimum increment.

Venues reject amounts with more decimal places than their tick/lot size,
so every value is snapped to the increment and then re-rounded to the
increment's own decimal places. The arithmetic goes through Decimal built
from the shortest float repr, which keeps results free of binary noise
(0.29 / 0.01 is 28.999999999999996 in float arithmetic).
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP
from enum import Enum
from typing import Any


class RoundingMode(Enum):
    FLOOR = ROUND_FLOOR
    CEIL = ROUND_CEILING
    NEAREST = ROUND_HALF_UP


def decimal_places(increment: float) -> int:
    """
    Number of fractional digits implied by an increment.

    0.0001 -> 4, 0.5 -> 1, 1 -> 0, 10 -> 0
    """
    text = f"{increment:.10f}"
    if "." not in text:
        return 0
    return len(text.split(".")[1].rstrip("0"))


def round_to_min_change(
    value: float,
    min_change: float,
    mode: RoundingMode = RoundingMode.NEAREST
) -> float:
    """
    Round a non-negative value to a multiple of min_change.

    Args:
        value: Quantity or price to round
        min_change: Venue's minimum increment (tick or lot size)
        mode: FLOOR, CEIL or NEAREST (half away from zero)

    Returns:
        The rounded value, with no more decimal places than min_change
    """
    if value == 0:
        return 0.0
    if min_change <= 0:
        raise ValueError(f"Minimum increment must be positive, got {min_change}")

    increment = Decimal(repr(float(min_change)))
    steps = (Decimal(repr(float(value))) / increment).to_integral_value(rounding=mode.value)
    places = decimal_places(min_change)
    result = (steps * increment).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    return float(result)


def format_to_increment(value: float, increment: float) -> str:
    """Render a rounded value with exactly the increment's decimal places"""
    return f"{value:.{decimal_places(increment)}f}"


def parse_number(value: Any, field_name: str = "value") -> float:
    """Parse a venue decimal string, naming the field on failure"""
    if value is None:
        raise ValueError(f"Missing numeric field '{field_name}'")
    try:
        return float(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Unparsable numeric field '{field_name}': {value!r}")


@dataclass(frozen=True)
class PrecisionSpec:
    """Minimum increment for one field (price or size) of one market"""
    min_increment: float

    @property
    def decimals(self) -> int:
        return decimal_places(self.min_increment)

    def round(self, value: float, mode: RoundingMode = RoundingMode.NEAREST) -> float:
        return round_to_min_change(value, self.min_increment, mode)

    def format(self, value: float) -> str:
        return format_to_increment(value, self.min_increment)
