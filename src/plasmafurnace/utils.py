from __future__ import annotations

import math

from plasmafurnace.errors import InvalidParameter

ABSOLUTE_ZERO_CELSIUS = -273.15

def kelvin_to_celsius(kelvin):
    """Convert Kelvin (a float or an array) to Celsius."""
    return kelvin + ABSOLUTE_ZERO_CELSIUS

def validate_positive(value: float, name: str) -> None:
    """Raise InvalidParameter unless value is a finite number > 0."""
    if not math.isfinite(value) or value <= 0.0:
        raise InvalidParameter(parameter=name, value=value, range="> 0.0")

def validate_non_negative(value: float, name: str) -> None:
    """Raise InvalidParameter unless value is a finite number >= 0."""
    if not math.isfinite(value) or value < 0.0:
        raise InvalidParameter(parameter=name, value=value, range=">= 0.0")

def validate_range(
    value: float,
    minimum: float,
    maximum: float,
    name: str,
    include_max: bool = True,
) -> None:
    """
    Raise InvalidParameter unless minimum <= value <= maximum.

    Args:
        value: Value to check.
        minimum: Inclusive lower bound.
        maximum: Upper bound.
        name: Parameter name used in the error.
        include_max: If False the upper bound is exclusive.
    """
    upper_ok = value <= maximum if include_max else value < maximum
    if not math.isfinite(value) or value < minimum or not upper_ok:
        closing = "]" if include_max else ")"
        raise InvalidParameter(parameter=name, value=value, range=f"[{minimum}, {maximum}{closing}")
