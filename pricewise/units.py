"""Canonical unit conversion.

Every inventory item is compared in one canonical unit per dimension:
grams for mass, millilitres for volume, ``unit`` for counts, metres for
length and square metres for area. Unit names are matched
case-insensitively.
"""

import math
from dataclasses import dataclass
from typing import Optional

MASS = "mass"
VOLUME = "volume"
COUNT = "count"
LENGTH = "length"
AREA = "area"

CANONICAL_UNITS: dict[str, str] = {
    MASS: "g",
    VOLUME: "ml",
    COUNT: "unit",
    LENGTH: "m",
    AREA: "m2",
}

# Factor from each unit to its dimension's canonical unit
_CONVERSIONS: dict[str, dict[str, float]] = {
    MASS: {
        "g": 1,
        "kg": 1000,
        "mg": 0.001,
        "μg": 0.000001,
        "mcg": 0.000001,
        "t": 1000000,
        "lb": 453.592,
        "lbs": 453.592,
        "oz": 28.3495,
        "stone": 6350.29,
    },
    VOLUME: {
        "ml": 1,
        "l": 1000,
        "liter": 1000,
        "litre": 1000,
        "cl": 10,
        "dl": 100,
        "gal": 3785.41,
        "gallon": 3785.41,
        "qt": 946.353,
        "quart": 946.353,
        "pt": 473.176,
        "pint": 473.176,
        "cup": 236.588,
        "fl oz": 29.5735,
        "floz": 29.5735,
        "tbsp": 14.7868,
        "tablespoon": 14.7868,
        "tsp": 4.92892,
        "teaspoon": 4.92892,
        # Imperial (UK)
        "uk gal": 4546.09,
        "uk qt": 1136.52,
        "uk pt": 568.261,
        "uk fl oz": 28.4131,
    },
    COUNT: {
        "unit": 1,
        "units": 1,
        "piece": 1,
        "pieces": 1,
        "each": 1,
        "ea": 1,
        "item": 1,
        "items": 1,
        "count": 1,
        "ct": 1,
        "dozen": 12,
        "dz": 12,
        "pair": 2,
        "pack": 1,
        "box": 1,
        "tablet": 1,
        "tablets": 1,
        "tab": 1,
        "tabs": 1,
        "capsule": 1,
        "capsules": 1,
        "cap": 1,
        "caps": 1,
        "pill": 1,
        "pills": 1,
    },
    LENGTH: {
        "m": 1,
        "meter": 1,
        "metre": 1,
        "metres": 1,
        "km": 1000,
        "cm": 0.01,
        "mm": 0.001,
        "μm": 0.000001,
        "ft": 0.3048,
        "foot": 0.3048,
        "feet": 0.3048,
        "in": 0.0254,
        "inch": 0.0254,
        "inches": 0.0254,
        "yd": 0.9144,
        "yard": 0.9144,
        "yards": 0.9144,
        "mi": 1609.34,
        "mile": 1609.34,
        "miles": 1609.34,
    },
    AREA: {
        "m2": 1,
        "m²": 1,
        "sq m": 1,
        "km2": 1000000,
        "cm2": 0.0001,
        "mm2": 0.000001,
        "ha": 10000,
        "sq ft": 0.092903,
        "ft2": 0.092903,
        "sq in": 0.00064516,
        "in2": 0.00064516,
        "sq yd": 0.836127,
        "yd2": 0.836127,
        "acre": 4046.86,
    },
}

_UNIT_DIMENSIONS: dict[str, str] = {
    unit: dimension
    for dimension, factors in _CONVERSIONS.items()
    for unit in factors
}


@dataclass
class UnitConversion:
    """Result of converting an amount into its canonical unit."""

    is_valid: bool
    canonical_amount: Optional[float] = None
    canonical_unit: Optional[str] = None
    error_message: Optional[str] = None


def _key(unit: str) -> str:
    return " ".join(unit.strip().lower().split())


def get_canonical_unit(dimension: str) -> str:
    """Canonical unit for a dimension; raises ValueError for unknown dimensions."""
    try:
        return CANONICAL_UNITS[dimension]
    except KeyError:
        raise ValueError(f"No canonical unit defined for dimension: {dimension}") from None


def get_unit_dimension(unit: str) -> Optional[str]:
    return _UNIT_DIMENSIONS.get(_key(unit))


def is_supported_unit(unit: str) -> bool:
    return _key(unit) in _UNIT_DIMENSIONS


def are_units_compatible(from_unit: str, to_unit: str) -> bool:
    from_dim = get_unit_dimension(from_unit)
    return from_dim is not None and from_dim == get_unit_dimension(to_unit)


def get_conversion_factor(from_unit: str, to_unit: str) -> Optional[float]:
    """Multiplier converting an amount in from_unit to to_unit, or None."""
    if _key(from_unit) == _key(to_unit):
        return 1.0
    if not are_units_compatible(from_unit, to_unit):
        return None
    factors = _CONVERSIONS[get_unit_dimension(from_unit)]
    return factors[_key(from_unit)] / factors[_key(to_unit)]


def convert_amount(amount: float, from_unit: str, to_unit: str) -> Optional[float]:
    factor = get_conversion_factor(from_unit, to_unit)
    if factor is None:
        return None
    return amount * factor


def validate_and_convert(amount: float, unit: str, dimension: str) -> UnitConversion:
    """
    Validate an amount/unit pair and convert it to the dimension's canonical unit.

    Args:
        amount: Quantity in ``unit`` (must be finite and non-negative)
        unit: Unit name, e.g. ``"kg"`` or ``"fl oz"``
        dimension: Expected dimension, e.g. ``"mass"``

    Returns:
        UnitConversion with either the canonical amount or an error message
    """
    if amount is None or not math.isfinite(amount) or amount < 0:
        return UnitConversion(False, error_message="Amount must be a positive finite number")

    unit_dimension = get_unit_dimension(unit)
    if unit_dimension is None:
        return UnitConversion(False, error_message=f"Unsupported unit: {unit}")

    if unit_dimension != dimension:
        return UnitConversion(
            False,
            error_message=(
                f"Unit {unit} ({unit_dimension}) does not match expected dimension {dimension}"
            ),
        )

    canonical_unit = get_canonical_unit(dimension)
    return UnitConversion(
        True,
        canonical_amount=amount * _CONVERSIONS[dimension][_key(unit)],
        canonical_unit=canonical_unit,
    )


def get_supported_units(dimension: str) -> list[str]:
    return sorted(_CONVERSIONS.get(dimension, {}))


def format_amount(amount: float, unit: str, decimals: int = 2) -> str:
    return f"{amount:.{decimals}f} {unit}"
