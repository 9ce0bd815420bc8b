"""
Numeric helpers shared by the scorers and the models.

Scores are rounded half-up (0.5 always rounds away from zero for positive
values) so that results are identical across platforms and Python versions.
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any


def round_half_up(value: float, places: int = 0) -> float:
    """Round a number half-up to the given number of decimal places."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_points(value: float) -> int:
    """Round a point amount half-up to a whole number of points."""
    return int(round_half_up(value))


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp a value into the closed range [lower, upper]."""
    return max(lower, min(value, upper))


def as_float(value: Any, default: float = 0.0) -> float:
    """
    Coerce a loosely-typed value into a finite float.

    Accepts numbers and numeric strings. Booleans, None, NaN, infinities
    and anything unparseable become the default.
    """
    if isinstance(value, bool) or value is None:
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def as_bool(value: Any) -> bool:
    """Coerce a loosely-typed value into a boolean."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "y", "1"}
    if isinstance(value, (int, float)):
        return value != 0
    return False
