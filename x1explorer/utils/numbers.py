"""Rounding for displayed figures.

Values shown on explorer pages round ties away from zero (2.5 -> 3,
12.25 -> 12.3) rather than to the even neighbour as round() does.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union


def round_half_up(value: float, digits: int = 0) -> Union[int, float]:
    """Round to `digits` decimal places, ties away from zero.

    The float is converted exactly, so 12.25 stored as 12.2500000001
    rounds up and one stored as 12.2499999999 rounds down.

    Returns an int when digits is 0, a float otherwise.
    """
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
    if digits == 0:
        return int(rounded)
    return float(rounded)
