"""Rounding helpers shared by the scheduler and metrics."""

import math


def round_half_up(value: float, ndigits: int = 0) -> float:
    """
    Round halves upward (2.5 -> 3, 0.25 -> 0.3), unlike the builtin round().
    """
    factor = 10**ndigits
    # Trim float noise first, e.g. 0.15 * 10 == 1.4999999999999998
    scaled = round(value * factor, 9)
    return math.floor(scaled + 0.5) / factor


def round_half_up_int(value: float) -> int:
    return int(round_half_up(value))
