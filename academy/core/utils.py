import math


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, like Math.round"""
    return int(math.floor(value + 0.5))


def percentage_of(part: float, whole: float) -> int:
    """Whole-number percentage, 0 when there is nothing to divide by"""
    if not whole:
        return 0
    return round_half_up(part / whole * 100)
