"""Module for miscellaneous multi-use functions"""

__all__ = ['clamp', 'round_half_up']


def clamp(value: float, lower: float, upper: float) -> float:
    """
    Bound a value to the closed interval [lower, upper].

    Args:
        value:
            The value to bound

        lower:
            The smallest permitted value

        upper:
            The largest permitted value

    Returns:
        float
    """
    if lower > upper:
        raise ValueError(f'lower bound {lower} must not exceed upper bound {upper}')

    return max(lower, min(upper, value))


def round_half_up(value: float, precision) -> float:
    """
    Rounds numbers to the nearest whole, where a value exactly between the two nearest
    wholes is rounded to the higher whole.

    Args:
        value:
            The float value to be rounded
        precision:
            The precision to round the float value to

    """
    mod = value + 10 ** -(precision + 12)

    return round(mod, precision)
