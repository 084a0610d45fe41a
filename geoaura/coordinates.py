"""
Representation of a specific point on earth
"""

__all__ = ['Coordinate', 'CoordinateLike']

import math
from typing import Any, Mapping, Tuple, Union

from geoaura.exceptions import InvalidCoordinate


def _checked(value: Union[float, int, str], name: str, bound: float) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise InvalidCoordinate(f'{name} must be numeric') from None

    if not math.isfinite(out) or not -bound <= out <= bound:
        raise InvalidCoordinate(f'{name} must be within [-{bound:g}, {bound:g}]')

    return out


class Coordinate:
    """
    Representation of a coordinate on the globe (i.e., a lon/lat pair).

    Out-of-range values raise InvalidCoordinate instead of wrapping around the
    poles or the antimeridian. The repr is redacted.
    """

    def __init__(
        self,
        longitude: Union[float, int, str],
        latitude: Union[float, int, str],
    ):
        self.longitude = _checked(longitude, 'longitude', 180.)
        self.latitude = _checked(latitude, 'latitude', 90.)

    def __eq__(self, other):
        if not isinstance(other, Coordinate):
            return False

        return (
            self.latitude == other.latitude and
            self.longitude == other.longitude
        )

    def __hash__(self):
        return hash((self.longitude, self.latitude))

    def __repr__(self):
        return '<Coordinate(redacted)>'

    @classmethod
    def from_mapping(cls, data: dict) -> 'Coordinate':
        """
        Create a Coordinate from a transport payload such as
        {"latitude": 52.52, "longitude": 13.40}.

        Raises:
            InvalidCoordinate: when either key is missing or out of range
        """
        try:
            longitude, latitude = data['longitude'], data['latitude']
        except KeyError as exc:
            raise InvalidCoordinate(f'missing field {exc.args[0]!r}') from None
        except TypeError:
            raise InvalidCoordinate('coordinate must be a mapping of latitude and longitude') from None

        return cls(longitude, latitude)

    @classmethod
    def coerce(cls, value: 'CoordinateLike') -> 'Coordinate':
        """
        A Coordinate as-is, or one built from a transport mapping (see `from_mapping`).

        Raises:
            InvalidCoordinate: for anything else
        """
        if isinstance(value, cls):
            return value
        return cls.from_mapping(value)

    def to_float(self, reverse: bool = False) -> Tuple[float, float]:
        """
        Converts the coordinate to a tuple of floats (longitude, latitude).

        Args:
            reverse: (bool)
                (Default False) If True, reverses the coordinate order to (latitude, longitude)

        Returns:
            Tuple of (longitude, latitude)
        """
        if reverse:
            return self.latitude, self.longitude
        return self.longitude, self.latitude


CoordinateLike = Union[Coordinate, Mapping[str, Any]]
