"""
Error taxonomy for geoaura.

Messages never carry coordinate values; only the name of the offending field
and the permitted range are reported.
"""

__all__ = [
    'GeoAuraError', 'InvalidCell', 'InvalidCoordinate', 'LowDensityCell',
    'LOW_DENSITY_CELL', 'QueryTimeout', 'StateNotFound', 'is_low_density',
]


class GeoAuraError(Exception):
    """Base class for all geoaura errors"""


class InvalidCoordinate(GeoAuraError, ValueError):
    """A latitude/longitude was missing, non-finite, or outside its valid range"""


class InvalidCell(GeoAuraError, ValueError):
    """A cell identifier is malformed or has an unsupported resolution"""


class QueryTimeout(GeoAuraError):
    """An occupancy lookup could not complete before the query deadline"""


class StateNotFound(GeoAuraError, KeyError):
    """No AuraState exists (yet) for the requested user"""


class LowDensityCell:
    """
    Sentinel returned by the anonymity resolver when no ancestor of a cell, within the
    permitted coarsening depth, holds enough occupants to be disclosed. It is a value,
    not an exception: callers widen the search instead of failing.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return '<LowDensityCell>'

    def __reduce__(self):
        return (LowDensityCell, ())


LOW_DENSITY_CELL = LowDensityCell()


def is_low_density(cell) -> bool:
    """Test whether a resolver result is the low-density sentinel"""
    return cell is LOW_DENSITY_CELL
