"""
Module for the GeoCell codec.

Cells are base-32 Niemeyer geohashes. The resolution level of a cell is its
length; the ancestor of a cell at a coarser resolution is its prefix, so
coarsening is always monotonic.
"""

__all__ = [
    'approx_center', 'cell_area_km2', 'cell_extent_km', 'decode_bounds', 'encode',
    'is_ancestor', 'neighbors', 'parent', 'resolution_of', 'ring', 'ring_distance',
    'rings', 'search_resolution', 'validate_cell',
]

from functools import lru_cache
import math
from typing import List, Optional, Set, Tuple

import numpy as np
from pydantic import validate_call

from geoaura._const import GEOHASH_BITS, GEOHASH_CHARSET, MAX_RESOLUTION, MIN_RESOLUTION
from geoaura.calc import km_per_degree_latitude, km_per_degree_longitude, spherical_rect_area_km2
from geoaura.coordinates import Coordinate, CoordinateLike
from geoaura.exceptions import InvalidCell

_INVERSE = {char: idx for idx, char in enumerate(GEOHASH_CHARSET)}

# Longitudinal cell widths collapse toward the poles; widths are evaluated no
# further poleward than this when sizing search rings
_POLAR_CAP_LATITUDE = 85.0


def _check_resolution(resolution: int) -> int:
    if not MIN_RESOLUTION <= resolution <= MAX_RESOLUTION:
        raise InvalidCell(
            f'resolution must be between {MIN_RESOLUTION} and {MAX_RESOLUTION}, '
            f'not {resolution}'
        )
    return resolution


def validate_cell(cell_id: str) -> str:
    """
    Confirm that a string is a well-formed cell identifier.

    Args:
        cell_id:
            A cell identifier

    Returns:
        The cell identifier, unchanged

    Raises:
        InvalidCell: for non-strings, unsupported lengths, or characters outside
            the geohash alphabet
    """
    if not isinstance(cell_id, str):
        raise InvalidCell(f'cell id must be a string, not {type(cell_id).__name__}')

    _check_resolution(len(cell_id))
    for character in cell_id:
        if character not in _INVERSE:
            raise InvalidCell(f'invalid character in cell id: {character}')

    return cell_id


def _decode(cell_id: str) -> Tuple[float, float, float, float]:
    """
    Converts a cell into the center lon/lat with corresponding error margins.

    Returns:
        longitude, latitude, longitude_error, latitude_error
    """
    lat_interval = [-90., 90.]
    lon_interval = [-180., 180.]
    lon_error, lat_error = 180., 90.
    lon_component = True

    for character in cell_id:
        character_decoded = _INVERSE[character]
        for mask in GEOHASH_BITS:
            if lon_component:
                lon_error /= 2.0
                if character_decoded & mask != 0:
                    lon_interval[0] = (lon_interval[0] + lon_interval[1]) / 2.0
                else:
                    lon_interval[1] = (lon_interval[0] + lon_interval[1]) / 2.0
            else:
                lat_error /= 2.0
                if character_decoded & mask != 0:
                    lat_interval[0] = (lat_interval[0] + lat_interval[1]) / 2.0
                else:
                    lat_interval[1] = (lat_interval[0] + lat_interval[1]) / 2.0
            lon_component = not lon_component

    lat = (lat_interval[0] + lat_interval[1]) / 2.0
    lon = (lon_interval[0] + lon_interval[1]) / 2.0

    return lon, lat, lon_error, lat_error


def _encode(lon: float, lat: float, length: int) -> str:
    """Find the cell (of a specific length) in which a lon/lat pair falls."""
    cell_id = ''
    lat_interval = [-90., 90.]
    lon_interval = [-180., 180.]
    character, bit = 0, 0
    lon_component = True

    while len(cell_id) < length:
        if lon_component:
            mid = (lon_interval[0] + lon_interval[1]) / 2.0
            if lon > mid:
                character |= GEOHASH_BITS[bit]
                lon_interval[0] = mid
            else:
                lon_interval[1] = mid
        else:
            mid = (lat_interval[0] + lat_interval[1]) / 2.0
            if lat > mid:
                character |= GEOHASH_BITS[bit]
                lat_interval[0] = mid
            else:
                lat_interval[1] = mid

        if bit < len(GEOHASH_BITS) - 1:
            bit += 1
        else:
            cell_id += GEOHASH_CHARSET[character]
            character, bit = 0, 0

        lon_component = not lon_component

    return cell_id


def _wrap_longitude(lon: float) -> float:
    return (lon + 180.) % 360. - 180.


@validate_call(config=dict(arbitrary_types_allowed=True, hide_input_in_errors=True))
def encode(coord: CoordinateLike, resolution: int) -> str:
    """
    Find the cell in which a coordinate falls.

    Args:
        coord:
            The coordinate to encode, or a {"latitude", "longitude"} mapping

        resolution:
            The resolution level (cell id length), 1 through 12

    Returns:
        (str) the cell id
    """
    _check_resolution(resolution)
    coord = Coordinate.coerce(coord)
    return _encode(coord.longitude, coord.latitude, resolution)


def decode_bounds(cell_id: str) -> Tuple[float, float, float, float]:
    """
    The bounding rectangle of a cell.

    Returns:
        min_lon, min_lat, max_lon, max_lat
    """
    lon, lat, lon_err, lat_err = _decode(validate_cell(cell_id))
    return lon - lon_err, lat - lat_err, lon + lon_err, lat + lat_err


def approx_center(cell_id: str) -> Coordinate:
    """The center of a cell. Only as precise as the cell itself."""
    lon, lat, _, _ = _decode(validate_cell(cell_id))
    return Coordinate(lon, lat)


def resolution_of(cell_id: str) -> int:
    return len(validate_cell(cell_id))


def parent(cell_id: str, resolution: Optional[int] = None) -> str:
    """
    The ancestor of a cell at a coarser resolution.

    Args:
        cell_id:
            A cell id

        resolution: (Default None)
            The target resolution; if not provided, one level coarser than the cell

    Returns:
        str
    """
    validate_cell(cell_id)
    if resolution is None:
        resolution = len(cell_id) - 1

    _check_resolution(resolution)
    if resolution > len(cell_id):
        raise InvalidCell(
            f'cannot coarsen a resolution {len(cell_id)} cell to resolution {resolution}'
        )

    return cell_id[:resolution]


def is_ancestor(ancestor: str, cell_id: str) -> bool:
    """True if `ancestor` contains `cell_id` (a cell is its own ancestor)"""
    return cell_id.startswith(ancestor)


@lru_cache(maxsize=64)
def _ring_offsets(k: int) -> Tuple[Tuple[int, int], ...]:
    """Grid offsets (d_lon, d_lat) at exact Chebyshev distance k, clockwise from north"""
    if k == 0:
        return ((0, 0),)

    span = np.arange(-k, k + 1)
    d_lon, d_lat = np.meshgrid(span, span)
    mask = np.maximum(np.abs(d_lon), np.abs(d_lat)) == k
    pairs = zip(d_lon[mask].tolist(), d_lat[mask].tolist())
    return tuple(sorted(pairs, key=lambda x: (math.atan2(x[0], x[1]) + 2 * math.pi) % (2 * math.pi)))


def ring(cell_id: str, k: int) -> Set[str]:
    """
    Find all cells, at the same resolution, exactly `k` cells away from a cell
    (Chebyshev distance). Ring 0 is the cell itself.

    Rows beyond the poles are dropped; columns wrap around the antimeridian.

    Args:
        cell_id:
            The central cell

        k:
            The ring index

    Returns:
        set of cell ids
    """
    if k < 0:
        raise ValueError(f'ring index must be non-negative, not {k}')

    length = len(validate_cell(cell_id))
    lon, lat, lon_err, lat_err = _decode(cell_id)

    out = set()
    for d_lon, d_lat in _ring_offsets(k):
        y = lat + d_lat * lat_err * 2
        if not -90. < y < 90.:
            continue
        x = _wrap_longitude(lon + d_lon * lon_err * 2)
        out.add(_encode(x, y, length))

    if k > 0:
        out.discard(cell_id)
    return out


def rings(cell_id: str, k: int) -> List[Set[str]]:
    """
    Cells within `k` rings of a cell, grouped by ring. Each cell appears only in
    the innermost ring that reaches it (relevant near the poles and for very
    coarse cells, where rings overlap).

    Returns:
        A list of length k + 1; element i holds the cells of ring i
    """
    seen = {validate_cell(cell_id)}
    out = [{cell_id}]
    for idx in range(1, k + 1):
        current = ring(cell_id, idx) - seen
        seen |= current
        out.append(current)

    return out


def neighbors(cell_id: str) -> Set[str]:
    """The (up to) 8 cells adjacent to a cell"""
    return ring(cell_id, 1)


def ring_distance(cell_a: str, cell_b: str) -> int:
    """
    The Chebyshev distance, in cells, between two cells of the same resolution;
    0 for the same cell, 1 for adjacent cells.

    Raises:
        InvalidCell: if the cells have different resolutions
    """
    validate_cell(cell_a)
    validate_cell(cell_b)
    if len(cell_a) != len(cell_b):
        raise InvalidCell('ring distance requires cells of the same resolution')

    lon_a, lat_a, lon_err, lat_err = _decode(cell_a)
    lon_b, lat_b, _, _ = _decode(cell_b)

    d_lat = round((lat_b - lat_a) / (lat_err * 2))
    d_lon = round(_wrap_longitude(lon_b - lon_a) / (lon_err * 2))
    return max(abs(d_lat), abs(d_lon))


def _cell_degrees(resolution: int) -> Tuple[float, float]:
    """Width and height of any cell at a resolution, in degrees"""
    bits = 5 * resolution
    lon_bits = math.ceil(bits / 2)
    lat_bits = bits // 2
    return 360. / 2 ** lon_bits, 180. / 2 ** lat_bits


def cell_extent_km(cell_id: str) -> Tuple[float, float]:
    """
    Approximate width and height of a cell, in km, measured through its center.

    Returns:
        width_km, height_km
    """
    lon_deg, lat_deg = _cell_degrees(resolution_of(cell_id))
    _, lat, _, _ = _decode(cell_id)
    return lon_deg * km_per_degree_longitude(lat), lat_deg * km_per_degree_latitude()


def cell_area_km2(cell_id: str) -> float:
    """The true spherical area of a cell, in square kilometers"""
    return spherical_rect_area_km2(*decode_bounds(cell_id))


def search_resolution(
    radius_km: float,
    latitude: float,
    finest: int,
    max_rings: int,
) -> Tuple[int, int]:
    """
    Pick the finest resolution, no finer than `finest`, at which a circle of
    `radius_km` is covered by at most `max_rings` rings of cells.

    Args:
        radius_km:
            The search radius

        latitude:
            The (approximate) latitude of the search center; cells narrow toward
            the poles

        finest:
            The finest resolution permitted

        max_rings:
            The largest acceptable number of rings

    Returns:
        resolution, rings needed at that resolution
    """
    _check_resolution(finest)
    if max_rings < 1:
        raise ValueError('max_rings must be at least 1')

    capped = max(-_POLAR_CAP_LATITUDE, min(_POLAR_CAP_LATITUDE, latitude))
    needed = max_rings
    for resolution in range(finest, MIN_RESOLUTION - 1, -1):
        lon_deg, lat_deg = _cell_degrees(resolution)
        width = lon_deg * km_per_degree_longitude(capped)
        height = lat_deg * km_per_degree_latitude()
        needed = max(1, math.ceil(radius_km / width), math.ceil(radius_km / height))
        if needed <= max_rings:
            return resolution, needed

    return MIN_RESOLUTION, min(needed, max_rings)
