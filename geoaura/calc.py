""" Geodesic calculations for Coordinates and cell bounds """

__all__ = [
    'haversine_distance', 'haversine_distance_km', 'km_per_degree_latitude',
    'km_per_degree_longitude', 'spherical_rect_area_km2',
]

import math

from geoaura._const import EARTH_RADIUS_KM, EARTH_RADIUS_METERS
from geoaura.coordinates import Coordinate


def haversine_distance(coord1: Coordinate, coord2: Coordinate) -> float:
    """Calculate distance in meters using the Haversine formula (spherical earth)."""
    lon1, lat1 = math.radians(coord1.longitude), math.radians(coord1.latitude)
    lon2, lat2 = math.radians(coord2.longitude), math.radians(coord2.latitude)

    dlon = lon2 - lon1
    dlat = lat2 - lat1

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def haversine_distance_km(coord1: Coordinate, coord2: Coordinate) -> float:
    """Haversine distance in kilometers"""
    return haversine_distance(coord1, coord2) / 1000


def km_per_degree_latitude() -> float:
    """Length of one degree along a meridian, in km"""
    return EARTH_RADIUS_KM * math.pi / 180


def km_per_degree_longitude(latitude: float) -> float:
    """
    Length of one degree along the parallel at `latitude`, in km. Approaches
    zero at the poles.
    """
    return km_per_degree_latitude() * math.cos(math.radians(latitude))


def spherical_rect_area_km2(
    min_lon: float,
    min_lat: float,
    max_lon: float,
    max_lat: float,
) -> float:
    """
    Area of a latitude/longitude rectangle on the sphere.

    A = R^2 * (lon2 - lon1) * (sin(lat2) - sin(lat1)), with longitudes in radians.
    Cells shrink toward the poles, so this is exact where a flat
    width * height estimate is not.

    Args:
        min_lon:
            Western edge, in degrees

        min_lat:
            Southern edge, in degrees

        max_lon:
            Eastern edge, in degrees

        max_lat:
            Northern edge, in degrees

    Returns:
        (float) the area in square kilometers; never negative
    """
    d_lon = math.radians(max_lon - min_lon)
    d_sin = math.sin(math.radians(max_lat)) - math.sin(math.radians(min_lat))
    return max(0.0, EARTH_RADIUS_KM ** 2 * d_lon * d_sin)
