from geoaura._version import __version__  # noqa: F401
from geoaura.utils.logging import LOGGER
from geoaura.config import ProximityConfig
from geoaura.coordinates import Coordinate
from geoaura.exceptions import (
    GeoAuraError, InvalidCell, InvalidCoordinate, LOW_DENSITY_CELL, LowDensityCell,
    QueryTimeout, StateNotFound
)
from geoaura.models import (
    AuraState, DistanceTier, LocationUpdate, NearbyResponse, NearbyResult, Trend
)
from geoaura.occupancy import OccupancyIndex
from geoaura.anonymity import AnonymityResolver
from geoaura.density import DensityEstimator
from geoaura.controller import ElasticRadiusController
from geoaura.hotspots import HotspotTable
from geoaura.interests import InterestDirectory
from geoaura.service import ProximityQueryService
from geoaura.engine import ProximityEngine

__all__ = [
    'AnonymityResolver',
    'AuraState',
    'Coordinate',
    'DensityEstimator',
    'DistanceTier',
    'ElasticRadiusController',
    'GeoAuraError',
    'HotspotTable',
    'InterestDirectory',
    'InvalidCell',
    'InvalidCoordinate',
    'LocationUpdate',
    'LOW_DENSITY_CELL',
    'LowDensityCell',
    'NearbyResponse',
    'NearbyResult',
    'OccupancyIndex',
    'ProximityConfig',
    'ProximityEngine',
    'ProximityQueryService',
    'QueryTimeout',
    'StateNotFound',
    'Trend',
    'LOGGER',
]
