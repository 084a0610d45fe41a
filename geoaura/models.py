"""
Data model for the proximity engine.

None of these types hold a coordinate. Locations are represented only by cell ids.
"""

from __future__ import annotations

__all__ = [
    'AuraState', 'DistanceTier', 'LocationUpdate', 'NearbyResponse', 'NearbyResult',
    'OccupancyRecord', 'Trend',
]

from enum import Enum
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict


class Trend(str, Enum):
    """Radius controller states"""
    CONTRACTING = 'contracting'
    STABLE = 'stable'
    EXPANDING = 'expanding'
    TUNNELING = 'tunneling'


class DistanceTier(str, Enum):
    """Coarse proximity, derived from cell adjacency"""
    SAME = 'same'
    NEAR = 'near'
    FAR = 'far'

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK = {DistanceTier.SAME: 0, DistanceTier.NEAR: 1, DistanceTier.FAR: 2}


class OccupancyRecord(NamedTuple):
    """The single live presence of a user in the occupancy index"""
    user_id: str
    cell_id: str
    resolution: int
    last_seen_at: float


class AuraState:
    """
    Per-user radius state. Instances held by the controller are mutated in place
    under that user's lock; everything handed to callers is a copy.
    """

    def __init__(
        self,
        current_radius_km: float,
        target_radius_km: Optional[float] = None,
        density: float = 0.0,
        trend: Trend = Trend.STABLE,
        last_updated_at: float = 0.0,
        empty_streak: int = 0,
    ):
        self.current_radius_km = current_radius_km
        self.target_radius_km = current_radius_km if target_radius_km is None else target_radius_km
        self.density = density
        self.trend = trend
        self.last_updated_at = last_updated_at
        self.empty_streak = empty_streak

    def __eq__(self, other):
        if not isinstance(other, AuraState):
            return False

        return (
            self.current_radius_km == other.current_radius_km and
            self.target_radius_km == other.target_radius_km and
            self.density == other.density and
            self.trend == other.trend and
            self.last_updated_at == other.last_updated_at and
            self.empty_streak == other.empty_streak
        )

    def __repr__(self):
        return (
            f'<AuraState {self.trend.value} {self.current_radius_km:.3f}km '
            f'-> {self.target_radius_km:.3f}km @ {self.density:.3f}/km2>'
        )

    def copy(self) -> 'AuraState':
        return AuraState(
            self.current_radius_km,
            self.target_radius_km,
            self.density,
            self.trend,
            self.last_updated_at,
            self.empty_streak,
        )


class NearbyResult(BaseModel):
    """
    Everything ever disclosed about another user's location. `cell_id` is that
    user's anonymized cell, or None when no sufficiently populated cell exists.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    distance_tier: DistanceTier
    cell_id: Optional[str] = None


class NearbyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    results: List[NearbyResult]
    radius_km: float
    state: Trend
    partial: bool = False


class LocationUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    cell_id: str
    anonymized: bool
