"""
Tunables for the proximity engine.

All constants are externally configurable; nothing in the engine hardcodes a
radius, density band, anonymity-set size or time window.
"""

from __future__ import annotations

__all__ = ['ProximityConfig']

import json
from pathlib import Path
from typing import Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from geoaura._const import MAX_RESOLUTION, MIN_RESOLUTION
from geoaura.geocell import validate_cell


class ProximityConfig(BaseModel):
    """
    Configuration for the proximity engine.

    Args:
        min_radius_km:
            Smallest search radius the controller may contract to

        max_radius_km:
            Largest search radius the controller may expand to

        density_band:
            (lower, upper) target density, in users per square km

        min_anonymity_set:
            K; the fewest distinct occupants a disclosed cell may hold

        staleness_window_s:
            Seconds after which an occupancy record is dropped

        smoothing_factor:
            Fraction of the gap between current and target radius closed per query

        shrink_factor / grow_factor:
            Multipliers applied to the current radius when contracting / expanding

        base_resolution:
            Resolution at which locations are indexed

        max_coarsening_depth:
            How many levels the anonymity resolver may coarsen a cell

        tunneling_after:
            Consecutive empty queries at max radius before tunneling

        query_deadline_ms:
            Deadline for the occupancy lookup of a single query

        aura_ttl_s:
            Inactivity timeout after which a user's AuraState is discarded

        sweep_interval_s:
            Interval between background staleness sweeps

        convergence_epsilon_km:
            The current radius snaps to the target once within this distance

        damping:
            k in the initial aura formula R = Rmin + (Rmax - Rmin) * exp(-k * D * w)

        max_search_rings:
            Upper bound on rings enumerated per query; the search resolution is
            coarsened until the radius fits

        hotspot_limit:
            Most hotspot cells consulted while tunneling

        workers:
            Size of the engine's worker pool

        hotspot_cells:
            Initial hotspot table, loaded as version 0; no cell may be finer than
            `base_resolution`
    """

    model_config = ConfigDict(frozen=True, extra='forbid')

    min_radius_km: float = Field(5.0, gt=0)
    max_radius_km: float = Field(100.0, gt=0)
    density_band: Tuple[float, float] = (2.0, 8.0)
    min_anonymity_set: int = Field(3, ge=1)
    staleness_window_s: float = Field(300.0, gt=0)
    smoothing_factor: float = Field(0.5, gt=0, le=1)
    shrink_factor: float = Field(0.8, gt=0, lt=1)
    grow_factor: float = Field(1.5, gt=1)
    base_resolution: int = Field(7, ge=MIN_RESOLUTION, le=MAX_RESOLUTION)
    max_coarsening_depth: int = Field(4, ge=0)
    tunneling_after: int = Field(3, ge=1)
    query_deadline_ms: float = Field(200.0, gt=0)
    aura_ttl_s: float = Field(1800.0, gt=0)
    sweep_interval_s: float = Field(30.0, gt=0)
    convergence_epsilon_km: float = Field(0.05, gt=0)
    damping: float = Field(0.15, ge=0)
    max_search_rings: int = Field(4, ge=1)
    hotspot_limit: int = Field(5, ge=1)
    workers: int = Field(4, ge=1)
    hotspot_cells: Tuple[str, ...] = ()

    @field_validator('hotspot_cells')
    @classmethod
    def _check_hotspots(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(validate_cell(x) for x in value)

    @model_validator(mode='after')
    def _check_ranges(self) -> 'ProximityConfig':
        if self.min_radius_km > self.max_radius_km:
            raise ValueError('min_radius_km must not exceed max_radius_km')

        lower, upper = self.density_band
        if lower < 0 or lower > upper:
            raise ValueError('density_band must be (lower, upper) with 0 <= lower <= upper')

        if any(len(x) > self.base_resolution for x in self.hotspot_cells):
            raise ValueError('hotspot_cells must not be finer than base_resolution')

        return self

    @property
    def coarsest_resolution(self) -> int:
        """The coarsest resolution the anonymity resolver may reach"""
        return max(MIN_RESOLUTION, self.base_resolution - self.max_coarsening_depth)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> 'ProximityConfig':
        """
        Load a configuration from a JSON object of field overrides; omitted fields
        keep their defaults.
        """
        with open(path, 'r', encoding='utf-8') as f:
            return cls.model_validate(json.load(f))
