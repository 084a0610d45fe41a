"""
Proximity queries: "who is near user X", answered with coarse tiers and
anonymized cells only.
"""

__all__ = ['ProximityQueryService']

import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from geoaura.anonymity import AnonymityResolver
from geoaura.calc import haversine_distance_km
from geoaura.config import ProximityConfig
from geoaura.controller import ElasticRadiusController, relevance_coefficient, seed_radius
from geoaura.coordinates import Coordinate, CoordinateLike
from geoaura.density import DensityEstimator
from geoaura.exceptions import QueryTimeout, is_low_density
from geoaura.geocell import approx_center, encode, ring_distance, rings, search_resolution
from geoaura.hotspots import HotspotTable
from geoaura.interests import InterestDirectory, InterestSource
from geoaura.models import AuraState, DistanceTier, LocationUpdate, NearbyResponse, NearbyResult, Trend
from geoaura.occupancy import OccupancyIndex
from geoaura.utils.functions import round_half_up
from geoaura.utils.locks import KeyedFifoLock
from geoaura.utils.mixins import LoggingMixin


class ProximityQueryService(LoggingMixin):
    """
    Orchestrates the codec, anonymity resolver, occupancy index, density
    estimator, radius controller and hotspot table.

    A user's own requests are processed strictly in the order they arrive;
    requests of different users run concurrently.

    Args:
        config:
            Engine configuration

        occupancy_index:
            The shared occupancy index

        resolver: (Default None)
            Anonymity resolver; built from `config` if not provided

        estimator: (Default None)
            Density estimator

        controller: (Default None)
            Radius controller; built from `config` if not provided

        hotspots: (Default None)
            Hotspot table consulted while tunneling; empty if not provided

        interests: (Default None)
            Source of other users' interests, for interest filtering

        timer: (Default time.monotonic)
            Clock used for query deadlines, in seconds
    """

    def __init__(
        self,
        config: ProximityConfig,
        occupancy_index: OccupancyIndex,
        resolver: Optional[AnonymityResolver] = None,
        estimator: Optional[DensityEstimator] = None,
        controller: Optional[ElasticRadiusController] = None,
        hotspots: Optional[HotspotTable] = None,
        interests: Optional[InterestSource] = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self.config = config
        self.index = occupancy_index
        self.resolver = resolver or AnonymityResolver(
            config.max_coarsening_depth, config.coarsest_resolution
        )
        self.estimator = estimator or DensityEstimator()
        self.controller = controller or ElasticRadiusController(config)
        self.hotspots = hotspots if hotspots is not None else HotspotTable(
            max_resolution=config.base_resolution
        )
        self.interests = interests if interests is not None else InterestDirectory()
        self.timer = timer
        self._user_locks = KeyedFifoLock()

    def update_location(self, user_id: str, coord: CoordinateLike) -> LocationUpdate:
        """
        Record a fresh location fix.

        Args:
            user_id:
                The user

            coord:
                The user's location, a Coordinate or a {"latitude", "longitude"} mapping

        Returns:
            The user's effective cell, and whether it was coarsened (or could not
            be made K-anonymous at all)

        Raises:
            InvalidCoordinate: before anything is recorded, if the location is invalid
        """
        base = encode(Coordinate.coerce(coord), self.config.base_resolution)
        with self._user_locks.hold(user_id):
            self.index.upsert_cell(user_id, base)
            effective = self.resolver.resolve(base, self.index, self.config.min_anonymity_set)

        if is_low_density(effective):
            return LocationUpdate(cell_id=base[:self.config.coarsest_resolution], anonymized=True)

        return LocationUpdate(cell_id=effective, anonymized=effective != base)

    def find_nearby(
        self,
        user_id: str,
        coord: CoordinateLike,
        interests: Iterable[str] = (),
        interest_filter: Optional[Sequence[str]] = None,
    ) -> NearbyResponse:
        """
        Find the users near a user.

        Args:
            user_id:
                The querying user

            coord:
                The user's current location

            interests: (Default ())
                The querying user's own interests; shape the initial radius

            interest_filter: (Default None)
                If given, only users sharing at least one of these interests are returned

        Returns:
            NearbyResponse; `partial` is set if the deadline cut the lookup short

        Raises:
            InvalidCoordinate: before anything is recorded, if the location is invalid
        """
        base = encode(Coordinate.coerce(coord), self.config.base_resolution)
        deadline = self.timer() + self.config.query_deadline_ms / 1000

        with self._user_locks.hold(user_id):
            effective = self.resolver.resolve(base, self.index, self.config.min_anonymity_set)
            self.index.upsert_cell(user_id, base)

            seed = None
            if user_id not in self.controller.store:
                seed = self._seed_radius(user_id, base, interests)
            prior = self.controller.ensure(user_id, seed)

            density_cells = self._search_cells(base, prior.current_radius_km)
            state = self.controller.observe(
                user_id,
                lambda: self.estimator.estimate_area(density_cells, self.index, exclude=(user_id,)),
            )

            results, partial = self._collect(
                user_id, base, effective == base, state, interest_filter, deadline
            )

        self.logger.debug(
            'user %s: %d nearby within %.3fkm (%s%s)',
            user_id, len(results), state.current_radius_km, state.trend.value,
            ', partial' if partial else ''
        )
        return NearbyResponse(
            results=results,
            radius_km=round_half_up(state.current_radius_km, 3),
            state=state.trend,
            partial=partial,
        )

    def _seed_radius(self, user_id: str, base: str, interests: Iterable[str]) -> float:
        neighbours = self.index.occupants([x for group in rings(base, 1) for x in group])
        neighbours.pop(user_id, None)
        relevance = relevance_coefficient(
            interests, [self.interests.get_interests(x) for x in neighbours]
        )
        return seed_radius(len(neighbours), relevance, self.config)

    def _search_rings(self, base: str, radius_km: float) -> List[Set[str]]:
        """Rings of cells, innermost first, covering `radius_km` around `base`"""
        latitude = approx_center(base).latitude
        resolution, needed = search_resolution(
            radius_km, latitude, self.config.base_resolution, self.config.max_search_rings
        )
        return rings(base[:resolution], needed)

    def _search_cells(self, base: str, radius_km: float) -> List[str]:
        return [x for group in self._search_rings(base, radius_km) for x in group]

    def _classify(
        self,
        base: str,
        other: str,
        radius_km: float,
        same_allowed: bool,
    ) -> Optional[DistanceTier]:
        resolution = min(len(base), len(other))
        distance = ring_distance(base[:resolution], other[:resolution])
        if distance == 0:
            return DistanceTier.SAME if same_allowed else DistanceTier.NEAR
        if distance == 1:
            return DistanceTier.NEAR
        if haversine_distance_km(approx_center(base), approx_center(other)) > radius_km:
            return None
        return DistanceTier.FAR

    def _shares_interest(self, user_id: str, wanted: Optional[Set[str]]) -> bool:
        if not wanted:
            return True
        return not wanted.isdisjoint(self.interests.get_interests(user_id))

    def _collect(
        self,
        user_id: str,
        base: str,
        same_allowed: bool,
        state: AuraState,
        interest_filter: Optional[Sequence[str]],
        deadline: float,
    ) -> Tuple[List[NearbyResult], bool]:
        wanted = set(interest_filter) if interest_filter else None
        partial = False
        found: Dict[str, str] = {}
        for group in self._search_rings(base, state.current_radius_km):
            remaining = deadline - self.timer()
            if remaining <= 0:
                partial = True
                break
            try:
                found.update(self.index.occupants(group, timeout=remaining))
            except QueryTimeout:
                partial = True
                break

        found.pop(user_id, None)
        k = self.config.min_anonymity_set
        memo = self.resolver.resolve_many(set(found.values()), self.index, k)

        results: Dict[str, NearbyResult] = {}
        for other, cell in found.items():
            if not self._shares_interest(other, wanted):
                continue
            tier = self._classify(base, cell, state.current_radius_km, same_allowed)
            if tier is None:
                continue
            anonymized = memo[cell]
            results[other] = NearbyResult(
                user_id=other,
                distance_tier=tier,
                cell_id=None if is_low_density(anonymized) else anonymized,
            )

        if state.trend == Trend.TUNNELING and not partial:
            partial = self._tunnel(user_id, base, wanted, deadline, results)

        ordered = sorted(results.values(), key=lambda x: (x.distance_tier.rank, x.user_id))
        return ordered, partial

    def _tunnel(
        self,
        user_id: str,
        base: str,
        wanted: Optional[Set[str]],
        deadline: float,
        results: Dict[str, NearbyResult],
    ) -> bool:
        """
        Add the occupants of the nearest hotspots, tagged far. Hotspots that are
        not themselves K-anonymous are skipped.

        Returns:
            True if the deadline cut the hotspot lookup short
        """
        k = self.config.min_anonymity_set
        for hotspot in self.hotspots.nearest(base, self.config.hotspot_limit):
            remaining = deadline - self.timer()
            if remaining <= 0:
                return True

            effective = self.resolver.resolve(hotspot, self.index, k)
            if is_low_density(effective):
                continue

            try:
                occupants = self.index.occupants([hotspot], timeout=remaining)
            except QueryTimeout:
                return True

            for other in sorted(occupants):
                if other == user_id or other in results or not self._shares_interest(other, wanted):
                    continue
                results[other] = NearbyResult(
                    user_id=other, distance_tier=DistanceTier.FAR, cell_id=effective
                )

        return False
