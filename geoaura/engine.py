"""
The proximity engine: one object wiring the occupancy index, anonymity
resolver, density estimator, radius controller, hotspot table and query
service together, plus the background sweeper and a worker pool for callers
that want to submit requests asynchronously.
"""

__all__ = ['ProximityEngine']

from concurrent.futures import Future, ThreadPoolExecutor
import time
from typing import Callable, Iterable, Optional, Sequence

from geoaura.anonymity import AnonymityResolver
from geoaura.config import ProximityConfig
from geoaura.controller import ElasticRadiusController
from geoaura.coordinates import CoordinateLike
from geoaura.density import DensityEstimator
from geoaura.hotspots import HotspotSnapshot, HotspotTable
from geoaura.interests import InterestDirectory, InterestSource
from geoaura.models import AuraState, LocationUpdate, NearbyResponse
from geoaura.occupancy import OccupancyIndex, StalenessSweeper
from geoaura.service import ProximityQueryService
from geoaura.utils.mixins import LoggingMixin


class ProximityEngine(LoggingMixin):
    """
    Entry point for callers of the proximity core.

    Args:
        config: (Default None)
            Engine configuration; defaults throughout if not provided

        hotspots: (Default None)
            Initial hotspot table; if not provided, an empty table seeded from
            `config.hotspot_cells`

        interests: (Default None)
            Source of users' interests; an in-memory InterestDirectory if not provided

        clock: (Default time.time)
            Wall clock for occupancy freshness and aura timestamps

        timer: (Default time.monotonic)
            Clock for query deadlines

    To use:
        with ProximityEngine(ProximityConfig(min_anonymity_set=5)) as engine:
            engine.update_location('u1', Coordinate(-0.1276, 51.5072))
            response = engine.query_nearby('u1', Coordinate(-0.1276, 51.5072))
    """

    def __init__(
        self,
        config: Optional[ProximityConfig] = None,
        hotspots: Optional[HotspotTable] = None,
        interests: Optional[InterestSource] = None,
        clock: Callable[[], float] = time.time,
        timer: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self.config = config or ProximityConfig()
        self.index = OccupancyIndex(self.config.staleness_window_s, clock=clock)
        self.resolver = AnonymityResolver(
            self.config.max_coarsening_depth, self.config.coarsest_resolution
        )
        self.estimator = DensityEstimator()
        self.controller = ElasticRadiusController(self.config, clock=clock)
        self.hotspots = hotspots if hotspots is not None else HotspotTable(
            self.config.hotspot_cells, max_resolution=self.config.base_resolution
        )
        self.interests = interests if interests is not None else InterestDirectory()
        self.service = ProximityQueryService(
            self.config,
            self.index,
            resolver=self.resolver,
            estimator=self.estimator,
            controller=self.controller,
            hotspots=self.hotspots,
            interests=self.interests,
            timer=timer,
        )
        self._sweeper: Optional[StalenessSweeper] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> 'ProximityEngine':
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    @property
    def running(self) -> bool:
        return self._sweeper is not None

    def start(self) -> None:
        """Start the background sweeper and the worker pool"""
        if self.running:
            return

        self._executor = ThreadPoolExecutor(
            max_workers=self.config.workers, thread_name_prefix='geoaura-worker'
        )
        self._sweeper = StalenessSweeper(
            self.index, self.config.sweep_interval_s, callbacks=[self.controller.expire_idle]
        )
        self._sweeper.start()
        self.logger.info('proximity engine started (%d workers)', self.config.workers)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the sweeper and the worker pool; pending submissions finish if `wait`"""
        if not self.running:
            return

        self._sweeper.stop(timeout=self.config.sweep_interval_s if wait else 0)
        self._executor.shutdown(wait=wait)
        self._sweeper = None
        self._executor = None
        self.logger.info('proximity engine stopped')

    def update_location(self, user_id: str, coord: CoordinateLike) -> LocationUpdate:
        return self.service.update_location(user_id, coord)

    def query_nearby(
        self,
        user_id: str,
        coord: CoordinateLike,
        interest_filter: Optional[Sequence[str]] = None,
        interests: Optional[Iterable[str]] = None,
    ) -> NearbyResponse:
        """
        Find the users near a user.

        Args:
            user_id:
                The querying user

            coord:
                The user's current location

            interest_filter: (Default None)
                Only return users sharing at least one of these interests

            interests: (Default None)
                The querying user's own interests; looked up from the interest
                source if not provided
        """
        if interests is None:
            interests = self.interests.get_interests(user_id)
        return self.service.find_nearby(user_id, coord, interests, interest_filter)

    def _submit(self, fn, *args) -> Future:
        if self._executor is None:
            raise RuntimeError('proximity engine is not running; call start() first')
        return self._executor.submit(fn, *args)

    def submit_update(self, user_id: str, coord: CoordinateLike) -> Future:
        """Run `update_location` on the worker pool"""
        return self._submit(self.update_location, user_id, coord)

    def submit_query(
        self,
        user_id: str,
        coord: CoordinateLike,
        interest_filter: Optional[Sequence[str]] = None,
    ) -> Future:
        """Run `query_nearby` on the worker pool"""
        return self._submit(self.query_nearby, user_id, coord, interest_filter)

    def aura(self, user_id: str) -> AuraState:
        """
        The user's current AuraState.

        Raises:
            StateNotFound: before the user's first query
        """
        return self.controller.state(user_id)

    def end_session(self, user_id: str) -> None:
        """Forget a user: their occupancy record and their aura"""
        self.index.remove(user_id)
        self.controller.end_session(user_id)

    def refresh_hotspots(self, resolution: Optional[int] = None) -> HotspotSnapshot:
        """
        Rebuild the hotspot table from the busiest cells in the index. Cells with
        fewer than K occupants are never hotspots.

        Args:
            resolution: (Default None)
                Hotspot cell resolution; the coarsest resolution the anonymity
                resolver may reach if not provided
        """
        return self.hotspots.derive_from_index(
            self.index,
            resolution or self.config.coarsest_resolution,
            self.config.hotspot_limit,
            min_occupants=self.config.min_anonymity_set,
        )

    def sweep(self) -> int:
        """Run one staleness sweep now; returns the number of records evicted"""
        evicted = self.index.sweep()
        self.controller.expire_idle()
        return evicted
