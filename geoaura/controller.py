"""
Elastic radius control.

Each querying user has an AuraState: a search radius that contracts in crowded
areas and expands in empty ones, driven by the observed density on every
query. The radius eases toward its target by exponential smoothing, so
consecutive queries never see it jump. When nobody is reachable even at the
maximum radius, the controller stops growing and switches to tunneling, where
the caller answers from a table of known hotspots instead.
"""

__all__ = [
    'AuraStore', 'ElasticRadiusController', 'relevance_coefficient', 'seed_radius',
]

import math
import threading
import time
from typing import Callable, Dict, Iterable, Optional, Sequence, Union

from geoaura.config import ProximityConfig
from geoaura.exceptions import GeoAuraError, StateNotFound
from geoaura.models import AuraState, Trend
from geoaura.utils.functions import clamp
from geoaura.utils.locks import KeyedFifoLock
from geoaura.utils.mixins import LoggingMixin


def relevance_coefficient(
    interests: Iterable[str],
    others: Sequence[Iterable[str]],
) -> float:
    """
    How much a user's interests overlap with those of the users around them.

    For each other user, overlap is the shared interest count divided by the
    larger of the two interest lists; the mean overlap is shifted into [0.5, 1.5].

    Args:
        interests:
            The user's own interests

        others:
            The interests of each nearby user

    Returns:
        (float) 0.5 (no overlap, or nobody nearby) through 1.5 (identical interests)
    """
    if not others:
        return 0.5

    mine = set(interests)
    total = 0.0
    for theirs in others:
        theirs = set(theirs)
        widest = max(len(mine), len(theirs))
        if widest:
            total += len(mine & theirs) / widest

    return 0.5 + total / len(others)


def seed_radius(active_users: int, relevance: float, config: ProximityConfig) -> float:
    """
    Initial radius for a user with no AuraState yet.

    R = Rmin + (Rmax - Rmin) * exp(-k * D * w)

    where D is the number of active users nearby, w the relevance coefficient and
    k the configured damping. An empty neighbourhood starts at Rmax; a busy,
    like-minded one starts close to Rmin.
    """
    exponent = -config.damping * max(0, active_users) * relevance
    radius = config.min_radius_km + (config.max_radius_km - config.min_radius_km) * math.exp(exponent)
    return clamp(radius, config.min_radius_km, config.max_radius_km)


class AuraStore:
    """
    Keyed store of AuraStates. Only the controller mutates the stored objects;
    reads return copies.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._states: Dict[str, AuraState] = {}

    def __contains__(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._states

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def get(self, user_id: str) -> AuraState:
        """
        Raises:
            StateNotFound: if the user has no state
        """
        with self._lock:
            try:
                return self._states[user_id].copy()
            except KeyError:
                raise StateNotFound(user_id) from None

    def put(self, user_id: str, state: AuraState) -> None:
        with self._lock:
            self._states[user_id] = state

    def discard(self, user_id: str) -> bool:
        with self._lock:
            return self._states.pop(user_id, None) is not None

    def expire(self, older_than: float) -> int:
        """Drop every state last updated before `older_than`; returns how many"""
        with self._lock:
            expired = [uid for uid, x in self._states.items() if x.last_updated_at < older_than]
            for uid in expired:
                del self._states[uid]
        return len(expired)


class ElasticRadiusController(LoggingMixin):
    """
    Per-user radius state machine over contracting, stable, expanding and tunneling.

    Args:
        config:
            Radius bounds, density band, smoothing and tunneling settings

        clock: (Default time.time)
            Source of the current time in seconds
    """

    def __init__(self, config: ProximityConfig, clock: Callable[[], float] = time.time):
        super().__init__()
        self.config = config
        self.clock = clock
        self.store = AuraStore()
        self._locks = KeyedFifoLock()

    def state(self, user_id: str) -> AuraState:
        """
        A copy of the user's current state.

        Raises:
            StateNotFound: before the user's first query
        """
        return self.store.get(user_id)

    def _initial(self, seed: Optional[float]) -> AuraState:
        radius = self.config.min_radius_km if seed is None else seed
        radius = clamp(radius, self.config.min_radius_km, self.config.max_radius_km)
        return AuraState(radius, radius, last_updated_at=self.clock())

    def ensure(self, user_id: str, seed: Optional[float] = None) -> AuraState:
        """
        Return the user's state, creating it at the `seed` radius (default the
        minimum radius) if this is the first time the user is seen.
        """
        with self._locks.hold(user_id):
            try:
                return self.store.get(user_id)
            except StateNotFound:
                state = self._initial(seed)
                self.store.put(user_id, state)
                self.logger.debug('initialized aura for user %s at %.3fkm', user_id, state.current_radius_km)
                return state.copy()

    def step(self, state: AuraState, density: float) -> AuraState:
        """
        Compute the state that follows `state` after observing `density`. Pure;
        `state` is left untouched.
        """
        cfg = self.config
        lower, upper = cfg.density_band
        nxt = state.copy()
        nxt.density = density
        at_max = state.current_radius_km >= cfg.max_radius_km - cfg.convergence_epsilon_km

        if density <= 0 and at_max:
            nxt.empty_streak = state.empty_streak + 1
            nxt.target_radius_km = cfg.max_radius_km
            if nxt.empty_streak >= cfg.tunneling_after:
                nxt.trend = Trend.TUNNELING
            else:
                nxt.trend = Trend.EXPANDING
        else:
            nxt.empty_streak = 0
            if density > upper:
                nxt.trend = Trend.CONTRACTING
                nxt.target_radius_km = max(cfg.min_radius_km, state.current_radius_km * cfg.shrink_factor)
            elif density < lower:
                nxt.trend = Trend.EXPANDING
                nxt.target_radius_km = min(cfg.max_radius_km, state.current_radius_km * cfg.grow_factor)
            else:
                nxt.trend = Trend.STABLE
                nxt.target_radius_km = state.current_radius_km

        current = state.current_radius_km
        current += (nxt.target_radius_km - current) * cfg.smoothing_factor
        if abs(nxt.target_radius_km - current) <= cfg.convergence_epsilon_km:
            current = nxt.target_radius_km

        nxt.current_radius_km = clamp(current, cfg.min_radius_km, cfg.max_radius_km)
        nxt.last_updated_at = self.clock()
        return nxt

    def observe(
        self,
        user_id: str,
        density: Union[float, Callable[[], float]],
        seed: Optional[float] = None,
    ) -> AuraState:
        """
        Feed one density observation into the user's state machine.

        Args:
            user_id:
                The querying user

            density:
                The density estimate, or a zero-argument callable producing it.
                If the callable raises, the previous radius is held unchanged.

            seed: (Default None)
                Initial radius, used only if the user has no state yet

        Returns:
            A copy of the updated state
        """
        with self._locks.hold(user_id):
            try:
                state = self.store.get(user_id)
            except StateNotFound:
                state = self._initial(seed)

            try:
                value = density() if callable(density) else density
            except (GeoAuraError, ValueError, ArithmeticError) as exc:
                self.logger.warning(
                    'density estimate failed for user %s (%s); holding radius at %.3fkm',
                    user_id, type(exc).__name__, state.current_radius_km
                )
                state.last_updated_at = self.clock()
                self.store.put(user_id, state)
                return state.copy()

            nxt = self.step(state, float(value))
            if nxt.trend != state.trend:
                self.logger.debug(
                    'aura for user %s: %s -> %s (target %.3fkm)',
                    user_id, state.trend.value, nxt.trend.value, nxt.target_radius_km
                )
            self.store.put(user_id, nxt)
            return nxt.copy()

    def end_session(self, user_id: str) -> bool:
        """Discard the user's state; returns True if there was one"""
        with self._locks.hold(user_id):
            return self.store.discard(user_id)

    def expire_idle(self) -> int:
        """Discard states idle for longer than the configured aura TTL"""
        expired = self.store.expire(self.clock() - self.config.aura_ttl_s)
        if expired:
            self.logger.debug('expired %d idle aura states', expired)
        return expired
