"""
Live mapping of cells to the users present in them.

The index owns OccupancyRecords and nothing else: no user metadata and no
coordinates. Every user is linked into the bucket of each prefix of their cell,
so occupancy of a cell at any coarser resolution is a single dict lookup.

Buckets are sharded by the first character of the cell id (all prefixes of a
cell share it), one re-entrant lock per shard. A mutation that touches two
shards, and any read that spans several, acquires the shard locks in sorted
order, so readers never observe a user under two cells at once.
"""

__all__ = ['OccupancyIndex', 'StalenessSweeper']

from collections import Counter
from contextlib import contextmanager
import threading
import time
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from geoaura._const import GEOHASH_CHARSET
from geoaura.coordinates import Coordinate, CoordinateLike
from geoaura.exceptions import QueryTimeout
from geoaura.geocell import encode, rings, validate_cell
from geoaura.models import OccupancyRecord
from geoaura.utils.locks import KeyedFifoLock
from geoaura.utils.mixins import LoggingMixin


class _Shard:
    __slots__ = ('lock', 'buckets')

    def __init__(self):
        self.lock = threading.RLock()
        # cell prefix -> {user_id: record}
        self.buckets: Dict[str, Dict[str, OccupancyRecord]] = {}


class OccupancyIndex(LoggingMixin):
    """
    Thread-safe spatial occupancy index.

    Args:
        staleness_window_s: (Default 300)
            Records older than this many seconds are never returned and are
            evicted by `sweep()`

        clock: (Default time.time)
            Source of the current time in seconds; injectable for tests
    """

    def __init__(
        self,
        staleness_window_s: float = 300.,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__()
        if staleness_window_s <= 0:
            raise ValueError('staleness_window_s must be positive')

        self.staleness_window_s = staleness_window_s
        self.clock = clock
        self._shards = {char: _Shard() for char in GEOHASH_CHARSET}
        self._records: Dict[str, OccupancyRecord] = {}
        self._user_locks = KeyedFifoLock()

    def __contains__(self, user_id: str) -> bool:
        return self.record(user_id) is not None

    def __len__(self) -> int:
        now = self.clock()
        return sum(1 for rec in list(self._records.values()) if self._is_fresh(rec, now))

    def _is_fresh(self, record: OccupancyRecord, now: float) -> bool:
        return now - record.last_seen_at <= self.staleness_window_s

    @contextmanager
    def _locked(self, shard_keys: Iterable[str], timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the locks of several shards, acquired in sorted order.

        Raises:
            QueryTimeout: if all locks could not be acquired within `timeout` seconds
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        held: List[threading.RLock] = []
        try:
            for key in sorted(set(shard_keys)):
                lock = self._shards[key].lock
                if deadline is None:
                    lock.acquire()
                elif not lock.acquire(timeout=max(0., deadline - time.monotonic())):
                    raise QueryTimeout('occupancy lookup exceeded its deadline')
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()

    def _link(self, record: OccupancyRecord) -> None:
        buckets = self._shards[record.cell_id[0]].buckets
        for idx in range(1, len(record.cell_id) + 1):
            buckets.setdefault(record.cell_id[:idx], {})[record.user_id] = record

    def _unlink(self, record: OccupancyRecord) -> None:
        buckets = self._shards[record.cell_id[0]].buckets
        for idx in range(1, len(record.cell_id) + 1):
            prefix = record.cell_id[:idx]
            bucket = buckets.get(prefix)
            if bucket is None:
                continue
            bucket.pop(record.user_id, None)
            if not bucket:
                del buckets[prefix]

    def upsert(self, user_id: str, coord: CoordinateLike, resolution: int) -> OccupancyRecord:
        """
        Place a user at a location, replacing any previous record.

        Args:
            user_id:
                The user

            coord:
                The user's current location, a Coordinate or a {"latitude", "longitude"}
                mapping; only its cell is retained

            resolution:
                The resolution at which to index the user

        Returns:
            The new OccupancyRecord
        """
        return self.upsert_cell(user_id, encode(Coordinate.coerce(coord), resolution))

    def upsert_cell(self, user_id: str, cell_id: str) -> OccupancyRecord:
        """Place a user in an already-encoded cell, replacing any previous record"""
        validate_cell(cell_id)
        with self._user_locks.hold(user_id):
            previous = self._records.get(user_id)
            shard_keys = {cell_id[0]}
            if previous is not None:
                shard_keys.add(previous.cell_id[0])

            with self._locked(shard_keys):
                record = OccupancyRecord(user_id, cell_id, len(cell_id), self.clock())
                current = self._records.get(user_id)
                if current is not None:
                    self._unlink(current)
                self._link(record)
                self._records[user_id] = record

        return record

    def remove(self, user_id: str) -> bool:
        """
        Drop a user from the index.

        Returns:
            True if the user was present
        """
        with self._user_locks.hold(user_id):
            previous = self._records.get(user_id)
            if previous is None:
                return False

            with self._locked({previous.cell_id[0]}):
                current = self._records.pop(user_id, None)
                if current is not None:
                    self._unlink(current)

        return current is not None

    def record(self, user_id: str) -> Optional[OccupancyRecord]:
        """The user's live record, or None if absent or stale"""
        rec = self._records.get(user_id)
        if rec is None or not self._is_fresh(rec, self.clock()):
            return None
        return rec

    def occupants(
        self,
        cells: Iterable[str],
        timeout: Optional[float] = None,
    ) -> Dict[str, str]:
        """
        Snapshot of the fresh occupants of several cells, taken atomically across
        all of them.

        Args:
            cells:
                Cell ids, of any resolution

            timeout: (Default None)
                Seconds to wait for locks before giving up

        Returns:
            A dict of user id to the user's indexed cell

        Raises:
            QueryTimeout: if the snapshot could not be taken within `timeout`
        """
        cells = [validate_cell(x) for x in cells]
        now = self.clock()
        out: Dict[str, str] = {}
        with self._locked({x[0] for x in cells}, timeout):
            for cell_id in cells:
                bucket = self._shards[cell_id[0]].buckets.get(cell_id)
                if not bucket:
                    continue
                for user_id, rec in bucket.items():
                    if self._is_fresh(rec, now):
                        out[user_id] = rec.cell_id

        return out

    def users_in(self, cell_id: str) -> Set[str]:
        """The fresh occupants of a cell, at whatever resolution the cell has"""
        return set(self.occupants([cell_id]))

    def count_in(self, cell_id: str) -> int:
        return len(self.occupants([cell_id]))

    def count_near(self, cell_id: str, ring_radius: int) -> int:
        """
        Count the distinct occupants within `ring_radius` rings of a cell, the
        cell itself included.
        """
        if ring_radius < 0:
            raise ValueError(f'ring radius must be non-negative, not {ring_radius}')

        cells = [x for group in rings(cell_id, ring_radius) for x in group]
        return len(self.occupants(cells))

    def top_cells(self, resolution: int, limit: int) -> List[Tuple[str, int]]:
        """
        The most populated cells at a resolution.

        Shards are read one at a time, so the ranking is approximate under
        concurrent mutation.

        Returns:
            Up to `limit` (cell id, occupant count) pairs, most populated first;
            ties ordered by cell id
        """
        counts: Counter = Counter()
        now = self.clock()
        for shard in self._shards.values():
            with shard.lock:
                for prefix, bucket in shard.buckets.items():
                    if len(prefix) != resolution:
                        continue
                    fresh = sum(1 for rec in bucket.values() if self._is_fresh(rec, now))
                    if fresh:
                        counts[prefix] = fresh

        return sorted(counts.items(), key=lambda x: (-x[1], x[0]))[:limit]

    def sweep(self) -> int:
        """
        Evict stale records. Each shard lock is held for one bucket at a time.

        Returns:
            The number of records evicted
        """
        evicted = 0
        for shard in self._shards.values():
            with shard.lock:
                prefixes = list(shard.buckets)

            for prefix in prefixes:
                with shard.lock:
                    bucket = shard.buckets.get(prefix)
                    if not bucket:
                        continue
                    now = self.clock()
                    stale = [
                        rec for rec in bucket.values()
                        if rec.cell_id == prefix and not self._is_fresh(rec, now)
                    ]
                    for rec in stale:
                        if self._records.get(rec.user_id) is rec:
                            self._unlink(rec)
                            del self._records[rec.user_id]
                            evicted += 1

        if evicted:
            self.logger.debug('evicted %d stale occupancy records', evicted)
        return evicted

    def clear(self) -> None:
        for key in sorted(self._shards):
            with self._shards[key].lock:
                self._shards[key].buckets.clear()
        self._records.clear()


class StalenessSweeper(LoggingMixin, threading.Thread):
    """
    Background thread running `OccupancyIndex.sweep` (and any extra housekeeping
    callbacks) on a fixed interval, independent of query traffic.

    Args:
        index:
            The index to sweep

        interval_s:
            Seconds between sweeps

        callbacks: (Default None)
            Zero-argument callables run after each sweep
    """

    def __init__(
        self,
        index: OccupancyIndex,
        interval_s: float,
        callbacks: Optional[List[Callable[[], object]]] = None,
    ):
        LoggingMixin.__init__(self)
        threading.Thread.__init__(self, name='geoaura-sweeper', daemon=True)
        self.index = index
        self.interval_s = interval_s
        self.callbacks = list(callbacks or [])
        self._halt_event = threading.Event()

    def run(self) -> None:
        while not self._halt_event.wait(self.interval_s):
            self.run_once()

    def run_once(self) -> None:
        try:
            self.index.sweep()
            for callback in self.callbacks:
                callback()
        except Exception:  # pylint: disable=broad-except
            # The thread must outlive a failed pass; the next interval retries
            self.logger.exception('staleness sweep failed')

    def stop(self, timeout: Optional[float] = None) -> None:
        self._halt_event.set()
        if self.is_alive():
            self.join(timeout)
