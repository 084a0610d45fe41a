"""Per-key locking primitives"""

__all__ = ['KeyedFifoLock']

from contextlib import contextmanager
import threading
from typing import Dict, Hashable, Iterator, List


class KeyedFifoLock:
    """
    A family of mutexes addressed by key, granted strictly in the order they were
    requested. Two threads contending for the same key are served first-come,
    first-served; threads holding different keys never block one another.

    Per-key bookkeeping is discarded as soon as the last waiter for that key releases,
    so the structure does not grow with the number of keys ever seen.

    To use:
        locks = KeyedFifoLock()
        with locks.hold('user-1'):
            ...
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        # key -> [next ticket to hand out, ticket currently being served]
        self._tickets: Dict[Hashable, List[int]] = {}

    def __contains__(self, key: Hashable) -> bool:
        with self._cond:
            return key in self._tickets

    def acquire(self, key: Hashable) -> None:
        """Block until the lock for `key` is granted to the calling thread"""
        with self._cond:
            state = self._tickets.setdefault(key, [0, 0])
            ticket = state[0]
            state[0] += 1
            while state[1] != ticket:
                self._cond.wait()

    def release(self, key: Hashable) -> None:
        """Hand the lock for `key` to the next thread in line"""
        with self._cond:
            state = self._tickets.get(key)
            if state is None or state[1] >= state[0]:
                raise RuntimeError(f'release of unheld key lock {key!r}')

            state[1] += 1
            if state[1] == state[0]:
                del self._tickets[key]
            self._cond.notify_all()

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        self.acquire(key)
        try:
            yield
        finally:
            self.release(key)
