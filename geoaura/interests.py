"""
Access to users' declared interests.

Interests live in the application's user store, outside the proximity core;
the query service only needs to read them. Anything with a
`get_interests(user_id)` method can be plugged in; `InterestDirectory` is an
in-memory implementation.
"""

__all__ = ['InterestDirectory', 'InterestSource']

import threading
from typing import Dict, FrozenSet, Iterable, Protocol


class InterestSource(Protocol):  # pylint: disable=too-few-public-methods
    def get_interests(self, user_id: str) -> FrozenSet[str]:
        ...


class InterestDirectory:
    """Thread-safe in-memory user -> interests store"""

    def __init__(self):
        self._lock = threading.Lock()
        self._interests: Dict[str, FrozenSet[str]] = {}

    def set_interests(self, user_id: str, interests: Iterable[str]) -> None:
        with self._lock:
            self._interests[user_id] = frozenset(interests)

    def get_interests(self, user_id: str) -> FrozenSet[str]:
        with self._lock:
            return self._interests.get(user_id, frozenset())

    def remove(self, user_id: str) -> None:
        with self._lock:
            self._interests.pop(user_id, None)
