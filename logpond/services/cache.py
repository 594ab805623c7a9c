"""Run-scoped memo cache shared by the user-agent and geo resolvers."""
from __future__ import annotations

import threading
from typing import Callable, Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class FacetCache(Generic[K, V]):
    """Insert-if-absent cache with no eviction.

    Size is bounded by the number of distinct keys in a run, not by the number
    of lines. Safe for concurrent use: two threads missing on the same key may
    both compute the value, but only the first stored value is ever returned.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[K, V] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get_or_compute(self, key: K, compute: Callable[[K], V]) -> V:
        try:
            value = self._entries[key]
        except KeyError:
            pass
        else:
            with self._lock:
                self.hits += 1
            return value

        value = compute(key)
        with self._lock:
            self.misses += 1
            return self._entries.setdefault(key, value)

    def stats(self) -> dict[str, int]:
        return {
            f"{self.name}_entries": len(self._entries),
            f"{self.name}_hits": self.hits,
            f"{self.name}_misses": self.misses,
        }
