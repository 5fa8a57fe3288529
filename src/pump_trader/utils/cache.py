"""Bounded in-memory containers with LRU eviction and optional expiry."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Hashable, Iterator
from typing import Generic, TypeVar

from pump_trader.types import Clock, epoch_ms

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class BoundedDict(Generic[K, V]):
    """Mapping capped at ``maxsize`` entries; oldest-written entries are evicted first.

    When ``ttl_seconds`` is set, entries older than the TTL are treated as absent
    and dropped lazily on access. Age is measured from the last write against the
    current ``ttl_seconds``, so changing the TTL applies to existing entries too.
    """

    def __init__(
        self,
        maxsize: int = 10_000,
        ttl_seconds: float | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize_must_be_positive")
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self._clock = clock or epoch_ms
        self._data: OrderedDict[K, V] = OrderedDict()
        self._written_at: dict[K, float] = {}

    def get(self, key: K, default: V | None = None) -> V | None:
        if key not in self._data:
            return default
        if self._is_expired(key):
            self._remove(key)
            return default
        return self._data[key]

    def set(self, key: K, value: V) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        else:
            while len(self._data) >= self.maxsize:
                oldest = next(iter(self._data))
                self._remove(oldest)
        self._data[key] = value
        self._written_at[key] = self._clock()

    def delete(self, key: K) -> bool:
        if key in self._data:
            self._remove(key)
            return True
        return False

    def items(self) -> list[tuple[K, V]]:
        """Live (non-expired) entries, oldest first."""
        self.purge_expired()
        return list(self._data.items())

    def purge_expired(self) -> int:
        expired = [key for key in self._data if self._is_expired(key)]
        for key in expired:
            self._remove(key)
        return len(expired)

    def clear(self) -> None:
        self._data.clear()
        self._written_at.clear()

    def _is_expired(self, key: K) -> bool:
        if self.ttl_seconds is None:
            return False
        return self._clock() > self._written_at.get(key, 0.0) + self.ttl_seconds * 1000.0

    def _remove(self, key: K) -> None:
        self._data.pop(key, None)
        self._written_at.pop(key, None)

    def __contains__(self, key: object) -> bool:
        if key not in self._data:
            return False
        if self._is_expired(key):  # type: ignore[arg-type]
            self._remove(key)  # type: ignore[arg-type]
            return False
        return True

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[K]:
        return iter([key for key, _ in self.items()])


class BoundedSet(Generic[K]):
    """Membership set with the same capacity and expiry rules as ``BoundedDict``."""

    def __init__(
        self,
        maxsize: int = 10_000,
        ttl_seconds: float | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._entries: BoundedDict[K, bool] = BoundedDict(maxsize, ttl_seconds, clock=clock)

    @property
    def ttl_seconds(self) -> float | None:
        return self._entries.ttl_seconds

    @ttl_seconds.setter
    def ttl_seconds(self, value: float | None) -> None:
        self._entries.ttl_seconds = value

    def add(self, key: K) -> None:
        self._entries.set(key, True)

    def discard(self, key: K) -> None:
        self._entries.delete(key)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
