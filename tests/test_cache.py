from __future__ import annotations

import pytest

from conftest import FakeClock
from pump_trader.utils.cache import BoundedDict, BoundedSet


def test_evicts_oldest_written_entry() -> None:
    cache: BoundedDict[str, int] = BoundedDict(2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    cache.set("c", 3)

    assert "b" not in cache
    assert cache.get("a") == 10
    assert [k for k, _ in cache.items()] == ["a", "c"]


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache: BoundedDict[str, int] = BoundedDict(10, ttl_seconds=60, clock=clock)
    cache.set("a", 1)

    clock.advance(seconds=59)
    assert cache.get("a") == 1
    clock.advance(seconds=2)
    assert cache.get("a") is None
    assert len(cache) == 0


def test_purge_expired_counts_removed() -> None:
    clock = FakeClock()
    cache: BoundedDict[str, int] = BoundedDict(10, ttl_seconds=1, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    clock.advance(seconds=2)
    cache.set("c", 3)

    assert cache.purge_expired() == 2
    assert list(cache) == ["c"]


def test_delete_and_clear() -> None:
    cache: BoundedDict[str, int] = BoundedDict(3)
    cache.set("a", 1)
    assert cache.delete("a") is True
    assert cache.delete("a") is False
    cache.set("b", 2)
    cache.clear()
    assert len(cache) == 0


def test_maxsize_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BoundedDict(0)


def test_bounded_set() -> None:
    clock = FakeClock()
    seen: BoundedSet[str] = BoundedSet(2, ttl_seconds=10, clock=clock)
    seen.add("a")
    seen.add("b")
    seen.add("c")
    assert "a" not in seen
    assert "c" in seen

    seen.discard("c")
    assert "c" not in seen
    clock.advance(seconds=11)
    assert "b" not in seen
    assert len(seen) == 0
