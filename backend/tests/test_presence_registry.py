"""Tests for the in-memory presence registry."""
import threading
from datetime import datetime, timedelta, timezone

import pytest

from src.presence.registry import PresenceRegistry


class StepClock:
    """Deterministic clock: each call advances one second."""

    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def registry(clock):
    return PresenceRegistry(clock=clock)


def test_upsert_then_get(registry):
    registry.upsert("a", "Alice", 10.0, 20.0)
    rec = registry.get("a")
    assert rec.connection_id == "a"
    assert rec.display_name == "Alice"
    assert (rec.latitude, rec.longitude) == (10.0, 20.0)
    assert rec.has_position
    assert "a" in registry
    assert len(registry) == 1


def test_upsert_overwrites_and_refreshes_last_seen(registry):
    first = registry.upsert("a", "Alice", 10.0, 20.0)
    second = registry.upsert("a", "Alice2", 11.0, 21.0)
    rec = registry.get("a")
    assert rec.display_name == "Alice2"
    assert rec.latitude == 11.0
    assert second.last_seen > first.last_seen
    assert len(registry) == 1


def test_update_position_unknown_is_noop(registry):
    assert registry.update_position("ghost", 1.0, 2.0) is None
    assert registry.get("ghost") is None
    assert len(registry) == 0


def test_update_position_mutates_in_place(registry):
    registered = registry.upsert("a", "Alice", 10.0, 20.0)
    moved = registry.update_position("a", 10.5, 20.5)
    assert moved.display_name == "Alice"
    assert (moved.latitude, moved.longitude) == (10.5, 20.5)
    assert moved.last_seen > registered.last_seen
    assert registry.get("a").latitude == 10.5


def test_update_position_can_clear_position(registry):
    registry.upsert("a", "Alice", 10.0, 20.0)
    registry.update_position("a", None, None)
    assert not registry.get("a").has_position


def test_remove(registry):
    registry.upsert("a", "Alice", 10.0, 20.0)
    removed = registry.remove("a")
    assert removed.display_name == "Alice"
    assert registry.get("a") is None
    assert registry.remove("a") is None


def test_get_returns_copy(registry):
    registry.upsert("a", "Alice", 10.0, 20.0)
    rec = registry.get("a")
    rec.latitude = 0.0
    assert registry.get("a").latitude == 10.0


def test_all_is_snapshot(registry):
    registry.upsert("a", "Alice", 10.0, 20.0)
    registry.upsert("b", "Bob", 10.0, 20.0)
    it = registry.all()
    # Mutating while iterating must neither raise nor leak into the snapshot
    registry.remove("a")
    registry.upsert("c", "Carol", 1.0, 1.0)
    ids = sorted(cid for cid, _ in it)
    assert ids == ["a", "b"]
    assert sorted(cid for cid, _ in registry.all()) == ["b", "c"]


def test_remove_returns_copy(registry):
    registry.upsert("a", "Alice", 10.0, 20.0)
    removed = registry.remove("a")
    removed.latitude = 0.0
    registry.upsert("a", "Alice", 10.0, 20.0)
    assert registry.get("a").latitude == 10.0


def test_concurrent_mutation_and_enumeration():
    registry = PresenceRegistry()
    errors = []
    stop = threading.Event()
    workers, per_worker = 8, 200

    def mutate(worker):
        try:
            for i in range(per_worker):
                cid = f"w{worker}-{i}"
                registry.upsert(cid, cid, 10.0, 20.0)
                registry.update_position(cid, 10.0 + i * 1e-6, 20.0)
                if i % 2 == 0:
                    registry.remove(cid)
        except Exception as e:
            errors.append(e)

    def enumerate_all():
        try:
            while not stop.is_set():
                for cid, rec in registry.all():
                    assert rec.connection_id == cid
                len(registry)
        except Exception as e:
            errors.append(e)

    reader = threading.Thread(target=enumerate_all)
    reader.start()
    threads = [threading.Thread(target=mutate, args=(w,)) for w in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    stop.set()
    reader.join()

    assert errors == []
    # Odd-numbered entries survive in every worker
    assert len(registry) == workers * per_worker // 2
