from pathlib import Path

from fieldroute.models.domain import Coordinate
from fieldroute.persistence.filesystem import FileStorage
from fieldroute.services.geocoding import CoordinateCache


def test_put_persists_flat_lat_lng_map(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)
    cache = CoordinateCache(storage, key="coords")

    cache.put("C1", Coordinate(37.25, -7.2))

    assert storage.read("coords") == {"C1": {"lat": 37.25, "lng": -7.2}}
    assert cache.entry("C1").written_at is not None


def test_cache_is_loaded_from_storage(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)
    storage.write("coords", {"C1": {"lat": 37.25, "lng": -7.2}, "C2": {"lat": "bad"}, "C3": {"lat": 120, "lng": 0}})

    cache = CoordinateCache(storage, key="coords")

    assert cache.get("C1") == Coordinate(37.25, -7.2)
    assert "C2" not in cache
    assert "C3" not in cache
    assert len(cache) == 1


def test_later_success_overwrites_entry(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)
    cache = CoordinateCache(storage, key="coords")

    cache.put("C1", Coordinate(37.0, -7.0))
    cache.put("C1", Coordinate(37.5, -7.5))

    assert cache.get("C1") == Coordinate(37.5, -7.5)
    assert CoordinateCache(storage, key="coords").get("C1") == Coordinate(37.5, -7.5)


def test_invalidate_single_identity(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)
    cache = CoordinateCache(storage, key="coords")
    cache.put("C1", Coordinate(37.0, -7.0))
    cache.put("C2", Coordinate(36.5, -6.3))

    assert cache.invalidate("C1") is True
    assert cache.invalidate("missing") is False
    assert list(cache) == ["C2"]
    assert storage.read("coords") == {"C2": {"lat": 36.5, "lng": -6.3}}


def test_invalidate_all_drops_memory_and_storage(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)
    cache = CoordinateCache(storage, key="coords")
    cache.put("C1", Coordinate(37.0, -7.0))

    cache.invalidate_all()

    assert len(cache) == 0
    assert storage.read("coords") is None
    assert len(CoordinateCache(storage, key="coords")) == 0


def test_cache_without_store_is_memory_only() -> None:
    cache = CoordinateCache()
    cache.put("C1", Coordinate(37.0, -7.0))
    assert cache.snapshot() == {"C1": Coordinate(37.0, -7.0)}


class CountingStore:
    def __init__(self) -> None:
        self.blobs: dict = {}
        self.writes = 0

    def read(self, key, default=None):
        return self.blobs.get(key, default)

    def write(self, key, data) -> None:
        self.writes += 1
        self.blobs[key] = data

    def delete(self, key) -> bool:
        return self.blobs.pop(key, None) is not None


def test_unchanged_coordinate_is_not_rewritten() -> None:
    store = CountingStore()
    cache = CoordinateCache(store, key="coords")

    first = cache.put("C1", Coordinate(37.25, -7.2))
    again = cache.put("C1", Coordinate(37.25, -7.2))

    assert again is first
    assert store.writes == 1

    cache.put("C1", Coordinate(37.3, -7.2))
    assert store.writes == 2
