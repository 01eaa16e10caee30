"""Coordinate cache shared by every resolution in a session."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterator, Optional, Protocol

from ...config import settings
from ...models.domain import CacheEntry, Coordinate

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def read(self, key: str, default=None): ...

    def write(self, key: str, data) -> None: ...

    def delete(self, key: str) -> bool: ...


class CoordinateCache:
    """In-memory map of identity -> coordinate mirrored into a durable blob.

    The durable side is a flat ``{identity: {"lat": .., "lng": ..}}`` map that is
    loaded once at construction and rewritten on every successful ``put``.
    Entries are never expired; ``invalidate`` and ``invalidate_all`` are the only
    ways to drop them.
    """

    def __init__(self, store: KeyValueStore | None = None, key: str | None = None) -> None:
        self.store = store
        self.key = key or settings.coordinate_cache_key
        self._entries: dict[str, CacheEntry] = {}
        self._load()

    def _load(self) -> None:
        if self.store is None:
            return
        raw = self.store.read(self.key, default={}) or {}
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring malformed coordinate cache blob under '{self.key}'")
            return
        loaded_at = datetime.now(timezone.utc)
        for identity, value in raw.items():
            try:
                coordinate = Coordinate.from_dict(value)
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Skipping invalid cached coordinate for '{identity}': {value!r}")
                continue
            self._entries[str(identity)] = CacheEntry(str(identity), coordinate, loaded_at)
        logger.info(f"Loaded {len(self._entries)} cached coordinates")

    def _persist(self) -> None:
        if self.store is None:
            return
        blob = {identity: entry.coordinate.to_dict() for identity, entry in self._entries.items()}
        try:
            self.store.write(self.key, blob)
        except OSError as exc:
            logger.warning(f"Failed to persist coordinate cache: {exc}")

    def get(self, identity: str) -> Optional[Coordinate]:
        entry = self._entries.get(identity)
        return entry.coordinate if entry else None

    def entry(self, identity: str) -> Optional[CacheEntry]:
        return self._entries.get(identity)

    def put(self, identity: str, coordinate: Coordinate) -> CacheEntry:
        current = self._entries.get(identity)
        if current is not None and current.coordinate == coordinate:
            return current
        entry = CacheEntry(identity, coordinate, datetime.now(timezone.utc))
        self._entries[identity] = entry
        self._persist()
        return entry

    def invalidate(self, identity: str) -> bool:
        removed = self._entries.pop(identity, None) is not None
        if removed:
            self._persist()
        return removed

    def invalidate_all(self) -> None:
        self._entries.clear()
        if self.store is not None:
            self.store.delete(self.key)

    def snapshot(self) -> dict[str, Coordinate]:
        return {identity: entry.coordinate for identity, entry in self._entries.items()}

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))
