"""Tiered address resolution with a shared coordinate cache.

Resolution walks an ordered list of strategies and stops at the first one that
produces a coordinate:

1. coordinates already stored on the record,
2. the coordinate cache,
3-6. geocoding queries of decreasing specificity (street, city+province,
   province, city),
7. the offline centroid table.

Every success is written to the cache before it is returned. Geocoding failures
only ever cost the tier they happened in.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Sequence

import httpx

from ...config import settings
from ...models.domain import Coordinate, CustomerRecord, LocationQuery
from .cache import CoordinateCache
from .centroids import lookup_centroid
from .places import full_query, location_queries
from .providers import Geocoder

logger = logging.getLogger(__name__)

Strategy = Callable[[CustomerRecord], Awaitable[Optional[Coordinate]]]


@dataclass(slots=True)
class Resolution:
    identity: str
    coordinate: Optional[Coordinate]
    tier: Optional[str]

    @property
    def resolved(self) -> bool:
        return self.coordinate is not None


class AddressResolver:
    def __init__(
        self,
        cache: CoordinateCache,
        geocoder: Geocoder | None = None,
        batch_size: int | None = None,
        batch_delay_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.cache = cache
        self.geocoder = geocoder
        self.batch_size = batch_size or settings.geocode_batch_size
        self.batch_delay_seconds = (
            batch_delay_seconds if batch_delay_seconds is not None else settings.geocode_batch_delay_seconds
        )
        self._sleep = sleep

    # Strategies --------------------------------------------------------------

    async def _stored(self, record: CustomerRecord) -> Optional[Coordinate]:
        return record.stored_coordinate()

    async def _cached(self, record: CustomerRecord) -> Optional[Coordinate]:
        return self.cache.get(record.id)

    async def _geocode(self, record: CustomerRecord, query: LocationQuery) -> Optional[Coordinate]:
        if self.geocoder is None:
            return None
        text = query.format()
        try:
            return await self.geocoder.geocode(text)
        except (httpx.HTTPError, ConnectionError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning(f"Geocoding '{text}' failed for customer {record.id}: {exc}")
            return None

    async def _centroid(self, record: CustomerRecord) -> Optional[Coordinate]:
        query = full_query(record)
        return lookup_centroid(query.city, query.province)

    def strategies(self, record: CustomerRecord) -> list[tuple[str, Strategy]]:
        """Ordered ``(tier name, strategy)`` pairs for ``record``."""

        tiers: list[tuple[str, Strategy]] = [("stored", self._stored), ("cache", self._cached)]
        for tier, query in location_queries(record):
            tiers.append((tier, lambda rec, q=query: self._geocode(rec, q)))
        tiers.append(("centroid", self._centroid))
        return tiers

    # Public API --------------------------------------------------------------

    async def resolve_with_tier(self, record: CustomerRecord) -> Resolution:
        for tier, strategy in self.strategies(record):
            coordinate = await strategy(record)
            if coordinate is None:
                continue
            if tier != "cache":
                self.cache.put(record.id, coordinate)
            if tier not in ("stored", "cache"):
                logger.info(f"Resolved customer {record.id} via {tier}: {coordinate.latitude:.5f},{coordinate.longitude:.5f}")
            return Resolution(record.id, coordinate, tier)
        logger.warning(f"Could not resolve customer {record.id} ({record.name!r}); every tier exhausted")
        return Resolution(record.id, None, None)

    async def resolve(self, record: CustomerRecord) -> Optional[Coordinate]:
        return (await self.resolve_with_tier(record)).coordinate

    async def resolve_many(
        self,
        records: Sequence[CustomerRecord],
        is_current: Callable[[str], bool] | None = None,
    ) -> dict[str, Optional[Coordinate]]:
        """Resolve ``records`` in small batches with a pause between batches.

        Records are resolved concurrently only inside a batch. When ``is_current``
        is given, results for identities it rejects are discarded on arrival and
        later batches skip them entirely.
        """

        results: dict[str, Optional[Coordinate]] = {}
        pending = _dedupe(records)
        for start in range(0, len(pending), self.batch_size):
            batch = [record for record in pending[start : start + self.batch_size] if _accepts(is_current, record.id)]
            if not batch:
                continue
            resolutions = await asyncio.gather(*(self.resolve_with_tier(record) for record in batch))
            for resolution in resolutions:
                if not _accepts(is_current, resolution.identity):
                    logger.debug(f"Discarding resolution for {resolution.identity}; no longer visible")
                    continue
                results[resolution.identity] = resolution.coordinate
            more_batches = start + self.batch_size < len(pending)
            if more_batches and self.batch_delay_seconds > 0:
                await self._sleep(self.batch_delay_seconds)
        return results

    async def relocate(
        self,
        records: Sequence[CustomerRecord],
        is_current: Callable[[str], bool] | None = None,
    ) -> dict[str, Optional[Coordinate]]:
        """Drop every cached coordinate and resolve ``records`` again."""

        logger.info(f"Precise re-locate requested for {len(records)} customers; clearing coordinate cache")
        self.cache.invalidate_all()
        return await self.resolve_many(records, is_current=is_current)


def _accepts(is_current: Callable[[str], bool] | None, identity: str) -> bool:
    return is_current is None or is_current(identity)


def _dedupe(records: Iterable[CustomerRecord]) -> list[CustomerRecord]:
    seen: set[str] = set()
    unique: list[CustomerRecord] = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique
