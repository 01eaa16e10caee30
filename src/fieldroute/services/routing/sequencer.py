"""Nearest-neighbor visit sequencing for a hand-picked set of stops.

This is a greedy heuristic, not a tour optimiser: starting from the user's
position it repeatedly walks to the closest remaining stop. The scan is O(n^2).
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ...models.domain import Coordinate
from ..geospatial import distance_between
from .models import SequenceResult, StopInput

logger = logging.getLogger(__name__)


def sequence(stops: Sequence[StopInput], start: Optional[Coordinate]) -> SequenceResult:
    """Order ``stops`` by repeatedly visiting the nearest remaining one.

    Args:
        stops: Stops in their current order. Stops without a coordinate cannot be
            placed and are appended at the end in their original relative order.
        start: Position to start from, typically the user's current location.
            When ``None`` the first resolved stop is used as the anchor.

    Returns:
        A ``SequenceResult``. ``optimized`` is ``False`` (and the input order is
        returned untouched) when no stop has a coordinate.
    """

    resolved = [stop for stop in stops if stop.coordinate is not None]
    unresolved = [stop.identity for stop in stops if stop.coordinate is None]

    if not resolved:
        logger.info(f"Could not optimize route: none of the {len(stops)} stops has a coordinate")
        return SequenceResult(order=[stop.identity for stop in stops], optimized=False, unresolved=unresolved)

    remaining = list(resolved)
    order: list[str] = []
    if start is None:
        first = remaining.pop(0)
        order.append(first.identity)
        current = first.coordinate
    else:
        current = start

    while remaining:
        # strict "<": ties keep the earliest stop
        best_index = 0
        best_distance = distance_between(current, remaining[0].coordinate)
        for index in range(1, len(remaining)):
            candidate = distance_between(current, remaining[index].coordinate)
            if candidate < best_distance:
                best_index, best_distance = index, candidate
        chosen = remaining.pop(best_index)
        order.append(chosen.identity)
        current = chosen.coordinate

    order.extend(unresolved)
    return SequenceResult(order=order, optimized=True, unresolved=unresolved)
