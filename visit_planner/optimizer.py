"""
Route ordering heuristics for the Visit Planner.

Fixed-time stops anchor the sequence in time order; flexible stops are
placed around them by nearest neighbour, spread across the gaps between
anchors. The result is a best-effort ordering, not an optimal tour, and
always contains every input stop exactly once.
"""

import logging
import math
from typing import List, Optional, Sequence

from .distance import DistanceEstimator
from .models import Stop


logger = logging.getLogger(__name__)


class RouteOptimizer:
    """Orders a stop set into a visiting sequence."""

    def __init__(self, estimator: DistanceEstimator):
        self.estimator = estimator

    async def optimize(self, stops: Sequence[Stop]) -> List[Stop]:
        """
        Order stops for visiting.

        Args:
            stops: Stops in caller order; the first flexible stop starts
                the nearest-neighbour chain

        Returns:
            A permutation of ``stops``
        """
        stops = list(stops)
        if len(stops) <= 2:
            return stops

        # sorted() is stable, so equal fixed times keep input order
        fixed = sorted((s for s in stops if s.fixed_time), key=lambda s: s.fixed_time)
        flexible = [s for s in stops if not s.fixed_time]

        if not flexible:
            return fixed

        if not fixed:
            route = [flexible[0]]
            route.extend(await self._take_nearest(flexible[0], flexible[1:], limit=None))
        else:
            route = await self._anchor_on_fixed(fixed, flexible)

        logger.info(f"Optimized {len(route)} stops ({len(fixed)} fixed, {len(flexible)} flexible)")
        return route

    async def _anchor_on_fixed(self, fixed: List[Stop], flexible: List[Stop]) -> List[Stop]:
        remaining = list(flexible)
        route: List[Stop] = []

        # Slots: one before the first anchor plus one after each anchor
        before_quota = math.ceil(len(flexible) / (len(fixed) + 1))
        route.extend(await self._take_nearest(None, remaining, before_quota))

        for i, anchor in enumerate(fixed):
            route.append(anchor)
            if remaining and i < len(fixed) - 1:
                gap_quota = math.ceil(len(remaining) / (len(fixed) - i))
                route.extend(await self._take_nearest(anchor, remaining, gap_quota))

        if remaining:
            route.extend(await self._take_nearest(route[-1], remaining, limit=None))
        return route

    async def _take_nearest(
        self,
        current: Optional[Stop],
        remaining: List[Stop],
        limit: Optional[int],
    ) -> List[Stop]:
        """Pop up to ``limit`` stops from ``remaining``, chaining nearest neighbours.

        With no current position the first remaining stop is taken as is.
        """
        taken: List[Stop] = []
        while remaining and (limit is None or len(taken) < limit):
            index = 0 if current is None else await self._nearest_index(current, remaining)
            current = remaining.pop(index)
            taken.append(current)
        return taken

    async def _nearest_index(self, current: Stop, candidates: Sequence[Stop]) -> int:
        nearest_index = 0
        nearest_distance = math.inf
        for i, candidate in enumerate(candidates):
            estimate = await self.estimator.estimate(current, candidate)
            if estimate.distance_km < nearest_distance:  # strict: first minimum wins
                nearest_distance = estimate.distance_km
                nearest_index = i
        return nearest_index
