"""
Latest-input-wins planning sessions.

Editing the stop set while a plan is being computed makes that plan stale.
A session cancels the in-flight run whenever new input arrives, and a
cancelled run's partial results are never kept.
"""

import asyncio
import logging
from typing import Optional

from .schemas import PlanRequest
from .service import PlanResult, PlannerService

logger = logging.getLogger(__name__)


class PlanningSession:
    """Runs one plan at a time for a single caller."""

    def __init__(self, planner: PlannerService):
        self.planner = planner
        self.latest: Optional[PlanResult] = None
        self._task: Optional[asyncio.Task] = None
        self._generation = 0

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    async def submit(self, request: PlanRequest) -> Optional[PlanResult]:
        """Plan ``request``, superseding any run still in flight.

        Returns None when this run is itself superseded or cancelled.
        """
        self._cancel_running()
        self._generation += 1
        generation = self._generation

        task = asyncio.ensure_future(self.planner.plan(request))
        self._task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                logger.debug(f"Plan run {generation} superseded by run {self._generation}")
                return None
            raise

        if generation != self._generation:
            return None  # finished after a newer submit; discard
        self.latest = result
        return result

    def cancel(self) -> None:
        """Abandon the in-flight run, e.g. after the caller edits a stop."""
        self._generation += 1
        self._cancel_running()

    def _cancel_running(self) -> None:
        if self.busy:
            self._task.cancel()
