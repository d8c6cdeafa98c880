"""
Schedule calculation for an ordered visit sequence.

Walks the stops with a single running clock, producing one travel segment
per consecutive pair. A stop with a fixed time holds the arrival at that
time when the traveller would otherwise be early. The clock walk lives in
``advance_clock`` so conflict detection replays exactly the same steps.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Sequence

from .distance import DistanceEstimator
from .models import Segment, Stop
from .util.time_utils import add_minutes, at


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClockStep:
    """Times produced by moving the clock across one pair of stops."""
    departure: datetime
    estimated_arrival: datetime
    arrival: datetime


def start_clock(ordered_stops: Sequence[Stop], start_time: str, plan_date: date) -> datetime:
    """A fixed first stop overrides the nominal start time."""
    if ordered_stops and ordered_stops[0].fixed_time:
        return at(ordered_stops[0].fixed_time, plan_date)
    return at(start_time, plan_date)


def advance_clock(
    clock: datetime,
    from_stop: Stop,
    to_stop: Stop,
    travel_minutes: float,
    plan_date: date,
) -> ClockStep:
    departure = add_minutes(clock, from_stop.on_site_minutes)
    estimated_arrival = add_minutes(departure, travel_minutes)
    arrival = estimated_arrival
    if to_stop.fixed_time:
        fixed = at(to_stop.fixed_time, plan_date)
        if fixed > estimated_arrival:
            arrival = fixed  # early: wait for the appointment
    return ClockStep(departure=departure, estimated_arrival=estimated_arrival, arrival=arrival)


class ScheduleBuilder:
    """Derives segments and arrival/departure times from a stop order."""

    def __init__(self, estimator: DistanceEstimator):
        self.estimator = estimator

    async def build(
        self,
        ordered_stops: Sequence[Stop],
        start_time: str,
        plan_date: Optional[date] = None,
    ) -> List[Segment]:
        """
        Build the travel segments for an ordered list of stops.

        Args:
            ordered_stops: Stops in visiting order
            start_time: Day start as HH:MM
            plan_date: Date the times are anchored on (default: today)

        Returns:
            ``len(ordered_stops) - 1`` segments, in order
        """
        plan_date = plan_date or date.today()
        segments: List[Segment] = []
        if len(ordered_stops) < 2:
            return segments

        clock = start_clock(ordered_stops, start_time, plan_date)
        for from_stop, to_stop in zip(ordered_stops, ordered_stops[1:]):
            estimate = await self.estimator.estimate(from_stop, to_stop)
            step = advance_clock(clock, from_stop, to_stop, estimate.duration_minutes, plan_date)
            segments.append(Segment(
                from_stop=from_stop,
                to_stop=to_stop,
                travel_minutes=estimate.duration_minutes,
                travel_km=estimate.distance_km,
                departure_time=step.departure,
                arrival_time=step.arrival,
                estimated_arrival=step.estimated_arrival,
                source=estimate.source,
            ))
            clock = step.arrival

        logger.debug(f"Built {len(segments)} segments for {len(ordered_stops)} stops")
        return segments


def calculate_total_distance(segments: Sequence[Segment]) -> float:
    return sum(segment.travel_km for segment in segments)


def calculate_total_duration(segments: Sequence[Segment], stops: Sequence[Stop]) -> float:
    """Travel time plus time spent on site (duration and buffer) at every stop."""
    travel = sum(segment.travel_minutes for segment in segments)
    on_site = sum(stop.on_site_minutes for stop in stops)
    return travel + on_site
