"""End-of-day return leg and itinerary totals."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from .distance import DistanceEstimator
from .models import Segment, Stop
from .schedule import calculate_total_distance, calculate_total_duration
from .util.time_utils import add_minutes, format_hhmm


@dataclass(frozen=True)
class ReturnLeg:
    from_stop: Stop
    destination: Stop
    distance_km: float
    duration_minutes: float
    source: str
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_stop.id,
            "to": self.destination.id,
            "distance_km": round(self.distance_km, 2),
            "duration_minutes": round(self.duration_minutes, 1),
            "source": self.source,
            "departure_time": format_hhmm(self.departure_time) if self.departure_time else None,
            "arrival_time": format_hhmm(self.arrival_time) if self.arrival_time else None,
        }


@dataclass(frozen=True)
class ItineraryTotals:
    """Base itinerary totals, kept apart from the optional return leg."""
    distance_km: float
    duration_minutes: float
    return_distance_km: float = 0.0
    return_duration_minutes: float = 0.0

    @property
    def distance_km_with_return(self) -> float:
        return self.distance_km + self.return_distance_km

    @property
    def duration_minutes_with_return(self) -> float:
        return self.duration_minutes + self.return_duration_minutes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "distance_km": round(self.distance_km, 2),
            "duration_minutes": round(self.duration_minutes, 1),
            "return_distance_km": round(self.return_distance_km, 2),
            "return_duration_minutes": round(self.return_duration_minutes, 1),
            "distance_km_with_return": round(self.distance_km_with_return, 2),
            "duration_minutes_with_return": round(self.duration_minutes_with_return, 1),
        }


class ReturnTripCalculator:
    """Thin wrapper over the estimator for the trip home."""

    def __init__(self, estimator: DistanceEstimator):
        self.estimator = estimator

    async def estimate_return(
        self,
        last_stop: Optional[Stop],
        destination: Optional[Stop],
        departure_time: Optional[datetime] = None,
    ) -> Optional[ReturnLeg]:
        if last_stop is None or destination is None:
            return None

        estimate = await self.estimator.estimate(last_stop, destination)
        arrival_time = add_minutes(departure_time, estimate.duration_minutes) if departure_time else None
        return ReturnLeg(
            from_stop=last_stop,
            destination=destination,
            distance_km=estimate.distance_km,
            duration_minutes=estimate.duration_minutes,
            source=estimate.source,
            departure_time=departure_time,
            arrival_time=arrival_time,
        )


def itinerary_totals(
    segments: Sequence[Segment],
    stops: Sequence[Stop],
    return_leg: Optional[ReturnLeg] = None,
) -> ItineraryTotals:
    return ItineraryTotals(
        distance_km=calculate_total_distance(segments),
        duration_minutes=calculate_total_duration(segments, stops),
        return_distance_km=return_leg.distance_km if return_leg else 0.0,
        return_duration_minutes=return_leg.duration_minutes if return_leg else 0.0,
    )
