"""
Main service layer for visit planning.
Orchestrates optimization, scheduling, conflict detection and the return leg.
"""

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .conflicts import ConflictDetector, ConflictSummary
from .distance import DistanceEstimator
from .history import PlanHistory
from .models import Segment, Stop
from .optimizer import RouteOptimizer
from .rate_limit import RateLimiter
from .return_trip import ItineraryTotals, ReturnLeg, ReturnTripCalculator, itinerary_totals
from .schedule import ScheduleBuilder, start_clock
from .schemas import AppConfig, PlanRequest, Settings
from .util.time_utils import add_minutes


logger = logging.getLogger(__name__)


def load_config(config_path: Union[str, Path]) -> AppConfig:
    """Load configuration from YAML file."""
    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
        return AppConfig(**config_data)
    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise


@dataclass(frozen=True)
class PlanResult:
    """Everything one planning run produces."""
    ordered_stops: List[Stop]
    segments: List[Segment]
    conflicts: ConflictSummary
    totals: ItineraryTotals
    return_leg: Optional[ReturnLeg] = None
    optimized: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "optimized": self.optimized,
            "ordered_stop_ids": [stop.id for stop in self.ordered_stops],
            "segments": [segment.to_dict() for segment in self.segments],
            "conflicts": self.conflicts.to_dict(),
            "return_leg": self.return_leg.to_dict() if self.return_leg else None,
            "totals": self.totals.to_dict(),
        }


class PlannerService:
    """Main service for visit planning."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        settings: Optional[Settings] = None,
        estimator: Optional[DistanceEstimator] = None,
    ):
        """Initialize service with configuration."""
        self.config = config or AppConfig()
        self.settings = settings if settings is not None else Settings()

        # One limiter for every remote call this service makes
        self.rate_limiter = RateLimiter.per_second(self.config.google.rate_limit_requests_per_second)

        # Initialize components
        self.estimator = estimator or DistanceEstimator(
            self.config, self.settings, rate_limiter=self.rate_limiter
        )
        self.optimizer = RouteOptimizer(self.estimator)
        self.builder = ScheduleBuilder(self.estimator)
        self.detector = ConflictDetector(self.config)
        self.return_calculator = ReturnTripCalculator(self.estimator)

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path] = "config/params.yaml", **kwargs) -> "PlannerService":
        service = cls(load_config(config_path), **kwargs)
        service.setup_logging()
        return service

    def setup_logging(self) -> None:
        """Setup logging configuration."""
        logging.basicConfig(
            level=getattr(logging, self.config.logging.level),
            format=self.config.logging.format
        )

    async def plan(self, request: PlanRequest) -> PlanResult:
        """
        Run a full planning pass.

        Args:
            request: Validated stop set, start time and options

        Returns:
            Ordered stops, segments, conflicts, return leg and totals
        """
        plan_date = request.plan_date or date.today()
        self.estimator.clear_cache()

        if request.optimize:
            ordered = await self.optimizer.optimize(request.stops)
        else:
            ordered = list(request.stops)

        segments = await self.builder.build(ordered, request.start_time, plan_date)
        conflicts = self.detector.detect(ordered, segments, request.start_time, plan_date)

        return_leg = None
        if ordered and request.return_destination is not None:
            last = ordered[-1]
            arrival = segments[-1].arrival_time if segments else start_clock(ordered, request.start_time, plan_date)
            return_leg = await self.return_calculator.estimate_return(
                last, request.return_destination, add_minutes(arrival, last.on_site_minutes)
            )

        totals = itinerary_totals(segments, ordered, return_leg)
        logger.info(
            f"Planned {len(ordered)} stops: {totals.distance_km:.1f} km, "
            f"{totals.duration_minutes:.0f} min, {conflicts.errors} errors, {conflicts.warnings} warnings"
        )
        return PlanResult(
            ordered_stops=ordered,
            segments=segments,
            conflicts=conflicts,
            totals=totals,
            return_leg=return_leg,
            optimized=request.optimize,
        )

    def new_history(self) -> PlanHistory:
        return PlanHistory(max_size=self.config.planner.history_size)

    def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "google_api_configured": self.estimator.remote_configured,
        }

    async def close(self):
        """Clean up resources."""
        await self.estimator.close()
