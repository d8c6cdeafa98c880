"""
Conflict detection for built itineraries.
Handles lateness, fixed-time collisions, and tight gaps between appointments.
"""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .models import Segment, Stop
from .schedule import advance_clock, start_clock
from .schemas import AppConfig
from .util.time_utils import at, format_hhmm, minutes_between, round_minutes


logger = logging.getLogger(__name__)


class ConflictKind(str, Enum):
    LATE_ARRIVAL = "late_arrival"
    OVERLAP = "overlap"
    INSUFFICIENT_BUFFER = "insufficient_buffer"


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Conflict:
    """Represents one scheduling problem at a stop."""
    kind: ConflictKind
    severity: Severity
    stop_id: str
    stop_index: int
    message: str
    minutes_over: Optional[int] = None
    expected_arrival: Optional[str] = None
    fixed_time: Optional[str] = None
    previous_stop_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "stop_id": self.stop_id,
            "stop_index": self.stop_index,
            "message": self.message,
            "minutes_over": self.minutes_over,
            "expected_arrival": self.expected_arrival,
            "fixed_time": self.fixed_time,
            "previous_stop_id": self.previous_stop_id,
        }


@dataclass(frozen=True)
class ConflictSummary:
    """All conflicts found in one schedule instance."""
    conflicts: Tuple[Conflict, ...] = ()

    @property
    def errors(self) -> int:
        return sum(1 for c in self.conflicts if c.severity is Severity.ERROR)

    @property
    def warnings(self) -> int:
        return sum(1 for c in self.conflicts if c.severity is Severity.WARNING)

    @property
    def total_conflicts(self) -> int:
        return len(self.conflicts)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def affected_ids(self) -> FrozenSet[str]:
        return frozenset(c.stop_id for c in self.conflicts)

    def for_stop(self, stop_id: str) -> List[Conflict]:
        return [c for c in self.conflicts if c.stop_id == stop_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_conflicts": self.has_conflicts,
            "total_conflicts": self.total_conflicts,
            "errors": self.errors,
            "warnings": self.warnings,
            "affected_ids": sorted(self.affected_ids),
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


class ConflictDetector:
    """Detects scheduling conflicts in an ordered, built itinerary."""

    def __init__(self, config: AppConfig):
        """Initialize with configuration."""
        self.config = config

    def detect(
        self,
        ordered_stops: Sequence[Stop],
        segments: Sequence[Segment],
        start_time: str,
        plan_date: Optional[date] = None,
    ) -> ConflictSummary:
        """
        Detect conflicts for a stop order and its segments.

        Args:
            ordered_stops: Stops in visiting order
            segments: Segments built for that order
            start_time: Day start as HH:MM
            plan_date: Date the times are anchored on (default: today)

        Returns:
            Summary of every conflict found (empty if feasible)
        """
        conflicts: List[Conflict] = []
        if not ordered_stops:
            return ConflictSummary()

        plan_date = plan_date or date.today()
        index_of = {stop.id: i for i, stop in enumerate(ordered_stops)}
        fixed_stops = [s for s in ordered_stops if s.fixed_time]

        conflicts.extend(self._check_start_time(ordered_stops[0], start_time, plan_date))
        conflicts.extend(self._check_late_arrivals(ordered_stops, segments, start_time, plan_date))
        conflicts.extend(self._check_overlaps(fixed_stops, index_of))
        conflicts.extend(self._check_buffers(fixed_stops, index_of, plan_date))

        summary = ConflictSummary(tuple(conflicts))
        if summary.has_conflicts:
            logger.debug(f"Detected {summary.errors} errors and {summary.warnings} warnings")
        return summary

    def _check_start_time(self, first: Stop, start_time: str, plan_date: date) -> List[Conflict]:
        """The plan must start no later than the first stop's fixed time."""
        if not first.fixed_time:
            return []

        start = at(start_time, plan_date)
        fixed = at(first.fixed_time, plan_date)
        if fixed >= start:
            return []

        return [Conflict(
            kind=ConflictKind.LATE_ARRIVAL,
            severity=Severity.ERROR,
            stop_id=first.id,
            stop_index=0,
            message=f"Start time {start_time} is after fixed time {first.fixed_time}",
            minutes_over=round_minutes(minutes_between(fixed, start)),
            expected_arrival=start_time,
            fixed_time=first.fixed_time,
        )]

    def _check_late_arrivals(
        self,
        ordered_stops: Sequence[Stop],
        segments: Sequence[Segment],
        start_time: str,
        plan_date: date,
    ) -> List[Conflict]:
        """Replay the schedule's clock and compare arrivals with fixed times."""
        violations = []
        threshold = self.config.planner.late_error_threshold_minutes

        clock = start_clock(ordered_stops, start_time, plan_date)
        for i in range(len(ordered_stops) - 1):
            if i >= len(segments):
                break  # later arrivals cannot be derived

            current_stop, next_stop = ordered_stops[i], ordered_stops[i + 1]
            step = advance_clock(clock, current_stop, next_stop, segments[i].travel_minutes, plan_date)

            if next_stop.fixed_time:
                fixed = at(next_stop.fixed_time, plan_date)
                if step.estimated_arrival > fixed:
                    late = round_minutes(minutes_between(fixed, step.estimated_arrival))
                    expected = format_hhmm(step.estimated_arrival)
                    violations.append(Conflict(
                        kind=ConflictKind.LATE_ARRIVAL,
                        severity=Severity.ERROR if late > threshold else Severity.WARNING,
                        stop_id=next_stop.id,
                        stop_index=i + 1,
                        message=f"Will arrive {late} minutes late (at {expected}) for fixed time {next_stop.fixed_time}",
                        minutes_over=late,
                        expected_arrival=expected,
                        fixed_time=next_stop.fixed_time,
                        previous_stop_id=current_stop.id,
                    ))

            clock = step.arrival
        return violations

    def _check_overlaps(self, fixed_stops: Sequence[Stop], index_of: Dict[str, int]) -> List[Conflict]:
        """Every stop sharing a fixed time with another stop is an error."""
        groups: Dict[str, List[Stop]] = {}
        for stop in fixed_stops:
            groups.setdefault(stop.fixed_time, []).append(stop)

        violations = []
        for fixed_time, stops in groups.items():
            if len(stops) < 2:
                continue
            for stop in stops:
                violations.append(Conflict(
                    kind=ConflictKind.OVERLAP,
                    severity=Severity.ERROR,
                    stop_id=stop.id,
                    stop_index=index_of[stop.id],
                    message=f"Multiple stops scheduled at {fixed_time}",
                    minutes_over=0,
                    fixed_time=fixed_time,
                ))
        return violations

    def _check_buffers(
        self,
        fixed_stops: Sequence[Stop],
        index_of: Dict[str, int],
        plan_date: date,
    ) -> List[Conflict]:
        """Adjacent appointments must leave room for the earlier one's visit."""
        violations = []
        by_time = sorted(fixed_stops, key=lambda s: s.fixed_time)

        for current, following in zip(by_time, by_time[1:]):
            available = minutes_between(at(current.fixed_time, plan_date), at(following.fixed_time, plan_date))
            required = current.on_site_minutes
            # gaps <= 0 are collisions, reported by _check_overlaps
            if 0 < available < required:
                violations.append(Conflict(
                    kind=ConflictKind.INSUFFICIENT_BUFFER,
                    severity=Severity.WARNING,
                    stop_id=current.id,
                    stop_index=index_of[current.id],
                    message=(
                        f"Only {round_minutes(available)} minutes before next appointment "
                        f"(need {round_minutes(required)} min)"
                    ),
                    minutes_over=round_minutes(available - required),
                    fixed_time=current.fixed_time,
                ))
        return violations
