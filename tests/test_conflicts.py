"""
Tests for conflict detection.
"""

import asyncio
from datetime import date, datetime

from visit_planner.conflicts import ConflictDetector, ConflictKind, Severity
from visit_planner.distance import DistanceEstimator
from visit_planner.models import Coordinates, Segment, Stop
from visit_planner.schedule import ScheduleBuilder
from visit_planner.schemas import AppConfig
from visit_planner.util.time_utils import at


PLAN_DATE = date(2025, 3, 1)


def make_stop(stop_id, fixed=None, duration=0, buffer=0, lng=None):
    coordinates = Coordinates(lat=-37.8, lng=lng) if lng is not None else None
    return Stop(id=stop_id, fixed_time=fixed, duration_minutes=duration, buffer_minutes=buffer, coordinates=coordinates)


def segments_for(stops, travel_minutes):
    """Segments with the given travel times; the detector replays its own clock."""
    placeholder = datetime(2025, 3, 1)
    return [
        Segment(
            from_stop=a,
            to_stop=b,
            travel_minutes=minutes,
            travel_km=0.0,
            departure_time=placeholder,
            arrival_time=placeholder,
            estimated_arrival=placeholder,
        )
        for a, b, minutes in zip(stops, stops[1:], travel_minutes)
    ]


def detect(stops, travel_minutes=None, start_time="09:00", config=None):
    travel_minutes = travel_minutes if travel_minutes is not None else [0] * (len(stops) - 1)
    detector = ConflictDetector(config or AppConfig())
    return detector.detect(stops, segments_for(stops, travel_minutes), start_time, PLAN_DATE)


def of_kind(summary, kind):
    return [c for c in summary.conflicts if c.kind is kind]


def test_fifteen_minutes_late_is_a_warning():
    stops = [make_stop("a", duration=30), make_stop("b", fixed="09:30")]

    summary = detect(stops, [15])

    (late,) = summary.conflicts
    assert late.kind is ConflictKind.LATE_ARRIVAL
    assert late.severity is Severity.WARNING
    assert late.minutes_over == 15
    assert late.stop_id == "b"
    assert late.stop_index == 1
    assert late.previous_stop_id == "a"
    assert late.expected_arrival == "09:45"


def test_sixteen_minutes_late_is_an_error():
    stops = [make_stop("a", duration=30), make_stop("b", fixed="09:30")]

    summary = detect(stops, [16])

    (late,) = summary.conflicts
    assert late.severity is Severity.ERROR
    assert late.minutes_over == 16
    assert summary.errors == 1
    assert summary.warnings == 0


def test_error_threshold_is_configurable():
    stops = [make_stop("a", duration=30), make_stop("b", fixed="09:30")]
    config = AppConfig(planner={"late_error_threshold_minutes": 5})

    (late,) = detect(stops, [6], config=config).conflicts

    assert late.severity is Severity.ERROR


def test_start_after_first_fixed_time():
    stops = [make_stop("first", fixed="08:00"), make_stop("next")]

    summary = detect(stops, start_time="08:30")

    (conflict,) = summary.conflicts
    assert conflict.kind is ConflictKind.LATE_ARRIVAL
    assert conflict.severity is Severity.ERROR
    assert conflict.stop_id == "first"
    assert conflict.minutes_over == 30
    assert "08:30" in conflict.message


def test_same_fixed_time_is_an_overlap_for_every_member():
    stops = [make_stop("x", fixed="10:00"), make_stop("y", fixed="10:00"), make_stop("z", fixed="12:00")]

    summary = detect(stops, start_time="09:00")

    overlaps = of_kind(summary, ConflictKind.OVERLAP)
    assert {c.stop_id for c in overlaps} == {"x", "y"}
    assert all(c.severity is Severity.ERROR for c in overlaps)
    assert all("10:00" in c.message for c in overlaps)
    # a zero gap is a collision, not a buffer shortfall
    assert of_kind(summary, ConflictKind.INSUFFICIENT_BUFFER) == []


def test_insufficient_buffer_between_appointments():
    stops = [make_stop("ten", fixed="10:00", duration=60, buffer=15), make_stop("half", fixed="10:30")]

    summary = detect(stops, start_time="09:00")

    (short,) = of_kind(summary, ConflictKind.INSUFFICIENT_BUFFER)
    assert short.severity is Severity.WARNING
    assert short.stop_id == "ten"
    assert short.minutes_over == -45
    assert "30 minutes" in short.message and "75 min" in short.message

    # the same shortfall also makes the second appointment late
    (late,) = of_kind(summary, ConflictKind.LATE_ARRIVAL)
    assert late.stop_id == "half"
    assert late.minutes_over == 45
    assert summary.affected_ids == frozenset({"ten", "half"})


def test_buffer_check_uses_fixed_time_order_not_route_order():
    stops = [make_stop("later", fixed="14:00"), make_stop("flex"), make_stop("earlier", fixed="13:30", duration=45)]

    summary = detect(stops, start_time="09:00")

    (short,) = of_kind(summary, ConflictKind.INSUFFICIENT_BUFFER)
    assert short.stop_id == "earlier"
    assert short.minutes_over == -15


def test_enough_buffer_is_clean():
    stops = [
        make_stop("a", fixed="09:00", duration=30, buffer=10),
        make_stop("b", duration=20),
        make_stop("c", fixed="11:00", duration=30),
    ]

    summary = detect(stops, [10, 10], start_time="08:30")

    assert not summary.has_conflicts
    assert summary.total_conflicts == 0
    assert summary.affected_ids == frozenset()


def test_stop_can_accumulate_several_conflicts():
    stops = [
        make_stop("a", duration=90),
        make_stop("b", fixed="10:00", duration=30),
        make_stop("c", fixed="10:00"),
    ]

    summary = detect(stops, [0, 0], start_time="09:00")

    assert {c.kind for c in summary.for_stop("b")} == {ConflictKind.LATE_ARRIVAL, ConflictKind.OVERLAP}
    assert {c.kind for c in summary.for_stop("c")} == {ConflictKind.LATE_ARRIVAL, ConflictKind.OVERLAP}


def test_missing_segments_stop_the_walk():
    stops = [make_stop("a", duration=60), make_stop("b"), make_stop("c", fixed="09:00")]

    summary = detect(stops, [5], start_time="09:00")

    assert of_kind(summary, ConflictKind.LATE_ARRIVAL) == []


def test_empty_route():
    summary = ConflictDetector(AppConfig()).detect([], [], "09:00", PLAN_DATE)
    assert summary.to_dict()["has_conflicts"] is False


def test_detection_matches_built_schedule():
    """Arrivals replayed by the detector agree with the builder's segments."""
    stops = [
        make_stop("a", duration=30, lng=144.90),
        make_stop("b", fixed="09:40", duration=20, lng=144.95),
        make_stop("c", duration=10, lng=145.05),
        make_stop("d", fixed="10:05", lng=145.20),
    ]
    estimator = DistanceEstimator(AppConfig())
    segments = asyncio.run(ScheduleBuilder(estimator).build(stops, "09:00", PLAN_DATE))

    summary = ConflictDetector(AppConfig()).detect(stops, segments, "09:00", PLAN_DATE)

    late_ids = {c.stop_id for c in of_kind(summary, ConflictKind.LATE_ARRIVAL)}
    expected = {
        s.to_stop.id for s in segments
        if s.to_stop.fixed_time and s.estimated_arrival > at(s.to_stop.fixed_time, PLAN_DATE)
    }
    assert late_ids == expected
    assert "d" in late_ids


def test_to_dict():
    stops = [make_stop("x", fixed="10:00"), make_stop("y", fixed="10:00")]

    data = detect(stops).to_dict()

    assert data["total_conflicts"] == 2
    assert data["errors"] == 2
    assert data["affected_ids"] == ["x", "y"]
    assert data["conflicts"][0]["kind"] == "overlap"
    assert data["conflicts"][0]["severity"] == "error"
