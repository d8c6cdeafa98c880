"""
Visit Planner package.
Orders open-home visits and appointments, builds the day's schedule and flags conflicts.
"""

__version__ = "0.1.0"

from .models import Coordinates, Segment, Stop, StopKind
from .schemas import AppConfig, PlanRequest, Settings

__all__ = [
    "AppConfig",
    "Coordinates",
    "PlanRequest",
    "Segment",
    "Settings",
    "Stop",
    "StopKind",
]
