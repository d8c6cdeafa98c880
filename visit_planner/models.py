"""
Core data models for the Visit Planner.
Stops are validated pydantic values; schedule outputs are plain dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .util.time_utils import format_hhmm, parse_hhmm

# A visit or its buffer never spans more than a day
MAX_ON_SITE_MINUTES = 24 * 60


class StopKind(str, Enum):
    """Stop kinds. Callers use these for display; scheduling ignores them."""
    OPEN_HOME = "open_home"
    APPOINTMENT = "appointment"


class Coordinates(BaseModel):
    """Geographic coordinates."""
    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class Stop(BaseModel):
    """A place to visit, already geocoded (or not) by the caller."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    address: str = Field(default="")
    name: Optional[str] = Field(default=None)
    coordinates: Optional[Coordinates] = Field(default=None)
    duration_minutes: float = Field(default=0, ge=0, le=MAX_ON_SITE_MINUTES, allow_inf_nan=False)
    buffer_minutes: float = Field(default=0, ge=0, le=MAX_ON_SITE_MINUTES, allow_inf_nan=False)
    fixed_time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")  # HH:MM
    kind: StopKind = Field(default=StopKind.OPEN_HOME)
    notes: Optional[str] = Field(default=None)

    @field_validator('fixed_time')
    @classmethod
    def fixed_time_parses(cls, v):
        """Reject values like 24:00 or 09:61 that match the pattern."""
        if v is not None:
            parse_hhmm(v)
        return v

    @property
    def label(self) -> str:
        return self.name or self.address or self.id

    @property
    def on_site_minutes(self) -> float:
        """Time consumed at the stop before departing."""
        return self.duration_minutes + self.buffer_minutes


@dataclass(frozen=True)
class Segment:
    """One travel leg between consecutive stops."""
    from_stop: Stop
    to_stop: Stop
    travel_minutes: float
    travel_km: float
    departure_time: datetime
    arrival_time: datetime       # after holding for a fixed time
    estimated_arrival: datetime  # departure + travel, before holding
    source: str = "haversine"

    @property
    def wait_minutes(self) -> float:
        return (self.arrival_time - self.estimated_arrival).total_seconds() / 60.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_stop.id,
            "to": self.to_stop.id,
            "travel_minutes": round(self.travel_minutes, 1),
            "travel_km": round(self.travel_km, 2),
            "departure_time": format_hhmm(self.departure_time),
            "arrival_time": format_hhmm(self.arrival_time),
            "source": self.source,
        }
