"""
Pydantic schemas for configuration, settings, and API validation.
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import Stop
from .util.time_utils import parse_hhmm


class PlannerConfig(BaseModel):
    """Scheduling and fallback-estimate configuration."""
    average_speed_kmph: float = Field(default=40.0, gt=0)
    late_error_threshold_minutes: int = Field(default=15, ge=0)
    default_start_time: str = Field(default="09:00", pattern=r"^\d{2}:\d{2}$")
    history_size: int = Field(default=20, ge=1)

    @field_validator('default_start_time')
    @classmethod
    def start_time_parses(cls, v):
        parse_hhmm(v)
        return v


class GoogleConfig(BaseModel):
    """Google Distance Matrix API configuration."""
    base_url: str = Field(default="https://maps.googleapis.com/maps/api")
    max_retries: int = Field(default=3, ge=1, le=10)
    retry_delay_seconds: float = Field(default=1.0, ge=0)
    rate_limit_requests_per_second: float = Field(default=1.0, gt=0, le=100)
    timeout_seconds: float = Field(default=30.0, gt=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR)$"
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


class DevConfig(BaseModel):
    """Development and testing configuration."""
    cache_distances: bool = Field(default=True)


class AppConfig(BaseModel):
    """Complete application configuration loaded from params.yaml."""
    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    google: GoogleConfig = Field(default_factory=GoogleConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    dev: DevConfig = Field(default_factory=DevConfig)


class Settings(BaseSettings):
    """Environment-based settings (primarily for secrets)."""
    google_maps_api_key: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# API Request/Response Schemas
class PlanRequest(BaseModel):
    """A planning session's input: the stop set and the day's start."""
    stops: List[Stop]
    start_time: str = Field(pattern=r"^\d{2}:\d{2}$")  # HH:MM
    optimize: bool = Field(default=True)
    return_destination: Optional[Stop] = Field(default=None)
    plan_date: Optional[date] = Field(default=None)

    @field_validator('start_time')
    @classmethod
    def start_time_parses(cls, v):
        parse_hhmm(v)
        return v

    @model_validator(mode='after')
    def unique_stop_ids(self):
        """Stop ids identify stops across optimize/build/detect."""
        seen = set()
        for stop in self.stops:
            if stop.id in seen:
                raise ValueError(f"Duplicate stop id: {stop.id}")
            seen.add(stop.id)
        return self


class HealthResponse(BaseModel):
    """API health check response."""
    status: str
    version: str
    google_api_configured: bool
    timestamp: str
