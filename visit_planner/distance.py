"""
Google Maps Distance Matrix integration with a haversine fallback.
Handles rate limiting, retries, and per-status fallback logging.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple

import httpx

from .models import Coordinates, Stop
from .rate_limit import RateLimiter
from .schemas import AppConfig, Settings
from .util.haversine import km, minutes_from_km


logger = logging.getLogger(__name__)


class LookupOutcome(str, Enum):
    """How a remote lookup ended, as far as retrying is concerned."""
    SUCCESS = "success"
    RETRYABLE = "retryable"
    PERMANENT = "permanent"


class LookupStatus(str, Enum):
    """Why a remote lookup ended the way it did."""
    OK = "ok"
    NO_ROUTE = "no_route"
    PERMISSION_DENIED = "permission_denied"
    QUOTA_EXCEEDED = "quota_exceeded"
    INVALID_REQUEST = "invalid_request"
    TRANSPORT_ERROR = "transport_error"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class LookupResult:
    """Tagged result of one Distance Matrix lookup."""
    outcome: LookupOutcome
    status: LookupStatus
    distance_km: Optional[float] = None
    duration_minutes: Optional[float] = None
    detail: str = ""

    @classmethod
    def success(cls, distance_km: float, duration_minutes: float) -> "LookupResult":
        return cls(LookupOutcome.SUCCESS, LookupStatus.OK, distance_km, duration_minutes)

    @classmethod
    def retryable(cls, status: LookupStatus, detail: str = "") -> "LookupResult":
        return cls(LookupOutcome.RETRYABLE, status, detail=detail)

    @classmethod
    def permanent(cls, status: LookupStatus, detail: str = "") -> "LookupResult":
        return cls(LookupOutcome.PERMANENT, status, detail=detail)


@dataclass(frozen=True)
class TravelEstimate:
    """Distance and duration between two stops."""
    distance_km: float
    duration_minutes: float
    source: str  # google, haversine, unavailable

    @classmethod
    def unavailable(cls) -> "TravelEstimate":
        """Zero estimate for stops without coordinates; not a measurement."""
        return cls(0.0, 0.0, "unavailable")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "distance_km": round(self.distance_km, 2),
            "duration_minutes": round(self.duration_minutes, 1),
            "source": self.source,
        }


class DistanceLookup(Protocol):
    async def lookup(self, origin: Coordinates, destination: Coordinates) -> LookupResult:
        ...


# Google top-level statuses that are not OK
_API_STATUSES: Dict[str, Tuple[LookupOutcome, LookupStatus]] = {
    "ZERO_RESULTS": (LookupOutcome.PERMANENT, LookupStatus.NO_ROUTE),
    "NOT_FOUND": (LookupOutcome.PERMANENT, LookupStatus.NO_ROUTE),
    "REQUEST_DENIED": (LookupOutcome.PERMANENT, LookupStatus.PERMISSION_DENIED),
    "OVER_QUERY_LIMIT": (LookupOutcome.RETRYABLE, LookupStatus.QUOTA_EXCEEDED),
    "OVER_DAILY_LIMIT": (LookupOutcome.PERMANENT, LookupStatus.QUOTA_EXCEEDED),
    "INVALID_REQUEST": (LookupOutcome.PERMANENT, LookupStatus.INVALID_REQUEST),
    "MAX_ELEMENTS_EXCEEDED": (LookupOutcome.PERMANENT, LookupStatus.INVALID_REQUEST),
    "MAX_DIMENSIONS_EXCEEDED": (LookupOutcome.PERMANENT, LookupStatus.INVALID_REQUEST),
    "UNKNOWN_ERROR": (LookupOutcome.RETRYABLE, LookupStatus.TRANSPORT_ERROR),
}


def classify_response(data: Dict[str, Any]) -> LookupResult:
    """Map a Distance Matrix JSON body onto a LookupResult."""
    status = data.get("status")
    detail = data.get("error_message", "")

    if status == "OK":
        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError, TypeError):
            return LookupResult.permanent(LookupStatus.UNEXPECTED, "response has no rows/elements")
        if not isinstance(element, dict):
            return LookupResult.permanent(LookupStatus.UNEXPECTED, "element is not an object")

        element_status = element.get("status")
        if element_status == "OK":
            try:
                return LookupResult.success(
                    distance_km=element["distance"]["value"] / 1000.0,
                    duration_minutes=element["duration"]["value"] / 60.0,
                )
            except (KeyError, TypeError):
                return LookupResult.permanent(LookupStatus.UNEXPECTED, "element missing distance/duration")
        if element_status in ("ZERO_RESULTS", "NOT_FOUND"):
            return LookupResult.permanent(LookupStatus.NO_ROUTE, f"element status {element_status}")
        return LookupResult.permanent(LookupStatus.UNEXPECTED, f"element status {element_status}")

    if status in _API_STATUSES:
        outcome, lookup_status = _API_STATUSES[status]
        return LookupResult(outcome, lookup_status, detail=f"{status} {detail}".strip())

    return LookupResult.permanent(LookupStatus.UNEXPECTED, f"{status} {detail}".strip())


def classify_http_error(status_code: int, detail: str = "") -> LookupResult:
    """Map a non-2xx HTTP status onto a LookupResult."""
    if status_code in (401, 403):
        return LookupResult.permanent(LookupStatus.PERMISSION_DENIED, detail)
    if status_code == 429:
        return LookupResult.retryable(LookupStatus.QUOTA_EXCEEDED, detail)
    if status_code >= 500:
        return LookupResult.retryable(LookupStatus.TRANSPORT_ERROR, detail)
    return LookupResult.permanent(LookupStatus.INVALID_REQUEST, detail)


_FALLBACK_MESSAGES = {
    LookupStatus.PERMISSION_DENIED: (
        logging.ERROR,
        "Google Maps API: request denied. The API key may be invalid, expired, "
        "or missing Distance Matrix permission",
    ),
    LookupStatus.QUOTA_EXCEEDED: (logging.WARNING, "Google Maps API: query limit exceeded"),
    LookupStatus.INVALID_REQUEST: (logging.WARNING, "Google Maps API: invalid request, check the coordinates"),
    LookupStatus.NO_ROUTE: (logging.INFO, "Google Maps API: no route found between locations"),
    LookupStatus.TRANSPORT_ERROR: (logging.WARNING, "Google Maps API: network failure"),
    LookupStatus.UNEXPECTED: (logging.WARNING, "Google Maps API: unexpected response"),
}


def haversine_estimate(origin: Coordinates, destination: Coordinates, speed_kmph: float) -> TravelEstimate:
    """Deterministic great-circle estimate at a constant average speed."""
    d_km = km(origin.lat, origin.lng, destination.lat, destination.lng)
    return TravelEstimate(d_km, minutes_from_km(d_km, speed_kmph), "haversine")


def resolve_estimate(
    result: LookupResult,
    origin: Coordinates,
    destination: Coordinates,
    speed_kmph: float,
) -> TravelEstimate:
    """Use a successful lookup, otherwise log why and fall back to haversine."""
    if result.outcome is LookupOutcome.SUCCESS:
        return TravelEstimate(result.distance_km, result.duration_minutes, "google")

    level, message = _FALLBACK_MESSAGES.get(result.status, _FALLBACK_MESSAGES[LookupStatus.UNEXPECTED])
    logger.log(
        level,
        f"{message} ({origin.lat},{origin.lng} -> {destination.lat},{destination.lng}): "
        f"{result.detail or result.status.value}; using estimated distance",
    )
    return haversine_estimate(origin, destination, speed_kmph)


class GoogleMapsClient:
    """Google Distance Matrix client with rate limiting and retry logic."""

    def __init__(
        self,
        config: AppConfig,
        api_key: str,
        rate_limiter: RateLimiter,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.api_key = api_key
        self.base_url = config.google.base_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=config.google.timeout_seconds)
        self._sleep = sleep

    async def lookup(self, origin: Coordinates, destination: Coordinates) -> LookupResult:
        """Look up one origin/destination pair, retrying transient failures."""
        url = f"{self.base_url}/distancematrix/json"
        params = {
            "origins": f"{origin.lat},{origin.lng}",
            "destinations": f"{destination.lat},{destination.lng}",
            "units": "metric",
            "key": self.api_key,
        }

        max_retries = self.config.google.max_retries
        result = None
        for attempt in range(max_retries):
            await self.rate_limiter.acquire()
            result = await self._request(url, params)
            if result.outcome is not LookupOutcome.RETRYABLE:
                return result

            logger.warning(f"Distance Matrix attempt {attempt + 1} failed: {result.status.value} {result.detail}")
            if attempt < max_retries - 1:
                await self._sleep(self.config.google.retry_delay_seconds * (2 ** attempt))
        return result

    async def _request(self, url: str, params: Dict[str, Any]) -> LookupResult:
        try:
            response = await self.client.get(url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            return classify_http_error(e.response.status_code, str(e))
        except httpx.TransportError as e:
            # timeouts, DNS failures, refused connections
            return LookupResult.retryable(LookupStatus.TRANSPORT_ERROR, f"{type(e).__name__}: {e}")
        except httpx.RequestError as e:
            # undecodable bodies, redirect loops
            return LookupResult.permanent(LookupStatus.UNEXPECTED, f"{type(e).__name__}: {e}")
        except ValueError as e:
            return LookupResult.permanent(LookupStatus.UNEXPECTED, f"invalid JSON: {e}")

        if not isinstance(data, dict):
            return LookupResult.permanent(LookupStatus.UNEXPECTED, "response body is not an object")
        return classify_response(data)

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()


class DistanceEstimator:
    """High-level interface for stop-to-stop travel estimates."""

    def __init__(
        self,
        config: AppConfig,
        settings: Optional[Settings] = None,
        client: Optional[DistanceLookup] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.config = config
        self.speed_kmph = config.planner.average_speed_kmph

        if client is None and settings is not None and settings.google_maps_api_key:
            limiter = rate_limiter or RateLimiter.per_second(config.google.rate_limit_requests_per_second)
            client = GoogleMapsClient(config, settings.google_maps_api_key, limiter)
        self.client = client

        if self.client is None:
            logger.info("Google Maps API key not configured - using haversine estimates")

        # Remote answers per (origin, destination), for one planning pass
        self._cache: Optional[Dict[Tuple[Coordinates, Coordinates], TravelEstimate]] = (
            {} if config.dev.cache_distances else None
        )

    def clear_cache(self) -> None:
        if self._cache:
            logger.debug(f"Dropping {len(self._cache)} cached estimates")
            self._cache.clear()

    @property
    def remote_configured(self) -> bool:
        return self.client is not None

    async def estimate(self, from_stop: Stop, to_stop: Stop) -> TravelEstimate:
        """Estimate travel from one stop to another."""
        origin, destination = from_stop.coordinates, to_stop.coordinates
        if origin is None or destination is None:
            return TravelEstimate.unavailable()

        if self.client is None:
            return haversine_estimate(origin, destination, self.speed_kmph)

        key = (origin, destination)
        if self._cache is not None and key in self._cache:
            logger.debug(f"Using cached estimate for {from_stop.id} -> {to_stop.id}")
            return self._cache[key]

        result = await self.client.lookup(origin, destination)
        estimate = resolve_estimate(result, origin, destination, self.speed_kmph)
        if self._cache is not None and estimate.source == "google":
            self._cache[key] = estimate
        return estimate

    async def close(self):
        """Clean up resources."""
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()
