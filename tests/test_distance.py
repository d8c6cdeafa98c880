"""
Tests for distance estimation, remote lookups and the haversine fallback.
"""

import asyncio
import logging
import math

import httpx
import pytest

from visit_planner.distance import (
    DistanceEstimator, GoogleMapsClient, LookupOutcome, LookupResult, LookupStatus,
    classify_http_error, classify_response,
)
from visit_planner.models import Coordinates, Stop
from visit_planner.rate_limit import RateLimiter
from visit_planner.schemas import AppConfig, Settings


ONE_KM_IN_DEGREES = math.degrees(1 / 6371.0)  # along a meridian


def ok_body(meters=2500, seconds=300):
    return {
        "status": "OK",
        "rows": [{"elements": [{
            "status": "OK",
            "distance": {"value": meters},
            "duration": {"value": seconds},
        }]}],
    }


def make_stop(stop_id, lat=None, lng=None):
    coordinates = Coordinates(lat=lat, lng=lng) if lat is not None else None
    return Stop(id=stop_id, coordinates=coordinates)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def make_estimator(handler, config=None, sleep=None):
    """Estimator whose Google client talks to an in-process handler."""
    config = config or AppConfig()
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = GoogleMapsClient(
        config, "test-key", RateLimiter(0), client=http_client, sleep=sleep or RecordingSleep()
    )
    return DistanceEstimator(config, client=client)


A = make_stop("a", 0.0, 0.0)
B = make_stop("b", ONE_KM_IN_DEGREES, 0.0)


def test_fallback_one_km_is_one_and_a_half_minutes():
    """1 km at the assumed 40 km/h takes 1.5 minutes."""
    estimator = DistanceEstimator(AppConfig(), Settings(google_maps_api_key=None))

    estimate = asyncio.run(estimator.estimate(A, B))

    assert estimate.distance_km == pytest.approx(1.0, rel=1e-9)
    assert estimate.duration_minutes == pytest.approx(1.5, rel=1e-9)
    assert estimate.source == "haversine"
    assert not estimator.remote_configured


def test_fallback_is_symmetric():
    estimator = DistanceEstimator(AppConfig())
    here = make_stop("here", -33.8688, 151.2093)
    there = make_stop("there", -33.7969, 151.2870)

    forward = asyncio.run(estimator.estimate(here, there))
    backward = asyncio.run(estimator.estimate(there, here))

    assert forward.distance_km == pytest.approx(backward.distance_km)
    assert forward.distance_km > 0


def test_fallback_uses_configured_speed():
    config = AppConfig(planner={"average_speed_kmph": 20})
    estimate = asyncio.run(DistanceEstimator(config).estimate(A, B))
    assert estimate.duration_minutes == pytest.approx(3.0)


def test_missing_coordinates_is_zero_and_marked_unavailable():
    estimator = DistanceEstimator(AppConfig())

    estimate = asyncio.run(estimator.estimate(A, make_stop("nowhere")))

    assert estimate.distance_km == 0
    assert estimate.duration_minutes == 0
    assert estimate.source == "unavailable"


def test_google_success_is_used_directly():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=ok_body(meters=2500, seconds=300))

    estimate = asyncio.run(make_estimator(handler).estimate(A, B))

    assert estimate.distance_km == pytest.approx(2.5)
    assert estimate.duration_minutes == pytest.approx(5.0)
    assert estimate.source == "google"
    assert len(requests) == 1
    params = requests[0].url.params
    assert params["origins"] == "0.0,0.0"
    assert params["destinations"] == f"{ONE_KM_IN_DEGREES},0.0"
    assert params["key"] == "test-key"
    assert requests[0].url.path.endswith("/distancematrix/json")


def test_request_denied_falls_back_without_retry(caplog):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"status": "REQUEST_DENIED", "error_message": "The provided API key is expired."})

    caplog.set_level(logging.INFO, logger="visit_planner.distance")
    estimate = asyncio.run(make_estimator(handler).estimate(A, B))

    assert estimate.source == "haversine"
    assert estimate.duration_minutes == pytest.approx(1.5)
    assert len(calls) == 1
    denied = [r for r in caplog.records if "request denied" in r.getMessage()]
    assert denied and denied[0].levelno == logging.ERROR


def test_quota_exceeded_retries_with_backoff_then_falls_back(caplog):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"status": "OVER_QUERY_LIMIT"})

    sleep = RecordingSleep()
    caplog.set_level(logging.WARNING, logger="visit_planner.distance")
    estimate = asyncio.run(make_estimator(handler, sleep=sleep).estimate(A, B))

    assert estimate.source == "haversine"
    assert len(calls) == 3  # default max_retries
    assert sleep.delays == [1.0, 2.0]
    assert any("query limit exceeded" in r.getMessage() for r in caplog.records)


def test_network_failure_falls_back():
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)

    config = AppConfig(google={"max_retries": 2, "retry_delay_seconds": 0.5})
    sleep = RecordingSleep()
    estimate = asyncio.run(make_estimator(handler, config=config, sleep=sleep).estimate(A, B))

    assert estimate.source == "haversine"
    assert sleep.delays == [0.5]


def test_server_error_then_success_uses_second_answer():
    responses = [httpx.Response(503), httpx.Response(200, json=ok_body(meters=1200, seconds=240))]

    def handler(request):
        return responses.pop(0)

    estimate = asyncio.run(make_estimator(handler).estimate(A, B))

    assert estimate.source == "google"
    assert estimate.distance_km == pytest.approx(1.2)
    assert estimate.duration_minutes == pytest.approx(4.0)


def test_no_route_falls_back(caplog):
    def handler(request):
        return httpx.Response(200, json={
            "status": "OK",
            "rows": [{"elements": [{"status": "ZERO_RESULTS"}]}],
        })

    caplog.set_level(logging.INFO, logger="visit_planner.distance")
    estimate = asyncio.run(make_estimator(handler).estimate(A, B))

    assert estimate.source == "haversine"
    no_route = [r for r in caplog.records if "no route found" in r.getMessage()]
    assert no_route and no_route[0].levelno == logging.INFO


def test_successful_lookups_are_cached_per_pair():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=ok_body())

    estimator = make_estimator(handler)

    async def twice():
        await estimator.estimate(A, B)
        await estimator.estimate(A, B)
        await estimator.estimate(B, A)

    asyncio.run(twice())
    assert len(calls) == 2


def test_clear_cache_forces_a_new_lookup():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=ok_body())

    estimator = make_estimator(handler)

    async def run():
        await estimator.estimate(A, B)
        estimator.clear_cache()
        await estimator.estimate(A, B)

    asyncio.run(run())
    assert len(calls) == 2


def test_malformed_element_falls_back():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"status": "OK", "rows": [{"elements": ["bogus"]}]})

    estimate = asyncio.run(make_estimator(handler).estimate(A, B))

    assert estimate.source == "haversine"
    assert estimate.distance_km == pytest.approx(1.0)
    assert len(calls) == 1


@pytest.mark.parametrize("error", [httpx.DecodingError, httpx.TooManyRedirects])
def test_non_transport_request_errors_fall_back(error):
    calls = []

    def handler(request):
        calls.append(request)
        raise error("broken response", request=request)

    sleep = RecordingSleep()
    estimate = asyncio.run(make_estimator(handler, sleep=sleep).estimate(A, B))

    assert estimate.source == "haversine"
    assert len(calls) == 1
    assert sleep.delays == []


def test_injected_lookup_replaces_google():
    class FakeLookup:
        async def lookup(self, origin, destination):
            return LookupResult.success(distance_km=7.0, duration_minutes=12.0)

    estimator = DistanceEstimator(AppConfig(), client=FakeLookup())
    estimate = asyncio.run(estimator.estimate(A, B))

    assert (estimate.distance_km, estimate.duration_minutes, estimate.source) == (7.0, 12.0, "google")


@pytest.mark.parametrize("body,outcome,status", [
    (ok_body(), LookupOutcome.SUCCESS, LookupStatus.OK),
    ({"status": "REQUEST_DENIED"}, LookupOutcome.PERMANENT, LookupStatus.PERMISSION_DENIED),
    ({"status": "OVER_QUERY_LIMIT"}, LookupOutcome.RETRYABLE, LookupStatus.QUOTA_EXCEEDED),
    ({"status": "INVALID_REQUEST"}, LookupOutcome.PERMANENT, LookupStatus.INVALID_REQUEST),
    ({"status": "ZERO_RESULTS"}, LookupOutcome.PERMANENT, LookupStatus.NO_ROUTE),
    ({"status": "OK", "rows": []}, LookupOutcome.PERMANENT, LookupStatus.UNEXPECTED),
    ({"status": "OK", "rows": [{"elements": ["bogus"]}]}, LookupOutcome.PERMANENT, LookupStatus.UNEXPECTED),
    ({"status": "OK", "rows": ["bogus"]}, LookupOutcome.PERMANENT, LookupStatus.UNEXPECTED),
    ({"status": "OK", "rows": [{"elements": [{"status": "OK", "distance": {"value": "far"}}]}]},
     LookupOutcome.PERMANENT, LookupStatus.UNEXPECTED),
    ({"status": "SOMETHING_NEW"}, LookupOutcome.PERMANENT, LookupStatus.UNEXPECTED),
])
def test_classify_response(body, outcome, status):
    result = classify_response(body)
    assert result.outcome is outcome
    assert result.status is status


def test_classify_http_error():
    assert classify_http_error(403).status is LookupStatus.PERMISSION_DENIED
    assert classify_http_error(429).outcome is LookupOutcome.RETRYABLE
    assert classify_http_error(502).status is LookupStatus.TRANSPORT_ERROR
    assert classify_http_error(400).status is LookupStatus.INVALID_REQUEST
