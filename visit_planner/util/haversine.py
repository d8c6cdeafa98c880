"""Great-circle distance used when no road distance is available."""

import math

EARTH_RADIUS_KM = 6371.0


def km(a_lat: float, a_lng: float, b_lat: float, b_lng: float) -> float:
    """Great-circle distance in kilometres between two lat/lng points."""
    phi_a, phi_b = math.radians(a_lat), math.radians(b_lat)
    half_dphi = math.radians(b_lat - a_lat) / 2
    half_dlambda = math.radians(b_lng - a_lng) / 2

    chord = math.sin(half_dphi) ** 2 + math.cos(phi_a) * math.cos(phi_b) * math.sin(half_dlambda) ** 2
    # rounding can push antipodal points just past 1
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(chord, 1.0)))


def minutes_from_km(distance_km: float, speed_kmph: float) -> float:
    """Minutes to cover ``distance_km`` at a constant ``speed_kmph``."""
    if speed_kmph <= 0:
        return 0.0
    return distance_km / speed_kmph * 60.0
