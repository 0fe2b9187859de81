"""Geospatial helper functions."""

from __future__ import annotations

import math

from ..models.domain import Coordinate, GeofenceSpec

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance in meters between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_m(lat1, lon1, lat2, lon2) / 1000.0


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates. NaN inputs yield NaN."""

    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def distance_to_geofence(sample: Coordinate, geofence: GeofenceSpec) -> float:
    return haversine_m(sample.latitude, sample.longitude, geofence.center_lat, geofence.center_lng)


def is_inside(sample: Coordinate, geofence: GeofenceSpec) -> bool:
    """Boundary inclusive: a sample exactly at the radius counts as inside."""

    return distance_to_geofence(sample, geofence) <= geofence.radius_meters
