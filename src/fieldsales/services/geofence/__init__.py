"""Geofence monitoring services."""

from .monitor import GeofenceEvent, GeofenceEventType, GeofenceMonitor
from .source import LocationError, LocationErrorCode, QueueLocationSource

__all__ = [
    "GeofenceEvent",
    "GeofenceEventType",
    "GeofenceMonitor",
    "LocationError",
    "LocationErrorCode",
    "QueueLocationSource",
]
