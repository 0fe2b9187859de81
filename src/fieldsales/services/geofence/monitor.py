"""Geofence membership tracking for a single user session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Callable, Iterable, Optional

from ...models.domain import Coordinate, GeofenceSpec
from ..geospatial import distance_to_geofence
from .source import LocationError, LocationSample

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GeofenceEventType(str, Enum):
    ENTERED = "entered"
    EXITED = "exited"


@dataclass(slots=True, frozen=True)
class GeofenceEvent:
    type: GeofenceEventType
    user_id: str
    outlet_id: str
    occurred_at: datetime
    distance_meters: float


class GeofenceMonitor:
    """Converts location samples into Entered/Exited events per outlet.

    Membership is held in ``membership`` (outlet id -> inside flag), which the
    caller may inject to share or inspect state. Outlets never seen count as
    outside, so a fresh monitor assumes the user starts outside every zone.
    """

    def __init__(
        self,
        user_id: str,
        geofences: Iterable[GeofenceSpec],
        *,
        membership: Optional[dict[str, bool]] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.user_id = user_id
        self.membership: dict[str, bool] = membership if membership is not None else {}
        self.clock = clock or utc_now
        self.location_error: Optional[LocationError] = None
        self.last_sample: Optional[Coordinate] = None
        self._geofences: dict[str, GeofenceSpec] = {}
        self.refresh_geofences(geofences)

    @property
    def geofences(self) -> tuple[GeofenceSpec, ...]:
        return tuple(self._geofences.values())

    @property
    def location_available(self) -> bool:
        return self.location_error is None

    def refresh_geofences(self, geofences: Iterable[GeofenceSpec]) -> None:
        """Replace the geofence set, keeping membership for outlets that remain."""

        self._geofences = {spec.outlet_id: spec for spec in geofences}
        for outlet_id in list(self.membership):
            if outlet_id not in self._geofences:
                # removed outlets drop out silently; no Exited is synthesised
                del self.membership[outlet_id]

    def evaluate(self, sample: Coordinate) -> list[GeofenceEvent]:
        """Evaluate one sample against every geofence and return the transitions."""

        if self.location_error is not None:
            logger.info(f"Location available again for user {self.user_id}")
            self.location_error = None
        self.last_sample = sample

        now = self.clock()
        events: list[GeofenceEvent] = []
        for outlet_id, spec in self._geofences.items():
            distance = distance_to_geofence(sample, spec)
            inside_now = distance <= spec.radius_meters
            was_inside = self.membership.get(outlet_id, False)

            if inside_now and not was_inside:
                self.membership[outlet_id] = True
                events.append(GeofenceEvent(GeofenceEventType.ENTERED, self.user_id, outlet_id, now, distance))
            elif was_inside and not inside_now:
                self.membership[outlet_id] = False
                events.append(GeofenceEvent(GeofenceEventType.EXITED, self.user_id, outlet_id, now, distance))
        return events

    def report_location_error(self, error: LocationError) -> None:
        """Freeze membership until the next valid sample arrives."""

        if self.location_error is None:
            logger.warning(
                f"Location unavailable for user {self.user_id} ({error.code.name}): {error.message}"
            )
        self.location_error = error

    def active_outlets(self) -> frozenset[str]:
        return frozenset(outlet_id for outlet_id, inside in self.membership.items() if inside)

    def is_inside(self, outlet_id: str) -> bool:
        return self.membership.get(outlet_id, False)

    async def watch(self, samples: AsyncIterator[LocationSample]) -> AsyncIterator[GeofenceEvent]:
        """Yield events as samples arrive; errors suspend emission without exits."""

        async for sample in samples:
            if isinstance(sample, LocationError):
                self.report_location_error(sample)
                continue
            for event in self.evaluate(sample):
                yield event
