"""Per-user tracking sessions wiring the geofence monitor to the visit ledger."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from ..models.domain import GeofenceSpec
from ..persistence.base import RecordStore
from .geofence.monitor import Clock, GeofenceEvent, GeofenceMonitor
from .geofence.source import LocationError, LocationSample, LocationSource
from .visits.ledger import Notifier, VisitLedger

logger = logging.getLogger(__name__)


class TrackingSession:
    """One user's live location stream, geofence membership and visit ledger."""

    def __init__(
        self,
        user_id: str,
        geofences: Iterable[GeofenceSpec],
        store: RecordStore,
        *,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.user_id = user_id
        self.monitor = GeofenceMonitor(user_id, geofences, clock=clock)
        self.ledger = VisitLedger(store, clock=clock, notifier=notifier)
        self.source: Optional[LocationSource] = None

    def ingest(self, sample: LocationSample) -> list[GeofenceEvent]:
        """Process one sample synchronously and return the events it produced."""

        if isinstance(sample, LocationError):
            self.monitor.report_location_error(sample)
            return []
        events = self.monitor.evaluate(sample)
        for event in events:
            self.ledger.handle(event)
        if not events:
            self.ledger.flush_deferred()
        return events

    async def run(self, source: LocationSource) -> None:
        """Consume ``source`` until it is cancelled.

        This is the streaming path used by the tracking websocket; one-off HTTP
        samples go through :meth:`ingest`.
        """

        self.source = source
        await self.ledger.consume(self.monitor.watch(source.subscribe()))
        logger.info(f"Location stream for user {self.user_id} ended")

    def stop(self) -> None:
        """Stop listening for locations. Open visits stay open."""

        if self.source is not None:
            self.source.cancel()
            self.source = None

    def active_outlets(self) -> frozenset[str]:
        return self.monitor.active_outlets()


class TrackingRegistry:
    """Holds tracking sessions keyed by user id."""

    def __init__(
        self,
        store: RecordStore,
        geofence_loader: Callable[[], Iterable[GeofenceSpec]],
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self.store = store
        self.geofence_loader = geofence_loader
        self.clock = clock
        self._sessions: dict[str, TrackingSession] = {}

    def get(self, user_id: str) -> Optional[TrackingSession]:
        return self._sessions.get(user_id)

    def get_or_create(self, user_id: str) -> TrackingSession:
        session = self._sessions.get(user_id)
        if session is None:
            geofences = tuple(self.geofence_loader())
            logger.info(f"Starting tracking session for user {user_id} with {len(geofences)} geofences")
            session = TrackingSession(user_id, geofences, self.store, clock=self.clock)
            self._sessions[user_id] = session
        return session

    def stop(self, user_id: str) -> bool:
        session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        session.stop()
        return True

    def active_outlets(self, user_id: str) -> frozenset[str]:
        session = self._sessions.get(user_id)
        return session.active_outlets() if session else frozenset()

    def refresh_geofences(self) -> int:
        geofences = tuple(self.geofence_loader())
        for session in self._sessions.values():
            session.monitor.refresh_geofences(geofences)
        return len(geofences)
