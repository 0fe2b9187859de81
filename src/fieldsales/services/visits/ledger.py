"""Projection of geofence events into persisted visit records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Optional

from ...models.domain import Visit
from ...persistence.base import RecordStore, StoreError
from ..geofence.monitor import Clock, GeofenceEvent, GeofenceEventType, utc_now

logger = logging.getLogger(__name__)

VisitKey = tuple[str, str]


@dataclass(slots=True, frozen=True)
class LedgerNotice:
    """User-facing notification about a visit write."""

    level: str
    title: str
    message: str
    outlet_id: str


Notifier = Callable[[LedgerNotice], None]


@dataclass(slots=True)
class _DeferredClose:
    visit: Visit
    exit_time: datetime
    duration_minutes: int

    @property
    def key(self) -> VisitKey:
        return (self.visit.user_id, self.visit.outlet_id)


@dataclass(slots=True)
class _PendingEntry:
    """Entry held back until an earlier close for the same pair is written."""

    user_id: str
    outlet_id: str
    entry_time: datetime
    exit_time: Optional[datetime] = None

    @property
    def key(self) -> VisitKey:
        return (self.user_id, self.outlet_id)


def visit_duration_minutes(entry_time: datetime, exit_time: datetime) -> int:
    """Whole minutes between entry and exit, floored and never negative."""

    minutes = (exit_time - entry_time) // timedelta(minutes=1)
    if minutes < 0:
        logger.warning(f"Exit time {exit_time.isoformat()} precedes entry {entry_time.isoformat()}; clamping to 0")
        return 0
    return int(minutes)


class VisitLedger:
    """Creates a visit on entry and closes it on exit.

    Open visits are tracked in memory per (user, outlet), so at most one visit
    per pair is open at a time. The first time a pair is seen the store is
    checked for a visit left open by an earlier session: on entry that visit
    is closed as abandoned (zero duration) before a new one starts; on exit
    it is the visit being closed.

    A close that fails on a transient error is retried later. Until it is
    written, a new entry for the same pair is held back rather than opening
    a second visit.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.store = store
        self.clock = clock or utc_now
        self.notifier = notifier
        self._open: dict[VisitKey, Visit] = {}
        self._seen: set[VisitKey] = set()
        self._deferred: list[_DeferredClose] = []
        self._pending: list[_PendingEntry] = []
        self._notices: list[LedgerNotice] = []

    def open_visit(self, user_id: str, outlet_id: str) -> Optional[Visit]:
        return self._open.get((user_id, outlet_id))

    @property
    def deferred_closes(self) -> int:
        return len(self._deferred)

    @property
    def pending_entries(self) -> int:
        return len(self._pending)

    def drain_notices(self) -> list[LedgerNotice]:
        notices, self._notices = self._notices, []
        return notices

    def _notify(self, level: str, title: str, message: str, outlet_id: str) -> None:
        notice = LedgerNotice(level=level, title=title, message=message, outlet_id=outlet_id)
        self._notices.append(notice)
        if self.notifier is not None:
            self.notifier(notice)

    def _blocked(self, key: VisitKey) -> bool:
        return any(item.key == key for item in self._deferred) or any(entry.key == key for entry in self._pending)

    def _lookup_open(self, key: VisitKey) -> Optional[Visit]:
        user_id, outlet_id = key
        try:
            return self.store.find_open_visit(user_id, outlet_id)
        except StoreError as exc:
            logger.warning(f"Open visit lookup failed for user {user_id} at outlet {outlet_id}: {exc}")
            return None

    def _resolve_open(self, key: VisitKey) -> Optional[Visit]:
        visit = self._open.get(key)
        if visit is not None or key in self._seen:
            return visit
        self._seen.add(key)
        visit = self._lookup_open(key)
        if visit is not None:
            self._open[key] = visit
        return visit

    def _close_abandoned(self, key: VisitKey) -> None:
        stale = self._lookup_open(key)
        if stale is None:
            return
        # the real exit time is unknown, so the visit is closed where it began
        logger.warning(f"Closing visit {stale.id} left open by an earlier session as abandoned")
        try:
            self.store.close_visit(stale.id, stale.entry_time, 0)
        except StoreError as exc:
            if exc.transient:
                self._deferred.append(_DeferredClose(stale, stale.entry_time, 0))
            else:
                logger.error(f"Failed to close abandoned visit {stale.id}: {exc}")

    def handle(self, event: GeofenceEvent) -> Optional[Visit]:
        self.flush_deferred()
        if event.type is GeofenceEventType.ENTERED:
            return self.on_entered(event.user_id, event.outlet_id, event.occurred_at)
        return self.on_exited(event.user_id, event.outlet_id, event.occurred_at)

    def on_entered(self, user_id: str, outlet_id: str, at: Optional[datetime] = None) -> Optional[Visit]:
        key = (user_id, outlet_id)
        entry_time = at or self.clock()

        existing = self._open.get(key)
        if existing is not None:
            logger.warning(
                f"Visit {existing.id} already open for user {user_id} at outlet {outlet_id}; not opening another"
            )
            return existing

        if key not in self._seen:
            self._seen.add(key)
            self._close_abandoned(key)

        if self._blocked(key):
            logger.warning(f"Entry of user {user_id} at outlet {outlet_id} waits for an earlier visit close")
            self._pending.append(_PendingEntry(user_id, outlet_id, entry_time))
            return None

        visit = Visit(id=None, user_id=user_id, outlet_id=outlet_id, entry_time=entry_time)
        try:
            created = self.store.create_visit(visit)
        except StoreError as exc:
            logger.error(f"Failed to log visit entry for user {user_id} at outlet {outlet_id}: {exc}")
            self._notify("error", "Failed to log visit entry", str(exc), outlet_id)
            return None

        self._open[key] = created
        logger.info(f"Visit {created.id} started for user {user_id} at outlet {outlet_id}")
        self._notify("info", "Geofence Entered", f"Visit to outlet {outlet_id} has started.", outlet_id)
        return created

    def on_exited(self, user_id: str, outlet_id: str, at: Optional[datetime] = None) -> Optional[Visit]:
        key = (user_id, outlet_id)
        exit_time = at or self.clock()

        if key not in self._open:
            waiting = [entry for entry in self._pending if entry.key == key and entry.exit_time is None]
            if waiting:
                waiting[-1].exit_time = exit_time
                logger.info(f"Exit of user {user_id} from outlet {outlet_id} recorded against a held-back entry")
                return None

        visit = self._resolve_open(key)
        if visit is None:
            logger.warning(f"Exit from outlet {outlet_id} by user {user_id} has no open visit; ignoring")
            self._notify("warning", "No open visit", f"Exit from outlet {outlet_id} had no matching visit.", outlet_id)
            return None
        del self._open[key]
        return self._close(visit, exit_time)

    def _close(self, visit: Visit, exit_time: datetime) -> Optional[Visit]:
        duration = visit_duration_minutes(visit.entry_time, exit_time)
        try:
            self.store.close_visit(visit.id, exit_time, duration)
        except StoreError as exc:
            if exc.transient:
                logger.warning(f"Deferring close of visit {visit.id}: {exc}")
                self._deferred.append(_DeferredClose(visit, exit_time, duration))
            else:
                logger.error(f"Failed to log visit exit for visit {visit.id}: {exc}")
            self._notify("error", "Failed to log visit exit", str(exc), visit.outlet_id)
            return None

        closed = replace(visit, exit_time=exit_time, duration_minutes=duration)
        logger.info(f"Visit {visit.id} closed after {duration} minutes")
        self._notify(
            "info", "Geofence Exited", f"Visit to outlet {visit.outlet_id} ended. Duration: {duration} minutes.", visit.outlet_id
        )
        return closed

    def flush_deferred(self) -> list[Visit]:
        """Retry closes that failed on a transient error, then start held-back entries."""

        if not self._deferred and not self._pending:
            return []
        deferred, self._deferred = self._deferred, []
        closed: list[Visit] = []
        for item in deferred:
            try:
                self.store.close_visit(item.visit.id, item.exit_time, item.duration_minutes)
            except StoreError as exc:
                if exc.transient:
                    self._deferred.append(item)
                else:
                    logger.error(f"Giving up on closing visit {item.visit.id}: {exc}")
                continue
            closed.append(replace(item.visit, exit_time=item.exit_time, duration_minutes=item.duration_minutes))
            logger.info(f"Deferred close of visit {item.visit.id} written")

        closed.extend(self._start_pending())
        return closed

    def _start_pending(self) -> list[Visit]:
        entries, self._pending = self._pending, []
        closed: list[Visit] = []
        for entry in entries:
            if self._blocked(entry.key):
                self._pending.append(entry)
                continue

            visit = Visit(id=None, user_id=entry.user_id, outlet_id=entry.outlet_id, entry_time=entry.entry_time)
            try:
                created = self.store.create_visit(visit)
            except StoreError as exc:
                if exc.transient:
                    self._pending.append(entry)
                else:
                    logger.error(f"Failed to log held-back visit entry at outlet {entry.outlet_id}: {exc}")
                    self._notify("error", "Failed to log visit entry", str(exc), entry.outlet_id)
                continue

            logger.info(f"Visit {created.id} started late for user {entry.user_id} at outlet {entry.outlet_id}")
            if entry.exit_time is None:
                self._open[entry.key] = created
                continue
            result = self._close(created, entry.exit_time)
            if result is not None:
                closed.append(result)
        return closed

    async def consume(self, events: AsyncIterator[GeofenceEvent]) -> None:
        async for event in events:
            self.handle(event)
