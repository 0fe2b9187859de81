"""Push-driven location sources feeding the geofence monitor."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Protocol, Union

from ...models.domain import Coordinate

logger = logging.getLogger(__name__)


class LocationErrorCode(int, Enum):
    UNSUPPORTED = 0
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3


@dataclass(slots=True, frozen=True)
class LocationError:
    """Failure reported by the device instead of a location fix."""

    code: LocationErrorCode
    message: str = ""


LocationSample = Union[Coordinate, LocationError]


class LocationSource(Protocol):
    def subscribe(self) -> AsyncIterator[LocationSample]:
        ...

    def cancel(self) -> None:
        ...


_CANCELLED = object()


class QueueLocationSource:
    """Location source fed by callers pushing fixes as they arrive.

    The device (or the HTTP layer on its behalf) decides the sampling cadence;
    subscribers simply wait until the next fix is pushed.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def push(self, sample: Coordinate) -> None:
        self._put(sample)

    def fail(self, error: LocationError) -> None:
        self._put(error)

    def _put(self, item: object) -> None:
        if self._cancelled:
            logger.debug("Dropping location sample pushed after cancellation")
            return
        self._queue.put_nowait(item)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._queue.put_nowait(_CANCELLED)

    async def drain(self) -> None:
        """Wait until every pushed sample has been fully handled by the subscriber."""
        await self._queue.join()

    async def subscribe(self) -> AsyncIterator[LocationSample]:
        while True:
            item = await self._queue.get()
            try:
                if item is _CANCELLED:
                    return
                yield item
            finally:
                # a sample counts as handled once the subscriber asks for the next one
                self._queue.task_done()
