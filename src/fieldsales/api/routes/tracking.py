"""Location tracking endpoints fed by the salesperson's device."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from ...models.domain import Coordinate
from ...schemas.tracking import (
    GeofenceEventModel,
    LocationErrorRequest,
    LocationSampleRequest,
    NoticeModel,
    TrackingStatusResponse,
)
from ...services.geofence.monitor import GeofenceEvent
from ...services.geofence.source import LocationError, LocationErrorCode, QueueLocationSource
from ...services.tracking import TrackingRegistry, TrackingSession

router = APIRouter(prefix="/tracking", tags=["tracking"])


def _registry(request: Request) -> TrackingRegistry:
    return request.app.state.tracking


def _status(session: TrackingSession, events: list[GeofenceEvent] | None = None) -> TrackingStatusResponse:
    error = session.monitor.location_error
    return TrackingStatusResponse(
        user_id=session.user_id,
        location_available=error is None,
        location_error=error.code.name.lower() if error else None,
        active_outlets=sorted(session.active_outlets()),
        events=[
            GeofenceEventModel(
                type=event.type.value,
                outlet_id=event.outlet_id,
                occurred_at=event.occurred_at,
                distance_meters=event.distance_meters,
            )
            for event in events or []
        ],
        notices=[
            NoticeModel(level=n.level, title=n.title, message=n.message, outlet_id=n.outlet_id)
            for n in session.ledger.drain_notices()
        ],
        deferred_visit_closes=session.ledger.deferred_closes,
    )


@router.post("/{user_id}/samples", response_model=TrackingStatusResponse, status_code=status.HTTP_200_OK)
def post_sample(user_id: str, payload: LocationSampleRequest, request: Request) -> TrackingStatusResponse:
    try:
        session = _registry(request).get_or_create(user_id)
        events = session.ingest(Coordinate(payload.latitude, payload.longitude, payload.accuracy))
        return _status(session, events)
    except Exception as exc:
        logging.exception(f"Error processing location sample for user {user_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process location sample: {str(exc)}",
        ) from exc


@router.post("/{user_id}/errors", response_model=TrackingStatusResponse, status_code=status.HTTP_200_OK)
def post_location_error(user_id: str, payload: LocationErrorRequest, request: Request) -> TrackingStatusResponse:
    session = _registry(request).get_or_create(user_id)
    session.ingest(LocationError(LocationErrorCode[payload.code.upper()], payload.message))
    return _status(session)


@router.get("/{user_id}/active-outlets", status_code=status.HTTP_200_OK)
def get_active_outlets(user_id: str, request: Request) -> dict:
    return {"user_id": user_id, "outlet_ids": sorted(_registry(request).active_outlets(user_id))}


@router.get("/{user_id}", response_model=TrackingStatusResponse, status_code=status.HTTP_200_OK)
def get_status(user_id: str, request: Request) -> TrackingStatusResponse:
    session = _registry(request).get(user_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No tracking session for user {user_id}")
    return _status(session)


@router.delete("/{user_id}", status_code=status.HTTP_200_OK)
def stop_tracking(user_id: str, request: Request) -> dict:
    """Stop tracking; visits still open stay open until the user exits."""
    stopped = _registry(request).stop(user_id)
    return {"user_id": user_id, "stopped": stopped}


@router.post("/geofences/refresh", status_code=status.HTTP_200_OK)
def refresh_geofences(request: Request) -> dict:
    count = _registry(request).refresh_geofences()
    return {"geofences": count}


@router.websocket("/{user_id}/stream")
async def stream_locations(websocket: WebSocket, user_id: str) -> None:
    """Continuous location feed.

    Each message is either a sample (``latitude``/``longitude``) or a device
    error (``code``/``message``). The current status is sent back once the
    message has been processed.
    """
    await websocket.accept()
    session = websocket.app.state.tracking.get_or_create(user_id)
    source = QueueLocationSource()
    consumer = asyncio.create_task(session.run(source))
    try:
        while True:
            message = await websocket.receive_json()
            try:
                if "code" in message:
                    error = LocationErrorRequest.model_validate(message)
                    source.fail(LocationError(LocationErrorCode[error.code.upper()], error.message))
                else:
                    sample = LocationSampleRequest.model_validate(message)
                    source.push(Coordinate(sample.latitude, sample.longitude, sample.accuracy))
            except ValidationError as exc:
                await websocket.send_json({"error": str(exc)})
                continue
            await source.drain()
            await websocket.send_json(_status(session).model_dump(mode="json"))
    except WebSocketDisconnect:
        logging.info(f"Location stream for user {user_id} disconnected")
    finally:
        source.cancel()
        await consumer
