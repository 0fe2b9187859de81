"""Pydantic request/response models for location tracking endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class LocationSampleRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)


class LocationErrorRequest(BaseModel):
    code: Literal["unsupported", "permission_denied", "position_unavailable", "timeout"]
    message: str = ""


class GeofenceEventModel(BaseModel):
    type: Literal["entered", "exited"]
    outlet_id: str
    occurred_at: datetime
    distance_meters: float


class NoticeModel(BaseModel):
    level: str
    title: str
    message: str
    outlet_id: str


class TrackingStatusResponse(BaseModel):
    user_id: str
    location_available: bool
    location_error: Optional[str] = None
    active_outlets: List[str]
    events: List[GeofenceEventModel] = Field(default_factory=list)
    notices: List[NoticeModel] = Field(default_factory=list)
    deferred_visit_closes: int = 0
