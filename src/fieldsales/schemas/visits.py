"""Visit history schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class VisitModel(BaseModel):
    id: Optional[str] = None
    user_id: str
    outlet_id: str
    entry_time: datetime
    exit_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    within_radius: bool = True
