"""Visit history endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Query, Request, status

from ...persistence.base import StoreError
from ...schemas.visits import VisitModel

router = APIRouter(prefix="/visits", tags=["visits"])


@router.get("", response_model=List[VisitModel], status_code=status.HTTP_200_OK)
def list_visits(
    request: Request,
    user_id: str | None = Query(default=None, description="Optional user filter"),
    limit: int = Query(default=100, ge=1, le=1000),
) -> List[VisitModel]:
    try:
        visits = request.app.state.store.list_visits(user_id=user_id, limit=limit)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return [
        VisitModel(
            id=visit.id,
            user_id=visit.user_id,
            outlet_id=visit.outlet_id,
            entry_time=visit.entry_time,
            exit_time=visit.exit_time,
            duration_minutes=visit.duration_minutes,
            within_radius=visit.within_radius,
        )
        for visit in visits
    ]
