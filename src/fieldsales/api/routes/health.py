"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, status

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database(request: Request) -> dict:
    """Check that the record store answers queries."""
    from ...db.supabase import get_supabase_client

    if get_supabase_client() is None:
        return {
            "configured": False,
            "message": "Supabase not configured. Set FSD_SUPABASE_URL and FSD_SUPABASE_KEY environment variables.",
        }

    try:
        request.app.state.store.ping()
        return {"configured": True, "connected": True, "message": "Database connected."}
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
