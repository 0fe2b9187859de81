"""FastAPI application entry point."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import health, orders, tracking, visits
from .config import settings
from .data.outlets_repository import get_geofences
from .models.domain import GeofenceSpec
from .persistence.base import RecordStore
from .persistence.database import SupabaseRecordStore
from .services.orders.service import CatalogLoader, OrderService
from .services.tracking import TrackingRegistry


def create_app(
    store: Optional[RecordStore] = None,
    *,
    geofence_loader: Optional[Callable[[], Iterable[GeofenceSpec]]] = None,
    catalog_loader: Optional[CatalogLoader] = None,
) -> FastAPI:
    app = FastAPI(title=settings.app_name, root_path="")
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    store = store or SupabaseRecordStore()
    app.state.store = store
    app.state.tracking = TrackingRegistry(store, geofence_loader or get_geofences)
    app.state.orders = OrderService(store, catalog_loader=catalog_loader, tracking=app.state.tracking)

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(tracking.router, prefix=settings.api_prefix)
    app.include_router(visits.router, prefix=settings.api_prefix)
    app.include_router(orders.router, prefix=settings.api_prefix)
    return app


app = create_app()
