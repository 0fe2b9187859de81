"""Geofence loader: geofences table first, falling back to outlet coordinates."""

from __future__ import annotations

import logging
from typing import Any

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import GeofenceSpec


def _row_to_geofence(row: dict[str, Any], *, outlet_key: str = "outlet_id") -> GeofenceSpec:
    radius = row.get("radius")
    return GeofenceSpec(
        outlet_id=str(row[outlet_key]),
        center_lat=float(row["lat"]),
        center_lng=float(row["lng"]),
        radius_meters=float(radius) if radius else settings.geofence_radius_meters,
    )


def _load_geofences_from_table() -> tuple[GeofenceSpec, ...] | None:
    supabase = get_supabase_client()
    if not supabase:
        return None

    try:
        response = supabase.table("geofences").select("outlet_id, lat, lng, radius").execute()
    except Exception as e:
        logging.debug(f"Geofence query failed, falling back to outlets: {e}")
        return None
    if not response.data:
        return None

    geofences: list[GeofenceSpec] = []
    for row in response.data:
        try:
            geofences.append(_row_to_geofence(row))
        except (KeyError, ValueError, TypeError) as e:
            logging.warning(f"Skipping invalid geofence row: {e}")
            continue
    return tuple(geofences) if geofences else None


def _load_geofences_from_outlets() -> tuple[GeofenceSpec, ...]:
    supabase = get_supabase_client()
    if not supabase:
        logging.warning("Supabase not configured - no geofences available")
        return tuple()

    response = supabase.table("outlets").select("id, lat, lng").execute()
    geofences: list[GeofenceSpec] = []
    for row in response.data or []:
        try:
            geofences.append(_row_to_geofence(row, outlet_key="id"))
        except (KeyError, ValueError, TypeError) as e:
            logging.warning(f"Skipping outlet without usable coordinates: {e}")
            continue
    return tuple(geofences)


def get_geofences() -> tuple[GeofenceSpec, ...]:
    """Get outlet geofences, one per outlet.

    Rows in ``geofences`` win; outlets without a row get a zone centred on
    the outlet with the configured default radius.
    """
    table_geofences = _load_geofences_from_table()
    if table_geofences is None:
        return _load_geofences_from_outlets()

    covered = {spec.outlet_id for spec in table_geofences}
    extra = tuple(spec for spec in _load_geofences_from_outlets() if spec.outlet_id not in covered)
    return table_geofences + extra
