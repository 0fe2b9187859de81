"""Catalog reader for distributor stock and SKU pricing inputs."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..db.supabase import get_supabase_client
from ..models.domain import SkuCatalogEntry


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Unable to parse float from value '{value}'") from exc


def _coerce_int(value: Any) -> Optional[int]:
    number = _coerce_float(value)
    return int(number) if number is not None else None


def row_to_catalog_entry(row: dict[str, Any]) -> SkuCatalogEntry:
    """Build a catalog entry from a ``distributor_stock`` row joined with ``skus``.

    Stock-level values win over the SKU master where both are present.
    """
    sku = row.get("skus") or {}
    return SkuCatalogEntry(
        sku_id=int(row["sku_id"]),
        mrp=_coerce_float(row.get("mrp") if row.get("mrp") is not None else sku.get("mrp")),
        ptr=_coerce_float(row.get("ptr") if row.get("ptr") is not None else sku.get("ptr")),
        units_per_case=_coerce_int(
            row.get("units_per_case") if row.get("units_per_case") is not None else sku.get("units_per_case")
        ),
        stock_quantity=_coerce_int(row.get("stock_quantity")) or 0,
        name=sku.get("name"),
    )


def get_stock(distributor_id: int, *, in_stock_only: bool = True) -> tuple[SkuCatalogEntry, ...]:
    """Load the distributor's stock with pricing data from Supabase."""
    supabase = get_supabase_client()
    if not supabase:
        logging.warning("Supabase not configured - catalog is empty")
        return tuple()

    query = (
        supabase.table("distributor_stock")
        .select("*, skus(name, product_code, mrp, ptr, units_per_case)")
        .eq("distributor_id", distributor_id)
    )
    if in_stock_only:
        query = query.gt("stock_quantity", 0)
    response = query.execute()

    entries: list[SkuCatalogEntry] = []
    for row in response.data or []:
        try:
            entries.append(row_to_catalog_entry(row))
        except (KeyError, ValueError, TypeError) as e:
            logging.warning(f"Skipping invalid stock row: {e}")
            continue
    return tuple(entries)


def index_by_sku(entries: tuple[SkuCatalogEntry, ...] | list[SkuCatalogEntry]) -> dict[int, SkuCatalogEntry]:
    return {entry.sku_id: entry for entry in entries}
