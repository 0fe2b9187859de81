"""Supabase persistence for visits, orders, outlets and stock."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import Order, Outlet, Visit
from .base import StockConflictError, StoreError

logger = logging.getLogger(__name__)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _row_to_visit(row: dict[str, Any]) -> Visit:
    return Visit(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        outlet_id=str(row["outlet_id"]),
        entry_time=_parse_timestamp(row["entry_time"]),
        exit_time=_parse_timestamp(row.get("exit_time")),
        duration_minutes=row.get("duration_minutes"),
        within_radius=bool(row.get("within_radius", True)),
    )


class SupabaseRecordStore:
    """Record store backed by the Supabase REST API."""

    def __init__(self, client: Client | None = None) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        client = self._client or get_supabase_client()
        if client is None:
            raise StoreError("Supabase not configured. Set FSD_SUPABASE_URL and FSD_SUPABASE_KEY.")
        return client

    def _execute(self, action: str, run: Callable[[Client], Any]) -> Any:
        """Run a query and translate client failures into StoreError."""
        try:
            return run(self.client)
        except StoreError:
            raise
        except APIError as exc:
            raise StoreError(f"{action} rejected by backend: {exc.message}") from exc
        except httpx.HTTPError as exc:
            raise StoreError(f"{action} failed: {exc}", transient=True) from exc

    # Visits

    def create_visit(self, visit: Visit) -> Visit:
        payload = {
            "user_id": visit.user_id,
            "outlet_id": visit.outlet_id,
            "entry_time": visit.entry_time.isoformat(),
            "within_radius": visit.within_radius,
        }
        response = self._execute(
            "Visit entry",
            lambda client: client.table("visits").insert(payload).execute(),
        )
        if not response.data:
            raise StoreError("Visit entry returned no row")
        return _row_to_visit(response.data[0])

    def close_visit(self, visit_id: str, exit_time: datetime, duration_minutes: int) -> None:
        self._execute(
            "Visit exit",
            lambda client: client.table("visits")
            .update({"exit_time": exit_time.isoformat(), "duration_minutes": duration_minutes})
            .eq("id", visit_id)
            .execute(),
        )

    def find_open_visit(self, user_id: str, outlet_id: str) -> Optional[Visit]:
        response = self._execute(
            "Open visit lookup",
            lambda client: client.table("visits")
            .select("*")
            .eq("user_id", user_id)
            .eq("outlet_id", outlet_id)
            .is_("exit_time", "null")
            .order("entry_time", desc=True)
            .limit(1)
            .execute(),
        )
        rows = response.data or []
        return _row_to_visit(rows[0]) if rows else None

    def list_visits(self, user_id: Optional[str] = None, limit: int = 100) -> list[Visit]:
        def run(client: Client) -> Any:
            query = client.table("visits").select("*")
            if user_id is not None:
                query = query.eq("user_id", user_id)
            return query.order("entry_time", desc=True).limit(limit).execute()

        response = self._execute("Visit history", run)
        return [_row_to_visit(row) for row in (response.data or [])]

    # Outlets

    def get_outlet(self, outlet_id: str) -> Optional[Outlet]:
        response = self._execute(
            "Outlet lookup",
            lambda client: client.table("outlets")
            .select("id, name, lat, lng, credit_limit, current_due")
            .eq("id", outlet_id)
            .limit(1)
            .execute(),
        )
        rows = response.data or []
        if not rows:
            return None
        row = rows[0]
        return Outlet(
            id=str(row["id"]),
            name=row.get("name") or "",
            lat=float(row["lat"]),
            lng=float(row["lng"]),
            credit_limit=float(row.get("credit_limit") or 0),
            current_due=float(row.get("current_due") or 0),
        )

    def adjust_outlet_due(self, outlet_id: str, amount_change: float) -> None:
        self._execute(
            "Outlet due update",
            lambda client: client.rpc(
                "update_outlet_due",
                {"outlet_uuid": outlet_id, "amount_change": amount_change},
            ).execute(),
        )

    # Orders

    def create_order(self, order: Order) -> int:
        header = {
            "distributor_id": order.distributor_id,
            "outlet_id": order.outlet_id,
            "status": order.status,
            "total_amount": order.totals.final_total,
            "total_discount": order.totals.total_discount,
            "amount_paid": order.amount_paid,
            "payment_status": order.payment_status.value,
            "order_date": datetime.now().astimezone().isoformat(),
            "created_by_user_id": order.created_by_user_id,
        }
        response = self._execute(
            "Order creation",
            lambda client: client.table("orders").insert(header).execute(),
        )
        if not response.data:
            raise StoreError("Order creation returned no row")
        order_id = int(response.data[0]["id"])

        items = [
            {
                "order_id": order_id,
                "sku_id": priced.line.sku_id,
                "quantity": priced.line.quantity,
                "order_unit_type": priced.line.order_unit_type.value,
                "unit_quantity": priced.required_units,
                "unit_price": priced.unit_price,
                "total_price": priced.final_price,
                "scheme_discount_percentage": priced.scheme_discount_percent,
            }
            for priced in order.lines
        ]
        try:
            self._execute(
                "Order items",
                lambda client: client.table("order_items").insert(items).execute(),
            )
        except StoreError:
            logger.error(f"Order items could not be saved, removing order {order_id}")
            self.delete_order(order_id)
            raise
        return order_id

    def delete_order(self, order_id: int) -> None:
        self._execute(
            "Order delete",
            lambda client: client.table("orders").delete().eq("id", order_id).execute(),
        )

    def get_order(self, order_id: int) -> Optional[dict[str, Any]]:
        response = self._execute(
            "Order lookup",
            lambda client: client.table("orders")
            .select("*, order_items(*)")
            .eq("id", order_id)
            .limit(1)
            .execute(),
        )
        rows = response.data or []
        return rows[0] if rows else None

    def update_order(self, order_id: int, fields: dict[str, Any]) -> None:
        self._execute(
            "Order update",
            lambda client: client.table("orders").update(fields).eq("id", order_id).execute(),
        )

    def mark_items_out_of_stock(self, order_id: int, item_ids: Sequence[int]) -> None:
        if not item_ids:
            return
        self._execute(
            "Order item update",
            lambda client: client.table("order_items")
            .update({"is_out_of_stock": True})
            .eq("order_id", order_id)
            .in_("id", list(item_ids))
            .execute(),
        )

    # Stock

    def decrement_stock(self, distributor_id: int, sku_id: int, quantity: int) -> int:
        """Decrement distributor stock with compare-and-swap, returning the new quantity.

        The update only matches while ``stock_quantity`` still holds the value
        read just before, so concurrent decrements retry instead of overwriting
        each other.
        """
        for attempt in range(1, settings.stock_update_max_retries + 1):
            response = self._execute(
                "Stock lookup",
                lambda client: client.table("distributor_stock")
                .select("stock_quantity")
                .eq("distributor_id", distributor_id)
                .eq("sku_id", sku_id)
                .limit(1)
                .execute(),
            )
            rows = response.data or []
            if not rows:
                raise StockConflictError(f"No stock row for SKU {sku_id} at distributor {distributor_id}")
            current = int(rows[0]["stock_quantity"])
            if current < quantity:
                raise StockConflictError(
                    f"Stock for SKU {sku_id} would go negative (available {current}, needed {quantity})"
                )

            updated = self._execute(
                "Stock update",
                lambda client: client.table("distributor_stock")
                .update({"stock_quantity": current - quantity})
                .eq("distributor_id", distributor_id)
                .eq("sku_id", sku_id)
                .eq("stock_quantity", current)
                .execute(),
            )
            if updated.data:
                return current - quantity
            logger.info(f"Stock for SKU {sku_id} changed concurrently, retrying ({attempt})")

        raise StockConflictError(
            f"Stock for SKU {sku_id} kept changing; gave up after {settings.stock_update_max_retries} attempts",
            transient=True,
        )

    def ping(self) -> bool:
        """Return True when the visits table answers a trivial query."""
        self._execute(
            "Health check",
            lambda client: client.table("visits").select("id", count="exact").limit(1).execute(),
        )
        return True
