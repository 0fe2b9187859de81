import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from fieldsales.models.domain import Coordinate, GeofenceSpec, Order, Outlet, SkuCatalogEntry, Visit
from fieldsales.persistence.base import StockConflictError, StoreError

# one degree of latitude on the haversine sphere
METERS_PER_DEGREE_LAT = 6_371_000.0 * 3.141592653589793 / 180

OUTLET_CENTER = (12.9716, 77.5946)


def north_of(lat: float, lng: float, meters: float) -> Coordinate:
    return Coordinate(latitude=lat + meters / METERS_PER_DEGREE_LAT, longitude=lng)


def geofence(outlet_id: str, lat: float = OUTLET_CENTER[0], lng: float = OUTLET_CENTER[1], radius: float = 150.0) -> GeofenceSpec:
    return GeofenceSpec(outlet_id=outlet_id, center_lat=lat, center_lng=lng, radius_meters=radius)


def catalog_entry(
    sku_id: int,
    *,
    mrp: float | None = 130.0,
    ptr: float | None = None,
    units_per_case: int | None = 10,
    stock: int = 1000,
    name: str | None = None,
) -> SkuCatalogEntry:
    return SkuCatalogEntry(
        sku_id=sku_id,
        mrp=mrp,
        ptr=ptr,
        units_per_case=units_per_case,
        stock_quantity=stock,
        name=name or f"SKU {sku_id}",
    )


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 6, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeRecordStore:
    """In-memory record store; ``fail(method, error)`` makes the next call raise."""

    def __init__(self) -> None:
        self.visits: dict[str, Visit] = {}
        self.outlets: dict[str, Outlet] = {}
        self.orders: dict[int, dict] = {}
        self.stock: dict[tuple[int, int], int] = {}
        self.due_changes: list[tuple[str, float]] = []
        self.calls: list[str] = []
        self._failures: dict[str, list[StoreError]] = {}
        self._ids = itertools.count(1)

    def fail(self, method: str, error: StoreError, times: int = 1) -> None:
        self._failures.setdefault(method, []).extend([error] * times)

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def create_visit(self, visit: Visit) -> Visit:
        self._enter("create_visit")
        stored = replace(visit, id=f"V{next(self._ids)}")
        self.visits[stored.id] = stored
        return stored

    def close_visit(self, visit_id: str, exit_time: datetime, duration_minutes: int) -> None:
        self._enter("close_visit")
        self.visits[visit_id] = replace(self.visits[visit_id], exit_time=exit_time, duration_minutes=duration_minutes)

    def find_open_visit(self, user_id: str, outlet_id: str) -> Visit | None:
        self._enter("find_open_visit")
        candidates = [
            visit
            for visit in self.visits.values()
            if visit.user_id == user_id and visit.outlet_id == outlet_id and visit.exit_time is None
        ]
        return max(candidates, key=lambda visit: visit.entry_time) if candidates else None

    def list_visits(self, user_id: str | None = None, limit: int = 100) -> list[Visit]:
        self._enter("list_visits")
        visits = [visit for visit in self.visits.values() if user_id is None or visit.user_id == user_id]
        return sorted(visits, key=lambda visit: visit.entry_time, reverse=True)[:limit]

    def get_outlet(self, outlet_id: str) -> Outlet | None:
        self._enter("get_outlet")
        return self.outlets.get(outlet_id)

    def adjust_outlet_due(self, outlet_id: str, amount_change: float) -> None:
        self._enter("adjust_outlet_due")
        self.due_changes.append((outlet_id, amount_change))
        if outlet_id in self.outlets:
            self.outlets[outlet_id].current_due += amount_change

    def create_order(self, order: Order) -> int:
        self._enter("create_order")
        order_id = next(self._ids)
        self.orders[order_id] = {
            "id": order_id,
            "distributor_id": order.distributor_id,
            "outlet_id": order.outlet_id,
            "status": order.status,
            "total_amount": order.totals.final_total,
            "amount_paid": order.amount_paid,
            "payment_status": order.payment_status.value,
            "order_items": [
                {
                    "id": next(self._ids),
                    "sku_id": priced.line.sku_id,
                    "quantity": priced.line.quantity,
                    "unit_quantity": priced.required_units,
                    "total_price": priced.final_price,
                    "is_out_of_stock": False,
                }
                for priced in order.lines
            ],
        }
        return order_id

    def delete_order(self, order_id: int) -> None:
        self._enter("delete_order")
        self.orders.pop(order_id, None)

    def get_order(self, order_id: int) -> dict | None:
        self._enter("get_order")
        return self.orders.get(order_id)

    def update_order(self, order_id: int, fields: dict) -> None:
        self._enter("update_order")
        self.orders[order_id].update(fields)

    def mark_items_out_of_stock(self, order_id: int, item_ids) -> None:
        self._enter("mark_items_out_of_stock")
        for item in self.orders[order_id]["order_items"]:
            if item["id"] in item_ids:
                item["is_out_of_stock"] = True

    def decrement_stock(self, distributor_id: int, sku_id: int, quantity: int) -> int:
        self._enter("decrement_stock")
        current = self.stock.get((distributor_id, sku_id))
        if current is None or current < quantity:
            raise StockConflictError(f"Stock for SKU {sku_id} would go negative")
        self.stock[(distributor_id, sku_id)] = current - quantity
        return current - quantity

    def ping(self) -> bool:
        return True


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
