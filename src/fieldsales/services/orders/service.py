"""Order submission, payment and delivery workflow."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Sequence

from ...data.catalog_repository import get_stock, index_by_sku
from ...models.domain import CartLine, Order, OrderTotals, PaymentStatus, PricedLine, SkuCatalogEntry
from ...persistence.base import RecordStore, StoreError
from ..tracking import TrackingRegistry
from .aggregator import aggregate, price_cart, validate_order

logger = logging.getLogger(__name__)

CatalogLoader = Callable[[int], Iterable[SkuCatalogEntry]]


class OrderRejectedError(ValueError):
    """The order is valid on its own but business rules refuse it."""


class OrderNotFoundError(LookupError):
    pass


@dataclass(slots=True)
class OrderRequest:
    distributor_id: int
    user_id: Optional[str]
    outlet_id: Optional[str]
    lines: Sequence[CartLine]
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    amount_paid: Optional[float] = None


@dataclass(slots=True)
class Quote:
    lines: list[PricedLine]
    totals: OrderTotals


@dataclass(slots=True)
class SubmittedOrder:
    order_id: int
    status: str
    totals: OrderTotals
    amount_paid: float
    lines: list[PricedLine]


@dataclass(slots=True)
class PaymentResult:
    order_id: int
    amount_paid: float
    payment_status: PaymentStatus


@dataclass(slots=True)
class DeliveryResult:
    order_id: int
    total_amount: float
    fulfilled_item_ids: list[int]
    stock_failures: dict[int, str] = field(default_factory=dict)


def _load_catalog(loader: CatalogLoader, distributor_id: int) -> dict[int, SkuCatalogEntry]:
    return index_by_sku(list(loader(distributor_id)))


class OrderService:
    """Runs the order lifecycle against a record store.

    When a tracking registry is supplied, outlet orders are only accepted
    while the ordering user is inside that outlet's geofence.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        catalog_loader: Optional[CatalogLoader] = None,
        tracking: Optional[TrackingRegistry] = None,
    ) -> None:
        self.store = store
        self.catalog_loader = catalog_loader or (lambda distributor_id: get_stock(distributor_id, in_stock_only=False))
        self.tracking = tracking

    def quote(self, distributor_id: int, lines: Sequence[CartLine]) -> Quote:
        """Price a cart without stock or payment checks."""
        catalog = _load_catalog(self.catalog_loader, distributor_id)
        priced = price_cart(lines, catalog)
        return Quote(lines=priced, totals=aggregate(priced))

    def orderable_outlets(self, user_id: str) -> frozenset[str]:
        if self.tracking is None:
            return frozenset()
        return self.tracking.active_outlets(user_id)

    def submit_order(self, request: OrderRequest) -> SubmittedOrder:
        is_outlet_order = request.outlet_id is not None
        if is_outlet_order and self.tracking is not None:
            if request.user_id is None or request.outlet_id not in self.orderable_outlets(request.user_id):
                raise OrderRejectedError("You must be inside the outlet's geofence to place an order there.")

        catalog = _load_catalog(self.catalog_loader, request.distributor_id)
        priced = price_cart(request.lines, catalog)
        totals, amount_paid = validate_order(priced, catalog, request.payment_status, request.amount_paid)

        if is_outlet_order:
            outlet = self.store.get_outlet(request.outlet_id)
            if outlet is None:
                raise OrderRejectedError("Could not find the selected outlet.")
            new_due = outlet.current_due + totals.final_total - amount_paid
            if outlet.credit_limit > 0 and new_due > outlet.credit_limit:
                raise OrderRejectedError("This order exceeds the outlet's credit limit.")

        order = Order(
            distributor_id=request.distributor_id,
            outlet_id=request.outlet_id,
            created_by_user_id=request.user_id,
            totals=totals,
            payment_status=request.payment_status,
            amount_paid=amount_paid,
            status="Approved" if is_outlet_order else "Pending",
            lines=priced,
        )
        order_id = self.store.create_order(order)

        due_change = totals.final_total - amount_paid
        if is_outlet_order and due_change != 0:
            try:
                self.store.adjust_outlet_due(request.outlet_id, due_change)
            except StoreError:
                logger.error(f"Outlet due update failed, removing order {order_id}")
                self.store.delete_order(order_id)
                raise

        logger.info(f"Order {order_id} created for distributor {request.distributor_id} ({totals.final_total:.2f})")
        return SubmittedOrder(
            order_id=order_id,
            status=order.status,
            totals=totals,
            amount_paid=amount_paid,
            lines=priced,
        )

    def _require_order(self, order_id: int) -> dict:
        order = self.store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found.")
        return order

    def record_payment(self, order_id: int, amount: float) -> PaymentResult:
        if amount <= 0:
            raise ValueError("Payment amount must be greater than zero.")
        order = self._require_order(order_id)

        new_amount_paid = float(order.get("amount_paid") or 0) + amount
        total = float(order.get("total_amount") or 0)
        status = PaymentStatus.PAID if new_amount_paid >= total else PaymentStatus.PARTIALLY_PAID

        self.store.update_order(order_id, {"amount_paid": new_amount_paid, "payment_status": status.value})
        if order.get("outlet_id"):
            self.store.adjust_outlet_due(order["outlet_id"], -amount)
        return PaymentResult(order_id=order_id, amount_paid=new_amount_paid, payment_status=status)

    def update_status(self, order_id: int, status: str) -> None:
        order = self._require_order(order_id)
        self.store.update_order(order_id, {"status": status})
        if status == "Rejected" and order.get("status") == "Approved" and order.get("outlet_id"):
            self.store.adjust_outlet_due(order["outlet_id"], -float(order.get("total_amount") or 0))

    def deliver_order(self, order_id: int, out_of_stock_item_ids: Sequence[int] = ()) -> DeliveryResult:
        """Mark a dispatched order delivered and take fulfilled items out of stock."""
        order = self._require_order(order_id)
        if order.get("status") != "Dispatched":
            raise OrderRejectedError("Only dispatched orders can be marked as delivered.")

        items = order.get("order_items") or []
        missing = set(out_of_stock_item_ids)
        unknown = missing - {int(item["id"]) for item in items}
        if unknown:
            raise OrderRejectedError(f"Items {sorted(unknown)} do not belong to order {order_id}.")

        self.store.mark_items_out_of_stock(order_id, sorted(missing))
        fulfilled = [item for item in items if int(item["id"]) not in missing]
        new_total = sum(float(item.get("total_price") or 0) for item in fulfilled)
        self.store.update_order(order_id, {"status": "Delivered", "total_amount": new_total})

        failures: dict[int, str] = {}
        for item in fulfilled:
            units = int(item.get("unit_quantity") or item["quantity"])
            try:
                self.store.decrement_stock(int(order["distributor_id"]), int(item["sku_id"]), units)
            except StoreError as exc:
                logger.error(f"Stock update failed for SKU {item['sku_id']} on order {order_id}: {exc}")
                failures[int(item["sku_id"])] = str(exc)

        return DeliveryResult(
            order_id=order_id,
            total_amount=new_total,
            fulfilled_item_ids=[int(item["id"]) for item in fulfilled],
            stock_failures=failures,
        )
