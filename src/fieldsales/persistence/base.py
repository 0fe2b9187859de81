"""Record store contract shared by the visit ledger and order workflow."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol, Sequence

from ..models.domain import Order, Outlet, Visit


class StoreError(Exception):
    """Raised when the backing store rejects or cannot complete a write."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class StockConflictError(StoreError):
    """Stock could not be decremented without going below zero or losing a race."""


class RecordStore(Protocol):
    """Backend operations the core relies on.

    Every method raises :class:`StoreError` on failure; ``transient`` marks
    network-level problems that may succeed on a later attempt.
    """

    def create_visit(self, visit: Visit) -> Visit:
        ...

    def close_visit(self, visit_id: str, exit_time: datetime, duration_minutes: int) -> None:
        ...

    def find_open_visit(self, user_id: str, outlet_id: str) -> Optional[Visit]:
        ...

    def list_visits(self, user_id: Optional[str] = None, limit: int = 100) -> list[Visit]:
        ...

    def get_outlet(self, outlet_id: str) -> Optional[Outlet]:
        ...

    def adjust_outlet_due(self, outlet_id: str, amount_change: float) -> None:
        ...

    def create_order(self, order: Order) -> int:
        ...

    def delete_order(self, order_id: int) -> None:
        ...

    def get_order(self, order_id: int) -> Optional[dict[str, Any]]:
        ...

    def update_order(self, order_id: int, fields: dict[str, Any]) -> None:
        ...

    def mark_items_out_of_stock(self, order_id: int, item_ids: Sequence[int]) -> None:
        ...

    def decrement_stock(self, distributor_id: int, sku_id: int, quantity: int) -> int:
        ...
