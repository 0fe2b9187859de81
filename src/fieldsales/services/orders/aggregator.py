"""Order totals, payment resolution and submission-time validation."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from ...config import settings
from ...models.domain import CartLine, OrderTotals, PaymentStatus, PricedLine, SkuCatalogEntry
from ..pricing.engine import StockShortfall, price_line


@dataclass(slots=True, frozen=True)
class ValidationIssue:
    code: str
    field: str
    message: str
    sku_id: Optional[int] = None
    shortfall: Optional[int] = None


class OrderValidationError(ValueError):
    """Raised with every problem found in an order, not just the first."""

    def __init__(self, issues: Sequence[ValidationIssue]) -> None:
        self.issues = list(issues)
        super().__init__("; ".join(issue.message for issue in self.issues))


def price_cart(lines: Sequence[CartLine], catalog: Mapping[int, SkuCatalogEntry]) -> list[PricedLine]:
    return [price_line(line, catalog.get(line.sku_id)) for line in lines]


def aggregate(lines: Sequence[PricedLine]) -> OrderTotals:
    subtotal = sum(priced.extended_price for priced in lines)
    total_discount = sum(priced.discount_amount for priced in lines)
    return OrderTotals(subtotal=subtotal, total_discount=total_discount, final_total=subtotal - total_discount)


def _payment_issues(
    status: PaymentStatus,
    final_total: float,
    supplied: Optional[float],
    enforce_cap: bool,
) -> list[ValidationIssue]:
    if status is not PaymentStatus.PARTIALLY_PAID:
        return []
    if supplied is None or supplied <= 0:
        return [ValidationIssue("invalid_amount_paid", "amount_paid", "Please enter the amount for partial payment.")]
    if enforce_cap and supplied > final_total:
        return [
            ValidationIssue(
                "invalid_amount_paid",
                "amount_paid",
                f"Partial payment {supplied:.2f} exceeds the order total {final_total:.2f}.",
            )
        ]
    return []


def resolve_amount_paid(
    status: PaymentStatus,
    final_total: float,
    supplied: Optional[float] = None,
    *,
    enforce_cap: Optional[bool] = None,
) -> float:
    """Amount paid is derived for Paid/Unpaid and user-supplied for partial payments."""

    cap = settings.enforce_partial_payment_cap if enforce_cap is None else enforce_cap
    issues = _payment_issues(status, final_total, supplied, cap)
    if issues:
        raise OrderValidationError(issues)
    if status is PaymentStatus.PAID:
        return final_total
    if status is PaymentStatus.UNPAID:
        return 0.0
    return float(supplied)


def stock_shortfalls(
    lines: Sequence[PricedLine], catalog: Mapping[int, SkuCatalogEntry]
) -> list[StockShortfall]:
    """Shortfalls per SKU, summing units across lines that share a SKU."""

    needed: "OrderedDict[int, int]" = OrderedDict()
    for priced in lines:
        if priced.catalog_missing:
            continue
        needed[priced.line.sku_id] = needed.get(priced.line.sku_id, 0) + priced.required_units

    shortfalls: list[StockShortfall] = []
    for sku_id, units in needed.items():
        entry = catalog[sku_id]
        if units > entry.stock_quantity:
            shortfalls.append(
                StockShortfall(
                    sku_id=sku_id,
                    sku_name=entry.name,
                    required_units=units,
                    available_units=entry.stock_quantity,
                )
            )
    return shortfalls


def validate_order(
    lines: Sequence[PricedLine],
    catalog: Mapping[int, SkuCatalogEntry],
    payment_status: PaymentStatus,
    amount_supplied: Optional[float] = None,
    *,
    enforce_cap: Optional[bool] = None,
) -> tuple[OrderTotals, float]:
    """Check an order for submission and return its totals and amount paid."""

    issues: list[ValidationIssue] = []
    if not lines:
        issues.append(ValidationIssue("empty_order", "items", "Add at least one item to the order."))

    for priced in lines:
        if priced.catalog_missing:
            issues.append(
                ValidationIssue(
                    "missing_catalog_entry",
                    "items",
                    f"SKU {priced.line.sku_id} is not in the distributor's catalog.",
                    sku_id=priced.line.sku_id,
                )
            )

    for shortfall in stock_shortfalls(lines, catalog):
        issues.append(
            ValidationIssue(
                "insufficient_stock",
                "items",
                shortfall.describe(),
                sku_id=shortfall.sku_id,
                shortfall=shortfall.shortfall,
            )
        )

    totals = aggregate(lines)
    cap = settings.enforce_partial_payment_cap if enforce_cap is None else enforce_cap
    issues.extend(_payment_issues(payment_status, totals.final_total, amount_supplied, cap))

    if issues:
        raise OrderValidationError(issues)
    return totals, resolve_amount_paid(payment_status, totals.final_total, amount_supplied, enforce_cap=cap)
