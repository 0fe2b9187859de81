"""Line-item pricing with the case volume scheme."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from ...config import settings
from ...models.domain import CartLine, OrderUnitType, PricedLine, SkuCatalogEntry


@dataclass(slots=True, frozen=True)
class StockShortfall:
    sku_id: int
    sku_name: Optional[str]
    required_units: int
    available_units: int

    @property
    def shortfall(self) -> int:
        return self.required_units - self.available_units

    def describe(self) -> str:
        label = self.sku_name or f"SKU {self.sku_id}"
        return (
            f"Not enough stock for {label}. Available: {self.available_units}, "
            f"Needed: {self.required_units} (short by {self.shortfall})"
        )


def unit_price(entry: Optional[SkuCatalogEntry], *, markup_divisor: Optional[float] = None) -> float:
    """Per-unit price: PTR when recorded, otherwise MRP with the markup backed out."""

    if entry is None:
        return 0.0
    if entry.ptr:
        return float(entry.ptr)
    if entry.mrp:
        return float(entry.mrp) / (markup_divisor or settings.ptr_markup_divisor)
    return 0.0


def scheme_discount_percent(
    cases: int,
    *,
    apply_scheme: bool = True,
    tiers: Optional[Sequence[tuple[int, float]]] = None,
) -> float:
    """Volume discount for a case count; tiers are checked highest threshold first."""

    if not apply_scheme:
        return 0.0
    for threshold, percent in tiers if tiers is not None else settings.scheme_tiers:
        if cases >= threshold:
            return percent
    return 0.0


def _is_case_line(line: CartLine, entry: Optional[SkuCatalogEntry]) -> bool:
    # a case order without a case size is priced per unit
    return line.order_unit_type is OrderUnitType.CASES and entry is not None and bool(entry.units_per_case)


def required_units(line: CartLine, entry: Optional[SkuCatalogEntry]) -> int:
    if line.order_unit_type is OrderUnitType.CASES:
        per_case = (entry.units_per_case if entry else None) or 1
        return line.quantity * per_case
    return line.quantity


def price_line(line: CartLine, entry: Optional[SkuCatalogEntry]) -> PricedLine:
    """Price one cart line against its catalog entry.

    A line whose SKU is missing from the catalog is priced at zero and
    flagged so that submission can reject it.
    """
    if line.quantity < 1:
        raise ValueError(f"Quantity for SKU {line.sku_id} must be at least 1, got {line.quantity}")

    price = unit_price(entry)
    if _is_case_line(line, entry):
        extended = price * line.quantity * entry.units_per_case
        discount = scheme_discount_percent(line.quantity, apply_scheme=line.apply_scheme)
    else:
        extended = price * line.quantity
        discount = 0.0

    return PricedLine(
        line=line,
        unit_price=price,
        extended_price=extended,
        scheme_discount_percent=discount,
        final_price=extended * (1 - discount / 100),
        required_units=required_units(line, entry),
        catalog_missing=entry is None,
    )


def check_stock(line: CartLine, entry: Optional[SkuCatalogEntry]) -> Optional[StockShortfall]:
    """Return the shortfall when the line needs more units than are in stock."""

    needed = required_units(line, entry)
    available = entry.stock_quantity if entry else 0
    if needed > available:
        return StockShortfall(
            sku_id=line.sku_id,
            sku_name=entry.name if entry else None,
            required_units=needed,
            available_units=available,
        )
    return None
