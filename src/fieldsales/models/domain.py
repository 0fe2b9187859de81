"""Domain models for outlets, visits, catalog entries and cart lines."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class OrderUnitType(str, Enum):
    UNITS = "units"
    CASES = "cases"


class PaymentStatus(str, Enum):
    UNPAID = "Unpaid"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"


@dataclass(slots=True, frozen=True)
class Coordinate:
    """A single location fix reported by a device."""

    latitude: float
    longitude: float
    accuracy: Optional[float] = None


@dataclass(slots=True, frozen=True)
class GeofenceSpec:
    """Circular zone around an outlet."""

    outlet_id: str
    center_lat: float
    center_lng: float
    radius_meters: float

    def __post_init__(self) -> None:
        if not self.radius_meters > 0:
            raise ValueError(f"Geofence radius for outlet {self.outlet_id} must be > 0, got {self.radius_meters}")


@dataclass(slots=True)
class Outlet:
    """Retail outlet with its credit position."""

    id: str
    name: str
    lat: float
    lng: float
    credit_limit: float = 0.0
    current_due: float = 0.0


@dataclass(slots=True)
class Visit:
    """Presence record of a user inside an outlet geofence."""

    id: Optional[str]
    user_id: str
    outlet_id: str
    entry_time: datetime
    exit_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    within_radius: bool = True

    @property
    def is_open(self) -> bool:
        return self.exit_time is None


@dataclass(slots=True)
class SkuCatalogEntry:
    """Distributor stock row for a SKU with its pricing inputs."""

    sku_id: int
    mrp: Optional[float]
    ptr: Optional[float]
    units_per_case: Optional[int]
    stock_quantity: int
    name: Optional[str] = None


@dataclass(slots=True)
class CartLine:
    sku_id: int
    order_unit_type: OrderUnitType
    quantity: int
    apply_scheme: bool = True


@dataclass(slots=True)
class PricedLine:
    """Cart line with its derived pricing."""

    line: CartLine
    unit_price: float
    extended_price: float
    scheme_discount_percent: float
    final_price: float
    required_units: int
    catalog_missing: bool = False

    @property
    def discount_amount(self) -> float:
        return self.extended_price * (self.scheme_discount_percent / 100)


@dataclass(slots=True)
class OrderTotals:
    subtotal: float
    total_discount: float
    final_total: float


@dataclass(slots=True)
class Order:
    """Order header ready to be written to the record store."""

    distributor_id: int
    outlet_id: Optional[str]
    created_by_user_id: Optional[str]
    totals: OrderTotals
    payment_status: PaymentStatus
    amount_paid: float
    status: str = "Approved"
    lines: list[PricedLine] = field(default_factory=list)
    id: Optional[int] = None
