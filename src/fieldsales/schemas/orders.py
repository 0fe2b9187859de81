"""Order request/response schemas."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class CartLineModel(BaseModel):
    sku_id: int
    order_unit_type: Literal["units", "cases"] = "units"
    quantity: int = Field(..., ge=1)
    apply_scheme: bool = True


class QuoteRequest(BaseModel):
    distributor_id: int
    items: List[CartLineModel] = Field(..., min_length=1)


class OrderRequestModel(QuoteRequest):
    outlet_id: Optional[str] = Field(default=None, description="Outlet the order is for; omit for distributor orders.")
    user_id: Optional[str] = Field(default=None, description="User placing the order.")
    payment_status: Literal["Unpaid", "Partially Paid", "Paid"] = "Unpaid"
    amount_paid: Optional[float] = None

    @model_validator(mode="after")
    def _require_outlet_user(self) -> "OrderRequestModel":
        if self.outlet_id is not None and self.user_id is None:
            raise ValueError("user_id is required for outlet orders")
        return self


class PricedLineModel(BaseModel):
    sku_id: int
    order_unit_type: str
    quantity: int
    unit_price: float
    extended_price: float
    scheme_discount_percentage: float
    final_price: float
    required_units: int
    catalog_missing: bool = False


class TotalsModel(BaseModel):
    subtotal: float
    total_discount: float
    final_total: float


class QuoteResponse(BaseModel):
    items: List[PricedLineModel]
    totals: TotalsModel


class OrderResponse(QuoteResponse):
    order_id: int
    status: str
    payment_status: str
    amount_paid: float


class IssueModel(BaseModel):
    code: str
    field: str
    message: str
    sku_id: Optional[int] = None
    shortfall: Optional[int] = None


class PaymentRequest(BaseModel):
    amount: float = Field(..., gt=0)


class PaymentResponse(BaseModel):
    order_id: int
    amount_paid: float
    payment_status: str


class StatusUpdateRequest(BaseModel):
    status: str


class DeliveryRequest(BaseModel):
    out_of_stock_item_ids: List[int] = Field(default_factory=list)


class DeliveryResponse(BaseModel):
    order_id: int
    total_amount: float
    fulfilled_item_ids: List[int]
    stock_failures: Dict[int, str]
