"""Order endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from ...models.domain import CartLine, OrderTotals, OrderUnitType, PaymentStatus, PricedLine
from ...persistence.base import StoreError
from ...schemas.orders import (
    CartLineModel,
    DeliveryRequest,
    DeliveryResponse,
    IssueModel,
    OrderRequestModel,
    OrderResponse,
    PaymentRequest,
    PaymentResponse,
    PricedLineModel,
    QuoteRequest,
    QuoteResponse,
    StatusUpdateRequest,
    TotalsModel,
)
from ...services.orders.aggregator import OrderValidationError, ValidationIssue
from ...services.orders.service import OrderNotFoundError, OrderRequest, OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def _service(request: Request) -> OrderService:
    return request.app.state.orders


def _to_cart_line(item: CartLineModel) -> CartLine:
    return CartLine(
        sku_id=item.sku_id,
        order_unit_type=OrderUnitType(item.order_unit_type),
        quantity=item.quantity,
        apply_scheme=item.apply_scheme,
    )


def _to_priced_model(priced: PricedLine) -> PricedLineModel:
    return PricedLineModel(
        sku_id=priced.line.sku_id,
        order_unit_type=priced.line.order_unit_type.value,
        quantity=priced.line.quantity,
        unit_price=priced.unit_price,
        extended_price=priced.extended_price,
        scheme_discount_percentage=priced.scheme_discount_percent,
        final_price=priced.final_price,
        required_units=priced.required_units,
        catalog_missing=priced.catalog_missing,
    )


def _to_totals_model(totals: OrderTotals) -> TotalsModel:
    return TotalsModel(
        subtotal=totals.subtotal,
        total_discount=totals.total_discount,
        final_total=totals.final_total,
    )


def _to_issue_model(issue: ValidationIssue) -> IssueModel:
    return IssueModel(
        code=issue.code,
        field=issue.field,
        message=issue.message,
        sku_id=issue.sku_id,
        shortfall=issue.shortfall,
    )


def _store_error(exc: StoreError) -> HTTPException:
    code = status.HTTP_503_SERVICE_UNAVAILABLE if exc.transient else status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=code, detail=str(exc))


@router.post("/quote", response_model=QuoteResponse, status_code=status.HTTP_200_OK)
def quote(payload: QuoteRequest, request: Request) -> QuoteResponse:
    result = _service(request).quote(payload.distributor_id, [_to_cart_line(item) for item in payload.items])
    return QuoteResponse(
        items=[_to_priced_model(priced) for priced in result.lines],
        totals=_to_totals_model(result.totals),
    )


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(payload: OrderRequestModel, request: Request) -> OrderResponse:
    order_request = OrderRequest(
        distributor_id=payload.distributor_id,
        user_id=payload.user_id,
        outlet_id=payload.outlet_id,
        lines=[_to_cart_line(item) for item in payload.items],
        payment_status=PaymentStatus(payload.payment_status),
        amount_paid=payload.amount_paid,
    )
    try:
        submitted = _service(request).submit_order(order_request)
    except OrderValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[_to_issue_model(issue).model_dump() for issue in exc.issues],
        ) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreError as exc:
        logging.error(f"Order could not be placed: {exc}")
        raise _store_error(exc) from exc

    return OrderResponse(
        order_id=submitted.order_id,
        status=submitted.status,
        payment_status=order_request.payment_status.value,
        amount_paid=submitted.amount_paid,
        items=[_to_priced_model(priced) for priced in submitted.lines],
        totals=_to_totals_model(submitted.totals),
    )


@router.post("/{order_id}/payments", response_model=PaymentResponse, status_code=status.HTTP_200_OK)
def record_payment(order_id: int, payload: PaymentRequest, request: Request) -> PaymentResponse:
    try:
        result = _service(request).record_payment(order_id, payload.amount)
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc
    return PaymentResponse(
        order_id=result.order_id,
        amount_paid=result.amount_paid,
        payment_status=result.payment_status.value,
    )


@router.post("/{order_id}/status", status_code=status.HTTP_200_OK)
def update_status(order_id: int, payload: StatusUpdateRequest, request: Request) -> dict:
    try:
        _service(request).update_status(order_id, payload.status)
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc
    return {"order_id": order_id, "status": payload.status}


@router.post("/{order_id}/deliver", response_model=DeliveryResponse, status_code=status.HTTP_200_OK)
def deliver(order_id: int, payload: DeliveryRequest, request: Request) -> DeliveryResponse:
    try:
        result = _service(request).deliver_order(order_id, payload.out_of_stock_item_ids)
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc
    return DeliveryResponse(
        order_id=result.order_id,
        total_amount=result.total_amount,
        fulfilled_item_ids=result.fulfilled_item_ids,
        stock_failures=result.stock_failures,
    )
