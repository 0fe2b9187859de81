"""Order services."""

from .aggregator import OrderValidationError, ValidationIssue, aggregate, resolve_amount_paid, validate_order
from .service import OrderNotFoundError, OrderRejectedError, OrderRequest, OrderService

__all__ = [
    "OrderNotFoundError",
    "OrderRejectedError",
    "OrderRequest",
    "OrderService",
    "OrderValidationError",
    "ValidationIssue",
    "aggregate",
    "resolve_amount_paid",
    "validate_order",
]
