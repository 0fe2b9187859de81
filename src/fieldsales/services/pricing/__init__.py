"""Pricing services."""

from .engine import StockShortfall, check_stock, price_line, required_units, scheme_discount_percent, unit_price

__all__ = [
    "StockShortfall",
    "check_stock",
    "price_line",
    "required_units",
    "scheme_discount_percent",
    "unit_price",
]
