"""Route group exports."""

from . import health, orders, tracking, visits

__all__ = ["health", "orders", "tracking", "visits"]
