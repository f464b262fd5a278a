"""
Top-level models import shim for the Orders app, so that

    from apps.orders.models import Order

keeps working while the models live in separate modules.
"""

from .order import Order, OrderStatus, PaymentMethod, TERMINAL_STATUSES
from .item import OrderItem
from .timeline import OrderTimeline

__all__ = [
    "Order",
    "OrderStatus",
    "PaymentMethod",
    "TERMINAL_STATUSES",
    "OrderItem",
    "OrderTimeline",
]
