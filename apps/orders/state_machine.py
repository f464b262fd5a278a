"""
Order lifecycle:

    pending_payment -> in_review -> paid -> shipped -> finalized
                 \\________________________________/-> cancelled

Buyer actions drive pending_payment <-> in_review; everything past that is an
admin transition, which may move to any known status.
"""
from .models import OrderStatus, TERMINAL_STATUSES

KNOWN_STATUSES = frozenset(OrderStatus.values)


def is_known(status) -> bool:
    return status in KNOWN_STATUSES


def is_terminal(status) -> bool:
    return status in TERMINAL_STATUSES


def should_dispatch_invoice(old_status, new_status) -> bool:
    """Invoice goes out only on the edge into `paid`."""
    return new_status == OrderStatus.PAID and old_status != OrderStatus.PAID
