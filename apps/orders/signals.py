# apps/orders/signals.py
from django.dispatch import Signal

# Fired after the transaction that changed an order's status has committed.
# args: order_id, old_status (None on creation), new_status
order_status_changed = Signal()
