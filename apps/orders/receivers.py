from django.dispatch import receiver

from .realtime import broadcast_order_event
from .signals import order_status_changed


@receiver(order_status_changed)
def push_status_to_dashboard(sender, order_id, old_status, new_status, **kwargs):
    broadcast_order_event(order_id, old_status, new_status)
