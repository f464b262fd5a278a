from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
import logging

logger = logging.getLogger(__name__)

ADMIN_GROUP = "orders_admin"


def broadcast_order_event(order_id, old_status, new_status):
    """
    Pushes a status change to the staff order dashboard.
    Event structure: { "type": "order.status_changed", "order_id": ..., ... }
    """
    channel_layer = get_channel_layer()
    if not channel_layer:
        return

    payload = {
        "type": "order.status_changed",
        "order_id": str(order_id),
        "old_status": old_status,
        "new_status": new_status,
    }

    try:
        async_to_sync(channel_layer.group_send)(
            ADMIN_GROUP,
            {
                "type": "order.message",  # Matches consumer method
                "payload": payload,
            }
        )
    except Exception as e:
        logger.error(f"Failed to broadcast order event: {e}", extra={"order_id": str(order_id)})
