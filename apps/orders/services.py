import os
import logging

from django.conf import settings
from django.core.files.storage import default_storage
from django.db import transaction
from django.utils import timezone

from apps.notifications.services import InvoiceDispatcher
from apps.utils.exceptions import BusinessLogicException
from .exceptions import PaymentMethodGuardError, ProofUploadError
from .models import Order, OrderTimeline, OrderStatus, PaymentMethod
from .signals import order_status_changed
from . import state_machine

logger = logging.getLogger(__name__)


class OrderService:

    @staticmethod
    def get_for_buyer(order_id, user) -> Order:
        """
        Guest orders are reachable by id alone; orders placed by an account
        only by that account (or staff).
        """
        order = Order.objects.prefetch_related("items").get(id=order_id)
        if order.user_id is None:
            return order
        if user and user.is_authenticated and (user.pk == order.user_id or user.is_staff):
            return order
        raise Order.DoesNotExist("Order not found.")

    @staticmethod
    @transaction.atomic
    def switch_payment_method(order_id, method: str, actor=None) -> Order:
        if method not in PaymentMethod.values:
            raise BusinessLogicException(f"Unknown payment method '{method}'.", code="payment_method_invalid")

        order = Order.objects.select_for_update().get(id=order_id)

        if method == PaymentMethod.CASH:
            # Guard: a submitted proof pins the order to transfer
            if order.has_proof:
                logger.warning(
                    f"Order {order.id}: switch to cash rejected, proof already uploaded.",
                    extra={"order_id": str(order.id)},
                )
                raise PaymentMethodGuardError()

            old_status = order.status
            order.payment_method = PaymentMethod.CASH
            order.proof_url = None
            order.status = OrderStatus.PENDING_PAYMENT
            order.save(update_fields=["payment_method", "proof_url", "status", "updated_at"])
            OrderService._record_transition(order, old_status, actor, "Payment method changed to cash.")
            return order

        order.payment_method = PaymentMethod.TRANSFER
        order.save(update_fields=["payment_method", "updated_at"])
        return order

    @staticmethod
    def upload_proof(order_id, file, actor=None) -> Order:
        """
        Storage first, then the order update. If the upload fails the order
        is left exactly as it was.
        """
        Order.objects.only("id").get(id=order_id)

        _, ext = os.path.splitext(getattr(file, "name", "") or "")
        path = f"{settings.PAYMENT_PROOF_UPLOAD_DIR}/{order_id}-{int(timezone.now().timestamp())}{ext.lower() or '.jpg'}"
        try:
            saved_name = default_storage.save(path, file)
            url = default_storage.url(saved_name)
        except Exception as exc:
            logger.error(f"Proof upload failed for order {order_id}: {exc}", extra={"order_id": str(order_id)})
            raise ProofUploadError() from exc

        with transaction.atomic():
            order = Order.objects.select_for_update().get(id=order_id)
            old_status = order.status

            order.payment_method = PaymentMethod.TRANSFER
            order.proof_url = url
            order.status = OrderStatus.IN_REVIEW
            order.save(update_fields=["payment_method", "proof_url", "status", "updated_at"])
            OrderService._record_transition(order, old_status, actor, "Payment proof uploaded.")

        return order

    @staticmethod
    @transaction.atomic
    def admin_transition(order_id, new_status: str, actor=None, note: str = "") -> Order:
        if not state_machine.is_known(new_status):
            raise BusinessLogicException(f"Unknown order status '{new_status}'.", code="status_invalid")

        order = Order.objects.select_for_update().get(id=order_id)
        old_status = order.status

        order.status = new_status
        order.save(update_fields=["status", "updated_at"])
        OrderService._record_transition(order, old_status, actor, note)

        return order

    @staticmethod
    def _record_transition(order: Order, old_status: str, actor=None, note: str = ""):
        """
        Timeline row, invoice outbox and the post-commit signal.
        Must run inside the transaction that changed the status.
        """
        new_status = order.status
        created_by = actor if actor is not None and actor.is_authenticated else None

        OrderTimeline.objects.create(
            order=order,
            status=new_status,
            note=note,
            created_by=created_by,
        )

        if state_machine.should_dispatch_invoice(old_status, new_status):
            InvoiceDispatcher.enqueue(order)

        if old_status != new_status:
            order_id = order.id
            transaction.on_commit(lambda: order_status_changed.send(
                sender=Order, order_id=order_id, old_status=old_status, new_status=new_status,
            ))

        logger.info(
            f"Order {order.id}: {old_status} -> {new_status}",
            extra={"order_id": str(order.id), "user_id": getattr(created_by, "pk", None)},
        )
