# apps/notifications/services.py
import logging
from datetime import timedelta

import requests
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .models import InvoiceDispatch, DispatchStatus

logger = logging.getLogger(__name__)

# Claim length on top of the HTTP timeout
LEASE_MARGIN = timedelta(seconds=60)


class InvoiceDispatchError(Exception):
    """
    Delivery of one invoice attempt failed.
    `retryable=False` means another attempt cannot succeed (e.g. no webhook configured).
    """

    def __init__(self, message, retryable=True):
        self.retryable = retryable
        super().__init__(message)


class InvoiceDispatcher:

    @staticmethod
    def enqueue(order) -> InvoiceDispatch:
        """
        Write the outbox row inside the caller's transaction and
        schedule delivery once that transaction commits.
        """
        from .tasks import send_invoice_task

        dispatch = InvoiceDispatch.objects.create(order=order)
        dispatch_id = str(dispatch.id)
        transaction.on_commit(lambda: send_invoice_task.delay(dispatch_id))

        logger.info("Invoice dispatch queued", extra={"order_id": str(order.id), "dispatch_id": dispatch_id})
        return dispatch

    @staticmethod
    def dispatch(dispatch_id) -> bool:
        """
        One delivery attempt. Returns False when the row was already sent
        or another worker holds a live claim on it.
        Raises InvoiceDispatchError on failure; the caller decides about retries.
        """
        now = timezone.now()
        with transaction.atomic():
            dispatch = InvoiceDispatch.objects.select_for_update().get(id=dispatch_id)
            if dispatch.status == DispatchStatus.SENT:
                return False
            if dispatch.is_claimed(now):
                logger.info(
                    "Invoice dispatch %s already in flight, skipping.",
                    dispatch_id,
                    extra={"dispatch_id": str(dispatch_id)},
                )
                return False

            dispatch.status = DispatchStatus.SENDING
            dispatch.locked_until = now + timedelta(seconds=settings.INVOICE_WEBHOOK_TIMEOUT) + LEASE_MARGIN
            dispatch.next_retry_at = None
            dispatch.attempts += 1
            dispatch.save(update_fields=["status", "locked_until", "next_retry_at", "attempts", "updated_at"])

        url = settings.INVOICE_WEBHOOK_URL
        if not url:
            InvoiceDispatcher._release(dispatch, "INVOICE_WEBHOOK_URL is not configured.")
            raise InvoiceDispatchError("INVOICE_WEBHOOK_URL is not configured.", retryable=False)

        payload = {"order_id": str(dispatch.order_id), "attachment": None}
        try:
            response = requests.post(url, json=payload, timeout=settings.INVOICE_WEBHOOK_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as exc:
            InvoiceDispatcher._release(dispatch, str(exc))
            raise InvoiceDispatchError(str(exc)) from exc

        dispatch.status = DispatchStatus.SENT
        dispatch.sent_at = timezone.now()
        dispatch.locked_until = None
        dispatch.last_error = ""
        dispatch.save(update_fields=["status", "sent_at", "locked_until", "last_error", "updated_at"])

        logger.info(
            "Invoice sent for order %s",
            dispatch.order_id,
            extra={"order_id": str(dispatch.order_id), "dispatch_id": str(dispatch.id)},
        )
        return True

    @staticmethod
    def schedule_retry(dispatch_id, countdown: int):
        """The periodic flush leaves the row alone until this retry is overdue."""
        InvoiceDispatch.objects.filter(id=dispatch_id, status=DispatchStatus.PENDING).update(
            next_retry_at=timezone.now() + timedelta(seconds=countdown),
            updated_at=timezone.now(),
        )

    @staticmethod
    def mark_failed(dispatch_id, error: str = ""):
        InvoiceDispatch.objects.filter(id=dispatch_id).exclude(status=DispatchStatus.SENT).update(
            status=DispatchStatus.FAILED,
            last_error=error,
            locked_until=None,
            next_retry_at=None,
            updated_at=timezone.now(),
        )

    @staticmethod
    def _release(dispatch: InvoiceDispatch, error: str):
        dispatch.status = DispatchStatus.PENDING
        dispatch.locked_until = None
        dispatch.last_error = error
        dispatch.save(update_fields=["status", "locked_until", "last_error", "updated_at"])
