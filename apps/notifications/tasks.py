import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from .models import InvoiceDispatch, DispatchStatus
from .services import InvoiceDispatcher, InvoiceDispatchError

logger = logging.getLogger(__name__)

STALE_AFTER = timedelta(minutes=5)


@shared_task(bind=True, max_retries=None, default_retry_delay=30)
def send_invoice_task(self, dispatch_id: str):
    try:
        InvoiceDispatcher.dispatch(dispatch_id)

    except InvoiceDispatch.DoesNotExist:
        logger.error(f"Invoice dispatch {dispatch_id} not found.")

    except InvoiceDispatchError as exc:
        attempt = self.request.retries + 1
        if not exc.retryable or self.request.retries >= settings.INVOICE_MAX_RETRIES:
            InvoiceDispatcher.mark_failed(dispatch_id, str(exc))
            logger.error(
                f"Invoice dispatch {dispatch_id} failed after {attempt} attempt(s): {exc}",
                extra={"dispatch_id": dispatch_id},
            )
            return

        # 30s, 60s, 120s ...
        countdown = 30 * (2 ** self.request.retries)
        logger.warning(
            f"Invoice dispatch {dispatch_id} attempt {attempt} failed, retrying in {countdown}s: {exc}",
            extra={"dispatch_id": dispatch_id},
        )
        InvoiceDispatcher.schedule_retry(dispatch_id, countdown)
        raise self.retry(exc=exc, countdown=countdown)


@shared_task
def flush_pending_invoices():
    """
    Runs every few minutes (beat).
    Re-queues outbox rows whose task was lost, e.g. a worker crash:
    pending rows with no retry due, and claims that expired long ago.
    Rows with a scheduled retry are left alone until that retry is overdue.
    """
    cutoff = timezone.now() - STALE_AFTER
    lost_pending = (
        Q(status=DispatchStatus.PENDING, updated_at__lt=cutoff)
        & (Q(next_retry_at__isnull=True) | Q(next_retry_at__lt=cutoff))
    )
    expired_claim = Q(status=DispatchStatus.SENDING, locked_until__lt=cutoff)

    stale = InvoiceDispatch.objects.filter(lost_pending | expired_claim).values_list("id", flat=True)

    count = 0
    for dispatch_id in stale:
        send_invoice_task.delay(str(dispatch_id))
        count += 1

    if count:
        logger.info(f"Re-queued {count} pending invoice dispatches")
    return f"Re-queued {count} invoice dispatches"
