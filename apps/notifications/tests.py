# apps/notifications/tests.py
from datetime import timedelta
from unittest import mock

import requests
from django.test import TestCase, override_settings
from django.utils import timezone

from apps.orders.models import Order
from .models import InvoiceDispatch, DispatchStatus
from .services import InvoiceDispatcher, InvoiceDispatchError
from .tasks import send_invoice_task, flush_pending_invoices

WEBHOOK = "https://hooks.example.com/invoice"


def _order():
    return Order.objects.create(
        customer_name="Ana",
        customer_surname="Diaz",
        customer_email="ana@example.com",
        shipping_street="Calle 1",
        shipping_city="Bogota",
        shipping_postal_code="110111",
        shipping_country="CO",
        status="paid",
    )


@override_settings(INVOICE_WEBHOOK_URL=WEBHOOK, INVOICE_WEBHOOK_TIMEOUT=3, INVOICE_MAX_RETRIES=2)
class InvoiceDispatcherTests(TestCase):
    def setUp(self):
        self.order = _order()

    @mock.patch("apps.notifications.tasks.send_invoice_task.delay")
    def test_enqueue_schedules_on_commit(self, delay):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            dispatch = InvoiceDispatcher.enqueue(self.order)
            delay.assert_not_called()

        self.assertEqual(dispatch.status, DispatchStatus.PENDING)
        self.assertEqual(len(callbacks), 1)
        callbacks[0]()
        delay.assert_called_once_with(str(dispatch.id))

    @mock.patch("apps.notifications.services.requests.post")
    def test_dispatch_posts_order_id(self, post):
        post.return_value.raise_for_status.return_value = None
        dispatch = InvoiceDispatch.objects.create(order=self.order)

        self.assertTrue(InvoiceDispatcher.dispatch(dispatch.id))

        post.assert_called_once_with(
            WEBHOOK,
            json={"order_id": str(self.order.id), "attachment": None},
            timeout=3,
        )
        dispatch.refresh_from_db()
        self.assertEqual(dispatch.status, DispatchStatus.SENT)
        self.assertEqual(dispatch.attempts, 1)
        self.assertIsNotNone(dispatch.sent_at)

    @mock.patch("apps.notifications.services.requests.post")
    def test_already_sent_is_not_sent_again(self, post):
        dispatch = InvoiceDispatch.objects.create(order=self.order, status=DispatchStatus.SENT)

        self.assertFalse(InvoiceDispatcher.dispatch(dispatch.id))
        post.assert_not_called()

    @mock.patch("apps.notifications.services.requests.post")
    def test_http_failure_raises_and_records_error(self, post):
        post.side_effect = requests.ConnectionError("connection refused")
        dispatch = InvoiceDispatch.objects.create(order=self.order)

        with self.assertRaises(InvoiceDispatchError) as ctx:
            InvoiceDispatcher.dispatch(dispatch.id)
        self.assertTrue(ctx.exception.retryable)

        dispatch.refresh_from_db()
        self.assertEqual(dispatch.status, DispatchStatus.PENDING)
        self.assertIn("connection refused", dispatch.last_error)
        self.assertIsNone(dispatch.locked_until)

    @override_settings(INVOICE_WEBHOOK_URL="")
    @mock.patch("apps.notifications.services.requests.post")
    def test_missing_webhook_is_not_retryable(self, post):
        dispatch = InvoiceDispatch.objects.create(order=self.order)

        with self.assertRaises(InvoiceDispatchError) as ctx:
            InvoiceDispatcher.dispatch(dispatch.id)
        self.assertFalse(ctx.exception.retryable)
        post.assert_not_called()

    @mock.patch("apps.notifications.services.requests.post")
    def test_second_worker_skips_row_while_post_in_flight(self, post):
        dispatch = InvoiceDispatch.objects.create(order=self.order)
        concurrent = []

        def deliver(*args, **kwargs):
            # a re-queued copy of the task picks the row up mid-POST
            concurrent.append(InvoiceDispatcher.dispatch(dispatch.id))
            ok = mock.Mock()
            ok.raise_for_status.return_value = None
            return ok

        post.side_effect = deliver

        self.assertTrue(InvoiceDispatcher.dispatch(dispatch.id))

        self.assertEqual(concurrent, [False])
        self.assertEqual(post.call_count, 1)
        dispatch.refresh_from_db()
        self.assertEqual(dispatch.status, DispatchStatus.SENT)
        self.assertEqual(dispatch.attempts, 1)
        self.assertIsNone(dispatch.locked_until)

    @mock.patch("apps.notifications.services.requests.post")
    def test_expired_claim_is_taken_over(self, post):
        post.return_value.raise_for_status.return_value = None
        dispatch = InvoiceDispatch.objects.create(
            order=self.order,
            status=DispatchStatus.SENDING,
            attempts=1,
            locked_until=timezone.now() - timedelta(minutes=1),
        )

        self.assertTrue(InvoiceDispatcher.dispatch(dispatch.id))

        post.assert_called_once()
        dispatch.refresh_from_db()
        self.assertEqual(dispatch.status, DispatchStatus.SENT)
        self.assertEqual(dispatch.attempts, 2)

    @mock.patch("apps.notifications.services.requests.post")
    def test_live_claim_is_not_posted_again(self, post):
        dispatch = InvoiceDispatch.objects.create(
            order=self.order,
            status=DispatchStatus.SENDING,
            attempts=1,
            locked_until=timezone.now() + timedelta(minutes=1),
        )

        self.assertFalse(InvoiceDispatcher.dispatch(dispatch.id))
        post.assert_not_called()


@override_settings(INVOICE_WEBHOOK_URL=WEBHOOK, INVOICE_MAX_RETRIES=2)
class SendInvoiceTaskTests(TestCase):
    def setUp(self):
        self.order = _order()

    @mock.patch("apps.notifications.services.requests.post")
    def test_retries_then_marks_failed_and_order_stays_paid(self, post):
        post.side_effect = requests.Timeout("timed out")
        dispatch = InvoiceDispatch.objects.create(order=self.order)

        send_invoice_task.apply(args=[str(dispatch.id)])

        dispatch.refresh_from_db()
        self.assertEqual(dispatch.status, DispatchStatus.FAILED)
        self.assertEqual(dispatch.attempts, 3)  # first try + 2 retries
        self.assertEqual(post.call_count, 3)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "paid")

    @mock.patch("apps.notifications.services.requests.post")
    def test_recovers_on_retry(self, post):
        ok = mock.Mock()
        ok.raise_for_status.return_value = None
        post.side_effect = [requests.ConnectionError("blip"), ok]
        dispatch = InvoiceDispatch.objects.create(order=self.order)

        send_invoice_task.apply(args=[str(dispatch.id)])

        dispatch.refresh_from_db()
        self.assertEqual(dispatch.status, DispatchStatus.SENT)
        self.assertEqual(dispatch.attempts, 2)

    @override_settings(INVOICE_WEBHOOK_URL="")
    def test_missing_webhook_marks_failed_without_retry(self):
        dispatch = InvoiceDispatch.objects.create(order=self.order)

        send_invoice_task.apply(args=[str(dispatch.id)])

        dispatch.refresh_from_db()
        self.assertEqual(dispatch.status, DispatchStatus.FAILED)
        self.assertEqual(dispatch.attempts, 1)

    def test_unknown_dispatch_is_logged(self):
        with self.assertLogs("apps.notifications.tasks", level="ERROR"):
            send_invoice_task.apply(args=["00000000-0000-0000-0000-000000000000"])


class FlushPendingInvoicesTests(TestCase):
    @mock.patch("apps.notifications.tasks.send_invoice_task.delay")
    def test_requeues_only_stale_pending_rows(self, delay):
        order = _order()
        stale = InvoiceDispatch.objects.create(order=order)
        InvoiceDispatch.objects.create(order=order)  # fresh
        sent = InvoiceDispatch.objects.create(order=order, status=DispatchStatus.SENT)

        old = timezone.now() - timedelta(minutes=30)
        InvoiceDispatch.objects.filter(id__in=[stale.id, sent.id]).update(updated_at=old)

        result = flush_pending_invoices()

        delay.assert_called_once_with(str(stale.id))
        self.assertEqual(result, "Re-queued 1 invoice dispatches")

    @mock.patch("apps.notifications.tasks.send_invoice_task.delay")
    def test_row_waiting_on_long_retry_is_not_requeued(self, delay):
        order = _order()
        waiting = InvoiceDispatch.objects.create(order=order, attempts=5)
        InvoiceDispatcher.schedule_retry(waiting.id, countdown=480)

        # six minutes later: past STALE_AFTER, but the 480s retry is still due
        InvoiceDispatch.objects.filter(id=waiting.id).update(
            updated_at=timezone.now() - timedelta(minutes=6),
            next_retry_at=timezone.now() + timedelta(minutes=2),
        )

        self.assertEqual(flush_pending_invoices(), "Re-queued 0 invoice dispatches")
        delay.assert_not_called()

    @mock.patch("apps.notifications.tasks.send_invoice_task.delay")
    def test_lost_retry_is_requeued_once_overdue(self, delay):
        order = _order()
        lost = InvoiceDispatch.objects.create(order=order, attempts=2)
        InvoiceDispatch.objects.filter(id=lost.id).update(
            updated_at=timezone.now() - timedelta(minutes=30),
            next_retry_at=timezone.now() - timedelta(minutes=20),
        )

        flush_pending_invoices()

        delay.assert_called_once_with(str(lost.id))

    @mock.patch("apps.notifications.tasks.send_invoice_task.delay")
    def test_only_long_expired_claims_are_requeued(self, delay):
        order = _order()
        in_flight = InvoiceDispatch.objects.create(
            order=order,
            status=DispatchStatus.SENDING,
            locked_until=timezone.now() + timedelta(seconds=30),
        )
        abandoned = InvoiceDispatch.objects.create(
            order=order,
            status=DispatchStatus.SENDING,
            locked_until=timezone.now() - timedelta(minutes=30),
        )
        InvoiceDispatch.objects.filter(id__in=[in_flight.id, abandoned.id]).update(
            updated_at=timezone.now() - timedelta(minutes=30),
        )

        flush_pending_invoices()

        delay.assert_called_once_with(str(abandoned.id))

    def test_schedule_retry_records_due_time(self):
        dispatch = InvoiceDispatch.objects.create(order=_order())
        before = timezone.now()

        InvoiceDispatcher.schedule_retry(dispatch.id, countdown=120)

        dispatch.refresh_from_db()
        self.assertGreaterEqual(dispatch.next_retry_at, before + timedelta(seconds=120))
