# apps/orders/tests.py
import json
from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

from asgiref.testing import ApplicationCommunicator
from channels.layers import get_channel_layer
from django.contrib.auth.models import AnonymousUser

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, SimpleTestCase
from django.urls import reverse

from rest_framework.test import APITestCase
from rest_framework import status

from apps.catalog.models import Product, ProductDiscount
from apps.notifications.models import InvoiceDispatch
from apps.orders.cart import CartStore, CartLine, SESSION_KEY
from apps.orders.consumers import OrderAdminConsumer
from apps.orders.realtime import ADMIN_GROUP
from apps.orders.exceptions import PaymentMethodGuardError, ProofUploadError
from apps.orders.models import Order, OrderTimeline, OrderStatus, PaymentMethod
from apps.orders.services import OrderService
from apps.orders.signals import order_status_changed
from apps.orders import state_machine
from apps.utils.exceptions import BusinessLogicException

User = get_user_model()


def _line(product_id="p1", price="10.00", qty=1):
    return CartLine(
        product_id=product_id,
        name=f"Product {product_id}",
        unit_price=Decimal(price),
        original_price=Decimal(price),
        qty=qty,
    )


def _order(**kwargs):
    defaults = {
        "customer_name": "Ana",
        "customer_surname": "Diaz",
        "customer_email": "ana@example.com",
        "shipping_street": "Calle 1",
        "shipping_city": "Bogota",
        "shipping_postal_code": "110111",
        "shipping_country": "CO",
        "items_total": Decimal("119.00"),
        "total_amount": Decimal("119.00"),
    }
    defaults.update(kwargs)
    return Order.objects.create(**defaults)


class CartStoreTests(SimpleTestCase):
    def setUp(self):
        self.session = {}
        self.cart = CartStore(self.session)

    def test_add_merges_by_product(self):
        self.cart.add(_line("p1"), 2)
        self.cart.add(_line("p1"), 3)
        self.cart.add(_line("p2", "5.00"), 1)

        self.assertEqual(len(self.cart), 2)
        self.assertEqual(self.cart.total(), 6)
        self.assertEqual(self.cart.items_total(), Decimal("55.00"))

    def test_quantity_reaching_zero_removes_line(self):
        self.cart.add(_line("p1"), 2)
        self.cart.add(_line("p1"), -2)
        self.assertTrue(self.cart.is_empty)

    def test_new_line_with_non_positive_qty_is_ignored(self):
        self.assertIsNone(self.cart.add(_line("p1"), 0))
        self.assertIsNone(self.cart.add(_line("p2"), -1))
        self.assertTrue(self.cart.is_empty)
        self.assertEqual(self.cart.total(), 0)

    def test_remove_and_clear(self):
        self.cart.add(_line("p1"), 1)
        self.cart.add(_line("p2"), 1)

        self.cart.remove("p1")
        self.assertEqual([line.product_id for line in self.cart], ["p2"])

        self.cart.remove("missing")
        self.assertEqual(len(self.cart), 1)

        self.cart.clear()
        self.assertTrue(self.cart.is_empty)
        self.assertEqual(self.session[SESSION_KEY], [])

    def test_state_survives_a_new_store_over_same_session(self):
        line = _line("p1", "45.00")
        line.discount_pct = Decimal("10.00")
        self.cart.add(line, 2)

        restored = CartStore(self.session)
        self.assertEqual(restored.total(), 2)
        self.assertEqual(restored.lines[0].unit_price, Decimal("45.00"))
        self.assertEqual(restored.lines[0].discount_pct, Decimal("10.00"))


class CartLineFromProductTests(TestCase):
    def test_uses_resolved_discount(self):
        product = Product.objects.create(name="Candle", price="50.00")
        ProductDiscount.objects.create(product=product, percentage="10.00")

        line = CartLine.from_product(product, qty=2)
        self.assertEqual(line.unit_price, Decimal("45.00"))
        self.assertEqual(line.original_price, Decimal("50.00"))
        self.assertEqual(line.discount_pct, Decimal("10.00"))
        self.assertEqual(line.line_total, Decimal("90.00"))


class StateMachineTests(SimpleTestCase):
    def test_invoice_only_on_edge_into_paid(self):
        self.assertTrue(state_machine.should_dispatch_invoice(OrderStatus.IN_REVIEW, OrderStatus.PAID))
        self.assertTrue(state_machine.should_dispatch_invoice(OrderStatus.PENDING_PAYMENT, OrderStatus.PAID))
        self.assertFalse(state_machine.should_dispatch_invoice(OrderStatus.PAID, OrderStatus.PAID))
        self.assertFalse(state_machine.should_dispatch_invoice(OrderStatus.PAID, OrderStatus.SHIPPED))

    def test_known_and_terminal(self):
        self.assertTrue(state_machine.is_known("shipped"))
        self.assertFalse(state_machine.is_known("lost"))
        self.assertTrue(state_machine.is_terminal(OrderStatus.CANCELLED))
        self.assertFalse(state_machine.is_terminal(OrderStatus.PAID))


class PaymentMethodGuardTests(TestCase):
    def test_cash_rejected_when_proof_present(self):
        order = _order(
            payment_method=PaymentMethod.TRANSFER,
            proof_url="https://cdn.example.com/proof.jpg",
            status=OrderStatus.IN_REVIEW,
        )

        with self.assertRaises(PaymentMethodGuardError):
            OrderService.switch_payment_method(order.id, PaymentMethod.CASH)

        order.refresh_from_db()
        self.assertEqual(order.payment_method, PaymentMethod.TRANSFER)
        self.assertEqual(order.proof_url, "https://cdn.example.com/proof.jpg")
        self.assertEqual(order.status, OrderStatus.IN_REVIEW)
        self.assertFalse(OrderTimeline.objects.filter(order=order).exists())

    def test_cash_without_proof_resets_to_pending(self):
        order = _order(payment_method=PaymentMethod.TRANSFER, status=OrderStatus.IN_REVIEW)

        OrderService.switch_payment_method(order.id, PaymentMethod.CASH)

        order.refresh_from_db()
        self.assertEqual(order.payment_method, PaymentMethod.CASH)
        self.assertIsNone(order.proof_url)
        self.assertEqual(order.status, OrderStatus.PENDING_PAYMENT)

    def test_transfer_changes_method_only(self):
        order = _order()
        OrderService.switch_payment_method(order.id, PaymentMethod.TRANSFER)

        order.refresh_from_db()
        self.assertEqual(order.payment_method, PaymentMethod.TRANSFER)
        self.assertEqual(order.status, OrderStatus.PENDING_PAYMENT)

    def test_unknown_method(self):
        order = _order()
        with self.assertRaises(BusinessLogicException):
            OrderService.switch_payment_method(order.id, "crypto")


class ProofUploadTests(TestCase):
    def _file(self):
        return SimpleUploadedFile("proof.JPG", b"fake-image-bytes", content_type="image/jpeg")

    @mock.patch("apps.orders.services.default_storage")
    def test_upload_moves_order_to_review_regardless_of_state(self, storage):
        storage.save.side_effect = lambda name, f: name
        storage.url.side_effect = lambda name: f"https://cdn.example.com/{name}"

        for start in (OrderStatus.PENDING_PAYMENT, OrderStatus.PAID):
            order = _order(status=start)
            OrderService.upload_proof(order.id, self._file())

            order.refresh_from_db()
            self.assertEqual(order.payment_method, PaymentMethod.TRANSFER)
            self.assertEqual(order.status, OrderStatus.IN_REVIEW)
            self.assertTrue(order.proof_url.startswith("https://cdn.example.com/payment_proofs/"))
            self.assertTrue(order.proof_url.endswith(".jpg"))

    @mock.patch("apps.orders.services.default_storage")
    def test_upload_failure_leaves_order_unchanged(self, storage):
        storage.save.side_effect = OSError("bucket unavailable")
        order = _order()

        with self.assertRaises(ProofUploadError):
            OrderService.upload_proof(order.id, self._file())

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PENDING_PAYMENT)
        self.assertEqual(order.payment_method, PaymentMethod.CASH)
        self.assertIsNone(order.proof_url)
        storage.save.assert_called_once()


@mock.patch("apps.notifications.tasks.send_invoice_task.delay")
class AdminTransitionTests(TestCase):
    def test_walk_to_shipped_dispatches_exactly_once(self, delay):
        order = _order()
        with self.captureOnCommitCallbacks(execute=True):
            for target in (OrderStatus.IN_REVIEW, OrderStatus.PAID, OrderStatus.SHIPPED):
                OrderService.admin_transition(order.id, target)

        self.assertEqual(InvoiceDispatch.objects.filter(order=order).count(), 1)
        delay.assert_called_once()
        self.assertCountEqual(
            OrderTimeline.objects.filter(order=order).values_list("status", flat=True),
            ["in_review", "paid", "shipped"],
        )

    def test_paid_to_paid_dispatches_nothing(self, delay):
        order = _order(status=OrderStatus.PAID)
        with self.captureOnCommitCallbacks(execute=True):
            OrderService.admin_transition(order.id, OrderStatus.PAID)

        self.assertFalse(InvoiceDispatch.objects.filter(order=order).exists())
        delay.assert_not_called()

    def test_pending_straight_to_paid_then_shipped(self, delay):
        order = _order()
        with self.captureOnCommitCallbacks(execute=True):
            OrderService.admin_transition(order.id, OrderStatus.PAID)
        self.assertEqual(InvoiceDispatch.objects.filter(order=order).count(), 1)

        with self.captureOnCommitCallbacks(execute=True):
            OrderService.admin_transition(order.id, OrderStatus.SHIPPED)
        self.assertEqual(InvoiceDispatch.objects.filter(order=order).count(), 1)

    def test_unknown_status_rejected(self, delay):
        order = _order()
        with self.assertRaises(BusinessLogicException):
            OrderService.admin_transition(order.id, "lost")

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PENDING_PAYMENT)

    def test_signal_sent_after_commit(self, delay):
        order = _order()
        received = []

        def handler(sender, order_id, old_status, new_status, **kwargs):
            received.append((order_id, old_status, new_status))

        order_status_changed.connect(handler)
        try:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                OrderService.admin_transition(order.id, OrderStatus.IN_REVIEW)
                self.assertEqual(received, [])
        finally:
            order_status_changed.disconnect(handler)

        self.assertTrue(callbacks)
        self.assertEqual(received, [(order.id, "pending_payment", "in_review")])


class OrderAPITests(APITestCase):
    def setUp(self):
        self.owner = User.objects.create_user(username="owner", password="pw")
        self.other = User.objects.create_user(username="other", password="pw")
        self.staff = User.objects.create_user(username="staff", password="pw", is_staff=True)

    def test_guest_order_readable_by_id(self):
        order = _order()
        res = self.client.get(reverse("order-detail", kwargs={"pk": order.id}))
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["total_amount"], "119.00")

    def test_account_order_hidden_from_others(self):
        order = _order(user=self.owner)

        res = self.client.get(reverse("order-detail", kwargs={"pk": order.id}))
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

        self.client.force_authenticate(self.other)
        res = self.client.get(reverse("order-detail", kwargs={"pk": order.id}))
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

        self.client.force_authenticate(self.owner)
        res = self.client.get(reverse("order-detail", kwargs={"pk": order.id}))
        self.assertEqual(res.status_code, status.HTTP_200_OK)

    def test_cash_switch_with_proof_is_conflict(self):
        order = _order(payment_method=PaymentMethod.TRANSFER, proof_url="https://x/p.jpg")
        res = self.client.post(
            reverse("order-payment-method", kwargs={"pk": order.id}),
            {"payment_method": "cash"},
            format="json",
        )
        self.assertEqual(res.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(res.data["code"], "payment_method_locked")

    @mock.patch("apps.orders.services.default_storage")
    def test_proof_upload_endpoint(self, storage):
        storage.save.side_effect = lambda name, f: name
        storage.url.side_effect = lambda name: f"/media/{name}"
        order = _order()

        res = self.client.post(
            reverse("order-proof", kwargs={"pk": order.id}),
            {"file": SimpleUploadedFile("p.png", b"png", content_type="image/png")},
            format="multipart",
        )
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["status"], "in_review")
        self.assertEqual(res.data["payment_method"], "transfer")

    def test_my_orders_requires_login(self):
        _order(user=self.owner)
        res = self.client.get(reverse("order-list"))
        self.assertIn(res.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

        self.client.force_authenticate(self.owner)
        res = self.client.get(reverse("order-list"))
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["count"], 1)

    @mock.patch("apps.notifications.tasks.send_invoice_task.delay")
    def test_admin_transition_endpoint(self, delay):
        order = _order()
        url = reverse("admin-order-transition", kwargs={"pk": order.id})

        self.client.force_authenticate(self.other)
        res = self.client.post(url, {"status": "paid"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.staff)
        with self.captureOnCommitCallbacks(execute=True):
            res = self.client.post(url, {"status": "paid", "note": "transfer verified"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["status"], "paid")
        delay.assert_called_once()

        res = self.client.post(url, {"status": "lost"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

    def test_admin_list_filters_by_status(self):
        _order()
        _order(status=OrderStatus.PAID)
        self.client.force_authenticate(self.staff)

        res = self.client.get(reverse("admin-order-list"), {"status": "paid"})
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["results"][0]["status"], "paid")

    def test_malformed_order_id_is_not_found(self):
        res = self.client.get("/api/v1/orders/orders/not-a-uuid/")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

        res = self.client.post("/api/v1/orders/orders/not-a-uuid/payment-method/", {"payment_method": "cash"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

        self.client.force_authenticate(self.staff)
        res = self.client.get("/api/v1/orders/admin/orders/nope/")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

        res = self.client.post("/api/v1/orders/admin/orders/nope/transition/", {"status": "paid"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

    def test_well_formed_unknown_order_id_is_not_found(self):
        missing = "00000000-0000-0000-0000-000000000000"
        res = self.client.get(reverse("order-detail", kwargs={"pk": missing}))
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

        self.client.force_authenticate(self.staff)
        res = self.client.post(reverse("admin-order-transition", kwargs={"pk": missing}), {"status": "paid"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)


class OrderAdminConsumerTests(SimpleTestCase):
    databases = {"default"}

    def _communicator(self, user):
        scope = {"type": "websocket", "path": "/ws/orders/", "user": user}
        return ApplicationCommunicator(OrderAdminConsumer.as_asgi(), scope)

    async def test_anonymous_connection_is_closed(self):
        communicator = self._communicator(AnonymousUser())
        await communicator.send_input({"type": "websocket.connect"})
        message = await communicator.receive_output(timeout=1)
        self.assertEqual(message["type"], "websocket.close")

    async def test_staff_receives_status_broadcast(self):
        staff = SimpleNamespace(is_authenticated=True, is_staff=True)
        communicator = self._communicator(staff)
        await communicator.send_input({"type": "websocket.connect"})
        message = await communicator.receive_output(timeout=1)
        self.assertEqual(message["type"], "websocket.accept")

        await get_channel_layer().group_send(ADMIN_GROUP, {
            "type": "order.message",
            "payload": {"type": "order.status_changed", "order_id": "abc", "new_status": "paid"},
        })
        message = await communicator.receive_output(timeout=1)
        self.assertEqual(message["type"], "websocket.send")
        self.assertEqual(json.loads(message["text"])["new_status"], "paid")

        await communicator.send_input({"type": "websocket.disconnect", "code": 1000})
        await communicator.wait(timeout=1)
