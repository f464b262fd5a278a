from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import DatabaseError
from django.test import override_settings
from django.urls import reverse

from rest_framework.test import APITestCase
from rest_framework import status

from apps.catalog.models import Product, ProductDiscount
from apps.customers.models import CustomerProfile
from apps.orders.models import Order, OrderItem, OrderTimeline, OrderStatus, PaymentMethod
from apps.pricing.models import ShippingMethod, Coupon, CouponRedemption
from apps.pricing.services import TaxConfigService

User = get_user_model()

CUSTOMER = {"name": "Ana", "surname": "Diaz", "email": "ana@example.com", "phone": "3001234567"}
ADDRESS = {"street": "Calle 10 # 5-20", "city": "Medellin", "state": "Antioquia", "postal_code": "050001", "country": "CO"}


@override_settings(DEFAULT_TAX_RATE_PERCENT=19)
class CheckoutFlowTests(APITestCase):
    def setUp(self):
        cache.clear()
        TaxConfigService.reset()
        self.product = Product.objects.create(name="Vela Lavanda", price="119.00")
        self.shipping = ShippingMethod.objects.create(code="std", name="Standard", cost="10.00")
        self.coupon = Coupon.objects.create(code="SAVE10", type=Coupon.Type.PERCENTAGE, value="10.00")

    def tearDown(self):
        TaxConfigService.reset()

    def _add_to_cart(self, product=None, qty=1):
        res = self.client.post(
            reverse("cart-add"),
            {"product_id": str((product or self.product).id), "qty": qty},
            format="json",
        )
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        return res

    def _checkout(self, headers=None, **overrides):
        body = {
            "customer": CUSTOMER,
            "address": ADDRESS,
            "shipping_method_id": str(self.shipping.id),
        }
        body.update(overrides)
        return self.client.post(reverse("checkout"), body, format="json", **(headers or {}))

    def test_guest_checkout_with_coupon(self):
        self._add_to_cart()

        res = self._checkout(coupon_code="save10")
        self.assertEqual(res.status_code, status.HTTP_201_CREATED, res.data)

        order = Order.objects.get(id=res.data["order_id"])
        self.assertEqual(res.data["payment_url"], reverse("order-detail", kwargs={"pk": str(order.id)}))
        self.assertIsNone(order.user)
        self.assertEqual(order.status, OrderStatus.PENDING_PAYMENT)
        self.assertEqual(order.payment_method, PaymentMethod.CASH)
        self.assertEqual(order.items_total, Decimal("119.00"))
        self.assertEqual(order.subtotal, Decimal("100.00"))
        self.assertEqual(order.tax_amount, Decimal("19.00"))
        self.assertEqual(order.shipping_cost, Decimal("10.00"))
        self.assertEqual(order.coupon_discount, Decimal("12.90"))
        self.assertEqual(order.total_amount, Decimal("116.10"))
        self.assertEqual(order.coupon, self.coupon)

        item = OrderItem.objects.get(order=order)
        self.assertEqual(item.product_name_snapshot, "Vela Lavanda")
        self.assertEqual(item.unit_price_snapshot, Decimal("119.00"))
        self.assertEqual(item.quantity, 1)

        self.assertTrue(CouponRedemption.objects.filter(order=order, email="ana@example.com").exists())
        self.assertTrue(OrderTimeline.objects.filter(order=order, status="pending_payment").exists())
        self.assertFalse(CustomerProfile.objects.exists())

        cart = self.client.get(reverse("cart-list"))
        self.assertEqual(cart.data["count"], 0)

    def test_authenticated_checkout_upserts_profile_and_prefills_next_time(self):
        user = User.objects.create_user(username="ana", password="pw")
        self.client.force_authenticate(user)

        self._add_to_cart(qty=2)
        res = self._checkout()
        self.assertEqual(res.status_code, status.HTTP_201_CREATED, res.data)

        order = Order.objects.get(id=res.data["order_id"])
        self.assertEqual(order.user, user)
        self.assertEqual(order.total_amount, Decimal("248.00"))

        profile = CustomerProfile.objects.get(user=user)
        self.assertEqual(profile.email, "ana@example.com")
        self.assertEqual(profile.city, "Medellin")

        # second checkout sends no identity; the profile fills it in
        self._add_to_cart()
        res = self.client.post(
            reverse("checkout"),
            {"shipping_method_id": str(self.shipping.id)},
            format="json",
        )
        self.assertEqual(res.status_code, status.HTTP_201_CREATED, res.data)
        second = Order.objects.get(id=res.data["order_id"])
        self.assertEqual(second.customer_surname, "Diaz")
        self.assertEqual(second.shipping_postal_code, "050001")

    def test_validation_reports_every_missing_field_and_writes_nothing(self):
        res = self.client.post(reverse("checkout"), {"customer": {"name": "Ana"}}, format="json")

        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["code"], "checkout_invalid")
        fields = res.data["fields"]
        for key in ("customer.surname", "customer.email", "address.street", "address.city",
                    "address.postal_code", "address.country", "cart", "shipping_method"):
            self.assertIn(key, fields)
        self.assertNotIn("customer.name", fields)
        self.assertFalse(Order.objects.exists())

    def test_inactive_shipping_method_rejected(self):
        self._add_to_cart()
        self.shipping.is_active = False
        self.shipping.save()

        res = self._checkout()
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("shipping_method", res.data["fields"])
        self.assertFalse(Order.objects.exists())

    def test_invalid_coupon_rejected_before_any_write(self):
        self._add_to_cart()

        res = self._checkout(coupon_code="NOPE")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["fields"]["coupon"], "Coupon not valid.")
        self.assertFalse(Order.objects.exists())
        self.assertEqual(self.client.get(reverse("cart-list")).data["count"], 1)

    def test_coupon_per_user_limit_applies_to_guest_email(self):
        self._add_to_cart()
        self.assertEqual(self._checkout(coupon_code="SAVE10").status_code, status.HTTP_201_CREATED)

        self._add_to_cart()
        res = self._checkout(coupon_code="SAVE10")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("coupon", res.data["fields"])
        self.assertEqual(Order.objects.count(), 1)

    def test_failed_write_rolls_back_whole_unit(self):
        self._add_to_cart()

        with mock.patch.object(OrderItem.objects, "bulk_create", side_effect=DatabaseError("disk full")):
            res = self._checkout(coupon_code="SAVE10")

        self.assertEqual(res.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(res.data["code"], "server_error")
        self.assertFalse(Order.objects.exists())
        self.assertFalse(CouponRedemption.objects.exists())
        self.assertFalse(OrderTimeline.objects.exists())
        # cart survives a failed commit
        self.assertEqual(self.client.get(reverse("cart-list")).data["count"], 1)

    def test_lines_are_repriced_from_catalog_at_commit(self):
        self._add_to_cart()

        self.product.price = Decimal("200.00")
        self.product.save()
        ProductDiscount.objects.create(product=self.product, percentage="50.00")

        res = self._checkout()
        self.assertEqual(res.status_code, status.HTTP_201_CREATED, res.data)

        item = OrderItem.objects.get(order_id=res.data["order_id"])
        self.assertEqual(item.original_price_snapshot, Decimal("200.00"))
        self.assertEqual(item.unit_price_snapshot, Decimal("100.00"))
        self.assertEqual(item.discount_pct_snapshot, Decimal("50.00"))
        self.assertEqual(Order.objects.get(id=res.data["order_id"]).items_total, Decimal("100.00"))

    def test_unavailable_product_blocks_checkout(self):
        self._add_to_cart()
        self.product.is_active = False
        self.product.save()

        res = self._checkout()
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("cart", res.data["fields"])
        self.assertFalse(Order.objects.exists())

    def test_idempotency_key_replays_completed_checkout(self):
        self._add_to_cart()
        headers = {"HTTP_X_IDEMPOTENCY_KEY": "abc-123"}

        first = self._checkout(headers=headers)
        self.assertEqual(first.status_code, status.HTTP_201_CREATED, first.data)

        second = self._checkout(headers=headers)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(second.data["order_id"], first.data["order_id"])
        self.assertEqual(Order.objects.count(), 1)

    def test_idempotency_key_in_flight_is_conflict(self):
        user = User.objects.create_user(username="bo", password="pw")
        self.client.force_authenticate(user)
        self._add_to_cart()

        cache.add(f"checkout_idempotency_{user.pk}_dup-1", "processing", timeout=60)
        res = self._checkout(headers={"HTTP_X_IDEMPOTENCY_KEY": "dup-1"})

        self.assertEqual(res.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(Order.objects.exists())

    def test_failed_checkout_releases_idempotency_lock(self):
        self.client.force_authenticate(User.objects.create_user(username="cy", password="pw"))
        headers = {"HTTP_X_IDEMPOTENCY_KEY": "retry-me"}
        res = self._checkout(headers=headers)  # empty cart
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

        self._add_to_cart()
        res = self._checkout(headers=headers)
        self.assertEqual(res.status_code, status.HTTP_201_CREATED, res.data)

    def test_guests_without_session_do_not_share_idempotency_scope(self):
        # another sessionless guest's lock and completed checkout
        cache.set("checkout_idempotency_None_shared_done", "00000000-0000-0000-0000-000000000000")
        cache.add("checkout_idempotency_None_shared", "processing", timeout=60)

        res = self._checkout(headers={"HTTP_X_IDEMPOTENCY_KEY": "shared"})

        # fresh guest, empty cart: validated on its own, no replay and no conflict
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("cart", res.data["fields"])
