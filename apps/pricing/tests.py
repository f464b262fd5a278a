# apps/pricing/tests.py
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.test import TestCase, SimpleTestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from rest_framework.test import APITestCase
from rest_framework import status

from apps.catalog.models import Product
from apps.orders.models import Order
from . import engine
from .exceptions import CouponError
from .models import TaxConfig, PaymentConfig, ShippingMethod, Coupon, CouponRedemption
from .services import TaxConfigService, PaymentConfigService, CouponService, ShippingService

User = get_user_model()


class PricingEngineTests(SimpleTestCase):
    def test_split_tax_reference_case(self):
        subtotal, tax = engine.split_tax(Decimal("119.00"), Decimal("0.19"))
        self.assertEqual(subtotal, Decimal("100.00"))
        self.assertEqual(tax, Decimal("19.00"))

    def test_split_tax_parts_always_sum_to_total(self):
        rate = Decimal("0.19")
        for cents in range(0, 50001, 37):
            total = Decimal(cents) / Decimal("100")
            subtotal, tax = engine.split_tax(total, rate)
            self.assertEqual(subtotal + tax, total)
            self.assertGreaterEqual(tax, Decimal("0.00"))

    def test_split_tax_rejects_non_positive_rate(self):
        with self.assertRaises(ValueError):
            engine.split_tax(Decimal("10.00"), Decimal("0"))

    def test_percentage_coupon_uses_items_plus_shipping(self):
        coupon = SimpleNamespace(type=engine.PERCENTAGE, value=Decimal("10"))
        quote = engine.quote(Decimal("119.00"), Decimal("0.19"), Decimal("10.00"), coupon)

        self.assertEqual(quote.discount_base, Decimal("129.00"))
        self.assertEqual(quote.coupon_discount, Decimal("12.90"))
        self.assertEqual(quote.total, Decimal("116.10"))
        self.assertEqual(quote.subtotal, Decimal("100.00"))
        self.assertEqual(quote.tax, Decimal("19.00"))

    def test_fixed_coupon(self):
        self.assertEqual(
            engine.coupon_discount(engine.FIXED, Decimal("15"), Decimal("500.00")),
            Decimal("15.00"),
        )

    def test_unknown_coupon_type(self):
        with self.assertRaises(ValueError):
            engine.coupon_discount("bogus", Decimal("1"), Decimal("1"))

    def test_no_coupon_means_no_discount(self):
        self.assertEqual(engine.coupon_discount(None, Decimal("0"), Decimal("10")), engine.ZERO)

    def test_total_is_clamped_at_zero(self):
        self.assertEqual(engine.order_total(Decimal("5.00"), Decimal("1.00"), Decimal("50.00")), engine.ZERO)

    def test_total_monotonicity(self):
        items = Decimal("80.00")
        previous = None
        for shipping in ("0", "1.50", "10", "99.99"):
            total = engine.order_total(items, Decimal(shipping), Decimal("5.00"))
            if previous is not None:
                self.assertGreaterEqual(total, previous)
            previous = total

        previous = None
        for discount in ("0", "1", "40", "200"):
            total = engine.order_total(items, Decimal("10.00"), Decimal(discount))
            if previous is not None:
                self.assertLessEqual(total, previous)
            previous = total

    def test_items_total(self):
        lines = [
            SimpleNamespace(unit_price="45.00", qty=2),
            SimpleNamespace(unit_price=Decimal("9.99"), qty=3),
        ]
        self.assertEqual(engine.items_total(lines), Decimal("119.97"))


@override_settings(DEFAULT_TAX_RATE_PERCENT=19)
class TaxConfigServiceTests(TestCase):
    def setUp(self):
        TaxConfigService.reset()

    def tearDown(self):
        TaxConfigService.reset()

    def test_default_when_no_row(self):
        self.assertEqual(TaxConfigService.current_rate(), Decimal("0.19"))

    @override_settings(DEFAULT_TAX_RATE_PERCENT=Decimal("19.5"))
    def test_fractional_default_rate(self):
        self.assertEqual(TaxConfigService.current_rate(), Decimal("0.195"))

    def test_loads_configured_row(self):
        TaxConfig.objects.create(percentage=Decimal("16.00"))
        self.assertEqual(TaxConfigService.current_rate(), Decimal("0.16"))

    def test_non_positive_row_falls_back_to_default(self):
        # bypass validators, as a bad row written straight to the table would
        TaxConfig.objects.bulk_create([TaxConfig(percentage=Decimal("0.00"))])
        TaxConfigService.reset()
        self.assertEqual(TaxConfigService.current_rate(), Decimal("0.19"))

    def test_value_is_cached_until_reset(self):
        self.assertEqual(TaxConfigService.current_rate(), Decimal("0.19"))
        TaxConfig.objects.bulk_create([TaxConfig(percentage=Decimal("10.00"))])
        self.assertEqual(TaxConfigService.current_rate(), Decimal("0.19"))

        TaxConfigService.reset()
        self.assertEqual(TaxConfigService.current_rate(), Decimal("0.10"))

    def test_saving_row_resets_cache(self):
        self.assertEqual(TaxConfigService.current_rate(), Decimal("0.19"))
        TaxConfig.objects.create(percentage=Decimal("21.00"))
        self.assertEqual(TaxConfigService.current_rate(), Decimal("0.21"))


class CouponServiceTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.user = User.objects.create_user(username="ana", email="ana@example.com", password="pw")

    def _coupon(self, **kwargs):
        defaults = {"code": "save10", "type": Coupon.Type.PERCENTAGE, "value": Decimal("10.00")}
        defaults.update(kwargs)
        return Coupon.objects.create(**defaults)

    def _redeem(self, coupon, user=None, email=""):
        order = Order.objects.create(customer_email=email or "x@example.com")
        return CouponService.redeem(coupon, order, user=user, email=email)

    def test_code_is_normalized(self):
        coupon = self._coupon(code="  save10 ")
        self.assertEqual(coupon.code, "SAVE10")
        self.assertEqual(CouponService.validate(" Save10", user=self.user).pk, coupon.pk)

    def test_missing_and_unknown(self):
        with self.assertRaises(CouponError) as ctx:
            CouponService.validate("  ", user=self.user)
        self.assertEqual(ctx.exception.code, "coupon_missing")

        with self.assertRaises(CouponError) as ctx:
            CouponService.validate("NOPE", user=self.user)
        self.assertEqual(ctx.exception.code, "coupon_not_found")

    def test_inactive(self):
        self._coupon(is_active=False)
        with self.assertRaises(CouponError) as ctx:
            CouponService.validate("SAVE10", user=self.user)
        self.assertEqual(ctx.exception.code, "coupon_inactive")

    def test_window(self):
        self._coupon(code="SOON", valid_from=self.now + timedelta(days=1))
        self._coupon(code="OLD", valid_to=self.now - timedelta(days=1))

        with self.assertRaises(CouponError) as ctx:
            CouponService.validate("SOON", user=self.user, now=self.now)
        self.assertEqual(ctx.exception.code, "coupon_not_started")

        with self.assertRaises(CouponError) as ctx:
            CouponService.validate("OLD", user=self.user, now=self.now)
        self.assertEqual(ctx.exception.code, "coupon_expired")

    def test_global_cap(self):
        coupon = self._coupon(max_uses=1, max_uses_per_user=0)
        self._redeem(coupon, email="first@example.com")

        with self.assertRaises(CouponError) as ctx:
            CouponService.validate("SAVE10", email="second@example.com")
        self.assertEqual(ctx.exception.code, "coupon_exhausted")

    def test_per_user_cap_for_authenticated_buyer(self):
        coupon = self._coupon(max_uses_per_user=1)
        self._redeem(coupon, user=self.user, email="ana@example.com")

        with self.assertRaises(CouponError) as ctx:
            CouponService.validate("SAVE10", user=self.user)
        self.assertEqual(ctx.exception.code, "coupon_user_limit")

        other = User.objects.create_user(username="bo", password="pw")
        self.assertEqual(CouponService.validate("SAVE10", user=other).pk, coupon.pk)

    def test_per_user_cap_for_guest_matches_email_case_insensitively(self):
        coupon = self._coupon(max_uses_per_user=1)
        self._redeem(coupon, email="guest@example.com")

        with self.assertRaises(CouponError) as ctx:
            CouponService.validate("SAVE10", email="GUEST@example.com")
        self.assertEqual(ctx.exception.code, "coupon_user_limit")

    def test_guest_without_email_needs_identity(self):
        self._coupon(max_uses_per_user=1)
        with self.assertRaises(CouponError) as ctx:
            CouponService.validate("SAVE10")
        self.assertEqual(ctx.exception.code, "coupon_identity_required")

    def test_unlimited_coupon_needs_no_identity(self):
        self._coupon(max_uses_per_user=0)
        self.assertIsNotNone(CouponService.validate("SAVE10"))

    def test_preview_does_not_record_usage(self):
        self._coupon()
        coupon, discount = CouponService.preview(
            "SAVE10", Decimal("119.00"), Decimal("10.00"), user=self.user
        )
        self.assertEqual(discount, Decimal("12.90"))
        self.assertFalse(CouponRedemption.objects.filter(coupon=coupon).exists())


class ShippingServiceTests(TestCase):
    def test_get_active(self):
        method = ShippingMethod.objects.create(code="std", name="Standard", cost="10.00")
        hidden = ShippingMethod.objects.create(code="old", name="Old", cost="5.00", is_active=False)

        self.assertEqual(ShippingService.get_active(method.id), method)
        self.assertIsNone(ShippingService.get_active(hidden.id))
        self.assertIsNone(ShippingService.get_active("not-a-uuid"))
        self.assertIsNone(ShippingService.get_active(None))


@override_settings(DEFAULT_TAX_RATE_PERCENT=19)
class PricingAPITests(APITestCase):
    def setUp(self):
        TaxConfigService.reset()
        self.shipping = ShippingMethod.objects.create(code="std", name="Standard", cost="10.00")
        ShippingMethod.objects.create(code="old", name="Old", cost="1.00", is_active=False)
        self.product = Product.objects.create(name="Candle", price="119.00")
        Coupon.objects.create(code="SAVE10", type=Coupon.Type.PERCENTAGE, value="10.00", max_uses_per_user=0)

    def tearDown(self):
        TaxConfigService.reset()

    def test_tax_rate(self):
        res = self.client.get(reverse("tax-rate"))
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["percentage"], "19.00")

    def test_only_active_shipping_methods_listed(self):
        res = self.client.get(reverse("shipping-method-list"))
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual([m["code"] for m in res.data], ["std"])

    def test_coupon_preview_over_session_cart(self):
        self.client.post(reverse("cart-add"), {"product_id": str(self.product.id), "qty": 1}, format="json")

        res = self.client.post(
            reverse("coupon-preview"),
            {"code": "save10", "shipping_method_id": str(self.shipping.id)},
            format="json",
        )
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["coupon"]["code"], "SAVE10")
        self.assertEqual(res.data["quote"]["coupon_discount"], "12.90")
        self.assertEqual(res.data["quote"]["total"], "116.10")

    def test_coupon_preview_unknown_code(self):
        res = self.client.post(reverse("coupon-preview"), {"code": "NOPE"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["code"], "coupon_not_found")


class PaymentConfigTests(APITestCase):
    def test_missing_config_is_404(self):
        self.assertIsNone(PaymentConfigService.get())

        res = self.client.get(reverse("payment-config"))
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(res.data["code"], "payment_config_missing")

    def test_transfer_details_with_qr(self):
        PaymentConfig.objects.create(
            bank="Banco Uno",
            account="0011-2233",
            holder="Tienda SAS",
            qr_image="payment_qr/qr.png",
        )

        res = self.client.get(reverse("payment-config"))
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["bank"], "Banco Uno")
        self.assertEqual(res.data["account"], "0011-2233")
        self.assertEqual(res.data["holder"], "Tienda SAS")
        self.assertTrue(res.data["qr_url"].startswith("http://testserver/"))
        self.assertTrue(res.data["qr_url"].endswith("payment_qr/qr.png"))

    def test_qr_is_optional(self):
        PaymentConfig.objects.create(bank="Banco Uno", account="1", holder="Tienda")

        res = self.client.get(reverse("payment-config"))
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertIsNone(res.data["qr_url"])
