# apps/catalog/tests.py
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from rest_framework.test import APITestCase, APIClient
from rest_framework import status

from .models import Product, ProductDiscount
from .services import DiscountResolver


class ProductModelTests(TestCase):
    def test_slug_auto_generated_and_unique(self):
        p1 = Product.objects.create(name="Vela Lavanda", price="119.00")
        p2 = Product.objects.create(name="Vela Lavanda", price="99.00")

        self.assertNotEqual(p1.slug, p2.slug)
        self.assertTrue(p1.slug.startswith("vela-lavanda"))
        self.assertTrue(p2.slug.startswith("vela-lavanda"))


class DiscountResolverTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.product = Product.objects.create(name="Candle", price="100.00")

    def _discount(self, pct, **kwargs):
        return ProductDiscount.objects.create(product=self.product, percentage=pct, **kwargs)

    def test_no_discounts_returns_none(self):
        self.assertIsNone(DiscountResolver.active_discount_for(self.product.id, now=self.now))

    def test_highest_percentage_wins(self):
        self._discount("10.00")
        self._discount("20.00", starts_at=self.now - timedelta(days=1), ends_at=self.now + timedelta(days=1))

        pct = DiscountResolver.active_discount_for(self.product.id, now=self.now)
        self.assertEqual(pct, Decimal("20.00"))

    def test_inactive_flag_is_ignored(self):
        self._discount("10.00")
        self._discount("50.00", is_active=False)

        self.assertEqual(DiscountResolver.active_discount_for(self.product.id, now=self.now), Decimal("10.00"))

    def test_window_membership(self):
        self._discount("30.00", starts_at=self.now + timedelta(hours=1))   # not started
        self._discount("40.00", ends_at=self.now - timedelta(seconds=1))   # expired
        self._discount("15.00", starts_at=self.now, ends_at=self.now)      # inclusive bounds

        self.assertEqual(DiscountResolver.active_discount_for(self.product.id, now=self.now), Decimal("15.00"))

    def test_window_is_evaluated_per_call(self):
        self._discount("25.00", ends_at=self.now + timedelta(minutes=5))

        self.assertEqual(DiscountResolver.active_discount_for(self.product.id, now=self.now), Decimal("25.00"))
        later = self.now + timedelta(minutes=6)
        self.assertIsNone(DiscountResolver.active_discount_for(self.product.id, now=later))

    def test_other_products_do_not_leak(self):
        other = Product.objects.create(name="Other", price="10.00")
        ProductDiscount.objects.create(product=other, percentage="90.00")

        self.assertIsNone(DiscountResolver.active_discount_for(self.product.id, now=self.now))

    def test_price_for_applies_percentage(self):
        self._discount("20.00")
        unit_price, pct = DiscountResolver.price_for(self.product, now=self.now)

        self.assertEqual(unit_price, Decimal("80.00"))
        self.assertEqual(pct, Decimal("20.00"))

    def test_price_for_without_discount(self):
        unit_price, pct = DiscountResolver.price_for(self.product, now=self.now)
        self.assertEqual(unit_price, Decimal("100.00"))
        self.assertIsNone(pct)

    def test_is_live_matches_resolver_window(self):
        d = self._discount("10.00", starts_at=self.now - timedelta(days=1), ends_at=self.now + timedelta(days=1))
        self.assertTrue(d.is_live(self.now))
        self.assertFalse(d.is_live(self.now + timedelta(days=2)))


class ProductAPITests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.product = Product.objects.create(name="Diffuser", price="50.00")
        Product.objects.create(name="Hidden", price="10.00", is_active=False)
        ProductDiscount.objects.create(product=self.product, percentage="10.00")

    def test_list_shows_only_active_with_resolved_price(self):
        resp = self.client.get(reverse("product-list"))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)

        results = resp.data["results"] if isinstance(resp.data, dict) else resp.data
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0]["final_price"], "45.00")
        self.assertEqual(results[0]["discount_pct"], "10.00")
