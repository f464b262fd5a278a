# apps/utils/tests.py
import json
import logging
from decimal import Decimal

from django.test import SimpleTestCase
from rest_framework import status

from .exceptions import BusinessLogicException, custom_exception_handler
from .logging import JSONFormatter
from .utils import to_money


class MoneyHelperTests(SimpleTestCase):
    def test_to_money_quantizes_half_up(self):
        self.assertEqual(to_money("12.345"), Decimal("12.35"))
        self.assertEqual(to_money(10), Decimal("10.00"))
        self.assertEqual(to_money(0.1), Decimal("0.10"))
        self.assertEqual(to_money(None), Decimal("0.00"))



class ExceptionHandlerTests(SimpleTestCase):
    def test_business_exception_maps_to_400(self):
        resp = custom_exception_handler(BusinessLogicException("Cart is empty.", code="cart_empty"), {})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data, {"error": "Cart is empty.", "code": "cart_empty"})

    def test_unexpected_exception_maps_to_500(self):
        resp = custom_exception_handler(RuntimeError("boom"), {})
        self.assertEqual(resp.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(resp.data["code"], "server_error")


class JSONFormatterTests(SimpleTestCase):
    def _record(self, msg, **extra):
        record = logging.LogRecord("apps.orders", logging.INFO, __file__, 10, msg, None, None)
        for k, v in extra.items():
            setattr(record, k, v)
        return record

    def test_scrubs_sensitive_keys(self):
        out = json.loads(JSONFormatter().format(self._record({"email": "a@b.c", "total": "10.00"})))
        self.assertIn("REDACTED", out["msg"])
        self.assertIn("10.00", out["msg"])
        self.assertNotIn("a@b.c", out["msg"])

    def test_carries_order_context(self):
        out = json.loads(JSONFormatter().format(self._record("paid", order_id="abc")))
        self.assertEqual(out["order_id"], "abc")
        self.assertEqual(out["lvl"], "INFO")
