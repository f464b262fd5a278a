from decimal import Decimal

from django.db import models
from django.conf import settings
from apps.utils.models import TimestampedModel


class OrderStatus(models.TextChoices):
    PENDING_PAYMENT = "pending_payment", "Pending payment"
    IN_REVIEW = "in_review", "Payment in review"
    PAID = "paid", "Paid"
    SHIPPED = "shipped", "Shipped"
    FINALIZED = "finalized", "Finalized"
    CANCELLED = "cancelled", "Cancelled"


class PaymentMethod(models.TextChoices):
    CASH = "cash", "Cash on delivery"
    TRANSFER = "transfer", "Bank transfer"


TERMINAL_STATUSES = (OrderStatus.FINALIZED, OrderStatus.CANCELLED)


def _money(**kwargs):
    return models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"), **kwargs)


class Order(TimestampedModel):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='orders',
    )

    # Snapshot of customer + address to prevent historical drift
    customer_name = models.CharField(max_length=100)
    customer_surname = models.CharField(max_length=100)
    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=30, blank=True)

    shipping_street = models.CharField(max_length=255)
    shipping_city = models.CharField(max_length=100)
    shipping_state = models.CharField(max_length=100, blank=True)
    shipping_postal_code = models.CharField(max_length=20)
    shipping_country = models.CharField(max_length=100)

    shipping_method = models.ForeignKey(
        "pricing.ShippingMethod",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="orders",
    )
    shipping_cost = _money()

    coupon = models.ForeignKey(
        "pricing.Coupon",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="orders",
    )
    coupon_discount = _money()

    # Creation-time totals. Never recomputed from live prices.
    items_total = _money(help_text="Tax-inclusive sum of the order lines")
    subtotal = _money()
    tax_rate = models.DecimalField(max_digits=5, decimal_places=4, default=Decimal("0.0000"))
    tax_amount = _money()
    total_amount = _money()

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING_PAYMENT,
        db_index=True,
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CASH,
    )
    proof_url = models.CharField(max_length=500, blank=True, null=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="orders_status_created_idx"),
            models.Index(fields=["customer_email"], name="orders_customer_email_idx"),
        ]

    def __str__(self):
        return f"{self.id} [{self.status}]"

    @property
    def has_proof(self) -> bool:
        return bool(self.proof_url)
