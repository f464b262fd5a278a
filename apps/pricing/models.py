# apps/pricing/models.py
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class TaxConfig(models.Model):
    """
    Single-row store-wide tax (IVA) configuration.
    `percentage` is stored as a percent value (19.00 == 19%).
    """
    percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "tax_config"
        verbose_name = "Tax configuration"
        verbose_name_plural = "Tax configuration"

    def __str__(self):
        return f"Tax {self.percentage}%"

    def save(self, *args, **kwargs):
        super().save(*args, **kwargs)
        # Same-process edits are visible immediately; other workers pick it up on restart.
        from .services import TaxConfigService
        TaxConfigService.reset()


class PaymentConfig(models.Model):
    """
    Single-row bank transfer details shown on the payment step.
    """
    bank = models.CharField(max_length=120, blank=True)
    account = models.CharField(max_length=80, blank=True)
    holder = models.CharField(max_length=120, blank=True)
    qr_image = models.FileField(upload_to="payment_qr/", blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payment_config"
        verbose_name = "Payment configuration"
        verbose_name_plural = "Payment configuration"

    def __str__(self):
        return f"{self.bank} {self.account}".strip() or "Payment configuration"

    @property
    def qr_url(self):
        return self.qr_image.url if self.qr_image else None


class ShippingMethod(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=120)
    description = models.CharField(max_length=255, blank=True)
    cost = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "shipping_methods"
        ordering = ["cost", "name"]

    def __str__(self):
        return f"{self.name} ({self.cost})"


class Coupon(models.Model):
    class Type(models.TextChoices):
        PERCENTAGE = "percentage", "Percentage"
        FIXED = "fixed", "Fixed amount"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=50, unique=True, db_index=True)
    description = models.TextField(blank=True)

    type = models.CharField(max_length=20, choices=Type.choices, default=Type.PERCENTAGE)
    value = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )

    valid_from = models.DateTimeField(null=True, blank=True)
    valid_to = models.DateTimeField(null=True, blank=True)

    # 0 == unlimited
    max_uses = models.PositiveIntegerField(default=0)
    max_uses_per_user = models.PositiveIntegerField(default=1)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "coupons"
        ordering = ["-created_at"]

    def __str__(self):
        return self.code

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)


class CouponRedemption(models.Model):
    """
    Usage ledger. One row per order that used the coupon.
    Global caps count these rows; per-user caps count orders.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    coupon = models.ForeignKey(Coupon, related_name="redemptions", on_delete=models.PROTECT)
    order = models.OneToOneField(
        "orders.Order",
        related_name="coupon_redemption",
        on_delete=models.CASCADE,
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        related_name="coupon_redemptions",
        on_delete=models.SET_NULL,
    )
    email = models.EmailField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "coupon_redemptions"
        indexes = [
            models.Index(fields=["coupon", "created_at"], name="coupon_redemptions_idx"),
        ]

    def __str__(self):
        return f"{self.coupon_id} -> {self.order_id}"
