# apps/catalog/models.py
import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils.text import slugify


class Product(models.Model):
    """
    Sellable catalog item.

    NOTE:
    - `price` is tax-inclusive (what the buyer sees on the shelf).
    - Orders never read this price after creation; OrderItem keeps a snapshot.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    slug = models.SlugField(unique=True, blank=True, db_index=True)
    description = models.TextField(blank=True)

    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Tax-inclusive unit price",
    )
    image_url = models.URLField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active"], name="products_is_active_idx"),
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            base = slugify(self.name) or "product"
            slug = base
            i = 1
            while Product.objects.filter(slug=slug).exclude(pk=self.pk).exists():
                slug = f"{base}-{i}"
                i += 1
            self.slug = slug
        super().save(*args, **kwargs)


class ProductDiscount(models.Model):
    """
    Time-windowed promotional markdown for one product.
    Open bounds (null starts_at / ends_at) mean unbounded on that side.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(
        Product,
        related_name="discounts",
        on_delete=models.CASCADE,
    )
    percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01")), MaxValueValidator(Decimal("100.00"))],
    )
    starts_at = models.DateTimeField(null=True, blank=True)
    ends_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "product_discounts"
        ordering = ["-percentage", "created_at"]
        indexes = [
            models.Index(fields=["product", "is_active"], name="product_discounts_live_idx"),
        ]

    def __str__(self):
        return f"-{self.percentage}% on {self.product_id}"

    def is_live(self, at) -> bool:
        if not self.is_active:
            return False
        if self.starts_at is not None and self.starts_at > at:
            return False
        if self.ends_at is not None and self.ends_at < at:
            return False
        return True
