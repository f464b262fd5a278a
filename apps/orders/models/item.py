import uuid

from django.db import models
from .order import Order
from apps.catalog.models import Product


class OrderItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')

    # Snapshot fields (Critical for audit)
    product_name_snapshot = models.CharField(max_length=255)
    unit_price_snapshot = models.DecimalField(max_digits=10, decimal_places=2)
    original_price_snapshot = models.DecimalField(max_digits=10, decimal_places=2)
    discount_pct_snapshot = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)

    quantity = models.PositiveIntegerField()

    class Meta:
        db_table = "order_items"

    @property
    def subtotal(self):
        return self.unit_price_snapshot * self.quantity

    def __str__(self):
        return f"{self.quantity}x {self.product_name_snapshot}"
