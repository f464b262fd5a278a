# apps/catalog/serializers.py
from rest_framework import serializers

from .models import Product
from .services import DiscountResolver


class ProductSerializer(serializers.ModelSerializer):
    """
    Public product card: list price plus whatever promotion applies right now.
    """
    final_price = serializers.SerializerMethodField()
    discount_pct = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "slug",
            "description",
            "image_url",
            "price",
            "final_price",
            "discount_pct",
        ]

    def _resolved(self, obj):
        # one resolver query per product per serialization
        cache = self.context.setdefault("_resolved_prices", {})
        if obj.pk not in cache:
            cache[obj.pk] = DiscountResolver.price_for(obj)
        return cache[obj.pk]

    def get_final_price(self, obj):
        unit_price, _ = self._resolved(obj)
        return str(unit_price)

    def get_discount_pct(self, obj):
        _, pct = self._resolved(obj)
        return str(pct) if pct is not None else None
