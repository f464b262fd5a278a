import logging
from decimal import Decimal
from typing import Optional, Tuple

from django.db.models import Q
from django.utils import timezone

from apps.utils.utils import to_money
from .models import Product, ProductDiscount

logger = logging.getLogger(__name__)


class DiscountResolver:
    """
    Picks the single promotional percentage that applies to a product right now.

    Window membership depends on the clock, so nothing here is cached:
    callers resolve again for every render and again at checkout commit.
    """

    @staticmethod
    def active_discount_for(product_id, now=None) -> Optional[Decimal]:
        now = now or timezone.now()

        candidates = (
            ProductDiscount.objects
            .filter(product_id=product_id, is_active=True)
            .filter(Q(starts_at__isnull=True) | Q(starts_at__lte=now))
            .filter(Q(ends_at__isnull=True) | Q(ends_at__gte=now))
            .order_by("-percentage", "created_at")
        )

        best = candidates.values_list("percentage", flat=True).first()
        if best is None or best <= 0:
            return None
        return best

    @staticmethod
    def price_for(product: Product, now=None) -> Tuple[Decimal, Optional[Decimal]]:
        """
        Returns (unit_price, discount_pct) for the product's tax-inclusive price.
        """
        pct = DiscountResolver.active_discount_for(product.id, now=now)
        if pct is None:
            return to_money(product.price), None

        unit_price = to_money(product.price * (Decimal("1") - pct / Decimal("100")))
        return unit_price, pct
