import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils import timezone

from . import engine
from .exceptions import CouponError
from .models import TaxConfig, PaymentConfig, Coupon, CouponRedemption, ShippingMethod

logger = logging.getLogger(__name__)


class TaxConfigService:
    """
    Process-wide tax rate, loaded lazily on first use.
    Rate changes are rare config edits, so there is no TTL.
    """
    _rate: Optional[Decimal] = None

    @classmethod
    def default_rate(cls) -> Decimal:
        return Decimal(str(settings.DEFAULT_TAX_RATE_PERCENT)) / Decimal("100")

    @classmethod
    def current_rate(cls) -> Decimal:
        if cls._rate is None:
            cls._rate = cls._load()
        return cls._rate

    @classmethod
    def reset(cls):
        cls._rate = None

    @classmethod
    def _load(cls) -> Decimal:
        row = TaxConfig.objects.order_by("id").first()
        if row is None:
            logger.info("No tax_config row found, using default rate.")
            return cls.default_rate()

        try:
            pct = Decimal(str(row.percentage))
        except (InvalidOperation, TypeError, ValueError):
            logger.warning("Invalid tax percentage %r, using default rate.", row.percentage)
            return cls.default_rate()

        if not pct.is_finite() or pct <= 0:
            logger.warning("Non-positive tax percentage %s, using default rate.", pct)
            return cls.default_rate()

        return pct / Decimal("100")


class PaymentConfigService:

    @staticmethod
    def get() -> Optional[PaymentConfig]:
        return PaymentConfig.objects.order_by("id").first()


class ShippingService:

    @staticmethod
    def get_active(method_id) -> Optional[ShippingMethod]:
        if not method_id:
            return None
        try:
            return ShippingMethod.objects.get(id=method_id, is_active=True)
        except (ShippingMethod.DoesNotExist, ValidationError, ValueError):
            return None


class CouponService:
    """
    Coupon eligibility. The same checks run for the checkout preview and,
    with the coupon row locked, again inside the checkout commit.
    """

    @staticmethod
    def normalize(code: Optional[str]) -> str:
        return (code or "").strip().upper()

    @staticmethod
    def validate(code: str, *, user=None, email: Optional[str] = None, now=None, lock: bool = False) -> Coupon:
        code = CouponService.normalize(code)
        if not code:
            raise CouponError("Enter a coupon code.", code="coupon_missing")

        now = now or timezone.now()
        qs = Coupon.objects.select_for_update() if lock else Coupon.objects.all()
        try:
            coupon = qs.get(code=code)
        except Coupon.DoesNotExist:
            raise CouponError("Coupon not valid.", code="coupon_not_found")

        if not coupon.is_active:
            raise CouponError("This coupon is not active.", code="coupon_inactive")

        if coupon.valid_from and now < coupon.valid_from:
            raise CouponError("This coupon is not available yet.", code="coupon_not_started")

        if coupon.valid_to and now > coupon.valid_to:
            raise CouponError("This coupon has expired.", code="coupon_expired")

        if coupon.max_uses > 0:
            used = CouponRedemption.objects.filter(coupon=coupon).count()
            if used >= coupon.max_uses:
                raise CouponError("This coupon has reached its usage limit.", code="coupon_exhausted")

        if coupon.max_uses_per_user > 0:
            is_authenticated = bool(user and getattr(user, "is_authenticated", False))
            if not is_authenticated and not email:
                raise CouponError(
                    "Sign in or enter your email to use this coupon.",
                    code="coupon_identity_required",
                )

            redemptions = CouponRedemption.objects.filter(coupon=coupon)
            if is_authenticated:
                redemptions = redemptions.filter(user=user)
            else:
                redemptions = redemptions.filter(email__iexact=email)

            if redemptions.count() >= coupon.max_uses_per_user:
                raise CouponError(
                    "You have already used this coupon the maximum number of times.",
                    code="coupon_user_limit",
                )

        return coupon

    @staticmethod
    def preview(code: str, items_total, shipping_cost, *, user=None, email=None) -> Tuple[Coupon, Decimal]:
        """
        Discount the buyer would get right now. Nothing is recorded;
        usage is only counted when the order commits.
        """
        coupon = CouponService.validate(code, user=user, email=email)
        base = engine.discount_base(items_total, shipping_cost)
        return coupon, engine.coupon_discount(coupon.type, coupon.value, base)

    @staticmethod
    def redeem(coupon: Coupon, order, *, user=None, email: str = "") -> CouponRedemption:
        is_authenticated = bool(user and getattr(user, "is_authenticated", False))
        redemption = CouponRedemption.objects.create(
            coupon=coupon,
            order=order,
            user=user if is_authenticated else None,
            email=email or "",
        )
        logger.info(f"Coupon {coupon.code} redeemed by order {order.id}")
        return redemption
