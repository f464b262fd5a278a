"""
Checkout: gather buyer input into a CheckoutBuilder, validate it, then commit
the order in a single unit of work.

Each form writes into the builder as soon as it is submitted, so `snapshot()`
always reflects everything the buyer entered; there is nothing to wait for.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction

from apps.catalog.models import Product
from apps.catalog.services import DiscountResolver
from apps.customers.services import CustomerService, CUSTOMER_FIELDS, ADDRESS_FIELDS
from apps.pricing import engine
from apps.pricing.exceptions import CouponError
from apps.pricing.services import TaxConfigService, ShippingService, CouponService
from apps.utils.utils import to_money

from .cart import CartStore, CartLine
from .exceptions import CheckoutValidationError
from .models import Order, OrderItem, OrderTimeline, OrderStatus, PaymentMethod
from .signals import order_status_changed

logger = logging.getLogger(__name__)

REQUIRED_CUSTOMER = ("name", "surname", "email")
REQUIRED_ADDRESS = ("street", "city", "postal_code", "country")


@dataclass(frozen=True)
class CheckoutSnapshot:
    customer: dict
    address: dict
    shipping_method_id: Optional[str] = None
    coupon_code: Optional[str] = None


@dataclass
class CheckoutBuilder:
    customer: dict = field(default_factory=lambda: dict.fromkeys(CUSTOMER_FIELDS, ""))
    address: dict = field(default_factory=lambda: dict.fromkeys(ADDRESS_FIELDS, ""))
    shipping_method_id: Optional[str] = None
    coupon_code: Optional[str] = None

    @classmethod
    def for_user(cls, user) -> "CheckoutBuilder":
        """Prefilled from the buyer's last checkout; empty guest fields otherwise."""
        builder = cls()
        profile = CustomerService.get_profile(user)
        if profile is not None:
            builder.set_customer(**profile.customer_dict())
            builder.set_address(**profile.address_dict())
        return builder

    def set_customer(self, **fields):
        for key in CUSTOMER_FIELDS:
            if key in fields:
                self.customer[key] = (fields[key] or "").strip()
        return self

    def set_address(self, **fields):
        for key in ADDRESS_FIELDS:
            if key in fields:
                self.address[key] = (fields[key] or "").strip()
        return self

    def set_shipping_method(self, method_id):
        self.shipping_method_id = str(method_id) if method_id else None
        return self

    def set_coupon(self, code):
        self.coupon_code = CouponService.normalize(code) or None
        return self

    def snapshot(self) -> CheckoutSnapshot:
        return CheckoutSnapshot(
            customer=dict(self.customer),
            address=dict(self.address),
            shipping_method_id=self.shipping_method_id,
            coupon_code=self.coupon_code,
        )


class CheckoutService:

    @staticmethod
    def validate(snapshot: CheckoutSnapshot, cart: CartStore, user=None):
        """
        Everything that can be checked without writing.
        Returns the selected ShippingMethod.
        """
        errors = {}

        for key in REQUIRED_CUSTOMER:
            if not snapshot.customer.get(key):
                errors[f"customer.{key}"] = "This field is required."
        email = snapshot.customer.get("email")
        if email:
            try:
                validate_email(email)
            except ValidationError:
                errors["customer.email"] = "Enter a valid email address."

        for key in REQUIRED_ADDRESS:
            if not snapshot.address.get(key):
                errors[f"address.{key}"] = "This field is required."

        if cart.is_empty:
            errors["cart"] = "Your cart is empty."

        shipping = None
        if not snapshot.shipping_method_id:
            errors["shipping_method"] = "Select a shipping method."
        else:
            shipping = ShippingService.get_active(snapshot.shipping_method_id)
            if shipping is None:
                errors["shipping_method"] = "This shipping method is not available."

        if snapshot.coupon_code and "customer.email" not in errors:
            try:
                CouponService.validate(snapshot.coupon_code, user=user, email=email)
            except CouponError as exc:
                errors["coupon"] = exc.message

        if errors:
            raise CheckoutValidationError(errors)
        return shipping

    @staticmethod
    def commit(snapshot: CheckoutSnapshot, cart: CartStore, user=None) -> Order:
        shipping = CheckoutService.validate(snapshot, cart, user)
        is_authenticated = bool(user and user.is_authenticated)
        buyer = user if is_authenticated else None
        email = snapshot.customer["email"]

        with transaction.atomic():
            lines = CheckoutService._reprice(cart.lines)

            coupon = None
            if snapshot.coupon_code:
                try:
                    coupon = CouponService.validate(snapshot.coupon_code, user=buyer, email=email, lock=True)
                except CouponError as exc:
                    raise CheckoutValidationError({"coupon": exc.message})

            rate = TaxConfigService.current_rate()
            quote = engine.quote(engine.items_total(lines), rate, shipping.cost, coupon)

            # A. Profile
            if is_authenticated:
                CustomerService.upsert_profile(user, snapshot.customer, snapshot.address)

            # B. Order
            order = Order.objects.create(
                user=buyer,
                customer_name=snapshot.customer["name"],
                customer_surname=snapshot.customer["surname"],
                customer_email=email,
                customer_phone=snapshot.customer.get("phone", ""),
                shipping_street=snapshot.address["street"],
                shipping_city=snapshot.address["city"],
                shipping_state=snapshot.address.get("state", ""),
                shipping_postal_code=snapshot.address["postal_code"],
                shipping_country=snapshot.address["country"],
                shipping_method=shipping,
                shipping_cost=quote.shipping_cost,
                coupon=coupon,
                coupon_discount=quote.coupon_discount,
                items_total=quote.items_total,
                subtotal=quote.subtotal,
                tax_rate=quote.tax_rate,
                tax_amount=quote.tax,
                total_amount=quote.total,
                status=OrderStatus.PENDING_PAYMENT,
                payment_method=PaymentMethod.CASH,
            )

            # C. Items
            OrderItem.objects.bulk_create([
                OrderItem(
                    order=order,
                    product_id=line.product_id,
                    product_name_snapshot=line.name,
                    unit_price_snapshot=line.unit_price,
                    original_price_snapshot=line.original_price,
                    discount_pct_snapshot=line.discount_pct,
                    quantity=line.qty,
                )
                for line in lines
            ])

            # D. Usage + Timeline
            if coupon is not None:
                CouponService.redeem(coupon, order, user=buyer, email=email)

            OrderTimeline.objects.create(
                order=order,
                status=OrderStatus.PENDING_PAYMENT,
                note="Order created, waiting for payment.",
                created_by=buyer,
            )

            order_id = order.id
            transaction.on_commit(lambda: order_status_changed.send(
                sender=Order, order_id=order_id, old_status=None, new_status=OrderStatus.PENDING_PAYMENT,
            ))

        # Only after the unit committed
        cart.clear()

        logger.info(
            f"Order {order.id} created, total {order.total_amount}",
            extra={"order_id": str(order.id), "user_id": getattr(buyer, "pk", None)},
        )
        return order

    @staticmethod
    def _reprice(lines):
        """
        Rebuild every line from the catalog; the prices stored in the
        session are display values only.
        """
        products = {
            str(pk): product
            for pk, product in Product.objects.in_bulk([line.product_id for line in lines]).items()
        }

        repriced = []
        unavailable = []
        for line in lines:
            product = products.get(str(line.product_id))
            if product is None or not product.is_active:
                unavailable.append(line.name or str(line.product_id))
                continue

            unit_price, pct = DiscountResolver.price_for(product)
            repriced.append(CartLine(
                product_id=str(product.pk),
                name=product.name,
                unit_price=unit_price,
                original_price=to_money(product.price),
                discount_pct=pct,
                qty=line.qty,
            ))

        if unavailable:
            raise CheckoutValidationError(
                {"cart": f"No longer available: {', '.join(unavailable)}."},
            )
        return repriced
