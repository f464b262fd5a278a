import logging

from django.conf import settings
from django.core.cache import cache
from django.urls import reverse
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, mixins, status, filters
from rest_framework.decorators import action
from rest_framework.parsers import MultiPartParser, FormParser, JSONParser
from rest_framework.permissions import AllowAny, IsAuthenticated, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.catalog.models import Product
from apps.pricing import engine
from apps.pricing.services import TaxConfigService
from .cart import CartStore, CartLine
from .checkout import CheckoutBuilder, CheckoutService
from .models import Order
from .serializers import (
    CartLineSerializer,
    CartAddSerializer,
    CheckoutSerializer,
    PaymentMethodSerializer,
    ProofUploadSerializer,
    TransitionSerializer,
    OrderSerializer,
    AdminOrderSerializer,
)
from .services import OrderService

logger = logging.getLogger(__name__)

UUID_LOOKUP = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"


def _cart_payload(cart: CartStore) -> dict:
    quote = engine.quote(cart.items_total(), TaxConfigService.current_rate())
    return {
        "lines": CartLineSerializer(cart.lines, many=True).data,
        "count": cart.total(),
        "items_total": str(quote.items_total),
        "subtotal": str(quote.subtotal),
        "tax": str(quote.tax),
    }


class CartViewSet(viewsets.ViewSet):
    """
    Session cart. Works for guests and signed-in buyers alike.
    """
    permission_classes = [AllowAny]

    def list(self, request):
        return Response(_cart_payload(CartStore(request.session)))

    @action(detail=False, methods=['post'], url_path='add', url_name='add')
    def add(self, request):
        """
        POST /api/v1/orders/cart/add/  {"product_id": ..., "qty": 1}
        Negative qty decrements; reaching zero removes the line.
        """
        serializer = CartAddSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        product = Product.objects.get(id=serializer.validated_data["product_id"], is_active=True)
        cart = CartStore(request.session)
        cart.add(CartLine.from_product(product), serializer.validated_data["qty"])

        return Response(_cart_payload(cart))

    @action(detail=False, methods=['post', 'delete'], url_path=r'remove/(?P<product_id>[^/.]+)', url_name='remove')
    def remove(self, request, product_id=None):
        cart = CartStore(request.session)
        cart.remove(product_id)
        return Response(_cart_payload(cart))

    @action(detail=False, methods=['post', 'delete'])
    def clear(self, request):
        cart = CartStore(request.session)
        cart.clear()
        return Response(_cart_payload(cart))


class CheckoutView(APIView):
    """
    POST /api/v1/orders/checkout/

    SEQUENCE:
    1. Optional idempotency check (X-Idempotency-Key)
    2. Builder + validation
    3. Atomic commit (order, items, coupon usage, profile)
    4. Hand off to the payment step
    """
    permission_classes = [AllowAny]

    def post(self, request):
        idempotency_key = request.headers.get('X-Idempotency-Key')
        if not idempotency_key:
            order = self._checkout(request)
            return Response(self._payload(order.id), status=status.HTTP_201_CREATED)

        if not request.user.is_authenticated and not request.session.session_key:
            # idempotency scope needs a session key per guest
            request.session.save()
        owner = request.user.pk if request.user.is_authenticated else request.session.session_key
        cache_key = f"checkout_idempotency_{owner}_{idempotency_key}"
        done_key = f"{cache_key}_done"

        completed_order_id = cache.get(done_key)
        if completed_order_id:
            return Response(self._payload(completed_order_id), status=status.HTTP_200_OK)

        # Lock this key to reject concurrent double-submits
        if not cache.add(cache_key, "processing", timeout=60):
            return Response(
                {"error": "Duplicate request detected", "code": "duplicate_request"},
                status=status.HTTP_409_CONFLICT,
            )

        try:
            order = self._checkout(request)
        except Exception:
            cache.delete(cache_key)  # Release lock on any failure
            raise

        cache.set(done_key, str(order.id), timeout=settings.CHECKOUT_IDEMPOTENCY_TTL)
        cache.delete(cache_key)
        return Response(self._payload(order.id), status=status.HTTP_201_CREATED)

    def _checkout(self, request):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        builder = CheckoutBuilder.for_user(request.user)
        builder.set_customer(**data.get("customer", {}))
        builder.set_address(**data.get("address", {}))
        builder.set_shipping_method(data.get("shipping_method_id"))
        builder.set_coupon(data.get("coupon_code"))

        return CheckoutService.commit(builder.snapshot(), CartStore(request.session), request.user)

    @staticmethod
    def _payload(order_id) -> dict:
        return {
            "order_id": str(order_id),
            "payment_url": reverse("order-detail", kwargs={"pk": str(order_id)}),
        }


class OrderViewSet(mixins.RetrieveModelMixin, mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    Buyer side: order summary + payment step.
    """
    serializer_class = OrderSerializer
    permission_classes = [AllowAny]
    lookup_value_regex = UUID_LOOKUP

    def get_permissions(self):
        if self.action == "list":
            return [IsAuthenticated()]
        return super().get_permissions()

    def get_queryset(self):
        return (
            Order.objects.filter(user=self.request.user)
            .select_related("shipping_method", "coupon")
            .prefetch_related("items")
        )

    def get_object(self):
        return OrderService.get_for_buyer(self.kwargs["pk"], self.request.user)

    @action(detail=True, methods=['post'], url_path='payment-method', url_name='payment-method')
    def payment_method(self, request, pk=None):
        self.get_object()
        serializer = PaymentMethodSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderService.switch_payment_method(
            pk, serializer.validated_data["payment_method"], actor=request.user,
        )
        return Response(OrderSerializer(order).data)

    @action(
        detail=True,
        methods=['post'],
        parser_classes=[MultiPartParser, FormParser, JSONParser],
    )
    def proof(self, request, pk=None):
        self.get_object()
        serializer = ProofUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderService.upload_proof(pk, serializer.validated_data["file"], actor=request.user)
        return Response(OrderSerializer(order).data)


class AdminOrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Staff order list + free-form status transitions.
    """
    serializer_class = AdminOrderSerializer
    permission_classes = [IsAdminUser]
    lookup_value_regex = UUID_LOOKUP
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'payment_method']
    search_fields = ['customer_email', 'customer_surname', 'customer_name']
    ordering_fields = ['created_at', 'total_amount']

    def get_queryset(self):
        return (
            Order.objects.select_related("shipping_method", "coupon")
            .prefetch_related("items", "timeline")
        )

    @action(detail=True, methods=['post'])
    def transition(self, request, pk=None):
        """
        POST /api/v1/orders/admin/orders/{id}/transition/  {"status": "paid", "note": ""}
        """
        serializer = TransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderService.admin_transition(
            pk,
            serializer.validated_data["status"],
            actor=request.user,
            note=serializer.validated_data.get("note", ""),
        )
        return Response(AdminOrderSerializer(order).data)
