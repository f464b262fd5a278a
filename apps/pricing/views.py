from decimal import Decimal

from rest_framework import viewsets, status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny

from apps.orders.cart import CartStore
from . import engine
from .models import ShippingMethod
from .serializers import ShippingMethodSerializer, CouponPreviewSerializer, PaymentConfigSerializer
from .services import TaxConfigService, PaymentConfigService, ShippingService, CouponService


class TaxRateView(APIView):
    """
    Storefront needs the rate to show the subtotal / tax split of the cart.
    """
    permission_classes = [AllowAny]

    def get(self, request):
        rate = TaxConfigService.current_rate()
        return Response({
            "rate": str(rate),
            "percentage": str((rate * Decimal("100")).quantize(Decimal("0.01"))),
        })


class PaymentConfigView(APIView):
    """
    Where to send a bank transfer. Shown on the payment step before the proof upload.
    """
    permission_classes = [AllowAny]

    def get(self, request):
        config = PaymentConfigService.get()
        if config is None:
            return Response(
                {"error": "Payment details are not configured.", "code": "payment_config_missing"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(PaymentConfigSerializer(config, context={"request": request}).data)


class ShippingMethodViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ShippingMethod.objects.filter(is_active=True)
    serializer_class = ShippingMethodSerializer
    permission_classes = [AllowAny]
    pagination_class = None


class CouponPreviewView(APIView):
    """
    POST /api/v1/pricing/coupons/preview/
    Validates a code against the session cart and returns the full quote.
    Usage is not recorded here; the checkout commit re-validates and redeems.
    """
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = CouponPreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        cart = CartStore(request.session)
        shipping = ShippingService.get_active(data.get("shipping_method_id"))
        shipping_cost = shipping.cost if shipping else engine.ZERO

        coupon, _ = CouponService.preview(
            data["code"],
            cart.items_total(),
            shipping_cost,
            user=request.user,
            email=data.get("email") or None,
        )
        quote = engine.quote(cart.items_total(), TaxConfigService.current_rate(), shipping_cost, coupon)

        return Response(
            {"coupon": {"id": str(coupon.id), "code": coupon.code, "type": coupon.type},
             "quote": quote.as_dict()},
            status=status.HTTP_200_OK,
        )
