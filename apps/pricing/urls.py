from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import TaxRateView, PaymentConfigView, ShippingMethodViewSet, CouponPreviewView

router = DefaultRouter()
router.register(r"shipping-methods", ShippingMethodViewSet, basename="shipping-method")

urlpatterns = [
    path("tax/", TaxRateView.as_view(), name="tax-rate"),
    path("payment-config/", PaymentConfigView.as_view(), name="payment-config"),
    path("coupons/preview/", CouponPreviewView.as_view(), name="coupon-preview"),
    path("", include(router.urls)),
]
