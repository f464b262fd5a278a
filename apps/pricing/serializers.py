from rest_framework import serializers

from .models import ShippingMethod, PaymentConfig


class ShippingMethodSerializer(serializers.ModelSerializer):
    class Meta:
        model = ShippingMethod
        fields = ["id", "code", "name", "description", "cost"]


class CouponPreviewSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    shipping_method_id = serializers.UUIDField(required=False, allow_null=True)
    email = serializers.EmailField(required=False, allow_blank=True)


class PaymentConfigSerializer(serializers.ModelSerializer):
    qr_url = serializers.SerializerMethodField()

    class Meta:
        model = PaymentConfig
        fields = ["bank", "account", "holder", "qr_url", "updated_at"]

    def get_qr_url(self, obj):
        url = obj.qr_url
        request = self.context.get("request")
        if url and request is not None:
            return request.build_absolute_uri(url)
        return url
