from rest_framework import serializers

from .models import Order, OrderItem, OrderTimeline, OrderStatus, PaymentMethod


class CartLineSerializer(serializers.Serializer):
    product_id = serializers.CharField()
    name = serializers.CharField()
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2)
    original_price = serializers.DecimalField(max_digits=10, decimal_places=2)
    discount_pct = serializers.DecimalField(max_digits=5, decimal_places=2, allow_null=True)
    qty = serializers.IntegerField()
    line_total = serializers.DecimalField(max_digits=10, decimal_places=2)


class CartAddSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    qty = serializers.IntegerField(default=1)


class CustomerInputSerializer(serializers.Serializer):
    name = serializers.CharField(required=False, allow_blank=True, max_length=100)
    surname = serializers.CharField(required=False, allow_blank=True, max_length=100)
    email = serializers.CharField(required=False, allow_blank=True, max_length=254)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=30)


class AddressInputSerializer(serializers.Serializer):
    street = serializers.CharField(required=False, allow_blank=True, max_length=255)
    city = serializers.CharField(required=False, allow_blank=True, max_length=100)
    state = serializers.CharField(required=False, allow_blank=True, max_length=100)
    postal_code = serializers.CharField(required=False, allow_blank=True, max_length=20)
    country = serializers.CharField(required=False, allow_blank=True, max_length=100)


class CheckoutSerializer(serializers.Serializer):
    """
    Shape only. Required-ness is decided by CheckoutService so that every
    missing field is reported in one response.
    """
    customer = CustomerInputSerializer(required=False, default=dict)
    address = AddressInputSerializer(required=False, default=dict)
    shipping_method_id = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    coupon_code = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=50)


class PaymentMethodSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)


class ProofUploadSerializer(serializers.Serializer):
    file = serializers.FileField()


class TransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    note = serializers.CharField(required=False, allow_blank=True, default="")


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            'product_id', 'product_name_snapshot', 'quantity',
            'unit_price_snapshot', 'original_price_snapshot', 'discount_pct_snapshot', 'subtotal',
        ]


class OrderTimelineSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderTimeline
        fields = ['status', 'note', 'timestamp']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    shipping_method_name = serializers.CharField(source='shipping_method.name', read_only=True, default=None)
    coupon_code = serializers.CharField(source='coupon.code', read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            'id', 'status', 'status_display', 'payment_method', 'proof_url',
            'customer_name', 'customer_surname', 'customer_email', 'customer_phone',
            'shipping_street', 'shipping_city', 'shipping_state', 'shipping_postal_code', 'shipping_country',
            'shipping_method_name', 'shipping_cost', 'coupon_code', 'coupon_discount',
            'items_total', 'subtotal', 'tax_rate', 'tax_amount', 'total_amount',
            'created_at', 'updated_at', 'items',
        ]
        read_only_fields = fields


class AdminOrderSerializer(OrderSerializer):
    timeline = OrderTimelineSerializer(many=True, read_only=True)
    user_id = serializers.IntegerField(read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ['user_id', 'timeline']
        read_only_fields = fields
