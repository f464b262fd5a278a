from django.contrib import admin, messages

from apps.utils.exceptions import BusinessLogicException
from .models import Order, OrderItem, OrderTimeline, OrderStatus
from .services import OrderService


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = (
        'product', 'product_name_snapshot', 'unit_price_snapshot',
        'original_price_snapshot', 'discount_pct_snapshot', 'quantity',
    )

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class OrderTimelineInline(admin.TabularInline):
    model = OrderTimeline
    extra = 0
    readonly_fields = ('timestamp', 'status', 'note', 'created_by')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


def _transition_action(target):
    def action(modeladmin, request, queryset):
        moved = 0
        for order_id in queryset.values_list("id", flat=True):
            try:
                OrderService.admin_transition(order_id, target, actor=request.user, note="Changed from admin")
                moved += 1
            except BusinessLogicException as exc:
                modeladmin.message_user(request, f"{order_id}: {exc.message}", level=messages.ERROR)
        modeladmin.message_user(request, f"{moved} order(s) moved to {target}.")

    action.__name__ = f"mark_{target}"
    action.short_description = f"Mark selected orders as {OrderStatus(target).label}"
    return action


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        'id',
        'customer_email',
        'status',
        'payment_method',
        'total_amount',
        'created_at',
    )
    list_filter = ('status', 'payment_method', 'created_at')
    search_fields = ('id', 'customer_email', 'customer_surname')

    inlines = [OrderItemInline, OrderTimelineInline]
    actions = [_transition_action(s) for s in OrderStatus.values]

    # Status changes go through OrderService (timeline, invoice, realtime)
    readonly_fields = (
        'id', 'user', 'status', 'payment_method', 'proof_url',
        'customer_name', 'customer_surname', 'customer_email', 'customer_phone',
        'shipping_street', 'shipping_city', 'shipping_state', 'shipping_postal_code', 'shipping_country',
        'shipping_method', 'shipping_cost', 'coupon', 'coupon_discount',
        'items_total', 'subtotal', 'tax_rate', 'tax_amount', 'total_amount',
        'created_at', 'updated_at',
    )

    fieldsets = (
        ('Order Details', {
            'fields': ('id', 'status', 'payment_method', 'proof_url', 'user')
        }),
        ('Customer', {
            'fields': ('customer_name', 'customer_surname', 'customer_email', 'customer_phone')
        }),
        ('Shipping', {
            'fields': ('shipping_street', 'shipping_city', 'shipping_state', 'shipping_postal_code',
                       'shipping_country', 'shipping_method', 'shipping_cost')
        }),
        ('Financials', {
            'fields': ('items_total', 'subtotal', 'tax_rate', 'tax_amount', 'coupon', 'coupon_discount',
                       'total_amount')
        }),
        ('System Data', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        return False
