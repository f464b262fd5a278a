from django.contrib import admin

from .models import TaxConfig, PaymentConfig, ShippingMethod, Coupon, CouponRedemption


@admin.register(TaxConfig)
class TaxConfigAdmin(admin.ModelAdmin):
    list_display = ("percentage", "updated_at")

    def has_add_permission(self, request):
        # single row
        return not TaxConfig.objects.exists()


@admin.register(PaymentConfig)
class PaymentConfigAdmin(admin.ModelAdmin):
    list_display = ("bank", "account", "holder", "updated_at")
    readonly_fields = ("updated_at",)

    def has_add_permission(self, request):
        return not PaymentConfig.objects.exists()


@admin.register(ShippingMethod)
class ShippingMethodAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "cost", "is_active")
    list_filter = ("is_active",)
    list_editable = ("cost", "is_active")
    search_fields = ("code", "name")


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ('code', 'type', 'value', 'valid_from', 'valid_to', 'is_active', 'times_used')
    list_filter = ('is_active', 'type')
    search_fields = ('code',)
    fieldsets = (
        ('Coupon Details', {
            'fields': ('code', 'description', 'is_active')
        }),
        ('Value', {
            'fields': ('type', 'value')
        }),
        ('Validity', {
            'fields': ('valid_from', 'valid_to')
        }),
        ('Limits', {
            'fields': ('max_uses', 'max_uses_per_user'),
        }),
    )

    @admin.display(description="Times used")
    def times_used(self, obj):
        return obj.redemptions.count()


@admin.register(CouponRedemption)
class CouponRedemptionAdmin(admin.ModelAdmin):
    list_display = ("coupon", "order", "user", "email", "created_at")
    search_fields = ("coupon__code", "order__id", "email")
    readonly_fields = ("coupon", "order", "user", "email", "created_at")

    def has_add_permission(self, request):
        return False
