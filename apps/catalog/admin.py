# apps/catalog/admin.py
from django.contrib import admin
from django.utils import timezone

from .models import Product, ProductDiscount


class ProductDiscountInline(admin.TabularInline):
    model = ProductDiscount
    extra = 0
    fields = ("percentage", "starts_at", "ends_at", "is_active")


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "price", "is_active", "updated_at")
    search_fields = ("name", "slug")
    list_filter = ("is_active",)
    list_editable = ("price", "is_active")
    prepopulated_fields = {"slug": ("name",)}
    readonly_fields = ("created_at", "updated_at")
    inlines = [ProductDiscountInline]


@admin.register(ProductDiscount)
class ProductDiscountAdmin(admin.ModelAdmin):
    list_display = ("product", "percentage", "starts_at", "ends_at", "is_active", "live_now")
    list_filter = ("is_active",)
    search_fields = ("product__name",)
    autocomplete_fields = ("product",)

    @admin.display(boolean=True, description="Live now")
    def live_now(self, obj):
        return obj.is_live(timezone.now())
