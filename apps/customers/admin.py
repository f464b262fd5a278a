from django.contrib import admin
from .models import CustomerProfile


@admin.register(CustomerProfile)
class CustomerProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'name', 'surname', 'email', 'city', 'updated_at')
    search_fields = ('user__username', 'email', 'surname')
    list_filter = ('country',)
