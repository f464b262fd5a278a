# apps/notifications/admin.py
from django.contrib import admin

from .models import InvoiceDispatch, DispatchStatus
from .tasks import send_invoice_task


@admin.register(InvoiceDispatch)
class InvoiceDispatchAdmin(admin.ModelAdmin):
    list_display = ("order", "status", "attempts", "created_at", "sent_at")
    list_filter = ("status",)
    search_fields = ("order__id", "order__customer_email")
    readonly_fields = (
        "order",
        "status",
        "attempts",
        "last_error",
        "locked_until",
        "next_retry_at",
        "sent_at",
        "created_at",
        "updated_at",
    )
    actions = ["resend"]

    def has_add_permission(self, request):
        return False

    @admin.action(description="Re-send selected invoices")
    def resend(self, request, queryset):
        rows = queryset.exclude(status__in=[DispatchStatus.SENT, DispatchStatus.SENDING])
        ids = [str(pk) for pk in rows.values_list("id", flat=True)]
        rows.update(status=DispatchStatus.PENDING, next_retry_at=None)
        for dispatch_id in ids:
            send_invoice_task.delay(dispatch_id)
        self.message_user(request, f"{len(ids)} invoice(s) queued.")
