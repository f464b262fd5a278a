# apps/notifications/models.py
from django.db import models

from apps.utils.models import TimestampedModel


class DispatchStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SENDING = "sending", "Sending"
    SENT = "sent", "Sent"
    FAILED = "failed", "Failed"


class InvoiceDispatch(TimestampedModel):
    """
    Outbox row for the invoice webhook.

    - Written in the same transaction that moves an order into `paid`.
    - Then Celery task delivers it (send_invoice_task), retrying on failure.
    - A worker claims the row (status=sending, locked_until) before the POST;
      nobody else may POST it until the claim expires.
    - The order's own status never depends on this row.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="invoice_dispatches",
    )

    status = models.CharField(
        max_length=20,
        choices=DispatchStatus.choices,
        default=DispatchStatus.PENDING,
        db_index=True,
    )
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    locked_until = models.DateTimeField(null=True, blank=True)
    next_retry_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "invoice_dispatches"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="invoice_dispatch_status_idx"),
        ]

    def __str__(self):
        return f"Invoice {self.order_id} [{self.status}]"

    def is_claimed(self, at) -> bool:
        return (
            self.status == DispatchStatus.SENDING
            and self.locked_until is not None
            and self.locked_until > at
        )
