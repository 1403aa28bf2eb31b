"""
Read-mostly admin for settlement records.

Status changes belong to the services (and Payout.status is an FSM-protected
field), so the admin never deletes and shows status as read-only where it
would otherwise be editable.
"""

from django.contrib import admin

from settlement.models import Payment, Payout, WebhookEvent


def _money(cents: int, currency: str) -> str:
    return f"{cents / 100:.2f} {currency.upper()}"


class NoDeleteAdmin(admin.ModelAdmin):
    date_hierarchy = "created_at"
    ordering = ("-created_at",)

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(NoDeleteAdmin):
    list_display = (
        "id", "merchant", "order", "amount", "platform_fee_cents",
        "charge_mode", "status", "created_at",
    )
    list_filter = ("status", "charge_mode", "currency", "created_at")
    search_fields = (
        "id", "stripe_payment_intent_id", "customer_email",
        "merchant__name", "order__order_number",
    )
    readonly_fields = (
        "id", "raw_response", "succeeded_at", "failed_at", "created_at", "updated_at",
    )
    raw_id_fields = ("merchant", "order")
    fieldsets = (
        (None, {"fields": ("id", "merchant", "order", "status")}),
        ("Fee split", {
            "fields": (
                "amount_cents", "currency", "platform_fee_percent",
                "platform_fee_cents", "merchant_amount_cents", "charge_mode",
            ),
        }),
        ("Stripe", {"fields": ("stripe_payment_intent_id", "customer_email", "description")}),
        ("Result", {
            "fields": ("succeeded_at", "failed_at", "failure_reason"),
            "classes": ("collapse",),
        }),
        ("Raw", {"fields": ("metadata", "raw_response"), "classes": ("collapse",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    @admin.display(description="Amount")
    def amount(self, obj: Payment) -> str:
        return _money(obj.amount_cents, obj.currency)


@admin.register(Payout)
class PayoutAdmin(NoDeleteAdmin):
    list_display = (
        "id", "merchant", "order", "net", "method", "status",
        "dispatch_attempts", "created_at",
    )
    list_filter = ("status", "method", "currency", "created_at")
    search_fields = (
        "id", "stripe_transfer_id", "manual_reference",
        "merchant__name", "order__order_number",
    )
    readonly_fields = (
        "id", "status", "stripe_transfer_id", "dispatch_attempts", "raw_response",
        "processing_started_at", "processed_at", "failed_at", "created_at", "updated_at",
    )
    raw_id_fields = ("merchant", "order", "operator")

    @admin.display(description="Net amount")
    def net(self, obj: Payout) -> str:
        return _money(obj.net_amount_cents, obj.currency)


@admin.register(WebhookEvent)
class WebhookEventAdmin(NoDeleteAdmin):
    list_display = (
        "stripe_event_id", "event_type", "source", "status",
        "retry_count", "created_at", "processed_at",
    )
    list_filter = ("status", "source", "event_type", "created_at")
    search_fields = ("stripe_event_id", "event_type")
    # Events arrive only through the webhook endpoints
    readonly_fields = tuple(
        f.name for f in WebhookEvent._meta.get_fields() if getattr(f, "concrete", False)
    )

    def has_add_permission(self, request) -> bool:
        return False
