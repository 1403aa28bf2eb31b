"""
Marketplace admin configuration.
"""

from django.contrib import admin

from marketplace.models import Merchant, Order


@admin.register(Merchant)
class MerchantAdmin(admin.ModelAdmin):
    """Merchants with their mirrored Stripe Connect status."""

    list_display = [
        "name",
        "country",
        "stripe_account_id",
        "onboarding_status",
        "charges_enabled",
        "payouts_enabled",
        "created_at",
    ]
    list_filter = ["country", "onboarding_status", "payouts_enabled"]
    search_fields = ["name", "email", "stripe_account_id"]
    readonly_fields = ["id", "account_created_at", "created_at", "updated_at"]


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        "order_number",
        "merchant",
        "total_amount",
        "currency",
        "payment_status",
        "paid_at",
    ]
    list_filter = ["payment_status", "currency"]
    search_fields = ["order_number", "merchant__name", "stripe_payment_intent_id"]
    readonly_fields = ["id", "paid_at", "created_at", "updated_at"]
    raw_id_fields = ["merchant"]
