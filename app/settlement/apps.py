"""
Settlement app configuration.

This app settles marketplace payments:
- Stripe Connect account onboarding
- Split payment intents with platform fees
- Payouts to merchants (Stripe transfer or manual)
- Webhook reconciliation
"""

from django.apps import AppConfig


class SettlementConfig(AppConfig):
    """Configuration for the settlement application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "settlement"
    verbose_name = "Settlement"
