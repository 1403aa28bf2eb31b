"""
Settlement models.

- Payment: One Stripe PaymentIntent with its fee split
- Payout: Disbursement of a paid order's net amount to its merchant
- WebhookEvent: Stripe webhook event tracking for idempotent processing
"""

from settlement.models.payment import Payment
from settlement.models.payout import Payout
from settlement.models.webhook_event import WebhookEvent

__all__ = [
    "Payment",
    "Payout",
    "WebhookEvent",
]
