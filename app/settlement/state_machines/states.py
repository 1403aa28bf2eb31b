"""
State enums for marketplace and settlement models.

These are Django TextChoices for database storage and admin integration.
Only PayoutStatus drives a django-fsm field; the rest are plain status
columns advanced by conditional updates.

State Machines Overview:

Merchant onboarding:
    none → pending → completed
    any → none (account deauthorized)

Order payment:
    unpaid → pending → completed
    unpaid/pending → failed

Payment:
    requires_action → succeeded
    requires_action → failed

Payout:
    pending → processing → completed
    pending/processing → failed
    failed → pending (retry, one new dispatch attempt)
    pending → completed (manual disbursement)
"""

from django.db import models


class OnboardingStatus(models.TextChoices):
    """
    Stripe Connect onboarding status mirrored on the Merchant.

    Only COMPLETED allows payment intents and gateway payouts.
    """

    NONE = "none", "None"
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"


class OrderPaymentStatus(models.TextChoices):
    """
    Payment status of an Order.

    COMPLETED implies exactly one succeeded Payment for the order.
    """

    UNPAID = "unpaid", "Unpaid"
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class PaymentStatus(models.TextChoices):
    """
    Status of a Payment (one Stripe PaymentIntent).

    Terminal states: SUCCEEDED, FAILED
    """

    REQUIRES_ACTION = "requires_action", "Requires Action"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class PayoutStatus(models.TextChoices):
    """
    States for the Payout model lifecycle.

    Terminal states: COMPLETED, FAILED (FAILED can be reopened via retry)

    State Flow:
        PENDING → PROCESSING → COMPLETED (gateway transfer)
        PENDING → COMPLETED (manual disbursement)
        PENDING/PROCESSING → FAILED
        FAILED → PENDING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class PayoutMethod(models.TextChoices):
    """How a payout reaches the merchant."""

    GATEWAY_TRANSFER = "gateway_transfer", "Stripe Transfer"
    MANUAL = "manual", "Manual Disbursement"


class ChargeMode(models.TextChoices):
    """
    How a payment intent routes the merchant share.

    - DESTINATION: split at capture via application_fee_amount + transfer_data
    - PLATFORM: platform collects everything, merchant is paid by a Payout
    """

    DESTINATION = "destination", "Destination Charge"
    PLATFORM = "platform", "Platform Charge"


class ServiceAgreement(models.TextChoices):
    """
    Connect service agreement requested at account creation.

    - FULL: card_payments and transfers capabilities
    - RECIPIENT: transfers only (cross-border recipients)
    """

    FULL = "full", "Full"
    RECIPIENT = "recipient", "Recipient"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class WebhookSource(models.TextChoices):
    """Webhook endpoint an event arrived on; selects the signing secret."""

    GENERAL = "general", "General"
    PAYMENTS = "payments", "Payments"


__all__ = [
    "ChargeMode",
    "OnboardingStatus",
    "OrderPaymentStatus",
    "PaymentStatus",
    "PayoutMethod",
    "PayoutStatus",
    "ServiceAgreement",
    "WebhookEventStatus",
    "WebhookSource",
]
