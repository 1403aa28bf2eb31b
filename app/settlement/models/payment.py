"""
Payment model: one Stripe PaymentIntent issued for a merchant.

A Payment is created in REQUIRES_ACTION before the client confirms the
intent. It moves to SUCCEEDED or FAILED exactly once, through conditional
updates from either the confirm call or the webhook path, and is immutable
afterwards.

Usage:
    from settlement.models import Payment

    moved = Payment.objects.filter(
        stripe_payment_intent_id="pi_123",
        status=PaymentStatus.REQUIRES_ACTION,
    ).update(status=PaymentStatus.SUCCEEDED, succeeded_at=now, updated_at=now)
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from settlement.state_machines import ChargeMode, PaymentStatus


class Payment(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    A split payment from a buyer to a merchant.

    Fields:
        order: Order paid by this intent (null for ad-hoc payments)
        merchant: Merchant receiving the merchant share
        amount_cents: Total charged, in minor units
        platform_fee_percent: Fee percentage applied
        platform_fee_cents / merchant_amount_cents: Always sum to amount_cents
        charge_mode: DESTINATION (split at capture) or PLATFORM
        stripe_payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
        status: REQUIRES_ACTION, SUCCEEDED or FAILED
        raw_response: Snapshot of the gateway object at creation
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "marketplace.Order",
        on_delete=models.PROTECT,
        related_name="payments",
        null=True,
        blank=True,
        help_text="Order this payment settles. Null for ad-hoc payments.",
    )

    merchant = models.ForeignKey(
        "marketplace.Merchant",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Merchant receiving the merchant share",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Total amount in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    platform_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Platform fee percentage applied to this payment",
    )

    platform_fee_cents = models.PositiveBigIntegerField(
        help_text="Platform fee in smallest currency unit",
    )

    merchant_amount_cents = models.PositiveBigIntegerField(
        help_text="Merchant share in smallest currency unit",
    )

    charge_mode = models.CharField(
        max_length=20,
        choices=ChargeMode.choices,
        default=ChargeMode.DESTINATION,
        help_text="How the merchant share is routed",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.REQUIRES_ACTION,
        db_index=True,
        help_text="Payment status",
    )

    customer_email = models.EmailField(
        blank=True,
        default="",
        help_text="Buyer email sent as the receipt address",
    )

    description = models.CharField(
        max_length=500,
        blank=True,
        default="",
    )

    raw_response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Snapshot of the Stripe PaymentIntent at creation",
    )

    # ==========================================================================
    # Outcome
    # ==========================================================================

    succeeded_at = models.DateTimeField(null=True, blank=True)

    failed_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Gateway failure message",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["merchant", "status"], name="settlement__merchan_9d2e41_idx"),
            models.Index(fields=["order", "status"], name="settlement__order_i_3a8f5c_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="payment_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    amount_cents=models.F("platform_fee_cents")
                    + models.F("merchant_amount_cents")
                ),
                name="payment_split_sums_to_total",
            ),
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(status=PaymentStatus.SUCCEEDED),
                name="unique_succeeded_payment_per_order",
            ),
        ]

    def __str__(self) -> str:
        amount = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Payment({self.stripe_payment_intent_id}, {self.status}, {amount})"

    @property
    def is_terminal(self) -> bool:
        return self.status in (PaymentStatus.SUCCEEDED, PaymentStatus.FAILED)
