"""
Merchant and Order models.

Merchant mirrors the Stripe Connect account state that settlement needs:
the account id, onboarding status and whether Stripe currently allows
charges and payouts. Order carries the payment status that drives payout
eligibility.

Usage:
    from marketplace.models import Merchant, Order

    merchant = Merchant.objects.create(name="Acme", email="ops@acme.test", country="US")
    order = Order.objects.create(
        merchant=merchant,
        order_number="500",
        buyer_reference="buyer-42",
        total_amount=Decimal("100.00"),
    )
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from settlement.state_machines import (
    OnboardingStatus,
    OrderPaymentStatus,
    PayoutMethod,
)


class Merchant(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    A selling company on the marketplace.

    A merchant holds at most one connected account id. Once set, the id is
    only cleared by deauthorization, which also resets onboarding to NONE.

    Fields:
        name: Display name
        email: Contact email, also used as the Connect account email
        country: ISO 3166 alpha-2 code, selects the country policy
        stripe_account_id: Stripe Connect account (acct_xxx)
        onboarding_status: Mirrored onboarding state
        account_created_at: When the connected account was created
        charges_enabled / payouts_enabled: Stripe's live flags
        preferred_payout_method: Overrides the country policy default
    """

    name = models.CharField(
        max_length=255,
        help_text="Merchant display name",
    )

    email = models.EmailField(
        help_text="Merchant contact email",
    )

    country = models.CharField(
        max_length=2,
        help_text="ISO 3166 alpha-2 country code (uppercase)",
    )

    stripe_account_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Connect account ID (acct_xxx)",
    )

    onboarding_status = models.CharField(
        max_length=20,
        choices=OnboardingStatus.choices,
        default=OnboardingStatus.NONE,
        db_index=True,
        help_text="Stripe Connect onboarding status",
    )

    account_created_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the connected account was created",
    )

    charges_enabled = models.BooleanField(
        default=False,
        help_text="Whether Stripe allows charges for this account",
    )

    payouts_enabled = models.BooleanField(
        default=False,
        help_text="Whether Stripe allows payouts for this account",
    )

    preferred_payout_method = models.CharField(
        max_length=20,
        choices=PayoutMethod.choices,
        null=True,
        blank=True,
        help_text="Overrides the country default payout method",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Merchant"
        verbose_name_plural = "Merchants"

    def save(self, *args, **kwargs):
        if self.country:
            self.country = self.country.upper()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"Merchant({self.name}, {self.country})"

    @property
    def has_connected_account(self) -> bool:
        return bool(self.stripe_account_id)

    @property
    def is_onboarded(self) -> bool:
        """Connected account exists and onboarding is complete."""
        return (
            self.has_connected_account
            and self.onboarding_status == OnboardingStatus.COMPLETED
        )


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    A buyer's purchase from a single merchant.

    payment_status COMPLETED implies exactly one succeeded Payment and a
    non-null paid_at.
    """

    merchant = models.ForeignKey(
        Merchant,
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Merchant selling the order",
    )

    order_number = models.CharField(
        max_length=64,
        unique=True,
        help_text="Human-readable order number",
    )

    buyer_reference = models.CharField(
        max_length=255,
        help_text="Opaque reference to the buyer",
    )

    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Order total in major currency units",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    payment_status = models.CharField(
        max_length=20,
        choices=OrderPaymentStatus.choices,
        default=OrderPaymentStatus.UNPAID,
        db_index=True,
        help_text="Payment status of the order",
    )

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Most recent Stripe PaymentIntent for this order",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When payment completed",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gt=0),
                name="order_total_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.order_number}, {self.payment_status})"

    @property
    def is_paid(self) -> bool:
        return self.payment_status == OrderPaymentStatus.COMPLETED
