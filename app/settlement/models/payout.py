"""
Payout model for disbursing a paid order's net proceeds to its merchant.

A Payout is either sent as a Stripe transfer to the merchant's connected
account (GATEWAY_TRANSFER) or completed by an operator who disbursed the
money outside Stripe (MANUAL).

Usage:
    from settlement.models import Payout

    payout = Payout.objects.create(
        order=order,
        merchant=order.merchant,
        gross_amount_cents=10000,
        platform_fee_cents=790,
        net_amount_cents=9210,
        fee_percent=Decimal("7.90"),
        method=PayoutMethod.GATEWAY_TRANSFER,
    )

    # pending -> processing is a conditional UPDATE, never a transition call
    claimed = Payout.objects.filter(pk=payout.pk, status=PayoutStatus.PENDING).update(...)

    # After Stripe accepts the transfer
    payout.complete(transfer_id="tr_123")
    payout.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from settlement.state_machines import PayoutMethod, PayoutStatus


class Payout(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    Represents a disbursement of an order's net amount to a merchant.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED (gateway transfer)
        PENDING -> COMPLETED (manual disbursement)
        PENDING/PROCESSING -> FAILED
        FAILED -> PENDING (retry)

    Fields:
        order: Paid order this payout disburses
        merchant: Merchant receiving the net amount
        gross_amount_cents / platform_fee_cents / net_amount_cents: net = gross - fee
        method: GATEWAY_TRANSFER or MANUAL
        status: Current FSM state (direct assignment is blocked)
        stripe_transfer_id: Stripe Transfer ID (tr_xxx)
        dispatch_attempts: Incremented on every pending -> processing claim,
            part of the transfer idempotency key
        processing_started_at: When the current dispatch attempt began
        operator / manual_reference / manual_notes: Manual completion record

    Note:
        At most one non-failed payout may exist per order. The partial unique
        constraint enforces it in the database.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "marketplace.Order",
        on_delete=models.PROTECT,
        related_name="payouts",
        help_text="Order whose proceeds are paid out",
    )

    merchant = models.ForeignKey(
        "marketplace.Merchant",
        on_delete=models.PROTECT,
        related_name="payouts",
        help_text="Merchant receiving the payout",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    gross_amount_cents = models.PositiveBigIntegerField(
        help_text="Order total in smallest currency unit",
    )

    platform_fee_cents = models.PositiveBigIntegerField(
        help_text="Platform fee retained",
    )

    net_amount_cents = models.PositiveBigIntegerField(
        help_text="Amount paid to the merchant (gross - fee)",
    )

    fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Platform fee percentage applied",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # Method & State
    # ==========================================================================

    method = models.CharField(
        max_length=20,
        choices=PayoutMethod.choices,
        help_text="How the payout reaches the merchant",
    )

    status = FSMField(
        default=PayoutStatus.PENDING,
        choices=PayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payout (managed by FSM)",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Transfer ID (tr_xxx)",
    )

    dispatch_attempts = models.PositiveIntegerField(
        default=0,
        help_text="Number of times the payout was claimed for dispatch",
    )

    raw_response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Snapshot of the Stripe Transfer",
    )

    # ==========================================================================
    # Manual Completion
    # ==========================================================================

    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="completed_payouts",
        help_text="Operator who completed a manual payout",
    )

    manual_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Bank or remittance reference for manual payouts",
    )

    manual_notes = models.TextField(null=True, blank=True)

    # ==========================================================================
    # Timestamps & Error Info
    # ==========================================================================

    processing_started_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the current dispatch attempt started",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout completed",
    )

    failed_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Detailed reason if payout failed",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["merchant", "status"], name="settlement__merchan_51c0b7_idx"),
            models.Index(
                fields=["status", "processing_started_at"],
                name="settlement__status_e28d90_idx",
            ),
            models.Index(fields=["method", "status"], name="settlement__method_6b4a13_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=~models.Q(status=PayoutStatus.FAILED),
                name="unique_active_payout_per_order",
            ),
            models.CheckConstraint(
                condition=models.Q(gross_amount_cents__gt=0),
                name="payout_gross_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    net_amount_cents=models.F("gross_amount_cents")
                    - models.F("platform_fee_cents")
                ),
                name="payout_net_is_gross_minus_fee",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.net_amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Payout({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PayoutStatus.PROCESSING,
        target=PayoutStatus.COMPLETED,
    )
    def complete(self, transfer_id: str | None = None, response: dict | None = None):
        """
        Mark a dispatched payout as completed.

        Transition: PROCESSING -> COMPLETED

        Args:
            transfer_id: Stripe Transfer ID confirming the disbursement
            response: Raw transfer snapshot to keep for auditing
        """
        if transfer_id:
            self.stripe_transfer_id = transfer_id
        if response is not None:
            self.raw_response = response
        self.processed_at = timezone.now()

    @transition(
        field=status,
        source=PayoutStatus.PENDING,
        target=PayoutStatus.COMPLETED,
    )
    def complete_manual(self, reference: str, notes: str | None = None, operator=None):
        """
        Record a disbursement made outside Stripe.

        Transition: PENDING -> COMPLETED
        """
        self.manual_reference = reference
        self.manual_notes = notes
        self.operator = operator
        self.processed_at = timezone.now()

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.PROCESSING],
        target=PayoutStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Mark payout as failed.

        Transition: PENDING/PROCESSING -> FAILED
        """
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=PayoutStatus.FAILED,
        target=PayoutStatus.PENDING,
    )
    def retry(self):
        """
        Reopen a failed payout for one more dispatch attempt.

        Transition: FAILED -> PENDING
        """
        self.failed_at = None
        self.failure_reason = None
        self.stripe_transfer_id = None
        self.processing_started_at = None
        self.raw_response = {}

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_gateway_transfer(self) -> bool:
        return self.method == PayoutMethod.GATEWAY_TRANSFER

    @property
    def is_complete(self) -> bool:
        return self.status == PayoutStatus.COMPLETED

    @property
    def can_retry(self) -> bool:
        return self.status == PayoutStatus.FAILED

    @property
    def is_stuck_candidate(self) -> bool:
        """Processing without a transfer id: the dispatch outcome is unknown."""
        return self.status == PayoutStatus.PROCESSING and not self.stripe_transfer_id
