import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("marketplace", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "stripe_event_id",
                    models.CharField(
                        help_text="Stripe evt_ id; one row per event",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Dotted Stripe event type",
                        max_length=100,
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        choices=[("general", "General"), ("payments", "Payments")],
                        default="general",
                        help_text="Webhook endpoint that received the event",
                        max_length=20,
                    ),
                ),
                ("payload", models.JSONField(help_text="Verified event body as received")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Reconciliation status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Set when a handler finished without error",
                        null=True,
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Last handler failure",
                        null=True,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0, help_text="Handler attempts so far"
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="settlement__status_7b1c3e_idx",
                    ),
                    models.Index(
                        fields=["event_type", "created_at"],
                        name="settlement__event_t_4f0a2d_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Flexible key-value metadata storage",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Total amount in smallest currency unit"
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "platform_fee_percent",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Platform fee percentage applied to this payment",
                        max_digits=5,
                    ),
                ),
                (
                    "platform_fee_cents",
                    models.PositiveBigIntegerField(
                        help_text="Platform fee in smallest currency unit"
                    ),
                ),
                (
                    "merchant_amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Merchant share in smallest currency unit"
                    ),
                ),
                (
                    "charge_mode",
                    models.CharField(
                        choices=[
                            ("destination", "Destination Charge"),
                            ("platform", "Platform Charge"),
                        ],
                        default="destination",
                        help_text="How the merchant share is routed",
                        max_length=20,
                    ),
                ),
                (
                    "stripe_payment_intent_id",
                    models.CharField(
                        help_text="Stripe PaymentIntent ID (pi_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("requires_action", "Requires Action"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="requires_action",
                        help_text="Payment status",
                        max_length=20,
                    ),
                ),
                (
                    "customer_email",
                    models.EmailField(
                        blank=True,
                        default="",
                        help_text="Buyer email sent as the receipt address",
                        max_length=254,
                    ),
                ),
                ("description", models.CharField(blank=True, default="", max_length=500)),
                (
                    "raw_response",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Snapshot of the Stripe PaymentIntent at creation",
                    ),
                ),
                ("succeeded_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True, help_text="Gateway failure message", null=True
                    ),
                ),
                (
                    "merchant",
                    models.ForeignKey(
                        help_text="Merchant receiving the merchant share",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="marketplace.merchant",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        help_text="Order this payment settles. Null for ad-hoc payments.",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="marketplace.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["merchant", "status"],
                        name="settlement__merchan_9d2e41_idx",
                    ),
                    models.Index(
                        fields=["order", "status"],
                        name="settlement__order_i_3a8f5c_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gt", 0)),
                        name="payment_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "amount_cents",
                                models.F("platform_fee_cents")
                                + models.F("merchant_amount_cents"),
                            )
                        ),
                        name="payment_split_sums_to_total",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status", "succeeded")),
                        fields=("order",),
                        name="unique_succeeded_payment_per_order",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payout",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Flexible key-value metadata storage",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "gross_amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Order total in smallest currency unit"
                    ),
                ),
                (
                    "platform_fee_cents",
                    models.PositiveBigIntegerField(help_text="Platform fee retained"),
                ),
                (
                    "net_amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Amount paid to the merchant (gross - fee)"
                    ),
                ),
                (
                    "fee_percent",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Platform fee percentage applied",
                        max_digits=5,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("gateway_transfer", "Stripe Transfer"),
                            ("manual", "Manual Disbursement"),
                        ],
                        help_text="How the payout reaches the merchant",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payout (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "stripe_transfer_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Transfer ID (tr_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "dispatch_attempts",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Number of times the payout was claimed for dispatch",
                    ),
                ),
                (
                    "raw_response",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Snapshot of the Stripe Transfer",
                    ),
                ),
                (
                    "manual_reference",
                    models.CharField(
                        blank=True,
                        help_text="Bank or remittance reference for manual payouts",
                        max_length=255,
                        null=True,
                    ),
                ),
                ("manual_notes", models.TextField(blank=True, null=True)),
                (
                    "processing_started_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When the current dispatch attempt started",
                        null=True,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the payout completed", null=True
                    ),
                ),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        help_text="Detailed reason if payout failed",
                        null=True,
                    ),
                ),
                (
                    "merchant",
                    models.ForeignKey(
                        help_text="Merchant receiving the payout",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payouts",
                        to="marketplace.merchant",
                    ),
                ),
                (
                    "operator",
                    models.ForeignKey(
                        blank=True,
                        help_text="Operator who completed a manual payout",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="completed_payouts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order whose proceeds are paid out",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payouts",
                        to="marketplace.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout",
                "verbose_name_plural": "Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["merchant", "status"],
                        name="settlement__merchan_51c0b7_idx",
                    ),
                    models.Index(
                        fields=["status", "processing_started_at"],
                        name="settlement__status_e28d90_idx",
                    ),
                    models.Index(
                        fields=["method", "status"],
                        name="settlement__method_6b4a13_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "failed"), _negated=True),
                        fields=("order",),
                        name="unique_active_payout_per_order",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("gross_amount_cents__gt", 0)),
                        name="payout_gross_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "net_amount_cents",
                                models.F("gross_amount_cents")
                                - models.F("platform_fee_cents"),
                            )
                        ),
                        name="payout_net_is_gross_minus_fee",
                    ),
                ],
            },
        ),
    ]
