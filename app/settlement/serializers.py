"""
Serializers for the settlement API.

Request serializers validate input before it reaches a service; response
serializers render models and the service result dataclasses.
"""

from __future__ import annotations

from rest_framework import serializers

from settlement.models import Payment, Payout
from settlement.state_machines import PayoutMethod


# =============================================================================
# Payments
# =============================================================================


class PaymentSerializer(serializers.ModelSerializer):
    """Read-only representation of a Payment."""

    merchant_name = serializers.CharField(source="merchant.name", read_only=True)
    order_number = serializers.CharField(
        source="order.order_number", read_only=True, default=None
    )

    class Meta:
        model = Payment
        fields = [
            "id",
            "merchant",
            "merchant_name",
            "order",
            "order_number",
            "amount_cents",
            "currency",
            "platform_fee_percent",
            "platform_fee_cents",
            "merchant_amount_cents",
            "charge_mode",
            "stripe_payment_intent_id",
            "status",
            "customer_email",
            "description",
            "succeeded_at",
            "failed_at",
            "failure_reason",
            "created_at",
        ]
        read_only_fields = fields


class AdHocPaymentRequestSerializer(serializers.Serializer):
    merchant_id = serializers.UUIDField()
    amount_cents = serializers.IntegerField(min_value=1)
    currency = serializers.CharField(max_length=3, default="usd")
    customer_email = serializers.EmailField(required=False, allow_blank=True, default="")
    fee_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, required=False, allow_null=True
    )
    description = serializers.CharField(
        max_length=500, required=False, allow_blank=True, allow_null=True
    )
    metadata = serializers.DictField(
        child=serializers.CharField(max_length=500), required=False
    )


class OrderPaymentRequestSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    customer_email = serializers.EmailField(required=False, allow_blank=True, default="")
    fee_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, required=False, allow_null=True
    )


class IssuedPaymentSerializer(serializers.Serializer):
    client_secret = serializers.CharField(allow_null=True)
    payment_id = serializers.UUIDField()
    payment_intent_id = serializers.CharField()


class ConfirmPaymentRequestSerializer(serializers.Serializer):
    payment_intent_id = serializers.CharField(max_length=255)
    order_id = serializers.UUIDField(required=False, allow_null=True)


class PaymentConfirmationSerializer(serializers.Serializer):
    status = serializers.CharField()
    payment = PaymentSerializer()
    order_updated = serializers.BooleanField()


class PaymentDetailSerializer(PaymentSerializer):
    """
    A Payment with its gateway snapshot and the payouts of its order.

    payouts is empty for ad-hoc payments and for destination charges.
    """

    payouts = serializers.SerializerMethodField()

    class Meta(PaymentSerializer.Meta):
        fields = [
            *PaymentSerializer.Meta.fields,
            "metadata",
            "raw_response",
            "updated_at",
            "payouts",
        ]
        read_only_fields = fields

    def get_payouts(self, payment) -> list[dict]:
        if payment.order_id is None:
            return []
        return PayoutSerializer(payment.order.payouts.all(), many=True).data


# =============================================================================
# Payouts
# =============================================================================


class PayoutSerializer(serializers.ModelSerializer):
    """Read-only representation of a Payout."""

    merchant_name = serializers.CharField(source="merchant.name", read_only=True)
    order_number = serializers.CharField(source="order.order_number", read_only=True)

    class Meta:
        model = Payout
        fields = [
            "id",
            "order",
            "order_number",
            "merchant",
            "merchant_name",
            "gross_amount_cents",
            "platform_fee_cents",
            "net_amount_cents",
            "fee_percent",
            "currency",
            "method",
            "status",
            "stripe_transfer_id",
            "dispatch_attempts",
            "operator",
            "manual_reference",
            "manual_notes",
            "processing_started_at",
            "processed_at",
            "failed_at",
            "failure_reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PayoutFromOrderRequestSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    fee_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, required=False, allow_null=True
    )
    method = serializers.ChoiceField(
        choices=PayoutMethod.choices, required=False, allow_null=True
    )


class CompleteManualPayoutRequestSerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class StatisticsQuerySerializer(serializers.Serializer):
    """Date range and merchant filter shared by the statistics endpoints."""

    date_from = serializers.DateTimeField(required=False)
    date_to = serializers.DateTimeField(required=False)
    merchant = serializers.UUIDField(required=False)

    def validate(self, attrs):
        date_from, date_to = attrs.get("date_from"), attrs.get("date_to")
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError(
                {"date_to": "Must not be earlier than date_from."}
            )
        return attrs


class ReconcileRequestSerializer(serializers.Serializer):
    older_than_minutes = serializers.IntegerField(min_value=0, required=False)


class SweepResultSerializer(serializers.Serializer):
    examined = serializers.IntegerField()
    completed = serializers.IntegerField()
    failed = serializers.IntegerField()
    completed_payout_ids = serializers.ListField(child=serializers.CharField())
    failed_payout_ids = serializers.ListField(child=serializers.CharField())


# =============================================================================
# Connected Accounts
# =============================================================================


class CreateAccountRequestSerializer(serializers.Serializer):
    """
    Business information for a new connected account.

    external_account is a bank token (btok_xxx) or a bank account object;
    persons are Stripe person payloads (first_name, relationship, ...).
    """

    email = serializers.EmailField(required=False)
    country = serializers.CharField(min_length=2, max_length=2, required=False)
    business_name = serializers.CharField(max_length=255, required=False)
    phone = serializers.CharField(max_length=32, required=False)
    external_account = serializers.JSONField(required=False)
    persons = serializers.ListField(child=serializers.DictField(), required=False)


class EnrichmentOutcomeSerializer(serializers.Serializer):
    name = serializers.CharField()
    succeeded = serializers.BooleanField()
    error = serializers.CharField(allow_null=True)


class AccountCreationResultSerializer(serializers.Serializer):
    account_id = serializers.CharField()
    capabilities = serializers.DictField()
    enrichment = EnrichmentOutcomeSerializer(many=True)
    failed_enrichments = EnrichmentOutcomeSerializer(many=True)


class AccountStatusSerializer(serializers.Serializer):
    account_id = serializers.CharField()
    onboarding_status = serializers.CharField()
    details_submitted = serializers.BooleanField()
    charges_enabled = serializers.BooleanField()
    payouts_enabled = serializers.BooleanField()
    capabilities = serializers.DictField()
    requirements = serializers.DictField()


class OnboardingLinkRequestSerializer(serializers.Serializer):
    refresh_url = serializers.URLField(required=False)
    return_url = serializers.URLField(required=False)


class LinkSerializer(serializers.Serializer):
    url = serializers.URLField()
    expires_at = serializers.IntegerField(required=False, allow_null=True)
