"""
Tests for the Stripe webhook endpoints.

Payloads are signed with the endpoint secrets and verified by the real
Stripe SDK.
"""

import pytest
from django.urls import reverse

from marketplace.models import Merchant, Order
from settlement.models import Payment, WebhookEvent
from settlement.state_machines import (
    OnboardingStatus,
    OrderPaymentStatus,
    PaymentStatus,
    WebhookEventStatus,
)
from settlement.webhooks.tests.events import build_event


@pytest.mark.django_db
class TestPaymentsEndpoint:
    """Tests for POST /api/v1/settlement/webhooks/stripe/payments/."""

    def test_missing_signature(self, client):
        response = client.post(
            reverse("settlement:stripe_payments_webhook"),
            data=b"{}",
            content_type="application/json",
        )

        assert response.status_code == 400
        assert response.content == b"Missing signature"

    def test_invalid_signature_persists_nothing(self, signed_post):
        """Should reject events signed with the wrong secret."""
        event = build_event("payment_intent.succeeded", {"id": "pi_1"})

        response = signed_post("stripe_payments_webhook", event, secret="whsec_wrong")

        assert response.status_code == 400
        assert not WebhookEvent.objects.exists()

    def test_general_secret_rejected_on_payments_endpoint(self, signed_post):
        """Should verify with the secret of the receiving endpoint only."""
        event = build_event("payment_intent.succeeded", {"id": "pi_1"})

        response = signed_post(
            "stripe_payments_webhook", event, secret="whsec_general_test"
        )

        assert response.status_code == 400

    def test_garbage_signature(self, signed_post):
        event = build_event("payment_intent.succeeded", {"id": "pi_1"})

        response = signed_post("stripe_payments_webhook", event, signature="not-a-signature")

        assert response.status_code == 400

    def test_payment_succeeded_completes_order(self, signed_post, pending_payment):
        """Should apply a signed payment_intent.succeeded event."""
        event = build_event(
            "payment_intent.succeeded",
            {"id": "pi_pending_1", "object": "payment_intent", "status": "succeeded"},
            event_id="evt_pay_1",
        )

        response = signed_post("stripe_payments_webhook", event)

        assert response.status_code == 200
        assert response.content == b"Accepted"
        recorded = WebhookEvent.objects.get(stripe_event_id="evt_pay_1")
        assert recorded.status == WebhookEventStatus.PROCESSED
        assert recorded.source == "payments"
        assert Payment.objects.get(pk=pending_payment.pk).status == PaymentStatus.SUCCEEDED
        order = Order.objects.get(pk=pending_payment.order_id)
        assert order.payment_status == OrderPaymentStatus.COMPLETED

    def test_duplicate_delivery(self, signed_post, pending_payment):
        """Should acknowledge a redelivered event without reapplying it."""
        event = build_event(
            "payment_intent.succeeded", {"id": "pi_pending_1"}, event_id="evt_pay_dup"
        )

        signed_post("stripe_payments_webhook", event)
        response = signed_post("stripe_payments_webhook", event)

        assert response.status_code == 200
        assert response.content == b"Already processed"
        assert WebhookEvent.objects.filter(stripe_event_id="evt_pay_dup").count() == 1

    def test_unknown_type_accepted(self, signed_post):
        event = build_event("charge.refunded", {"id": "ch_1"}, event_id="evt_refund")

        response = signed_post("stripe_payments_webhook", event)

        assert response.status_code == 200
        recorded = WebhookEvent.objects.get(stripe_event_id="evt_refund")
        assert recorded.status == WebhookEventStatus.PROCESSED

    def test_get_not_allowed(self, client):
        response = client.get(reverse("settlement:stripe_payments_webhook"))

        assert response.status_code == 405


@pytest.mark.django_db
class TestGeneralEndpoint:
    """Tests for POST /api/v1/settlement/webhooks/stripe/."""

    def test_account_updated(self, signed_post, new_merchant):
        Merchant.objects.filter(pk=new_merchant.pk).update(
            stripe_account_id="acct_webhook_1",
            onboarding_status=OnboardingStatus.PENDING,
        )
        event = build_event(
            "account.updated",
            {
                "id": "acct_webhook_1",
                "object": "account",
                "details_submitted": True,
                "charges_enabled": True,
                "payouts_enabled": False,
            },
            event_id="evt_acct_1",
        )

        response = signed_post("stripe_webhook", event)

        assert response.status_code == 200
        merchant = Merchant.objects.get(pk=new_merchant.pk)
        assert merchant.onboarding_status == OnboardingStatus.COMPLETED
        assert merchant.charges_enabled is True
        assert merchant.payouts_enabled is False

    def test_payments_secret_rejected_on_general_endpoint(self, signed_post):
        event = build_event("account.updated", {"id": "acct_1"})

        response = signed_post("stripe_webhook", event, secret="whsec_payments_test")

        assert response.status_code == 400
        assert not WebhookEvent.objects.exists()

    def test_unknown_account_acknowledged(self, signed_post):
        event = build_event(
            "account.updated", {"id": "acct_nobody"}, event_id="evt_acct_unknown"
        )

        response = signed_post("stripe_webhook", event)

        assert response.status_code == 200
        recorded = WebhookEvent.objects.get(stripe_event_id="evt_acct_unknown")
        assert recorded.status == WebhookEventStatus.PROCESSED
