"""
Tests for webhook event handlers.

Each handler is driven through dispatch_webhook with a recorded event.
"""

import pytest

from marketplace.models import Merchant, Order
from marketplace.tests.factories import MerchantFactory, OrderFactory
from settlement.models import Payment, Payout
from settlement.state_machines import (
    OnboardingStatus,
    OrderPaymentStatus,
    PaymentStatus,
    PayoutStatus,
)
from settlement.tests.factories import PaymentFactory, WebhookEventFactory
from settlement.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook


def recorded_event(event_type, obj, **extra):
    payload = {"id": "evt_handler", "type": event_type, "data": {"object": obj}, **extra}
    return WebhookEventFactory(event_type=event_type, payload=payload)


class TestRegistry:
    def test_all_event_types_registered(self):
        assert set(WEBHOOK_HANDLERS) >= {
            "payment_intent.succeeded",
            "payment_intent.payment_failed",
            "checkout.session.completed",
            "account.updated",
            "account.application.deauthorized",
            "transfer.created",
        }

    def test_unknown_type_acknowledged(self, db):
        """Should succeed without doing anything for unknown types."""
        event = recorded_event("customer.created", {"id": "cus_1"})

        result = dispatch_webhook(event)

        assert result.success is True
        assert result.data is None


class TestPaymentIntentSucceeded:
    """Tests for the payment_intent.succeeded handler."""

    def test_completes_payment_and_order(self, pending_payment):
        """Should mark the payment succeeded and the order completed."""
        event = recorded_event("payment_intent.succeeded", {"id": "pi_pending_1"})

        result = dispatch_webhook(event)

        assert result.success is True
        assert Payment.objects.get(pk=pending_payment.pk).status == PaymentStatus.SUCCEEDED
        order = Order.objects.get(pk=pending_payment.order_id)
        assert order.payment_status == OrderPaymentStatus.COMPLETED

    def test_unknown_intent_acknowledged(self, db):
        """Should acknowledge intents with no local payment."""
        event = recorded_event("payment_intent.succeeded", {"id": "pi_unknown"})

        result = dispatch_webhook(event)

        assert result.success is True

    def test_missing_intent_id_acknowledged(self, db):
        event = recorded_event("payment_intent.succeeded", {})

        assert dispatch_webhook(event).success is True

    def test_second_intent_for_paid_order_acknowledged(self, pending_payment):
        """Should leave a second intent unapplied once the order is paid."""
        first = PaymentFactory(
            order=pending_payment.order,
            status=PaymentStatus.SUCCEEDED,
            stripe_payment_intent_id="pi_first",
        )
        event = recorded_event("payment_intent.succeeded", {"id": "pi_pending_1"})

        result = dispatch_webhook(event)

        assert result.success is True
        assert Payment.objects.get(pk=pending_payment.pk).status == PaymentStatus.REQUIRES_ACTION
        succeeded = Payment.objects.filter(
            order=pending_payment.order, status=PaymentStatus.SUCCEEDED
        )
        assert list(succeeded) == [first]


class TestPaymentIntentFailed:
    """Tests for the payment_intent.payment_failed handler."""

    def test_records_last_error(self, pending_payment):
        """Should store Stripe's last payment error message."""
        event = recorded_event(
            "payment_intent.payment_failed",
            {"id": "pi_pending_1", "last_payment_error": {"message": "Your card was declined."}},
        )

        dispatch_webhook(event)

        payment = Payment.objects.get(pk=pending_payment.pk)
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == "Your card was declined."

    def test_default_reason(self, pending_payment):
        event = recorded_event("payment_intent.payment_failed", {"id": "pi_pending_1"})

        dispatch_webhook(event)

        assert Payment.objects.get(pk=pending_payment.pk).failure_reason == "Payment failed"


class TestCheckoutSessionCompleted:
    """Tests for the checkout.session.completed handler."""

    def _session(self, **fields):
        return {
            "id": "cs_test_1",
            "object": "checkout.session",
            "payment_status": "paid",
            "payment_intent": "pi_checkout_1",
            "amount_total": 10000,
            "currency": "usd",
            "customer_details": {"email": "buyer@example.com"},
            **fields,
        }

    def test_resolves_order_from_metadata(self, unpaid_order):
        """Should complete the order named in session metadata."""
        event = recorded_event(
            "checkout.session.completed",
            self._session(metadata={"order_id": str(unpaid_order.id)}),
        )

        result = dispatch_webhook(event)

        assert result.data is True
        order = Order.objects.get(pk=unpaid_order.pk)
        assert order.payment_status == OrderPaymentStatus.COMPLETED
        payment = Payment.objects.get(stripe_payment_intent_id="pi_checkout_1")
        assert payment.customer_email == "buyer@example.com"

    def test_resolves_order_from_client_reference_number(self, unpaid_order):
        """Should accept an order number as client_reference_id."""
        event = recorded_event(
            "checkout.session.completed",
            self._session(client_reference_id=unpaid_order.order_number),
        )

        dispatch_webhook(event)

        order = Order.objects.get(pk=unpaid_order.pk)
        assert order.payment_status == OrderPaymentStatus.COMPLETED

    def test_resolves_order_from_payment_intent(self, us_merchant):
        order = OrderFactory(merchant=us_merchant, stripe_payment_intent_id="pi_checkout_1")
        event = recorded_event("checkout.session.completed", self._session())

        dispatch_webhook(event)

        assert Order.objects.get(pk=order.pk).payment_status == OrderPaymentStatus.COMPLETED

    def test_unpaid_session_ignored(self, unpaid_order):
        """Should wait for asynchronous payment methods to settle."""
        event = recorded_event(
            "checkout.session.completed",
            self._session(
                payment_status="unpaid", metadata={"order_id": str(unpaid_order.id)}
            ),
        )

        result = dispatch_webhook(event)

        assert result.success is True
        assert Order.objects.get(pk=unpaid_order.pk).payment_status == OrderPaymentStatus.UNPAID

    def test_unresolvable_session_acknowledged(self, db):
        """Should acknowledge sessions that reference nothing we know."""
        event = recorded_event(
            "checkout.session.completed",
            self._session(client_reference_id="ORD-NOPE"),
        )

        result = dispatch_webhook(event)

        assert result.success is True
        assert not Payment.objects.exists()

    def test_session_without_intent_leaves_order_open(self, unpaid_order):
        """Should not complete an order with nothing to record against it."""
        event = recorded_event(
            "checkout.session.completed",
            self._session(payment_intent=None, metadata={"order_id": str(unpaid_order.id)}),
        )

        result = dispatch_webhook(event)

        assert result.success is True
        assert Order.objects.get(pk=unpaid_order.pk).payment_status == OrderPaymentStatus.UNPAID
        assert not Payment.objects.exists()

    def test_second_session_for_paid_order_acknowledged(self, unpaid_order):
        """Should acknowledge without recording a second succeeded payment."""
        PaymentFactory(
            order=unpaid_order,
            status=PaymentStatus.SUCCEEDED,
            stripe_payment_intent_id="pi_first",
        )
        event = recorded_event(
            "checkout.session.completed",
            self._session(metadata={"order_id": str(unpaid_order.id)}),
        )

        result = dispatch_webhook(event)

        assert result.success is True
        assert not Payment.objects.filter(stripe_payment_intent_id="pi_checkout_1").exists()
        assert Payment.objects.filter(status=PaymentStatus.SUCCEEDED).count() == 1


class TestAccountEvents:
    """Tests for account.updated and account.application.deauthorized."""

    def test_account_updated(self, db):
        merchant = MerchantFactory(onboarding_status=OnboardingStatus.PENDING)
        event = recorded_event(
            "account.updated",
            {
                "id": merchant.stripe_account_id,
                "details_submitted": True,
                "charges_enabled": True,
                "payouts_enabled": True,
            },
        )

        result = dispatch_webhook(event)

        assert result.data == "completed"
        fresh = Merchant.objects.get(pk=merchant.pk)
        assert fresh.onboarding_status == OnboardingStatus.COMPLETED

    def test_account_deauthorized(self, us_merchant):
        event = recorded_event(
            "account.application.deauthorized",
            {"id": "ca_application"},
            account=us_merchant.stripe_account_id,
        )

        dispatch_webhook(event)

        fresh = Merchant.objects.get(pk=us_merchant.pk)
        assert fresh.stripe_account_id is None
        assert fresh.onboarding_status == OnboardingStatus.NONE


class TestTransferCreated:
    """Tests for the transfer.created handler."""

    def test_completes_processing_payout(self, processing_payout):
        event = recorded_event(
            "transfer.created",
            {
                "id": "tr_webhook_1",
                "object": "transfer",
                "metadata": {"payout_id": str(processing_payout.id)},
            },
        )

        result = dispatch_webhook(event)

        assert result.success is True
        payout = Payout.objects.get(pk=processing_payout.pk)
        assert payout.status == PayoutStatus.COMPLETED
        assert payout.stripe_transfer_id == "tr_webhook_1"

    @pytest.mark.parametrize("metadata", [{}, {"order_id": "x"}])
    def test_unlinked_transfer_acknowledged(self, db, metadata):
        event = recorded_event(
            "transfer.created", {"id": "tr_other", "metadata": metadata}
        )

        assert dispatch_webhook(event).success is True
