"""
Tests for the settlement REST API.

Service behaviour is covered in services/tests; these tests check request
validation, authentication and the mapping of failures to HTTP status.
"""

import uuid

from django.urls import reverse
from rest_framework import status

from settlement.adapters import AccountLinkResult, PaymentIntentResult
from settlement.models import Payment, Payout
from settlement.state_machines import PaymentStatus, PayoutStatus
from settlement.tests.factories import PaymentFactory, PayoutFactory


# =============================================================================
# Authentication
# =============================================================================


class TestAuthentication:
    def test_requires_authentication(self, api_client, db):
        response = api_client.get(reverse("settlement:payout_list"))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_reconcile_requires_staff(self, authenticated_client):
        """Should refuse the sweep to non-staff operators."""
        response = authenticated_client.post(reverse("settlement:payout_reconcile"))

        assert response.status_code == status.HTTP_403_FORBIDDEN


# =============================================================================
# Payments
# =============================================================================


class TestPaymentIntentEndpoints:
    """Tests for the payment intent endpoints."""

    def test_create_ad_hoc_intent(self, authenticated_client, us_merchant, mock_stripe_adapter):
        mock_stripe_adapter.create_payment_intent.return_value = PaymentIntentResult(
            id="pi_api_1",
            status="requires_payment_method",
            amount_cents=2500,
            currency="usd",
            client_secret="pi_api_1_secret",
        )

        response = authenticated_client.post(
            reverse("settlement:payment_intent_create"),
            {"merchant_id": str(us_merchant.id), "amount_cents": 2500},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["client_secret"] == "pi_api_1_secret"
        assert response.data["payment_intent_id"] == "pi_api_1"
        payment = Payment.objects.get(pk=response.data["payment_id"])
        assert payment.platform_fee_cents == 198

    def test_invalid_amount(self, authenticated_client, us_merchant):
        """Should reject non-positive amounts before reaching the service."""
        response = authenticated_client.post(
            reverse("settlement:payment_intent_create"),
            {"merchant_id": str(us_merchant.id), "amount_cents": 0},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "VALIDATION_ERROR"
        assert "amount_cents" in response.data["errors"]

    def test_unknown_merchant(self, authenticated_client, mock_stripe_adapter):
        response = authenticated_client.post(
            reverse("settlement:payment_intent_create"),
            {"merchant_id": str(uuid.uuid4()), "amount_cents": 1000},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data == {
            "success": False,
            "error": "Merchant not found",
            "error_code": "MERCHANT_NOT_FOUND",
        }
        mock_stripe_adapter.create_payment_intent.assert_not_called()

    def test_confirm_unknown_intent(self, authenticated_client, db):
        response = authenticated_client.post(
            reverse("settlement:payment_confirm"),
            {"payment_intent_id": "pi_nope"},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_list_payments(self, authenticated_client, pending_payment):
        response = authenticated_client.get(
            reverse("settlement:payment_list"), {"status": PaymentStatus.REQUIRES_ACTION}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["count"] == 1
        assert response.data["results"][0]["stripe_payment_intent_id"] == "pi_pending_1"

    def test_payment_detail_includes_payouts(self, authenticated_client, paid_order):
        payment = PaymentFactory(
            order=paid_order, status=PaymentStatus.SUCCEEDED, stripe_payment_intent_id="pi_paid"
        )
        payout = PayoutFactory(order=paid_order)

        response = authenticated_client.get(
            reverse("settlement:payment_detail", args=[payment.id])
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["stripe_payment_intent_id"] == "pi_paid"
        assert [p["id"] for p in response.data["payouts"]] == [str(payout.id)]

    def test_payment_detail_not_found(self, authenticated_client):
        response = authenticated_client.get(
            reverse("settlement:payment_detail", args=[uuid.uuid4()])
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "PAYMENT_NOT_FOUND"

    def test_payment_statistics(self, authenticated_client, pending_payment):
        response = authenticated_client.get(reverse("settlement:payment_statistics"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["count"] == 1
        assert response.data["requires_action_count"] == 1
        assert response.data["revenue_cents"] == 0

    def test_payment_statistics_rejects_inverted_range(self, authenticated_client):
        response = authenticated_client.get(
            reverse("settlement:payment_statistics"),
            {"date_from": "2026-03-02T00:00:00Z", "date_to": "2026-03-01T00:00:00Z"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "VALIDATION_ERROR"


# =============================================================================
# Payouts
# =============================================================================


class TestPayoutEndpoints:
    """Tests for the payout endpoints."""

    def test_list_paginates(self, authenticated_client, us_merchant):
        PayoutFactory.create_batch(3, order__merchant=us_merchant)

        response = authenticated_client.get(reverse("settlement:payout_list"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["count"] == 3
        assert len(response.data["results"]) == 3
        assert response.data["results"][0]["merchant_name"] == "Acme Goods"

    def test_detail(self, authenticated_client, pending_payout):
        response = authenticated_client.get(
            reverse("settlement:payout_detail", args=[pending_payout.id])
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["net_amount_cents"] == 9210

    def test_detail_not_found(self, authenticated_client):
        response = authenticated_client.get(
            reverse("settlement:payout_detail", args=[uuid.uuid4()])
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "PAYOUT_NOT_FOUND"

    def test_dispatch_wrong_state(self, authenticated_client, failed_payout, mock_stripe_adapter):
        """Should report a non-pending payout as a 400."""
        response = authenticated_client.post(
            reverse("settlement:payout_dispatch", args=[failed_payout.id])
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "WRONG_STATE"
        mock_stripe_adapter.create_transfer.assert_not_called()

    def test_complete_manual_records_operator(
        self, authenticated_client, manual_payout, operator
    ):
        response = authenticated_client.post(
            reverse("settlement:payout_complete_manual", args=[manual_payout.id]),
            {"reference": "BDO-2026-0042", "notes": "Paid by bank transfer"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == PayoutStatus.COMPLETED
        payout = Payout.objects.get(pk=manual_payout.pk)
        assert payout.operator_id == operator.pk
        assert payout.manual_reference == "BDO-2026-0042"

    def test_complete_manual_requires_reference(self, authenticated_client, manual_payout):
        response = authenticated_client.post(
            reverse("settlement:payout_complete_manual", args=[manual_payout.id]),
            {},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "reference" in response.data["errors"]

    def test_statistics_rejects_inverted_range(self, authenticated_client):
        response = authenticated_client.get(
            reverse("settlement:payout_statistics"),
            {"date_from": "2026-03-02T00:00:00Z", "date_to": "2026-03-01T00:00:00Z"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "VALIDATION_ERROR"

    def test_statistics(self, authenticated_client, pending_payout, manual_payout):
        response = authenticated_client.get(reverse("settlement:payout_statistics"))

        assert response.status_code == status.HTTP_200_OK


class TestReconcileEndpoint:
    """Tests for POST /api/v1/settlement/payouts/reconcile/."""

    def test_staff_runs_sweep(self, staff_client, mock_stripe_adapter):
        response = staff_client.post(
            reverse("settlement:payout_reconcile"),
            {"older_than_minutes": 10},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["examined"] == 0

    def test_concurrent_sweep_conflict(self, staff_client, mock_redis):
        """Should map a held sweep lock to 409."""
        mock_redis.set.return_value = False

        response = staff_client.post(reverse("settlement:payout_reconcile"))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "LOCK_ACQUISITION_FAILED"


# =============================================================================
# Connected Accounts
# =============================================================================


class TestConnectEndpoints:
    """Tests for the connected account endpoints."""

    def test_onboarding_link(self, authenticated_client, us_merchant, mock_stripe_adapter):
        mock_stripe_adapter.create_account_link.return_value = AccountLinkResult(
            url="https://connect.stripe.com/setup/e/acct_1", expires_at=1700000000
        )

        response = authenticated_client.post(
            reverse("settlement:connect_onboarding_link", args=[us_merchant.id]),
            {},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["url"] == "https://connect.stripe.com/setup/e/acct_1"

    def test_login_link_without_account(
        self, authenticated_client, new_merchant, mock_stripe_adapter
    ):
        response = authenticated_client.post(
            reverse("settlement:connect_login_link", args=[new_merchant.id])
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "NO_ACCOUNT"

    def test_create_account_conflict(
        self, authenticated_client, new_merchant, mock_stripe_adapter, mock_redis
    ):
        """Should return 409 while another request creates the account."""
        mock_redis.set.return_value = False

        response = authenticated_client.post(
            reverse("settlement:connect_account", args=[new_merchant.id]),
            {"email": "owner@example.com", "country": "us"},
            format="json",
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        mock_stripe_adapter.create_account.assert_not_called()

    def test_status_unknown_merchant(self, authenticated_client, mock_stripe_adapter):
        response = authenticated_client.get(
            reverse("settlement:connect_status", args=[uuid.uuid4()])
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
