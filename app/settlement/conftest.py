"""
Pytest fixtures shared by all settlement tests.

Fixtures here apply to every test module under settlement/, including the
adapters/, services/ and webhooks/ test packages.

Usage:
    def test_dispatch(pending_payout, mock_stripe_adapter):
        mock_stripe_adapter.create_transfer.return_value = TransferResult(...)
        result = PayoutService.dispatch(pending_payout.id)
"""

from unittest.mock import MagicMock, patch

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from marketplace.tests.factories import MerchantFactory, OrderFactory
from settlement.state_machines import (
    OnboardingStatus,
    OrderPaymentStatus,
    PayoutMethod,
    PayoutStatus,
    WebhookEventStatus,
)
from settlement.tests.factories import (
    PaymentFactory,
    PayoutFactory,
    UserFactory,
    WebhookEventFactory,
)


# =============================================================================
# Infrastructure Mocks
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis():
    """
    Replace the Redis connection used by DistributedLock.

    Locks always acquire and release unless a test reconfigures
    mock_redis.set.return_value.
    """
    redis = MagicMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    with patch("settlement.locks.get_redis_connection", return_value=redis):
        yield redis


@pytest.fixture
def mock_stripe_adapter():
    """
    Inject a MagicMock adapter into every settlement service.

    Resets the services to the real StripeAdapter afterwards.
    """
    from settlement.services import (
        ConnectedAccountService,
        PaymentIntentService,
        PayoutReconciliationService,
        PayoutService,
    )

    services = [
        ConnectedAccountService,
        PaymentIntentService,
        PayoutService,
        PayoutReconciliationService,
    ]
    adapter = MagicMock()
    for service in services:
        service.set_stripe_adapter(adapter)
    try:
        yield adapter
    finally:
        for service in services:
            service.set_stripe_adapter(None)


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def operator(db):
    """Create an operator who completes manual payouts."""
    return UserFactory()


@pytest.fixture
def staff_operator(db):
    """Operator allowed to run the payout sweep."""
    return UserFactory(is_staff=True)


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client() -> APIClient:
    """Return unauthenticated API client."""
    return APIClient()


@pytest.fixture
def authenticated_client(operator) -> APIClient:
    """Return API client authenticated with JWT token."""
    client = APIClient()
    refresh = RefreshToken.for_user(operator)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


@pytest.fixture
def staff_client(staff_operator) -> APIClient:
    """Return API client authenticated as a staff user."""
    client = APIClient()
    refresh = RefreshToken.for_user(staff_operator)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


# =============================================================================
# Merchant Fixtures
# =============================================================================


@pytest.fixture
def us_merchant(db):
    """Onboarded US merchant (full service agreement, destination charges)."""
    return MerchantFactory(name="Acme Goods", country="US")


@pytest.fixture
def ph_merchant(db):
    """Onboarded Philippine merchant (recipient agreement, manual payouts)."""
    return MerchantFactory(name="Manila Crafts", country="PH")


@pytest.fixture
def new_merchant(db):
    """US merchant without a connected account."""
    return MerchantFactory(
        name="Fresh Start",
        stripe_account_id=None,
        onboarding_status=OnboardingStatus.NONE,
        charges_enabled=False,
        payouts_enabled=False,
    )


# =============================================================================
# Order and Payment Fixtures
# =============================================================================


@pytest.fixture
def unpaid_order(db, us_merchant):
    """$100.00 order awaiting payment."""
    return OrderFactory(merchant=us_merchant)


@pytest.fixture
def paid_order(db, ph_merchant):
    """$100.00 paid order from a platform-charge merchant."""
    return OrderFactory(
        merchant=ph_merchant,
        payment_status=OrderPaymentStatus.COMPLETED,
    )


@pytest.fixture
def pending_payment(db, unpaid_order):
    """Payment awaiting buyer action on the unpaid order."""
    return PaymentFactory(
        order=unpaid_order,
        stripe_payment_intent_id="pi_pending_1",
    )


# =============================================================================
# Payout State Fixtures
# =============================================================================


@pytest.fixture
def pending_payout(db, us_merchant):
    """Pending gateway-transfer payout for an onboarded merchant."""
    order = OrderFactory(
        merchant=us_merchant, payment_status=OrderPaymentStatus.COMPLETED
    )
    return PayoutFactory(order=order)


@pytest.fixture
def processing_payout(db, us_merchant):
    """Payout claimed for dispatch whose outcome is not yet known."""
    order = OrderFactory(
        merchant=us_merchant, payment_status=OrderPaymentStatus.COMPLETED
    )
    return PayoutFactory(
        order=order,
        status=PayoutStatus.PROCESSING,
        dispatch_attempts=1,
    )


@pytest.fixture
def failed_payout(db, us_merchant):
    """Gateway payout whose last dispatch was declined."""
    order = OrderFactory(
        merchant=us_merchant, payment_status=OrderPaymentStatus.COMPLETED
    )
    return PayoutFactory(
        order=order,
        status=PayoutStatus.FAILED,
        dispatch_attempts=1,
        failure_reason="Insufficient platform balance",
    )


@pytest.fixture
def manual_payout(db, ph_merchant):
    """Pending manual payout for a Philippine merchant."""
    order = OrderFactory(
        merchant=ph_merchant, payment_status=OrderPaymentStatus.COMPLETED
    )
    return PayoutFactory(order=order, method=PayoutMethod.MANUAL)


# =============================================================================
# Webhook Fixtures
# =============================================================================


@pytest.fixture
def pending_webhook(db):
    """Recorded webhook event awaiting processing."""
    return WebhookEventFactory()


@pytest.fixture
def failed_webhook(db):
    """Webhook event that failed once and can be replayed."""
    return WebhookEventFactory(
        status=WebhookEventStatus.FAILED,
        error_message="Handler raised",
        retry_count=1,
    )
