"""
Tests for Merchant and Order models.
"""

from decimal import Decimal

import pytest
from django.db import IntegrityError

from marketplace.models import Merchant
from marketplace.tests.factories import MerchantFactory, OrderFactory
from settlement.state_machines import OnboardingStatus, OrderPaymentStatus


class TestMerchantModel:
    """Tests for Merchant model."""

    def test_country_is_uppercased(self, db):
        merchant = MerchantFactory(country="ph")

        assert Merchant.objects.get(pk=merchant.pk).country == "PH"

    def test_new_merchant_defaults(self, db):
        merchant = Merchant.objects.create(
            name="Blank", email="blank@example.com", country="US"
        )

        assert merchant.onboarding_status == OnboardingStatus.NONE
        assert merchant.has_connected_account is False
        assert merchant.is_onboarded is False
        assert merchant.charges_enabled is False

    def test_pending_onboarding_is_not_onboarded(self, db):
        merchant = MerchantFactory(onboarding_status=OnboardingStatus.PENDING)

        assert merchant.has_connected_account is True
        assert merchant.is_onboarded is False

    def test_account_id_unique(self, db):
        MerchantFactory(stripe_account_id="acct_dup")

        with pytest.raises(IntegrityError):
            MerchantFactory(stripe_account_id="acct_dup")

    def test_many_merchants_without_account(self, db):
        MerchantFactory(stripe_account_id=None)
        MerchantFactory(stripe_account_id=None)

        assert Merchant.objects.filter(stripe_account_id__isnull=True).count() == 2


class TestOrderModel:
    """Tests for Order model."""

    def test_defaults(self, db):
        order = OrderFactory()

        assert order.payment_status == OrderPaymentStatus.UNPAID
        assert order.is_paid is False
        assert order.total_amount == Decimal("100.00")

    def test_total_must_be_positive(self, db):
        with pytest.raises(IntegrityError):
            OrderFactory(total_amount=Decimal("0.00"))

    def test_order_number_unique(self, db):
        OrderFactory(order_number="500")

        with pytest.raises(IntegrityError):
            OrderFactory(order_number="500")

    def test_is_paid(self, db):
        assert OrderFactory(payment_status=OrderPaymentStatus.COMPLETED).is_paid
