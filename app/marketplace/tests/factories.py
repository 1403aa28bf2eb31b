"""
Factory Boy factories for marketplace test data.

Usage:
    from marketplace.tests.factories import MerchantFactory, OrderFactory

    # Onboarded US merchant
    merchant = MerchantFactory()

    # Philippine merchant without a connected account
    merchant = MerchantFactory(
        country="PH",
        stripe_account_id=None,
        onboarding_status=OnboardingStatus.NONE,
    )

    # Paid order
    order = OrderFactory(payment_status=OrderPaymentStatus.COMPLETED)
"""

import uuid
from decimal import Decimal

import factory

from marketplace.models import Merchant, Order
from settlement.state_machines import OnboardingStatus, OrderPaymentStatus


class MerchantFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Merchant instances.

    Default creates a US merchant with COMPLETED onboarding.
    """

    class Meta:
        model = Merchant
        skip_postgeneration_save = True

    name = factory.Sequence(lambda n: f"Merchant {n}")
    email = factory.Sequence(lambda n: f"merchant{n}@example.com")
    country = "US"
    stripe_account_id = factory.Sequence(
        lambda n: f"acct_test_{n}_{uuid.uuid4().hex[:8]}"
    )
    onboarding_status = OnboardingStatus.COMPLETED
    charges_enabled = True
    payouts_enabled = True
    metadata = factory.LazyFunction(dict)


class OrderFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Order instances.

    Default creates an UNPAID $100.00 USD order.
    """

    class Meta:
        model = Order
        skip_postgeneration_save = True

    merchant = factory.SubFactory(MerchantFactory)
    order_number = factory.Sequence(lambda n: f"ORD-{1000 + n}")
    buyer_reference = factory.Sequence(lambda n: f"buyer-{n}")
    total_amount = Decimal("100.00")
    currency = "usd"
    payment_status = OrderPaymentStatus.UNPAID
