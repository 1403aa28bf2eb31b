"""
Factory Boy factories for settlement test data.

Usage:
    from settlement.tests.factories import PaymentFactory, PayoutFactory

    # Payout for a paid order, split 10000 -> 790 / 9210
    payout = PayoutFactory()

    # Payout already claimed for dispatch
    payout = PayoutFactory(status=PayoutStatus.PROCESSING, dispatch_attempts=1)
"""

from decimal import Decimal

import factory
from django.contrib.auth import get_user_model

from marketplace.tests.factories import MerchantFactory, OrderFactory
from settlement.models import Payment, Payout, WebhookEvent
from settlement.state_machines import (
    ChargeMode,
    OrderPaymentStatus,
    PaymentStatus,
    PayoutMethod,
    WebhookEventStatus,
    WebhookSource,
)


class UserFactory(factory.django.DjangoModelFactory):
    """Minimal operator user."""

    class Meta:
        model = get_user_model()
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"operator{n}")
    email = factory.Sequence(lambda n: f"operator{n}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    is_active = True


class PaymentFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Payment instances.

    Default creates a REQUIRES_ACTION destination charge for $100 USD at 7.9%.
    """

    class Meta:
        model = Payment
        skip_postgeneration_save = True

    order = factory.SubFactory(OrderFactory)
    merchant = factory.SelfAttribute("order.merchant")
    amount_cents = 10000
    currency = "usd"
    platform_fee_percent = Decimal("7.90")
    platform_fee_cents = 790
    merchant_amount_cents = 9210
    charge_mode = ChargeMode.DESTINATION
    stripe_payment_intent_id = factory.Sequence(lambda n: f"pi_test_{n}")
    status = PaymentStatus.REQUIRES_ACTION
    metadata = factory.LazyFunction(dict)


class PayoutFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Payout instances.

    Default creates a PENDING gateway-transfer payout for a paid $100 order.
    Status may be set here for initial creation only, transitions are
    FSM-protected afterwards.
    """

    class Meta:
        model = Payout
        skip_postgeneration_save = True

    order = factory.SubFactory(
        OrderFactory, payment_status=OrderPaymentStatus.COMPLETED
    )
    merchant = factory.SelfAttribute("order.merchant")
    gross_amount_cents = 10000
    platform_fee_cents = 790
    net_amount_cents = 9210
    fee_percent = Decimal("7.90")
    currency = "usd"
    method = PayoutMethod.GATEWAY_TRANSFER
    metadata = factory.LazyFunction(dict)


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating WebhookEvent instances.

    Default creates a PENDING payment_intent.succeeded event.
    """

    class Meta:
        model = WebhookEvent
        skip_postgeneration_save = True

    stripe_event_id = factory.Sequence(lambda n: f"evt_test_{n}")
    event_type = "payment_intent.succeeded"
    source = WebhookSource.PAYMENTS
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.stripe_event_id,
            "type": o.event_type,
            "data": {"object": {"id": "pi_test_webhook", "object": "payment_intent"}},
        }
    )
    status = WebhookEventStatus.PENDING
    retry_count = 0


__all__ = [
    "MerchantFactory",
    "OrderFactory",
    "PaymentFactory",
    "PayoutFactory",
    "UserFactory",
    "WebhookEventFactory",
]
