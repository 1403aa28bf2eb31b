"""
State machine enums for marketplace and settlement models.
"""

from settlement.state_machines.states import (
    ChargeMode,
    OnboardingStatus,
    OrderPaymentStatus,
    PaymentStatus,
    PayoutMethod,
    PayoutStatus,
    ServiceAgreement,
    WebhookEventStatus,
    WebhookSource,
)

__all__ = [
    "ChargeMode",
    "OnboardingStatus",
    "OrderPaymentStatus",
    "PaymentStatus",
    "PayoutMethod",
    "PayoutStatus",
    "ServiceAgreement",
    "WebhookEventStatus",
    "WebhookSource",
]
