"""
Adapters for external settlement services.

All Stripe API calls go through StripeAdapter for consistent error
handling, timeouts, idempotency and observability.
"""

from settlement.adapters.stripe_adapter import (
    AccountLinkResult,
    AccountResult,
    CreateAccountParams,
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    LoginLinkResult,
    PaymentIntentResult,
    StripeAdapter,
    TransferResult,
)

__all__ = [
    "AccountLinkResult",
    "AccountResult",
    "CreateAccountParams",
    "CreatePaymentIntentParams",
    "IdempotencyKeyGenerator",
    "LoginLinkResult",
    "PaymentIntentResult",
    "StripeAdapter",
    "TransferResult",
]
