"""
Errors raised inside the settlement app.

    SettlementError
    ├── PaymentValidationError        bad amounts, fee bounds, missing input
    ├── WebhookSignatureError         inbound event could not be authenticated
    └── StripeError                   anything the gateway adapter translates
        ├── permanent: card declined, insufficient funds, invalid account,
        │   invalid request
        └── transient: rate limited, unavailable, timeout

    LockAcquisitionError (a ConflictError, answered with 409)

Only the adapter raises StripeError subclasses; services catch StripeError
and look at two flags:

    is_retryable     the same call may succeed later
    outcome_unknown  the request may already have taken effect at Stripe,
                     so the local record is left for reconciliation instead
                     of being marked failed
"""

from __future__ import annotations

from typing import Any

from core.exceptions import BaseApplicationError, ConflictError


class SettlementError(BaseApplicationError):
    default_error_code: str = "SETTLEMENT_ERROR"


class PaymentValidationError(SettlementError):
    """
    Input rejected before any gateway call.

    Example:
        raise PaymentValidationError(
            "Payment amount must be positive",
            details={"amount_cents": amount_cents},
        )
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class WebhookSignatureError(SettlementError):
    """Nothing from an event that raised this may be persisted."""

    default_error_code: str = "INVALID_SIGNATURE"


class StripeError(SettlementError):
    """
    A Stripe call failed.

    Attributes:
        stripe_code: Stripe's own error code, or a synthetic one for
            connection problems ("timeout", "api_connection_error")
        decline_code: Issuer reason on card errors
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False
    outcome_unknown: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        codes = {"stripe_code": stripe_code, "decline_code": decline_code}
        merged = {**(details or {}), **{k: v for k, v in codes.items() if v}}
        super().__init__(message, error_code=error_code, details=merged)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


class StripeCardDeclinedError(StripeError):
    default_error_code: str = "CARD_DECLINED"


class StripeInsufficientFundsError(StripeError):
    """Card balance, or the platform balance when funding a transfer."""

    default_error_code: str = "INSUFFICIENT_FUNDS"


class StripeInvalidAccountError(StripeError):
    """Transfer destination is missing, restricted or cannot receive funds."""

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"


class StripeInvalidRequestError(StripeError):
    # Also used for authentication and permission failures: a config problem
    # that no retry will fix.
    default_error_code: str = "INVALID_STRIPE_REQUEST"


class StripeRateLimitError(StripeError):
    """Rejected before Stripe acted, so nothing happened."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """Connection failure or 5xx. The request may or may not have been applied."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True
    outcome_unknown: bool = True


class StripeTimeoutError(StripeError):
    """
    No response within STRIPE_API_TIMEOUT_SECONDS.

    Retry only with the original idempotency key.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True
    outcome_unknown: bool = True


class LockAcquisitionError(ConflictError):
    """Another worker holds the lock."""

    default_error_code: str = "LOCK_ACQUISITION_FAILED"
