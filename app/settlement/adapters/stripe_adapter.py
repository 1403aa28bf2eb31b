"""
The only module that talks to the Stripe SDK.

Each public StripeAdapter method sends one request and returns a plain
dataclass. SDK exceptions never leave this module: they are converted to
the settlement.exceptions.StripeError family so callers can branch on
is_retryable and outcome_unknown.

    intent = StripeAdapter.create_payment_intent(
        CreatePaymentIntentParams(
            amount_cents=10000,
            currency="usd",
            idempotency_key=IdempotencyKeyGenerator.generate("create_intent", payment.id),
            application_fee_cents=790,
            destination_account="acct_123",
        )
    )

Reads STRIPE_SECRET_KEY, STRIPE_API_TIMEOUT_SECONDS and STRIPE_MAX_RETRIES
from settings on every call.
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from settlement.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
    WebhookSignatureError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


@dataclass
class CreatePaymentIntentParams:
    """
    A PaymentIntent request.

    Destination charges carry application_fee_cents and destination_account
    together; platform charges carry neither.
    """

    amount_cents: int
    currency: str
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)
    receipt_email: str | None = None
    description: str | None = None
    application_fee_cents: int | None = None
    destination_account: str | None = None
    payment_method_types: list[str] = field(default_factory=lambda: ["card"])

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.currency:
            raise ValueError("currency is required")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if (self.application_fee_cents is None) != (self.destination_account is None):
            raise ValueError(
                "application_fee_cents and destination_account must be set together"
            )

    def to_request(self) -> dict[str, Any]:
        request: dict[str, Any] = {
            "amount": self.amount_cents,
            "currency": self.currency,
            "metadata": self.metadata,
            "payment_method_types": self.payment_method_types,
        }
        if self.receipt_email:
            request["receipt_email"] = self.receipt_email
        if self.description:
            request["description"] = self.description
        if self.destination_account:
            request["application_fee_amount"] = self.application_fee_cents
            request["transfer_data"] = {"destination": self.destination_account}
        return request


@dataclass
class PaymentIntentResult:
    id: str
    status: str
    amount_cents: int
    currency: str
    client_secret: str | None = None
    last_error: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @classmethod
    def from_stripe(cls, intent: Any) -> PaymentIntentResult:
        data = intent.to_dict()
        payment_error = data.get("last_payment_error")
        if not isinstance(payment_error, dict):
            payment_error = {}
        return cls(
            id=data["id"],
            status=data.get("status", ""),
            amount_cents=data.get("amount", 0),
            currency=data.get("currency", ""),
            client_secret=data.get("client_secret"),
            last_error=payment_error.get("message"),
            metadata=dict(data.get("metadata") or {}),
            raw_response=data,
        )


@dataclass
class CreateAccountParams:
    """
    An Express account request for a merchant.

    capabilities and tos_acceptance come from the merchant's country policy;
    tos_acceptance is only sent for recipient agreements.
    """

    email: str
    country: str
    business_name: str
    capabilities: dict[str, dict[str, bool]]
    idempotency_key: str
    tos_acceptance: dict[str, str] | None = None
    phone: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    def to_request(self) -> dict[str, Any]:
        company = {"name": self.business_name}
        if self.phone:
            company["phone"] = self.phone
        request: dict[str, Any] = {
            "type": "express",
            "business_type": "company",
            "country": self.country,
            "email": self.email,
            "company": company,
            "capabilities": self.capabilities,
            "metadata": self.metadata,
        }
        if self.tos_acceptance:
            request["tos_acceptance"] = self.tos_acceptance
        return request


@dataclass
class AccountResult:
    """Stripe's live view of a connected account; capabilities map name to status."""

    id: str
    details_submitted: bool = False
    charges_enabled: bool = False
    payouts_enabled: bool = False
    capabilities: dict[str, str] = field(default_factory=dict)
    requirements: dict[str, Any] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, account: Any) -> AccountResult:
        data = account.to_dict()
        return cls(
            id=data["id"],
            details_submitted=bool(data.get("details_submitted")),
            charges_enabled=bool(data.get("charges_enabled")),
            payouts_enabled=bool(data.get("payouts_enabled")),
            capabilities=dict(data.get("capabilities") or {}),
            requirements=dict(data.get("requirements") or {}),
            raw_response=data,
        )


@dataclass
class AccountLinkResult:
    url: str
    expires_at: int | None = None


@dataclass
class LoginLinkResult:
    url: str


@dataclass
class TransferResult:
    id: str
    amount_cents: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, transfer: Any) -> TransferResult:
        data = transfer.to_dict()
        return cls(
            id=data["id"],
            amount_cents=data.get("amount", 0),
            currency=data.get("currency", ""),
            destination_account=data.get("destination") or "",
            metadata=dict(data.get("metadata") or {}),
            raw_response=data,
        )


class IdempotencyKeyGenerator:
    """
    Deterministic Stripe idempotency keys.

    Keys look like ``create_transfer:<payout id>:<attempt>:<8 hex chars>``.
    Repeating a request with the same attempt reuses the key, so Stripe
    returns the original result. A new attempt number gives a new request.
    The suffix is salted with SECRET_KEY so keys cannot be guessed from ids.
    """

    @staticmethod
    def generate(operation: str, entity_id: uuid.UUID | str, attempt: int = 1) -> str:
        prefix = f"{operation}:{entity_id}:{attempt}"
        digest = hashlib.sha256(f"{prefix}:{settings.SECRET_KEY}".encode()).hexdigest()
        return f"{prefix}:{digest[:8]}"


@lru_cache(maxsize=4)
def _http_client(timeout: int) -> stripe.HTTPClient:
    return stripe.RequestsClient(timeout=timeout)


def translate_stripe_error(error: Exception, log_context: dict[str, Any]) -> StripeError:
    """
    Map an SDK exception to the matching StripeError and log it.

    Timeouts and connection failures are flagged outcome_unknown: the
    request may have been applied even though no response came back.
    """
    message = str(getattr(error, "user_message", None) or error)
    code = getattr(error, "code", None)

    if isinstance(error, stripe.CardError):
        decline_code = getattr(error, "decline_code", None)
        logger.warning(
            "Stripe declined the card", extra={**log_context, "decline_code": decline_code}
        )
        error_class = (
            StripeInsufficientFundsError
            if decline_code == "insufficient_funds"
            else StripeCardDeclinedError
        )
        return error_class(message, stripe_code=code, decline_code=decline_code)

    if isinstance(error, stripe.InvalidRequestError):
        logger.error("Stripe rejected the request", extra={**log_context, "stripe_code": code})
        if code == "balance_insufficient":
            return StripeInsufficientFundsError(message, stripe_code=code)
        if "account" in str(error).lower():
            return StripeInvalidAccountError(message, stripe_code=code)
        return StripeInvalidRequestError(message, stripe_code=code)

    if isinstance(error, stripe.RateLimitError):
        logger.warning("Stripe rate limit hit", extra=log_context)
        return StripeRateLimitError(
            "Too many requests to Stripe, try again shortly", stripe_code="rate_limit"
        )

    if isinstance(error, stripe.APIConnectionError):
        text = str(error).lower()
        if "timeout" in text or "timed out" in text:
            logger.error("No response from Stripe before the timeout", extra=log_context)
            return StripeTimeoutError(
                "Stripe did not respond in time; the request may have been applied",
                stripe_code="timeout",
            )
        logger.error("Could not reach Stripe", extra=log_context, exc_info=True)
        return StripeAPIUnavailableError(
            "Stripe is unreachable", stripe_code="api_connection_error"
        )

    if isinstance(error, (stripe.AuthenticationError, stripe.PermissionError)):
        reason = (
            "authentication_error"
            if isinstance(error, stripe.AuthenticationError)
            else "permission_error"
        )
        logger.critical(f"Stripe refused our credentials ({reason})", extra=log_context)
        return StripeInvalidRequestError("Stripe credentials were refused", stripe_code=reason)

    if isinstance(error, stripe.APIError):
        logger.error("Stripe returned a server error", extra=log_context, exc_info=True)
        return StripeAPIUnavailableError(
            "Stripe returned a server error", stripe_code="api_error"
        )

    logger.error(
        f"Unexpected {type(error).__name__} calling Stripe",
        extra=log_context,
        exc_info=True,
    )
    return StripeAPIUnavailableError(
        f"Unexpected Stripe failure: {error}", stripe_code="unknown_error"
    )


class StripeAdapter:
    """
    Stateless wrapper around the Stripe SDK.

    Services reference the class rather than an instance (see
    set_stripe_adapter on each service), which lets tests inject a mock.
    """

    @staticmethod
    def _configure_stripe() -> None:
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = settings.STRIPE_MAX_RETRIES
        stripe.default_http_client = _http_client(settings.STRIPE_API_TIMEOUT_SECONDS)

    @classmethod
    @contextmanager
    def _request(cls, operation: str, **context: Any) -> Iterator[dict[str, Any]]:
        """
        Wrap a single SDK call with configuration, timing and error mapping.

        The yielded dict is the log context; the body may add result ids to
        it before the completion line is logged.
        """
        cls._configure_stripe()
        log_context = {"operation": operation, **context}
        started = time.monotonic()
        logger.info(f"Stripe {operation} started", extra=log_context)
        try:
            yield log_context
        except Exception as exc:
            log_context["duration_ms"] = round((time.monotonic() - started) * 1000, 1)
            raise translate_stripe_error(exc, log_context) from exc
        log_context["duration_ms"] = round((time.monotonic() - started) * 1000, 1)
        logger.info(f"Stripe {operation} finished", extra=log_context)

    # Payment intents

    @classmethod
    def create_payment_intent(cls, params: CreatePaymentIntentParams) -> PaymentIntentResult:
        """
        Create a PaymentIntent.

        With a destination account this is a destination charge: the fee
        stays with the platform and the rest moves to the merchant at capture.
        """
        with cls._request(
            "create_payment_intent",
            amount_cents=params.amount_cents,
            currency=params.currency,
            destination_account=params.destination_account,
            idempotency_key=params.idempotency_key,
        ) as log_context:
            intent = stripe.PaymentIntent.create(
                **params.to_request(), idempotency_key=params.idempotency_key
            )
            log_context.update(payment_intent_id=intent.id, status=intent.status)
        return PaymentIntentResult.from_stripe(intent)

    @classmethod
    def retrieve_payment_intent(cls, payment_intent_id: str) -> PaymentIntentResult:
        with cls._request(
            "retrieve_payment_intent", payment_intent_id=payment_intent_id
        ) as log_context:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
            log_context["status"] = intent.status
        return PaymentIntentResult.from_stripe(intent)

    # Connected accounts

    @classmethod
    def create_connected_account(cls, params: CreateAccountParams) -> AccountResult:
        with cls._request(
            "create_connected_account",
            country=params.country,
            capabilities=sorted(params.capabilities),
            idempotency_key=params.idempotency_key,
        ) as log_context:
            account = stripe.Account.create(
                **params.to_request(), idempotency_key=params.idempotency_key
            )
            log_context["stripe_account_id"] = account.id
        return AccountResult.from_stripe(account)

    @classmethod
    def retrieve_account(cls, account_id: str) -> AccountResult:
        with cls._request("retrieve_account", stripe_account_id=account_id):
            account = stripe.Account.retrieve(account_id)
        return AccountResult.from_stripe(account)

    @classmethod
    def create_external_account(
        cls,
        account_id: str,
        external_account: str | dict[str, Any],
        idempotency_key: str,
    ) -> str:
        """Attach a bank token (btok_) or bank details; returns the ba_ id."""
        with cls._request(
            "create_external_account",
            stripe_account_id=account_id,
            idempotency_key=idempotency_key,
        ):
            bank_account = stripe.Account.create_external_account(
                account_id,
                external_account=external_account,
                idempotency_key=idempotency_key,
            )
        return bank_account.id

    @classmethod
    def create_person(cls, account_id: str, person: dict[str, Any], idempotency_key: str) -> str:
        """Add an owner or representative; returns the person_ id."""
        with cls._request(
            "create_person", stripe_account_id=account_id, idempotency_key=idempotency_key
        ):
            created = stripe.Account.create_person(
                account_id, **person, idempotency_key=idempotency_key
            )
        return created.id

    @classmethod
    def create_account_link(
        cls, account_id: str, refresh_url: str, return_url: str
    ) -> AccountLinkResult:
        with cls._request("create_account_link", stripe_account_id=account_id):
            link = stripe.AccountLink.create(
                account=account_id,
                type="account_onboarding",
                refresh_url=refresh_url,
                return_url=return_url,
            )
        return AccountLinkResult(url=link.url, expires_at=link.expires_at)

    @classmethod
    def create_login_link(cls, account_id: str) -> LoginLinkResult:
        with cls._request("create_login_link", stripe_account_id=account_id):
            link = stripe.Account.create_login_link(account_id)
        return LoginLinkResult(url=link.url)

    # Transfers

    @classmethod
    def create_transfer(
        cls,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "usd",
        metadata: dict[str, str] | None = None,
        description: str | None = None,
    ) -> TransferResult:
        """
        Move funds from the platform balance to a connected account.

        metadata should carry payout_id and dispatch_attempt so the sweep
        can find the transfer after a StripeTimeoutError.
        """
        request: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency,
            "destination": destination_account,
            "metadata": metadata or {},
        }
        if description:
            request["description"] = description

        with cls._request(
            "create_transfer",
            amount_cents=amount_cents,
            destination_account=destination_account,
            idempotency_key=idempotency_key,
        ) as log_context:
            transfer = stripe.Transfer.create(**request, idempotency_key=idempotency_key)
            log_context["transfer_id"] = transfer.id
        return TransferResult.from_stripe(transfer)

    @classmethod
    def list_recent_transfers(
        cls, created_after: datetime, limit: int = 100
    ) -> list[TransferResult]:
        """Every transfer created at or after created_after, across all pages."""
        since = int(created_after.timestamp())
        with cls._request("list_recent_transfers", created_after=since) as log_context:
            page = stripe.Transfer.list(created={"gte": since}, limit=min(limit, 100))
            transfers = [TransferResult.from_stripe(t) for t in page.auto_paging_iter()]
            log_context["count"] = len(transfers)
        return transfers

    # Webhooks

    @staticmethod
    def verify_webhook_signature(payload: bytes, signature: str, secret: str) -> dict[str, Any]:
        """
        Check the Stripe-Signature header against one endpoint's secret.

        Returns the event as a dict. Raises WebhookSignatureError for a bad
        signature or a body that is not valid JSON.
        """
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(
                "Invalid webhook signature", details={"error": str(e)}
            ) from e
        except ValueError as e:
            raise WebhookSignatureError(
                "Malformed webhook payload", details={"error": str(e)}
            ) from e
        return event.to_dict()
