"""
One function per Stripe event type we act on.

Each handler receives a recorded WebhookEvent and returns a ServiceResult.
Handlers are idempotent: they load current state first and leave records
that already reflect the event untouched. Correlation keys that resolve to
nothing are logged and acknowledged, never failed.

Usage:
    from settlement.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from core.services import ServiceResult

from marketplace.models import Order
from settlement.models import WebhookEvent
from settlement.services import (
    ConnectedAccountService,
    PaymentIntentService,
    PayoutService,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """Route events whose type equals event_type to the decorated function."""

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """Run the handler for the event type; types without one succeed as no-ops."""
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)
    if handler is None:
        logger.info(
            f"Ignoring {webhook_event.event_type}: no handler",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Handling {webhook_event.event_type}",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return handler(webhook_event)


# Failures that replaying the event cannot change
SETTLED_ERROR_CODES = frozenset({"PAYMENT_NOT_FOUND", "ORDER_ALREADY_PAID"})


def _acknowledge_unresolved(webhook_event: WebhookEvent, result: ServiceResult) -> ServiceResult:
    """Turn a failure a replay cannot fix into a logged success."""
    if not result and result.error_code in SETTLED_ERROR_CODES:
        logger.info(
            f"Acknowledging {webhook_event.event_type} without change: {result.error}",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "object_id": webhook_event.get_object_id(),
                "error_code": result.error_code,
            },
        )
        return ServiceResult.success(None)
    return result


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """Mark the payment succeeded and complete its order."""
    payment_intent_id = webhook_event.get_object_id()
    if not payment_intent_id:
        logger.warning(
            "payment_intent.succeeded without an intent id",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    result = PaymentIntentService.mark_payment_succeeded(
        payment_intent_id, schedule_payout=True
    )
    return _acknowledge_unresolved(webhook_event, result)


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """Mark the payment failed with Stripe's last error message."""
    intent = webhook_event.get_object()
    payment_intent_id = intent.get("id")
    if not payment_intent_id:
        return ServiceResult.success(None)

    last_error = intent.get("last_payment_error") or {}
    reason = last_error.get("message") or "Payment failed"

    result = PaymentIntentService.mark_payment_failed(payment_intent_id, reason)
    return _acknowledge_unresolved(webhook_event, result)


# =============================================================================
# Checkout Handlers
# =============================================================================


def _resolve_checkout_order(session: dict) -> Order | None:
    """Find the order behind a Checkout Session from metadata or client reference."""
    metadata = session.get("metadata") or {}
    candidates = [metadata.get("order_id"), session.get("client_reference_id")]

    for reference in filter(None, candidates):
        try:
            order = Order.objects.select_related("merchant").filter(
                pk=uuid.UUID(str(reference))
            ).first()
        except ValueError:
            order = Order.objects.select_related("merchant").filter(
                order_number=reference
            ).first()
        if order is not None:
            return order

    payment_intent_id = session.get("payment_intent")
    if payment_intent_id:
        return Order.objects.select_related("merchant").filter(
            stripe_payment_intent_id=payment_intent_id
        ).first()
    return None


@register_handler("checkout.session.completed")
def handle_checkout_session_completed(webhook_event: WebhookEvent) -> ServiceResult:
    """Complete the order paid through a hosted Checkout Session."""
    session = webhook_event.get_object()
    log_context = {
        "stripe_event_id": webhook_event.stripe_event_id,
        "checkout_session_id": session.get("id"),
    }

    if session.get("payment_status") != "paid":
        logger.info("Checkout session not paid yet, ignoring", extra=log_context)
        return ServiceResult.success(None)

    payment_intent_id = session.get("payment_intent")
    order = _resolve_checkout_order(session)
    if order is None:
        if payment_intent_id:
            result = PaymentIntentService.mark_payment_succeeded(
                payment_intent_id, schedule_payout=True
            )
            return _acknowledge_unresolved(webhook_event, result)
        logger.info("Checkout session references no order, acknowledging", extra=log_context)
        return ServiceResult.success(None)

    customer_details = session.get("customer_details") or {}
    result = PaymentIntentService.record_checkout_payment(
        order,
        payment_intent_id,
        amount_cents=session.get("amount_total"),
        currency=session.get("currency"),
        customer_email=customer_details.get("email") or "",
    )
    return _acknowledge_unresolved(webhook_event, result)


# =============================================================================
# Connect Account Handlers
# =============================================================================


@register_handler("account.updated")
def handle_account_updated(webhook_event: WebhookEvent) -> ServiceResult:
    """Mirror the connected account's onboarding state."""
    return ConnectedAccountService.handle_account_event(webhook_event.payload)


@register_handler("account.application.deauthorized")
def handle_account_deauthorized(webhook_event: WebhookEvent) -> ServiceResult:
    """Detach the connected account from its merchant."""
    return ConnectedAccountService.handle_account_event(webhook_event.payload)


# =============================================================================
# Transfer Handlers
# =============================================================================


@register_handler("transfer.created")
def handle_transfer_created(webhook_event: WebhookEvent) -> ServiceResult:
    """Complete a processing payout whose dispatch response was lost."""
    return PayoutService.apply_transfer_created(webhook_event.get_object())
