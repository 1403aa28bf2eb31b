"""
Webhook endpoint views for Stripe.

One endpoint per event source, each with its own signing secret. Events are
processed synchronously by WebhookReconciler; failed events are replayed by
the retry_failed_webhooks Celery task.

Usage:
    # In urls.py
    from settlement.webhooks.views import stripe_payments_webhook, stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
        path("webhooks/stripe/payments/", stripe_payments_webhook, name="stripe_payments_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from settlement.state_machines import WebhookSource
from settlement.webhooks.reconciler import WebhookReconciler

logger = logging.getLogger(__name__)


def _receive(request: HttpRequest, source: str) -> HttpResponse:
    signature = request.headers.get("Stripe-Signature", "")
    if not signature:
        logger.warning("Rejecting webhook: no Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    result = WebhookReconciler.handle_event(request.body, signature, source)
    if not result.success:
        return HttpResponse("Invalid signature", status=400)

    if result.data.duplicate:
        return HttpResponse("Already processed", status=200)
    return HttpResponse("Accepted", status=200)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive Connect and transfer events (account.*, transfer.*).

    Returns:
        200: Event accepted, including duplicates and unknown types
        400: Missing or invalid signature, nothing recorded
    """
    return _receive(request, WebhookSource.GENERAL)


@csrf_exempt
@require_POST
def stripe_payments_webhook(request: HttpRequest) -> HttpResponse:
    """Receive payment events (payment_intent.*, checkout.session.*)."""
    return _receive(request, WebhookSource.PAYMENTS)
