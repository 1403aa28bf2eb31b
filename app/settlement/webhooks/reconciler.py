"""
Webhook reconciler: the single entry point for inbound Stripe events.

Flow:
    1. Verify the signature with the secret of the receiving endpoint.
       Failure rejects the event with nothing persisted.
    2. Record the event once, keyed by the Stripe event id.
    3. Claim it (pending/failed -> processing) with a conditional UPDATE.
    4. Dispatch to the handler for its type inside a transaction.
    5. Mark it processed, or failed with the error for later replay.

Every branch except a signature failure is acknowledged to Stripe.

Usage:
    from settlement.webhooks.reconciler import WebhookReconciler

    result = WebhookReconciler.handle_event(request.body, signature, WebhookSource.PAYMENTS)
    status = 200 if result.success else 400
"""

from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from core.services import ServiceResult

from settlement.exceptions import WebhookSignatureError
from settlement.models import WebhookEvent
from settlement.services.base import StripeService
from settlement.state_machines import WebhookEventStatus, WebhookSource
from settlement.webhooks.handlers import dispatch_webhook


@dataclass
class WebhookOutcome:
    """
    What the reconciler did with an event.

    Attributes:
        stripe_event_id: Stripe event id (evt_xxx)
        event_type: Stripe event type
        status: Resulting WebhookEvent status
        duplicate: The event was already recorded before this delivery
    """

    stripe_event_id: str
    event_type: str
    status: str
    duplicate: bool = False


class WebhookReconciler(StripeService):
    """Verifies, records and dispatches Stripe webhook events."""

    @staticmethod
    def get_signing_secret(source: str) -> str:
        if source == WebhookSource.PAYMENTS:
            return settings.STRIPE_PAYMENTS_WEBHOOK_SECRET
        return settings.STRIPE_WEBHOOK_SECRET

    @classmethod
    def handle_event(
        cls,
        payload: bytes,
        signature: str | None,
        source: str = WebhookSource.GENERAL,
    ) -> ServiceResult[WebhookOutcome]:
        """
        Verify, record and process one webhook delivery.

        Returns:
            Failure with INVALID_SIGNATURE when the event cannot be trusted,
            otherwise success with a WebhookOutcome
        """
        logger = cls.get_logger()

        if not signature:
            logger.warning("Rejecting webhook: no Stripe-Signature header")
            return ServiceResult.failure("Missing signature", error_code="INVALID_SIGNATURE")

        try:
            event_data = cls.get_stripe_adapter().verify_webhook_signature(
                payload, signature, cls.get_signing_secret(source)
            )
        except WebhookSignatureError as e:
            logger.warning(
                "Rejecting webhook: bad signature",
                extra={"source": source, "error": e.message},
            )
            return ServiceResult.failure(e.message, error_code=e.error_code)

        stripe_event_id = event_data.get("id")
        event_type = event_data.get("type")
        if not stripe_event_id or not event_type:
            logger.warning("Rejecting webhook: event has no id or type", extra={"source": source})
            return ServiceResult.failure("Invalid event", error_code="INVALID_SIGNATURE")

        logger.info(
            f"Webhook {event_type} received",
            extra={"stripe_event_id": stripe_event_id, "source": source},
        )

        defaults = {"event_type": event_type, "source": source, "payload": event_data}
        try:
            with transaction.atomic():
                webhook_event, created = WebhookEvent.objects.get_or_create(
                    stripe_event_id=stripe_event_id, defaults=defaults
                )
        except IntegrityError:
            # Concurrent delivery of the same event inserted first
            webhook_event = WebhookEvent.objects.get(stripe_event_id=stripe_event_id)
            created = False

        if webhook_event.is_processed or webhook_event.is_processing:
            logger.info(
                f"Webhook already {webhook_event.status}, acknowledging",
                extra={"stripe_event_id": stripe_event_id},
            )
            return ServiceResult.success(
                WebhookOutcome(stripe_event_id, event_type, webhook_event.status, duplicate=True)
            )

        result = cls.process_event(webhook_event)
        if result:
            result.data.duplicate = not created
        return result

    @classmethod
    def process_event(
        cls,
        webhook_event: WebhookEvent,
        raise_errors: bool = False,
    ) -> ServiceResult[WebhookOutcome]:
        """
        Claim and dispatch a recorded event.

        Only PENDING or FAILED events are claimed; anything else is reported
        as-is. Handler exceptions mark the event failed and are re-raised
        only when raise_errors is set (Celery retries).
        """
        logger = cls.get_logger()
        log_context = {
            "webhook_event_id": str(webhook_event.id),
            "stripe_event_id": webhook_event.stripe_event_id,
            "event_type": webhook_event.event_type,
        }

        claimed = WebhookEvent.objects.filter(
            pk=webhook_event.pk,
            status__in=[WebhookEventStatus.PENDING, WebhookEventStatus.FAILED],
        ).update(
            status=WebhookEventStatus.PROCESSING,
            retry_count=F("retry_count") + 1,
            updated_at=timezone.now(),
        )
        webhook_event = WebhookEvent.objects.get(pk=webhook_event.pk)
        outcome = WebhookOutcome(
            webhook_event.stripe_event_id, webhook_event.event_type, webhook_event.status
        )
        if not claimed:
            logger.info("Webhook claimed elsewhere, skipping", extra=log_context)
            return ServiceResult.success(outcome)

        try:
            with transaction.atomic():
                result = dispatch_webhook(webhook_event)
        except Exception as e:
            error_msg = f"{type(e).__name__}: {e}"
            webhook_event.mark_failed(error_msg)
            webhook_event.save()
            logger.exception(
                "Webhook handler raised",
                extra={**log_context, "error": error_msg},
            )
            if raise_errors:
                raise
            outcome.status = webhook_event.status
            return ServiceResult.success(outcome)

        if result.success:
            webhook_event.mark_processed()
            logger.info("Webhook processed", extra=log_context)
        else:
            error_msg = result.error or "Handler reported failure"
            webhook_event.mark_failed(error_msg)
            logger.warning(
                f"Webhook handler reported failure: {error_msg}",
                extra={**log_context, "error_code": result.error_code},
            )
        webhook_event.save()

        outcome.status = webhook_event.status
        return ServiceResult.success(outcome)
