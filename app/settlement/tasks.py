"""
Background work for the settlement app.

Beat schedules (settlement/migrations/0002_add_settlement_schedules.py):
    sweep_stuck_payouts      every 15 minutes
    retry_failed_webhooks    every 10 minutes
    cleanup_stuck_webhooks   every 30 minutes

Queued on demand:
    process_webhook_event    one stored event, by id
    create_payout_for_order  after a platform-charge order is paid
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from settlement.models import WebhookEvent
from settlement.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)

STUCK_PROCESSING_THRESHOLD_MINUTES = 30
RETRY_BATCH_SIZE = 100


def _event_log_extra(webhook_event: WebhookEvent) -> dict:
    return {
        "webhook_event_id": str(webhook_event.id),
        "stripe_event_id": webhook_event.stripe_event_id,
    }


@shared_task(
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 5},
    acks_late=True,
)
def process_webhook_event(webhook_event_id: str) -> dict:
    """
    Run a stored event through the reconciler again.

    Exceptions from the handler propagate after the event is marked failed,
    which hands the retry schedule to Celery.
    """
    from settlement.webhooks.reconciler import WebhookReconciler

    webhook_event = WebhookEvent.objects.filter(id=webhook_event_id).first()
    if webhook_event is None:
        logger.error(
            "Webhook event to replay does not exist",
            extra={"webhook_event_id": webhook_event_id},
        )
        return {"status": "not_found", "webhook_event_id": webhook_event_id}

    if webhook_event.is_processed:
        logger.info("Webhook event already processed", extra=_event_log_extra(webhook_event))
        return {"status": "already_processed", "webhook_event_id": webhook_event_id}

    result = WebhookReconciler.process_event(webhook_event, raise_errors=True)
    return {"status": result.data.status, **_event_log_extra(webhook_event)}


@shared_task
def retry_failed_webhooks() -> dict:
    """Queue failed events that still have attempts left, oldest first."""
    batch = list(
        WebhookEvent.objects.filter(
            status=WebhookEventStatus.FAILED,
            retry_count__lt=settings.SETTLEMENT_WEBHOOK_MAX_RETRIES,
        ).order_by("created_at")[:RETRY_BATCH_SIZE]
    )

    for webhook_event in batch:
        process_webhook_event.delay(str(webhook_event.id))
        logger.info(
            "Requeued failed webhook event",
            extra={**_event_log_extra(webhook_event), "retry_count": webhook_event.retry_count},
        )

    if batch:
        logger.info(f"Requeued {len(batch)} failed webhook events")
    return {"queued_count": len(batch)}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Fail events left in PROCESSING by a worker that died.

    Once FAILED they are picked up by retry_failed_webhooks.
    """
    cutoff = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)
    stuck = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=cutoff,
    )

    reset = 0
    for webhook_event in stuck:
        last_touched = webhook_event.updated_at
        webhook_event.mark_failed("Processing timed out, released for retry")
        webhook_event.save()
        reset += 1
        logger.warning(
            "Released webhook event stuck in processing",
            extra={**_event_log_extra(webhook_event), "stuck_since": last_touched.isoformat()},
        )

    return {"reset_count": reset}


@shared_task
def sweep_stuck_payouts() -> dict:
    from settlement.services import PayoutReconciliationService

    result = PayoutReconciliationService.sweep_processing_payouts()
    if not result:
        return {"status": "skipped", "error_code": result.error_code}

    summary = result.data
    return {
        "status": "completed",
        "examined": summary.examined,
        "completed": summary.completed,
        "failed": summary.failed,
    }


@shared_task
def create_payout_for_order(order_id: str) -> dict:
    from settlement.services import PayoutService

    result = PayoutService.create_from_order(order_id)
    if not result:
        logger.info(
            f"Order not paid out: {result.error}",
            extra={"order_id": order_id, "error_code": result.error_code},
        )
        return {"status": "skipped", "order_id": order_id, "error_code": result.error_code}

    payout = result.data
    return {
        "status": "created",
        "order_id": order_id,
        "payout_id": str(payout.id),
        "payout_status": payout.status,
    }
