"""
Stored Stripe webhook events.

The Stripe event id is unique, so a redelivery finds the existing row instead
of running its handler twice. Rows that end up FAILED are replayed by
settlement.tasks.retry_failed_webhooks.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from settlement.state_machines import WebhookEventStatus, WebhookSource


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    One verified Stripe event and how far reconciliation got with it.

    PENDING  -> PROCESSING -> PROCESSED
                           -> FAILED -> PROCESSING (replay)

    PROCESSED and PROCESSING rows are acknowledged without dispatching again.
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe evt_ id; one row per event",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Dotted Stripe event type",
    )

    source = models.CharField(
        max_length=20,
        choices=WebhookSource.choices,
        default=WebhookSource.GENERAL,
        help_text="Webhook endpoint that received the event",
    )

    payload = models.JSONField(
        help_text="Verified event body as received",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Reconciliation status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Set when a handler finished without error",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Last handler failure",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Handler attempts so far",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="settlement__status_7b1c3e_idx"),
            models.Index(
                fields=["event_type", "created_at"], name="settlement__event_t_4f0a2d_idx"
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_processing(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSING

    @property
    def can_retry(self) -> bool:
        """Failed and below SETTLEMENT_WEBHOOK_MAX_RETRIES attempts."""
        return (
            self.status == WebhookEventStatus.FAILED
            and self.retry_count < settings.SETTLEMENT_WEBHOOK_MAX_RETRIES
        )

    # mark_* only set fields

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """The data.object dict of the payload, empty when absent."""
        try:
            obj = self.payload.get("data", {}).get("object", {})
        except AttributeError:
            return {}
        return obj if isinstance(obj, dict) else {}

    def get_object_id(self) -> str | None:
        return self.get_object().get("id")

    def get_object_type(self) -> str | None:
        return self.get_object().get("object")
