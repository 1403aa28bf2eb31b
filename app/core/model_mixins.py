"""
Model mixins. List them before BaseModel in the bases.

Usage:
    class Merchant(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
        name = models.CharField(max_length=255)
"""

from __future__ import annotations

import uuid
from typing import Any

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    UUID primary key.

    Ids travel to Stripe in transfer and intent metadata, where they are
    read back to correlate webhook events.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class MetadataMixin(models.Model):
    """JSON bag for values that do not deserve a column."""

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Flexible key-value metadata storage",
    )

    class Meta:
        abstract = True

    def get_meta(self, key: str, default: Any = None) -> Any:
        return (self.metadata or {}).get(key, default)

    def set_meta(self, key: str, value: Any, save: bool = True) -> None:
        """Store one key; with save=True only metadata and updated_at are written."""
        self.metadata = {**(self.metadata or {}), key: value}
        if save:
            self.save(update_fields=["metadata", "updated_at"])
