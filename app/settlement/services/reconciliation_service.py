"""
Reconciliation sweep for payouts whose dispatch outcome is unknown.

A dispatch that timed out (or lost its connection) leaves the payout in
PROCESSING with no transfer id: Stripe may or may not have created the
transfer. The sweep asks Stripe instead of guessing:

    - transfer found with matching payout id and dispatch attempt -> COMPLETED
    - no such transfer -> FAILED, which permits an operator retry
    - Stripe lookup fails -> payouts left untouched until the next run

Usage:
    from settlement.services import PayoutReconciliationService

    result = PayoutReconciliationService.sweep_processing_payouts()
    if result.success:
        print(result.data.completed, result.data.failed)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.services import ServiceResult

from settlement.adapters import TransferResult
from settlement.exceptions import LockAcquisitionError, StripeError
from settlement.locks import DistributedLock
from settlement.models import Payout
from settlement.services.base import StripeService
from settlement.state_machines import PayoutStatus

if TYPE_CHECKING:
    from datetime import datetime


# =============================================================================
# Constants
# =============================================================================

SWEEP_LOCK_KEY = "settlement:payout_sweep"
SWEEP_LOCK_TTL = 300

# Transfers are listed from slightly before the oldest claim to absorb clock skew
TRANSFER_LOOKBACK_MARGIN = timedelta(minutes=5)

NOT_FOUND_REASON = "Transfer not found at gateway after ambiguous dispatch"


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class SweepResult:
    """Summary of one sweep run."""

    examined: int = 0
    completed: int = 0
    failed: int = 0
    completed_payout_ids: list[str] = field(default_factory=list)
    failed_payout_ids: list[str] = field(default_factory=list)


# =============================================================================
# Reconciliation Service
# =============================================================================


class PayoutReconciliationService(StripeService):
    """Settles stuck PROCESSING payouts against Stripe's transfer list."""

    @classmethod
    def sweep_processing_payouts(
        cls,
        older_than: timedelta | None = None,
    ) -> ServiceResult[SweepResult]:
        """
        Resolve processing payouts without a transfer id.

        Args:
            older_than: Minimum time in PROCESSING, defaults to
                SETTLEMENT_STUCK_PAYOUT_MINUTES

        Returns:
            ServiceResult with SweepResult. Failure codes:
            LOCK_ACQUISITION_FAILED (another sweep is running) or the
            Stripe error code of the transfer lookup
        """
        if older_than is None:
            older_than = timedelta(minutes=settings.SETTLEMENT_STUCK_PAYOUT_MINUTES)

        try:
            with DistributedLock(SWEEP_LOCK_KEY, ttl=SWEEP_LOCK_TTL):
                return cls._sweep(timezone.now() - older_than)
        except LockAcquisitionError as e:
            return cls.handle_exception(
                e, "Payout sweep already running", log_level=logging.INFO
            )

    @classmethod
    def _sweep(cls, cutoff: datetime) -> ServiceResult[SweepResult]:
        candidates = list(
            Payout.objects.filter(
                status=PayoutStatus.PROCESSING,
                stripe_transfer_id__isnull=True,
                processing_started_at__lte=cutoff,
            ).order_by("processing_started_at")
        )
        result = SweepResult(examined=len(candidates))
        if not candidates:
            return ServiceResult.success(result)

        earliest = candidates[0].processing_started_at - TRANSFER_LOOKBACK_MARGIN
        try:
            transfers = cls.get_stripe_adapter().list_recent_transfers(earliest)
        except StripeError as e:
            return cls.handle_exception(
                e, "Transfer lookup failed, payouts left processing",
                log_level=logging.WARNING,
                extra={"candidates": len(candidates)},
            )

        by_dispatch: dict[tuple[str, str], TransferResult] = {}
        for transfer in transfers:
            metadata = transfer.metadata or {}
            if metadata.get("payout_id"):
                key = (metadata["payout_id"], str(metadata.get("dispatch_attempt", "")))
                by_dispatch[key] = transfer

        for candidate in candidates:
            transfer = by_dispatch.get(
                (str(candidate.id), str(candidate.dispatch_attempts))
            )
            if cls._settle(candidate.pk, transfer):
                if transfer is not None:
                    result.completed += 1
                    result.completed_payout_ids.append(str(candidate.id))
                else:
                    result.failed += 1
                    result.failed_payout_ids.append(str(candidate.id))

        cls.get_logger().info(
            "Payout sweep finished",
            extra={
                "examined": result.examined,
                "completed": result.completed,
                "failed": result.failed,
            },
        )
        return ServiceResult.success(result)

    @classmethod
    def _settle(cls, payout_pk, transfer: TransferResult | None) -> bool:
        """Apply the sweep verdict if the payout is still stuck."""
        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(pk=payout_pk)
            if not payout.is_stuck_candidate:
                return False

            log_context = {
                "payout_id": str(payout.id),
                "dispatch_attempt": payout.dispatch_attempts,
            }
            if transfer is not None:
                payout.complete(transfer_id=transfer.id, response=transfer.raw_response)
                cls.get_logger().info(
                    "Stuck payout matched a transfer",
                    extra={**log_context, "stripe_transfer_id": transfer.id},
                )
            else:
                payout.fail(NOT_FOUND_REASON)
                cls.get_logger().warning(
                    "Stuck payout has no transfer at Stripe", extra=log_context
                )
            payout.save()
        return True
