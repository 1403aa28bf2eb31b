"""
Payout service for disbursing paid orders to merchants.

Gateway payouts are sent as Stripe transfers to the merchant's connected
account; manual payouts are completed by an operator who disbursed the money
outside Stripe.

Dispatch claims the payout with a conditional UPDATE before calling Stripe:
1. pending -> processing, committed, dispatch_attempts incremented
2. Stripe create_transfer with an idempotency key of (payout, attempt)
3. completed with the transfer id, or failed on a definite Stripe error

A timeout or connection error leaves the payout processing with no transfer
id. PayoutReconciliationService settles those against Stripe later.

Usage:
    from settlement.services import PayoutService

    result = PayoutService.create_from_order(order.id)
    result = PayoutService.dispatch(result.data.id)

    if result.error_code == "DISPATCH_OUTCOME_UNKNOWN":
        # Leave it for the reconciliation sweep
        ...
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from core.services import ServiceResult

from marketplace.models import Order
from settlement.adapters import IdempotencyKeyGenerator
from settlement.exceptions import PaymentValidationError, StripeError
from settlement.fees import compute_fee_split, to_minor_units
from settlement.models import Payment, Payout
from settlement.policies import get_country_policy
from settlement.services.base import StripeService
from settlement.state_machines import (
    ChargeMode,
    PaymentStatus,
    PayoutMethod,
    PayoutStatus,
)

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from django.db.models import QuerySet


# =============================================================================
# Payout Service
# =============================================================================


class PayoutService(StripeService):
    """
    Service for creating, dispatching and completing payouts.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED   (gateway transfer)
        PENDING -> COMPLETED                 (manual disbursement)
        PENDING/PROCESSING -> FAILED
        FAILED -> PENDING                    (retry)

    Safety Guarantees:
        - At most one non-failed payout per order (partial unique constraint)
        - pending -> processing is a conditional UPDATE, so only one caller
          ever reaches Stripe for a given dispatch attempt
        - The idempotency key includes the dispatch attempt, so a replayed
          request is deduplicated by Stripe and a retry is a new transfer
    """

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    def create_from_order(
        cls,
        order_id: UUID | str,
        fee_percent: Decimal | str | None = None,
        method: str | None = None,
    ) -> ServiceResult[Payout]:
        """
        Create a payout for a paid order.

        The method defaults to the merchant's preferred method, then the
        country policy. Gateway payouts for countries with immediate_dispatch
        are dispatched before returning; a dispatch failure does not fail
        the creation.

        Returns:
            ServiceResult with the Payout. Failure codes: ORDER_NOT_FOUND,
            NOT_PAYOUT_ELIGIBLE, MERCHANT_NOT_ONBOARDED, VALIDATION_ERROR,
            PAYMENT_VALIDATION_ERROR
        """
        order = Order.objects.select_related("merchant").filter(pk=order_id).first()
        if order is None:
            return ServiceResult.failure("Order not found", error_code="ORDER_NOT_FOUND")

        if not order.is_paid:
            return ServiceResult.failure(
                "Order payment is not completed", error_code="NOT_PAYOUT_ELIGIBLE"
            )
        if Payout.objects.filter(order=order).exclude(status=PayoutStatus.FAILED).exists():
            return ServiceResult.failure(
                "Order already has an active payout", error_code="NOT_PAYOUT_ELIGIBLE"
            )
        if Payment.objects.filter(
            order=order,
            status=PaymentStatus.SUCCEEDED,
            charge_mode=ChargeMode.DESTINATION,
        ).exists():
            return ServiceResult.failure(
                "Merchant share was transferred at capture",
                error_code="NOT_PAYOUT_ELIGIBLE",
            )

        merchant = order.merchant
        policy = get_country_policy(merchant.country)
        method = method or merchant.preferred_payout_method or policy.payout_method
        if method not in PayoutMethod.values:
            return ServiceResult.failure(
                "Unknown payout method",
                error_code="VALIDATION_ERROR",
                errors={"method": [f"Must be one of: {', '.join(PayoutMethod.values)}"]},
            )
        if method == PayoutMethod.GATEWAY_TRANSFER and not merchant.is_onboarded:
            return ServiceResult.failure(
                "Merchant has not completed onboarding",
                error_code="MERCHANT_NOT_ONBOARDED",
            )

        try:
            split = compute_fee_split(to_minor_units(order.total_amount), fee_percent)
        except PaymentValidationError as e:
            return cls.handle_exception(
                e, "Payout rejected", log_level=logging.WARNING,
                extra={"order_id": str(order.id)},
            )

        try:
            with transaction.atomic():
                payout = Payout.objects.create(
                    order=order,
                    merchant=merchant,
                    gross_amount_cents=split.total_cents,
                    platform_fee_cents=split.platform_fee_cents,
                    net_amount_cents=split.merchant_amount_cents,
                    fee_percent=split.fee_percent,
                    currency=order.currency,
                    method=method,
                )
        except IntegrityError:
            cls.get_logger().info(
                "Concurrent payout creation lost the race",
                extra={"order_id": str(order.id)},
            )
            return ServiceResult.failure(
                "Order already has an active payout", error_code="NOT_PAYOUT_ELIGIBLE"
            )

        cls.get_logger().info(
            "Payout created",
            extra={
                "payout_id": str(payout.id),
                "order_id": str(order.id),
                "merchant_id": str(merchant.id),
                "method": method,
                "net_amount_cents": payout.net_amount_cents,
            },
        )

        if method == PayoutMethod.GATEWAY_TRANSFER and policy.immediate_dispatch:
            dispatched = cls.dispatch(payout.id)
            if not dispatched:
                cls.get_logger().warning(
                    f"Immediate dispatch did not complete: {dispatched.error}",
                    extra={"payout_id": str(payout.id), "error_code": dispatched.error_code},
                )

        return ServiceResult.success(Payout.objects.get(pk=payout.pk))

    # =========================================================================
    # Dispatch
    # =========================================================================

    @classmethod
    def dispatch(cls, payout_id: UUID | str) -> ServiceResult[Payout]:
        """
        Send a pending gateway payout to the merchant's connected account.

        Returns:
            ServiceResult with the Payout. Failure codes: PAYOUT_NOT_FOUND,
            WRONG_METHOD, WRONG_STATE, MERCHANT_NOT_ONBOARDED,
            DISPATCH_OUTCOME_UNKNOWN, or the Stripe error code after the
            payout was marked failed
        """
        payout = Payout.objects.select_related("merchant").filter(pk=payout_id).first()
        if payout is None:
            return ServiceResult.failure("Payout not found", error_code="PAYOUT_NOT_FOUND")
        if not payout.is_gateway_transfer:
            return ServiceResult.failure(
                "Only gateway transfer payouts can be dispatched",
                error_code="WRONG_METHOD",
            )
        if payout.status != PayoutStatus.PENDING:
            return ServiceResult.failure(
                f"Payout is {payout.status}, expected pending", error_code="WRONG_STATE"
            )
        if not payout.merchant.is_onboarded:
            return ServiceResult.failure(
                "Merchant has not completed onboarding",
                error_code="MERCHANT_NOT_ONBOARDED",
            )

        now = timezone.now()
        claimed = Payout.objects.filter(pk=payout.pk, status=PayoutStatus.PENDING).update(
            status=PayoutStatus.PROCESSING,
            dispatch_attempts=F("dispatch_attempts") + 1,
            processing_started_at=now,
            updated_at=now,
        )
        if not claimed:
            cls.get_logger().info(
                "Payout claimed by another dispatcher, skipping",
                extra={"payout_id": str(payout.id)},
            )
            return ServiceResult.failure(
                "Payout is no longer pending", error_code="WRONG_STATE"
            )

        payout = Payout.objects.select_related("merchant").get(pk=payout.pk)
        log_context = {
            "payout_id": str(payout.id),
            "order_id": str(payout.order_id),
            "merchant_id": str(payout.merchant_id),
            "dispatch_attempt": payout.dispatch_attempts,
        }

        try:
            transfer = cls.get_stripe_adapter().create_transfer(
                amount_cents=payout.net_amount_cents,
                destination_account=payout.merchant.stripe_account_id,
                idempotency_key=IdempotencyKeyGenerator.generate(
                    "create_transfer", payout.id, payout.dispatch_attempts
                ),
                currency=payout.currency,
                metadata={
                    "payout_id": str(payout.id),
                    "order_id": str(payout.order_id),
                    "merchant_id": str(payout.merchant_id),
                    "dispatch_attempt": str(payout.dispatch_attempts),
                },
                description=f"Payout for order {payout.order_id}",
            )
        except StripeError as e:
            if e.outcome_unknown:
                cls.get_logger().warning(
                    "Transfer outcome unknown, leaving payout processing",
                    extra={**log_context, "error_code": e.error_code},
                )
                return ServiceResult.failure(
                    "Transfer outcome unknown, the payout will be reconciled",
                    error_code="DISPATCH_OUTCOME_UNKNOWN",
                )

            cls.get_logger().error(
                f"Transfer rejected: {e.message}",
                extra={**log_context, "error_code": e.error_code},
            )
            cls._fail_payout(payout.pk, e.message)
            return ServiceResult.failure(e.message, error_code=e.error_code)

        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(pk=payout.pk)
            if payout.status == PayoutStatus.PROCESSING:
                payout.complete(transfer_id=transfer.id, response=transfer.raw_response)
                payout.save()
            else:
                cls.get_logger().info(
                    "Payout advanced before the transfer response was stored",
                    extra={**log_context, "current_state": payout.status},
                )

        cls.get_logger().info(
            "Payout dispatched",
            extra={**log_context, "stripe_transfer_id": transfer.id},
        )
        return ServiceResult.success(payout)

    @classmethod
    def _fail_payout(cls, payout_pk, reason: str) -> Payout:
        """Move a pending or processing payout to FAILED under a row lock."""
        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(pk=payout_pk)
            if payout.status in (PayoutStatus.PENDING, PayoutStatus.PROCESSING):
                payout.fail(reason)
                payout.save()
        return payout

    # =========================================================================
    # Manual Completion & Retry
    # =========================================================================

    @classmethod
    def complete_manual(
        cls,
        payout_id: UUID | str,
        reference: str,
        notes: str | None = None,
        operator_id: int | None = None,
    ) -> ServiceResult[Payout]:
        """Record a disbursement made outside Stripe for a pending manual payout."""
        invalid = cls.validate_required(reference=reference)
        if invalid:
            return invalid

        payout = Payout.objects.filter(pk=payout_id).first()
        if payout is None:
            return ServiceResult.failure("Payout not found", error_code="PAYOUT_NOT_FOUND")
        if payout.method != PayoutMethod.MANUAL:
            return ServiceResult.failure(
                "Only manual payouts can be completed manually",
                error_code="WRONG_METHOD",
            )

        operator = None
        if operator_id is not None:
            operator = get_user_model().objects.filter(pk=operator_id).first()

        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(pk=payout.pk)
            if payout.status != PayoutStatus.PENDING:
                return ServiceResult.failure(
                    f"Payout is {payout.status}, expected pending",
                    error_code="WRONG_STATE",
                )
            payout.complete_manual(reference.strip(), notes=notes, operator=operator)
            payout.save()

        cls.get_logger().info(
            "Manual payout completed",
            extra={
                "payout_id": str(payout.id),
                "operator_id": operator_id,
                "manual_reference": payout.manual_reference,
            },
        )
        return ServiceResult.success(payout)

    @classmethod
    def retry(cls, payout_id: UUID | str) -> ServiceResult[Payout]:
        """
        Reopen a failed payout.

        Gateway payouts are dispatched again straight away, with a new
        dispatch attempt and therefore a new idempotency key. A failed payout
        whose order has since been given another active payout stays failed
        (NOT_PAYOUT_ELIGIBLE).
        """
        if not Payout.objects.filter(pk=payout_id).exists():
            return ServiceResult.failure("Payout not found", error_code="PAYOUT_NOT_FOUND")

        superseded = ServiceResult.failure(
            "Order already has an active payout", error_code="NOT_PAYOUT_ELIGIBLE"
        )
        try:
            with transaction.atomic():
                payout = Payout.objects.select_for_update().get(pk=payout_id)
                if payout.status != PayoutStatus.FAILED:
                    return ServiceResult.failure(
                        f"Payout is {payout.status}, only failed payouts can be retried",
                        error_code="WRONG_STATE",
                    )
                if (
                    Payout.objects.filter(order_id=payout.order_id)
                    .exclude(pk=payout.pk)
                    .exclude(status=PayoutStatus.FAILED)
                    .exists()
                ):
                    cls.get_logger().info(
                        "Failed payout superseded by another payout, not retrying",
                        extra={"payout_id": str(payout.id), "order_id": str(payout.order_id)},
                    )
                    return superseded
                payout.retry()
                payout.save()
        except IntegrityError:
            cls.get_logger().info(
                "Concurrent payout creation won the order, not retrying",
                extra={"payout_id": str(payout_id)},
            )
            return superseded

        cls.get_logger().info(
            "Payout reopened for retry",
            extra={"payout_id": str(payout.id), "method": payout.method},
        )

        if payout.is_gateway_transfer:
            return cls.dispatch(payout.pk)
        return ServiceResult.success(payout)

    # =========================================================================
    # Webhook Correlation
    # =========================================================================

    @classmethod
    def apply_transfer_created(cls, transfer: dict[str, Any]) -> ServiceResult[Payout | None]:
        """
        Complete a processing payout from a transfer.created event.

        Correlates through metadata.payout_id. Payouts already holding a
        transfer id, or no longer processing, are left as they are.
        """
        transfer_id = transfer.get("id")
        payout_id = (transfer.get("metadata") or {}).get("payout_id")
        log_context = {"stripe_transfer_id": transfer_id, "payout_id": payout_id}

        payout = Payout.objects.filter(pk=payout_id).first() if payout_id else None
        if payout is None:
            cls.get_logger().info("Transfer not linked to a payout, ignoring", extra=log_context)
            return ServiceResult.success(None)

        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(pk=payout.pk)
            if payout.status == PayoutStatus.PROCESSING and not payout.stripe_transfer_id:
                payout.complete(transfer_id=transfer_id, response=transfer)
                payout.save()
                cls.get_logger().info("Payout completed from transfer event", extra=log_context)
            else:
                cls.get_logger().info(
                    "Transfer event needs no change",
                    extra={**log_context, "current_state": payout.status},
                )
        return ServiceResult.success(payout)

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def list_payouts(cls, filters: dict[str, Any] | None = None) -> ServiceResult[QuerySet]:
        """Filter payouts by status, method, merchant, date range or search text."""
        from settlement.filters import PayoutFilter

        filterset = PayoutFilter(
            data=filters or {},
            queryset=Payout.objects.select_related("merchant", "order"),
        )
        if not filterset.is_valid():
            return ServiceResult.failure(
                "Invalid filters",
                error_code="VALIDATION_ERROR",
                errors={k: [str(m) for m in v] for k, v in filterset.errors.items()},
            )
        return ServiceResult.success(filterset.qs)

    @classmethod
    def get_statistics(
        cls,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        merchant_id: UUID | str | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        """
        Aggregate payout counts and amounts over a creation-date range.

        Returns:
            ServiceResult with:
                count, gross_amount_cents, platform_fee_cents, net_amount_cents,
                pending_net_cents (pending + processing), completed_net_cents,
                failed_net_cents, by_status and by_method breakdowns
        """
        queryset = Payout.objects.all()
        if date_from:
            queryset = queryset.filter(created_at__gte=date_from)
        if date_to:
            queryset = queryset.filter(created_at__lte=date_to)
        if merchant_id:
            queryset = queryset.filter(merchant_id=merchant_id)

        def net_where(*statuses):
            return Coalesce(
                Sum("net_amount_cents", filter=Q(status__in=statuses)), 0
            )

        totals = queryset.aggregate(
            count=Count("id"),
            gross_amount_cents=Coalesce(Sum("gross_amount_cents"), 0),
            platform_fee_cents=Coalesce(Sum("platform_fee_cents"), 0),
            net_amount_cents=Coalesce(Sum("net_amount_cents"), 0),
            pending_net_cents=net_where(PayoutStatus.PENDING, PayoutStatus.PROCESSING),
            completed_net_cents=net_where(PayoutStatus.COMPLETED),
            failed_net_cents=net_where(PayoutStatus.FAILED),
        )

        def breakdown(field_name: str) -> dict[str, dict[str, int]]:
            rows = (
                queryset.order_by()
                .values(field_name)
                .annotate(count=Count("id"), net_amount_cents=Sum("net_amount_cents"))
            )
            return {
                row[field_name]: {
                    "count": row["count"],
                    "net_amount_cents": row["net_amount_cents"] or 0,
                }
                for row in rows
            }

        return ServiceResult.success(
            {
                **totals,
                "by_status": breakdown("status"),
                "by_method": breakdown("method"),
            }
        )
