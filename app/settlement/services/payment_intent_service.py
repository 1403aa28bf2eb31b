"""
Payment intent service for issuing and settling split payments.

Issues Stripe PaymentIntents for ad-hoc amounts or for marketplace orders and
reflects their outcome back onto Payment and Order rows. The confirm call and
the webhook path share mark_payment_succeeded, whose conditional updates make
whichever arrives second a no-op.

Usage:
    from settlement.services import PaymentIntentService

    result = PaymentIntentService.create_order_payment(order.id, "buyer@example.com")
    client_secret = result.data.client_secret

    # After the client confirms
    result = PaymentIntentService.confirm_payment(result.data.payment_intent_id)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, Q, Sum
from django.db.models.functions import Coalesce, TruncDate
from django.utils import timezone

from core.services import ServiceResult

from marketplace.models import Merchant, Order
from settlement.adapters import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
)
from settlement.exceptions import PaymentValidationError, StripeError
from settlement.fees import compute_fee_split, to_minor_units
from settlement.models import Payment
from settlement.policies import get_country_policy
from settlement.services.base import StripeService
from settlement.state_machines import ChargeMode, OrderPaymentStatus, PaymentStatus

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from django.db.models import QuerySet


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class IssuedPayment:
    """Client-facing handle for a freshly issued PaymentIntent."""

    client_secret: str | None
    payment_id: uuid.UUID
    payment_intent_id: str


@dataclass
class PaymentConfirmation:
    """
    Outcome of settling a payment.

    Attributes:
        payment: Payment row after the update
        payment_updated: This call moved the payment to SUCCEEDED/FAILED
        order_updated: This call moved the order's payment status
    """

    payment: Payment
    payment_updated: bool = False
    order_updated: bool = False

    @property
    def status(self) -> str:
        return self.payment.status


# =============================================================================
# Payment Intent Service
# =============================================================================


class PaymentIntentService(StripeService):
    """
    Service for issuing split PaymentIntents and recording their outcome.

    Charge routing follows the merchant's country policy:
        DESTINATION: Stripe transfers the merchant share at capture and keeps
            the platform fee as the application fee.
        PLATFORM: The platform collects the full amount. The split is carried
            in metadata and the merchant is paid later through a Payout.
    """

    # =========================================================================
    # Issuing
    # =========================================================================

    @classmethod
    def create_ad_hoc_payment(
        cls,
        merchant_id: UUID | str,
        amount_cents: int,
        currency: str = "usd",
        customer_email: str = "",
        fee_percent: Decimal | str | None = None,
        description: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> ServiceResult[IssuedPayment]:
        """
        Issue a PaymentIntent for an amount not tied to an order.

        Returns:
            ServiceResult with IssuedPayment. Failure codes:
            MERCHANT_NOT_FOUND, MERCHANT_NOT_ONBOARDED,
            PAYMENT_VALIDATION_ERROR, or the Stripe error code
        """
        merchant = Merchant.objects.filter(pk=merchant_id).first()
        if merchant is None:
            return ServiceResult.failure(
                "Merchant not found", error_code="MERCHANT_NOT_FOUND"
            )

        return cls._issue(
            merchant=merchant,
            amount_cents=amount_cents,
            currency=currency,
            customer_email=customer_email,
            fee_percent=fee_percent,
            description=description,
            extra_metadata=metadata,
        )

    @classmethod
    def create_order_payment(
        cls,
        order_id: UUID | str,
        customer_email: str = "",
        fee_percent: Decimal | str | None = None,
    ) -> ServiceResult[IssuedPayment]:
        """
        Issue a PaymentIntent for an order's total.

        Marks the order PENDING and stores the intent id on it. While an
        earlier intent for the order is still open at Stripe, that intent is
        handed out again instead of issuing a second one.
        """
        order = Order.objects.select_related("merchant").filter(pk=order_id).first()
        if order is None:
            return ServiceResult.failure("Order not found", error_code="ORDER_NOT_FOUND")
        if order.is_paid:
            return ServiceResult.failure(
                "Order has already been paid", error_code="ORDER_ALREADY_PAID"
            )

        open_payment = (
            Payment.objects.filter(order=order, status=PaymentStatus.REQUIRES_ACTION)
            .order_by("-created_at")
            .first()
        )
        if open_payment is not None:
            reused = cls._reuse_open_payment(open_payment)
            if reused is not None:
                return reused

        try:
            amount_cents = to_minor_units(order.total_amount)
        except PaymentValidationError as e:
            return cls.handle_exception(e, "Invalid order total", log_level=logging.WARNING)

        result = cls._issue(
            merchant=order.merchant,
            amount_cents=amount_cents,
            currency=order.currency,
            customer_email=customer_email,
            fee_percent=fee_percent,
            description=f"Order {order.order_number}",
            order=order,
        )
        if not result:
            return result

        Order.objects.filter(pk=order.pk).exclude(
            payment_status=OrderPaymentStatus.COMPLETED
        ).update(
            payment_status=OrderPaymentStatus.PENDING,
            stripe_payment_intent_id=result.data.payment_intent_id,
            updated_at=timezone.now(),
        )
        return result

    @classmethod
    def _reuse_open_payment(cls, payment: Payment) -> ServiceResult[IssuedPayment] | None:
        """
        Settle or hand out an order's earlier intent before issuing a new one.

        Returns None when the earlier intent is canceled and a new one may be
        issued; the local payment is marked failed in that case.
        """
        log_context = {
            "payment_id": str(payment.id),
            "order_id": str(payment.order_id),
            "payment_intent_id": payment.stripe_payment_intent_id,
        }
        try:
            intent = cls.get_stripe_adapter().retrieve_payment_intent(
                payment.stripe_payment_intent_id
            )
        except StripeError as e:
            return cls.handle_exception(e, "Open PaymentIntent lookup failed", extra=log_context)

        if intent.succeeded:
            cls.mark_payment_succeeded(payment.stripe_payment_intent_id, schedule_payout=True)
            return ServiceResult.failure(
                "Order has already been paid", error_code="ORDER_ALREADY_PAID"
            )
        if intent.status == "canceled":
            cls.mark_payment_failed(
                payment.stripe_payment_intent_id, intent.last_error or "PaymentIntent canceled"
            )
            return None

        cls.get_logger().info("Reusing open payment intent for order", extra=log_context)
        return ServiceResult.success(
            IssuedPayment(
                client_secret=intent.client_secret,
                payment_id=payment.id,
                payment_intent_id=payment.stripe_payment_intent_id,
            )
        )

    @classmethod
    def _issue(
        cls,
        merchant: Merchant,
        amount_cents: int,
        currency: str,
        customer_email: str,
        fee_percent: Decimal | str | None,
        description: str | None,
        order: Order | None = None,
        extra_metadata: dict[str, str] | None = None,
    ) -> ServiceResult[IssuedPayment]:
        if not merchant.is_onboarded:
            return ServiceResult.failure(
                "Merchant has not completed onboarding",
                error_code="MERCHANT_NOT_ONBOARDED",
            )

        try:
            split = compute_fee_split(amount_cents, fee_percent)
        except PaymentValidationError as e:
            return cls.handle_exception(
                e, "Payment rejected", log_level=logging.WARNING,
                extra={"merchant_id": str(merchant.id)},
            )

        policy = get_country_policy(merchant.country)
        payment_id = uuid.uuid4()
        currency = (currency or "usd").lower()

        intent_metadata = {
            **(extra_metadata or {}),
            "payment_id": str(payment_id),
            "merchant_id": str(merchant.id),
            "fee_percent": str(split.fee_percent),
            "platform_fee_cents": str(split.platform_fee_cents),
            "merchant_amount_cents": str(split.merchant_amount_cents),
            "merchant_country": merchant.country,
            "charge_mode": policy.charge_mode,
        }
        if order is not None:
            intent_metadata["order_id"] = str(order.id)
        if not policy.uses_destination_charges:
            intent_metadata["requires_transfer"] = "true"

        log_context = {
            "payment_id": str(payment_id),
            "merchant_id": str(merchant.id),
            "order_id": str(order.id) if order else None,
            "amount_cents": amount_cents,
            "charge_mode": policy.charge_mode,
        }

        try:
            intent = cls.get_stripe_adapter().create_payment_intent(
                CreatePaymentIntentParams(
                    amount_cents=split.total_cents,
                    currency=currency,
                    idempotency_key=IdempotencyKeyGenerator.generate(
                        "create_intent", payment_id
                    ),
                    metadata=intent_metadata,
                    receipt_email=customer_email or None,
                    description=description,
                    application_fee_cents=(
                        split.platform_fee_cents if policy.uses_destination_charges else None
                    ),
                    destination_account=(
                        merchant.stripe_account_id if policy.uses_destination_charges else None
                    ),
                )
            )
        except StripeError as e:
            return cls.handle_exception(e, "PaymentIntent creation failed", extra=log_context)

        payment = Payment.objects.create(
            id=payment_id,
            order=order,
            merchant=merchant,
            amount_cents=split.total_cents,
            currency=currency,
            platform_fee_percent=split.fee_percent,
            platform_fee_cents=split.platform_fee_cents,
            merchant_amount_cents=split.merchant_amount_cents,
            charge_mode=policy.charge_mode,
            stripe_payment_intent_id=intent.id,
            status=PaymentStatus.REQUIRES_ACTION,
            customer_email=customer_email or "",
            description=description or "",
            raw_response=intent.raw_response,
            metadata=dict(extra_metadata or {}),
        )

        cls.get_logger().info(
            "Payment intent issued",
            extra={**log_context, "payment_intent_id": intent.id},
        )
        return ServiceResult.success(
            IssuedPayment(
                client_secret=intent.client_secret,
                payment_id=payment.id,
                payment_intent_id=intent.id,
            )
        )

    # =========================================================================
    # Settling
    # =========================================================================

    @classmethod
    def confirm_payment(
        cls,
        payment_intent_id: str,
        order_id: UUID | str | None = None,
    ) -> ServiceResult[PaymentConfirmation]:
        """
        Read Stripe's view of the intent and reflect a success locally.

        Anything other than "succeeded" at Stripe fails with
        PAYMENT_NOT_SUCCEEDED and changes nothing.
        """
        payment = Payment.objects.filter(stripe_payment_intent_id=payment_intent_id).first()
        if payment is None:
            return ServiceResult.failure(
                "Payment not found", error_code="PAYMENT_NOT_FOUND"
            )
        if order_id is not None and str(payment.order_id) != str(order_id):
            return ServiceResult.failure(
                "Payment does not belong to this order",
                error_code="VALIDATION_ERROR",
                errors={"order_id": ["Does not match the payment's order."]},
            )

        try:
            intent = cls.get_stripe_adapter().retrieve_payment_intent(payment_intent_id)
        except StripeError as e:
            return cls.handle_exception(
                e, "PaymentIntent lookup failed",
                extra={"payment_intent_id": payment_intent_id},
            )

        if not intent.succeeded:
            return ServiceResult.failure(
                f"Payment has not succeeded (status: {intent.status})",
                error_code="PAYMENT_NOT_SUCCEEDED",
            )

        return cls.mark_payment_succeeded(
            payment_intent_id, order_id=order_id, schedule_payout=True
        )

    @classmethod
    def mark_payment_succeeded(
        cls,
        payment_intent_id: str,
        order_id: UUID | str | None = None,
        schedule_payout: bool = False,
    ) -> ServiceResult[PaymentConfirmation]:
        """
        Move a payment to SUCCEEDED and its order to COMPLETED.

        Both moves are conditional UPDATEs, so repeated or concurrent calls
        converge on the same state. When this call completes the order of a
        platform charge and auto payouts are enabled, payout creation is
        queued after commit.

        An order holds at most one succeeded payment. A second intent that
        succeeds for an already paid order is left in REQUIRES_ACTION and
        reported as ORDER_ALREADY_PAID so the capture can be refunded.
        """
        payment = Payment.objects.filter(stripe_payment_intent_id=payment_intent_id).first()
        if payment is None:
            return ServiceResult.failure(
                "Payment not found", error_code="PAYMENT_NOT_FOUND"
            )
        if order_id is not None and str(payment.order_id) != str(order_id):
            return ServiceResult.failure(
                "Payment does not belong to this order",
                error_code="VALIDATION_ERROR",
                errors={"order_id": ["Does not match the payment's order."]},
            )

        if payment.status == PaymentStatus.REQUIRES_ACTION and payment.order_id:
            paid_by = cls._succeeded_payment_for(payment.order_id, exclude_pk=payment.pk)
            if paid_by is not None:
                return cls._reject_second_capture(payment.order_id, payment_intent_id, paid_by)

        now = timezone.now()
        try:
            with cls.atomic():
                payment_updated = Payment.objects.filter(
                    pk=payment.pk, status=PaymentStatus.REQUIRES_ACTION
                ).update(status=PaymentStatus.SUCCEEDED, succeeded_at=now, updated_at=now)
                payment = Payment.objects.get(pk=payment.pk)

                order_updated = 0
                if payment.status == PaymentStatus.SUCCEEDED and payment.order_id:
                    order_updated = cls._complete_order(
                        payment.order_id, payment_intent_id, now
                    )

                if (
                    order_updated
                    and schedule_payout
                    and payment.charge_mode == ChargeMode.PLATFORM
                ):
                    cls._queue_payout(payment.order_id)
        except IntegrityError:
            # Another intent for the same order succeeded concurrently
            paid_by = cls._succeeded_payment_for(payment.order_id, exclude_pk=payment.pk)
            return cls._reject_second_capture(payment.order_id, payment_intent_id, paid_by)

        logger = cls.get_logger()
        log_context = {
            "payment_id": str(payment.id),
            "payment_intent_id": payment_intent_id,
            "order_id": str(payment.order_id) if payment.order_id else None,
        }
        if payment.status != PaymentStatus.SUCCEEDED:
            logger.warning(
                f"Success reported for a {payment.status} payment, leaving it",
                extra=log_context,
            )
        elif payment_updated:
            logger.info("Payment succeeded", extra=log_context)
        else:
            logger.info("Payment already succeeded, no-op", extra=log_context)

        return ServiceResult.success(
            PaymentConfirmation(
                payment=payment,
                payment_updated=bool(payment_updated),
                order_updated=bool(order_updated),
            )
        )

    @classmethod
    def mark_payment_failed(
        cls,
        payment_intent_id: str,
        reason: str | None = None,
    ) -> ServiceResult[PaymentConfirmation]:
        """Move a REQUIRES_ACTION payment to FAILED and its open order to FAILED."""
        payment = Payment.objects.filter(stripe_payment_intent_id=payment_intent_id).first()
        if payment is None:
            return ServiceResult.failure(
                "Payment not found", error_code="PAYMENT_NOT_FOUND"
            )

        now = timezone.now()
        with cls.atomic():
            payment_updated = Payment.objects.filter(
                pk=payment.pk, status=PaymentStatus.REQUIRES_ACTION
            ).update(
                status=PaymentStatus.FAILED,
                failed_at=now,
                failure_reason=reason or "Payment failed",
                updated_at=now,
            )
            payment = Payment.objects.get(pk=payment.pk)

            order_updated = 0
            if payment.status == PaymentStatus.FAILED and payment.order_id:
                order_updated = Order.objects.filter(pk=payment.order_id).exclude(
                    payment_status__in=[
                        OrderPaymentStatus.COMPLETED,
                        OrderPaymentStatus.FAILED,
                    ]
                ).update(payment_status=OrderPaymentStatus.FAILED, updated_at=now)

        cls.get_logger().info(
            "Payment failure recorded" if payment_updated else "Payment failure ignored",
            extra={
                "payment_id": str(payment.id),
                "payment_intent_id": payment_intent_id,
                "status": payment.status,
                "reason": reason,
            },
        )
        return ServiceResult.success(
            PaymentConfirmation(
                payment=payment,
                payment_updated=bool(payment_updated),
                order_updated=bool(order_updated),
            )
        )

    @classmethod
    def record_checkout_payment(
        cls,
        order: Order,
        payment_intent_id: str | None,
        amount_cents: int | None = None,
        currency: str | None = None,
        customer_email: str = "",
    ) -> ServiceResult[bool]:
        """
        Complete an order paid through a hosted Checkout Session.

        Checkout intents are created by Stripe, so there may be no Payment
        row yet. One is recorded in SUCCEEDED and the order completed with
        it. A session without an intent id leaves the order untouched, since
        there is no charge to record against it.

        Returns:
            ServiceResult with True when this call completed the order.
            Failure code ORDER_ALREADY_PAID when another intent already paid
            the order.
        """
        logger = cls.get_logger()
        log_context = {"order_id": str(order.pk), "payment_intent_id": payment_intent_id}

        if not payment_intent_id:
            logger.warning(
                "Paid checkout session has no payment intent, order left as is",
                extra=log_context,
            )
            return ServiceResult.success(False)

        if Payment.objects.filter(stripe_payment_intent_id=payment_intent_id).exists():
            return cls.mark_payment_succeeded(
                payment_intent_id, schedule_payout=True
            ).map(lambda confirmation: confirmation.order_updated)

        paid_by = cls._succeeded_payment_for(order.pk)
        if paid_by is not None:
            return cls._reject_second_capture(order.pk, payment_intent_id, paid_by)

        merchant = order.merchant
        policy = get_country_policy(merchant.country)
        try:
            split = compute_fee_split(amount_cents or to_minor_units(order.total_amount))
        except PaymentValidationError as e:
            return cls.handle_exception(e, "Checkout amount rejected", extra=log_context)

        now = timezone.now()
        try:
            with cls.atomic():
                Payment.objects.create(
                    order=order,
                    merchant=merchant,
                    amount_cents=split.total_cents,
                    currency=(currency or order.currency).lower(),
                    platform_fee_percent=split.fee_percent,
                    platform_fee_cents=split.platform_fee_cents,
                    merchant_amount_cents=split.merchant_amount_cents,
                    charge_mode=policy.charge_mode,
                    stripe_payment_intent_id=payment_intent_id,
                    status=PaymentStatus.SUCCEEDED,
                    customer_email=customer_email or "",
                    succeeded_at=now,
                )
                order_updated = cls._complete_order(order.pk, payment_intent_id, now)
                if order_updated and not policy.uses_destination_charges:
                    cls._queue_payout(order.pk)
        except IntegrityError:
            # A concurrent delivery recorded this intent, or another one paid the order
            if Payment.objects.filter(stripe_payment_intent_id=payment_intent_id).exists():
                return ServiceResult.success(False)
            return cls._reject_second_capture(
                order.pk, payment_intent_id, cls._succeeded_payment_for(order.pk)
            )

        logger.info(
            "Checkout payment recorded",
            extra={**log_context, "order_updated": bool(order_updated)},
        )
        return ServiceResult.success(bool(order_updated))

    @staticmethod
    def _succeeded_payment_for(order_id, exclude_pk=None) -> Payment | None:
        queryset = Payment.objects.filter(order_id=order_id, status=PaymentStatus.SUCCEEDED)
        if exclude_pk is not None:
            queryset = queryset.exclude(pk=exclude_pk)
        return queryset.first()

    @classmethod
    def _reject_second_capture(
        cls, order_id, payment_intent_id: str, paid_by: Payment | None
    ) -> ServiceResult:
        cls.get_logger().error(
            "Second successful payment for an already paid order, needs a refund",
            extra={
                "order_id": str(order_id),
                "payment_intent_id": payment_intent_id,
                "paid_by_payment_id": str(paid_by.id) if paid_by else None,
                "paid_by_payment_intent_id": (
                    paid_by.stripe_payment_intent_id if paid_by else None
                ),
            },
        )
        return ServiceResult.failure(
            "Order has already been paid by another payment",
            error_code="ORDER_ALREADY_PAID",
        )

    @staticmethod
    def _complete_order(order_id, payment_intent_id: str | None, now) -> int:
        fields: dict[str, Any] = {
            "payment_status": OrderPaymentStatus.COMPLETED,
            "paid_at": now,
            "updated_at": now,
        }
        if payment_intent_id:
            fields["stripe_payment_intent_id"] = payment_intent_id
        return (
            Order.objects.filter(pk=order_id)
            .exclude(payment_status=OrderPaymentStatus.COMPLETED)
            .update(**fields)
        )

    @staticmethod
    def _queue_payout(order_id) -> None:
        if not settings.SETTLEMENT_AUTO_CREATE_PAYOUTS:
            return

        from settlement.tasks import create_payout_for_order

        transaction.on_commit(lambda: create_payout_for_order.delay(str(order_id)))

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def list_payments(cls, filters: dict[str, Any] | None = None) -> ServiceResult[QuerySet]:
        """Filter payments by status, merchant, order, date range or search text."""
        from settlement.filters import PaymentFilter

        filterset = PaymentFilter(
            data=filters or {},
            queryset=Payment.objects.select_related("merchant", "order"),
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
        Aggregate payment counts, revenue and collected fees.

        Revenue figures count succeeded payments only. daily_revenue groups
        them by the day they succeeded, oldest first.

        Returns:
            ServiceResult with:
                count, succeeded_count, requires_action_count, failed_count,
                recent_count (created in the last 7 days), revenue_cents,
                platform_fee_cents, merchant_amount_cents,
                average_payment_cents, by_status, by_charge_mode, daily_revenue
        """
        queryset = Payment.objects.all()
        if date_from:
            queryset = queryset.filter(created_at__gte=date_from)
        if date_to:
            queryset = queryset.filter(created_at__lte=date_to)
        if merchant_id:
            queryset = queryset.filter(merchant_id=merchant_id)

        succeeded = Q(status=PaymentStatus.SUCCEEDED)
        recent_since = timezone.now() - timedelta(days=7)
        totals = queryset.aggregate(
            count=Count("id"),
            succeeded_count=Count("id", filter=succeeded),
            requires_action_count=Count("id", filter=Q(status=PaymentStatus.REQUIRES_ACTION)),
            failed_count=Count("id", filter=Q(status=PaymentStatus.FAILED)),
            recent_count=Count("id", filter=Q(created_at__gte=recent_since)),
            revenue_cents=Coalesce(Sum("amount_cents", filter=succeeded), 0),
            platform_fee_cents=Coalesce(Sum("platform_fee_cents", filter=succeeded), 0),
            merchant_amount_cents=Coalesce(Sum("merchant_amount_cents", filter=succeeded), 0),
            average_payment_cents=Avg("amount_cents", filter=succeeded),
        )
        average = totals["average_payment_cents"]
        totals["average_payment_cents"] = round(average) if average is not None else 0

        def breakdown(field_name: str) -> dict[str, dict[str, int]]:
            rows = (
                queryset.order_by()
                .values(field_name)
                .annotate(count=Count("id"), amount_cents=Sum("amount_cents"))
            )
            return {
                row[field_name]: {"count": row["count"], "amount_cents": row["amount_cents"] or 0}
                for row in rows
            }

        daily = (
            queryset.filter(succeeded, succeeded_at__isnull=False)
            .annotate(day=TruncDate("succeeded_at"))
            .order_by("day")
            .values("day")
            .annotate(
                count=Count("id"),
                revenue_cents=Sum("amount_cents"),
                platform_fee_cents=Sum("platform_fee_cents"),
            )
        )

        return ServiceResult.success(
            {
                **totals,
                "by_status": breakdown("status"),
                "by_charge_mode": breakdown("charge_mode"),
                "daily_revenue": [
                    {
                        "date": row["day"].isoformat(),
                        "count": row["count"],
                        "revenue_cents": row["revenue_cents"] or 0,
                        "platform_fee_cents": row["platform_fee_cents"] or 0,
                    }
                    for row in daily
                ],
            }
        )
