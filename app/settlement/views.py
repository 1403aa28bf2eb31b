"""
Settlement API views.

Endpoints:
    Payments
    - POST /api/v1/settlement/payments/intents/ - Issue an ad-hoc PaymentIntent
    - POST /api/v1/settlement/payments/order-intents/ - Issue a PaymentIntent for an order
    - POST /api/v1/settlement/payments/confirm/ - Confirm a payment after client-side success
    - GET  /api/v1/settlement/payments/ - List payments
    - GET  /api/v1/settlement/payments/{id}/ - Payment detail
    - GET  /api/v1/settlement/payments/statistics/ - Aggregate payment figures

    Payouts
    - GET  /api/v1/settlement/payouts/ - List payouts
    - POST /api/v1/settlement/payouts/from-order/ - Create a payout for a paid order
    - GET  /api/v1/settlement/payouts/{id}/ - Payout detail
    - POST /api/v1/settlement/payouts/{id}/dispatch/ - Send a gateway transfer
    - POST /api/v1/settlement/payouts/{id}/retry/ - Retry a failed payout
    - POST /api/v1/settlement/payouts/{id}/complete-manual/ - Record a manual disbursement
    - GET  /api/v1/settlement/payouts/statistics/ - Aggregate payout figures
    - POST /api/v1/settlement/payouts/reconcile/ - Run the stuck payout sweep (staff)

    Connected accounts
    - POST /api/v1/settlement/merchants/{id}/connect/account/ - Create the Stripe account
    - GET  /api/v1/settlement/merchants/{id}/connect/status/ - Refresh account status
    - POST /api/v1/settlement/merchants/{id}/connect/onboarding-link/ - Onboarding link
    - POST /api/v1/settlement/merchants/{id}/connect/login-link/ - Dashboard login link

Failures from the service layer are returned as {success, error, error_code};
lookups that find nothing map to 404, lock conflicts to 409, everything else
to 400.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.services import ServiceResult
from settlement.models import Payment, Payout
from settlement.serializers import (
    AccountCreationResultSerializer,
    AccountStatusSerializer,
    AdHocPaymentRequestSerializer,
    CompleteManualPayoutRequestSerializer,
    ConfirmPaymentRequestSerializer,
    CreateAccountRequestSerializer,
    IssuedPaymentSerializer,
    LinkSerializer,
    OnboardingLinkRequestSerializer,
    OrderPaymentRequestSerializer,
    PaymentConfirmationSerializer,
    PaymentDetailSerializer,
    PaymentSerializer,
    PayoutFromOrderRequestSerializer,
    PayoutSerializer,
    ReconcileRequestSerializer,
    StatisticsQuerySerializer,
    SweepResultSerializer,
)
from settlement.services import (
    ConnectedAccountService,
    PaymentIntentService,
    PayoutReconciliationService,
    PayoutService,
)

logger = logging.getLogger(__name__)

CONFLICT_ERROR_CODES = frozenset({"LOCK_ACQUISITION_FAILED"})


def failure_response(result: ServiceResult) -> Response:
    """Render a failed ServiceResult with the matching HTTP status."""
    code = result.error_code or ""
    if code.endswith("_NOT_FOUND"):
        http_status = status.HTTP_404_NOT_FOUND
    elif code in CONFLICT_ERROR_CODES:
        http_status = status.HTTP_409_CONFLICT
    else:
        http_status = status.HTTP_400_BAD_REQUEST
    return Response(result.to_response(), status=http_status)


def invalid_input_response(errors) -> Response:
    return Response(
        {
            "success": False,
            "error": "Validation failed",
            "error_code": "VALIDATION_ERROR",
            "errors": errors,
        },
        status=status.HTTP_400_BAD_REQUEST,
    )


ERROR_RESPONSES = {
    400: OpenApiResponse(description="Validation or precondition failure"),
    404: OpenApiResponse(description="Referenced entity not found"),
}


# =============================================================================
# Payments
# =============================================================================


class AdHocPaymentIntentView(APIView):
    """Issue a PaymentIntent for an arbitrary amount payable to a merchant."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_payment_intent",
        summary="Create ad-hoc payment intent",
        description=(
            "Compute the fee split for the merchant's country and issue a "
            "Stripe PaymentIntent. Returns the client secret for the payment "
            "form."
        ),
        request=AdHocPaymentRequestSerializer,
        responses={
            201: OpenApiResponse(
                response=IssuedPaymentSerializer,
                description="PaymentIntent issued",
            ),
            **ERROR_RESPONSES,
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = AdHocPaymentRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)

        data = serializer.validated_data
        result = PaymentIntentService.create_ad_hoc_payment(
            merchant_id=data["merchant_id"],
            amount_cents=data["amount_cents"],
            currency=data["currency"],
            customer_email=data.get("customer_email", ""),
            fee_percent=data.get("fee_percent"),
            description=data.get("description"),
            metadata=data.get("metadata"),
        )
        if not result:
            return failure_response(result)

        return Response(
            IssuedPaymentSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class OrderPaymentIntentView(APIView):
    """Issue a PaymentIntent for the full amount of an order."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_order_payment_intent",
        summary="Create order payment intent",
        description="Issue a PaymentIntent for an unpaid order and mark it pending.",
        request=OrderPaymentRequestSerializer,
        responses={
            201: OpenApiResponse(
                response=IssuedPaymentSerializer,
                description="PaymentIntent issued",
            ),
            **ERROR_RESPONSES,
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = OrderPaymentRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)

        data = serializer.validated_data
        result = PaymentIntentService.create_order_payment(
            order_id=data["order_id"],
            customer_email=data.get("customer_email", ""),
            fee_percent=data.get("fee_percent"),
        )
        if not result:
            return failure_response(result)

        return Response(
            IssuedPaymentSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class ConfirmPaymentView(APIView):
    """Confirm a payment by re-reading the intent from Stripe."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="confirm_payment",
        summary="Confirm payment",
        description=(
            "Retrieve the PaymentIntent from Stripe and, when it has "
            "succeeded, mark the payment succeeded and the order completed. "
            "Safe to call more than once."
        ),
        request=ConfirmPaymentRequestSerializer,
        responses={
            200: OpenApiResponse(
                response=PaymentConfirmationSerializer,
                description="Payment confirmed",
            ),
            **ERROR_RESPONSES,
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = ConfirmPaymentRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)

        data = serializer.validated_data
        result = PaymentIntentService.confirm_payment(
            data["payment_intent_id"],
            order_id=data.get("order_id"),
        )
        if not result:
            return failure_response(result)

        return Response(PaymentConfirmationSerializer(result.data).data)


class PaymentListView(APIView):
    """List payments with filtering and pagination."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_payments",
        summary="List payments",
        parameters=[
            OpenApiParameter(name="status", type=str, description="Payment status"),
            OpenApiParameter(name="merchant", type=str, description="Merchant UUID"),
            OpenApiParameter(name="order", type=str, description="Order UUID"),
            OpenApiParameter(name="start_date", type=str, description="Created on or after"),
            OpenApiParameter(name="end_date", type=str, description="Created on or before"),
            OpenApiParameter(name="search", type=str, description="Free-text search"),
        ],
        responses={200: PaymentSerializer(many=True), 400: ERROR_RESPONSES[400]},
        tags=["Payments"],
    )
    def get(self, request):
        result = PaymentIntentService.list_payments(request.query_params)
        if not result:
            return failure_response(result)

        paginator = PageNumberPagination()
        page = paginator.paginate_queryset(result.data, request, view=self)
        return paginator.get_paginated_response(PaymentSerializer(page, many=True).data)


class PaymentDetailView(APIView):
    """Retrieve a single payment with its order's payouts."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_payment",
        summary="Get payment",
        responses={
            200: PaymentDetailSerializer,
            404: ERROR_RESPONSES[404],
        },
        tags=["Payments"],
    )
    def get(self, request, payment_id):
        payment = (
            Payment.objects.select_related("merchant", "order")
            .filter(pk=payment_id)
            .first()
        )
        if payment is None:
            return failure_response(
                ServiceResult.failure("Payment not found", error_code="PAYMENT_NOT_FOUND")
            )
        return Response(PaymentDetailSerializer(payment).data)


class PaymentStatisticsView(APIView):
    """Aggregate payment counts, revenue and platform fees."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="payment_statistics",
        summary="Payment statistics",
        parameters=[StatisticsQuerySerializer],
        responses={
            200: OpenApiResponse(
                description="Totals, by_status and by_charge_mode breakdowns, daily_revenue"
            ),
            400: ERROR_RESPONSES[400],
        },
        tags=["Payments"],
    )
    def get(self, request):
        serializer = StatisticsQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)

        data = serializer.validated_data
        result = PaymentIntentService.get_statistics(
            date_from=data.get("date_from"),
            date_to=data.get("date_to"),
            merchant_id=data.get("merchant"),
        )
        if not result:
            return failure_response(result)
        return Response(result.data)


# =============================================================================
# Payouts
# =============================================================================


class PayoutListView(APIView):
    """List payouts with filtering and pagination."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_payouts",
        summary="List payouts",
        parameters=[
            OpenApiParameter(name="status", type=str, description="Payout status"),
            OpenApiParameter(name="method", type=str, description="Payout method"),
            OpenApiParameter(name="merchant", type=str, description="Merchant UUID"),
            OpenApiParameter(name="order", type=str, description="Order UUID"),
            OpenApiParameter(name="start_date", type=str, description="Created on or after"),
            OpenApiParameter(name="end_date", type=str, description="Created on or before"),
            OpenApiParameter(name="search", type=str, description="Free-text search"),
        ],
        responses={200: PayoutSerializer(many=True), 400: ERROR_RESPONSES[400]},
        tags=["Payouts"],
    )
    def get(self, request):
        result = PayoutService.list_payouts(request.query_params)
        if not result:
            return failure_response(result)

        paginator = PageNumberPagination()
        page = paginator.paginate_queryset(result.data, request, view=self)
        return paginator.get_paginated_response(PayoutSerializer(page, many=True).data)


class PayoutFromOrderView(APIView):
    """Create a payout for a paid order."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_payout_from_order",
        summary="Create payout from order",
        description=(
            "Compute the fee split for a paid order and create its payout. "
            "Gateway payouts in countries configured for automatic dispatch "
            "are sent to Stripe immediately."
        ),
        request=PayoutFromOrderRequestSerializer,
        responses={
            201: OpenApiResponse(response=PayoutSerializer, description="Payout created"),
            **ERROR_RESPONSES,
        },
        tags=["Payouts"],
    )
    def post(self, request):
        serializer = PayoutFromOrderRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)

        data = serializer.validated_data
        result = PayoutService.create_from_order(
            data["order_id"],
            fee_percent=data.get("fee_percent"),
            method=data.get("method"),
        )
        if not result:
            return failure_response(result)

        return Response(PayoutSerializer(result.data).data, status=status.HTTP_201_CREATED)


class PayoutDetailView(APIView):
    """Retrieve a single payout."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_payout",
        summary="Get payout",
        responses={
            200: PayoutSerializer,
            404: ERROR_RESPONSES[404],
        },
        tags=["Payouts"],
    )
    def get(self, request, payout_id):
        payout = (
            Payout.objects.select_related("merchant", "order")
            .filter(pk=payout_id)
            .first()
        )
        if payout is None:
            return failure_response(
                ServiceResult.failure("Payout not found", error_code="PAYOUT_NOT_FOUND")
            )
        return Response(PayoutSerializer(payout).data)


class PayoutDispatchView(APIView):
    """Send a pending gateway payout to Stripe."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="dispatch_payout",
        summary="Dispatch payout",
        description=(
            "Claim a pending gateway payout and create the Stripe transfer. "
            "When Stripe's answer is lost the payout stays processing and "
            "DISPATCH_OUTCOME_UNKNOWN is returned; the reconciliation sweep "
            "settles it later."
        ),
        request=None,
        responses={
            200: OpenApiResponse(response=PayoutSerializer, description="Payout completed"),
            **ERROR_RESPONSES,
        },
        tags=["Payouts"],
    )
    def post(self, request, payout_id):
        result = PayoutService.dispatch(payout_id)
        if not result:
            return failure_response(result)
        return Response(PayoutSerializer(result.data).data)


class PayoutRetryView(APIView):
    """Retry a failed payout."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="retry_payout",
        summary="Retry payout",
        description=(
            "Move a failed payout back to pending. Gateway payouts are "
            "dispatched again with a fresh idempotency key."
        ),
        request=None,
        responses={
            200: OpenApiResponse(response=PayoutSerializer, description="Payout retried"),
            **ERROR_RESPONSES,
        },
        tags=["Payouts"],
    )
    def post(self, request, payout_id):
        result = PayoutService.retry(payout_id)
        if not result:
            return failure_response(result)
        return Response(PayoutSerializer(result.data).data)


class PayoutCompleteManualView(APIView):
    """Record that a manual payout was paid outside Stripe."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="complete_manual_payout",
        summary="Complete manual payout",
        request=CompleteManualPayoutRequestSerializer,
        responses={
            200: OpenApiResponse(response=PayoutSerializer, description="Payout completed"),
            **ERROR_RESPONSES,
        },
        tags=["Payouts"],
    )
    def post(self, request, payout_id):
        serializer = CompleteManualPayoutRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)

        data = serializer.validated_data
        result = PayoutService.complete_manual(
            payout_id,
            reference=data["reference"],
            notes=data.get("notes"),
            operator_id=request.user.pk,
        )
        if not result:
            return failure_response(result)
        return Response(PayoutSerializer(result.data).data)


class PayoutStatisticsView(APIView):
    """Aggregate payout counts and amounts."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="payout_statistics",
        summary="Payout statistics",
        parameters=[StatisticsQuerySerializer],
        responses={
            200: OpenApiResponse(description="Totals with by_status and by_method breakdowns"),
            400: ERROR_RESPONSES[400],
        },
        tags=["Payouts"],
    )
    def get(self, request):
        serializer = StatisticsQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)

        data = serializer.validated_data
        result = PayoutService.get_statistics(
            date_from=data.get("date_from"),
            date_to=data.get("date_to"),
            merchant_id=data.get("merchant"),
        )
        if not result:
            return failure_response(result)
        return Response(result.data)


class PayoutReconcileView(APIView):
    """Run the stuck payout sweep on demand."""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="reconcile_payouts",
        summary="Reconcile stuck payouts",
        description=(
            "Look up Stripe transfers for payouts left processing after an "
            "ambiguous dispatch and settle them. Staff only."
        ),
        request=ReconcileRequestSerializer,
        responses={
            200: OpenApiResponse(response=SweepResultSerializer, description="Sweep result"),
            400: ERROR_RESPONSES[400],
            409: OpenApiResponse(description="Another sweep is running"),
        },
        tags=["Payouts"],
    )
    def post(self, request):
        serializer = ReconcileRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)

        minutes = serializer.validated_data.get("older_than_minutes")
        older_than = timedelta(minutes=minutes) if minutes is not None else None
        result = PayoutReconciliationService.sweep_processing_payouts(older_than=older_than)
        if not result:
            return failure_response(result)

        logger.info(
            "Manual payout sweep by user %s settled %d payouts",
            request.user.pk,
            result.data.completed + result.data.failed,
        )
        return Response(SweepResultSerializer(result.data).data)


# =============================================================================
# Connected Accounts
# =============================================================================


class ConnectAccountView(APIView):
    """Create the Stripe connected account for a merchant."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_connected_account",
        summary="Create connected account",
        description=(
            "Create a Stripe Express account with the capabilities the "
            "merchant's country supports. Bank account and person details "
            "are submitted afterwards; their individual outcomes are "
            "reported without failing the account creation."
        ),
        request=CreateAccountRequestSerializer,
        responses={
            201: OpenApiResponse(
                response=AccountCreationResultSerializer,
                description="Account created",
            ),
            409: OpenApiResponse(description="Account creation already in progress"),
            **ERROR_RESPONSES,
        },
        tags=["Connected Accounts"],
    )
    def post(self, request, merchant_id):
        serializer = CreateAccountRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)

        data = dict(serializer.validated_data)
        email = data.pop("email", None)
        country = data.pop("country", None)
        result = ConnectedAccountService.create_account(
            merchant_id,
            email=email,
            country=country.upper() if country else None,
            business_info=data,
        )
        if not result:
            return failure_response(result)

        return Response(
            AccountCreationResultSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class ConnectStatusView(APIView):
    """Refresh and return a merchant's connected account status."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_connected_account_status",
        summary="Get connected account status",
        responses={200: AccountStatusSerializer, **ERROR_RESPONSES},
        tags=["Connected Accounts"],
    )
    def get(self, request, merchant_id):
        result = ConnectedAccountService.get_account_status(merchant_id)
        if not result:
            return failure_response(result)
        return Response(AccountStatusSerializer(result.data).data)


class ConnectOnboardingLinkView(APIView):
    """Issue a Stripe onboarding link."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_onboarding_link",
        summary="Create onboarding link",
        request=OnboardingLinkRequestSerializer,
        responses={200: LinkSerializer, **ERROR_RESPONSES},
        tags=["Connected Accounts"],
    )
    def post(self, request, merchant_id):
        serializer = OnboardingLinkRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)

        result = ConnectedAccountService.create_onboarding_link(
            merchant_id,
            refresh_url=serializer.validated_data.get("refresh_url"),
            return_url=serializer.validated_data.get("return_url"),
        )
        if not result:
            return failure_response(result)
        return Response(LinkSerializer(result.data).data)


class ConnectLoginLinkView(APIView):
    """Issue an Express dashboard login link."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_login_link",
        summary="Create dashboard login link",
        request=None,
        responses={200: LinkSerializer, **ERROR_RESPONSES},
        tags=["Connected Accounts"],
    )
    def post(self, request, merchant_id):
        result = ConnectedAccountService.create_login_link(merchant_id)
        if not result:
            return failure_response(result)
        return Response(LinkSerializer(result.data).data)
