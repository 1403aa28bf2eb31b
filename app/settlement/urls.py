"""
URL configuration for the settlement app.

All routes are prefixed with /api/v1/settlement/ when included in the main
URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("settlement/", include("settlement.urls")),
    ]
"""

from django.urls import path

from settlement import views
from settlement.webhooks.views import stripe_payments_webhook, stripe_webhook

app_name = "settlement"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path(
        "webhooks/stripe/payments/",
        stripe_payments_webhook,
        name="stripe_payments_webhook",
    ),
    # Payments
    path("payments/", views.PaymentListView.as_view(), name="payment_list"),
    path(
        "payments/intents/",
        views.AdHocPaymentIntentView.as_view(),
        name="payment_intent_create",
    ),
    path(
        "payments/order-intents/",
        views.OrderPaymentIntentView.as_view(),
        name="order_payment_intent_create",
    ),
    path("payments/confirm/", views.ConfirmPaymentView.as_view(), name="payment_confirm"),
    path(
        "payments/statistics/",
        views.PaymentStatisticsView.as_view(),
        name="payment_statistics",
    ),
    path(
        "payments/<uuid:payment_id>/",
        views.PaymentDetailView.as_view(),
        name="payment_detail",
    ),
    # Payouts
    path("payouts/", views.PayoutListView.as_view(), name="payout_list"),
    path(
        "payouts/from-order/",
        views.PayoutFromOrderView.as_view(),
        name="payout_from_order",
    ),
    path(
        "payouts/statistics/",
        views.PayoutStatisticsView.as_view(),
        name="payout_statistics",
    ),
    path(
        "payouts/reconcile/",
        views.PayoutReconcileView.as_view(),
        name="payout_reconcile",
    ),
    path(
        "payouts/<uuid:payout_id>/",
        views.PayoutDetailView.as_view(),
        name="payout_detail",
    ),
    path(
        "payouts/<uuid:payout_id>/dispatch/",
        views.PayoutDispatchView.as_view(),
        name="payout_dispatch",
    ),
    path(
        "payouts/<uuid:payout_id>/retry/",
        views.PayoutRetryView.as_view(),
        name="payout_retry",
    ),
    path(
        "payouts/<uuid:payout_id>/complete-manual/",
        views.PayoutCompleteManualView.as_view(),
        name="payout_complete_manual",
    ),
    # Connected accounts
    path(
        "merchants/<uuid:merchant_id>/connect/account/",
        views.ConnectAccountView.as_view(),
        name="connect_account",
    ),
    path(
        "merchants/<uuid:merchant_id>/connect/status/",
        views.ConnectStatusView.as_view(),
        name="connect_status",
    ),
    path(
        "merchants/<uuid:merchant_id>/connect/onboarding-link/",
        views.ConnectOnboardingLinkView.as_view(),
        name="connect_onboarding_link",
    ),
    path(
        "merchants/<uuid:merchant_id>/connect/login-link/",
        views.ConnectLoginLinkView.as_view(),
        name="connect_login_link",
    ),
]
