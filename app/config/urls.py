"""
URL configuration for the settlement service.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/settlement/            - Settlement endpoints
        webhooks/stripe/           - Stripe webhook, general source (POST)
        webhooks/stripe/payments/  - Stripe webhook, payments source (POST)
        payments/                  - Payment list
        payments/intents/          - Ad-hoc payment intent (POST)
        payments/order-intents/    - Order payment intent (POST)
        payments/confirm/          - Synchronous payment confirmation (POST)
        payouts/                   - Payout list with filters
        payouts/from-order/        - Create payout from a paid order (POST)
        payouts/statistics/        - Payout aggregates
        payouts/reconcile/         - Sweep stuck payouts (POST)
        payouts/{id}/              - Payout detail
        payouts/{id}/dispatch/     - Dispatch gateway transfer (POST)
        payouts/{id}/retry/        - Retry failed payout (POST)
        payouts/{id}/complete-manual/ - Record manual disbursement (POST)
        merchants/{id}/connect/account/         - Create connected account (POST)
        merchants/{id}/connect/status/          - Live account status
        merchants/{id}/connect/onboarding-link/ - Onboarding link (POST)
        merchants/{id}/connect/login-link/      - Express dashboard link (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    path("settlement/", include("settlement.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Settlement Admin"
admin.site.site_title = "Settlement Portal"
admin.site.index_title = "Marketplace settlement"
