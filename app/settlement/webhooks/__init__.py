"""
Webhook handling for Stripe events.

Events are verified against the secret of the endpoint that received them,
recorded once by Stripe event id and dispatched to idempotent handlers.

Usage:
    from settlement.webhooks.views import stripe_webhook, stripe_payments_webhook
"""
