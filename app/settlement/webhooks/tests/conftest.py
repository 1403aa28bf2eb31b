"""
Fixtures for webhook tests.

Usage:
    def test_event(signed_post):
        response = signed_post("stripe_payments_webhook", event)
"""

import json
from unittest.mock import MagicMock

import pytest
from django.urls import reverse

from settlement.webhooks.reconciler import WebhookReconciler
from settlement.webhooks.tests.events import sign_payload

GENERAL_SECRET = "whsec_general_test"
PAYMENTS_SECRET = "whsec_payments_test"


@pytest.fixture
def webhook_secrets(settings):
    settings.STRIPE_WEBHOOK_SECRET = GENERAL_SECRET
    settings.STRIPE_PAYMENTS_WEBHOOK_SECRET = PAYMENTS_SECRET
    return settings


@pytest.fixture
def signed_post(client, webhook_secrets):
    """
    POST an event to a webhook endpoint with a valid signature.

    Pass secret= to sign with a different secret, signature= to send a
    header verbatim.
    """

    def post(url_name, event, secret=None, signature=None):
        payload = json.dumps(event).encode("utf-8")
        if secret is None:
            secret = PAYMENTS_SECRET if "payments" in url_name else GENERAL_SECRET
        if signature is None:
            signature = sign_payload(payload, secret)
        return client.post(
            reverse(f"settlement:{url_name}"),
            data=payload,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature,
        )

    return post


@pytest.fixture
def verifying_adapter():
    """Inject an adapter whose signature check returns the parsed payload."""
    adapter = MagicMock()
    adapter.verify_webhook_signature.side_effect = (
        lambda payload, signature, secret: json.loads(payload)
    )
    WebhookReconciler.set_stripe_adapter(adapter)
    try:
        yield adapter
    finally:
        WebhookReconciler.set_stripe_adapter(None)
