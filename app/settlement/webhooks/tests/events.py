"""Helpers for building and signing Stripe webhook payloads in tests."""

import hashlib
import hmac
import time


def build_event(event_type, obj, event_id="evt_test_1", **extra):
    """Build a Stripe event envelope around a data object."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": obj},
        **extra,
    }


def sign_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Produce a Stripe-Signature header for the payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"
