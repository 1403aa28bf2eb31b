"""
Shared pytest hooks for every app.

Fixtures live next to the tests that use them (settlement/conftest.py,
settlement/webhooks/tests/conftest.py).
"""

import pytest

# Files not listed here are marked integration.
MARKERS_BY_FILENAME = {
    "e2e": ("test_integration.py",),
    "unit": (
        "test_admin.py",
        "test_fees.py",
        "test_locks.py",
        "test_models.py",
        "test_policies.py",
        "test_services.py",
        "test_stripe_adapter.py",
    ),
}


def pytest_configure():
    from django.conf import settings

    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

    # Tests that need the post-payment payout task patch it in themselves
    settings.SETTLEMENT_AUTO_CREATE_PAYOUTS = False


def _marker_for(filename: str) -> str:
    for marker, filenames in MARKERS_BY_FILENAME.items():
        if filename in filenames:
            return marker
    return "integration"


def pytest_collection_modifyitems(items):
    """Mark each test unit, integration or e2e unless it already says which."""
    for item in items:
        if {m.name for m in item.iter_markers()} & {"unit", "integration", "e2e"}:
            continue
        item.add_marker(getattr(pytest.mark, _marker_for(item.path.name)))

