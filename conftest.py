"""
Root pytest configuration for the Django project.

Sets environment defaults so the settings module can load without a
.env file, then configures Django. App-specific fixtures are defined in
each app's tests/conftest.py.
"""

import os

import django

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DEBUG", "True")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_general_test")
os.environ.setdefault("STRIPE_PAYMENTS_WEBHOOK_SECRET", "whsec_payments_test")


def pytest_configure():
    """Configure Django settings before tests run."""
    from django.conf import settings

    django.setup()

    # Local memory cache keeps tests independent of a running Redis
    settings.CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        }
    }
