"""
ASGI entry point.

Exposes ``application`` for ASGI servers; settings default to config.settings.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()
