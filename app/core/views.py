"""Liveness endpoint used by the container orchestrator and load balancer."""

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)

PROBE_KEY = "health:probe"


def _database_reachable() -> bool:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError:
        logger.exception("Health probe could not reach the database")
        return False
    return True


def _cache_reachable() -> bool:
    # django-redis is configured with IGNORE_EXCEPTIONS, so a dead Redis
    # shows up as a missed read rather than an error.
    cache.set(PROBE_KEY, "ok", timeout=1)
    return cache.get(PROBE_KEY) == "ok"


def health_check(request):
    """
    Report database and cache reachability.

    Only the database decides the status code (200 or 503). A cache outage
    is reported in the body but keeps the instance in rotation, since it
    only affects the settlement locks.
    """
    database = _database_reachable()
    body = {
        "status": "healthy" if database else "unhealthy",
        "database": "connected" if database else "disconnected",
        "cache": "connected" if _cache_reachable() else "disconnected",
    }
    return JsonResponse(body, status=200 if database else 503)
