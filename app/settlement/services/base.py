"""Base class for settlement services that reach Stripe."""

from __future__ import annotations

from core.services import BaseService

from settlement.adapters import StripeAdapter


class StripeService(BaseService):
    """
    BaseService with a swappable gateway adapter.

    The override is stored per subclass, so tests can fake Stripe for one
    service without touching the others. Passing None restores StripeAdapter.
    """

    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        cls._stripe_adapter = adapter
