"""
Settlement services.

Services:
    ConnectedAccountService: Stripe Connect account creation and status
    PaymentIntentService: Split payment intents and their outcome
    PayoutService: Payout creation, dispatch, manual completion and retry
    PayoutReconciliationService: Sweep of payouts with an unknown outcome
"""

from settlement.services.connected_account_service import (
    AccountCreationResult,
    AccountStatus,
    ConnectedAccountService,
    EnrichmentOutcome,
)
from settlement.services.payment_intent_service import (
    IssuedPayment,
    PaymentConfirmation,
    PaymentIntentService,
)
from settlement.services.payout_service import PayoutService
from settlement.services.reconciliation_service import (
    PayoutReconciliationService,
    SweepResult,
)

__all__ = [
    "AccountCreationResult",
    "AccountStatus",
    "ConnectedAccountService",
    "EnrichmentOutcome",
    "IssuedPayment",
    "PaymentConfirmation",
    "PaymentIntentService",
    "PayoutReconciliationService",
    "PayoutService",
    "SweepResult",
]
