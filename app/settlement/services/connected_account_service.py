"""
Connected account service for merchant Stripe Connect onboarding.

Creates Express accounts with the capability set of the merchant's country,
issues onboarding and login links, and mirrors Stripe's onboarding view
back onto the Merchant row.

Usage:
    from settlement.services import ConnectedAccountService

    result = ConnectedAccountService.create_account(
        merchant.id,
        business_info={"business_name": "Manila Crafts", "external_account": "btok_x"},
    )
    if result.success:
        result.data.account_id          # "acct_..."
        result.data.failed_enrichments  # bank/person sub-calls that failed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.utils import timezone

from core.services import ServiceResult

from marketplace.models import Merchant
from settlement.adapters import (
    AccountLinkResult,
    CreateAccountParams,
    IdempotencyKeyGenerator,
)
from settlement.exceptions import LockAcquisitionError, StripeError
from settlement.locks import DistributedLock
from settlement.policies import CountryPolicy, get_country_policy
from settlement.services.base import StripeService
from settlement.state_machines import OnboardingStatus

if TYPE_CHECKING:
    from uuid import UUID


# Per-merchant lock around account creation (seconds)
ACCOUNT_CREATE_LOCK_TTL = 60


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class EnrichmentOutcome:
    """Outcome of one follow-up call made after the account was created."""

    name: str
    succeeded: bool
    error: str | None = None


@dataclass
class AccountCreationResult:
    """
    Result of a connected account creation.

    Attributes:
        account_id: Stripe Connect account ID
        capabilities: Capabilities requested for the merchant's country
        enrichment: One outcome per bank account / person submission
    """

    account_id: str
    capabilities: dict[str, dict[str, bool]]
    enrichment: list[EnrichmentOutcome] = field(default_factory=list)

    @property
    def failed_enrichments(self) -> list[EnrichmentOutcome]:
        return [outcome for outcome in self.enrichment if not outcome.succeeded]


@dataclass
class AccountStatus:
    """Live onboarding view of a connected account."""

    account_id: str
    onboarding_status: str
    details_submitted: bool
    charges_enabled: bool
    payouts_enabled: bool
    capabilities: dict[str, str] = field(default_factory=dict)
    requirements: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Connected Account Service
# =============================================================================


class ConnectedAccountService(StripeService):
    """
    Service for merchant Stripe Connect accounts.

    A merchant holds at most one account id. Creation runs under a
    per-merchant DistributedLock so two concurrent requests cannot both
    reach Stripe; the loser gets LOCK_ACQUISITION_FAILED.

    Onboarding status only moves through conditional updates keyed on the
    account id, so webhook redeliveries converge on the same row state.
    """

    # =========================================================================
    # Account Creation
    # =========================================================================

    @classmethod
    def create_account(
        cls,
        merchant_id: UUID | str,
        email: str | None = None,
        country: str | None = None,
        business_info: dict[str, Any] | None = None,
    ) -> ServiceResult[AccountCreationResult]:
        """
        Create a Stripe Express account for a merchant.

        Args:
            merchant_id: Merchant to onboard
            email: Account email, defaults to the merchant's email
            country: ISO country, defaults to the merchant's country
            business_info: business_name (defaults to merchant name), phone,
                and optionally external_account and persons to submit
                once the account exists

        Returns:
            ServiceResult with AccountCreationResult. Failure codes:
            MERCHANT_NOT_FOUND, ALREADY_ONBOARDED, VALIDATION_ERROR,
            LOCK_ACQUISITION_FAILED, or the Stripe error code
        """
        logger = cls.get_logger()
        business_info = dict(business_info or {})

        merchant = Merchant.objects.filter(pk=merchant_id).first()
        if merchant is None:
            return ServiceResult.failure(
                "Merchant not found", error_code="MERCHANT_NOT_FOUND"
            )
        if merchant.has_connected_account:
            return ServiceResult.failure(
                "Merchant already has a connected account",
                error_code="ALREADY_ONBOARDED",
            )

        email = email or merchant.email
        country = (country or merchant.country or "").upper()
        business_name = business_info.get("business_name", merchant.name)

        invalid = cls.validate_required(
            business_name=business_name, email=email, country=country
        )
        if invalid:
            return invalid
        try:
            validate_email(email)
        except DjangoValidationError:
            return ServiceResult.failure(
                "Invalid business information",
                error_code="VALIDATION_ERROR",
                errors={"email": ["Enter a valid email address."]},
            )

        policy = get_country_policy(country)
        log_context = {"merchant_id": str(merchant.id), "country": country}

        try:
            with DistributedLock(
                f"connect:create:{merchant.id}",
                ttl=ACCOUNT_CREATE_LOCK_TTL,
            ):
                merchant.refresh_from_db()
                if merchant.has_connected_account:
                    return ServiceResult.failure(
                        "Merchant already has a connected account",
                        error_code="ALREADY_ONBOARDED",
                    )

                attempt = int(merchant.get_meta("account_create_attempts", 0)) + 1
                merchant.set_meta("account_create_attempts", attempt)

                account = cls.get_stripe_adapter().create_connected_account(
                    CreateAccountParams(
                        email=email,
                        country=country,
                        business_name=business_name,
                        capabilities=policy.capabilities,
                        tos_acceptance=policy.tos_acceptance,
                        phone=business_info.get("phone"),
                        idempotency_key=IdempotencyKeyGenerator.generate(
                            "create_account", merchant.id, attempt
                        ),
                        metadata={"merchant_id": str(merchant.id)},
                    )
                )

                now = timezone.now()
                Merchant.objects.filter(pk=merchant.pk).update(
                    stripe_account_id=account.id,
                    onboarding_status=OnboardingStatus.PENDING,
                    account_created_at=now,
                    charges_enabled=account.charges_enabled,
                    payouts_enabled=account.payouts_enabled,
                    updated_at=now,
                )
        except LockAcquisitionError as e:
            return cls.handle_exception(
                e, "Account creation already in progress",
                log_level=logging.WARNING, extra=log_context,
            )
        except StripeError as e:
            return cls.handle_exception(
                e, "Connected account creation failed", extra=log_context
            )

        logger.info(
            "Connected account created",
            extra={**log_context, "stripe_account_id": account.id},
        )

        enrichment = cls._submit_enrichment(merchant, account.id, business_info, policy)
        return ServiceResult.success(
            AccountCreationResult(
                account_id=account.id,
                capabilities=policy.capabilities,
                enrichment=enrichment,
            )
        )

    @classmethod
    def _submit_enrichment(
        cls,
        merchant: Merchant,
        account_id: str,
        business_info: dict[str, Any],
        policy: CountryPolicy,
    ) -> list[EnrichmentOutcome]:
        """
        Submit bank account and persons carried in business_info.

        Bank details are only sent for countries whose policy collects them
        at creation, elsewhere Stripe collects them during onboarding.

        Each sub-call is independent; a failure is logged and recorded but
        never undoes the account.
        """
        logger = cls.get_logger()
        adapter = cls.get_stripe_adapter()
        outcomes: list[EnrichmentOutcome] = []

        calls = []
        external_account = business_info.get("external_account")
        if external_account and not policy.collect_external_account:
            logger.info(
                "Bank details not collected at creation for this country, skipping",
                extra={"merchant_id": str(merchant.id), "country": policy.country},
            )
        elif external_account:
            calls.append((
                "external_account",
                lambda: adapter.create_external_account(
                    account_id,
                    external_account,
                    IdempotencyKeyGenerator.generate(
                        "create_external_account", merchant.id
                    ),
                ),
            ))
        for index, person in enumerate(business_info.get("persons") or [], start=1):
            calls.append((
                f"person_{index}",
                lambda person=person, index=index: adapter.create_person(
                    account_id,
                    person,
                    IdempotencyKeyGenerator.generate(
                        "create_person", merchant.id, index
                    ),
                ),
            ))

        for name, call in calls:
            try:
                call()
            except StripeError as e:
                logger.warning(
                    f"Account enrichment failed: {name}",
                    extra={
                        "merchant_id": str(merchant.id),
                        "stripe_account_id": account_id,
                        "error_code": e.error_code,
                    },
                )
                outcomes.append(EnrichmentOutcome(name, False, e.message))
            else:
                outcomes.append(EnrichmentOutcome(name, True))

        return outcomes

    # =========================================================================
    # Links
    # =========================================================================

    @classmethod
    def create_onboarding_link(
        cls,
        merchant_id: UUID | str,
        refresh_url: str | None = None,
        return_url: str | None = None,
    ) -> ServiceResult[AccountLinkResult]:
        """Issue a single-use Stripe onboarding link for the merchant."""
        merchant = Merchant.objects.filter(pk=merchant_id).first()
        if merchant is None:
            return ServiceResult.failure(
                "Merchant not found", error_code="MERCHANT_NOT_FOUND"
            )
        if not merchant.has_connected_account:
            return ServiceResult.failure(
                "Merchant has no connected account", error_code="NO_ACCOUNT"
            )

        base_url = settings.FRONTEND_BASE_URL.rstrip("/")
        refresh_url = refresh_url or f"{base_url}{settings.SETTLEMENT_ONBOARDING_REFRESH_PATH}"
        return_url = return_url or f"{base_url}{settings.SETTLEMENT_ONBOARDING_RETURN_PATH}"

        try:
            link = cls.get_stripe_adapter().create_account_link(
                merchant.stripe_account_id, refresh_url, return_url
            )
        except StripeError as e:
            return cls.handle_exception(
                e, "Onboarding link creation failed",
                extra={"merchant_id": str(merchant.id)},
            )
        return ServiceResult.success(link)

    @classmethod
    def create_login_link(cls, merchant_id: UUID | str) -> ServiceResult:
        """Issue an Express dashboard login link for the merchant."""
        merchant = Merchant.objects.filter(pk=merchant_id).first()
        if merchant is None:
            return ServiceResult.failure(
                "Merchant not found", error_code="MERCHANT_NOT_FOUND"
            )
        if not merchant.has_connected_account:
            return ServiceResult.failure(
                "Merchant has no connected account", error_code="NO_ACCOUNT"
            )

        try:
            link = cls.get_stripe_adapter().create_login_link(merchant.stripe_account_id)
        except StripeError as e:
            return cls.handle_exception(
                e, "Login link creation failed",
                extra={"merchant_id": str(merchant.id)},
            )
        return ServiceResult.success(link)

    # =========================================================================
    # Status Mirroring
    # =========================================================================

    @classmethod
    def get_account_status(cls, merchant_id: UUID | str) -> ServiceResult[AccountStatus]:
        """
        Refresh the merchant's onboarding state from Stripe.

        Onboarding is COMPLETED iff Stripe reports details_submitted,
        otherwise PENDING. Outstanding requirements are kept in metadata.
        """
        merchant = Merchant.objects.filter(pk=merchant_id).first()
        if merchant is None:
            return ServiceResult.failure(
                "Merchant not found", error_code="MERCHANT_NOT_FOUND"
            )
        if not merchant.has_connected_account:
            return ServiceResult.failure(
                "Merchant has no connected account", error_code="NO_ACCOUNT"
            )

        try:
            account = cls.get_stripe_adapter().retrieve_account(merchant.stripe_account_id)
        except StripeError as e:
            return cls.handle_exception(
                e, "Account status refresh failed",
                extra={"merchant_id": str(merchant.id)},
            )

        status = cls._mirror_account(
            merchant.stripe_account_id,
            account.details_submitted,
            account.charges_enabled,
            account.payouts_enabled,
        )
        merchant.refresh_from_db()
        merchant.set_meta("requirements", account.requirements)

        return ServiceResult.success(
            AccountStatus(
                account_id=account.id,
                onboarding_status=status,
                details_submitted=account.details_submitted,
                charges_enabled=account.charges_enabled,
                payouts_enabled=account.payouts_enabled,
                capabilities=account.capabilities,
                requirements=account.requirements,
            )
        )

    @classmethod
    def _mirror_account(
        cls,
        account_id: str,
        details_submitted: bool,
        charges_enabled: bool,
        payouts_enabled: bool,
    ) -> str:
        status = (
            OnboardingStatus.COMPLETED if details_submitted else OnboardingStatus.PENDING
        )
        Merchant.objects.filter(stripe_account_id=account_id).update(
            onboarding_status=status,
            charges_enabled=charges_enabled,
            payouts_enabled=payouts_enabled,
            updated_at=timezone.now(),
        )
        return status

    @classmethod
    def handle_account_event(cls, event: dict[str, Any]) -> ServiceResult[str | None]:
        """
        Apply an account.updated or account.application.deauthorized event.

        account.updated events older than the last one applied are ignored,
        so a late delivery cannot move onboarding backwards.

        Returns the merchant's resulting onboarding status, or None when no
        merchant holds the account.
        """
        logger = cls.get_logger()
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}

        if event_type == "account.application.deauthorized":
            account_id = event.get("account") or obj.get("id")
        else:
            account_id = obj.get("id") or event.get("account")

        log_context = {"event_type": event_type, "stripe_account_id": account_id}

        if not account_id or not Merchant.objects.filter(
            stripe_account_id=account_id
        ).exists():
            logger.info("Account event for unknown account, ignoring", extra=log_context)
            return ServiceResult.success(None)

        if event_type == "account.application.deauthorized":
            Merchant.objects.filter(stripe_account_id=account_id).update(
                stripe_account_id=None,
                onboarding_status=OnboardingStatus.NONE,
                charges_enabled=False,
                payouts_enabled=False,
                updated_at=timezone.now(),
            )
            logger.warning("Connected account deauthorized", extra=log_context)
            return ServiceResult.success(OnboardingStatus.NONE.value)

        if event_type != "account.updated":
            logger.info("Unhandled account event type", extra=log_context)
            return ServiceResult.success(None)

        created = event.get("created")
        with cls.atomic():
            merchant = (
                Merchant.objects.select_for_update()
                .filter(stripe_account_id=account_id)
                .first()
            )
            last_applied = merchant.get_meta("account_event_created")
            if created is not None and last_applied is not None and created < last_applied:
                logger.info(
                    "Account event older than the last one applied, ignoring",
                    extra={**log_context, "event_created": created, "last_applied": last_applied},
                )
                return ServiceResult.success(str(merchant.onboarding_status))

            status = cls._mirror_account(
                account_id,
                bool(obj.get("details_submitted")),
                bool(obj.get("charges_enabled")),
                bool(obj.get("payouts_enabled")),
            )
            if created is not None:
                merchant.set_meta("account_event_created", created)
        logger.info(
            "Account status mirrored",
            extra={**log_context, "onboarding_status": str(status)},
        )
        return ServiceResult.success(str(status))
