"""
Per-country Connect policy table.

Replaces scattered country checks with one lookup. The table lives in
settings.SETTLEMENT_COUNTRY_POLICIES; countries without an entry use
settings.SETTLEMENT_DEFAULT_COUNTRY_POLICY.

Usage:
    from settlement.policies import get_country_policy

    policy = get_country_policy(merchant.country)
    if policy.charge_mode == ChargeMode.DESTINATION:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from settlement.state_machines import ChargeMode, PayoutMethod, ServiceAgreement


@dataclass(frozen=True)
class CountryPolicy:
    """
    Connect behaviour for merchants in one country.

    Attributes:
        country: ISO 3166 alpha-2 code the policy was resolved for
        service_agreement: FULL (charges + transfers) or RECIPIENT (transfers)
        charge_mode: DESTINATION (split at capture) or PLATFORM (paid out later)
        payout_method: Default disbursement method for new payouts
        immediate_dispatch: Dispatch gateway payouts as soon as they are created
        collect_external_account: Submit bank details at account creation
    """

    country: str
    service_agreement: str
    charge_mode: str
    payout_method: str
    immediate_dispatch: bool = False
    collect_external_account: bool = False

    @property
    def capabilities(self) -> dict[str, dict[str, bool]]:
        """Capabilities to request when creating the connected account."""
        requested = {"transfers": {"requested": True}}
        if self.service_agreement == ServiceAgreement.FULL:
            requested["card_payments"] = {"requested": True}
        return requested

    @property
    def tos_acceptance(self) -> dict[str, str] | None:
        """Terms-of-service block for recipient accounts, None otherwise."""
        if self.service_agreement == ServiceAgreement.RECIPIENT:
            return {"service_agreement": ServiceAgreement.RECIPIENT.value}
        return None

    @property
    def uses_destination_charges(self) -> bool:
        return self.charge_mode == ChargeMode.DESTINATION


def _build_policy(country: str, raw: dict[str, Any]) -> CountryPolicy:
    try:
        return CountryPolicy(
            country=country,
            service_agreement=ServiceAgreement(raw["service_agreement"]).value,
            charge_mode=ChargeMode(raw["charge_mode"]).value,
            payout_method=PayoutMethod(raw["payout_method"]).value,
            immediate_dispatch=bool(raw.get("immediate_dispatch", False)),
            collect_external_account=bool(raw.get("collect_external_account", False)),
        )
    except (KeyError, ValueError) as e:
        raise ImproperlyConfigured(
            f"Invalid settlement country policy for {country!r}: {e}"
        ) from e


def get_country_policy(country: str | None) -> CountryPolicy:
    """
    Resolve the policy for a country code (case-insensitive).

    Unknown or empty codes resolve to the default policy.
    """
    code = (country or "").strip().upper()
    table = getattr(settings, "SETTLEMENT_COUNTRY_POLICIES", {})
    raw = table.get(code) or settings.SETTLEMENT_DEFAULT_COUNTRY_POLICY
    return _build_policy(code, raw)


__all__ = ["CountryPolicy", "get_country_policy"]
