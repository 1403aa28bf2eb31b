"""
Fakes for the Stripe SDK used by the adapter tests.

The mock_stripe_* fixtures patch one SDK resource class each; the
factories below build the objects those mocks return.
"""

from dataclasses import dataclass
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import stripe


@dataclass
class MockStripeObject:
    """Stand-in for stripe.StripeObject: attribute reads plus to_dict()."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


def _factory(object_type: str, **defaults: Any):
    def build(**overrides: Any) -> MockStripeObject:
        fields = {**defaults, **overrides}
        if fields.get("metadata") is None and "metadata" in defaults:
            fields["metadata"] = {}
        return MockStripeObject({"object": object_type, **fields})

    return build


@pytest.fixture
def mock_payment_intent():
    return _factory(
        "payment_intent",
        id="pi_test123456",
        status="requires_payment_method",
        amount=10000,
        currency="usd",
        client_secret="pi_test123456_secret_abc123",
        metadata=None,
        last_payment_error=None,
    )


@pytest.fixture
def mock_account():
    return _factory(
        "account",
        id="acct_test123",
        details_submitted=False,
        charges_enabled=False,
        payouts_enabled=False,
        capabilities={"transfers": "inactive"},
        requirements={"currently_due": []},
    )


@pytest.fixture
def mock_transfer():
    return _factory(
        "transfer",
        id="tr_test123456",
        amount=9210,
        currency="usd",
        destination="acct_dest123",
        metadata=None,
    )


@pytest.fixture
def card_error():
    def build(
        message: str = "Your card was declined.",
        code: str = "card_declined",
        decline_code: str | None = "generic_decline",
    ) -> stripe.CardError:
        error = stripe.CardError(message=message, param=None, code=code)
        error.decline_code = decline_code
        return error

    return build


@pytest.fixture
def invalid_request_error():
    def build(
        message: str = "Invalid payment intent ID",
        param: str | None = "payment_intent",
        code: str = "resource_missing",
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(message=message, param=param, code=code)

    return build


@pytest.fixture
def mock_stripe_payment_intent(mock_payment_intent):
    with patch("stripe.PaymentIntent") as resource:
        resource.create.return_value = mock_payment_intent()
        resource.retrieve.return_value = mock_payment_intent(status="succeeded")
        yield resource


@pytest.fixture
def mock_stripe_account(mock_account):
    with patch("stripe.Account") as resource:
        resource.create.return_value = mock_account()
        resource.retrieve.return_value = mock_account(details_submitted=True)
        resource.create_external_account.return_value = MockStripeObject({"id": "ba_test123"})
        resource.create_person.return_value = MockStripeObject({"id": "person_test123"})
        resource.create_login_link.return_value = MockStripeObject(
            {"url": "https://connect.stripe.com/express/login_abc"}
        )
        yield resource


@pytest.fixture
def mock_stripe_account_link():
    with patch("stripe.AccountLink") as resource:
        resource.create.return_value = MockStripeObject(
            {"url": "https://connect.stripe.com/setup/e/abc", "expires_at": 1700000000}
        )
        yield resource


@pytest.fixture
def mock_stripe_transfer(mock_transfer):
    with patch("stripe.Transfer") as resource:
        resource.create.return_value = mock_transfer()
        page = MagicMock()
        page.auto_paging_iter.return_value = iter([])
        resource.list.return_value = page
        yield resource
