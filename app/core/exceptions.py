"""
Application error types shared by every app.

Hierarchy:
    BaseApplicationError
    ├── NotFoundError - a referenced record does not exist
    └── ConflictError - the current state forbids the operation

Services convert these into ServiceResult failures (see core.services), so
views rarely catch them directly.

Usage:
    from core.exceptions import NotFoundError

    raise NotFoundError(
        "Merchant not found",
        error_code="MERCHANT_NOT_FOUND",
        details={"merchant_id": str(merchant_id)},
    )
"""

from __future__ import annotations

from typing import Any


class BaseApplicationError(Exception):
    """
    Root of all domain errors.

    Attributes:
        message: Text safe to show to API clients
        error_code: Stable upper-case code clients can branch on
        details: Extra context, omitted from responses when empty
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class NotFoundError(BaseApplicationError):
    """A merchant, order, payment or payout lookup came back empty."""

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    The record is busy or in the wrong state for the requested change.

    Lock contention and refused state transitions derive from this; the API
    answers them with 409.
    """

    default_error_code: str = "CONFLICT"
