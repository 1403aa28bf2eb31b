"""
Service layer primitives.

Business operations live on BaseService subclasses as classmethods and
report expected outcomes through ServiceResult. Exceptions are reserved for
things the caller cannot reasonably branch on (bugs, database outages).

Usage:
    from core.services import BaseService, ServiceResult

    class PayoutService(BaseService):
        @classmethod
        def retry(cls, payout_id) -> ServiceResult[Payout]:
            payout = Payout.objects.filter(id=payout_id).first()
            if payout is None:
                return ServiceResult.failure(
                    "Payout not found", error_code="PAYOUT_NOT_FOUND"
                )
            ...
            return ServiceResult.success(payout)

    result = PayoutService.retry(payout_id)
    if not result:
        return Response(result.to_response(), status=400)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Iterator

T = TypeVar("T")
U = TypeVar("U")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: True when the operation did what was asked
        data: Payload on success
        error: Client-facing message on failure
        error_code: Upper-case code such as WRONG_STATE or PAYOUT_NOT_FOUND
        errors: Per-field messages for VALIDATION_ERROR failures

    A result is truthy exactly when it succeeded.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code, errors=errors)

    @classmethod
    def from_exception(cls, exc: Exception) -> ServiceResult[T]:
        """
        Build a failure from a caught exception.

        BaseApplicationError subclasses keep their message and error_code;
        anything else is coded by its class name.
        """
        return cls.failure(
            getattr(exc, "message", None) or str(exc),
            error_code=getattr(exc, "error_code", None) or type(exc).__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """Body for an API response."""
        if self.success:
            return {"success": True, "data": self.data}

        body: dict[str, Any] = {"success": False, "error": self.error}
        if self.error_code:
            body["error_code"] = self.error_code
        if self.errors:
            body["errors"] = self.errors
        return body

    def map(self, func: Callable[[T], U]) -> ServiceResult[U]:
        """Apply func to the data of a successful result; failures pass through."""
        if not self.success:
            return self  # type: ignore[return-value]
        return ServiceResult.success(func(self.data))

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Stateless base for service classes.

    Subclasses expose classmethods only. Gateway adapters are injected at
    class level (see the set_stripe_adapter hooks in settlement.services).
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named module.ClassName so each service can be filtered."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Iterator[None]:
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
        extra: dict[str, Any] | None = None,
    ) -> ServiceResult:
        """
        Log a caught exception and turn it into a failure.

        Tracebacks are attached only at ERROR and above; expected gateway
        and lock failures are usually logged at WARNING or INFO.
        """
        cls.get_logger().log(
            log_level,
            f"{context}: {exc}" if context else str(exc),
            extra=extra or {},
            exc_info=log_level >= logging.ERROR,
        )
        return ServiceResult.from_exception(exc)

    @staticmethod
    def validate_required(**values: Any) -> ServiceResult | None:
        """
        Fail with VALIDATION_ERROR when any value is None or blank.

        Returns None when everything is present:

            invalid = cls.validate_required(reference=reference)
            if invalid:
                return invalid
        """
        missing = {
            name: ["This field is required."]
            for name, value in values.items()
            if value is None or (isinstance(value, str) and not value.strip())
        }
        if missing:
            return ServiceResult.failure(
                "Required fields missing", error_code="VALIDATION_ERROR", errors=missing
            )
        return None
