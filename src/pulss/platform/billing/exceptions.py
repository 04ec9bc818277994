"""
Billing system exceptions.

Custom exceptions for billing operations with clear error messages.
Every error carries an ``ErrorKind`` so schedulers and HTTP handlers can
decide retry policy mechanically: terminal errors need a different input,
retryable errors may succeed when the same call is repeated.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Retry classification for billing errors."""

    TERMINAL = "terminal"
    RETRYABLE = "retryable"


class BillingError(Exception):
    """
    Base billing system error with enhanced context.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for API responses
        status_code: HTTP status code for this error type
        context: Additional context data about the error
        recovery_hint: Suggested action to resolve the error
        kind: Whether repeating the call may succeed
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int = 400,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
        kind: ErrorKind = ErrorKind.TERMINAL,
    ):
        self.message = message
        self.error_code = error_code or "BILLING_ERROR"
        self.status_code = status_code
        self.context = context or {}
        self.recovery_hint = recovery_hint
        self.kind = kind
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.RETRYABLE

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
            "recovery_hint": self.recovery_hint,
            "kind": self.kind.value,
        }


class ValidationError(BillingError):
    """Input rejected by a business rule (inactive plan, coupon constraint, missing field)."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message,
            "VALIDATION_ERROR",
            status_code=400,
            context=context,
            recovery_hint=recovery_hint,
        )


class NotFoundError(BillingError):
    """Referenced billing resource does not exist for this tenant."""

    resource_type = "resource"

    def __init__(
        self,
        message: str | None = None,
        resource_id: str | None = None,
        tenant_id: str | None = None,
    ):
        context: dict[str, Any] = {"resource_type": self.resource_type}
        if resource_id:
            context["resource_id"] = resource_id
        if tenant_id:
            context["tenant_id"] = tenant_id

        super().__init__(
            message or f"{self.resource_type.replace('_', ' ').capitalize()} not found",
            f"{self.resource_type.upper()}_NOT_FOUND",
            status_code=404,
            context=context,
            recovery_hint=f"Verify the {self.resource_type.replace('_', ' ')} ID and tenant",
        )


class PlanNotFoundError(NotFoundError):
    resource_type = "plan"


class SubscriptionNotFoundError(NotFoundError):
    resource_type = "subscription"


class InvoiceNotFoundError(NotFoundError):
    resource_type = "invoice"


class CouponNotFoundError(NotFoundError):
    resource_type = "coupon"


class TransactionNotFoundError(NotFoundError):
    resource_type = "transaction"


class CommissionNotFoundError(NotFoundError):
    resource_type = "commission"


class PartnerNotFoundError(NotFoundError):
    resource_type = "partner"


class ConcurrencyConflict(BillingError):
    """A concurrent writer won a race (duplicate invoice number, coupon cap)."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(
            message,
            "CONCURRENCY_CONFLICT",
            status_code=409,
            context=context,
            recovery_hint="Retry the operation",
            kind=ErrorKind.RETRYABLE,
        )


class GatewayError(BillingError):
    """Payment provider rejected the request. Surfaced, never retried here."""

    def __init__(
        self,
        message: str,
        gateway: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        context = dict(context or {})
        if gateway:
            context["gateway"] = gateway
        super().__init__(
            message,
            "GATEWAY_ERROR",
            status_code=502,
            context=context,
            recovery_hint="Check the payment gateway response and credentials",
        )


class PersistenceError(BillingError):
    """Database transaction failed; the financial write was rolled back."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(
            message,
            "PERSISTENCE_ERROR",
            status_code=500,
            context=context,
            recovery_hint="Retry the operation; no partial state was written",
            kind=ErrorKind.RETRYABLE,
        )


__all__ = [
    "ErrorKind",
    "BillingError",
    "ValidationError",
    "NotFoundError",
    "PlanNotFoundError",
    "SubscriptionNotFoundError",
    "InvoiceNotFoundError",
    "CouponNotFoundError",
    "TransactionNotFoundError",
    "CommissionNotFoundError",
    "PartnerNotFoundError",
    "ConcurrencyConflict",
    "GatewayError",
    "PersistenceError",
]
