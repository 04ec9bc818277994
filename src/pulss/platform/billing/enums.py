"""
Billing enumerations.

Values are persisted as plain strings.
"""

from enum import Enum


class BillingPeriod(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def months(self) -> int:
        return {"monthly": 1, "quarterly": 3, "yearly": 12}[self.value]


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @classmethod
    def live(cls) -> tuple[str, ...]:
        """Statuses that count as the tenant's current subscription."""
        return (cls.TRIAL.value, cls.ACTIVE.value)


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Invoice payment status."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class BillingReason(str, Enum):
    SUBSCRIPTION_CREATE = "subscription_create"
    RENEWAL = "renewal"
    MANUAL = "manual"
    USAGE = "usage"


class LineItemType(str, Enum):
    PLAN = "plan"
    USAGE = "usage"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class RefundType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


class RefundStatus(str, Enum):
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSED = "processed"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


class CommissionType(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


class CommissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


class EInvoiceStatus(str, Enum):
    NOT_GENERATED = "not_generated"
    GENERATED = "generated"


class BillingFeature(str, Enum):
    """Billing capabilities a platform admin switches on per tenant."""

    USAGE_BILLING = "usage_billing"
    COUPONS = "coupons"
    TRIALS = "trials"
    COMPLIANCE = "compliance"
    NOTIFICATIONS = "notifications"
