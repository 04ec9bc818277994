"""
Billing system module.

Provides billing capabilities including:
- Plan catalog and subscription lifecycle
- GST invoicing (CGST/SGST or IGST)
- Usage metering and overage charges
- Discount coupons
- Payment reconciliation and refunds
- Partner commissions
- Per-tenant billing feature toggles
- E-invoice references, receipts and PDF tax invoices
"""

from pulss.platform.billing.commissions import CommissionCalculator
from pulss.platform.billing.config import BillingConfig, get_billing_config, set_billing_config
from pulss.platform.billing.coupons import CouponEngine
from pulss.platform.billing.exceptions import (
    BillingError,
    CommissionNotFoundError,
    ConcurrencyConflict,
    CouponNotFoundError,
    ErrorKind,
    GatewayError,
    InvoiceNotFoundError,
    NotFoundError,
    PartnerNotFoundError,
    PersistenceError,
    PlanNotFoundError,
    SubscriptionNotFoundError,
    TransactionNotFoundError,
    ValidationError,
)
from pulss.platform.billing.features import FeatureToggleService
from pulss.platform.billing.gst import GSTFormatter, number_to_words, validate_gstin
from pulss.platform.billing.invoicing import InvoiceGenerator
from pulss.platform.billing.payments import PaymentReconciliationService
from pulss.platform.billing.subscriptions import SubscriptionManager
from pulss.platform.billing.tax import calculate_gst
from pulss.platform.billing.transaction import BillingTransaction, billing_transaction
from pulss.platform.billing.usage import UsageMeterService

__all__ = [
    # Services
    "CommissionCalculator",
    "CouponEngine",
    "FeatureToggleService",
    "GSTFormatter",
    "InvoiceGenerator",
    "PaymentReconciliationService",
    "SubscriptionManager",
    "UsageMeterService",
    # Functions
    "calculate_gst",
    "number_to_words",
    "validate_gstin",
    # Transactions and configuration
    "BillingConfig",
    "BillingTransaction",
    "billing_transaction",
    "get_billing_config",
    "set_billing_config",
    # Exceptions
    "BillingError",
    "CommissionNotFoundError",
    "ConcurrencyConflict",
    "CouponNotFoundError",
    "ErrorKind",
    "GatewayError",
    "InvoiceNotFoundError",
    "NotFoundError",
    "PartnerNotFoundError",
    "PersistenceError",
    "PlanNotFoundError",
    "SubscriptionNotFoundError",
    "TransactionNotFoundError",
    "ValidationError",
]
