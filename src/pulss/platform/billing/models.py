"""
Billing database tables.

One table per billing entity. Money columns are ``Numeric(15, 2)`` rupees,
identifiers are string UUIDs and every timestamp is timezone-aware UTC.
Nothing is hard-deleted: cancellation and expiry are status transitions.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from pulss.platform.db import Base, TimestampMixin, UTCDateTime, utcnow

from .enums import (
    CommissionStatus,
    EInvoiceStatus,
    InvoiceStatus,
    PaymentStatus,
    RefundStatus,
    SubscriptionStatus,
    TransactionStatus,
)


def new_id() -> str:
    return str(uuid4())


class BillingSQLModel(TimestampMixin, Base):
    """Base SQLAlchemy model for billing tables."""

    __abstract__ = True


class TenantTable(BillingSQLModel):
    """Billable customer account; ``state`` drives GST jurisdiction."""

    __tablename__ = "tenants"

    tenant_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    pincode: Mapped[str | None] = mapped_column(String(10), nullable=True)
    gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class SubscriptionPlanTable(BillingSQLModel):
    """Immutable, versioned plan catalog entry."""

    __tablename__ = "subscription_plans"

    plan_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    code: Mapped[str] = mapped_column(String(100), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    base_price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    billing_period: Mapped[str] = mapped_column(String(20), nullable=False)
    trial_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    limits: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    features: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    hsn_sac: Mapped[str | None] = mapped_column(String(10), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("code", "version", name="uq_subscription_plans_code_version"),
    )


class SubscriptionTable(BillingSQLModel):
    """A tenant's subscription to one plan version."""

    __tablename__ = "subscriptions"

    subscription_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("tenants.tenant_id"), nullable=False, index=True
    )
    plan_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("subscription_plans.plan_id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value
    )
    billing_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_gateway: Mapped[str | None] = mapped_column(String(50), nullable=True)

    current_period_start: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    current_period_end: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    trial_start: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    trial_end: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    next_billing_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    # Day of month periods are anchored to; short months clamp it
    billing_anchor_day: Mapped[int | None] = mapped_column(Integer, nullable=True)

    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_subscriptions_tenant_status", "tenant_id", "status"),
        Index("ix_subscriptions_status_next_billing", "status", "next_billing_date"),
    )


class InvoiceTable(BillingSQLModel):
    """GST tax invoice."""

    __tablename__ = "invoices"

    invoice_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("tenants.tenant_id"), nullable=False, index=True
    )
    subscription_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("subscriptions.subscription_id"), nullable=False, index=True
    )
    invoice_number: Mapped[str] = mapped_column(String(30), nullable=False)
    billing_reason: Mapped[str] = mapped_column(String(30), nullable=False)

    invoice_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    due_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    period_start: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Amounts
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    subtotal: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0")
    )
    gst_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    cgst_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    sgst_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    igst_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvoiceStatus.PENDING.value
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.UNPAID.value
    )

    # Recipient snapshot at invoice time
    billing_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    billing_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    billing_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    billing_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    billing_gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)
    place_of_supply: Mapped[str] = mapped_column(String(100), nullable=False)
    supplier_state: Mapped[str] = mapped_column(String(100), nullable=False)

    # Payment
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_gateway: Mapped[str | None] = mapped_column(String(50), nullable=True)
    gateway_transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # E-invoice
    irn: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ack_no: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ack_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    e_invoice_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EInvoiceStatus.NOT_GENERATED.value
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        Index("ix_invoices_tenant_status", "tenant_id", "status"),
        Index("ix_invoices_subscription_reason_period", "subscription_id", "billing_reason", "period_start"),
    )


class InvoiceItemTable(BillingSQLModel):
    """Invoice line item."""

    __tablename__ = "invoice_items"

    item_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    invoice_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("invoices.invoice_id"), nullable=False, index=True
    )
    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    hsn_sac: Mapped[str] = mapped_column(String(10), nullable=False)
    meter_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=Decimal("1"))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    period_start: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class InvoiceSequenceTable(BillingSQLModel):
    """Last issued sequence per number prefix (``INV-2026-``, ``RCP-2026-``)."""

    __tablename__ = "invoice_sequences"

    prefix: Mapped[str] = mapped_column(String(30), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class UsageMeterTable(BillingSQLModel):
    """Per-tenant named usage counter with allowance and overage price."""

    __tablename__ = "usage_meters"

    meter_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    meter_type: Mapped[str] = mapped_column(String(100), nullable=False)
    unit_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # NULL price: the meter is tracked but never billed
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(15, 4), nullable=True)
    included_units: Mapped[Decimal] = mapped_column(
        Numeric(18, 4), nullable=False, default=Decimal("0")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "meter_type", name="uq_usage_meters_tenant_meter"),
    )


class UsageEventTable(BillingSQLModel):
    """Immutable usage record; billing flags are set exactly once."""

    __tablename__ = "usage_events"

    event_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False)
    meter_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("usage_meters.meter_id"), nullable=False
    )
    meter_type: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    event_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_billed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    billed_in_invoice_id: Mapped[str | None] = mapped_column(
        String(50), ForeignKey("invoices.invoice_id"), nullable=True
    )
    billed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        Index("ix_usage_events_tenant_billed_recorded", "tenant_id", "is_billed", "recorded_at"),
        Index("ix_usage_events_meter_recorded", "meter_id", "recorded_at"),
    )


class CouponTable(BillingSQLModel):
    """Discount code."""

    __tablename__ = "coupons"

    coupon_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    min_purchase_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    max_discount_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    valid_from: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    valid_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    max_redemptions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    redemptions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_time_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (UniqueConstraint("code", name="uq_coupons_code"),)


class CouponRedemptionTable(BillingSQLModel):
    """One row per successful coupon application."""

    __tablename__ = "coupon_redemptions"

    redemption_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    coupon_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("coupons.coupon_id"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("invoices.invoice_id"), nullable=False
    )
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    redeemed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("coupon_id", "invoice_id", name="uq_coupon_redemptions_coupon_invoice"),
        Index("ix_coupon_redemptions_coupon_tenant", "coupon_id", "tenant_id"),
    )


class PaymentTransactionTable(BillingSQLModel):
    """Gateway payment attempt against an invoice."""

    __tablename__ = "payment_transactions"

    transaction_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    invoice_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("invoices.invoice_id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.PENDING.value
    )
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_gateway: Mapped[str] = mapped_column(String(50), nullable=False)
    gateway_transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gateway_order_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gateway_signature: Mapped[str | None] = mapped_column(String(512), nullable=True)
    gateway_response: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "payment_gateway",
            "gateway_transaction_id",
            name="uq_payment_transactions_gateway_txn",
        ),
        Index("ix_payment_transactions_status_completed", "status", "completed_at"),
    )


class RefundTable(BillingSQLModel):
    """Refund request; approval and execution happen outside billing."""

    __tablename__ = "refunds"

    refund_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    transaction_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("payment_transactions.transaction_id"), nullable=False
    )
    invoice_id: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    refund_type: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RefundStatus.REQUESTED.value
    )
    requested_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gateway_refund_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)


class PartnerTable(BillingSQLModel):
    """Referral/reseller partner with a default commission."""

    __tablename__ = "partners"

    partner_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    commission_type: Mapped[str] = mapped_column(String(20), nullable=False)
    commission_value: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PartnerTenantTable(BillingSQLModel):
    """Tenant referred by a partner, optionally with a negotiated commission."""

    __tablename__ = "partner_tenants"

    link_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    partner_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("partners.partner_id"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    custom_commission_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    custom_commission_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("partner_id", "tenant_id", name="uq_partner_tenants_partner_tenant"),
    )


class CommissionTable(BillingSQLModel):
    """Partner commission earned on one successful payment."""

    __tablename__ = "commissions"

    commission_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    partner_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("partners.partner_id"), nullable=False, index=True
    )
    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False)
    subscription_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("payment_transactions.transaction_id"), nullable=False
    )
    commission_type: Mapped[str] = mapped_column(String(20), nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CommissionStatus.PENDING.value
    )
    payout_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    payout_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (UniqueConstraint("payment_id", name="uq_commissions_payment"),)


class GSTReceiptTable(BillingSQLModel):
    """Statutory receipt issued once per successful payment."""

    __tablename__ = "gst_receipts"

    receipt_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    receipt_number: Mapped[str] = mapped_column(String(30), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    invoice_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("invoices.invoice_id"), nullable=False
    )
    transaction_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("payment_transactions.transaction_id"), nullable=False
    )
    receipt_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    taxable_value: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    gst_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    cgst_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    sgst_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    igst_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    supplier_gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)
    recipient_gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)
    place_of_supply: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("receipt_number", name="uq_gst_receipts_receipt_number"),
        UniqueConstraint("transaction_id", name="uq_gst_receipts_transaction"),
    )



class TenantFeaturePermissionTable(BillingSQLModel):
    """Per-tenant switch for an optional billing feature."""

    __tablename__ = "tenant_feature_permissions"

    permission_id: Mapped[str] = mapped_column(String(50), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("tenants.tenant_id"), nullable=False, index=True
    )
    feature_key: Mapped[str] = mapped_column(String(50), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    enabled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    enabled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    feature_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "feature_key", name="uq_tenant_feature_permissions_feature"),
    )

__all__ = [
    "BillingSQLModel",
    "TenantTable",
    "SubscriptionPlanTable",
    "SubscriptionTable",
    "InvoiceTable",
    "InvoiceItemTable",
    "InvoiceSequenceTable",
    "UsageMeterTable",
    "UsageEventTable",
    "CouponTable",
    "CouponRedemptionTable",
    "PaymentTransactionTable",
    "RefundTable",
    "PartnerTable",
    "PartnerTenantTable",
    "CommissionTable",
    "GSTReceiptTable",
    "TenantFeaturePermissionTable",
    "new_id",
]
