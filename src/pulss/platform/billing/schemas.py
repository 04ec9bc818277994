"""
Pydantic records returned by billing services.

Rows are mapped to these records at the data-access boundary. Invoice
invariants (amount conservation, tax exclusivity) are checked once here.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import (
    BillingFeature,
    BillingPeriod,
    BillingReason,
    CommissionStatus,
    CommissionType,
    DiscountType,
    EInvoiceStatus,
    InvoiceStatus,
    LineItemType,
    PaymentStatus,
    RefundStatus,
    RefundType,
    SubscriptionStatus,
    TransactionStatus,
)
from .exceptions import BillingError, ErrorKind

AMOUNT_TOLERANCE = Decimal("0.01")


class BillingRecord(BaseModel):
    """Base for records read from billing tables."""

    model_config = ConfigDict(from_attributes=True, frozen=True)


# ============================================================================
# Plans and subscriptions
# ============================================================================


class PlanRecord(BillingRecord):
    plan_id: str
    code: str
    version: int
    name: str
    description: str | None = None
    base_price: Decimal
    currency: str = "INR"
    billing_period: BillingPeriod
    trial_days: int = 0
    limits: dict[str, Any] = Field(default_factory=dict)
    features: list[str] = Field(default_factory=list)
    hsn_sac: str | None = None
    is_active: bool = True


class SubscriptionRecord(BillingRecord):
    subscription_id: str
    tenant_id: str
    plan_id: str
    status: SubscriptionStatus
    billing_email: str | None = None
    payment_gateway: str | None = None
    current_period_start: datetime
    current_period_end: datetime
    trial_start: datetime | None = None
    trial_end: datetime | None = None
    next_billing_date: datetime | None = None
    billing_anchor_day: int | None = None
    auto_renew: bool
    cancel_at_period_end: bool
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None


# ============================================================================
# Invoices
# ============================================================================


class InvoiceLineItemRecord(BillingRecord):
    item_id: str
    invoice_id: str
    item_type: LineItemType
    description: str
    hsn_sac: str
    meter_type: str | None = None
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    period_start: datetime | None = None
    period_end: datetime | None = None
    sort_order: int = 0


class InvoiceRecord(BillingRecord):
    """GST invoice.

    ``total_amount == subtotal - discount_amount + cgst + sgst + igst`` and
    intra-state (CGST/SGST) and inter-state (IGST) tax never coexist.
    """

    invoice_id: str
    tenant_id: str
    subscription_id: str
    invoice_number: str
    billing_reason: BillingReason
    invoice_date: datetime
    due_date: datetime
    period_start: datetime | None = None
    period_end: datetime | None = None
    currency: str = "INR"
    subtotal: Decimal
    discount_amount: Decimal = Decimal("0")
    gst_rate: Decimal
    cgst_amount: Decimal = Decimal("0")
    sgst_amount: Decimal = Decimal("0")
    igst_amount: Decimal = Decimal("0")
    total_amount: Decimal
    amount_paid: Decimal = Decimal("0")
    status: InvoiceStatus
    payment_status: PaymentStatus
    billing_name: str | None = None
    billing_email: str | None = None
    billing_phone: str | None = None
    billing_address: str | None = None
    billing_gstin: str | None = None
    place_of_supply: str
    supplier_state: str
    paid_at: datetime | None = None
    payment_method: str | None = None
    payment_gateway: str | None = None
    gateway_transaction_id: str | None = None
    irn: str | None = None
    ack_no: str | None = None
    ack_date: datetime | None = None
    e_invoice_status: EInvoiceStatus = EInvoiceStatus.NOT_GENERATED
    notes: str | None = None

    @model_validator(mode="after")
    def check_invariants(self) -> "InvoiceRecord":
        expected = (
            self.subtotal
            - self.discount_amount
            + self.cgst_amount
            + self.sgst_amount
            + self.igst_amount
        )
        if abs(expected - self.total_amount) > AMOUNT_TOLERANCE:
            raise ValueError(
                f"Invoice {self.invoice_number} total {self.total_amount} does not match "
                f"subtotal - discount + taxes = {expected}"
            )
        if (self.cgst_amount + self.sgst_amount) > 0 and self.igst_amount > 0:
            raise ValueError(
                f"Invoice {self.invoice_number} carries both CGST/SGST and IGST"
            )
        return self

    @property
    def taxable_value(self) -> Decimal:
        return self.subtotal - self.discount_amount

    @property
    def total_tax(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount

    @property
    def balance_due(self) -> Decimal:
        return max(self.total_amount - self.amount_paid, Decimal("0"))


class InvoiceWithItems(BaseModel):
    """Invoice together with its line items."""

    invoice: InvoiceRecord
    line_items: list[InvoiceLineItemRecord]


# ============================================================================
# Tax
# ============================================================================


class GSTBreakdown(BaseModel):
    """Result of a GST split."""

    model_config = ConfigDict(frozen=True)

    taxable_value: Decimal
    gst_rate: Decimal
    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    total_tax: Decimal
    total_amount: Decimal
    is_intra_state: bool


# ============================================================================
# Usage
# ============================================================================


class UsageMeterRecord(BillingRecord):
    meter_id: str
    tenant_id: str
    meter_type: str
    unit_name: str | None = None
    unit_price: Decimal | None = None
    included_units: Decimal = Decimal("0")
    is_active: bool = True


class UsageEventRecord(BillingRecord):
    event_id: str
    tenant_id: str
    meter_id: str
    meter_type: str
    quantity: Decimal
    recorded_at: datetime
    event_metadata: dict[str, Any] = Field(default_factory=dict)
    is_billed: bool = False
    billed_in_invoice_id: str | None = None


class UsageChargeLine(BaseModel):
    """Overage charge for one meter."""

    meter_id: str
    meter_type: str
    unit_name: str | None = None
    total_quantity: Decimal
    included_units: Decimal
    billable_quantity: Decimal
    unit_price: Decimal
    charge: Decimal
    event_ids: list[str] = Field(default_factory=list)


class UsageCharges(BaseModel):
    """Unbilled usage in a window, grouped by meter."""

    tenant_id: str
    period_start: datetime
    period_end: datetime
    total: Decimal = Decimal("0")
    breakdown: list[UsageChargeLine] = Field(default_factory=list)

    @property
    def event_ids(self) -> list[str]:
        return [event_id for line in self.breakdown for event_id in line.event_ids]

    @property
    def charged_lines(self) -> list[UsageChargeLine]:
        return [line for line in self.breakdown if line.charge > 0]


class UsageRecordInput(BaseModel):
    """One entry of a batch usage upload."""

    meter_type: str = Field(min_length=1)
    quantity: Decimal = Field(gt=0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    recorded_at: datetime | None = None


class MeterUsageSummary(BaseModel):
    meter_type: str
    unit_name: str | None = None
    event_count: int
    total_quantity: Decimal
    billed_quantity: Decimal
    unbilled_quantity: Decimal
    min_quantity: Decimal
    max_quantity: Decimal


class UsageSummary(BaseModel):
    """Per-meter usage totals for a tenant over an optional window."""

    tenant_id: str
    period_start: datetime | None = None
    period_end: datetime | None = None
    meters: list[MeterUsageSummary] = Field(default_factory=list)

    def for_meter(self, meter_type: str) -> MeterUsageSummary | None:
        return next((m for m in self.meters if m.meter_type == meter_type), None)


# ============================================================================
# Coupons
# ============================================================================


class CouponRecord(BillingRecord):
    coupon_id: str
    code: str
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal
    min_purchase_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    valid_from: datetime
    valid_until: datetime | None = None
    max_redemptions: int | None = None
    redemptions_count: int = 0
    first_time_only: bool = False
    is_active: bool = True


class CouponCreate(BaseModel):
    """Input for a new coupon."""

    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(min_length=3, max_length=50)
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0)
    min_purchase_amount: Decimal | None = Field(None, ge=0)
    max_discount_amount: Decimal | None = Field(None, gt=0)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    max_redemptions: int | None = Field(None, gt=0)
    first_time_only: bool = False

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def check_percentage(self) -> "CouponCreate":
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self


class CouponValidation(BaseModel):
    """Preview of a coupon against an amount."""

    code: str
    discount_type: DiscountType
    discount_value: Decimal
    discount_amount: Decimal
    final_amount: Decimal


class CouponApplication(BaseModel):
    """Outcome of applying a coupon to an invoice."""

    redemption_id: str
    coupon: CouponRecord
    invoice: InvoiceRecord
    discount_amount: Decimal


class CouponRedemptionRecord(BillingRecord):
    redemption_id: str
    coupon_id: str
    tenant_id: str
    invoice_id: str
    invoice_number: str | None = None
    discount_amount: Decimal
    redeemed_at: datetime


class CouponUsage(BaseModel):
    """Redemption history and totals for one coupon."""

    coupon: CouponRecord
    total_uses: int = 0
    total_discount_given: Decimal = Decimal("0")
    unique_tenants: int = 0
    redemptions: list[CouponRedemptionRecord] = Field(default_factory=list)


# ============================================================================
# Payments
# ============================================================================


class PaymentData(BaseModel):
    """Gateway callback data for one payment attempt."""

    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(gt=0)
    currency: str = "INR"
    status: TransactionStatus
    payment_gateway: str
    payment_method: str | None = None
    gateway_transaction_id: str | None = None
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    gateway_signature: str | None = None
    gateway_response: dict[str, Any] = Field(default_factory=dict)
    failure_reason: str | None = None


class PaymentTransactionRecord(BillingRecord):
    transaction_id: str
    tenant_id: str
    invoice_id: str
    amount: Decimal
    currency: str = "INR"
    status: TransactionStatus
    payment_method: str | None = None
    payment_gateway: str
    gateway_transaction_id: str | None = None
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    failure_reason: str | None = None
    completed_at: datetime | None = None


class PaymentOrder(BaseModel):
    """Gateway order created for an invoice's balance."""

    invoice_id: str
    order_id: str
    gateway: str
    amount: Decimal
    currency: str


class RefundRecord(BillingRecord):
    refund_id: str
    tenant_id: str
    transaction_id: str
    invoice_id: str
    amount: Decimal
    refund_type: RefundType
    reason: str | None = None
    status: RefundStatus
    requested_by: str | None = None


# ============================================================================
# Commissions
# ============================================================================


class PartnerRecord(BillingRecord):
    partner_id: str
    name: str
    email: str | None = None
    commission_type: CommissionType
    commission_value: Decimal
    is_active: bool = True


class PartnerTenantRecord(BillingRecord):
    link_id: str
    partner_id: str
    tenant_id: str
    custom_commission_type: CommissionType | None = None
    custom_commission_value: Decimal | None = None
    is_active: bool = True


class CommissionRecord(BillingRecord):
    commission_id: str
    partner_id: str
    tenant_id: str
    subscription_id: str | None = None
    payment_id: str
    commission_type: CommissionType
    base_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    status: CommissionStatus
    payout_date: datetime | None = None
    payout_reference: str | None = None
    created_at: datetime | None = None


# ============================================================================
# Feature toggles
# ============================================================================


class FeaturePermissionRecord(BillingRecord):
    permission_id: str
    tenant_id: str
    feature_key: BillingFeature
    enabled: bool
    enabled_by: str | None = None
    enabled_at: datetime | None = None
    feature_metadata: dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# GST artifacts
# ============================================================================


class GSTReceiptRecord(BillingRecord):
    receipt_id: str
    receipt_number: str
    tenant_id: str
    invoice_id: str
    transaction_id: str
    receipt_date: datetime
    amount: Decimal
    taxable_value: Decimal
    gst_rate: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    payment_method: str | None = None
    supplier_gstin: str | None = None
    recipient_gstin: str | None = None
    place_of_supply: str | None = None


class EInvoiceRecord(BaseModel):
    invoice_id: str
    invoice_number: str
    irn: str
    ack_no: str
    ack_date: datetime
    status: EInvoiceStatus = EInvoiceStatus.GENERATED


class GSTParty(BaseModel):
    """Supplier or recipient block on a tax invoice."""

    name: str
    gstin: str | None = None
    address: str | None = None
    state: str | None = None
    state_code: str | None = None
    email: str | None = None
    phone: str | None = None


class GSTLineItem(BaseModel):
    description: str
    hsn_sac: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal


class GSTInvoiceDocument(BaseModel):
    """Statutory view of a finalized invoice."""

    invoice_id: str
    invoice_number: str
    invoice_date: datetime
    due_date: datetime
    supplier: GSTParty
    recipient: GSTParty
    place_of_supply: str
    line_items: list[GSTLineItem]
    tax: GSTBreakdown
    subtotal: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    amount_in_words: str
    qr_payload: str
    irn: str | None = None
    ack_no: str | None = None
    ack_date: datetime | None = None


# ============================================================================
# Batch jobs
# ============================================================================


class BatchFailure(BaseModel):
    """One item a batch job could not process."""

    resource_id: str
    error_code: str
    message: str
    kind: ErrorKind

    @classmethod
    def from_exception(cls, resource_id: str, exc: Exception) -> "BatchFailure":
        if isinstance(exc, BillingError):
            return cls(
                resource_id=resource_id,
                error_code=exc.error_code,
                message=exc.message,
                kind=exc.kind,
            )
        # Untyped errors are bugs or bad data; rerunning will not help
        return cls(
            resource_id=resource_id,
            error_code="INTERNAL_ERROR",
            message=f"{type(exc).__name__}: {exc}",
            kind=ErrorKind.TERMINAL,
        )

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.RETRYABLE


class BatchResult(BaseModel):
    """Outcome of a scheduled sweep; failures are collected, never raised."""

    processed: int = 0
    skipped: int = 0
    cancelled: int = 0
    expired: int = 0
    invoice_ids: list[str] = Field(default_factory=list)
    failures: list[BatchFailure] = Field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)
