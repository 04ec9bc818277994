"""create billing schema

Revision ID: a1c4e7b2d9f0
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1c4e7b2d9f0"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("business_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("state", sa.String(length=100), nullable=True),
        sa.Column("pincode", sa.String(length=10), nullable=True),
        sa.Column("gstin", sa.String(length=15), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("tenant_id"),
    )

    op.create_table(
        "subscription_plans",
        sa.Column("plan_id", sa.String(length=50), nullable=False),
        sa.Column("code", sa.String(length=100), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("base_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("billing_period", sa.String(length=20), nullable=False),
        sa.Column("trial_days", sa.Integer(), nullable=False),
        sa.Column("limits", sa.JSON(), nullable=False),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("hsn_sac", sa.String(length=10), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("plan_id"),
        sa.UniqueConstraint("code", "version", name="uq_subscription_plans_code_version"),
    )

    op.create_table(
        "subscriptions",
        sa.Column("subscription_id", sa.String(length=50), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("plan_id", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("billing_email", sa.String(length=255), nullable=True),
        sa.Column("payment_gateway", sa.String(length=50), nullable=True),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("trial_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_billing_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("auto_renew", sa.Boolean(), nullable=False),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.tenant_id"]),
        sa.ForeignKeyConstraint(["plan_id"], ["subscription_plans.plan_id"]),
        sa.PrimaryKeyConstraint("subscription_id"),
    )
    op.create_index("ix_subscriptions_tenant_id", "subscriptions", ["tenant_id"])
    op.create_index("ix_subscriptions_tenant_status", "subscriptions", ["tenant_id", "status"])
    op.create_index(
        "ix_subscriptions_status_next_billing", "subscriptions", ["status", "next_billing_date"]
    )

    op.create_table(
        "invoices",
        sa.Column("invoice_id", sa.String(length=50), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("subscription_id", sa.String(length=50), nullable=False),
        sa.Column("invoice_number", sa.String(length=30), nullable=False),
        sa.Column("billing_reason", sa.String(length=30), nullable=False),
        sa.Column("invoice_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("subtotal", sa.Numeric(15, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("gst_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("cgst_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("sgst_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("igst_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(15, 2), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False),
        sa.Column("billing_name", sa.String(length=255), nullable=True),
        sa.Column("billing_email", sa.String(length=255), nullable=True),
        sa.Column("billing_phone", sa.String(length=30), nullable=True),
        sa.Column("billing_address", sa.Text(), nullable=True),
        sa.Column("billing_gstin", sa.String(length=15), nullable=True),
        sa.Column("place_of_supply", sa.String(length=100), nullable=False),
        sa.Column("supplier_state", sa.String(length=100), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("payment_gateway", sa.String(length=50), nullable=True),
        sa.Column("gateway_transaction_id", sa.String(length=255), nullable=True),
        sa.Column("irn", sa.String(length=64), nullable=True),
        sa.Column("ack_no", sa.String(length=20), nullable=True),
        sa.Column("ack_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("e_invoice_status", sa.String(length=20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.tenant_id"]),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.subscription_id"]),
        sa.PrimaryKeyConstraint("invoice_id"),
        sa.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
    )
    op.create_index("ix_invoices_tenant_id", "invoices", ["tenant_id"])
    op.create_index("ix_invoices_subscription_id", "invoices", ["subscription_id"])
    op.create_index("ix_invoices_tenant_status", "invoices", ["tenant_id", "status"])
    op.create_index(
        "ix_invoices_subscription_reason_period",
        "invoices",
        ["subscription_id", "billing_reason", "period_start"],
    )

    op.create_table(
        "invoice_items",
        sa.Column("item_id", sa.String(length=50), nullable=False),
        sa.Column("invoice_id", sa.String(length=50), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("item_type", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("hsn_sac", sa.String(length=10), nullable=False),
        sa.Column("meter_type", sa.String(length=100), nullable=True),
        sa.Column("quantity", sa.Numeric(18, 4), nullable=False),
        sa.Column("unit_price", sa.Numeric(15, 4), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.invoice_id"]),
        sa.PrimaryKeyConstraint("item_id"),
    )
    op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"])
    op.create_index("ix_invoice_items_tenant_id", "invoice_items", ["tenant_id"])

    op.create_table(
        "invoice_sequences",
        sa.Column("prefix", sa.String(length=30), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("prefix"),
    )

    op.create_table(
        "usage_meters",
        sa.Column("meter_id", sa.String(length=50), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("meter_type", sa.String(length=100), nullable=False),
        sa.Column("unit_name", sa.String(length=50), nullable=True),
        sa.Column("unit_price", sa.Numeric(15, 4), nullable=True),
        sa.Column("included_units", sa.Numeric(18, 4), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("meter_id"),
        sa.UniqueConstraint("tenant_id", "meter_type", name="uq_usage_meters_tenant_meter"),
    )
    op.create_index("ix_usage_meters_tenant_id", "usage_meters", ["tenant_id"])

    op.create_table(
        "usage_events",
        sa.Column("event_id", sa.String(length=50), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("meter_id", sa.String(length=50), nullable=False),
        sa.Column("meter_type", sa.String(length=100), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 4), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False),
        sa.Column("is_billed", sa.Boolean(), nullable=False),
        sa.Column("billed_in_invoice_id", sa.String(length=50), nullable=True),
        sa.Column("billed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["meter_id"], ["usage_meters.meter_id"]),
        sa.ForeignKeyConstraint(["billed_in_invoice_id"], ["invoices.invoice_id"]),
        sa.PrimaryKeyConstraint("event_id"),
    )
    op.create_index(
        "ix_usage_events_tenant_billed_recorded",
        "usage_events",
        ["tenant_id", "is_billed", "recorded_at"],
    )
    op.create_index("ix_usage_events_meter_recorded", "usage_events", ["meter_id", "recorded_at"])

    op.create_table(
        "coupons",
        sa.Column("coupon_id", sa.String(length=50), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("discount_type", sa.String(length=20), nullable=False),
        sa.Column("discount_value", sa.Numeric(15, 2), nullable=False),
        sa.Column("min_purchase_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("max_discount_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_redemptions", sa.Integer(), nullable=True),
        sa.Column("redemptions_count", sa.Integer(), nullable=False),
        sa.Column("first_time_only", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("coupon_id"),
        sa.UniqueConstraint("code", name="uq_coupons_code"),
    )

    op.create_table(
        "coupon_redemptions",
        sa.Column("redemption_id", sa.String(length=50), nullable=False),
        sa.Column("coupon_id", sa.String(length=50), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("invoice_id", sa.String(length=50), nullable=False),
        sa.Column("discount_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["coupon_id"], ["coupons.coupon_id"]),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.invoice_id"]),
        sa.PrimaryKeyConstraint("redemption_id"),
        sa.UniqueConstraint(
            "coupon_id", "invoice_id", name="uq_coupon_redemptions_coupon_invoice"
        ),
    )
    op.create_index(
        "ix_coupon_redemptions_coupon_tenant", "coupon_redemptions", ["coupon_id", "tenant_id"]
    )

    op.create_table(
        "payment_transactions",
        sa.Column("transaction_id", sa.String(length=50), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("invoice_id", sa.String(length=50), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("payment_gateway", sa.String(length=50), nullable=False),
        sa.Column("gateway_transaction_id", sa.String(length=255), nullable=True),
        sa.Column("gateway_order_id", sa.String(length=255), nullable=True),
        sa.Column("gateway_payment_id", sa.String(length=255), nullable=True),
        sa.Column("gateway_signature", sa.String(length=512), nullable=True),
        sa.Column("gateway_response", sa.JSON(), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.invoice_id"]),
        sa.PrimaryKeyConstraint("transaction_id"),
        sa.UniqueConstraint(
            "payment_gateway",
            "gateway_transaction_id",
            name="uq_payment_transactions_gateway_txn",
        ),
    )
    op.create_index("ix_payment_transactions_tenant_id", "payment_transactions", ["tenant_id"])
    op.create_index("ix_payment_transactions_invoice_id", "payment_transactions", ["invoice_id"])
    op.create_index(
        "ix_payment_transactions_status_completed",
        "payment_transactions",
        ["status", "completed_at"],
    )

    op.create_table(
        "refunds",
        sa.Column("refund_id", sa.String(length=50), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("transaction_id", sa.String(length=50), nullable=False),
        sa.Column("invoice_id", sa.String(length=50), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("refund_type", sa.String(length=20), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("requested_by", sa.String(length=255), nullable=True),
        sa.Column("gateway_refund_id", sa.String(length=255), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["transaction_id"], ["payment_transactions.transaction_id"]),
        sa.PrimaryKeyConstraint("refund_id"),
    )
    op.create_index("ix_refunds_tenant_id", "refunds", ["tenant_id"])

    op.create_table(
        "partners",
        sa.Column("partner_id", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("commission_type", sa.String(length=20), nullable=False),
        sa.Column("commission_value", sa.Numeric(15, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("partner_id"),
    )

    op.create_table(
        "partner_tenants",
        sa.Column("link_id", sa.String(length=50), nullable=False),
        sa.Column("partner_id", sa.String(length=50), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("custom_commission_type", sa.String(length=20), nullable=True),
        sa.Column("custom_commission_value", sa.Numeric(15, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.partner_id"]),
        sa.PrimaryKeyConstraint("link_id"),
        sa.UniqueConstraint("partner_id", "tenant_id", name="uq_partner_tenants_partner_tenant"),
    )
    op.create_index("ix_partner_tenants_tenant_id", "partner_tenants", ["tenant_id"])

    op.create_table(
        "commissions",
        sa.Column("commission_id", sa.String(length=50), nullable=False),
        sa.Column("partner_id", sa.String(length=50), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("subscription_id", sa.String(length=50), nullable=True),
        sa.Column("payment_id", sa.String(length=50), nullable=False),
        sa.Column("commission_type", sa.String(length=20), nullable=False),
        sa.Column("base_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("commission_rate", sa.Numeric(9, 4), nullable=False),
        sa.Column("commission_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payout_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payout_reference", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.partner_id"]),
        sa.ForeignKeyConstraint(["payment_id"], ["payment_transactions.transaction_id"]),
        sa.PrimaryKeyConstraint("commission_id"),
        sa.UniqueConstraint("payment_id", name="uq_commissions_payment"),
    )
    op.create_index("ix_commissions_partner_id", "commissions", ["partner_id"])

    op.create_table(
        "gst_receipts",
        sa.Column("receipt_id", sa.String(length=50), nullable=False),
        sa.Column("receipt_number", sa.String(length=30), nullable=False),
        sa.Column("tenant_id", sa.String(length=50), nullable=False),
        sa.Column("invoice_id", sa.String(length=50), nullable=False),
        sa.Column("transaction_id", sa.String(length=50), nullable=False),
        sa.Column("receipt_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("taxable_value", sa.Numeric(15, 2), nullable=False),
        sa.Column("gst_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("cgst_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("sgst_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("igst_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("supplier_gstin", sa.String(length=15), nullable=True),
        sa.Column("recipient_gstin", sa.String(length=15), nullable=True),
        sa.Column("place_of_supply", sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.invoice_id"]),
        sa.ForeignKeyConstraint(["transaction_id"], ["payment_transactions.transaction_id"]),
        sa.PrimaryKeyConstraint("receipt_id"),
        sa.UniqueConstraint("receipt_number", name="uq_gst_receipts_receipt_number"),
        sa.UniqueConstraint("transaction_id", name="uq_gst_receipts_transaction"),
    )
    op.create_index("ix_gst_receipts_tenant_id", "gst_receipts", ["tenant_id"])


def downgrade() -> None:
    op.drop_index("ix_gst_receipts_tenant_id", table_name="gst_receipts")
    op.drop_table("gst_receipts")
    op.drop_index("ix_commissions_partner_id", table_name="commissions")
    op.drop_table("commissions")
    op.drop_index("ix_partner_tenants_tenant_id", table_name="partner_tenants")
    op.drop_table("partner_tenants")
    op.drop_table("partners")
    op.drop_index("ix_refunds_tenant_id", table_name="refunds")
    op.drop_table("refunds")
    op.drop_index("ix_payment_transactions_status_completed", table_name="payment_transactions")
    op.drop_index("ix_payment_transactions_invoice_id", table_name="payment_transactions")
    op.drop_index("ix_payment_transactions_tenant_id", table_name="payment_transactions")
    op.drop_table("payment_transactions")
    op.drop_index("ix_coupon_redemptions_coupon_tenant", table_name="coupon_redemptions")
    op.drop_table("coupon_redemptions")
    op.drop_table("coupons")
    op.drop_index("ix_usage_events_meter_recorded", table_name="usage_events")
    op.drop_index("ix_usage_events_tenant_billed_recorded", table_name="usage_events")
    op.drop_table("usage_events")
    op.drop_index("ix_usage_meters_tenant_id", table_name="usage_meters")
    op.drop_table("usage_meters")
    op.drop_table("invoice_sequences")
    op.drop_index("ix_invoice_items_tenant_id", table_name="invoice_items")
    op.drop_index("ix_invoice_items_invoice_id", table_name="invoice_items")
    op.drop_table("invoice_items")
    op.drop_index("ix_invoices_subscription_reason_period", table_name="invoices")
    op.drop_index("ix_invoices_tenant_status", table_name="invoices")
    op.drop_index("ix_invoices_subscription_id", table_name="invoices")
    op.drop_index("ix_invoices_tenant_id", table_name="invoices")
    op.drop_table("invoices")
    op.drop_index("ix_subscriptions_status_next_billing", table_name="subscriptions")
    op.drop_index("ix_subscriptions_tenant_status", table_name="subscriptions")
    op.drop_index("ix_subscriptions_tenant_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("subscription_plans")
    op.drop_table("tenants")
