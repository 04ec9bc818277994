"""
Invoice generation.

Builds GST invoices from a subscription's plan fee and optional usage overage.
Numbering, line items, the invoice row and the billed-usage marking are all
written in one transaction.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pulss.platform.db import utcnow
from pulss.platform.events import EventBus
from pulss.platform.logging import billing_job

from ..audit import AuditLogger
from ..config import BillingConfig, get_billing_config
from ..enums import (
    BillingReason,
    EInvoiceStatus,
    InvoiceStatus,
    LineItemType,
    PaymentStatus,
    SubscriptionStatus,
)
from ..events import emit_invoice_created, emit_invoice_overdue
from ..exceptions import (
    InvoiceNotFoundError,
    PlanNotFoundError,
    SubscriptionNotFoundError,
    ValidationError,
)
from ..models import (
    InvoiceItemTable,
    InvoiceTable,
    SubscriptionPlanTable,
    SubscriptionTable,
    TenantTable,
    new_id,
)
from ..money_utils import ZERO, round_amount
from ..numbering import allocate_document_number
from ..schemas import (
    BatchFailure,
    BatchResult,
    InvoiceLineItemRecord,
    InvoiceRecord,
    InvoiceWithItems,
    UsageCharges,
)
from ..tax import calculate_gst
from ..transaction import BillingTransaction, billing_transaction
from ..usage import UsageMeterService

logger = structlog.get_logger(__name__)


def format_billing_address(tenant: TenantTable) -> str | None:
    parts = [tenant.address, tenant.city, tenant.state, tenant.pincode]
    text = ", ".join(p.strip() for p in parts if p and p.strip())
    return text or None


class InvoiceGenerator:
    """Issues invoices for subscriptions."""

    def __init__(
        self,
        session: AsyncSession,
        config: BillingConfig | None = None,
        usage_meter: UsageMeterService | None = None,
        event_bus: EventBus | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.session = session
        self.config = config or get_billing_config()
        self.usage_meter = usage_meter or UsageMeterService(session, self.config)
        self.event_bus = event_bus
        self.audit_logger = audit_logger

    def _transaction(self, tx: BillingTransaction | None):
        return billing_transaction(
            self.session, tx, event_bus=self.event_bus, audit_logger=self.audit_logger
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load_subscription(
        self, tenant_id: str, subscription_id: str, for_update: bool = False
    ) -> SubscriptionTable:
        stmt = select(SubscriptionTable).where(
            and_(
                SubscriptionTable.subscription_id == subscription_id,
                SubscriptionTable.tenant_id == tenant_id,
            )
        )
        if for_update:
            stmt = stmt.with_for_update()
        subscription = (await self.session.execute(stmt)).scalar_one_or_none()
        if subscription is None:
            raise SubscriptionNotFoundError(resource_id=subscription_id, tenant_id=tenant_id)
        return subscription

    async def _load_plan(self, plan_id: str) -> SubscriptionPlanTable:
        result = await self.session.execute(
            select(SubscriptionPlanTable).where(SubscriptionPlanTable.plan_id == plan_id)
        )
        plan = result.scalar_one_or_none()
        if plan is None:
            raise PlanNotFoundError(resource_id=plan_id)
        return plan

    async def _load_billing_profile(self, tenant_id: str) -> TenantTable:
        result = await self.session.execute(
            select(TenantTable).where(TenantTable.tenant_id == tenant_id)
        )
        tenant = result.scalar_one_or_none()
        if tenant is None or not tenant.state:
            raise ValidationError(
                "Tenant state is required to determine the GST place of supply",
                context={"tenant_id": tenant_id},
                recovery_hint="Update the tenant billing address with a state",
            )
        return tenant

    async def get_invoice(self, tenant_id: str, invoice_id: str) -> InvoiceRecord:
        result = await self.session.execute(
            select(InvoiceTable).where(
                and_(InvoiceTable.invoice_id == invoice_id, InvoiceTable.tenant_id == tenant_id)
            )
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(resource_id=invoice_id, tenant_id=tenant_id)
        return InvoiceRecord.model_validate(invoice)

    async def list_line_items(self, invoice_id: str) -> list[InvoiceLineItemRecord]:
        result = await self.session.execute(
            select(InvoiceItemTable)
            .where(InvoiceItemTable.invoice_id == invoice_id)
            .order_by(InvoiceItemTable.sort_order)
        )
        return [InvoiceLineItemRecord.model_validate(item) for item in result.scalars().all()]

    async def get_invoice_with_items(self, tenant_id: str, invoice_id: str) -> InvoiceWithItems:
        invoice = await self.get_invoice(tenant_id, invoice_id)
        return InvoiceWithItems(invoice=invoice, line_items=await self.list_line_items(invoice_id))

    async def find_invoice_for_period(
        self, subscription_id: str, billing_reason: BillingReason, period_start: datetime
    ) -> InvoiceRecord | None:
        result = await self.session.execute(
            select(InvoiceTable).where(
                and_(
                    InvoiceTable.subscription_id == subscription_id,
                    InvoiceTable.billing_reason == billing_reason.value,
                    InvoiceTable.period_start == period_start,
                    InvoiceTable.status != InvoiceStatus.CANCELLED.value,
                )
            )
        )
        invoice = result.scalars().first()
        return InvoiceRecord.model_validate(invoice) if invoice else None

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_invoice(
        self,
        tenant_id: str,
        subscription_id: str,
        include_usage: bool = False,
        *,
        tx: BillingTransaction | None = None,
        now: datetime | None = None,
    ) -> InvoiceRecord:
        """Invoice the subscription's current period, optionally with usage overage."""
        now = now or utcnow()
        async with self._transaction(tx) as tx:
            subscription = await self._load_subscription(tenant_id, subscription_id)
            plan = await self._load_plan(subscription.plan_id)
            period = (subscription.current_period_start, subscription.current_period_end)
            return await self.issue_invoice(
                tx,
                subscription=subscription,
                plan=plan,
                billing_reason=BillingReason.MANUAL,
                plan_period=period,
                usage_window=period if include_usage else None,
                now=now,
            )

    async def issue_invoice(
        self,
        tx: BillingTransaction,
        *,
        subscription: SubscriptionTable,
        plan: SubscriptionPlanTable | None,
        billing_reason: BillingReason,
        plan_period: tuple[datetime, datetime] | None,
        usage_window: tuple[datetime, datetime] | None,
        now: datetime,
        usage_charges: UsageCharges | None = None,
    ) -> InvoiceRecord:
        """Write one invoice inside ``tx``.

        ``plan`` adds the plan fee for ``plan_period``; ``usage_window`` adds
        overage for unbilled usage in that window and marks it billed.
        """
        tenant = await self._load_billing_profile(subscription.tenant_id)
        default_sac = self.config.gst.default_hsn_sac

        items: list[InvoiceItemTable] = []
        if plan is not None:
            period_start, period_end = plan_period or (None, None)
            items.append(
                InvoiceItemTable(
                    item_id=new_id(),
                    tenant_id=subscription.tenant_id,
                    item_type=LineItemType.PLAN.value,
                    description=f"{plan.name} subscription ({plan.billing_period})",
                    hsn_sac=plan.hsn_sac or default_sac,
                    quantity=Decimal("1"),
                    unit_price=plan.base_price,
                    amount=round_amount(plan.base_price),
                    period_start=period_start,
                    period_end=period_end,
                )
            )

        if usage_window is not None and usage_charges is None:
            usage_charges = await self.usage_meter.calculate_usage_charges(
                subscription.tenant_id, usage_window[0], usage_window[1], for_update=True
            )
        if usage_charges is not None:
            for line in usage_charges.charged_lines:
                unit = f" {line.unit_name}" if line.unit_name else ""
                items.append(
                    InvoiceItemTable(
                        item_id=new_id(),
                        tenant_id=subscription.tenant_id,
                        item_type=LineItemType.USAGE.value,
                        description=(
                            f"{line.meter_type} usage: {line.billable_quantity.normalize():f}{unit} "
                            f"beyond {line.included_units.normalize():f} included"
                        ),
                        hsn_sac=default_sac,
                        meter_type=line.meter_type,
                        quantity=line.billable_quantity,
                        unit_price=line.unit_price,
                        amount=line.charge,
                        period_start=usage_charges.period_start,
                        period_end=usage_charges.period_end,
                    )
                )

        if not items:
            raise ValidationError(
                "Nothing to invoice",
                context={"subscription_id": subscription.subscription_id},
            )

        subtotal = round_amount(sum((item.amount for item in items), ZERO))
        tax = calculate_gst(
            subtotal, self.config.supplier.state, tenant.state, self.config.gst.default_rate
        )
        invoice_period = plan_period or usage_window or (None, None)
        invoice_number = await allocate_document_number(
            self.session, self.config.invoice.number_prefix, now, InvoiceTable.invoice_number
        )

        invoice = InvoiceTable(
            invoice_id=new_id(),
            tenant_id=subscription.tenant_id,
            subscription_id=subscription.subscription_id,
            invoice_number=invoice_number,
            billing_reason=billing_reason.value,
            invoice_date=now,
            due_date=now + timedelta(days=self.config.invoice.due_days_default),
            period_start=invoice_period[0],
            period_end=invoice_period[1],
            currency=self.config.gst.currency,
            subtotal=subtotal,
            discount_amount=ZERO,
            gst_rate=tax.gst_rate,
            cgst_amount=tax.cgst_amount,
            sgst_amount=tax.sgst_amount,
            igst_amount=tax.igst_amount,
            total_amount=tax.total_amount,
            amount_paid=ZERO,
            status=InvoiceStatus.PENDING.value,
            payment_status=PaymentStatus.UNPAID.value,
            billing_name=tenant.business_name or tenant.name,
            billing_email=subscription.billing_email or tenant.email,
            billing_phone=tenant.phone,
            billing_address=format_billing_address(tenant),
            billing_gstin=tenant.gstin,
            place_of_supply=tenant.state,
            supplier_state=self.config.supplier.state,
            e_invoice_status=EInvoiceStatus.NOT_GENERATED.value,
        )
        self.session.add(invoice)
        await self.session.flush()

        for order, item in enumerate(items):
            item.invoice_id = invoice.invoice_id
            item.sort_order = order
            self.session.add(item)
        await self.session.flush()

        billed_events = 0
        if usage_charges is not None:
            billed_events = await self.usage_meter.mark_usage_billed(
                usage_charges.event_ids, invoice.invoice_id, billed_at=now
            )

        record = InvoiceRecord.model_validate(invoice)
        tx.emit(emit_invoice_created, record)
        tx.audit(
            record.tenant_id,
            "invoice.created",
            "invoice",
            record.invoice_id,
            new_values={
                "invoice_number": record.invoice_number,
                "total_amount": str(record.total_amount),
                "billing_reason": record.billing_reason.value,
            },
        )

        logger.info(
            "invoice.generated",
            invoice_id=record.invoice_id,
            invoice_number=record.invoice_number,
            tenant_id=record.tenant_id,
            subtotal=str(record.subtotal),
            total_amount=str(record.total_amount),
            usage_events_billed=billed_events,
        )
        return record

    # ------------------------------------------------------------------
    # Batch jobs
    # ------------------------------------------------------------------

    async def mark_overdue_invoices(self, now: datetime | None = None) -> BatchResult:
        """Flip unpaid pending invoices past their due date to overdue."""
        now = now or utcnow()
        batch = BatchResult()

        async with self._transaction(None) as tx:
            result = await self.session.execute(
                select(InvoiceTable)
                .where(
                    and_(
                        InvoiceTable.status == InvoiceStatus.PENDING.value,
                        InvoiceTable.payment_status != PaymentStatus.PAID.value,
                        InvoiceTable.due_date < now,
                    )
                )
                .with_for_update()
            )
            for invoice in result.scalars().all():
                invoice.status = InvoiceStatus.OVERDUE.value
                batch.processed += 1
                await self.session.flush()
                record = InvoiceRecord.model_validate(invoice)
                tx.emit(emit_invoice_overdue, record)
                batch.invoice_ids.append(record.invoice_id)

        logger.info("invoice.overdue_sweep_completed", overdue=batch.processed)
        return batch

    async def _current_subscription(self, tenant_id: str) -> SubscriptionTable:
        result = await self.session.execute(
            select(SubscriptionTable)
            .where(
                and_(
                    SubscriptionTable.tenant_id == tenant_id,
                    SubscriptionTable.status.in_(SubscriptionStatus.live()),
                )
            )
            .order_by(SubscriptionTable.created_at.desc())
        )
        subscription = result.scalars().first()
        if subscription is None:
            raise ValidationError(
                "Tenant has no active subscription to bill usage against",
                context={"tenant_id": tenant_id},
            )
        return subscription

    async def generate_usage_invoices(
        self,
        period_start: datetime,
        period_end: datetime,
        now: datetime | None = None,
    ) -> BatchResult:
        """Issue usage-only invoices for every tenant with priced unbilled usage.

        Each tenant is invoiced in its own transaction; failures are collected.
        """
        now = now or utcnow()
        with billing_job("usage_invoicing"):
            batch = BatchResult()
            tenant_ids = await self.usage_meter.tenants_with_unbilled_usage(period_start, period_end)

            for tenant_id in tenant_ids:
                try:
                    async with self._transaction(None) as tx:
                        subscription = await self._current_subscription(tenant_id)
                        charges = await self.usage_meter.calculate_usage_charges(
                            tenant_id, period_start, period_end, for_update=True
                        )
                        if charges.total <= 0:
                            batch.skipped += 1
                            continue
                        invoice = await self.issue_invoice(
                            tx,
                            subscription=subscription,
                            plan=None,
                            billing_reason=BillingReason.USAGE,
                            plan_period=None,
                            usage_window=(period_start, period_end),
                            usage_charges=charges,
                            now=now,
                        )
                    batch.processed += 1
                    batch.invoice_ids.append(invoice.invoice_id)
                except Exception as e:
                    failure = BatchFailure.from_exception(tenant_id, e)
                    batch.failures.append(failure)
                    logger.warning(
                        "invoice.usage_invoice_failed",
                        tenant_id=tenant_id,
                        error=failure.message,
                        kind=failure.kind.value,
                    )

            logger.info(
                "invoice.usage_batch_completed",
                processed=batch.processed,
                skipped=batch.skipped,
                failed=batch.failed,
            )
            return batch
