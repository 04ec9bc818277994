"""
Partner commissions.

A partner earns one commission per successful payment made by a tenant it
referred. Commission terms come from the partner, optionally overridden per
tenant link. ``commissions.payment_id`` is unique, so a payment is never
commissioned twice even when the per-payment hook and the periodic sweep race.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pulss.platform.db import utcnow
from pulss.platform.events import EventBus
from pulss.platform.logging import billing_job

from ..audit import AuditLogger
from ..config import BillingConfig, get_billing_config
from ..enums import CommissionStatus, CommissionType, TransactionStatus
from ..events import emit_commission_created
from ..exceptions import (
    CommissionNotFoundError,
    PartnerNotFoundError,
    TransactionNotFoundError,
    ValidationError,
)
from ..models import (
    CommissionTable,
    InvoiceTable,
    PartnerTable,
    PartnerTenantTable,
    PaymentTransactionTable,
    new_id,
)
from ..money_utils import ZERO, round_amount
from ..schemas import (
    BatchFailure,
    BatchResult,
    CommissionRecord,
    PartnerRecord,
    PartnerTenantRecord,
)
from ..transaction import BillingTransaction, billing_transaction

logger = structlog.get_logger(__name__)

RATE_PRECISION = Decimal("0.0001")

# Allowed status moves; paid and cancelled are final
STATUS_TRANSITIONS: dict[CommissionStatus, set[CommissionStatus]] = {
    CommissionStatus.PENDING: {
        CommissionStatus.APPROVED,
        CommissionStatus.PAID,
        CommissionStatus.CANCELLED,
    },
    CommissionStatus.APPROVED: {CommissionStatus.PAID, CommissionStatus.CANCELLED},
    CommissionStatus.PAID: set(),
    CommissionStatus.CANCELLED: set(),
}


def _validate_terms(commission_type: CommissionType, value: Decimal) -> None:
    if value < 0:
        raise ValidationError("Commission value cannot be negative")
    if commission_type == CommissionType.PERCENTAGE and value > 100:
        raise ValidationError("Percentage commission cannot exceed 100")


def compute_commission(
    commission_type: CommissionType | str, value: Decimal, base_amount: Decimal
) -> tuple[Decimal, Decimal]:
    """Return ``(commission_amount, effective_rate_percent)`` for a payment."""
    if CommissionType(commission_type) == CommissionType.PERCENTAGE:
        return round_amount(base_amount * value / Decimal("100")), value.quantize(RATE_PRECISION)
    rate = (value / base_amount * Decimal("100")) if base_amount > 0 else ZERO
    return round_amount(value), rate.quantize(RATE_PRECISION)


class CommissionCalculator:
    """Partner management and commission accrual."""

    def __init__(
        self,
        session: AsyncSession,
        config: BillingConfig | None = None,
        event_bus: EventBus | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.session = session
        self.config = config or get_billing_config()
        self.event_bus = event_bus
        self.audit_logger = audit_logger

    def _transaction(self, tx: BillingTransaction | None = None):
        return billing_transaction(
            self.session, tx, event_bus=self.event_bus, audit_logger=self.audit_logger
        )

    # ------------------------------------------------------------------
    # Partners
    # ------------------------------------------------------------------

    async def create_partner(
        self,
        name: str,
        commission_type: CommissionType,
        commission_value: Decimal,
        email: str | None = None,
    ) -> PartnerRecord:
        _validate_terms(commission_type, commission_value)
        async with self._transaction() as tx:
            partner = PartnerTable(
                partner_id=new_id(),
                name=name,
                email=email,
                commission_type=CommissionType(commission_type).value,
                commission_value=commission_value,
                is_active=True,
            )
            self.session.add(partner)
            await self.session.flush()
            record = PartnerRecord.model_validate(partner)
            tx.audit(None, "partner.created", "partner", record.partner_id)
        return record

    async def link_partner_to_tenant(
        self,
        partner_id: str,
        tenant_id: str,
        custom_commission_type: CommissionType | None = None,
        custom_commission_value: Decimal | None = None,
    ) -> PartnerTenantRecord:
        """Attribute a tenant to a partner. Re-linking updates the custom terms."""
        if custom_commission_type is not None and custom_commission_value is not None:
            _validate_terms(custom_commission_type, custom_commission_value)

        async with self._transaction() as tx:
            result = await self.session.execute(
                select(PartnerTable).where(PartnerTable.partner_id == partner_id)
            )
            if result.scalar_one_or_none() is None:
                raise PartnerNotFoundError(resource_id=partner_id)

            result = await self.session.execute(
                select(PartnerTenantTable)
                .where(
                    and_(
                        PartnerTenantTable.partner_id == partner_id,
                        PartnerTenantTable.tenant_id == tenant_id,
                    )
                )
                .with_for_update()
            )
            link = result.scalar_one_or_none()
            if link is None:
                link = PartnerTenantTable(
                    link_id=new_id(), partner_id=partner_id, tenant_id=tenant_id
                )
                self.session.add(link)
            link.custom_commission_type = (
                CommissionType(custom_commission_type).value if custom_commission_type else None
            )
            link.custom_commission_value = custom_commission_value
            link.is_active = True
            await self.session.flush()

            record = PartnerTenantRecord.model_validate(link)
            tx.audit(
                tenant_id,
                "partner.linked",
                "partner_tenant",
                record.link_id,
                new_values={"partner_id": partner_id},
            )

        logger.info("commission.partner_linked", partner_id=partner_id, tenant_id=tenant_id)
        return record

    async def _active_terms(
        self, tenant_id: str
    ) -> tuple[PartnerTable, CommissionType, Decimal] | None:
        result = await self.session.execute(
            select(PartnerTable, PartnerTenantTable)
            .join(PartnerTenantTable, PartnerTenantTable.partner_id == PartnerTable.partner_id)
            .where(
                and_(
                    PartnerTenantTable.tenant_id == tenant_id,
                    PartnerTenantTable.is_active.is_(True),
                    PartnerTable.is_active.is_(True),
                )
            )
            .order_by(PartnerTenantTable.created_at)
        )
        row = result.first()
        if row is None:
            return None
        partner, link = row
        commission_type = CommissionType(link.custom_commission_type or partner.commission_type)
        value = (
            link.custom_commission_value
            if link.custom_commission_value is not None
            else partner.commission_value
        )
        return partner, commission_type, value

    # ------------------------------------------------------------------
    # Accrual
    # ------------------------------------------------------------------

    async def calculate_commission_for_payment(
        self, payment_id: str, *, tx: BillingTransaction | None = None
    ) -> CommissionRecord | None:
        """Accrue the commission for one successful payment.

        Returns ``None`` when the payment already has a commission, did not
        succeed, or its tenant has no active partner.
        """
        async with self._transaction(tx) as tx:
            result = await self.session.execute(
                select(PaymentTransactionTable, InvoiceTable.subscription_id)
                .join(InvoiceTable, InvoiceTable.invoice_id == PaymentTransactionTable.invoice_id)
                .where(PaymentTransactionTable.transaction_id == payment_id)
            )
            row = result.first()
            if row is None:
                raise TransactionNotFoundError(resource_id=payment_id)
            payment, subscription_id = row
            if payment.status != TransactionStatus.SUCCESS.value:
                return None

            existing = await self.session.execute(
                select(CommissionTable.commission_id).where(CommissionTable.payment_id == payment_id)
            )
            if existing.scalar_one_or_none() is not None:
                return None

            terms = await self._active_terms(payment.tenant_id)
            if terms is None:
                return None
            partner, commission_type, value = terms

            amount, rate = compute_commission(commission_type, value, payment.amount)
            commission = CommissionTable(
                commission_id=new_id(),
                partner_id=partner.partner_id,
                tenant_id=payment.tenant_id,
                subscription_id=subscription_id,
                payment_id=payment_id,
                commission_type=commission_type.value,
                base_amount=payment.amount,
                commission_rate=rate,
                commission_amount=amount,
                status=CommissionStatus.PENDING.value,
            )
            self.session.add(commission)
            await self.session.flush()

            record = CommissionRecord.model_validate(commission)
            tx.emit(emit_commission_created, record)
            tx.audit(
                record.tenant_id,
                "commission.created",
                "commission",
                record.commission_id,
                new_values={
                    "partner_id": record.partner_id,
                    "payment_id": payment_id,
                    "commission_amount": str(record.commission_amount),
                },
            )

        logger.info(
            "commission.created",
            commission_id=record.commission_id,
            partner_id=record.partner_id,
            payment_id=payment_id,
            amount=str(record.commission_amount),
        )
        return record

    async def calculate_pending_commissions(self, now: datetime | None = None) -> BatchResult:
        """Accrue commissions for recent successful payments that have none."""
        now = now or utcnow()
        since = now - timedelta(days=self.config.commission.lookback_days)

        result = await self.session.execute(
            select(PaymentTransactionTable.transaction_id)
            .outerjoin(
                CommissionTable,
                CommissionTable.payment_id == PaymentTransactionTable.transaction_id,
            )
            .where(
                and_(
                    PaymentTransactionTable.status == TransactionStatus.SUCCESS.value,
                    PaymentTransactionTable.completed_at >= since,
                    CommissionTable.commission_id.is_(None),
                )
            )
            .order_by(PaymentTransactionTable.completed_at)
        )
        payment_ids = list(result.scalars().all())
        await self.session.commit()

        with billing_job("commission_accrual"):
            batch = BatchResult()
            for payment_id in payment_ids:
                try:
                    commission = await self.calculate_commission_for_payment(payment_id)
                except Exception as e:
                    batch.failures.append(BatchFailure.from_exception(payment_id, e))
                    continue
                if commission is None:
                    batch.skipped += 1
                else:
                    batch.processed += 1

            logger.info(
                "commission.sweep_completed",
                created=batch.processed,
                skipped=batch.skipped,
                failed=batch.failed,
            )
            return batch

    # ------------------------------------------------------------------
    # Payouts
    # ------------------------------------------------------------------

    async def get_commission(self, commission_id: str) -> CommissionRecord:
        result = await self.session.execute(
            select(CommissionTable).where(CommissionTable.commission_id == commission_id)
        )
        commission = result.scalar_one_or_none()
        if commission is None:
            raise CommissionNotFoundError(resource_id=commission_id)
        return CommissionRecord.model_validate(commission)

    async def update_commission_status(
        self,
        commission_id: str,
        status: CommissionStatus,
        payout_reference: str | None = None,
        *,
        now: datetime | None = None,
    ) -> CommissionRecord:
        now = now or utcnow()
        status = CommissionStatus(status)

        async with self._transaction() as tx:
            result = await self.session.execute(
                select(CommissionTable)
                .where(CommissionTable.commission_id == commission_id)
                .with_for_update()
            )
            commission = result.scalar_one_or_none()
            if commission is None:
                raise CommissionNotFoundError(resource_id=commission_id)

            current = CommissionStatus(commission.status)
            if status not in STATUS_TRANSITIONS[current]:
                raise ValidationError(
                    f"Cannot move commission from {current.value} to {status.value}",
                    context={"commission_id": commission_id},
                )

            commission.status = status.value
            if status == CommissionStatus.PAID:
                commission.payout_date = now
                commission.payout_reference = payout_reference
            await self.session.flush()

            record = CommissionRecord.model_validate(commission)
            tx.audit(
                record.tenant_id,
                "commission.status_changed",
                "commission",
                commission_id,
                old_values={"status": current.value},
                new_values={"status": status.value, "payout_reference": payout_reference},
            )
        return record

    async def list_partner_commissions(
        self,
        partner_id: str,
        status: CommissionStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[CommissionRecord]:
        """A partner's commissions, newest first, optionally by status and accrual window."""
        result = await self.session.execute(
            select(PartnerTable.partner_id).where(PartnerTable.partner_id == partner_id)
        )
        if result.scalar_one_or_none() is None:
            raise PartnerNotFoundError(resource_id=partner_id)

        stmt = select(CommissionTable).where(CommissionTable.partner_id == partner_id)
        if status is not None:
            stmt = stmt.where(CommissionTable.status == CommissionStatus(status).value)
        if start is not None:
            stmt = stmt.where(CommissionTable.created_at >= start)
        if end is not None:
            stmt = stmt.where(CommissionTable.created_at <= end)
        stmt = (
            stmt.order_by(CommissionTable.created_at.desc(), CommissionTable.commission_id)
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return [CommissionRecord.model_validate(c) for c in result.scalars().all()]

    async def get_partner_summary(self, partner_id: str) -> dict[str, Decimal]:
        """Commission totals per status for one partner."""
        result = await self.session.execute(
            select(CommissionTable.status, func.sum(CommissionTable.commission_amount))
            .where(CommissionTable.partner_id == partner_id)
            .group_by(CommissionTable.status)
        )
        summary = {status.value: ZERO for status in CommissionStatus}
        for status, total in result.all():
            summary[status] = round_amount(total)
        return summary
