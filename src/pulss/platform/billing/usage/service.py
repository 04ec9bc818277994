"""
Usage metering.

Usage events are appended against per-tenant meters and later aggregated into
overage charges. A meter's ``included_units`` is an allowance per billing
window: quantity already billed in the window counts against it, so billing
the same window twice never grants the allowance twice.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pulss.platform.db import utcnow

from ..config import BillingConfig, get_billing_config
from ..exceptions import ConcurrencyConflict, ValidationError
from ..models import UsageEventTable, UsageMeterTable, new_id
from ..money_utils import ZERO, money_handler, round_amount
from ..schemas import (
    MeterUsageSummary,
    UsageChargeLine,
    UsageCharges,
    UsageEventRecord,
    UsageMeterRecord,
    UsageRecordInput,
    UsageSummary,
)
from ..transaction import BillingTransaction, billing_transaction

logger = structlog.get_logger(__name__)


class UsageMeterService:
    """Records usage and prices unbilled usage for invoicing."""

    def __init__(self, session: AsyncSession, config: BillingConfig | None = None) -> None:
        self.session = session
        self.config = config or get_billing_config()

    async def _get_meter(
        self, tenant_id: str, meter_type: str, for_update: bool = False
    ) -> UsageMeterTable | None:
        stmt = select(UsageMeterTable).where(
            and_(
                UsageMeterTable.tenant_id == tenant_id,
                UsageMeterTable.meter_type == meter_type,
            )
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_meter(self, tenant_id: str, meter_type: str) -> UsageMeterRecord | None:
        meter = await self._get_meter(tenant_id, meter_type)
        return UsageMeterRecord.model_validate(meter) if meter else None

    async def configure_meter(
        self,
        tenant_id: str,
        meter_type: str,
        unit_price: Decimal | None,
        included_units: Decimal = ZERO,
        unit_name: str | None = None,
        *,
        tx: BillingTransaction | None = None,
    ) -> UsageMeterRecord:
        """Create or reprice a meter. A ``None`` price leaves the meter unbilled."""
        if unit_price is not None and unit_price < 0:
            raise ValidationError("Unit price cannot be negative", context={"meter_type": meter_type})
        if included_units < 0:
            raise ValidationError(
                "Included units cannot be negative", context={"meter_type": meter_type}
            )

        async with billing_transaction(self.session, tx) as tx:
            meter = await self._get_meter(tenant_id, meter_type, for_update=True)
            old_values = None
            if meter is None:
                meter = UsageMeterTable(
                    meter_id=new_id(), tenant_id=tenant_id, meter_type=meter_type
                )
                self.session.add(meter)
            else:
                old_values = {
                    "unit_price": str(meter.unit_price) if meter.unit_price is not None else None,
                    "included_units": str(meter.included_units),
                }

            meter.unit_price = unit_price
            meter.included_units = included_units
            if unit_name is not None:
                meter.unit_name = unit_name
            await self.session.flush()

            record = UsageMeterRecord.model_validate(meter)
            tx.audit(
                tenant_id,
                "usage_meter.configured",
                "usage_meter",
                record.meter_id,
                old_values=old_values,
                new_values={
                    "unit_price": str(unit_price) if unit_price is not None else None,
                    "included_units": str(included_units),
                },
            )

        logger.info(
            "usage.meter_configured",
            tenant_id=tenant_id,
            meter_type=meter_type,
            unit_price=str(unit_price),
        )
        return record

    async def record_usage(
        self,
        tenant_id: str,
        meter_type: str,
        quantity: Decimal | int | float | str,
        metadata: dict[str, Any] | None = None,
        *,
        recorded_at: datetime | None = None,
        tx: BillingTransaction | None = None,
    ) -> UsageEventRecord:
        """Append an unbilled usage event, creating the meter on first use."""
        amount = money_handler.to_decimal(quantity)
        if amount <= 0:
            raise ValidationError(
                "Usage quantity must be positive",
                context={"meter_type": meter_type, "quantity": str(quantity)},
            )
        if not meter_type or not meter_type.strip():
            raise ValidationError("Meter type is required")

        async with billing_transaction(self.session, tx):
            meter = await self._get_meter(tenant_id, meter_type)
            if meter is None:
                meter = UsageMeterTable(
                    meter_id=new_id(),
                    tenant_id=tenant_id,
                    meter_type=meter_type,
                    unit_price=None,
                    included_units=ZERO,
                )
                self.session.add(meter)
                await self.session.flush()

            event = UsageEventTable(
                event_id=new_id(),
                tenant_id=tenant_id,
                meter_id=meter.meter_id,
                meter_type=meter_type,
                quantity=amount,
                recorded_at=recorded_at or utcnow(),
                event_metadata=metadata or {},
            )
            self.session.add(event)
            await self.session.flush()
            record = UsageEventRecord.model_validate(event)

        logger.debug(
            "usage.recorded", tenant_id=tenant_id, meter_type=meter_type, quantity=str(amount)
        )
        return record

    async def record_usage_batch(
        self,
        tenant_id: str,
        records: list[UsageRecordInput],
        *,
        tx: BillingTransaction | None = None,
    ) -> list[UsageEventRecord]:
        """Record several usage events atomically; one bad entry rejects the batch."""
        if not records:
            raise ValidationError("Usage records required", context={"tenant_id": tenant_id})

        async with billing_transaction(self.session, tx) as tx:
            recorded = [
                await self.record_usage(
                    tenant_id,
                    record.meter_type,
                    record.quantity,
                    record.metadata,
                    recorded_at=record.recorded_at,
                    tx=tx,
                )
                for record in records
            ]

        logger.info("usage.batch_recorded", tenant_id=tenant_id, count=len(recorded))
        return recorded

    async def list_usage_events(
        self,
        tenant_id: str,
        meter_type: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        is_billed: bool | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[UsageEventRecord]:
        """A tenant's usage events, newest first."""
        stmt = select(UsageEventTable).where(UsageEventTable.tenant_id == tenant_id)
        if meter_type is not None:
            stmt = stmt.where(UsageEventTable.meter_type == meter_type)
        if start is not None:
            stmt = stmt.where(UsageEventTable.recorded_at >= start)
        if end is not None:
            stmt = stmt.where(UsageEventTable.recorded_at < end)
        if is_billed is not None:
            stmt = stmt.where(UsageEventTable.is_billed.is_(is_billed))
        stmt = (
            stmt.order_by(UsageEventTable.recorded_at.desc(), UsageEventTable.event_id)
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return [UsageEventRecord.model_validate(e) for e in result.scalars().all()]

    async def get_usage_summary(
        self,
        tenant_id: str,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> UsageSummary:
        """Per-meter totals in ``[period_start, period_end)``, split into billed and unbilled."""
        billed = case((UsageEventTable.is_billed.is_(True), UsageEventTable.quantity), else_=0)
        stmt = (
            select(
                UsageMeterTable.meter_type,
                UsageMeterTable.unit_name,
                func.count(UsageEventTable.event_id),
                func.sum(UsageEventTable.quantity),
                func.sum(billed),
                func.min(UsageEventTable.quantity),
                func.max(UsageEventTable.quantity),
            )
            .join(UsageMeterTable, UsageMeterTable.meter_id == UsageEventTable.meter_id)
            .where(UsageEventTable.tenant_id == tenant_id)
            .group_by(UsageMeterTable.meter_type, UsageMeterTable.unit_name)
            .order_by(UsageMeterTable.meter_type)
        )
        if period_start is not None:
            stmt = stmt.where(UsageEventTable.recorded_at >= period_start)
        if period_end is not None:
            stmt = stmt.where(UsageEventTable.recorded_at < period_end)

        summary = UsageSummary(
            tenant_id=tenant_id, period_start=period_start, period_end=period_end
        )
        to_decimal = money_handler.to_decimal
        for meter_type, unit_name, count, total, billed_total, smallest, largest in (
            await self.session.execute(stmt)
        ).all():
            total = to_decimal(total)
            billed_total = to_decimal(billed_total)
            summary.meters.append(
                MeterUsageSummary(
                    meter_type=meter_type,
                    unit_name=unit_name,
                    event_count=count,
                    total_quantity=total,
                    billed_quantity=billed_total,
                    unbilled_quantity=total - billed_total,
                    min_quantity=to_decimal(smallest),
                    max_quantity=to_decimal(largest),
                )
            )
        return summary

    async def _billed_quantity(
        self, meter_id: str, period_start: datetime, period_end: datetime
    ) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(UsageEventTable.quantity), 0)).where(
                and_(
                    UsageEventTable.meter_id == meter_id,
                    UsageEventTable.is_billed.is_(True),
                    UsageEventTable.recorded_at >= period_start,
                    UsageEventTable.recorded_at < period_end,
                )
            )
        )
        return money_handler.to_decimal(result.scalar_one())

    async def calculate_usage_charges(
        self,
        tenant_id: str,
        period_start: datetime,
        period_end: datetime,
        *,
        for_update: bool = False,
    ) -> UsageCharges:
        """Price unbilled usage in ``[period_start, period_end)`` per meter.

        Meters without a unit price are skipped entirely. With ``for_update``
        the consumed event rows are locked until the caller's transaction ends.
        """
        meters_result = await self.session.execute(
            select(UsageMeterTable)
            .where(
                and_(
                    UsageMeterTable.tenant_id == tenant_id,
                    UsageMeterTable.unit_price.is_not(None),
                    UsageMeterTable.is_active.is_(True),
                )
            )
            .order_by(UsageMeterTable.meter_type)
        )

        charges = UsageCharges(tenant_id=tenant_id, period_start=period_start, period_end=period_end)
        total = ZERO
        for meter in meters_result.scalars().all():
            stmt = select(UsageEventTable).where(
                and_(
                    UsageEventTable.meter_id == meter.meter_id,
                    UsageEventTable.is_billed.is_(False),
                    UsageEventTable.processed.is_(False),
                    UsageEventTable.recorded_at >= period_start,
                    UsageEventTable.recorded_at < period_end,
                )
            )
            if for_update:
                stmt = stmt.with_for_update()
            events = (await self.session.execute(stmt)).scalars().all()
            if not events:
                continue

            unbilled = sum((money_handler.to_decimal(e.quantity) for e in events), ZERO)
            already_billed = await self._billed_quantity(meter.meter_id, period_start, period_end)
            included = money_handler.to_decimal(meter.included_units)
            unit_price = money_handler.to_decimal(meter.unit_price)

            overage_before = max(already_billed - included, ZERO)
            overage_after = max(already_billed + unbilled - included, ZERO)
            billable = overage_after - overage_before
            charge = round_amount(billable * unit_price)

            charges.breakdown.append(
                UsageChargeLine(
                    meter_id=meter.meter_id,
                    meter_type=meter.meter_type,
                    unit_name=meter.unit_name,
                    total_quantity=unbilled,
                    included_units=included,
                    billable_quantity=billable,
                    unit_price=unit_price,
                    charge=charge,
                    event_ids=[e.event_id for e in events],
                )
            )
            total += charge

        charges.total = round_amount(total)
        return charges

    async def mark_usage_billed(
        self, event_ids: list[str], invoice_id: str, billed_at: datetime | None = None
    ) -> int:
        """Flag events as billed by ``invoice_id``; runs in the caller's transaction."""
        if not event_ids:
            return 0

        result = await self.session.execute(
            update(UsageEventTable)
            .where(
                and_(
                    UsageEventTable.event_id.in_(event_ids),
                    UsageEventTable.is_billed.is_(False),
                )
            )
            .values(
                is_billed=True,
                processed=True,
                billed_in_invoice_id=invoice_id,
                billed_at=billed_at or utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(event_ids):
            raise ConcurrencyConflict(
                "Usage events were billed by a concurrent invoice",
                context={"invoice_id": invoice_id, "expected": len(event_ids), "updated": result.rowcount},
            )
        return result.rowcount

    async def tenants_with_unbilled_usage(
        self, period_start: datetime, period_end: datetime
    ) -> list[str]:
        result = await self.session.execute(
            select(UsageEventTable.tenant_id)
            .join(UsageMeterTable, UsageMeterTable.meter_id == UsageEventTable.meter_id)
            .where(
                and_(
                    UsageEventTable.is_billed.is_(False),
                    UsageEventTable.processed.is_(False),
                    UsageEventTable.recorded_at >= period_start,
                    UsageEventTable.recorded_at < period_end,
                    UsageMeterTable.unit_price.is_not(None),
                )
            )
            .distinct()
            .order_by(UsageEventTable.tenant_id)
        )
        return list(result.scalars().all())
