"""
Subscription lifecycle.

Plans are immutable catalog versions. Subscriptions move through
trial -> active -> cancelled/expired; renewals advance the billing period by
whole calendar periods from the previous billing date, never from "now".
"""

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pulss.platform.db import utcnow
from pulss.platform.events import EventBus
from pulss.platform.logging import billing_job

from ..audit import AuditLogger
from ..config import BillingConfig, get_billing_config
from ..enums import BillingPeriod, BillingReason, SubscriptionStatus
from ..events import (
    emit_renewal_reminder,
    emit_subscription_cancelled,
    emit_subscription_created,
    emit_subscription_expired,
    emit_subscription_renewed,
    emit_trial_ending,
)
from ..exceptions import (
    PlanNotFoundError,
    SubscriptionNotFoundError,
    ValidationError,
)
from ..invoicing import InvoiceGenerator
from ..models import SubscriptionPlanTable, SubscriptionTable, TenantTable, new_id
from ..money_utils import round_amount
from ..schemas import BatchFailure, BatchResult, PlanRecord, SubscriptionRecord
from ..transaction import BillingTransaction, billing_transaction
from .periods import add_billing_period

logger = structlog.get_logger(__name__)


class RenewalOutcome(str, Enum):
    RENEWED = "renewed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


def _subscription_snapshot(subscription: SubscriptionTable) -> dict[str, Any]:
    return {
        "status": subscription.status,
        "auto_renew": subscription.auto_renew,
        "cancel_at_period_end": subscription.cancel_at_period_end,
        "next_billing_date": (
            subscription.next_billing_date.isoformat() if subscription.next_billing_date else None
        ),
    }


class SubscriptionManager:
    """Creates, renews, cancels and expires subscriptions."""

    def __init__(
        self,
        session: AsyncSession,
        config: BillingConfig | None = None,
        invoice_generator: InvoiceGenerator | None = None,
        event_bus: EventBus | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.session = session
        self.config = config or get_billing_config()
        self.event_bus = event_bus
        self.audit_logger = audit_logger
        self.invoice_generator = invoice_generator or InvoiceGenerator(
            session, self.config, event_bus=event_bus, audit_logger=audit_logger
        )

    def _transaction(self, tx: BillingTransaction | None = None):
        return billing_transaction(
            self.session, tx, event_bus=self.event_bus, audit_logger=self.audit_logger
        )

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    async def create_plan(
        self,
        code: str,
        name: str,
        base_price: Decimal,
        billing_period: BillingPeriod | str,
        trial_days: int = 0,
        limits: dict[str, Any] | None = None,
        features: list[str] | None = None,
        description: str | None = None,
        hsn_sac: str | None = None,
        *,
        tx: BillingTransaction | None = None,
    ) -> PlanRecord:
        """Publish a new plan version. Earlier versions of ``code`` are left untouched."""
        if base_price < 0:
            raise ValidationError("Plan price cannot be negative", context={"code": code})
        if trial_days < 0:
            raise ValidationError("Trial days cannot be negative", context={"code": code})
        try:
            period = BillingPeriod(billing_period)
        except ValueError:
            raise ValidationError(
                f"Unsupported billing period: {billing_period}",
                context={"allowed": [p.value for p in BillingPeriod]},
            )

        async with self._transaction(tx) as tx:
            result = await self.session.execute(
                select(func.max(SubscriptionPlanTable.version)).where(
                    SubscriptionPlanTable.code == code
                )
            )
            version = (result.scalar_one_or_none() or 0) + 1

            plan = SubscriptionPlanTable(
                plan_id=new_id(),
                code=code,
                version=version,
                name=name,
                description=description,
                base_price=round_amount(base_price),
                currency=self.config.gst.currency,
                billing_period=period.value,
                trial_days=trial_days,
                limits=limits or {},
                features=features or [],
                hsn_sac=hsn_sac,
                is_active=True,
            )
            self.session.add(plan)
            await self.session.flush()

            record = PlanRecord.model_validate(plan)
            tx.audit(
                None,
                "plan.created",
                "subscription_plan",
                record.plan_id,
                new_values={"code": code, "version": version, "base_price": str(record.base_price)},
            )

        logger.info("subscription.plan_created", plan_id=record.plan_id, code=code, version=version)
        return record

    async def deactivate_plan(self, plan_id: str) -> PlanRecord:
        """Stop offering a plan; existing subscriptions keep renewing on it."""
        async with self._transaction() as tx:
            plan = await self._get_plan_row(plan_id)
            plan.is_active = False
            await self.session.flush()
            record = PlanRecord.model_validate(plan)
            tx.audit(None, "plan.deactivated", "subscription_plan", plan_id)
        return record

    async def _get_plan_row(self, plan_id: str) -> SubscriptionPlanTable:
        result = await self.session.execute(
            select(SubscriptionPlanTable).where(SubscriptionPlanTable.plan_id == plan_id)
        )
        plan = result.scalar_one_or_none()
        if plan is None:
            raise PlanNotFoundError(resource_id=plan_id)
        return plan

    async def get_plan(self, plan_id: str) -> PlanRecord:
        return PlanRecord.model_validate(await self._get_plan_row(plan_id))

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def _get_subscription_row(
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

    async def get_subscription(self, tenant_id: str, subscription_id: str) -> SubscriptionRecord:
        return SubscriptionRecord.model_validate(
            await self._get_subscription_row(tenant_id, subscription_id)
        )

    async def get_current_subscription(self, tenant_id: str) -> SubscriptionRecord | None:
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
        return SubscriptionRecord.model_validate(subscription) if subscription else None

    async def create_subscription(
        self,
        tenant_id: str,
        plan_id: str,
        billing_email: str | None,
        gateway: str | None,
        trial_days_override: int | None = None,
        *,
        tx: BillingTransaction | None = None,
        now: datetime | None = None,
    ) -> SubscriptionRecord:
        """Subscribe a tenant to a plan.

        Without a trial the subscription starts active and its first invoice
        is issued in the same transaction.
        """
        now = now or utcnow()

        async with self._transaction(tx) as tx:
            result = await self.session.execute(
                select(SubscriptionPlanTable).where(SubscriptionPlanTable.plan_id == plan_id)
            )
            plan = result.scalar_one_or_none()
            if plan is None or not plan.is_active:
                raise ValidationError(
                    "Subscription plan not found or inactive",
                    context={"plan_id": plan_id},
                    recovery_hint="Choose an active plan",
                )

            # Serializes concurrent subscription attempts for the same tenant
            tenant_result = await self.session.execute(
                select(TenantTable).where(TenantTable.tenant_id == tenant_id).with_for_update()
            )
            if tenant_result.scalar_one_or_none() is None:
                raise ValidationError(
                    "Tenant billing profile not found", context={"tenant_id": tenant_id}
                )

            live = await self.session.execute(
                select(SubscriptionTable.subscription_id).where(
                    and_(
                        SubscriptionTable.tenant_id == tenant_id,
                        SubscriptionTable.status.in_(SubscriptionStatus.live()),
                    )
                )
            )
            existing_id = live.scalars().first()
            if existing_id is not None:
                raise ValidationError(
                    "Tenant already has an active subscription",
                    context={"tenant_id": tenant_id, "subscription_id": existing_id},
                    recovery_hint="Cancel the current subscription first",
                )

            trial_days = plan.trial_days if trial_days_override is None else trial_days_override
            if trial_days < 0:
                raise ValidationError("Trial days cannot be negative")

            period_end = add_billing_period(now, plan.billing_period, anchor_day=now.day)
            subscription = SubscriptionTable(
                subscription_id=new_id(),
                tenant_id=tenant_id,
                plan_id=plan.plan_id,
                billing_email=billing_email,
                payment_gateway=gateway,
                current_period_start=now,
                current_period_end=period_end,
                billing_anchor_day=now.day,
                auto_renew=True,
                cancel_at_period_end=False,
            )
            if trial_days > 0:
                subscription.status = SubscriptionStatus.TRIAL.value
                subscription.trial_start = now
                subscription.trial_end = now + timedelta(days=trial_days)
                subscription.next_billing_date = subscription.trial_end
            else:
                subscription.status = SubscriptionStatus.ACTIVE.value
                subscription.next_billing_date = period_end

            self.session.add(subscription)
            await self.session.flush()

            if subscription.status == SubscriptionStatus.ACTIVE.value:
                await self.invoice_generator.issue_invoice(
                    tx,
                    subscription=subscription,
                    plan=plan,
                    billing_reason=BillingReason.SUBSCRIPTION_CREATE,
                    plan_period=(now, period_end),
                    usage_window=None,
                    now=now,
                )

            record = SubscriptionRecord.model_validate(subscription)
            tx.emit(emit_subscription_created, record)
            tx.audit(
                tenant_id,
                "subscription.created",
                "subscription",
                record.subscription_id,
                new_values={"plan_id": plan_id, "status": record.status.value},
            )

        logger.info(
            "subscription.created",
            subscription_id=record.subscription_id,
            tenant_id=tenant_id,
            plan_id=plan_id,
            status=record.status.value,
        )
        return record

    async def cancel_subscription(
        self,
        tenant_id: str,
        subscription_id: str,
        immediate: bool = True,
        reason: str | None = None,
        *,
        now: datetime | None = None,
    ) -> SubscriptionRecord:
        """Cancel now, or at the end of the current period."""
        now = now or utcnow()

        async with self._transaction() as tx:
            subscription = await self._get_subscription_row(
                tenant_id, subscription_id, for_update=True
            )
            if subscription.status not in SubscriptionStatus.live():
                raise ValidationError(
                    f"Subscription is already {subscription.status}",
                    context={"subscription_id": subscription_id},
                )

            old_values = _subscription_snapshot(subscription)
            subscription.cancellation_reason = reason
            if immediate:
                subscription.status = SubscriptionStatus.CANCELLED.value
                subscription.cancelled_at = now
                subscription.auto_renew = False
                subscription.cancel_at_period_end = False
            else:
                subscription.cancel_at_period_end = True
            await self.session.flush()

            record = SubscriptionRecord.model_validate(subscription)
            if immediate:
                tx.emit(emit_subscription_cancelled, record)
            tx.audit(
                tenant_id,
                "subscription.cancelled" if immediate else "subscription.cancel_scheduled",
                "subscription",
                subscription_id,
                old_values=old_values,
                new_values=_subscription_snapshot(subscription),
            )

        logger.info(
            "subscription.cancellation_recorded",
            subscription_id=subscription_id,
            tenant_id=tenant_id,
            immediate=immediate,
        )
        return record

    # ------------------------------------------------------------------
    # Scheduled sweeps
    # ------------------------------------------------------------------

    async def renew_subscriptions(self, now: datetime | None = None) -> BatchResult:
        """Renew due subscriptions and close those cancelled at period end.

        Every subscription is handled in its own transaction; failures are
        collected in the result with their error kind and never raised.
        """
        now = now or utcnow()
        result = await self.session.execute(
            select(SubscriptionTable.subscription_id)
            .where(
                and_(
                    SubscriptionTable.status == SubscriptionStatus.ACTIVE.value,
                    or_(
                        and_(
                            SubscriptionTable.auto_renew.is_(True),
                            SubscriptionTable.next_billing_date <= now,
                        ),
                        and_(
                            SubscriptionTable.cancel_at_period_end.is_(True),
                            SubscriptionTable.current_period_end <= now,
                        ),
                    ),
                )
            )
            .order_by(SubscriptionTable.next_billing_date)
        )
        subscription_ids = list(result.scalars().all())
        # End the read transaction before per-subscription work
        await self.session.commit()

        with billing_job("subscription_renewal"):
            batch = BatchResult()
            for subscription_id in subscription_ids:
                try:
                    outcome, invoice_id = await self._renew_one(subscription_id, now)
                except Exception as e:
                    failure = BatchFailure.from_exception(subscription_id, e)
                    batch.failures.append(failure)
                    logger.warning(
                        "subscription.renewal_failed",
                        subscription_id=subscription_id,
                        error=failure.message,
                        kind=failure.kind.value,
                    )
                    continue

                if outcome == RenewalOutcome.RENEWED:
                    batch.processed += 1
                    if invoice_id:
                        batch.invoice_ids.append(invoice_id)
                elif outcome == RenewalOutcome.CANCELLED:
                    batch.cancelled += 1
                else:
                    batch.skipped += 1

            logger.info(
                "subscription.renewal_sweep_completed",
                renewed=batch.processed,
                cancelled=batch.cancelled,
                skipped=batch.skipped,
                failed=batch.failed,
            )
            return batch

    async def _renew_one(
        self, subscription_id: str, now: datetime
    ) -> tuple[RenewalOutcome, str | None]:
        async with self._transaction() as tx:
            result = await self.session.execute(
                select(SubscriptionTable)
                .where(SubscriptionTable.subscription_id == subscription_id)
                .with_for_update()
            )
            subscription = result.scalar_one_or_none()
            # Re-checked under lock: a concurrent sweep may have handled it
            if subscription is None or subscription.status != SubscriptionStatus.ACTIVE.value:
                return RenewalOutcome.SKIPPED, None

            if subscription.cancel_at_period_end and subscription.current_period_end <= now:
                old_values = _subscription_snapshot(subscription)
                subscription.status = SubscriptionStatus.CANCELLED.value
                subscription.cancelled_at = now
                subscription.auto_renew = False
                await self.session.flush()
                record = SubscriptionRecord.model_validate(subscription)
                tx.emit(emit_subscription_cancelled, record)
                tx.audit(
                    record.tenant_id,
                    "subscription.cancelled",
                    "subscription",
                    subscription_id,
                    old_values=old_values,
                    new_values=_subscription_snapshot(subscription),
                )
                return RenewalOutcome.CANCELLED, None

            due = subscription.next_billing_date
            if not subscription.auto_renew or due is None or due > now:
                return RenewalOutcome.SKIPPED, None

            plan = await self._get_plan_row(subscription.plan_id)
            period_start = due
            period_end = add_billing_period(
                period_start, plan.billing_period, anchor_day=subscription.billing_anchor_day
            )

            invoice = await self.invoice_generator.find_invoice_for_period(
                subscription_id, BillingReason.RENEWAL, period_start
            )
            if invoice is None:
                usage_window = None
                if self.config.invoice.renewal_includes_usage:
                    usage_window = (
                        subscription.current_period_start,
                        subscription.current_period_end,
                    )
                invoice = await self.invoice_generator.issue_invoice(
                    tx,
                    subscription=subscription,
                    plan=plan,
                    billing_reason=BillingReason.RENEWAL,
                    plan_period=(period_start, period_end),
                    usage_window=usage_window,
                    now=now,
                )

            old_values = _subscription_snapshot(subscription)
            subscription.current_period_start = period_start
            subscription.current_period_end = period_end
            subscription.next_billing_date = period_end
            await self.session.flush()

            record = SubscriptionRecord.model_validate(subscription)
            tx.emit(emit_subscription_renewed, record, invoice.invoice_id)
            tx.audit(
                record.tenant_id,
                "subscription.renewed",
                "subscription",
                subscription_id,
                old_values=old_values,
                new_values=_subscription_snapshot(subscription),
            )

        logger.info(
            "subscription.renewed",
            subscription_id=subscription_id,
            invoice_id=invoice.invoice_id,
            period_start=period_start.isoformat(),
            next_billing_date=period_end.isoformat(),
        )
        return RenewalOutcome.RENEWED, invoice.invoice_id

    async def expire_subscriptions(self, now: datetime | None = None) -> BatchResult:
        """Expire ended trials and non-renewing subscriptions whose period elapsed."""
        now = now or utcnow()
        result = await self.session.execute(
            select(SubscriptionTable.subscription_id).where(
                or_(
                    and_(
                        SubscriptionTable.status == SubscriptionStatus.TRIAL.value,
                        SubscriptionTable.trial_end <= now,
                    ),
                    and_(
                        SubscriptionTable.status == SubscriptionStatus.ACTIVE.value,
                        SubscriptionTable.auto_renew.is_(False),
                        SubscriptionTable.cancel_at_period_end.is_(False),
                        SubscriptionTable.current_period_end <= now,
                    ),
                )
            )
        )
        subscription_ids = list(result.scalars().all())
        await self.session.commit()

        with billing_job("subscription_expiry"):
            batch = BatchResult()
            for subscription_id in subscription_ids:
                try:
                    async with self._transaction() as tx:
                        row = await self.session.execute(
                            select(SubscriptionTable)
                            .where(SubscriptionTable.subscription_id == subscription_id)
                            .with_for_update()
                        )
                        subscription = row.scalar_one()
                        if subscription.status not in SubscriptionStatus.live():
                            batch.skipped += 1
                            continue
                        old_values = _subscription_snapshot(subscription)
                        subscription.status = SubscriptionStatus.EXPIRED.value
                        await self.session.flush()
                        record = SubscriptionRecord.model_validate(subscription)
                        tx.emit(emit_subscription_expired, record)
                        tx.audit(
                            record.tenant_id,
                            "subscription.expired",
                            "subscription",
                            subscription_id,
                            old_values=old_values,
                            new_values=_subscription_snapshot(subscription),
                        )
                    batch.expired += 1
                except Exception as e:
                    failure = BatchFailure.from_exception(subscription_id, e)
                    batch.failures.append(failure)
                    logger.warning(
                        "subscription.expiry_failed",
                        subscription_id=subscription_id,
                        error=failure.message,
                    )

            logger.info(
                "subscription.expiry_sweep_completed",
                expired=batch.expired,
                failed=batch.failed,
            )
            return batch

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    async def send_renewal_reminders(
        self, now: datetime | None = None, days_ahead: int | None = None
    ) -> int:
        """Emit ``renewal_reminder`` for auto-renewing subscriptions due soon."""
        now = now or utcnow()
        if days_ahead is None:
            days_ahead = self.config.invoice.renewal_reminder_days
        horizon = now + timedelta(days=days_ahead)
        result = await self.session.execute(
            select(SubscriptionTable, SubscriptionPlanTable.base_price)
            .join(SubscriptionPlanTable, SubscriptionPlanTable.plan_id == SubscriptionTable.plan_id)
            .where(
                and_(
                    SubscriptionTable.status == SubscriptionStatus.ACTIVE.value,
                    SubscriptionTable.auto_renew.is_(True),
                    SubscriptionTable.cancel_at_period_end.is_(False),
                    SubscriptionTable.next_billing_date > now,
                    SubscriptionTable.next_billing_date <= horizon,
                )
            )
        )
        sent = 0
        for subscription, base_price in result.all():
            await emit_renewal_reminder(
                SubscriptionRecord.model_validate(subscription),
                base_price,
                event_bus=self.event_bus,
            )
            sent += 1

        logger.info("subscription.renewal_reminders_sent", count=sent)
        return sent

    async def send_trial_ending_reminders(
        self, now: datetime | None = None, days_ahead: int | None = None
    ) -> int:
        """Emit ``trial_ending`` for trials that end soon."""
        now = now or utcnow()
        if days_ahead is None:
            days_ahead = self.config.invoice.trial_reminder_days
        horizon = now + timedelta(days=days_ahead)
        result = await self.session.execute(
            select(SubscriptionTable).where(
                and_(
                    SubscriptionTable.status == SubscriptionStatus.TRIAL.value,
                    SubscriptionTable.trial_end > now,
                    SubscriptionTable.trial_end <= horizon,
                )
            )
        )
        sent = 0
        for subscription in result.scalars().all():
            await emit_trial_ending(
                SubscriptionRecord.model_validate(subscription), event_bus=self.event_bus
            )
            sent += 1

        logger.info("subscription.trial_reminders_sent", count=sent)
        return sent
