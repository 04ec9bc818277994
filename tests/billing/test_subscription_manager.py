"""
Tests for plans, the subscription lifecycle and the renewal sweeps.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from pulss.platform.billing.enums import BillingReason, SubscriptionStatus
from pulss.platform.billing.events import BillingEvents
from pulss.platform.billing.exceptions import SubscriptionNotFoundError, ValidationError
from pulss.platform.billing.models import InvoiceTable, SubscriptionTable

pytestmark = pytest.mark.integration

JAN_31 = datetime(2026, 1, 31, 10, 0, tzinfo=UTC)
FEB_28 = datetime(2026, 2, 28, 10, 0, tzinfo=UTC)
MAR_31 = datetime(2026, 3, 31, 10, 0, tzinfo=UTC)


async def _invoice_numbers(session, subscription_id: str) -> list[str]:
    result = await session.execute(
        select(InvoiceTable.invoice_number)
        .where(InvoiceTable.subscription_id == subscription_id)
        .order_by(InvoiceTable.invoice_number)
    )
    return list(result.scalars().all())


class TestPlans:
    async def test_new_version_per_code(self, subscription_manager, plan_factory):
        first = await plan_factory()
        second = await plan_factory(base_price=Decimal("1199"))

        assert (first.version, second.version) == (1, 2)
        assert second.code == first.code
        assert (await subscription_manager.get_plan(first.plan_id)).base_price == Decimal("999.00")

    async def test_deactivate_plan(self, subscription_manager, plan_factory, audit_logger):
        plan = await plan_factory()
        deactivated = await subscription_manager.deactivate_plan(plan.plan_id)

        assert deactivated.is_active is False
        assert "plan.deactivated" in audit_logger.actions()

    async def test_invalid_plans(self, plan_factory):
        with pytest.raises(ValidationError, match="cannot be negative"):
            await plan_factory(base_price=Decimal("-1"))
        with pytest.raises(ValidationError, match="Unsupported billing period"):
            await plan_factory(billing_period="weekly")


class TestCreateSubscription:
    async def test_active_subscription_is_invoiced(
        self, subscribed_tenant, event_bus, audit_logger, now
    ):
        subscription = subscribed_tenant.subscription

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.current_period_start == now
        assert subscription.current_period_end == datetime(2026, 2, 15, 9, 30, tzinfo=UTC)
        assert subscription.next_billing_date == subscription.current_period_end
        assert subscription.trial_end is None
        assert subscription.payment_gateway == "mock"
        assert subscribed_tenant.invoice.subscription_id == subscription.subscription_id

        [created] = event_bus.of_type(BillingEvents.SUBSCRIPTION_CREATED)
        assert created.payload["subscription_id"] == subscription.subscription_id
        assert "subscription.created" in audit_logger.actions()

    async def test_trial_subscription_is_not_invoiced(
        self, subscription_manager, tenant_factory, plan_factory, event_bus, now
    ):
        tenant = await tenant_factory()
        plan = await plan_factory(trial_days=14)

        subscription = await subscription_manager.create_subscription(
            tenant.tenant_id, plan.plan_id, "owner@tenant.example", "mock", now=now
        )

        assert subscription.status == SubscriptionStatus.TRIAL
        assert subscription.trial_start == now
        assert subscription.trial_end == now + timedelta(days=14)
        assert subscription.next_billing_date == subscription.trial_end
        assert event_bus.of_type(BillingEvents.INVOICE_CREATED) == []

    async def test_trial_override(
        self, subscription_manager, tenant_factory, plan_factory, event_bus, now
    ):
        tenant = await tenant_factory()
        plan = await plan_factory(trial_days=14)

        subscription = await subscription_manager.create_subscription(
            tenant.tenant_id,
            plan.plan_id,
            "owner@tenant.example",
            "mock",
            trial_days_override=0,
            now=now,
        )

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert len(event_bus.of_type(BillingEvents.INVOICE_CREATED)) == 1

    async def test_one_live_subscription_per_tenant(
        self, subscription_manager, subscribed_tenant, plan_factory, now
    ):
        other_plan = await plan_factory(code="pharmacy-lite", base_price=Decimal("499"))

        with pytest.raises(ValidationError, match="already has an active subscription"):
            await subscription_manager.create_subscription(
                subscribed_tenant.tenant_id, other_plan.plan_id, None, "mock", now=now
            )

    async def test_inactive_plan_rejected(
        self, subscription_manager, tenant_factory, plan_factory
    ):
        tenant = await tenant_factory()
        plan = await plan_factory()
        await subscription_manager.deactivate_plan(plan.plan_id)

        with pytest.raises(ValidationError, match="not found or inactive"):
            await subscription_manager.create_subscription(
                tenant.tenant_id, plan.plan_id, None, "mock"
            )

    async def test_unknown_tenant_rejected(self, subscription_manager, plan_factory):
        plan = await plan_factory()

        with pytest.raises(ValidationError, match="billing profile not found"):
            await subscription_manager.create_subscription("missing", plan.plan_id, None, "mock")

    async def test_lookup_is_tenant_scoped(self, subscription_manager, subscribed_tenant):
        with pytest.raises(SubscriptionNotFoundError):
            await subscription_manager.get_subscription(
                "someone-else", subscribed_tenant.subscription.subscription_id
            )

        current = await subscription_manager.get_current_subscription(subscribed_tenant.tenant_id)
        assert current.subscription_id == subscribed_tenant.subscription.subscription_id


class TestRenewal:
    async def test_month_end_anchor_survives_february(
        self, async_db_session, subscription_manager, subscribed_tenant_factory, event_bus
    ):
        subscribed = await subscribed_tenant_factory(at=JAN_31)
        subscription_id = subscribed.subscription.subscription_id
        assert subscribed.subscription.current_period_end == FEB_28

        not_due = await subscription_manager.renew_subscriptions(now=FEB_28 - timedelta(hours=1))
        assert not_due.processed == 0

        first = await subscription_manager.renew_subscriptions(now=FEB_28)
        assert first.processed == 1
        renewed = await subscription_manager.get_subscription(subscribed.tenant_id, subscription_id)
        assert renewed.current_period_start == FEB_28
        assert renewed.current_period_end == MAR_31
        assert renewed.next_billing_date == MAR_31
        assert renewed.billing_anchor_day == 31

        second = await subscription_manager.renew_subscriptions(now=MAR_31)
        assert second.processed == 1
        renewed = await subscription_manager.get_subscription(subscribed.tenant_id, subscription_id)
        assert renewed.current_period_end == datetime(2026, 4, 30, 10, 0, tzinfo=UTC)

        assert await _invoice_numbers(async_db_session, subscription_id) == [
            "INV-2026-000001",
            "INV-2026-000002",
            "INV-2026-000003",
        ]
        assert len(event_bus.of_type(BillingEvents.SUBSCRIPTION_RENEWED)) == 2

    async def test_renewal_invoice_covers_next_period(
        self, subscription_manager, invoice_generator, subscribed_tenant
    ):
        due = subscribed_tenant.subscription.next_billing_date
        result = await subscription_manager.renew_subscriptions(now=due)

        invoice = await invoice_generator.get_invoice(
            subscribed_tenant.tenant_id, result.invoice_ids[0]
        )
        assert invoice.billing_reason == BillingReason.RENEWAL
        assert invoice.period_start == due
        assert invoice.period_end == datetime(2026, 3, 15, 9, 30, tzinfo=UTC)
        assert invoice.total_amount == Decimal("1178.82")

    async def test_rerun_reuses_period_invoice(
        self, async_db_session, subscription_manager, subscribed_tenant, event_bus
    ):
        """A renewal retried after the invoice was written does not invoice twice."""
        subscription = subscribed_tenant.subscription
        due = subscription.next_billing_date
        first = await subscription_manager.renew_subscriptions(now=due)

        # Put the subscription back as if the period advance had been lost
        await async_db_session.execute(
            update(SubscriptionTable)
            .where(SubscriptionTable.subscription_id == subscription.subscription_id)
            .values(
                current_period_start=subscription.current_period_start,
                current_period_end=subscription.current_period_end,
                next_billing_date=due,
            )
        )
        await async_db_session.commit()

        second = await subscription_manager.renew_subscriptions(now=due)

        assert second.processed == 1
        assert second.invoice_ids == first.invoice_ids
        assert len(event_bus.of_type(BillingEvents.INVOICE_CREATED)) == 2
        assert len(await _invoice_numbers(async_db_session, subscription.subscription_id)) == 2

    async def test_renewal_bills_usage_of_closing_period(
        self, subscription_manager, invoice_generator, usage_meter, subscribed_tenant, now
    ):
        tenant_id = subscribed_tenant.tenant_id
        await usage_meter.configure_meter(tenant_id, "prescriptions", Decimal("2"), Decimal("100"))
        await usage_meter.record_usage(
            tenant_id, "prescriptions", 150, recorded_at=now + timedelta(days=3)
        )

        result = await subscription_manager.renew_subscriptions(
            now=subscribed_tenant.subscription.next_billing_date
        )

        invoice = await invoice_generator.get_invoice_with_items(tenant_id, result.invoice_ids[0])
        assert invoice.invoice.subtotal == Decimal("1099.00")
        assert invoice.invoice.cgst_amount == Decimal("98.91")
        assert invoice.invoice.sgst_amount == Decimal("98.91")
        assert invoice.invoice.total_amount == Decimal("1296.82")
        assert [item.item_type.value for item in invoice.line_items] == ["plan", "usage"]

    async def test_renewal_without_usage_when_disabled(
        self,
        billing_config,
        subscription_manager,
        invoice_generator,
        usage_meter,
        subscribed_tenant,
        now,
    ):
        billing_config.invoice.renewal_includes_usage = False
        tenant_id = subscribed_tenant.tenant_id
        await usage_meter.configure_meter(tenant_id, "prescriptions", Decimal("2"))
        await usage_meter.record_usage(tenant_id, "prescriptions", 10, recorded_at=now)

        result = await subscription_manager.renew_subscriptions(
            now=subscribed_tenant.subscription.next_billing_date
        )

        invoice = await invoice_generator.get_invoice(tenant_id, result.invoice_ids[0])
        assert invoice.subtotal == Decimal("999.00")

    async def test_unexpected_error_is_collected(
        self, monkeypatch, subscription_manager, invoice_generator, subscribed_tenant_factory
    ):
        broken = await subscribed_tenant_factory()
        healthy = await subscribed_tenant_factory(name="Gupta Medicals")
        issue_invoice = invoice_generator.issue_invoice

        async def issue_or_fail(tx, **kwargs):
            if kwargs["subscription"].subscription_id == broken.subscription.subscription_id:
                raise RuntimeError("template missing")
            return await issue_invoice(tx, **kwargs)

        monkeypatch.setattr(invoice_generator, "issue_invoice", issue_or_fail)

        due = healthy.subscription.next_billing_date
        result = await subscription_manager.renew_subscriptions(now=due)

        assert result.processed == 1
        [failure] = result.failures
        assert failure.resource_id == broken.subscription.subscription_id
        assert failure.error_code == "INTERNAL_ERROR"
        assert failure.message == "RuntimeError: template missing"
        assert not failure.retryable
        untouched = await subscription_manager.get_subscription(
            broken.tenant_id, broken.subscription.subscription_id
        )
        assert untouched.next_billing_date == due


class TestCancellation:
    async def test_immediate_cancel(self, subscription_manager, subscribed_tenant, event_bus, now):
        subscription_id = subscribed_tenant.subscription.subscription_id

        cancelled = await subscription_manager.cancel_subscription(
            subscribed_tenant.tenant_id, subscription_id, reason="Closing store", now=now
        )

        assert cancelled.status == SubscriptionStatus.CANCELLED
        assert cancelled.cancelled_at == now
        assert cancelled.auto_renew is False
        assert cancelled.cancellation_reason == "Closing store"
        [event] = event_bus.of_type(BillingEvents.SUBSCRIPTION_CANCELLED)
        assert event.payload["reason"] == "Closing store"

        with pytest.raises(ValidationError, match="Subscription is already cancelled"):
            await subscription_manager.cancel_subscription(
                subscribed_tenant.tenant_id, subscription_id, now=now
            )

        result = await subscription_manager.renew_subscriptions(
            now=subscribed_tenant.subscription.next_billing_date
        )
        assert result.processed == 0
        assert await subscription_manager.get_current_subscription(subscribed_tenant.tenant_id) is None

    async def test_cancel_at_period_end(
        self, async_db_session, subscription_manager, subscribed_tenant, event_bus, now
    ):
        subscription = subscribed_tenant.subscription

        scheduled = await subscription_manager.cancel_subscription(
            subscribed_tenant.tenant_id, subscription.subscription_id, immediate=False, now=now
        )
        assert scheduled.status == SubscriptionStatus.ACTIVE
        assert scheduled.cancel_at_period_end is True
        assert event_bus.of_type(BillingEvents.SUBSCRIPTION_CANCELLED) == []

        reminders = await subscription_manager.send_renewal_reminders(
            now=subscription.current_period_end - timedelta(days=2)
        )
        assert reminders == 0

        result = await subscription_manager.renew_subscriptions(now=subscription.current_period_end)

        assert result.cancelled == 1
        assert result.processed == 0
        closed = await subscription_manager.get_subscription(
            subscribed_tenant.tenant_id, subscription.subscription_id
        )
        assert closed.status == SubscriptionStatus.CANCELLED
        assert len(event_bus.of_type(BillingEvents.SUBSCRIPTION_CANCELLED)) == 1
        assert len(await _invoice_numbers(async_db_session, subscription.subscription_id)) == 1


class TestExpiry:
    async def test_ended_trial_expires(
        self, subscription_manager, tenant_factory, plan_factory, event_bus, now
    ):
        tenant = await tenant_factory()
        plan = await plan_factory(trial_days=14)
        trial = await subscription_manager.create_subscription(
            tenant.tenant_id, plan.plan_id, "owner@tenant.example", "mock", now=now
        )

        early = await subscription_manager.expire_subscriptions(now=now + timedelta(days=13))
        assert early.expired == 0

        result = await subscription_manager.expire_subscriptions(now=now + timedelta(days=14))

        assert result.expired == 1
        expired = await subscription_manager.get_subscription(
            tenant.tenant_id, trial.subscription_id
        )
        assert expired.status == SubscriptionStatus.EXPIRED
        assert len(event_bus.of_type(BillingEvents.SUBSCRIPTION_EXPIRED)) == 1

    async def test_non_renewing_subscription_expires(
        self, async_db_session, subscription_manager, subscribed_tenant
    ):
        subscription = subscribed_tenant.subscription
        await async_db_session.execute(
            update(SubscriptionTable)
            .where(SubscriptionTable.subscription_id == subscription.subscription_id)
            .values(auto_renew=False)
        )
        await async_db_session.commit()

        renewal = await subscription_manager.renew_subscriptions(
            now=subscription.current_period_end
        )
        assert renewal.processed == 0

        result = await subscription_manager.expire_subscriptions(now=subscription.current_period_end)
        assert result.expired == 1

    async def test_auto_renewing_subscription_does_not_expire(
        self, subscription_manager, subscribed_tenant
    ):
        result = await subscription_manager.expire_subscriptions(
            now=subscribed_tenant.subscription.current_period_end + timedelta(days=1)
        )
        assert result.expired == 0


class TestReminders:
    async def test_renewal_reminder_window(self, subscription_manager, subscribed_tenant, event_bus):
        due = subscribed_tenant.subscription.next_billing_date

        assert await subscription_manager.send_renewal_reminders(now=due - timedelta(days=10)) == 0
        assert await subscription_manager.send_renewal_reminders(now=due - timedelta(days=2)) == 1

        [event] = event_bus.of_type(BillingEvents.RENEWAL_REMINDER)
        assert event.payload["amount"] == "999.00"
        assert event.payload["subscription_id"] == subscribed_tenant.subscription.subscription_id

    async def test_custom_reminder_horizon(self, subscription_manager, subscribed_tenant):
        due = subscribed_tenant.subscription.next_billing_date
        assert (
            await subscription_manager.send_renewal_reminders(
                now=due - timedelta(days=10), days_ahead=14
            )
            == 1
        )

    async def test_zero_day_horizon_sends_nothing(self, subscription_manager, subscribed_tenant):
        due = subscribed_tenant.subscription.next_billing_date
        now = due - timedelta(days=2)

        assert await subscription_manager.send_renewal_reminders(now=now, days_ahead=0) == 0
        assert await subscription_manager.send_renewal_reminders(now=now) == 1

    async def test_trial_ending_reminder(
        self, subscription_manager, tenant_factory, plan_factory, event_bus, now
    ):
        tenant = await tenant_factory()
        plan = await plan_factory(trial_days=14)
        await subscription_manager.create_subscription(
            tenant.tenant_id, plan.plan_id, "owner@tenant.example", "mock", now=now
        )

        assert await subscription_manager.send_trial_ending_reminders(now=now) == 0
        assert (
            await subscription_manager.send_trial_ending_reminders(now=now + timedelta(days=12))
            == 1
        )
        [event] = event_bus.of_type(BillingEvents.TRIAL_ENDING)
        assert event.payload["trial_end"] == (now + timedelta(days=14)).isoformat()
