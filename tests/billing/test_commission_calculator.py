"""
Tests for partner terms, commission accrual and payouts.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from pulss.platform.billing.commissions import compute_commission
from pulss.platform.billing.enums import CommissionStatus, CommissionType, TransactionStatus
from pulss.platform.billing.events import BillingEvents
from pulss.platform.billing.exceptions import (
    CommissionNotFoundError,
    PartnerNotFoundError,
    ValidationError,
)
from pulss.platform.billing.schemas import PaymentData

pytestmark = pytest.mark.integration


def _success(amount: str = "1178.82", gateway_transaction_id: str = "pay_001") -> PaymentData:
    return PaymentData(
        amount=Decimal(amount),
        status=TransactionStatus.SUCCESS,
        payment_gateway="mock",
        gateway_transaction_id=gateway_transaction_id,
    )


@pytest_asyncio.fixture
async def partner(commission_calculator):
    return await commission_calculator.create_partner(
        "MedSupply Resellers", CommissionType.PERCENTAGE, Decimal("10"), email="ops@medsupply.example"
    )


@pytest_asyncio.fixture
async def paid_transaction(payment_service, subscribed_tenant, now):
    """A successful payment made before any partner is linked."""
    return await payment_service.process_payment(
        subscribed_tenant.tenant_id, subscribed_tenant.invoice.invoice_id, _success(), now=now
    )


class TestComputeCommission:
    def test_percentage(self):
        amount, rate = compute_commission(CommissionType.PERCENTAGE, Decimal("10"), Decimal("1178.82"))
        assert amount == Decimal("117.88")
        assert rate == Decimal("10.0000")

    def test_flat(self):
        amount, rate = compute_commission("flat", Decimal("100"), Decimal("1000"))
        assert amount == Decimal("100.00")
        assert rate == Decimal("10.0000")

    def test_flat_on_zero_base(self):
        amount, rate = compute_commission(CommissionType.FLAT, Decimal("100"), Decimal("0"))
        assert amount == Decimal("100.00")
        assert rate == Decimal("0.0000")


class TestPartners:
    async def test_invalid_terms(self, commission_calculator):
        with pytest.raises(ValidationError, match="cannot be negative"):
            await commission_calculator.create_partner(
                "Broken", CommissionType.FLAT, Decimal("-1")
            )
        with pytest.raises(ValidationError, match="cannot exceed 100"):
            await commission_calculator.create_partner(
                "Greedy", CommissionType.PERCENTAGE, Decimal("150")
            )

    async def test_link_unknown_partner(self, commission_calculator, subscribed_tenant):
        with pytest.raises(PartnerNotFoundError):
            await commission_calculator.link_partner_to_tenant("missing", subscribed_tenant.tenant_id)

    async def test_relinking_updates_terms(self, commission_calculator, partner, subscribed_tenant):
        first = await commission_calculator.link_partner_to_tenant(
            partner.partner_id, subscribed_tenant.tenant_id
        )
        second = await commission_calculator.link_partner_to_tenant(
            partner.partner_id,
            subscribed_tenant.tenant_id,
            CommissionType.FLAT,
            Decimal("200"),
        )

        assert second.link_id == first.link_id
        assert second.custom_commission_type == CommissionType.FLAT
        assert second.custom_commission_value == Decimal("200")


class TestAccrual:
    async def test_percentage_commission(
        self, commission_calculator, partner, paid_transaction, subscribed_tenant, event_bus, audit_logger
    ):
        await commission_calculator.link_partner_to_tenant(
            partner.partner_id, subscribed_tenant.tenant_id
        )

        commission = await commission_calculator.calculate_commission_for_payment(
            paid_transaction.transaction_id
        )

        assert commission.partner_id == partner.partner_id
        assert commission.subscription_id == subscribed_tenant.subscription.subscription_id
        assert commission.base_amount == Decimal("1178.82")
        assert commission.commission_amount == Decimal("117.88")
        assert commission.commission_rate == Decimal("10.0000")
        assert commission.status == CommissionStatus.PENDING
        [event] = event_bus.of_type(BillingEvents.COMMISSION_CREATED)
        assert event.payload["commission_amount"] == "117.88"
        assert "commission.created" in audit_logger.actions()

    async def test_custom_terms_override_partner_default(
        self, commission_calculator, partner, paid_transaction, subscribed_tenant
    ):
        await commission_calculator.link_partner_to_tenant(
            partner.partner_id, subscribed_tenant.tenant_id, CommissionType.FLAT, Decimal("200")
        )

        commission = await commission_calculator.calculate_commission_for_payment(
            paid_transaction.transaction_id
        )

        assert commission.commission_type == CommissionType.FLAT
        assert commission.commission_amount == Decimal("200.00")

    async def test_no_partner_means_no_commission(self, commission_calculator, paid_transaction):
        assert (
            await commission_calculator.calculate_commission_for_payment(
                paid_transaction.transaction_id
            )
            is None
        )

    async def test_commission_accrues_once(
        self, commission_calculator, partner, paid_transaction, subscribed_tenant
    ):
        await commission_calculator.link_partner_to_tenant(
            partner.partner_id, subscribed_tenant.tenant_id
        )
        first = await commission_calculator.calculate_commission_for_payment(
            paid_transaction.transaction_id
        )
        again = await commission_calculator.calculate_commission_for_payment(
            paid_transaction.transaction_id
        )

        assert first is not None
        assert again is None

    async def test_payment_callback_accrues_commission(
        self, commission_calculator, payment_service, partner, subscribed_tenant, event_bus, now
    ):
        await commission_calculator.link_partner_to_tenant(
            partner.partner_id, subscribed_tenant.tenant_id
        )

        await payment_service.process_payment(
            subscribed_tenant.tenant_id, subscribed_tenant.invoice.invoice_id, _success(), now=now
        )

        [event] = event_bus.of_type(BillingEvents.COMMISSION_CREATED)
        assert event.payload["partner_id"] == partner.partner_id
        assert event.payload["commission_amount"] == "117.88"

    async def test_failed_payment_earns_nothing(
        self, commission_calculator, payment_service, partner, subscribed_tenant, now
    ):
        await commission_calculator.link_partner_to_tenant(
            partner.partner_id, subscribed_tenant.tenant_id
        )
        failed = await payment_service.process_payment(
            subscribed_tenant.tenant_id,
            subscribed_tenant.invoice.invoice_id,
            PaymentData(
                amount=Decimal("1178.82"),
                status=TransactionStatus.FAILED,
                payment_gateway="mock",
                gateway_transaction_id="pay_failed",
            ),
            now=now,
        )

        assert await commission_calculator.calculate_commission_for_payment(failed.transaction_id) is None


class TestPendingSweep:
    async def test_sweep_picks_up_recent_payments(
        self, commission_calculator, partner, paid_transaction, subscribed_tenant, now
    ):
        await commission_calculator.link_partner_to_tenant(
            partner.partner_id, subscribed_tenant.tenant_id
        )

        result = await commission_calculator.calculate_pending_commissions(now=now + timedelta(days=1))

        assert result.processed == 1
        assert result.failed == 0
        rerun = await commission_calculator.calculate_pending_commissions(now=now + timedelta(days=1))
        assert rerun.processed == 0

    async def test_sweep_ignores_payments_outside_lookback(
        self, commission_calculator, partner, paid_transaction, subscribed_tenant, now
    ):
        await commission_calculator.link_partner_to_tenant(
            partner.partner_id, subscribed_tenant.tenant_id
        )

        result = await commission_calculator.calculate_pending_commissions(now=now + timedelta(days=8))

        assert result.processed == 0
        assert result.skipped == 0

    async def test_sweep_skips_tenants_without_partner(
        self, commission_calculator, paid_transaction, now
    ):
        result = await commission_calculator.calculate_pending_commissions(now=now)

        assert result.processed == 0
        assert result.skipped == 1


class TestPayouts:
    @pytest_asyncio.fixture
    async def commission(self, commission_calculator, partner, paid_transaction, subscribed_tenant):
        await commission_calculator.link_partner_to_tenant(
            partner.partner_id, subscribed_tenant.tenant_id
        )
        return await commission_calculator.calculate_commission_for_payment(
            paid_transaction.transaction_id
        )

    async def test_approve_then_pay(self, commission_calculator, commission, now):
        approved = await commission_calculator.update_commission_status(
            commission.commission_id, CommissionStatus.APPROVED, now=now
        )
        assert approved.status == CommissionStatus.APPROVED
        assert approved.payout_date is None

        paid = await commission_calculator.update_commission_status(
            commission.commission_id, CommissionStatus.PAID, payout_reference="NEFT-0042", now=now
        )

        assert paid.status == CommissionStatus.PAID
        assert paid.payout_date == now
        assert paid.payout_reference == "NEFT-0042"

    async def test_final_states_cannot_move(self, commission_calculator, commission, now):
        await commission_calculator.update_commission_status(
            commission.commission_id, CommissionStatus.PAID, now=now
        )

        with pytest.raises(ValidationError, match="Cannot move commission from paid to approved"):
            await commission_calculator.update_commission_status(
                commission.commission_id, CommissionStatus.APPROVED, now=now
            )

        assert (
            await commission_calculator.get_commission(commission.commission_id)
        ).status == CommissionStatus.PAID

    async def test_unknown_commission(self, commission_calculator):
        with pytest.raises(CommissionNotFoundError):
            await commission_calculator.get_commission("missing")

    async def test_partner_summary(self, commission_calculator, partner, commission, now):
        await commission_calculator.update_commission_status(
            commission.commission_id, CommissionStatus.APPROVED, now=now
        )

        summary = await commission_calculator.get_partner_summary(partner.partner_id)

        assert summary["approved"] == Decimal("117.88")
        assert summary["pending"] == Decimal("0")
        assert set(summary) == {status.value for status in CommissionStatus}

    async def test_list_partner_commissions(self, commission_calculator, partner, commission, now):
        listed = await commission_calculator.list_partner_commissions(partner.partner_id)
        assert [c.commission_id for c in listed] == [commission.commission_id]
        assert listed[0].created_at is not None

        await commission_calculator.update_commission_status(
            commission.commission_id, CommissionStatus.APPROVED, now=now
        )

        assert await commission_calculator.list_partner_commissions(
            partner.partner_id, status=CommissionStatus.PENDING
        ) == []
        [approved] = await commission_calculator.list_partner_commissions(
            partner.partner_id, status="approved"
        )
        assert approved.status == CommissionStatus.APPROVED
        assert await commission_calculator.list_partner_commissions(
            partner.partner_id, end=listed[0].created_at - timedelta(days=1)
        ) == []

    async def test_list_for_unknown_partner(self, commission_calculator):
        with pytest.raises(PartnerNotFoundError):
            await commission_calculator.list_partner_commissions("missing")
