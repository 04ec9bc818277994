"""
Billing test fixtures.

Services share one session, one recording event bus and one recording audit
sink, so tests can assert on published events and audit entries directly.
All factories commit: billing services roll back on error and would otherwise
discard fixture rows together with the failed write.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pulss.platform.billing.commissions import CommissionCalculator
from pulss.platform.billing.config import BillingConfig, SupplierConfig, set_billing_config
from pulss.platform.billing.coupons import CouponEngine
from pulss.platform.billing.enums import BillingReason
from pulss.platform.billing.gst import GSTFormatter
from pulss.platform.billing.invoicing import InvoiceGenerator
from pulss.platform.billing.models import InvoiceTable, TenantTable
from pulss.platform.billing.payments import MockPaymentGateway, PaymentReconciliationService
from pulss.platform.billing.schemas import InvoiceRecord, PlanRecord, SubscriptionRecord
from pulss.platform.billing.subscriptions import SubscriptionManager
from pulss.platform.billing.usage import UsageMeterService
from pulss.platform.events import Event, EventBus, set_event_bus

NOW = datetime(2026, 1, 15, 9, 30, tzinfo=UTC)
SUPPLIER_GSTIN = "29AAAAA0000A1Z5"


class RecordingEventBus(EventBus):
    """Event bus that keeps every published event."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[Event] = []

        async def record(event: Event) -> None:
            self.events.append(event)

        self.subscribe("*", record)

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]


class RecordingAuditLogger:
    """Audit sink that keeps every entry."""

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    async def log_audit_event(
        self,
        tenant_id: str | None,
        action: str,
        resource_type: str,
        resource_id: str | None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        self.entries.append(
            {
                "tenant_id": tenant_id,
                "action": action,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "old_values": old_values,
                "new_values": new_values,
            }
        )

    def actions(self) -> list[str]:
        return [entry["action"] for entry in self.entries]


@dataclass
class SubscribedTenant:
    """A tenant with a live subscription and its first invoice."""

    tenant: TenantTable
    plan: PlanRecord
    subscription: SubscriptionRecord
    invoice: InvoiceRecord

    @property
    def tenant_id(self) -> str:
        return self.tenant.tenant_id


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture(autouse=True)
def billing_config():
    """Supplier registered in Karnataka, 18% GST, 7-day payment terms."""
    config = BillingConfig(
        supplier=SupplierConfig(
            name="Pulss Technologies Pvt Ltd",
            gstin=SUPPLIER_GSTIN,
            state="Karnataka",
            address="12 MG Road, Bengaluru 560001",
            email="billing@pulss.example",
        )
    )
    set_billing_config(config)
    yield config
    set_billing_config(None)


@pytest.fixture(autouse=True)
def event_bus():
    bus = RecordingEventBus()
    set_event_bus(bus)
    yield bus
    set_event_bus(None)


@pytest.fixture
def audit_logger() -> RecordingAuditLogger:
    return RecordingAuditLogger()


@pytest.fixture
def mock_gateway() -> MockPaymentGateway:
    return MockPaymentGateway(secret="test_secret")


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def usage_meter(async_db_session: AsyncSession, billing_config) -> UsageMeterService:
    return UsageMeterService(async_db_session, billing_config)


@pytest.fixture
def invoice_generator(
    async_db_session: AsyncSession, billing_config, usage_meter, event_bus, audit_logger
) -> InvoiceGenerator:
    return InvoiceGenerator(
        async_db_session,
        billing_config,
        usage_meter=usage_meter,
        event_bus=event_bus,
        audit_logger=audit_logger,
    )


@pytest.fixture
def subscription_manager(
    async_db_session: AsyncSession, billing_config, invoice_generator, event_bus, audit_logger
) -> SubscriptionManager:
    return SubscriptionManager(
        async_db_session,
        billing_config,
        invoice_generator=invoice_generator,
        event_bus=event_bus,
        audit_logger=audit_logger,
    )


@pytest.fixture
def coupon_engine(
    async_db_session: AsyncSession, billing_config, event_bus, audit_logger
) -> CouponEngine:
    return CouponEngine(
        async_db_session, billing_config, event_bus=event_bus, audit_logger=audit_logger
    )


@pytest.fixture
def commission_calculator(
    async_db_session: AsyncSession, billing_config, event_bus, audit_logger
) -> CommissionCalculator:
    return CommissionCalculator(
        async_db_session, billing_config, event_bus=event_bus, audit_logger=audit_logger
    )


@pytest.fixture
def gst_formatter(async_db_session: AsyncSession, billing_config, audit_logger) -> GSTFormatter:
    return GSTFormatter(async_db_session, billing_config, audit_logger=audit_logger)


@pytest.fixture
def payment_service(
    async_db_session: AsyncSession,
    billing_config,
    mock_gateway,
    commission_calculator,
    gst_formatter,
    event_bus,
    audit_logger,
) -> PaymentReconciliationService:
    return PaymentReconciliationService(
        async_db_session,
        billing_config,
        gateway=mock_gateway,
        commission_calculator=commission_calculator,
        gst_formatter=gst_formatter,
        event_bus=event_bus,
        audit_logger=audit_logger,
    )


# ============================================================================
# Factories
# ============================================================================


@pytest_asyncio.fixture
async def tenant_factory(async_db_session: AsyncSession):
    """
    Factory for billing profiles.

    Example:
        tenant = await tenant_factory(state="Maharashtra")
    """

    async def _create(
        name: str = "Sharma Pharmacy",
        state: str | None = "Karnataka",
        gstin: str | None = None,
        **kwargs: Any,
    ) -> TenantTable:
        tenant = TenantTable(
            tenant_id=str(uuid4()),
            name=name,
            business_name=kwargs.pop("business_name", f"{name} Pvt Ltd"),
            email=kwargs.pop("email", "accounts@tenant.example"),
            phone=kwargs.pop("phone", "+91 98450 00000"),
            address=kwargs.pop("address", "4th Cross, Indiranagar"),
            city=kwargs.pop("city", "Bengaluru"),
            state=state,
            pincode=kwargs.pop("pincode", "560038"),
            gstin=gstin,
            is_active=True,
            **kwargs,
        )
        async_db_session.add(tenant)
        await async_db_session.commit()
        # Detached, so a later rollback cannot expire it under the test
        async_db_session.expunge(tenant)
        return tenant

    yield _create


@pytest_asyncio.fixture
async def plan_factory(subscription_manager: SubscriptionManager):
    """Factory for published plan versions (monthly ₹999 by default)."""

    async def _create(
        code: str = "pharmacy-pro",
        name: str = "Pharmacy Pro",
        base_price: Decimal = Decimal("999"),
        billing_period: str = "monthly",
        trial_days: int = 0,
        **kwargs: Any,
    ) -> PlanRecord:
        return await subscription_manager.create_plan(
            code=code,
            name=name,
            base_price=base_price,
            billing_period=billing_period,
            trial_days=trial_days,
            **kwargs,
        )

    yield _create


@pytest_asyncio.fixture
async def subscribed_tenant_factory(
    async_db_session: AsyncSession, tenant_factory, plan_factory, subscription_manager
):
    """Tenant subscribed to a non-trial plan at ``NOW`` with its first invoice issued."""

    async def _create(
        state: str = "Karnataka",
        base_price: Decimal = Decimal("999"),
        billing_period: str = "monthly",
        at: datetime = NOW,
        **tenant_kwargs: Any,
    ) -> SubscribedTenant:
        tenant = await tenant_factory(state=state, **tenant_kwargs)
        plan = await plan_factory(base_price=base_price, billing_period=billing_period)
        subscription = await subscription_manager.create_subscription(
            tenant.tenant_id, plan.plan_id, "owner@tenant.example", "mock", now=at
        )
        result = await async_db_session.execute(
            select(InvoiceTable).where(
                InvoiceTable.subscription_id == subscription.subscription_id,
                InvoiceTable.billing_reason == BillingReason.SUBSCRIPTION_CREATE.value,
            )
        )
        invoice = InvoiceRecord.model_validate(result.scalar_one())
        return SubscribedTenant(
            tenant=tenant, plan=plan, subscription=subscription, invoice=invoice
        )

    yield _create


@pytest_asyncio.fixture
async def subscribed_tenant(subscribed_tenant_factory) -> SubscribedTenant:
    return await subscribed_tenant_factory()
