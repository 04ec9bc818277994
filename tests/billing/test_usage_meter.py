"""
Tests for usage metering and overage pricing.
"""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from pulss.platform.billing.exceptions import ConcurrencyConflict, ValidationError
from pulss.platform.billing.models import UsageEventTable
from pulss.platform.billing.schemas import UsageRecordInput

pytestmark = pytest.mark.integration

WINDOW_START = datetime(2026, 1, 1, tzinfo=UTC)
WINDOW_END = datetime(2026, 2, 1, tzinfo=UTC)
IN_WINDOW = datetime(2026, 1, 10, 12, 0, tzinfo=UTC)


class TestMeters:
    async def test_configure_and_reprice_meter(self, usage_meter, audit_logger):
        meter = await usage_meter.configure_meter(
            "tenant-1", "prescriptions", Decimal("2.00"), Decimal("100"), unit_name="orders"
        )
        assert meter.unit_price == Decimal("2.00")
        assert meter.included_units == Decimal("100")

        repriced = await usage_meter.configure_meter("tenant-1", "prescriptions", Decimal("1.50"))
        assert repriced.meter_id == meter.meter_id
        assert repriced.unit_price == Decimal("1.50")
        assert repriced.unit_name == "orders"

        fetched = await usage_meter.get_meter("tenant-1", "prescriptions")
        assert fetched.unit_price == Decimal("1.50")

    async def test_negative_price_rejected(self, usage_meter):
        with pytest.raises(ValidationError, match="cannot be negative"):
            await usage_meter.configure_meter("tenant-1", "sms", Decimal("-1"))

    async def test_record_usage_creates_unpriced_meter(self, usage_meter):
        event = await usage_meter.record_usage(
            "tenant-1", "sms", 25, {"campaign": "refill"}, recorded_at=IN_WINDOW
        )

        assert event.quantity == Decimal("25")
        assert event.is_billed is False
        assert event.event_metadata == {"campaign": "refill"}
        meter = await usage_meter.get_meter("tenant-1", "sms")
        assert meter.unit_price is None

    @pytest.mark.parametrize("quantity", [0, -5, "0"])
    async def test_quantity_must_be_positive(self, usage_meter, quantity):
        with pytest.raises(ValidationError, match="Usage quantity must be positive"):
            await usage_meter.record_usage("tenant-1", "sms", quantity)


class TestUsageCharges:
    async def test_overage_beyond_allowance(self, usage_meter):
        await usage_meter.configure_meter("tenant-1", "prescriptions", Decimal("2"), Decimal("100"))
        await usage_meter.record_usage("tenant-1", "prescriptions", 60, recorded_at=IN_WINDOW)
        await usage_meter.record_usage("tenant-1", "prescriptions", 90, recorded_at=IN_WINDOW)
        # Window end is exclusive
        await usage_meter.record_usage("tenant-1", "prescriptions", 500, recorded_at=WINDOW_END)

        charges = await usage_meter.calculate_usage_charges("tenant-1", WINDOW_START, WINDOW_END)

        [line] = charges.breakdown
        assert line.total_quantity == Decimal("150")
        assert line.billable_quantity == Decimal("50")
        assert line.charge == Decimal("100.00")
        assert len(line.event_ids) == 2
        assert charges.total == Decimal("100.00")

    async def test_usage_within_allowance_is_free(self, usage_meter):
        await usage_meter.configure_meter("tenant-1", "prescriptions", Decimal("2"), Decimal("100"))
        await usage_meter.record_usage("tenant-1", "prescriptions", 40, recorded_at=IN_WINDOW)

        charges = await usage_meter.calculate_usage_charges("tenant-1", WINDOW_START, WINDOW_END)

        assert charges.total == Decimal("0.00")
        assert charges.charged_lines == []
        assert len(charges.event_ids) == 1

    async def test_unpriced_meter_is_skipped(self, usage_meter):
        await usage_meter.record_usage("tenant-1", "sms", 1000, recorded_at=IN_WINDOW)

        charges = await usage_meter.calculate_usage_charges("tenant-1", WINDOW_START, WINDOW_END)

        assert charges.breakdown == []
        assert charges.total == Decimal("0")
        assert await usage_meter.tenants_with_unbilled_usage(WINDOW_START, WINDOW_END) == []

    async def test_billed_usage_consumes_allowance(
        self, async_db_session, usage_meter, subscribed_tenant
    ):
        """A second billing of the same window does not grant the allowance again."""
        tenant_id = subscribed_tenant.tenant_id
        invoice_id = subscribed_tenant.invoice.invoice_id
        await usage_meter.configure_meter(tenant_id, "prescriptions", Decimal("2"), Decimal("100"))
        await usage_meter.record_usage(tenant_id, "prescriptions", 80, recorded_at=IN_WINDOW)

        first = await usage_meter.calculate_usage_charges(tenant_id, WINDOW_START, WINDOW_END)
        assert first.total == Decimal("0.00")
        assert await usage_meter.mark_usage_billed(first.event_ids, invoice_id) == 1
        await async_db_session.commit()

        await usage_meter.record_usage(tenant_id, "prescriptions", 40, recorded_at=IN_WINDOW)
        second = await usage_meter.calculate_usage_charges(tenant_id, WINDOW_START, WINDOW_END)

        [line] = second.breakdown
        assert line.total_quantity == Decimal("40")
        assert line.billable_quantity == Decimal("20")
        assert second.total == Decimal("40.00")

    async def test_marking_twice_conflicts(self, async_db_session, usage_meter, subscribed_tenant):
        tenant_id = subscribed_tenant.tenant_id
        invoice_id = subscribed_tenant.invoice.invoice_id
        await usage_meter.configure_meter(tenant_id, "prescriptions", Decimal("2"))
        event = await usage_meter.record_usage(
            tenant_id, "prescriptions", 5, recorded_at=IN_WINDOW
        )

        await usage_meter.mark_usage_billed([event.event_id], invoice_id)
        await async_db_session.commit()

        with pytest.raises(ConcurrencyConflict):
            await usage_meter.mark_usage_billed([event.event_id], invoice_id)
        await async_db_session.rollback()

        result = await async_db_session.execute(
            select(UsageEventTable.is_billed, UsageEventTable.billed_in_invoice_id).where(
                UsageEventTable.event_id == event.event_id
            )
        )
        assert tuple(result.one()) == (True, invoice_id)

    async def test_tenants_with_unbilled_usage(self, usage_meter):
        for tenant_id in ("tenant-b", "tenant-a"):
            await usage_meter.configure_meter(tenant_id, "prescriptions", Decimal("1"))
            await usage_meter.record_usage(tenant_id, "prescriptions", 3, recorded_at=IN_WINDOW)

        assert await usage_meter.tenants_with_unbilled_usage(WINDOW_START, WINDOW_END) == [
            "tenant-a",
            "tenant-b",
        ]

    async def test_mark_nothing(self, usage_meter):
        assert await usage_meter.mark_usage_billed([], "inv-1") == 0


class TestBatchRecording:
    async def test_batch_records_every_entry(self, usage_meter):
        events = await usage_meter.record_usage_batch(
            "tenant-1",
            [
                UsageRecordInput(meter_type="sms", quantity=Decimal("10"), recorded_at=IN_WINDOW),
                UsageRecordInput(
                    meter_type="prescriptions",
                    quantity=Decimal("3"),
                    metadata={"store": "andheri"},
                    recorded_at=IN_WINDOW,
                ),
            ],
        )

        assert [e.meter_type for e in events] == ["sms", "prescriptions"]
        assert events[1].event_metadata == {"store": "andheri"}
        assert len(await usage_meter.list_usage_events("tenant-1")) == 2

    async def test_empty_batch_rejected(self, usage_meter):
        with pytest.raises(ValidationError, match="Usage records required"):
            await usage_meter.record_usage_batch("tenant-1", [])

    async def test_bad_entry_rejects_whole_batch(self, usage_meter):
        with pytest.raises(ValidationError, match="Meter type is required"):
            await usage_meter.record_usage_batch(
                "tenant-1",
                [
                    UsageRecordInput(meter_type="sms", quantity=Decimal("10")),
                    UsageRecordInput(meter_type="   ", quantity=Decimal("1")),
                ],
            )

        assert await usage_meter.list_usage_events("tenant-1") == []
        assert await usage_meter.get_meter("tenant-1", "sms") is None


class TestUsageReporting:
    async def test_list_filters(self, usage_meter):
        await usage_meter.record_usage("tenant-1", "sms", 1, recorded_at=IN_WINDOW)
        await usage_meter.record_usage(
            "tenant-1", "sms", 2, recorded_at=datetime(2026, 1, 20, tzinfo=UTC)
        )
        await usage_meter.record_usage("tenant-1", "prescriptions", 5, recorded_at=IN_WINDOW)
        await usage_meter.record_usage("tenant-2", "sms", 9, recorded_at=IN_WINDOW)

        sms = await usage_meter.list_usage_events("tenant-1", meter_type="sms")
        assert [e.quantity for e in sms] == [Decimal("2"), Decimal("1")]

        early = await usage_meter.list_usage_events(
            "tenant-1", end=datetime(2026, 1, 15, tzinfo=UTC)
        )
        assert {e.meter_type for e in early} == {"sms", "prescriptions"}
        assert len(early) == 2

        assert len(await usage_meter.list_usage_events("tenant-1", limit=1, offset=2)) == 1
        assert await usage_meter.list_usage_events("tenant-1", is_billed=True) == []

    async def test_summary_splits_billed_and_unbilled(
        self, async_db_session, usage_meter, subscribed_tenant
    ):
        tenant_id = subscribed_tenant.tenant_id
        await usage_meter.configure_meter(
            tenant_id, "prescriptions", Decimal("2"), unit_name="orders"
        )
        billed = await usage_meter.record_usage(
            tenant_id, "prescriptions", 30, recorded_at=IN_WINDOW
        )
        await usage_meter.record_usage(tenant_id, "prescriptions", 12, recorded_at=IN_WINDOW)
        await usage_meter.record_usage(tenant_id, "sms", 4, recorded_at=IN_WINDOW)
        await usage_meter.record_usage(
            tenant_id, "sms", 100, recorded_at=datetime(2026, 3, 1, tzinfo=UTC)
        )
        await usage_meter.mark_usage_billed(
            [billed.event_id], subscribed_tenant.invoice.invoice_id
        )
        await async_db_session.commit()

        summary = await usage_meter.get_usage_summary(tenant_id, WINDOW_START, WINDOW_END)

        assert [m.meter_type for m in summary.meters] == ["prescriptions", "sms"]
        prescriptions = summary.for_meter("prescriptions")
        assert prescriptions.unit_name == "orders"
        assert prescriptions.event_count == 2
        assert prescriptions.total_quantity == Decimal("42")
        assert prescriptions.billed_quantity == Decimal("30")
        assert prescriptions.unbilled_quantity == Decimal("12")
        assert prescriptions.min_quantity == Decimal("12")
        assert prescriptions.max_quantity == Decimal("30")
        assert summary.for_meter("sms").total_quantity == Decimal("4")

        everything = await usage_meter.get_usage_summary(tenant_id)
        assert everything.for_meter("sms").event_count == 2
        assert everything.for_meter("storage") is None
