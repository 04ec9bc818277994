"""
Tests for GST invoice documents, e-invoice references, receipts and PDFs.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from pulss.platform.billing.enums import EInvoiceStatus, TransactionStatus
from pulss.platform.billing.exceptions import (
    InvoiceNotFoundError,
    TransactionNotFoundError,
    ValidationError,
)
from pulss.platform.billing.gst.service import generate_irn, tax_breakdown_for
from pulss.platform.billing.models import InvoiceTable
from pulss.platform.billing.schemas import PaymentData

pytestmark = pytest.mark.integration

RECIPIENT_GSTIN = "27AAPFU0939F1ZV"


class TestQRPayload:
    def test_payload_fields(self, gst_formatter, subscribed_tenant):
        assert gst_formatter.generate_invoice_qr_data(subscribed_tenant.invoice) == (
            "29AAAAA0000A1Z5~INV-2026-000001~15/01/2026~1178.82~89.91~89.91~0.00"
        )

    def test_unregistered_supplier(self, gst_formatter, billing_config, subscribed_tenant):
        billing_config.supplier.gstin = None

        payload = gst_formatter.generate_invoice_qr_data(subscribed_tenant.invoice)

        assert payload.startswith("N/A~INV-2026-000001~")


class TestTaxInvoiceDocument:
    async def test_intra_state_document(self, gst_formatter, subscribed_tenant):
        document = await gst_formatter.generate_gst_invoice(
            subscribed_tenant.tenant_id, subscribed_tenant.invoice.invoice_id
        )

        assert document.invoice_number == "INV-2026-000001"
        assert document.supplier.gstin == "29AAAAA0000A1Z5"
        assert document.supplier.state_code == "29"
        assert document.recipient.name == "Sharma Pharmacy Pvt Ltd"
        assert document.recipient.state_code == "29"
        assert document.place_of_supply == "Karnataka"
        assert document.tax.is_intra_state is True
        assert document.tax.cgst_rate == Decimal("9")
        assert document.tax.igst_rate == Decimal("0")
        assert document.amount_in_words == (
            "One Thousand One Hundred Seventy Eight Rupees and Eighty Two Paise Only"
        )
        [line] = document.line_items
        assert line.hsn_sac == "998314"
        assert line.amount == Decimal("999.00")
        assert document.irn is None

    async def test_inter_state_document(self, gst_formatter, subscribed_tenant_factory):
        subscribed = await subscribed_tenant_factory(state="Maharashtra", gstin=RECIPIENT_GSTIN)

        document = await gst_formatter.generate_gst_invoice(
            subscribed.tenant_id, subscribed.invoice.invoice_id
        )

        assert document.recipient.gstin == RECIPIENT_GSTIN
        assert document.recipient.state_code == "27"
        assert document.tax.is_intra_state is False
        assert document.tax.igst_rate == Decimal("18")
        assert document.tax.igst_amount == Decimal("179.82")
        assert document.qr_payload.endswith("~1178.82~0.00~0.00~179.82")

    def test_breakdown_reads_recorded_amounts(self, subscribed_tenant):
        breakdown = tax_breakdown_for(subscribed_tenant.invoice)

        assert breakdown.taxable_value == Decimal("999.00")
        assert breakdown.total_tax == Decimal("179.82")
        assert breakdown.total_amount == Decimal("1178.82")

    async def test_other_tenant(self, gst_formatter, subscribed_tenant):
        with pytest.raises(InvoiceNotFoundError):
            await gst_formatter.generate_gst_invoice(
                "someone-else", subscribed_tenant.invoice.invoice_id
            )

    async def test_pdf(self, gst_formatter, subscribed_tenant, tmp_path):
        output = tmp_path / "invoice.pdf"

        pdf = await gst_formatter.render_invoice_pdf(
            subscribed_tenant.tenant_id,
            subscribed_tenant.invoice.invoice_id,
            output_path=str(output),
        )

        assert pdf.startswith(b"%PDF")
        assert output.read_bytes() == pdf


class TestEInvoice:
    async def test_generate_once(self, gst_formatter, subscribed_tenant, audit_logger, now):
        invoice = subscribed_tenant.invoice

        record = await gst_formatter.generate_e_invoice(
            subscribed_tenant.tenant_id, invoice.invoice_id, now=now
        )

        assert record.irn == generate_irn(
            invoice.invoice_number, invoice.invoice_date, invoice.total_amount
        )
        assert record.ack_no.startswith("ACK")
        assert len(record.ack_no) == 15
        assert record.ack_date == now
        assert record.status == EInvoiceStatus.GENERATED
        assert audit_logger.actions().count("invoice.e_invoice_generated") == 1

        again = await gst_formatter.generate_e_invoice(
            subscribed_tenant.tenant_id, invoice.invoice_id, now=now + timedelta(days=1)
        )
        assert again.irn == record.irn
        assert again.ack_date == now
        assert audit_logger.actions().count("invoice.e_invoice_generated") == 1

        document = await gst_formatter.generate_gst_invoice(
            subscribed_tenant.tenant_id, invoice.invoice_id
        )
        assert document.irn == record.irn
        assert document.ack_no == record.ack_no

    async def test_cancelled_invoice(self, async_db_session, gst_formatter, subscribed_tenant, now):
        await async_db_session.execute(
            update(InvoiceTable)
            .where(InvoiceTable.invoice_id == subscribed_tenant.invoice.invoice_id)
            .values(status="cancelled")
        )
        await async_db_session.commit()

        with pytest.raises(ValidationError, match="cancelled invoice"):
            await gst_formatter.generate_e_invoice(
                subscribed_tenant.tenant_id, subscribed_tenant.invoice.invoice_id, now=now
            )


class TestReceipts:
    async def _pay(self, payment_service, subscribed, status, gateway_transaction_id, now):
        return await payment_service.process_payment(
            subscribed.tenant_id,
            subscribed.invoice.invoice_id,
            PaymentData(
                amount=Decimal("1178.82"),
                status=status,
                payment_gateway="mock",
                payment_method="upi",
                gateway_transaction_id=gateway_transaction_id,
            ),
            now=now,
        )

    async def test_receipt_for_successful_payment(
        self, gst_formatter, payment_service, subscribed_tenant, now
    ):
        transaction = await self._pay(
            payment_service, subscribed_tenant, TransactionStatus.SUCCESS, "pay_001", now
        )

        receipt = await gst_formatter.generate_gst_receipt(transaction.transaction_id, now=now)

        assert receipt.receipt_number == "RCP-2026-000001"
        assert receipt.amount == Decimal("1178.82")
        assert receipt.taxable_value == Decimal("999.00")
        assert receipt.cgst_amount == Decimal("89.91")
        assert receipt.igst_amount == Decimal("0.00")
        assert receipt.payment_method == "upi"
        assert receipt.supplier_gstin == "29AAAAA0000A1Z5"
        assert receipt.place_of_supply == "Karnataka"

    async def test_one_receipt_per_transaction(
        self, gst_formatter, payment_service, subscribed_tenant, audit_logger, now
    ):
        transaction = await self._pay(
            payment_service, subscribed_tenant, TransactionStatus.SUCCESS, "pay_001", now
        )

        first = await gst_formatter.generate_gst_receipt(transaction.transaction_id, now=now)
        second = await gst_formatter.generate_gst_receipt(transaction.transaction_id, now=now)

        assert second.receipt_id == first.receipt_id
        assert audit_logger.actions().count("gst.receipt_issued") == 1

    async def test_failed_payment_has_no_receipt(
        self, gst_formatter, payment_service, subscribed_tenant, now
    ):
        transaction = await self._pay(
            payment_service, subscribed_tenant, TransactionStatus.FAILED, "pay_failed", now
        )

        with pytest.raises(ValidationError, match="only for successful payments"):
            await gst_formatter.generate_gst_receipt(transaction.transaction_id, now=now)

    async def test_unknown_transaction(self, gst_formatter, now):
        with pytest.raises(TransactionNotFoundError):
            await gst_formatter.generate_gst_receipt("missing", now=now)
