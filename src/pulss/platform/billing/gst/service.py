"""
GST formatter.

Read-only statutory projections of finalized invoices (tax invoice document,
QR payload, PDF) plus the two GST artifacts that are persisted: the e-invoice
reference (IRN and acknowledgment) and the payment receipt.
"""

import hashlib
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pulss.platform.db import utcnow

from ..audit import AuditLogger
from ..config import BillingConfig, get_billing_config
from ..enums import EInvoiceStatus, InvoiceStatus, TransactionStatus
from ..exceptions import InvoiceNotFoundError, TransactionNotFoundError, ValidationError
from ..models import (
    GSTReceiptTable,
    InvoiceItemTable,
    InvoiceTable,
    PaymentTransactionTable,
    new_id,
)
from ..numbering import allocate_document_number
from ..schemas import (
    EInvoiceRecord,
    GSTBreakdown,
    GSTInvoiceDocument,
    GSTLineItem,
    GSTParty,
    GSTReceiptRecord,
    InvoiceRecord,
)
from ..tax import is_same_state, state_code_for
from ..transaction import BillingTransaction, billing_transaction
from .pdf import render_gst_invoice_pdf
from .words import number_to_words

logger = structlog.get_logger(__name__)

ACK_DIGITS = 12


def generate_irn(invoice_number: str, invoice_date: datetime, total_amount: Decimal) -> str:
    """Deterministic 64-character placeholder Invoice Reference Number."""
    data = f"{invoice_number}{invoice_date.isoformat()}{total_amount:.2f}"
    return hashlib.sha256(data.encode()).hexdigest()


def ack_number_for(irn: str) -> str:
    return "ACK" + str(int(irn[:16], 16) % 10**ACK_DIGITS).zfill(ACK_DIGITS)


def tax_breakdown_for(invoice: InvoiceRecord) -> GSTBreakdown:
    """Tax split as recorded on the invoice."""
    intra_state = is_same_state(invoice.supplier_state, invoice.place_of_supply)
    half_rate = invoice.gst_rate / 2
    return GSTBreakdown(
        taxable_value=invoice.taxable_value,
        gst_rate=invoice.gst_rate,
        cgst_rate=half_rate if intra_state else Decimal("0"),
        sgst_rate=half_rate if intra_state else Decimal("0"),
        igst_rate=Decimal("0") if intra_state else invoice.gst_rate,
        cgst_amount=invoice.cgst_amount,
        sgst_amount=invoice.sgst_amount,
        igst_amount=invoice.igst_amount,
        total_tax=invoice.total_tax,
        total_amount=invoice.total_amount,
        is_intra_state=intra_state,
    )


class GSTFormatter:
    """Tax invoice documents, e-invoice references and payment receipts."""

    def __init__(
        self,
        session: AsyncSession,
        config: BillingConfig | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.session = session
        self.config = config or get_billing_config()
        self.audit_logger = audit_logger

    def _transaction(self, tx: BillingTransaction | None = None):
        return billing_transaction(self.session, tx, audit_logger=self.audit_logger)

    async def _get_invoice_row(
        self, tenant_id: str, invoice_id: str, for_update: bool = False
    ) -> InvoiceTable:
        stmt = select(InvoiceTable).where(
            and_(InvoiceTable.invoice_id == invoice_id, InvoiceTable.tenant_id == tenant_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        invoice = (await self.session.execute(stmt)).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(resource_id=invoice_id, tenant_id=tenant_id)
        return invoice

    # ------------------------------------------------------------------
    # Tax invoice
    # ------------------------------------------------------------------

    def generate_invoice_qr_data(self, invoice: InvoiceRecord) -> str:
        """``GSTIN~InvoiceNo~dd/mm/yyyy~Total~CGST~SGST~IGST``."""
        parts = [
            self.config.supplier.gstin or "N/A",
            invoice.invoice_number,
            invoice.invoice_date.strftime("%d/%m/%Y"),
            f"{invoice.total_amount:.2f}",
            f"{invoice.cgst_amount:.2f}",
            f"{invoice.sgst_amount:.2f}",
            f"{invoice.igst_amount:.2f}",
        ]
        return "~".join(parts)

    async def generate_gst_invoice(self, tenant_id: str, invoice_id: str) -> GSTInvoiceDocument:
        invoice = InvoiceRecord.model_validate(await self._get_invoice_row(tenant_id, invoice_id))
        result = await self.session.execute(
            select(InvoiceItemTable)
            .where(InvoiceItemTable.invoice_id == invoice_id)
            .order_by(InvoiceItemTable.sort_order)
        )
        items = result.scalars().all()

        supplier = self.config.supplier
        return GSTInvoiceDocument(
            invoice_id=invoice.invoice_id,
            invoice_number=invoice.invoice_number,
            invoice_date=invoice.invoice_date,
            due_date=invoice.due_date,
            supplier=GSTParty(
                name=supplier.name,
                gstin=supplier.gstin,
                address=supplier.address or None,
                state=supplier.state,
                state_code=state_code_for(supplier.state),
                email=supplier.email,
            ),
            recipient=GSTParty(
                name=invoice.billing_name or "Customer",
                gstin=invoice.billing_gstin,
                address=invoice.billing_address,
                state=invoice.place_of_supply,
                state_code=state_code_for(invoice.place_of_supply),
                email=invoice.billing_email,
                phone=invoice.billing_phone,
            ),
            place_of_supply=invoice.place_of_supply,
            line_items=[
                GSTLineItem(
                    description=item.description,
                    hsn_sac=item.hsn_sac or self.config.gst.default_hsn_sac,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    amount=item.amount,
                )
                for item in items
            ],
            tax=tax_breakdown_for(invoice),
            subtotal=invoice.subtotal,
            discount_amount=invoice.discount_amount,
            total_amount=invoice.total_amount,
            amount_in_words=number_to_words(invoice.total_amount),
            qr_payload=self.generate_invoice_qr_data(invoice),
            irn=invoice.irn,
            ack_no=invoice.ack_no,
            ack_date=invoice.ack_date,
        )

    async def render_invoice_pdf(
        self, tenant_id: str, invoice_id: str, output_path: str | None = None
    ) -> bytes:
        document = await self.generate_gst_invoice(tenant_id, invoice_id)
        pdf = render_gst_invoice_pdf(document, output_path=output_path)
        logger.info("gst.invoice_pdf_rendered", invoice_id=invoice_id, size=len(pdf))
        return pdf

    # ------------------------------------------------------------------
    # E-invoice
    # ------------------------------------------------------------------

    async def generate_e_invoice(
        self, tenant_id: str, invoice_id: str, *, now: datetime | None = None
    ) -> EInvoiceRecord:
        """Attach an IRN and acknowledgment to the invoice.

        The IRN is a local placeholder; no government portal is contacted.
        Invoices that already carry an IRN are returned unchanged.
        """
        now = now or utcnow()

        async with self._transaction() as tx:
            invoice = await self._get_invoice_row(tenant_id, invoice_id, for_update=True)
            if invoice.irn:
                return EInvoiceRecord(
                    invoice_id=invoice.invoice_id,
                    invoice_number=invoice.invoice_number,
                    irn=invoice.irn,
                    ack_no=invoice.ack_no,
                    ack_date=invoice.ack_date,
                    status=EInvoiceStatus(invoice.e_invoice_status),
                )
            if invoice.status == InvoiceStatus.CANCELLED.value:
                raise ValidationError("Cannot generate an e-invoice for a cancelled invoice")

            invoice.irn = generate_irn(
                invoice.invoice_number, invoice.invoice_date, invoice.total_amount
            )
            invoice.ack_no = ack_number_for(invoice.irn)
            invoice.ack_date = now
            invoice.e_invoice_status = EInvoiceStatus.GENERATED.value
            await self.session.flush()

            record = EInvoiceRecord(
                invoice_id=invoice.invoice_id,
                invoice_number=invoice.invoice_number,
                irn=invoice.irn,
                ack_no=invoice.ack_no,
                ack_date=now,
            )
            tx.audit(
                tenant_id,
                "invoice.e_invoice_generated",
                "invoice",
                invoice_id,
                new_values={"irn": record.irn, "ack_no": record.ack_no},
            )

        logger.info("gst.e_invoice_generated", invoice_id=invoice_id, ack_no=record.ack_no)
        return record

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    async def generate_gst_receipt(
        self, transaction_id: str, *, now: datetime | None = None
    ) -> GSTReceiptRecord:
        """Issue the GST receipt for a successful payment, once per transaction."""
        now = now or utcnow()

        async with self._transaction() as tx:
            existing = await self.session.execute(
                select(GSTReceiptTable).where(GSTReceiptTable.transaction_id == transaction_id)
            )
            receipt = existing.scalar_one_or_none()
            if receipt is not None:
                return GSTReceiptRecord.model_validate(receipt)

            result = await self.session.execute(
                select(PaymentTransactionTable, InvoiceTable)
                .join(InvoiceTable, InvoiceTable.invoice_id == PaymentTransactionTable.invoice_id)
                .where(PaymentTransactionTable.transaction_id == transaction_id)
            )
            row = result.first()
            if row is None:
                raise TransactionNotFoundError(resource_id=transaction_id)
            transaction, invoice = row
            if transaction.status != TransactionStatus.SUCCESS.value:
                raise ValidationError(
                    "Receipts are issued only for successful payments",
                    context={"transaction_id": transaction_id, "status": transaction.status},
                )

            receipt_number = await allocate_document_number(
                self.session,
                self.config.invoice.receipt_prefix,
                now,
                GSTReceiptTable.receipt_number,
            )
            receipt = GSTReceiptTable(
                receipt_id=new_id(),
                receipt_number=receipt_number,
                tenant_id=transaction.tenant_id,
                invoice_id=invoice.invoice_id,
                transaction_id=transaction_id,
                receipt_date=now,
                amount=transaction.amount,
                taxable_value=invoice.subtotal - invoice.discount_amount,
                gst_rate=invoice.gst_rate,
                cgst_amount=invoice.cgst_amount,
                sgst_amount=invoice.sgst_amount,
                igst_amount=invoice.igst_amount,
                payment_method=transaction.payment_method,
                supplier_gstin=self.config.supplier.gstin,
                recipient_gstin=invoice.billing_gstin,
                place_of_supply=invoice.place_of_supply,
            )
            self.session.add(receipt)
            await self.session.flush()

            record = GSTReceiptRecord.model_validate(receipt)
            tx.audit(
                record.tenant_id,
                "gst.receipt_issued",
                "gst_receipt",
                record.receipt_id,
                new_values={"receipt_number": receipt_number, "transaction_id": transaction_id},
            )

        logger.info(
            "gst.receipt_issued",
            receipt_number=record.receipt_number,
            transaction_id=transaction_id,
        )
        return record
