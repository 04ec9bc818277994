"""
GST tax invoice PDF using ReportLab (pure Python, no system dependencies).

Renders a ``GSTInvoiceDocument``: supplier and recipient blocks with GSTIN
and state code, an HSN/SAC line table, the CGST/SGST or IGST split, the amount
in words and the invoice QR code.
"""

import io
from typing import Any
from xml.sax.saxutils import escape

import structlog
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from reportlab.platypus.flowables import HRFlowable

from ..money_utils import money_handler
from ..schemas import GSTInvoiceDocument, GSTParty

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = A4
DEFAULT_MARGINS = (18 * mm, 18 * mm, 18 * mm, 18 * mm)  # left, top, right, bottom
QR_SIZE = 32 * mm

PRIMARY_COLOR = colors.HexColor("#2563eb")
SECONDARY_COLOR = colors.HexColor("#6b7280")
LIGHT_GRAY = colors.HexColor("#f3f4f6")
DARK_GRAY = colors.HexColor("#333333")


def _amount(value: Any) -> str:
    return money_handler.format_amount(value)


def _rate(value: Any) -> str:
    return f"{value.normalize():f}%"


class GSTInvoicePDFGenerator:
    """Generate GST tax invoice PDFs."""

    def __init__(
        self,
        page_size: tuple[float, float] = DEFAULT_PAGE_SIZE,
        margins: tuple[float, float, float, float] = DEFAULT_MARGINS,
    ) -> None:
        self.page_size = page_size
        self.margins = margins
        self.styles = self._create_styles()

    def _create_styles(self) -> dict[str, ParagraphStyle]:
        styles = getSampleStyleSheet()
        return {
            "Title": ParagraphStyle(
                "GSTTitle",
                parent=styles["Heading1"],
                fontSize=20,
                textColor=DARK_GRAY,
                alignment=2,  # RIGHT
                spaceAfter=6,
            ),
            "SectionTitle": ParagraphStyle(
                "GSTSectionTitle",
                parent=styles["Heading2"],
                fontSize=10,
                textColor=SECONDARY_COLOR,
                spaceBefore=10,
                spaceAfter=4,
                fontName="Helvetica-Bold",
            ),
            "Normal": ParagraphStyle(
                "GSTNormal",
                parent=styles["Normal"],
                fontSize=9,
                textColor=DARK_GRAY,
                leading=12,
            ),
            "Footer": ParagraphStyle(
                "GSTFooter",
                parent=styles["Normal"],
                fontSize=8,
                textColor=SECONDARY_COLOR,
                alignment=1,  # CENTER
                spaceBefore=16,
            ),
        }

    def generate_pdf(self, document: GSTInvoiceDocument, output_path: str | None = None) -> bytes:
        """Render ``document`` and return the PDF bytes; optionally also write them."""
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=self.page_size,
            leftMargin=self.margins[0],
            topMargin=self.margins[1],
            rightMargin=self.margins[2],
            bottomMargin=self.margins[3],
            title=f"Tax Invoice {document.invoice_number}",
            author=document.supplier.name,
        )

        story: list[Any] = []
        story.extend(self._create_header(document))
        story.extend(self._create_parties_section(document))
        story.extend(self._create_line_items_table(document))
        story.extend(self._create_totals_section(document))
        story.extend(self._create_words_and_qr(document))
        story.extend(self._create_footer(document))
        doc.build(story)

        pdf_bytes = buffer.getvalue()
        buffer.close()

        if output_path:
            with open(output_path, "wb") as f:
                f.write(pdf_bytes)
            logger.info("gst.invoice_pdf_saved", path=output_path)

        return pdf_bytes

    def _party_text(self, title: str, party: GSTParty) -> str:
        text = f"<b>{title}</b><br/><b>{escape(party.name)}</b><br/>"
        if party.address:
            text += f"{escape(party.address)}<br/>"
        if party.state:
            code = f" ({party.state_code})" if party.state_code else ""
            text += f"State: {escape(party.state)}{code}<br/>"
        text += f"GSTIN: {escape(party.gstin or 'Unregistered')}"
        if party.email:
            text += f"<br/>Email: {escape(party.email)}"
        return text

    def _create_header(self, document: GSTInvoiceDocument) -> list[Any]:
        supplier = document.supplier
        left = f"<b>{escape(supplier.name)}</b><br/>"
        if supplier.address:
            left += f"{escape(supplier.address)}<br/>"
        left += f"GSTIN: {escape(supplier.gstin or 'N/A')}"

        right = (
            "<para align='right'><b>TAX INVOICE</b><br/>"
            f"#{escape(document.invoice_number)}<br/>"
            f"Date: {document.invoice_date.strftime('%d/%m/%Y')}<br/>"
            f"Due: {document.due_date.strftime('%d/%m/%Y')}</para>"
        )

        header_table = Table(
            [[Paragraph(left, self.styles["Normal"]), Paragraph(right, self.styles["Normal"])]],
            colWidths=[None, None],
        )
        header_table.setStyle(
            TableStyle(
                [
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 12),
                ]
            )
        )
        return [
            header_table,
            HRFlowable(width="100%", thickness=2, color=PRIMARY_COLOR),
            Spacer(1, 10),
        ]

    def _create_parties_section(self, document: GSTInvoiceDocument) -> list[Any]:
        supplier = self._party_text("SUPPLIER", document.supplier)
        recipient = self._party_text("BILL TO", document.recipient)
        recipient += f"<br/>Place of supply: {escape(document.place_of_supply)}"

        table = Table(
            [[Paragraph(supplier, self.styles["Normal"]), Paragraph(recipient, self.styles["Normal"])]],
            colWidths=[None, None],
        )
        table.setStyle(
            TableStyle(
                [
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("BOX", (0, 0), (-1, -1), 0.5, colors.lightgrey),
                    ("INNERGRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
                    ("TOPPADDING", (0, 0), (-1, -1), 6),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
                ]
            )
        )
        return [table, Spacer(1, 14)]

    def _create_line_items_table(self, document: GSTInvoiceDocument) -> list[Any]:
        data: list[list[Any]] = [["#", "Description", "HSN/SAC", "Qty", "Rate (INR)", "Amount (INR)"]]
        for index, item in enumerate(document.line_items, start=1):
            data.append(
                [
                    str(index),
                    Paragraph(escape(item.description), self.styles["Normal"]),
                    item.hsn_sac,
                    f"{item.quantity.normalize():f}",
                    _amount(item.unit_price),
                    _amount(item.amount),
                ]
            )

        items_table = Table(data, colWidths=[20, None, 55, 45, 70, 75], repeatRows=1)
        items_table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), LIGHT_GRAY),
                    ("TEXTCOLOR", (0, 0), (-1, 0), SECONDARY_COLOR),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 9),
                    ("ALIGN", (2, 0), (-1, -1), "RIGHT"),
                    ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
                    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                    ("TOPPADDING", (0, 0), (-1, -1), 6),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
                ]
            )
        )
        return [items_table, Spacer(1, 14)]

    def _create_totals_section(self, document: GSTInvoiceDocument) -> list[Any]:
        tax = document.tax
        totals: list[list[str]] = [["Subtotal:", _amount(document.subtotal)]]
        if document.discount_amount > 0:
            totals.append(["Discount:", f"-{_amount(document.discount_amount)}"])
        totals.append(["Taxable value:", _amount(tax.taxable_value)])
        if tax.is_intra_state:
            totals.append([f"CGST @ {_rate(tax.cgst_rate)}:", _amount(tax.cgst_amount)])
            totals.append([f"SGST @ {_rate(tax.sgst_rate)}:", _amount(tax.sgst_amount)])
        else:
            totals.append([f"IGST @ {_rate(tax.igst_rate)}:", _amount(tax.igst_amount)])
        totals.append(["TOTAL (INR):", _amount(document.total_amount)])

        totals_table = Table(totals, colWidths=[110, 90])
        totals_table.setStyle(
            TableStyle(
                [
                    ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
                    ("FONTNAME", (0, 0), (-1, -2), "Helvetica"),
                    ("FONTSIZE", (0, 0), (-1, -2), 9),
                    ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                    ("FONTSIZE", (0, -1), (-1, -1), 12),
                    ("TEXTCOLOR", (0, -1), (-1, -1), PRIMARY_COLOR),
                    ("TOPPADDING", (0, -1), (-1, -1), 8),
                    ("LINEABOVE", (0, -1), (-1, -1), 1.5, PRIMARY_COLOR),
                ]
            )
        )

        wrapper = Table([[Spacer(1, 1), totals_table]], colWidths=[None, 200])
        return [wrapper, Spacer(1, 14)]

    def _qr_drawing(self, payload: str) -> Drawing:
        widget = QrCodeWidget(payload)
        x1, y1, x2, y2 = widget.getBounds()
        width, height = x2 - x1, y2 - y1
        drawing = Drawing(QR_SIZE, QR_SIZE, transform=[QR_SIZE / width, 0, 0, QR_SIZE / height, 0, 0])
        drawing.add(widget)
        return drawing

    def _create_words_and_qr(self, document: GSTInvoiceDocument) -> list[Any]:
        text = f"<b>Amount in words:</b><br/>{escape(document.amount_in_words)}"
        if document.irn:
            text += f"<br/><br/><b>IRN:</b> {document.irn}"
            if document.ack_no:
                text += f"<br/><b>Ack No:</b> {document.ack_no}"
            if document.ack_date:
                text += f"<br/><b>Ack Date:</b> {document.ack_date.strftime('%d/%m/%Y')}"

        table = Table(
            [[Paragraph(text, self.styles["Normal"]), self._qr_drawing(document.qr_payload)]],
            colWidths=[None, QR_SIZE + 8],
        )
        table.setStyle(
            TableStyle(
                [
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("BACKGROUND", (0, 0), (0, 0), LIGHT_GRAY),
                    ("LEFTPADDING", (0, 0), (0, 0), 8),
                    ("TOPPADDING", (0, 0), (0, 0), 8),
                    ("BOTTOMPADDING", (0, 0), (0, 0), 8),
                ]
            )
        )
        return [table]

    def _create_footer(self, document: GSTInvoiceDocument) -> list[Any]:
        return [
            HRFlowable(width="100%", thickness=0.5, color=colors.lightgrey),
            Paragraph(
                "This is a computer generated invoice and does not require a signature.",
                self.styles["Footer"],
            ),
        ]


default_gst_pdf_generator = GSTInvoicePDFGenerator()


def render_gst_invoice_pdf(document: GSTInvoiceDocument, output_path: str | None = None) -> bytes:
    """Render a GST tax invoice PDF with the default layout."""
    return default_gst_pdf_generator.generate_pdf(document, output_path=output_path)


__all__ = ["GSTInvoicePDFGenerator", "default_gst_pdf_generator", "render_gst_invoice_pdf"]
