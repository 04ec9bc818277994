"""GST invoice artifacts: documents, e-invoice references, receipts and PDFs."""

from .gstin import get_hsn_sac_code, state_code_from_gstin, validate_gstin
from .pdf import GSTInvoicePDFGenerator, render_gst_invoice_pdf
from .service import GSTFormatter, generate_irn, tax_breakdown_for
from .words import number_to_words

__all__ = [
    "GSTFormatter",
    "GSTInvoicePDFGenerator",
    "generate_irn",
    "get_hsn_sac_code",
    "number_to_words",
    "render_gst_invoice_pdf",
    "state_code_from_gstin",
    "tax_breakdown_for",
    "validate_gstin",
]
