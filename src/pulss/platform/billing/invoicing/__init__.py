"""Invoice generation and invoice sweeps."""

from .service import InvoiceGenerator, format_billing_address

__all__ = ["InvoiceGenerator", "format_billing_address"]
