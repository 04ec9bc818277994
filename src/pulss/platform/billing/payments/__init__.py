"""Payment reconciliation and refunds."""

from .gateway import MockPaymentGateway, PaymentGateway, compute_signature, verify_payment_signature
from .service import PaymentReconciliationService

__all__ = [
    "MockPaymentGateway",
    "PaymentGateway",
    "PaymentReconciliationService",
    "compute_signature",
    "verify_payment_signature",
]
