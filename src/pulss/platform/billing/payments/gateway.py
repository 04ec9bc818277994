"""
Payment gateway interface.

Reconciliation uses a provider for orders and callback signature checks.
Refund execution is part of the same contract but is driven by whoever
approves refunds. Real provider clients live outside this package and
implement ``PaymentGateway``.
"""

import hashlib
import hmac
from decimal import Decimal
from typing import Protocol, runtime_checkable


@runtime_checkable
class PaymentGateway(Protocol):
    """Provider client used by payment reconciliation."""

    name: str

    async def create_order(self, amount: Decimal, currency: str, receipt: str) -> str:
        """Create a collectable order and return the provider's order id."""
        ...

    async def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check a payment callback signature."""
        ...

    async def process_refund(self, payment_id: str, amount: Decimal) -> str:
        """Refund ``amount`` of a captured payment and return the provider's refund id."""
        ...


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    """HMAC-SHA256 of ``order_id|payment_id``, hex encoded (Razorpay scheme)."""
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_payment_signature(secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    return hmac.compare_digest(compute_signature(secret, order_id, payment_id), signature)


class MockPaymentGateway:
    """In-process gateway for development and tests."""

    name = "mock"

    def __init__(self, secret: str = "mock_secret", always_succeed: bool = True) -> None:
        self.secret = secret
        self.always_succeed = always_succeed
        self.order_count = 0
        self.refunds: dict[str, tuple[str, Decimal]] = {}

    async def create_order(self, amount: Decimal, currency: str, receipt: str) -> str:
        if not self.always_succeed:
            raise RuntimeError("Mock order creation failed")
        self.order_count += 1
        return f"mock_order_{self.order_count}"

    async def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return verify_payment_signature(self.secret, order_id, payment_id, signature)

    async def process_refund(self, payment_id: str, amount: Decimal) -> str:
        if not self.always_succeed:
            raise RuntimeError("Mock refund failed")
        refund_id = f"mock_refund_{len(self.refunds) + 1}"
        self.refunds[refund_id] = (payment_id, amount)
        return refund_id


__all__ = [
    "MockPaymentGateway",
    "PaymentGateway",
    "compute_signature",
    "verify_payment_signature",
]
