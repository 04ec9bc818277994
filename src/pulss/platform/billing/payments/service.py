"""
Payment reconciliation.

Gateway callbacks are recorded as payment transactions and applied to the
invoice under a row lock. A callback is identified by
``(payment_gateway, gateway_transaction_id)``: replays of a successful
callback return the recorded transaction and never credit the invoice twice.
Commission and the GST receipt for a payment are produced after the payment
commits and cannot undo it.
"""

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pulss.platform.db import utcnow
from pulss.platform.events import EventBus

from ..audit import AuditLogger
from ..commissions import CommissionCalculator
from ..config import BillingConfig, get_billing_config
from ..enums import (
    InvoiceStatus,
    PaymentStatus,
    RefundStatus,
    RefundType,
    TransactionStatus,
)
from ..events import emit_payment_failed, emit_payment_success, emit_refund_requested
from ..exceptions import (
    GatewayError,
    InvoiceNotFoundError,
    TransactionNotFoundError,
    ValidationError,
)
from ..gst import GSTFormatter
from ..models import InvoiceTable, PaymentTransactionTable, RefundTable, new_id
from ..money_utils import format_inr, round_amount
from ..schemas import (
    InvoiceRecord,
    PaymentData,
    PaymentOrder,
    PaymentTransactionRecord,
    RefundRecord,
)
from ..transaction import BillingTransaction, billing_transaction
from .gateway import PaymentGateway

logger = structlog.get_logger(__name__)


class PaymentReconciliationService:
    """Records gateway payments and refunds against invoices."""

    def __init__(
        self,
        session: AsyncSession,
        config: BillingConfig | None = None,
        gateway: PaymentGateway | None = None,
        commission_calculator: CommissionCalculator | None = None,
        gst_formatter: GSTFormatter | None = None,
        event_bus: EventBus | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.session = session
        self.config = config or get_billing_config()
        self.gateway = gateway
        self.event_bus = event_bus
        self.audit_logger = audit_logger
        self.commission_calculator = commission_calculator or CommissionCalculator(
            session, self.config, event_bus=event_bus, audit_logger=audit_logger
        )
        self.gst_formatter = gst_formatter or GSTFormatter(
            session, self.config, audit_logger=audit_logger
        )

    def _transaction(self, tx: BillingTransaction | None = None):
        return billing_transaction(
            self.session, tx, event_bus=self.event_bus, audit_logger=self.audit_logger
        )

    async def _lock_invoice(self, tenant_id: str, invoice_id: str) -> InvoiceTable:
        result = await self.session.execute(
            select(InvoiceTable)
            .where(and_(InvoiceTable.invoice_id == invoice_id, InvoiceTable.tenant_id == tenant_id))
            .with_for_update()
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(resource_id=invoice_id, tenant_id=tenant_id)
        return invoice

    async def get_transaction(self, tenant_id: str, transaction_id: str) -> PaymentTransactionRecord:
        result = await self.session.execute(
            select(PaymentTransactionTable).where(
                and_(
                    PaymentTransactionTable.transaction_id == transaction_id,
                    PaymentTransactionTable.tenant_id == tenant_id,
                )
            )
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise TransactionNotFoundError(resource_id=transaction_id, tenant_id=tenant_id)
        return PaymentTransactionRecord.model_validate(transaction)

    async def list_transactions(self, tenant_id: str, invoice_id: str) -> list[PaymentTransactionRecord]:
        result = await self.session.execute(
            select(PaymentTransactionTable)
            .where(
                and_(
                    PaymentTransactionTable.invoice_id == invoice_id,
                    PaymentTransactionTable.tenant_id == tenant_id,
                )
            )
            .order_by(PaymentTransactionTable.created_at)
        )
        return [PaymentTransactionRecord.model_validate(t) for t in result.scalars().all()]

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def create_payment_order(
        self,
        tenant_id: str,
        invoice_id: str,
        gateway: PaymentGateway | None = None,
    ) -> PaymentOrder:
        """Open a gateway order for the invoice's outstanding balance."""
        gateway = gateway or self.gateway
        if gateway is None:
            raise ValidationError("No payment gateway configured")

        result = await self.session.execute(
            select(InvoiceTable).where(
                and_(InvoiceTable.invoice_id == invoice_id, InvoiceTable.tenant_id == tenant_id)
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise InvoiceNotFoundError(resource_id=invoice_id, tenant_id=tenant_id)
        invoice = InvoiceRecord.model_validate(row)

        if invoice.status == InvoiceStatus.CANCELLED:
            raise ValidationError("Cannot collect payment for a cancelled invoice")
        if invoice.balance_due <= 0:
            raise ValidationError(
                "Invoice has no outstanding balance",
                context={"invoice_id": invoice_id, "payment_status": invoice.payment_status.value},
            )

        try:
            order_id = await gateway.create_order(
                invoice.balance_due, invoice.currency, receipt=invoice.invoice_number
            )
        except GatewayError:
            raise
        except Exception as e:
            raise GatewayError(
                f"Payment order creation failed: {e}",
                gateway=gateway.name,
                context={"invoice_id": invoice_id},
            ) from e

        logger.info(
            "payment.order_created",
            invoice_id=invoice_id,
            order_id=order_id,
            gateway=gateway.name,
            amount=str(invoice.balance_due),
        )
        return PaymentOrder(
            invoice_id=invoice_id,
            order_id=order_id,
            gateway=gateway.name,
            amount=invoice.balance_due,
            currency=invoice.currency,
        )

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    async def verify_and_process_payment(
        self,
        tenant_id: str,
        invoice_id: str,
        payment_data: PaymentData,
        gateway: PaymentGateway | None = None,
        *,
        now: datetime | None = None,
    ) -> PaymentTransactionRecord:
        """Check the callback signature, then reconcile the payment."""
        gateway = gateway or self.gateway
        if gateway is None:
            raise ValidationError("No payment gateway configured")
        if not (
            payment_data.gateway_order_id
            and payment_data.gateway_payment_id
            and payment_data.gateway_signature
        ):
            raise ValidationError("Order id, payment id and signature are required")

        try:
            valid = await gateway.verify_signature(
                payment_data.gateway_order_id,
                payment_data.gateway_payment_id,
                payment_data.gateway_signature,
            )
        except Exception as e:
            raise GatewayError(
                f"Signature verification failed: {e}", gateway=gateway.name
            ) from e
        if not valid:
            logger.warning(
                "payment.signature_invalid",
                invoice_id=invoice_id,
                order_id=payment_data.gateway_order_id,
            )
            raise GatewayError(
                "Invalid payment signature",
                gateway=gateway.name,
                context={"order_id": payment_data.gateway_order_id},
            )

        if not payment_data.gateway_transaction_id:
            payment_data = payment_data.model_copy(
                update={"gateway_transaction_id": payment_data.gateway_payment_id}
            )
        return await self.process_payment(tenant_id, invoice_id, payment_data, now=now)

    async def process_payment(
        self,
        tenant_id: str,
        invoice_id: str,
        payment_data: PaymentData,
        *,
        tx: BillingTransaction | None = None,
        now: datetime | None = None,
    ) -> PaymentTransactionRecord:
        """Record a gateway payment and apply it to the invoice when successful.

        Returns the recorded transaction. Replaying a callback that already
        succeeded is a no-op returning the original transaction.
        """
        now = now or utcnow()

        async with self._transaction(tx) as tx:
            invoice = await self._lock_invoice(tenant_id, invoice_id)
            if payment_data.currency != invoice.currency:
                raise ValidationError(
                    f"Payment currency {payment_data.currency} does not match "
                    f"invoice currency {invoice.currency}"
                )

            transaction = None
            if payment_data.gateway_transaction_id:
                result = await self.session.execute(
                    select(PaymentTransactionTable)
                    .where(
                        and_(
                            PaymentTransactionTable.payment_gateway == payment_data.payment_gateway,
                            PaymentTransactionTable.gateway_transaction_id
                            == payment_data.gateway_transaction_id,
                        )
                    )
                    .with_for_update()
                )
                transaction = result.scalar_one_or_none()

            if transaction is not None:
                if transaction.invoice_id != invoice_id:
                    raise ValidationError(
                        "Gateway transaction is already recorded against another invoice",
                        context={"gateway_transaction_id": payment_data.gateway_transaction_id},
                    )
                if (
                    transaction.status == TransactionStatus.SUCCESS.value
                    or transaction.status == payment_data.status.value
                ):
                    logger.info(
                        "payment.callback_replayed",
                        transaction_id=transaction.transaction_id,
                        status=transaction.status,
                    )
                    return PaymentTransactionRecord.model_validate(transaction)

                transaction.status = payment_data.status.value
                transaction.amount = round_amount(payment_data.amount)
                transaction.gateway_response = payment_data.gateway_response
                transaction.failure_reason = payment_data.failure_reason
            else:
                transaction = PaymentTransactionTable(
                    transaction_id=new_id(),
                    tenant_id=tenant_id,
                    invoice_id=invoice_id,
                    amount=round_amount(payment_data.amount),
                    currency=payment_data.currency,
                    status=payment_data.status.value,
                    payment_method=payment_data.payment_method,
                    payment_gateway=payment_data.payment_gateway,
                    gateway_transaction_id=payment_data.gateway_transaction_id,
                    gateway_order_id=payment_data.gateway_order_id,
                    gateway_payment_id=payment_data.gateway_payment_id,
                    gateway_signature=payment_data.gateway_signature,
                    gateway_response=payment_data.gateway_response,
                    failure_reason=payment_data.failure_reason,
                )
                self.session.add(transaction)

            if (
                payment_data.status == TransactionStatus.SUCCESS
                and invoice.status == InvoiceStatus.CANCELLED.value
            ):
                raise ValidationError(
                    "Cannot apply a payment to a cancelled invoice",
                    context={
                        "invoice_id": invoice_id,
                        "gateway_transaction_id": payment_data.gateway_transaction_id,
                    },
                    recovery_hint="Refund the payment through the gateway",
                )

            if payment_data.status == TransactionStatus.SUCCESS:
                transaction.completed_at = now
                old_values = {
                    "amount_paid": str(invoice.amount_paid),
                    "payment_status": invoice.payment_status,
                }
                invoice.amount_paid = round_amount(invoice.amount_paid + transaction.amount)
                if invoice.amount_paid >= invoice.total_amount:
                    invoice.payment_status = PaymentStatus.PAID.value
                    invoice.status = InvoiceStatus.PAID.value
                else:
                    invoice.payment_status = PaymentStatus.PARTIAL.value
                invoice.paid_at = now
                invoice.payment_method = payment_data.payment_method
                invoice.payment_gateway = payment_data.payment_gateway
                invoice.gateway_transaction_id = payment_data.gateway_transaction_id

            await self.session.flush()
            record = PaymentTransactionRecord.model_validate(transaction)

            if record.status == TransactionStatus.SUCCESS:
                invoice_record = InvoiceRecord.model_validate(invoice)
                tx.emit(emit_payment_success, record, invoice_record)
                tx.audit(
                    tenant_id,
                    "payment.applied",
                    "invoice",
                    invoice_id,
                    old_values=old_values,
                    new_values={
                        "amount_paid": str(invoice_record.amount_paid),
                        "payment_status": invoice_record.payment_status.value,
                        "transaction_id": record.transaction_id,
                    },
                )
                self._schedule_post_payment(tx, record, now)
            elif record.status == TransactionStatus.FAILED:
                tx.emit(emit_payment_failed, record)

        logger.info(
            "payment.processed",
            transaction_id=record.transaction_id,
            invoice_id=invoice_id,
            tenant_id=tenant_id,
            status=record.status.value,
            amount=format_inr(record.amount),
        )
        return record

    def _schedule_post_payment(
        self, tx: BillingTransaction, transaction: PaymentTransactionRecord, now: datetime
    ) -> None:
        async def commission() -> None:
            await self.commission_calculator.calculate_commission_for_payment(
                transaction.transaction_id
            )

        async def receipt() -> None:
            await self.gst_formatter.generate_gst_receipt(transaction.transaction_id, now=now)

        tx.after_commit(commission, name="commission")
        tx.after_commit(receipt, name="gst_receipt")

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    async def request_refund(
        self,
        tenant_id: str,
        transaction_id: str,
        amount: Decimal,
        reason: str | None = None,
        requested_by: str | None = None,
    ) -> RefundRecord:
        """Record a refund request. Execution against the gateway happens elsewhere."""
        amount = round_amount(amount)
        if amount <= 0:
            raise ValidationError("Refund amount must be positive")

        async with self._transaction() as tx:
            result = await self.session.execute(
                select(PaymentTransactionTable)
                .where(
                    and_(
                        PaymentTransactionTable.transaction_id == transaction_id,
                        PaymentTransactionTable.tenant_id == tenant_id,
                    )
                )
                .with_for_update()
            )
            transaction = result.scalar_one_or_none()
            if transaction is None:
                raise TransactionNotFoundError(resource_id=transaction_id, tenant_id=tenant_id)
            if transaction.status != TransactionStatus.SUCCESS.value:
                raise ValidationError(
                    "Only successful payments can be refunded",
                    context={"transaction_id": transaction_id, "status": transaction.status},
                )

            refunded = await self.session.execute(
                select(func.coalesce(func.sum(RefundTable.amount), 0)).where(
                    and_(
                        RefundTable.transaction_id == transaction_id,
                        RefundTable.status != RefundStatus.REJECTED.value,
                    )
                )
            )
            remaining = round_amount(transaction.amount - Decimal(str(refunded.scalar_one())))
            if amount > remaining:
                raise ValidationError(
                    f"Refund amount exceeds refundable balance of {format_inr(remaining)}",
                    context={"transaction_id": transaction_id, "remaining": str(remaining)},
                )

            refund = RefundTable(
                refund_id=new_id(),
                tenant_id=tenant_id,
                transaction_id=transaction_id,
                invoice_id=transaction.invoice_id,
                amount=amount,
                refund_type=(
                    RefundType.FULL.value if amount >= transaction.amount else RefundType.PARTIAL.value
                ),
                reason=reason,
                status=RefundStatus.REQUESTED.value,
                requested_by=requested_by,
            )
            self.session.add(refund)
            await self.session.flush()

            record = RefundRecord.model_validate(refund)
            tx.emit(emit_refund_requested, record)
            tx.audit(
                tenant_id,
                "refund.requested",
                "payment_transaction",
                transaction_id,
                new_values={
                    "refund_id": record.refund_id,
                    "amount": str(record.amount),
                    "refund_type": record.refund_type.value,
                },
            )

        logger.info(
            "payment.refund_requested",
            refund_id=record.refund_id,
            transaction_id=transaction_id,
            amount=str(amount),
            refund_type=record.refund_type.value,
        )
        return record


__all__ = ["PaymentReconciliationService"]
