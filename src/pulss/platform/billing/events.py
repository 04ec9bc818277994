"""
Billing event types and event emission helpers.

This module defines all billing-related events and provides
helper functions for emitting them through the event bus. Emission
happens after the owning transaction commits (see ``BillingTransaction``);
the notification dispatcher and other consumers subscribe on the bus.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog

from pulss.platform.events import EventPriority, get_event_bus

if TYPE_CHECKING:
    from pulss.platform.events import EventBus

    from .schemas import (
        CommissionRecord,
        CouponApplication,
        InvoiceRecord,
        PaymentTransactionRecord,
        RefundRecord,
        SubscriptionRecord,
    )

logger = structlog.get_logger(__name__)


# ============================================================================
# Billing Event Types
# ============================================================================


class BillingEvents:
    """Billing event type constants."""

    # Consumed by the notification dispatcher
    INVOICE_CREATED = "invoice_created"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    RENEWAL_REMINDER = "renewal_reminder"
    TRIAL_ENDING = "trial_ending"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"

    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_RENEWED = "subscription_renewed"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    INVOICE_OVERDUE = "invoice_overdue"
    COUPON_APPLIED = "coupon_applied"
    REFUND_REQUESTED = "refund_requested"
    COMMISSION_CREATED = "commission_created"


def _amount(value: Decimal | None) -> str | None:
    return None if value is None else f"{value:.2f}"


def _date(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


async def _publish(
    event_type: str,
    payload: dict[str, Any],
    tenant_id: str | None,
    priority: EventPriority = EventPriority.NORMAL,
    event_bus: "EventBus | None" = None,
) -> None:
    if event_bus is None:
        event_bus = get_event_bus()

    await event_bus.publish(
        event_type=event_type,
        payload={"tenant_id": tenant_id, **payload},
        metadata={"tenant_id": tenant_id, "source": "billing"},
        priority=priority,
    )

    logger.info("billing.event_emitted", event_type=event_type, tenant_id=tenant_id)


# ============================================================================
# Event Emission Helpers
# ============================================================================


async def emit_invoice_created(
    invoice: "InvoiceRecord", event_bus: "EventBus | None" = None
) -> None:
    """Emit invoice created event."""
    await _publish(
        BillingEvents.INVOICE_CREATED,
        {
            "invoice_id": invoice.invoice_id,
            "invoice_number": invoice.invoice_number,
            "subscription_id": invoice.subscription_id,
            "subtotal": _amount(invoice.subtotal),
            "total_amount": _amount(invoice.total_amount),
            "currency": invoice.currency,
            "invoice_date": _date(invoice.invoice_date),
            "due_date": _date(invoice.due_date),
            "billing_email": invoice.billing_email,
        },
        invoice.tenant_id,
        priority=EventPriority.HIGH,
        event_bus=event_bus,
    )


async def emit_invoice_overdue(
    invoice: "InvoiceRecord", event_bus: "EventBus | None" = None
) -> None:
    """Emit invoice overdue event."""
    await _publish(
        BillingEvents.INVOICE_OVERDUE,
        {
            "invoice_id": invoice.invoice_id,
            "invoice_number": invoice.invoice_number,
            "balance_due": _amount(invoice.balance_due),
            "due_date": _date(invoice.due_date),
        },
        invoice.tenant_id,
        priority=EventPriority.HIGH,
        event_bus=event_bus,
    )


async def emit_payment_success(
    transaction: "PaymentTransactionRecord",
    invoice: "InvoiceRecord",
    event_bus: "EventBus | None" = None,
) -> None:
    """Emit payment success event."""
    await _publish(
        BillingEvents.PAYMENT_SUCCESS,
        {
            "invoice_id": invoice.invoice_id,
            "invoice_number": invoice.invoice_number,
            "transaction_id": transaction.transaction_id,
            "amount": _amount(transaction.amount),
            "amount_paid": _amount(invoice.amount_paid),
            "total_amount": _amount(invoice.total_amount),
            "payment_status": invoice.payment_status.value,
            "payment_gateway": transaction.payment_gateway,
            "completed_at": _date(transaction.completed_at),
        },
        transaction.tenant_id,
        priority=EventPriority.HIGH,
        event_bus=event_bus,
    )


async def emit_payment_failed(
    transaction: "PaymentTransactionRecord", event_bus: "EventBus | None" = None
) -> None:
    """Emit payment failed event."""
    await _publish(
        BillingEvents.PAYMENT_FAILED,
        {
            "invoice_id": transaction.invoice_id,
            "transaction_id": transaction.transaction_id,
            "amount": _amount(transaction.amount),
            "payment_gateway": transaction.payment_gateway,
            "failure_reason": transaction.failure_reason,
        },
        transaction.tenant_id,
        priority=EventPriority.HIGH,
        event_bus=event_bus,
    )


async def emit_refund_requested(
    refund: "RefundRecord", event_bus: "EventBus | None" = None
) -> None:
    await _publish(
        BillingEvents.REFUND_REQUESTED,
        {
            "refund_id": refund.refund_id,
            "transaction_id": refund.transaction_id,
            "invoice_id": refund.invoice_id,
            "amount": _amount(refund.amount),
            "refund_type": refund.refund_type.value,
        },
        refund.tenant_id,
        event_bus=event_bus,
    )


def _subscription_payload(subscription: "SubscriptionRecord") -> dict[str, Any]:
    return {
        "subscription_id": subscription.subscription_id,
        "plan_id": subscription.plan_id,
        "status": subscription.status.value,
        "billing_email": subscription.billing_email,
        "current_period_start": _date(subscription.current_period_start),
        "current_period_end": _date(subscription.current_period_end),
        "next_billing_date": _date(subscription.next_billing_date),
    }


async def emit_subscription_created(
    subscription: "SubscriptionRecord", event_bus: "EventBus | None" = None
) -> None:
    await _publish(
        BillingEvents.SUBSCRIPTION_CREATED,
        {**_subscription_payload(subscription), "trial_end": _date(subscription.trial_end)},
        subscription.tenant_id,
        event_bus=event_bus,
    )


async def emit_subscription_renewed(
    subscription: "SubscriptionRecord",
    invoice_id: str | None,
    event_bus: "EventBus | None" = None,
) -> None:
    await _publish(
        BillingEvents.SUBSCRIPTION_RENEWED,
        {**_subscription_payload(subscription), "invoice_id": invoice_id},
        subscription.tenant_id,
        event_bus=event_bus,
    )


async def emit_subscription_cancelled(
    subscription: "SubscriptionRecord", event_bus: "EventBus | None" = None
) -> None:
    """Emit subscription cancelled event."""
    await _publish(
        BillingEvents.SUBSCRIPTION_CANCELLED,
        {
            **_subscription_payload(subscription),
            "cancelled_at": _date(subscription.cancelled_at),
            "reason": subscription.cancellation_reason,
        },
        subscription.tenant_id,
        priority=EventPriority.HIGH,
        event_bus=event_bus,
    )


async def emit_subscription_expired(
    subscription: "SubscriptionRecord", event_bus: "EventBus | None" = None
) -> None:
    await _publish(
        BillingEvents.SUBSCRIPTION_EXPIRED,
        _subscription_payload(subscription),
        subscription.tenant_id,
        event_bus=event_bus,
    )


async def emit_renewal_reminder(
    subscription: "SubscriptionRecord",
    amount: Decimal,
    event_bus: "EventBus | None" = None,
) -> None:
    """Emit renewal reminder ahead of the next billing date."""
    await _publish(
        BillingEvents.RENEWAL_REMINDER,
        {**_subscription_payload(subscription), "amount": _amount(amount)},
        subscription.tenant_id,
        event_bus=event_bus,
    )


async def emit_trial_ending(
    subscription: "SubscriptionRecord", event_bus: "EventBus | None" = None
) -> None:
    """Emit trial ending reminder."""
    await _publish(
        BillingEvents.TRIAL_ENDING,
        {**_subscription_payload(subscription), "trial_end": _date(subscription.trial_end)},
        subscription.tenant_id,
        event_bus=event_bus,
    )


async def emit_coupon_applied(
    application: "CouponApplication", event_bus: "EventBus | None" = None
) -> None:
    await _publish(
        BillingEvents.COUPON_APPLIED,
        {
            "invoice_id": application.invoice.invoice_id,
            "coupon_code": application.coupon.code,
            "discount_amount": _amount(application.discount_amount),
            "total_amount": _amount(application.invoice.total_amount),
        },
        application.invoice.tenant_id,
        event_bus=event_bus,
    )


async def emit_commission_created(
    commission: "CommissionRecord", event_bus: "EventBus | None" = None
) -> None:
    await _publish(
        BillingEvents.COMMISSION_CREATED,
        {
            "commission_id": commission.commission_id,
            "partner_id": commission.partner_id,
            "payment_id": commission.payment_id,
            "commission_amount": _amount(commission.commission_amount),
        },
        commission.tenant_id,
        event_bus=event_bus,
    )


__all__ = [
    "BillingEvents",
    "emit_invoice_created",
    "emit_invoice_overdue",
    "emit_payment_success",
    "emit_payment_failed",
    "emit_refund_requested",
    "emit_subscription_created",
    "emit_subscription_renewed",
    "emit_subscription_cancelled",
    "emit_subscription_expired",
    "emit_renewal_reminder",
    "emit_trial_ending",
    "emit_coupon_applied",
    "emit_commission_created",
]
