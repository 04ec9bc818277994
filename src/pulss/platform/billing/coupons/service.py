"""
Coupon engine.

Coupons discount a single pending invoice. The coupon row is locked while a
redemption is validated and recorded, so a capped coupon is never oversold
and a first-time-only coupon is redeemed at most once per tenant.
"""

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pulss.platform.db import utcnow
from pulss.platform.events import EventBus

from ..audit import AuditLogger
from ..config import BillingConfig, get_billing_config
from ..enums import DiscountType, InvoiceStatus, PaymentStatus
from ..events import emit_coupon_applied
from ..exceptions import CouponNotFoundError, InvoiceNotFoundError, ValidationError
from ..models import CouponRedemptionTable, CouponTable, InvoiceTable, new_id
from ..money_utils import ZERO, format_inr, round_amount
from ..schemas import (
    CouponApplication,
    CouponCreate,
    CouponRecord,
    CouponRedemptionRecord,
    CouponUsage,
    CouponValidation,
    InvoiceRecord,
)
from ..transaction import BillingTransaction, billing_transaction

logger = structlog.get_logger(__name__)


def calculate_discount(coupon: CouponTable | CouponRecord, amount: Decimal) -> Decimal:
    """Discount ``coupon`` grants on ``amount``, never more than ``amount`` itself."""
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = amount * coupon.discount_value / Decimal("100")
        if coupon.max_discount_amount is not None:
            discount = min(discount, coupon.max_discount_amount)
    else:
        discount = coupon.discount_value
    return round_amount(max(min(discount, amount), ZERO))


class CouponEngine:
    """Creates, previews and redeems discount coupons."""

    def __init__(
        self,
        session: AsyncSession,
        config: BillingConfig | None = None,
        event_bus: EventBus | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.session = session
        self.config = config or get_billing_config()
        self.event_bus = event_bus
        self.audit_logger = audit_logger

    def _transaction(self, tx: BillingTransaction | None = None):
        return billing_transaction(
            self.session, tx, event_bus=self.event_bus, audit_logger=self.audit_logger
        )

    async def _get_coupon(self, code: str, for_update: bool = False) -> CouponTable:
        stmt = select(CouponTable).where(CouponTable.code == code.strip().upper())
        if for_update:
            stmt = stmt.with_for_update()
        coupon = (await self.session.execute(stmt)).scalar_one_or_none()
        if coupon is None:
            raise CouponNotFoundError(f"Coupon {code} not found", resource_id=code)
        return coupon

    async def get_coupon(self, code: str) -> CouponRecord:
        return CouponRecord.model_validate(await self._get_coupon(code))

    async def create_coupon(
        self, data: CouponCreate, *, tx: BillingTransaction | None = None
    ) -> CouponRecord:
        async with self._transaction(tx) as tx:
            existing = await self.session.execute(
                select(CouponTable.coupon_id).where(CouponTable.code == data.code)
            )
            if existing.scalar_one_or_none() is not None:
                raise ValidationError(
                    f"Coupon code {data.code} already exists", context={"code": data.code}
                )

            coupon = CouponTable(
                coupon_id=new_id(),
                code=data.code,
                description=data.description,
                discount_type=data.discount_type.value,
                discount_value=data.discount_value,
                min_purchase_amount=data.min_purchase_amount,
                max_discount_amount=data.max_discount_amount,
                valid_from=data.valid_from or utcnow(),
                valid_until=data.valid_until,
                max_redemptions=data.max_redemptions,
                redemptions_count=0,
                first_time_only=data.first_time_only,
                is_active=True,
            )
            self.session.add(coupon)
            await self.session.flush()

            record = CouponRecord.model_validate(coupon)
            tx.audit(
                None,
                "coupon.created",
                "coupon",
                record.coupon_id,
                new_values={
                    "code": record.code,
                    "discount_type": record.discount_type.value,
                    "discount_value": str(record.discount_value),
                },
            )

        logger.info("coupon.created", coupon_id=record.coupon_id, code=record.code)
        return record

    async def deactivate_coupon(self, code: str) -> CouponRecord:
        async with self._transaction() as tx:
            coupon = await self._get_coupon(code, for_update=True)
            coupon.is_active = False
            await self.session.flush()
            record = CouponRecord.model_validate(coupon)
            tx.audit(None, "coupon.deactivated", "coupon", record.coupon_id)
        return record

    async def get_coupon_usage(self, code: str) -> CouponUsage:
        """Redemption history for ``code``, newest first, with totals."""
        coupon = await self._get_coupon(code)
        result = await self.session.execute(
            select(CouponRedemptionTable, InvoiceTable.invoice_number)
            .join(InvoiceTable, InvoiceTable.invoice_id == CouponRedemptionTable.invoice_id)
            .where(CouponRedemptionTable.coupon_id == coupon.coupon_id)
            .order_by(CouponRedemptionTable.redeemed_at.desc())
        )
        redemptions = [
            CouponRedemptionRecord.model_validate(redemption).model_copy(
                update={"invoice_number": invoice_number}
            )
            for redemption, invoice_number in result.all()
        ]
        return CouponUsage(
            coupon=CouponRecord.model_validate(coupon),
            total_uses=len(redemptions),
            total_discount_given=round_amount(sum((r.discount_amount for r in redemptions), ZERO)),
            unique_tenants=len({r.tenant_id for r in redemptions}),
            redemptions=redemptions,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_window(self, coupon: CouponTable, now: datetime) -> None:
        if not coupon.is_active:
            raise ValidationError("Coupon is not active", context={"code": coupon.code})
        if coupon.valid_from and now < coupon.valid_from:
            raise ValidationError("Coupon is not yet valid", context={"code": coupon.code})
        if coupon.valid_until and now > coupon.valid_until:
            raise ValidationError("Coupon has expired", context={"code": coupon.code})
        if (
            coupon.max_redemptions is not None
            and coupon.redemptions_count >= coupon.max_redemptions
        ):
            raise ValidationError(
                "Coupon usage limit reached",
                context={"code": coupon.code, "max_redemptions": coupon.max_redemptions},
            )

    async def _check_first_time(self, coupon: CouponTable, tenant_id: str) -> None:
        if not coupon.first_time_only:
            return
        result = await self.session.execute(
            select(func.count(CouponRedemptionTable.redemption_id)).where(
                and_(
                    CouponRedemptionTable.coupon_id == coupon.coupon_id,
                    CouponRedemptionTable.tenant_id == tenant_id,
                )
            )
        )
        if result.scalar_one() > 0:
            raise ValidationError(
                "Coupon can only be used once",
                context={"code": coupon.code, "tenant_id": tenant_id},
            )

    @staticmethod
    def _check_minimum(coupon: CouponTable, amount: Decimal) -> None:
        if coupon.min_purchase_amount is not None and amount < coupon.min_purchase_amount:
            raise ValidationError(
                f"Minimum purchase amount of ₹{coupon.min_purchase_amount.normalize():f} required",
                context={"code": coupon.code, "amount": str(amount)},
            )

    async def validate_coupon(
        self,
        code: str,
        tenant_id: str,
        amount: Decimal,
        *,
        now: datetime | None = None,
    ) -> CouponValidation:
        """Preview the discount ``code`` would give on ``amount``. Nothing is written."""
        now = now or utcnow()
        coupon = await self._get_coupon(code)
        self._check_window(coupon, now)
        await self._check_first_time(coupon, tenant_id)
        self._check_minimum(coupon, amount)

        discount = calculate_discount(coupon, amount)
        return CouponValidation(
            code=coupon.code,
            discount_type=DiscountType(coupon.discount_type),
            discount_value=coupon.discount_value,
            discount_amount=discount,
            final_amount=round_amount(amount - discount),
        )

    # ------------------------------------------------------------------
    # Redemption
    # ------------------------------------------------------------------

    async def apply_coupon(
        self,
        code: str,
        tenant_id: str,
        invoice_id: str,
        *,
        tx: BillingTransaction | None = None,
        now: datetime | None = None,
    ) -> CouponApplication:
        """Discount a pending invoice.

        The discount is taken off the taxable value (``subtotal - discount``)
        and the total; the tax already charged on the invoice is unchanged.
        The discount never exceeds the remaining taxable value.
        """
        now = now or utcnow()

        async with self._transaction(tx) as tx:
            coupon = await self._get_coupon(code, for_update=True)
            self._check_window(coupon, now)
            await self._check_first_time(coupon, tenant_id)

            result = await self.session.execute(
                select(InvoiceTable)
                .where(
                    and_(InvoiceTable.invoice_id == invoice_id, InvoiceTable.tenant_id == tenant_id)
                )
                .with_for_update()
            )
            invoice = result.scalar_one_or_none()
            if invoice is None:
                raise InvoiceNotFoundError(resource_id=invoice_id, tenant_id=tenant_id)
            if (
                invoice.status == InvoiceStatus.CANCELLED.value
                or invoice.payment_status != PaymentStatus.UNPAID.value
                or invoice.amount_paid > ZERO
            ):
                raise ValidationError(
                    f"Coupons cannot be applied to a {invoice.payment_status} "
                    f"{invoice.status} invoice",
                    context={"invoice_id": invoice_id},
                )

            already = await self.session.execute(
                select(CouponRedemptionTable.redemption_id).where(
                    and_(
                        CouponRedemptionTable.coupon_id == coupon.coupon_id,
                        CouponRedemptionTable.invoice_id == invoice_id,
                    )
                )
            )
            if already.scalar_one_or_none() is not None:
                raise ValidationError(
                    "Coupon has already been applied to this invoice",
                    context={"code": coupon.code, "invoice_id": invoice_id},
                )

            taxable_value = invoice.subtotal - invoice.discount_amount
            self._check_minimum(coupon, taxable_value)

            discount = calculate_discount(coupon, taxable_value)
            old_values = {
                "discount_amount": str(invoice.discount_amount),
                "total_amount": str(invoice.total_amount),
            }
            invoice.discount_amount = round_amount(invoice.discount_amount + discount)
            invoice.total_amount = round_amount(invoice.total_amount - discount)

            redemption = CouponRedemptionTable(
                redemption_id=new_id(),
                coupon_id=coupon.coupon_id,
                tenant_id=tenant_id,
                invoice_id=invoice_id,
                discount_amount=discount,
                redeemed_at=now,
            )
            self.session.add(redemption)
            coupon.redemptions_count += 1
            await self.session.flush()

            application = CouponApplication(
                redemption_id=redemption.redemption_id,
                coupon=CouponRecord.model_validate(coupon),
                invoice=InvoiceRecord.model_validate(invoice),
                discount_amount=discount,
            )
            tx.emit(emit_coupon_applied, application)
            tx.audit(
                tenant_id,
                "coupon.applied",
                "invoice",
                invoice_id,
                old_values=old_values,
                new_values={
                    "coupon_code": coupon.code,
                    "discount_amount": str(invoice.discount_amount),
                    "total_amount": str(invoice.total_amount),
                },
            )

        logger.info(
            "coupon.applied",
            code=application.coupon.code,
            tenant_id=tenant_id,
            invoice_id=invoice_id,
            discount=format_inr(discount),
        )
        return application
