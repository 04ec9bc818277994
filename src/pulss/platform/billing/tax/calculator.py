"""
GST calculation.

Intra-state supply is taxed as CGST + SGST (half the rate each); inter-state
supply as IGST at the full rate. Amounts are rounded half-up to paise.
"""

from decimal import Decimal

from ..money_utils import money_handler, round_amount
from ..schemas import GSTBreakdown
from .states import is_same_state

DEFAULT_GST_RATE = Decimal("18")
HUNDRED = Decimal("100")


def calculate_gst(
    amount: Decimal | int | float | str,
    supplier_state: str,
    recipient_state: str,
    rate: Decimal | int | float | str = DEFAULT_GST_RATE,
) -> GSTBreakdown:
    """Split GST on ``amount`` according to place of supply.

    >>> calculate_gst(1000, "KA", "KA").cgst_amount
    Decimal('90.00')
    """
    taxable_value = round_amount(amount)
    gst_rate = money_handler.to_decimal(rate)
    if taxable_value < 0:
        raise ValueError("Taxable amount cannot be negative")
    if gst_rate < 0:
        raise ValueError("GST rate cannot be negative")

    zero = round_amount(0)
    if is_same_state(supplier_state, recipient_state):
        half_rate = gst_rate / 2
        cgst = round_amount(taxable_value * half_rate / HUNDRED)
        sgst = cgst
        igst = zero
        cgst_rate, sgst_rate, igst_rate = half_rate, half_rate, Decimal("0")
        intra_state = True
    else:
        cgst = sgst = zero
        igst = round_amount(taxable_value * gst_rate / HUNDRED)
        cgst_rate, sgst_rate, igst_rate = Decimal("0"), Decimal("0"), gst_rate
        intra_state = False

    total_tax = cgst + sgst + igst
    return GSTBreakdown(
        taxable_value=taxable_value,
        gst_rate=gst_rate,
        cgst_rate=cgst_rate,
        sgst_rate=sgst_rate,
        igst_rate=igst_rate,
        cgst_amount=cgst,
        sgst_amount=sgst,
        igst_amount=igst,
        total_tax=total_tax,
        total_amount=taxable_value + total_tax,
        is_intra_state=intra_state,
    )
