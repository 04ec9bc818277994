"""Calendar arithmetic for billing periods."""

from datetime import datetime

from dateutil.relativedelta import relativedelta

from ..enums import BillingPeriod


def add_billing_period(
    value: datetime,
    period: BillingPeriod | str,
    cycles: int = 1,
    anchor_day: int | None = None,
) -> datetime:
    """Advance ``value`` by ``cycles`` whole billing periods.

    Short months clamp the day (Jan 31 + 1 month is Feb 28). With
    ``anchor_day`` the result lands on that day of the target month when it
    exists, so a subscription started on the 31st returns to the 31st after
    passing through February.
    """
    months = BillingPeriod(period).months * cycles
    if anchor_day is None:
        return value + relativedelta(months=months)
    return value + relativedelta(months=months, day=anchor_day)
