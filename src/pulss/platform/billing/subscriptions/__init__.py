"""Plans, subscriptions and the renewal sweep."""

from .periods import add_billing_period
from .service import RenewalOutcome, SubscriptionManager

__all__ = ["RenewalOutcome", "SubscriptionManager", "add_billing_period"]
