"""Partner commissions."""

from .service import CommissionCalculator, compute_commission

__all__ = ["CommissionCalculator", "compute_commission"]
