"""Discount coupons."""

from .service import CouponEngine, calculate_discount

__all__ = ["CouponEngine", "calculate_discount"]
