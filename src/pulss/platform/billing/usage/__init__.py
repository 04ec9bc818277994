"""Usage metering and overage pricing."""

from .service import UsageMeterService

__all__ = ["UsageMeterService"]
