"""Per-tenant billing feature toggles."""

from .service import FeatureToggleService

__all__ = ["FeatureToggleService"]
