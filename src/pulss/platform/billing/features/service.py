"""
Billing feature toggles.

Platform admins switch optional billing features on or off per tenant. A
feature without a permission row is off.
"""

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pulss.platform.db import utcnow

from ..audit import AuditLogger
from ..enums import BillingFeature
from ..exceptions import ValidationError
from ..models import TenantFeaturePermissionTable, TenantTable, new_id
from ..schemas import FeaturePermissionRecord
from ..transaction import BillingTransaction, billing_transaction

logger = structlog.get_logger(__name__)


def _feature(feature_key: BillingFeature | str) -> BillingFeature:
    try:
        return BillingFeature(feature_key)
    except ValueError:
        raise ValidationError(
            f"Unknown billing feature: {feature_key}",
            context={"allowed": [f.value for f in BillingFeature]},
        ) from None


class FeatureToggleService:
    """Reads and flips tenant feature permissions."""

    def __init__(self, session: AsyncSession, audit_logger: AuditLogger | None = None) -> None:
        self.session = session
        self.audit_logger = audit_logger

    async def is_feature_enabled(self, tenant_id: str, feature_key: BillingFeature | str) -> bool:
        result = await self.session.execute(
            select(TenantFeaturePermissionTable.enabled).where(
                and_(
                    TenantFeaturePermissionTable.tenant_id == tenant_id,
                    TenantFeaturePermissionTable.feature_key == _feature(feature_key).value,
                )
            )
        )
        return bool(result.scalar_one_or_none())

    async def list_features(self, tenant_id: str) -> dict[BillingFeature, bool]:
        """Every known feature with its state for ``tenant_id``."""
        result = await self.session.execute(
            select(
                TenantFeaturePermissionTable.feature_key, TenantFeaturePermissionTable.enabled
            ).where(TenantFeaturePermissionTable.tenant_id == tenant_id)
        )
        stored = dict(result.all())
        return {feature: bool(stored.get(feature.value, False)) for feature in BillingFeature}

    async def set_feature_enabled(
        self,
        tenant_id: str,
        feature_key: BillingFeature | str,
        enabled: bool,
        admin_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        *,
        tx: BillingTransaction | None = None,
        now: datetime | None = None,
    ) -> FeaturePermissionRecord:
        feature = _feature(feature_key)
        now = now or utcnow()

        async with billing_transaction(self.session, tx, audit_logger=self.audit_logger) as tx:
            tenant = await self.session.execute(
                select(TenantTable.tenant_id).where(TenantTable.tenant_id == tenant_id)
            )
            if tenant.scalar_one_or_none() is None:
                raise ValidationError(
                    "Tenant billing profile not found", context={"tenant_id": tenant_id}
                )

            result = await self.session.execute(
                select(TenantFeaturePermissionTable)
                .where(
                    and_(
                        TenantFeaturePermissionTable.tenant_id == tenant_id,
                        TenantFeaturePermissionTable.feature_key == feature.value,
                    )
                )
                .with_for_update()
            )
            permission = result.scalar_one_or_none()
            old_values = None
            if permission is None:
                permission = TenantFeaturePermissionTable(
                    permission_id=new_id(),
                    tenant_id=tenant_id,
                    feature_key=feature.value,
                    feature_metadata={},
                )
                self.session.add(permission)
            else:
                old_values = {"enabled": permission.enabled}

            permission.enabled = enabled
            permission.enabled_by = admin_id
            permission.enabled_at = now
            if metadata is not None:
                permission.feature_metadata = metadata
            await self.session.flush()

            record = FeaturePermissionRecord.model_validate(permission)
            tx.audit(
                tenant_id,
                "feature.enabled" if enabled else "feature.disabled",
                "feature",
                record.permission_id,
                old_values=old_values,
                new_values={"feature_key": feature.value, "enabled": enabled, "by": admin_id},
            )

        logger.info(
            "billing.feature_toggled",
            tenant_id=tenant_id,
            feature=feature.value,
            enabled=enabled,
        )
        return record
