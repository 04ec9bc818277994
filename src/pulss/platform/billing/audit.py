"""
Audit logging for billing mutations.

Persistence of audit trails belongs to the audit service; billing only calls
an ``AuditLogger``. The default implementation writes structured audit log
entries.
"""

from typing import Any, Protocol, runtime_checkable

from pulss.platform.logging import log_audit_event


@runtime_checkable
class AuditLogger(Protocol):
    """Fire-and-forget audit sink."""

    async def log_audit_event(
        self,
        tenant_id: str | None,
        action: str,
        resource_type: str,
        resource_id: str | None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None: ...


class StructlogAuditLogger:
    """Audit sink backed by the ``audit`` structlog logger."""

    async def log_audit_event(
        self,
        tenant_id: str | None,
        action: str,
        resource_type: str,
        resource_id: str | None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        log_audit_event(
            action=action,
            category="billing",
            tenant_id=tenant_id,
            resource_type=resource_type,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
        )
