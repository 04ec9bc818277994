"""
Billing unit of work.

Every multi-step financial mutation runs inside one ``BillingTransaction``.
Domain events, audit entries and other secondary effects are queued on the
transaction and run only after the commit succeeds; their failures are logged
and never roll back the financial write.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pulss.platform.events import EventBus, get_event_bus

from .audit import AuditLogger, StructlogAuditLogger
from .exceptions import BillingError, ConcurrencyConflict, PersistenceError

logger = structlog.get_logger(__name__)

PostCommitCallback = Callable[[], Awaitable[Any]]


class BillingTransaction:
    """Async context manager wrapping one database transaction plus its outbox."""

    def __init__(
        self,
        session: AsyncSession,
        event_bus: EventBus | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.session = session
        self.event_bus = event_bus or get_event_bus()
        self.audit_logger = audit_logger or StructlogAuditLogger()
        self.committed = False
        self._outbox: list[tuple[str, PostCommitCallback]] = []

    async def __aenter__(self) -> "BillingTransaction":
        return self

    async def __aexit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> bool:
        if exc is not None:
            await self._rollback()
            if isinstance(exc, BillingError):
                return False
            if isinstance(exc, IntegrityError):
                raise ConcurrencyConflict(
                    "Concurrent update conflict; retry the operation",
                    context={"detail": str(exc.orig)},
                ) from exc
            if isinstance(exc, SQLAlchemyError):
                raise PersistenceError(
                    "Billing transaction failed", context={"detail": str(exc)}
                ) from exc
            return False

        try:
            await self.session.commit()
        except IntegrityError as e:
            await self._rollback()
            raise ConcurrencyConflict(
                "Concurrent update conflict; retry the operation",
                context={"detail": str(e.orig)},
            ) from e
        except SQLAlchemyError as e:
            await self._rollback()
            raise PersistenceError("Billing transaction failed", context={"detail": str(e)}) from e

        self.committed = True
        await self._drain_outbox()
        return False

    async def _rollback(self) -> None:
        self._outbox.clear()
        try:
            await self.session.rollback()
        except SQLAlchemyError as e:
            logger.error("billing.rollback_failed", error=str(e))

    async def _drain_outbox(self) -> None:
        outbox, self._outbox = self._outbox, []
        for name, callback in outbox:
            try:
                await callback()
            except Exception as e:
                logger.warning("billing.post_commit_failed", effect=name, error=str(e))

    # ------------------------------------------------------------------
    # Outbox
    # ------------------------------------------------------------------

    def after_commit(self, callback: PostCommitCallback, name: str | None = None) -> None:
        """Run ``callback`` once the transaction has committed."""
        self._outbox.append((name or getattr(callback, "__name__", "callback"), callback))

    def emit(self, emitter: Callable[..., Awaitable[None]], *args: Any, **kwargs: Any) -> None:
        """Queue a billing event emitter (see ``billing.events``)."""

        async def publish() -> None:
            await emitter(*args, event_bus=self.event_bus, **kwargs)

        self.after_commit(publish, name=emitter.__name__)

    def audit(
        self,
        tenant_id: str | None,
        action: str,
        resource_type: str,
        resource_id: str | None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        async def write() -> None:
            await self.audit_logger.log_audit_event(
                tenant_id=tenant_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                old_values=old_values,
                new_values=new_values,
            )

        self.after_commit(write, name=f"audit:{action}")

    @property
    def pending_effects(self) -> int:
        return len(self._outbox)


@asynccontextmanager
async def billing_transaction(
    session: AsyncSession,
    tx: BillingTransaction | None = None,
    event_bus: EventBus | None = None,
    audit_logger: AuditLogger | None = None,
) -> AsyncIterator[BillingTransaction]:
    """Join ``tx`` when given, otherwise open a new transaction on ``session``."""
    if tx is not None:
        yield tx
        return

    async with BillingTransaction(session, event_bus=event_bus, audit_logger=audit_logger) as new_tx:
        yield new_tx


__all__ = ["BillingTransaction", "PostCommitCallback", "billing_transaction"]
