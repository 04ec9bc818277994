"""
Structured logging for the billing services.

structlog is configured once from ``settings.observability``. Modules log
through ``structlog.get_logger(__name__)``; audit entries go to the dedicated
``audit`` logger so they can be shipped separately from operational logs.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from pulss.platform.settings import settings

AUDIT_LOGGER_NAME = "audit"

_configured = False


def setup_logging(force: bool = False) -> None:
    """
    Configure structlog and the stdlib root logger from settings.

    Repeated calls are no-ops unless ``force`` is set.
    """
    global _configured
    if _configured and not force:
        return

    observability = settings.observability
    logging.basicConfig(
        format="%(message)s", level=observability.log_level.value, force=force
    )

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    # Values bound with billing_job() / bind_billing_context()
    if observability.enable_correlation_ids:
        processors.insert(0, structlog.contextvars.merge_contextvars)

    if observability.log_format == "json":
        # Decimals and datetimes are rendered as strings
        processors.append(structlog.processors.JSONRenderer(default=str))
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def bind_billing_context(**values: Any) -> None:
    """Attach non-empty ``values`` to every log line of the current context."""
    structlog.contextvars.bind_contextvars(
        **{key: value for key, value in values.items() if value is not None}
    )


def clear_billing_context(*keys: str) -> None:
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()


@contextmanager
def billing_job(name: str, **values: Any) -> Iterator[None]:
    """Tag log lines emitted by a scheduled sweep with ``billing_job=name``."""
    with structlog.contextvars.bound_contextvars(billing_job=name, **values):
        yield


def get_audit_logger() -> structlog.BoundLogger:
    return structlog.get_logger(AUDIT_LOGGER_NAME)


def log_audit_event(
    action: str,
    category: str,
    tenant_id: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    **kwargs: Any,
) -> None:
    """Log an audit event as a structured log entry."""
    get_audit_logger().info(
        action,
        audit_category=category,
        audit_tenant_id=tenant_id,
        audit_resource_type=resource_type,
        audit_resource_id=resource_id,
        audit_old_values=old_values,
        audit_new_values=new_values,
        **kwargs,
    )


setup_logging()
