"""
Document numbering (``INV-2026-000042``, ``RCP-2026-000007``).

Each ``{prefix}-{year}-`` has one row in ``invoice_sequences`` that is locked
for the duration of the issuing transaction, so two concurrent issuers never
receive the same number. A missing row is seeded from the highest number
already issued under that prefix. The unique constraint on the document
number column remains the last line of defence.
"""

from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from .models import InvoiceSequenceTable

logger = structlog.get_logger(__name__)

SEQUENCE_WIDTH = 6


def format_document_number(prefix: str, issued_at: datetime, sequence: int) -> str:
    return f"{prefix}-{issued_at.year}-{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(number: str) -> int:
    """Trailing sequence of a document number; 0 when it cannot be parsed."""
    tail = number.rsplit("-", 1)[-1]
    return int(tail) if tail.isdigit() else 0


async def _highest_issued(
    session: AsyncSession, number_column: InstrumentedAttribute[str], year_prefix: str
) -> int:
    result = await session.execute(
        select(number_column)
        .where(number_column.like(f"{year_prefix}%"))
        .order_by(number_column.desc())
        .limit(1)
    )
    latest = result.scalar_one_or_none()
    return parse_sequence(latest) if latest else 0


async def allocate_document_number(
    session: AsyncSession,
    prefix: str,
    issued_at: datetime,
    number_column: InstrumentedAttribute[str],
) -> str:
    """Reserve the next number for ``prefix`` in the caller's transaction."""
    year_prefix = f"{prefix}-{issued_at.year}-"

    result = await session.execute(
        select(InvoiceSequenceTable)
        .where(InvoiceSequenceTable.prefix == year_prefix)
        .with_for_update()
    )
    sequence = result.scalar_one_or_none()

    if sequence is None:
        seed = await _highest_issued(session, number_column, year_prefix)
        sequence = InvoiceSequenceTable(prefix=year_prefix, last_value=seed)
        session.add(sequence)
        logger.info("numbering.sequence_seeded", prefix=year_prefix, seed=seed)

    sequence.last_value += 1
    await session.flush()

    return format_document_number(prefix, issued_at, sequence.last_value)
