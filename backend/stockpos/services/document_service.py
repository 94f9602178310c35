# Overview: Invoice sequencer; allocates unique per-day invoice numbers inside the caller's transaction.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import TransientStoreError
from ..models import InvoiceSequence
from stockpos.time_utils import utcnow


class InvoiceSequenceError(TransientStoreError):
    """Raised when the day's counter could not be allocated after one retry."""


def _increment(session, sequence_key: str) -> int | None:
    stmt = (
        update(InvoiceSequence)
        .where(InvoiceSequence.sequence_key == sequence_key)
        .values(next_number=InvoiceSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        session.query(InvoiceSequence.next_number)
        .filter_by(sequence_key=sequence_key)
        .scalar()
    )
    return current - 1


def next_invoice_number(
    session,
    *,
    on_date: date | None = None,
    prefix: str = "INV",
    pad: int = 4,
) -> str:
    """
    Atomically allocate the next invoice number for a calendar day.

    Format: {prefix}-YYYYMMDD-NNNN, NNNN being the 1-based position of the sale
    within its day. Must run inside the sale-creation transaction: the UPDATE
    holds the counter row lock until that transaction ends, so a rolled-back
    sale also gives its number back.

    First sale of the day inserts the counter under a SAVEPOINT; if a concurrent
    transaction inserted it first, the increment is retried once.
    """
    day = on_date or utcnow().date()
    sequence_key = f"{prefix}-{day:%Y%m%d}"

    number = _increment(session, sequence_key)
    if number is None:
        try:
            with session.begin_nested():
                session.add(InvoiceSequence(sequence_key=sequence_key, next_number=2))
            number = 1
        except IntegrityError:
            number = _increment(session, sequence_key)
            if number is None:
                raise InvoiceSequenceError(
                    "Could not allocate invoice number",
                    details={"sequence_key": sequence_key},
                )

    return f"{sequence_key}-{number:0{pad}d}"
