# Overview: Payment methods and the payment-audit side effect recorded after a completion payment.

"""
Payment audit is a secondary effect with its own error channel:

- it runs only after the primary sale update has committed
- it uses its own transaction on the same session
- a failure is rolled back, logged as a warning and returned in the
  PaymentAuditResult; it never reaches the caller of complete_sale as an error
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from ..models import PaymentTransaction

logger = logging.getLogger(__name__)


PAYMENT_METHOD_CASH = "cash"
PAYMENT_METHOD_CARD = "card"
PAYMENT_METHOD_TRANSFER = "transfer"
PAYMENT_METHOD_MOBILE = "mobile"
PAYMENT_METHOD_OTHER = "other"

VALID_PAYMENT_METHODS = [
    PAYMENT_METHOD_CASH,
    PAYMENT_METHOD_CARD,
    PAYMENT_METHOD_TRANSFER,
    PAYMENT_METHOD_MOBILE,
    PAYMENT_METHOD_OTHER,
]


@dataclass(frozen=True)
class PaymentAuditResult:
    recorded: bool
    payment_transaction_id: int | None = None
    error: str | None = None


def _insert_payment_transaction(session, *, sale_id: int, amount_cents: int, payment_method: str,
                                processed_by_user_id: int | None, notes: str | None) -> PaymentTransaction:
    txn = PaymentTransaction(
        sale_id=sale_id,
        amount_cents=amount_cents,
        payment_method=payment_method,
        processed_by_user_id=processed_by_user_id,
        notes=notes,
    )
    session.add(txn)
    session.flush()
    return txn


def record_payment_audit(
    session,
    *,
    sale_id: int,
    amount_cents: int,
    payment_method: str,
    processed_by_user_id: int | None,
    notes: str | None = "Payment received to complete sale",
) -> PaymentAuditResult:
    """Best-effort audit insert. Must be called after the primary transaction committed."""
    try:
        txn = _insert_payment_transaction(
            session,
            sale_id=sale_id,
            amount_cents=amount_cents,
            payment_method=payment_method,
            processed_by_user_id=processed_by_user_id,
            notes=notes,
        )
        session.commit()
        return PaymentAuditResult(recorded=True, payment_transaction_id=txn.id)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("Payment audit for sale %s not recorded: %s", sale_id, exc)
        return PaymentAuditResult(recorded=False, error=str(exc))


def list_payment_transactions(session, sale_id: int) -> list[PaymentTransaction]:
    return (
        session.query(PaymentTransaction)
        .filter_by(sale_id=sale_id)
        .order_by(PaymentTransaction.id.asc())
        .all()
    )
