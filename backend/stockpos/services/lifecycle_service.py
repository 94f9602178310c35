# Overview: Sale state machine; the single authority on legal status / payment-status transitions.

"""
Sale Lifecycle

STATE MACHINE:

    pending --(partial payment)--> pending
    pending --(full payment)-----> completed
    pending ---------------------> cancelled | refunded
    completed -------------------> cancelled | refunded

    cancelled, refunded: terminal

    pending carries payment_status "pending" (nothing paid) or "partial".
    completed carries payment_status "paid".
    cancelled and refunded carry payment_status "refunded".

RULES:
1. Terminal sales accept no further transition (InvalidStateTransition).
2. Only pending sales accept payments; a second completion of a completed
   sale is rejected rather than double-counting payment.
3. Stock is reversed on every transition into cancelled/refunded; never on
   payment transitions.
"""

from __future__ import annotations

from typing import Literal

from ..errors import InvalidStateTransition, ValidationError


SALE_STATUS_PENDING = "pending"
SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_CANCELLED = "cancelled"
SALE_STATUS_REFUNDED = "refunded"

VALID_SALE_STATUSES = {
    SALE_STATUS_PENDING,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_REFUNDED,
}
TERMINAL_STATUSES = {SALE_STATUS_CANCELLED, SALE_STATUS_REFUNDED}
SaleStatus = Literal["pending", "completed", "cancelled", "refunded"]

PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_REFUNDED = "refunded"

VALID_PAYMENT_STATUSES = {
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_REFUNDED,
}

_TRANSITIONS = {
    (SALE_STATUS_PENDING, SALE_STATUS_PENDING),
    (SALE_STATUS_PENDING, SALE_STATUS_COMPLETED),
    (SALE_STATUS_PENDING, SALE_STATUS_CANCELLED),
    (SALE_STATUS_PENDING, SALE_STATUS_REFUNDED),
    (SALE_STATUS_COMPLETED, SALE_STATUS_CANCELLED),
    (SALE_STATUS_COMPLETED, SALE_STATUS_REFUNDED),
}


def validate_status(status: str) -> None:
    if status not in VALID_SALE_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_SALE_STATUSES))}"
        )


def is_terminal(status: str) -> bool:
    validate_status(status)
    return status in TERMINAL_STATUSES


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in _TRANSITIONS


def assert_transition(sale, to_status: str) -> None:
    """Raise InvalidStateTransition unless sale may move to to_status."""
    if can_transition(sale.status, to_status):
        return

    if sale.status in TERMINAL_STATUSES:
        message = f"Sale is already {sale.status}"
    elif to_status in (SALE_STATUS_PENDING, SALE_STATUS_COMPLETED):
        message = "Only pending sales can be completed"
    else:
        message = None
    raise InvalidStateTransition(sale.id, sale.status, to_status, message)


def derive_payment_state(final_amount_cents: int, amount_paid_cents: int) -> tuple[str, str, int]:
    """
    Map a payment position onto (status, payment_status, change_amount_cents).

    - paid == 0: pending / pending, no change (also for a zero-total sale)
    - paid >= final: completed / paid, change = paid - final
    - 0 < paid < final: pending / partial, no change
    """
    if amount_paid_cents < 0:
        raise ValidationError("amount paid cannot be negative")

    if amount_paid_cents == 0:
        return SALE_STATUS_PENDING, PAYMENT_STATUS_PENDING, 0
    if amount_paid_cents >= final_amount_cents:
        return SALE_STATUS_COMPLETED, PAYMENT_STATUS_PAID, amount_paid_cents - final_amount_cents
    return SALE_STATUS_PENDING, PAYMENT_STATUS_PARTIAL, 0
