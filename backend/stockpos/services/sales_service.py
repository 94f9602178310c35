"""
Sale Transaction Coordinator

Creates sales and drives their lifecycle. Every public operation is one
all-or-nothing transaction on the session passed in by the caller:

    begin -> lock rows (sale first, then products in item order) -> write
    Sale / SaleItems / ledger entries -> commit

Any error rolls the whole unit back, so a sale never persists with only some
of its items debited, and a cancel/refund never restores only part of the
stock. The coordinator keeps no state between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from ..errors import InsufficientStock, SaleNotFound, ValidationError
from ..models import Sale, SaleItem
from ..validation import SaleUpdate, require_money, require_positive_quantity
from stockpos.time_utils import utcnow, to_utc_z
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_invoice_number
from .inventory_service import (
    PRODUCT_STATUS_DISCONTINUED,
    REFERENCE_RETURN,
    REFERENCE_SALE,
    credit,
    get_product,
    reserve_and_debit,
)
from .lifecycle_service import (
    PAYMENT_STATUS_REFUNDED,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_REFUNDED,
    assert_transition,
    derive_payment_state,
)
from .payment_service import (
    PAYMENT_METHOD_CASH,
    VALID_PAYMENT_METHODS,
    PaymentAuditResult,
    record_payment_audit,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerInfo:
    name: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class SaleItemRequest:
    product_id: int
    quantity: int
    # None -> catalog selling price
    unit_price_cents: int | None = None


@dataclass(frozen=True)
class PaymentFields:
    amount_paid_cents: int = 0
    payment_method: str = PAYMENT_METHOD_CASH
    discount_amount_cents: int = 0
    # Explicit tax wins over a rate; with neither, the default rate applies
    tax_amount_cents: int | None = None
    tax_rate_bps: int | None = None
    notes: str | None = None


@dataclass
class _PricedItem:
    request: SaleItemRequest
    product_name: str
    unit_price_cents: int
    total_price_cents: int = field(init=False)

    def __post_init__(self):
        self.total_price_cents = self.unit_price_cents * self.request.quantity


def compute_tax_cents(subtotal_cents: int, rate_bps: int) -> int:
    """subtotal * rate, rate in basis points, rounded half-up to the cent."""
    return (subtotal_cents * rate_bps + 5_000) // 10_000


def _validate_payment_method(method: str) -> None:
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}"
        )


def _validate_create_request(items: Sequence[SaleItemRequest], payment: PaymentFields) -> None:
    if not items:
        raise ValidationError("Sale must contain at least one item")

    for index, item in enumerate(items):
        if isinstance(item.product_id, bool) or not isinstance(item.product_id, int):
            raise ValidationError(f"items[{index}].product_id must be an integer")
        require_positive_quantity(item.quantity, f"items[{index}].quantity")
        if item.unit_price_cents is not None:
            require_money(item.unit_price_cents, f"items[{index}].unit_price_cents")

    require_money(payment.amount_paid_cents, "amount_paid_cents")
    require_money(payment.discount_amount_cents, "discount_amount_cents")
    if payment.tax_amount_cents is not None:
        require_money(payment.tax_amount_cents, "tax_amount_cents")
    if payment.tax_rate_bps is not None:
        require_money(payment.tax_rate_bps, "tax_rate_bps")
    _validate_payment_method(payment.payment_method)


def _get_sale_locked(session, sale_id: int) -> Sale:
    sale = lock_for_update(session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise SaleNotFound(sale_id)
    return sale


def get_sale(session, sale_id: int) -> Sale:
    """Sale with its items loaded; SaleNotFound otherwise."""
    sale = session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFound(sale_id)
    sale.items  # load while the session is open
    return sale


# =============================================================================
# CREATE
# =============================================================================

def create_sale(
    session,
    customer: CustomerInfo | None,
    items: Sequence[SaleItemRequest],
    payment: PaymentFields | None = None,
    *,
    actor_id: int | None,
    default_tax_rate_bps: int = 0,
    invoice_prefix: str = "INV",
    now: datetime | None = None,
) -> Sale:
    """
    Create a sale, its items, and one stock debit per item, atomically.

    Status is derived from the amount paid against the final amount:
    completed/paid (with change), pending/partial, or pending/pending.

    Raises:
        ValidationError: bad input (checked before the transaction opens),
            discontinued product, or a discount larger than the sale
        ProductNotFound, InsufficientStock: the whole sale is rolled back
        TransientStoreError: retries exhausted; safe to retry
    """
    customer = customer or CustomerInfo()
    payment = payment or PaymentFields()
    _validate_create_request(items, payment)

    def _op() -> Sale:
        created_at = now or utcnow()

        # Lock and price in request order
        priced: list[_PricedItem] = []
        for item in items:
            product = get_product(session, item.product_id, lock=True)
            if product.status == PRODUCT_STATUS_DISCONTINUED:
                raise ValidationError(
                    f"Product {product.name} is discontinued",
                    details={"product_id": product.id},
                )
            if item.quantity > product.current_stock:
                raise InsufficientStock(product.id, product.name, item.quantity, product.current_stock)

            unit_price = item.unit_price_cents
            if unit_price is None:
                unit_price = product.selling_price_cents
            priced.append(_PricedItem(request=item, product_name=product.name, unit_price_cents=unit_price))

        subtotal = sum(p.total_price_cents for p in priced)
        if payment.tax_amount_cents is not None:
            tax = payment.tax_amount_cents
        else:
            rate = payment.tax_rate_bps if payment.tax_rate_bps is not None else default_tax_rate_bps
            tax = compute_tax_cents(subtotal, rate)

        discount = payment.discount_amount_cents
        if discount > subtotal + tax:
            raise ValidationError(
                "Discount cannot exceed the sale amount",
                details={"discount_amount_cents": discount, "subtotal_cents": subtotal, "tax_amount_cents": tax},
            )

        final_amount = subtotal - discount + tax
        status, payment_status, change = derive_payment_state(final_amount, payment.amount_paid_cents)

        invoice_number = next_invoice_number(session, on_date=created_at.date(), prefix=invoice_prefix)

        sale = Sale(
            invoice_number=invoice_number,
            customer_name=customer.name or None,
            customer_email=customer.email or None,
            customer_phone=customer.phone or None,
            total_amount_cents=subtotal,
            discount_amount_cents=discount,
            tax_amount_cents=tax,
            final_amount_cents=final_amount,
            amount_paid_cents=payment.amount_paid_cents,
            change_amount_cents=change,
            payment_method=payment.payment_method,
            payment_status=payment_status,
            status=status,
            sold_by_user_id=actor_id,
            notes=payment.notes or None,
            created_at=created_at,
            completed_at=created_at if status == SALE_STATUS_COMPLETED else None,
        )
        session.add(sale)
        session.flush()

        for p in priced:
            session.add(SaleItem(
                sale_id=sale.id,
                product_id=p.request.product_id,
                quantity=p.request.quantity,
                unit_price_cents=p.unit_price_cents,
                total_price_cents=p.total_price_cents,
            ))
            reserve_and_debit(
                session,
                p.request.product_id,
                p.request.quantity,
                reference_kind=REFERENCE_SALE,
                reference_id=sale.id,
                actor_id=actor_id,
                note=f"Sale {invoice_number} - {p.request.quantity} units",
            )

        session.flush()
        return sale

    sale = run_in_transaction(session, _op)
    logger.info(
        "Sale %s created: status=%s payment_status=%s final=%d",
        sale.invoice_number, sale.status, sale.payment_status, sale.final_amount_cents,
    )
    return sale


# =============================================================================
# COMPLETE (payment only, no stock movement)
# =============================================================================

def complete_sale(
    session,
    sale_id: int,
    amount_paid_cents: int,
    payment_method: str | None = None,
    *,
    actor_id: int | None,
    now: datetime | None = None,
    audit_listener: Callable[[PaymentAuditResult], None] | None = None,
) -> Sale:
    """
    Add a payment to a pending sale.

    The new total paid decides the outcome: completed/paid with change when it
    covers the final amount, otherwise pending/partial. Completed, cancelled and
    refunded sales are rejected with InvalidStateTransition.

    The payment-audit record is written after the commit; its outcome goes to
    audit_listener (and the log), never to the caller as an error.
    """
    if isinstance(amount_paid_cents, bool) or not isinstance(amount_paid_cents, int) or amount_paid_cents <= 0:
        raise ValidationError("Amount paid must be greater than 0")
    if payment_method is not None:
        _validate_payment_method(payment_method)

    def _op() -> Sale:
        sale = _get_sale_locked(session, sale_id)

        total_paid = sale.amount_paid_cents + amount_paid_cents
        status, payment_status, change = derive_payment_state(sale.final_amount_cents, total_paid)
        assert_transition(sale, status)

        SaleUpdate(
            status=status,
            payment_status=payment_status,
            amount_paid_cents=total_paid,
            change_amount_cents=change,
            payment_method=payment_method or sale.payment_method,
            completed_at=(now or utcnow()) if status == SALE_STATUS_COMPLETED else None,
        ).apply_to(sale)
        session.flush()
        return sale

    sale = run_in_transaction(session, _op)
    logger.info(
        "Sale %s payment of %d applied: status=%s payment_status=%s",
        sale.invoice_number, amount_paid_cents, sale.status, sale.payment_status,
    )

    audit = record_payment_audit(
        session,
        sale_id=sale.id,
        amount_cents=amount_paid_cents,
        payment_method=sale.payment_method,
        processed_by_user_id=actor_id,
    )
    if audit_listener is not None:
        # Payment is committed; listener errors are logged only
        try:
            audit_listener(audit)
        except Exception:
            logger.exception("Payment audit listener failed for sale %s", sale.invoice_number)
    return sale


# =============================================================================
# CANCEL / REFUND (stock restored)
# =============================================================================

def _restore_stock(session, sale: Sale, *, actor_id: int | None, note: str) -> None:
    items = (
        session.query(SaleItem)
        .filter_by(sale_id=sale.id)
        .order_by(SaleItem.id.asc())
        .all()
    )
    for item in items:
        credit(
            session,
            item.product_id,
            item.quantity,
            reference_kind=REFERENCE_RETURN,
            reference_id=sale.id,
            actor_id=actor_id,
            note=note,
        )


def cancel_sale(session, sale_id: int, *, actor_id: int | None, now: datetime | None = None) -> Sale:
    """Cancel a sale and restore the stock of every item. Terminal sales are rejected."""
    def _op() -> Sale:
        sale = _get_sale_locked(session, sale_id)
        assert_transition(sale, SALE_STATUS_CANCELLED)

        _restore_stock(session, sale, actor_id=actor_id, note="Sale cancellation - stock restored")

        SaleUpdate(
            status=SALE_STATUS_CANCELLED,
            payment_status=PAYMENT_STATUS_REFUNDED,
            cancelled_at=now or utcnow(),
            cancelled_by_user_id=actor_id,
        ).apply_to(sale)
        session.flush()
        return sale

    sale = run_in_transaction(session, _op)
    logger.info("Sale %s cancelled by %s; stock restored", sale.invoice_number, actor_id)
    return sale


def refund_sale(
    session,
    sale_id: int,
    *,
    actor_id: int | None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Sale:
    """
    Refund a sale: same stock restoration as cancel, status refunded, and a
    timestamped line appended to the existing notes (never replacing them).
    """
    def _op() -> Sale:
        sale = _get_sale_locked(session, sale_id)
        assert_transition(sale, SALE_STATUS_REFUNDED)

        refunded_at = now or utcnow()
        _restore_stock(session, sale, actor_id=actor_id, note=notes or "Sale refund")

        refund_line = f"Refunded on {to_utc_z(refunded_at)}: {notes or ''}".rstrip()
        combined = f"{sale.notes}\n{refund_line}" if sale.notes else refund_line

        SaleUpdate(
            status=SALE_STATUS_REFUNDED,
            payment_status=PAYMENT_STATUS_REFUNDED,
            notes=combined,
            refunded_at=refunded_at,
            refunded_by_user_id=actor_id,
        ).apply_to(sale)
        session.flush()
        return sale

    sale = run_in_transaction(session, _op)
    logger.info("Sale %s refunded by %s; stock restored", sale.invoice_number, actor_id)
    return sale
