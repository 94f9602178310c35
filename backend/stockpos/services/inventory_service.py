# Overview: Inventory ledger store; the only writer of Product.current_stock.

"""
Inventory Ledger Invariants (authoritative)

- Product.current_stock is written only by reserve_and_debit, credit and adjust.
- Each of them locks the product row for the rest of the enclosing transaction,
  reads the counter, checks, writes, and appends exactly one StockMovement.
- Nothing here commits: the caller owns the transaction boundary, so the
  counter update and the movement row always commit or roll back together.
- current_stock never goes below zero after a committed operation.
- reference_id is the id of the originating transaction (the sale for
  sale/return movements).
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..errors import InsufficientStock, ProductNotFound, ValidationError
from ..models import Product, StockMovement
from ..validation import require_positive_quantity
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_ADJUSTMENT = "adjustment"

REFERENCE_SALE = "sale"
REFERENCE_RETURN = "return"
REFERENCE_ADJUSTMENT = "adjustment"
VALID_REFERENCE_KINDS = {REFERENCE_SALE, REFERENCE_RETURN, REFERENCE_ADJUSTMENT}

PRODUCT_STATUS_ACTIVE = "active"
PRODUCT_STATUS_OUT_OF_STOCK = "out_of_stock"
PRODUCT_STATUS_DISCONTINUED = "discontinued"


def get_product(session, product_id: int, *, lock: bool = False) -> Product:
    query = session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFound(product_id)
    return product


def _status_after_stock_change(status: str, new_stock: int) -> str:
    if status == PRODUCT_STATUS_DISCONTINUED:
        return status
    if new_stock == 0:
        return PRODUCT_STATUS_OUT_OF_STOCK
    if status == PRODUCT_STATUS_OUT_OF_STOCK:
        return PRODUCT_STATUS_ACTIVE
    return status


def _validate_reference_kind(reference_kind: str) -> None:
    if reference_kind not in VALID_REFERENCE_KINDS:
        raise ValidationError(
            f"Invalid reference kind '{reference_kind}'. Must be one of: {', '.join(sorted(VALID_REFERENCE_KINDS))}"
        )


def _write_stock(
    session,
    product: Product,
    new_stock: int,
    *,
    direction: str,
    quantity: int,
    reference_kind: str,
    reference_id: int | None,
    actor_id: int | None,
    note: str | None,
) -> StockMovement:
    previous_stock = product.current_stock
    product.current_stock = new_stock
    product.status = _status_after_stock_change(product.status, new_stock)

    movement = StockMovement(
        product_id=product.id,
        direction=direction,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reference_kind=reference_kind,
        reference_id=reference_id,
        actor_id=actor_id,
        note=note,
    )
    session.add(movement)
    session.flush()

    logger.debug(
        "Stock %s product=%s %d -> %d (%s #%s)",
        direction, product.id, previous_stock, new_stock, reference_kind, reference_id,
    )
    return movement


def reserve_and_debit(
    session,
    product_id: int,
    quantity: int,
    *,
    reference_kind: str,
    reference_id: int | None,
    actor_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """
    Decrement stock and append an `out` movement.

    Raises InsufficientStock when quantity exceeds current stock; nothing is
    written in that case.
    """
    require_positive_quantity(quantity)
    _validate_reference_kind(reference_kind)

    product = get_product(session, product_id, lock=True)
    if quantity > product.current_stock:
        raise InsufficientStock(product.id, product.name, quantity, product.current_stock)

    return _write_stock(
        session,
        product,
        product.current_stock - quantity,
        direction=MOVEMENT_OUT,
        quantity=quantity,
        reference_kind=reference_kind,
        reference_id=reference_id,
        actor_id=actor_id,
        note=note,
    )


def credit(
    session,
    product_id: int,
    quantity: int,
    *,
    reference_kind: str,
    reference_id: int | None,
    actor_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """
    Restore stock from a prior debit (cancel, refund, return).

    Discontinued products are still credited; only a missing product fails.
    """
    require_positive_quantity(quantity)
    _validate_reference_kind(reference_kind)

    product = get_product(session, product_id, lock=True)
    return _write_stock(
        session,
        product,
        product.current_stock + quantity,
        direction=MOVEMENT_IN,
        quantity=quantity,
        reference_kind=reference_kind,
        reference_id=reference_id,
        actor_id=actor_id,
        note=note,
    )


def adjust(
    session,
    product_id: int,
    delta: int,
    *,
    note: str | None = None,
    actor_id: int | None = None,
    reference_id: int | None = None,
) -> StockMovement:
    """Direct stock correction (count result, damage, initial stock), ledgered like any other write."""
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer")
    if delta == 0:
        raise ValidationError("delta cannot be zero")

    product = get_product(session, product_id, lock=True)
    new_stock = product.current_stock + delta
    if new_stock < 0:
        raise InsufficientStock(product.id, product.name, -delta, product.current_stock)

    return _write_stock(
        session,
        product,
        new_stock,
        direction=MOVEMENT_ADJUSTMENT,
        quantity=abs(delta),
        reference_kind=REFERENCE_ADJUSTMENT,
        reference_id=reference_id,
        actor_id=actor_id,
        note=note or "Manual stock adjustment",
    )


def ledger_balance(session, product_id: int) -> int:
    """Signed sum of all movements for a product; equals current_stock when reconciled."""
    total = session.query(
        func.coalesce(func.sum(StockMovement.new_stock - StockMovement.previous_stock), 0)
    ).filter(StockMovement.product_id == product_id).scalar()
    return int(total or 0)


def list_stock_movements(session, product_id: int, *, limit: int = 200) -> list[StockMovement]:
    get_product(session, product_id)
    return (
        session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def movements_for_reference(session, reference_id: int, *, kinds: tuple[str, ...] = (REFERENCE_SALE, REFERENCE_RETURN)) -> list[StockMovement]:
    return (
        session.query(StockMovement)
        .filter(StockMovement.reference_id == reference_id, StockMovement.reference_kind.in_(kinds))
        .order_by(StockMovement.id.asc())
        .all()
    )
