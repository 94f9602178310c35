# Overview: Catalog collaborator; product master data. Stock is delegated to the ledger.

from __future__ import annotations

from sqlalchemy import or_

from ..errors import ConflictError, ValidationError
from ..models import Product
from ..validation import ProductUpdate, require_money, require_text
from .concurrency import run_in_transaction
from .inventory_service import PRODUCT_STATUS_ACTIVE, PRODUCT_STATUS_DISCONTINUED, PRODUCT_STATUS_OUT_OF_STOCK, adjust, get_product


def _ensure_sku_available(session, sku: str, exclude_id: int | None = None) -> None:
    query = session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"SKU {sku!r} already exists", details={"sku": sku})


def create_product(
    session,
    *,
    sku: str,
    name: str,
    selling_price_cents: int,
    cost_price_cents: int = 0,
    initial_stock: int = 0,
    min_stock_level: int = 10,
    max_stock_level: int = 100,
    unit: str = "pcs",
    description: str | None = None,
    actor_id: int | None = None,
) -> Product:
    """
    Create a product. A non-zero initial stock is booked through the ledger
    ("Initial stock" adjustment) so the movement log reconciles from day one.
    """
    sku = require_text(sku, "sku")
    name = require_text(name, "name")
    require_money(selling_price_cents, "selling_price_cents")
    if isinstance(initial_stock, bool) or not isinstance(initial_stock, int) or initial_stock < 0:
        raise ValidationError("initial_stock must be a non-negative integer")
    ProductUpdate(
        cost_price_cents=cost_price_cents,
        min_stock_level=min_stock_level,
        max_stock_level=max_stock_level,
    ).validate()

    def _op() -> Product:
        _ensure_sku_available(session, sku)
        product = Product(
            sku=sku,
            name=name,
            description=description,
            unit=unit,
            selling_price_cents=selling_price_cents,
            cost_price_cents=cost_price_cents,
            current_stock=0,
            min_stock_level=min_stock_level,
            max_stock_level=max_stock_level,
            status=PRODUCT_STATUS_ACTIVE if initial_stock > 0 else PRODUCT_STATUS_OUT_OF_STOCK,
        )
        session.add(product)
        session.flush()

        if initial_stock > 0:
            adjust(session, product.id, initial_stock, note="Initial stock", actor_id=actor_id)
        return product

    return run_in_transaction(session, _op)


def update_product(session, product_id: int, update: ProductUpdate) -> Product:
    def _op() -> Product:
        product = get_product(session, product_id, lock=True)
        update.validate(product)
        if update.sku is not None:
            _ensure_sku_available(session, update.sku, exclude_id=product.id)
        update.apply_to(product)
        session.flush()
        return product

    return run_in_transaction(session, _op)


def discontinue_product(session, product_id: int) -> Product:
    """Soft delete. Existing sales can still be cancelled or refunded against the product."""
    def _op() -> Product:
        product = get_product(session, product_id, lock=True)
        product.status = PRODUCT_STATUS_DISCONTINUED
        session.flush()
        return product

    return run_in_transaction(session, _op)


def list_products(
    session,
    *,
    search: str | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Catalog listing; search matches SKU or name, case-insensitively."""
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    valid_statuses = {PRODUCT_STATUS_ACTIVE, PRODUCT_STATUS_OUT_OF_STOCK, PRODUCT_STATUS_DISCONTINUED}
    if status and status != "all" and status not in valid_statuses:
        raise ValidationError(f"Invalid product status '{status}'")

    query = session.query(Product)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.sku.ilike(pattern), Product.name.ilike(pattern)))
    if status and status != "all":
        query = query.filter(Product.status == status)

    total = query.count()
    rows = (
        query.order_by(Product.name.asc(), Product.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "products": rows,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }
