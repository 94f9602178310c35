from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from stockpos.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product with its stock counter.

    STOCK OWNERSHIP:
    current_stock is written only by the ledger (services/inventory_service.py):
    reserve_and_debit, credit and adjust. Catalog updates go through ProductUpdate,
    which has no stock field.

    STATUS:
    - active: sellable
    - out_of_stock: set by the ledger when stock reaches 0, cleared when it is restocked
    - discontinued: set by the catalog; never changed by stock writes
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_status_stock", "status", "current_stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=10)
    max_stock_level = db.Column(db.Integer, nullable=False, default=100)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.current_stock}>"

    @property
    def stock_status(self) -> str:
        if self.current_stock == 0:
            return "out_of_stock"
        if self.current_stock <= self.min_stock_level:
            return "low_stock"
        return "in_stock"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "unit": self.unit,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "current_stock": self.current_stock,
            "min_stock_level": self.min_stock_level,
            "max_stock_level": self.max_stock_level,
            "status": self.status,
            "stock_status": self.stock_status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only ledger of stock changes.

    Every write to Product.current_stock appends exactly one row in the same
    DB transaction. reference_id is always the id of the originating transaction
    (the sale for sale/return movements), never a product id.

    Reconciliation: current_stock == SUM(new_stock - previous_stock) per product.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.CheckConstraint("new_stock >= 0", name="ck_stock_movements_new_stock_non_negative"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_kind", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    direction = db.Column(db.String(16), nullable=False)  # in, out, adjustment
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    reference_kind = db.Column(db.String(16), nullable=False)  # sale, return, adjustment
    reference_id = db.Column(db.Integer, nullable=True)

    actor_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy="dynamic"))

    @property
    def signed_quantity(self) -> int:
        return self.new_stock - self.previous_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "direction": self.direction,
            "quantity": self.quantity,
            "signed_quantity": self.signed_quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reference_kind": self.reference_kind,
            "reference_id": self.reference_id,
            "actor_id": self.actor_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
@event.listens_for(StockMovement, "before_delete")
def _reject_movement_mutation(mapper, connection, target):
    raise ValueError("stock movements are append-only")
