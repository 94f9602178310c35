from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from .errors import ValidationError


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


def coerce_int(value: Any, field: str, *, required: bool = True) -> int | None:
    """
    Strict integer coercion for request payloads.

    Accepts ints and plain digit strings (optional leading minus). Rejects bools,
    floats, and scientific notation.
    """
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        body = stripped[1:] if stripped.startswith("-") else stripped
        if body.isdigit():
            return int(stripped)
    raise ValidationError(f"{field} must be an integer")


def require_positive_quantity(quantity: Any, field: str = "quantity") -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"{field} must be an integer")
    if quantity <= 0:
        raise ValidationError(f"{field} must be positive")
    return quantity


def require_money(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents")
    if value < 0:
        raise ValidationError(f"{field} cannot be negative")
    return value


def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    if not value.strip():
        raise ValidationError(f"{field} cannot be blank")
    return value.strip()


def _apply(update, target) -> None:
    for f in fields(update):
        value = getattr(update, f.name)
        if value is not None:
            setattr(target, f.name, value)


@dataclass(frozen=True)
class SaleUpdate:
    """
    Every mutable Sale field, all optional. None means "leave unchanged".

    Lifecycle legality is checked by the coordinator; this only guards values.
    """
    status: str | None = None
    payment_status: str | None = None
    amount_paid_cents: int | None = None
    change_amount_cents: int | None = None
    payment_method: str | None = None
    notes: str | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by_user_id: int | None = None
    refunded_at: datetime | None = None
    refunded_by_user_id: int | None = None

    def validate(self) -> None:
        from .services.lifecycle_service import VALID_SALE_STATUSES, VALID_PAYMENT_STATUSES
        from .services.payment_service import VALID_PAYMENT_METHODS

        if self.status is not None and self.status not in VALID_SALE_STATUSES:
            raise ValidationError(f"Invalid sale status '{self.status}'")
        if self.payment_status is not None and self.payment_status not in VALID_PAYMENT_STATUSES:
            raise ValidationError(f"Invalid payment status '{self.payment_status}'")
        if self.payment_method is not None and self.payment_method not in VALID_PAYMENT_METHODS:
            raise ValidationError(f"Invalid payment method '{self.payment_method}'")
        if self.amount_paid_cents is not None:
            require_money(self.amount_paid_cents, "amount_paid_cents")
        if self.change_amount_cents is not None:
            require_money(self.change_amount_cents, "change_amount_cents")

    def apply_to(self, sale) -> None:
        self.validate()
        _apply(self, sale)


@dataclass(frozen=True)
class ProductUpdate:
    """
    Catalog fields a product update may touch. There is deliberately no
    current_stock here: stock only moves through the ledger.
    """
    sku: str | None = None
    name: str | None = None
    description: str | None = None
    unit: str | None = None
    cost_price_cents: int | None = None
    selling_price_cents: int | None = None
    min_stock_level: int | None = None
    max_stock_level: int | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "ProductUpdate":
        allowed = {f.name for f in fields(cls)}
        unknown = set(payload) - allowed
        if unknown:
            raise ValidationError(f"Unknown or read-only fields: {', '.join(sorted(unknown))}")
        return cls(**payload)

    def validate(self, current=None) -> None:
        for field in ("sku", "name"):
            if getattr(self, field) is not None:
                require_text(getattr(self, field), field)
        for field in ("description", "unit"):
            value = getattr(self, field)
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{field} must be a string")
        for field in ("cost_price_cents", "selling_price_cents"):
            value = getattr(self, field)
            if value is not None:
                require_money(value, field)
                if value > MAX_PRICE_CENTS:
                    raise ValidationError(f"{field} exceeds maximum")
        for field in ("min_stock_level", "max_stock_level"):
            value = getattr(self, field)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
                raise ValidationError(f"{field} must be a non-negative integer")

        min_level = self.min_stock_level if self.min_stock_level is not None else getattr(current, "min_stock_level", None)
        max_level = self.max_stock_level if self.max_stock_level is not None else getattr(current, "max_stock_level", None)
        if min_level is not None and max_level is not None and min_level > max_level:
            raise ValidationError("min_stock_level cannot exceed max_stock_level")

    def apply_to(self, product) -> None:
        self.validate(product)
        _apply(self, product)
