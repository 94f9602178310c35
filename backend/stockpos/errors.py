# Overview: Typed domain errors raised by the service layer and mapped to responses by routes.

from __future__ import annotations


class DomainError(Exception):
    """Base for every error the core reports as a typed result."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DomainError, ValueError):
    """400-level input problem. Raised before any transaction opens where possible."""


class ConflictError(DomainError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


class NotFoundError(DomainError):
    """Referenced record does not exist."""


class ProductNotFound(NotFoundError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", details={"product_id": product_id})
        self.product_id = product_id


class SaleNotFound(NotFoundError):
    def __init__(self, sale_id: int):
        super().__init__(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        self.sale_id = sale_id


class InsufficientStock(DomainError):
    """Requested quantity exceeds the product's current stock."""
    def __init__(self, product_id: int, product_name: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested_quantity": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.available = available


class InvalidStateTransition(DomainError):
    """Lifecycle call attempted on a sale whose status does not allow it."""
    def __init__(self, sale_id: int | None, from_status: str, to_status: str, message: str | None = None):
        super().__init__(
            message or f"Cannot move sale {sale_id} from '{from_status}' to '{to_status}'",
            details={"sale_id": sale_id, "from_status": from_status, "to_status": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class TransientStoreError(DomainError):
    """Lock timeout, deadlock or lost connection. The whole operation is safe to retry."""
