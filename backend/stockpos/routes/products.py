# Overview: Flask API routes for the product catalog; stock itself only moves through the ledger.

# backend/stockpos/routes/products.py
"""
Product catalog routes.

- Create books any initial stock as a ledger adjustment.
- PATCH accepts catalog fields only; current_stock is rejected.
- DELETE is a soft delete (status discontinued).
- Listing supports search by SKU or name, status filter and pagination.
"""
from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..services import inventory_service, products_service
from ..validation import ProductUpdate, ValidationError, coerce_int
from ..decorators import require_actor, map_domain_errors


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
@require_actor
@map_domain_errors("create product")
def create_product_route():
    data = request.get_json(silent=True) or {}
    min_level = coerce_int(data.get("min_stock_level"), "min_stock_level", required=False)
    max_level = coerce_int(data.get("max_stock_level"), "max_stock_level", required=False)

    product = products_service.create_product(
        db.session,
        sku=data.get("sku") or "",
        name=data.get("name") or "",
        description=data.get("description"),
        unit=data.get("unit") or "pcs",
        selling_price_cents=coerce_int(data.get("selling_price_cents"), "selling_price_cents"),
        cost_price_cents=coerce_int(data.get("cost_price_cents"), "cost_price_cents", required=False) or 0,
        initial_stock=coerce_int(data.get("initial_stock"), "initial_stock", required=False) or 0,
        min_stock_level=min_level if min_level is not None else 10,
        max_stock_level=max_level if max_level is not None else 100,
        actor_id=g.actor_id,
    )
    return jsonify({"product": product.to_dict()}), 201


@products_bp.get("")
@map_domain_errors("list products")
def list_products_route():
    args = request.args
    result = products_service.list_products(
        db.session,
        search=args.get("search"),
        status=args.get("status"),
        page=coerce_int(args.get("page"), "page", required=False) or 1,
        limit=coerce_int(args.get("limit"), "limit", required=False) or 20,
    )
    result["products"] = [p.to_dict() for p in result["products"]]
    return jsonify(result), 200


@products_bp.get("/<int:product_id>")
@map_domain_errors("load product")
def get_product_route(product_id: int):
    product = inventory_service.get_product(db.session, product_id)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.patch("/<int:product_id>")
@require_actor
@map_domain_errors("update product")
def update_product_route(product_id: int):
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        raise ValidationError("No fields to update")

    update = ProductUpdate.from_payload(data)
    product = products_service.update_product(db.session, product_id, update)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/<int:product_id>")
@require_actor
@map_domain_errors("discontinue product")
def discontinue_product_route(product_id: int):
    product = products_service.discontinue_product(db.session, product_id)
    return jsonify({"product": product.to_dict()}), 200
