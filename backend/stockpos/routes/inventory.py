# backend/stockpos/routes/inventory.py
"""
Inventory ledger routes.

- Adjustments are the only stock write exposed here; sales debit and credit
  stock through the sales routes.
- Movements and reconciliation are read-only.
"""
from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..services import inventory_service, reporting_service
from ..services.concurrency import run_in_transaction
from ..validation import coerce_int
from ..decorators import require_actor, map_domain_errors


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/adjust")
@require_actor
@map_domain_errors("adjust inventory")
def adjust_inventory_route():
    payload = request.get_json(silent=True) or {}
    product_id = coerce_int(payload.get("product_id"), "product_id")
    delta = coerce_int(payload.get("delta"), "delta")

    movement = run_in_transaction(
        db.session,
        lambda: inventory_service.adjust(
            db.session,
            product_id,
            delta,
            note=payload.get("note"),
            actor_id=g.actor_id,
        ),
    )
    return jsonify({"movement": movement.to_dict()}), 201


@inventory_bp.get("/<int:product_id>/movements")
@map_domain_errors("list stock movements")
def list_movements_route(product_id: int):
    limit = coerce_int(request.args.get("limit"), "limit", required=False) or 200
    movements = inventory_service.list_stock_movements(db.session, product_id, limit=limit)
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@inventory_bp.get("/reconcile")
@map_domain_errors("reconcile inventory")
def reconcile_route():
    product_id = coerce_int(request.args.get("product_id"), "product_id", required=False)
    discrepancies = reporting_service.reconcile_stock(db.session, product_id)
    return jsonify({
        "consistent": not discrepancies,
        "discrepancies": discrepancies,
    }), 200
