# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes. Thin layer: parse, call the coordinator, serialize."""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import inventory_service, payment_service, reporting_service, sales_service
from ..services.sales_service import CustomerInfo, PaymentFields, SaleItemRequest
from ..validation import ValidationError, coerce_int
from stockpos.time_utils import parse_iso_date
from ..decorators import require_actor, map_domain_errors


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _parse_items(raw_items) -> list[SaleItemRequest]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Sale must contain at least one item")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        items.append(SaleItemRequest(
            product_id=coerce_int(raw.get("product_id"), f"items[{index}].product_id"),
            quantity=coerce_int(raw.get("quantity"), f"items[{index}].quantity"),
            unit_price_cents=coerce_int(raw.get("unit_price_cents"), f"items[{index}].unit_price_cents", required=False),
        ))
    return items


@sales_bp.post("/")
@require_actor
@map_domain_errors("create sale")
def create_sale_route():
    data = request.get_json(silent=True) or {}

    items = _parse_items(data.get("items"))
    customer = CustomerInfo(
        name=data.get("customer_name"),
        email=data.get("customer_email"),
        phone=data.get("customer_phone"),
    )
    payment = PaymentFields(
        amount_paid_cents=coerce_int(data.get("amount_paid_cents"), "amount_paid_cents", required=False) or 0,
        payment_method=data.get("payment_method") or "cash",
        discount_amount_cents=coerce_int(data.get("discount_amount_cents"), "discount_amount_cents", required=False) or 0,
        tax_amount_cents=coerce_int(data.get("tax_amount_cents"), "tax_amount_cents", required=False),
        tax_rate_bps=coerce_int(data.get("tax_rate_bps"), "tax_rate_bps", required=False),
        notes=data.get("notes"),
    )

    sale = sales_service.create_sale(
        db.session,
        customer,
        items,
        payment,
        actor_id=g.actor_id,
        default_tax_rate_bps=current_app.config["DEFAULT_TAX_RATE_BPS"],
        invoice_prefix=current_app.config["INVOICE_PREFIX"],
    )
    return jsonify({"sale": sale.to_dict(include_items=True)}), 201


@sales_bp.get("/")
@map_domain_errors("list sales")
def list_sales_route():
    args = request.args
    result = reporting_service.list_sales(
        db.session,
        status=args.get("status"),
        payment_method=args.get("payment_method"),
        start=parse_iso_date(args.get("start_date")),
        end=parse_iso_date(args.get("end_date")),
        page=coerce_int(args.get("page"), "page", required=False) or 1,
        limit=coerce_int(args.get("limit"), "limit", required=False) or 20,
    )
    result["sales"] = [sale.to_dict() for sale in result["sales"]]
    return jsonify(result), 200


@sales_bp.get("/<int:sale_id>")
@map_domain_errors("load sale")
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(db.session, sale_id)
    payments = payment_service.list_payment_transactions(db.session, sale.id)
    movements = inventory_service.movements_for_reference(db.session, sale.id)
    return jsonify({
        "sale": sale.to_dict(include_items=True),
        "payments": [p.to_dict() for p in payments],
        "stock_movements": [m.to_dict() for m in movements],
    }), 200


@sales_bp.post("/<int:sale_id>/complete")
@require_actor
@map_domain_errors("complete sale")
def complete_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    amount = coerce_int(data.get("amount_paid_cents"), "amount_paid_cents")

    sale = sales_service.complete_sale(
        db.session,
        sale_id,
        amount,
        data.get("payment_method"),
        actor_id=g.actor_id,
    )
    return jsonify({"sale": sale.to_dict(include_items=True)}), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_actor
@map_domain_errors("cancel sale")
def cancel_sale_route(sale_id: int):
    sale = sales_service.cancel_sale(db.session, sale_id, actor_id=g.actor_id)
    return jsonify({"sale": sale.to_dict(), "message": "Sale cancelled. Stock has been restored."}), 200


@sales_bp.post("/<int:sale_id>/refund")
@require_actor
@map_domain_errors("refund sale")
def refund_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    sale = sales_service.refund_sale(db.session, sale_id, actor_id=g.actor_id, notes=data.get("notes"))
    return jsonify({"sale": sale.to_dict(), "message": "Sale refunded. Stock has been restored."}), 200
