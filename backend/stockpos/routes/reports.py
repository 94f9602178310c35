# Overview: Read-only reporting endpoints.

from flask import Blueprint, request, jsonify

from ..extensions import db
from ..services import reporting_service
from ..validation import coerce_int
from ..decorators import map_domain_errors


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales-summary")
@map_domain_errors("load sales summary")
def sales_summary_route():
    period = request.args.get("period", "today")
    days = coerce_int(request.args.get("days"), "days", required=False) or 7
    return jsonify({
        "summary": reporting_service.sales_summary(db.session, period=period),
        "daily_sales": reporting_service.daily_sales(db.session, days=days),
        "top_products": reporting_service.top_products(db.session, limit=5),
    }), 200


@reports_bp.get("/low-stock")
@map_domain_errors("load low stock report")
def low_stock_route():
    products = reporting_service.low_stock_products(db.session)
    return jsonify({"products": [p.to_dict() for p in products]}), 200
