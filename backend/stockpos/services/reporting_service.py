# Overview: Read-only reporting over sales, sale items and the stock ledger. No write path.

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy import func

from ..errors import ValidationError
from ..models import Product, Sale, SaleItem, StockMovement
from stockpos.time_utils import utcnow
from .inventory_service import PRODUCT_STATUS_DISCONTINUED
from .lifecycle_service import SALE_STATUS_COMPLETED, VALID_SALE_STATUSES

PERIODS = ("today", "week", "month", "all")


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _period_start(period: str, today: date) -> datetime | None:
    if period == "today":
        return _day_start(today)
    if period == "week":
        return _day_start(today - timedelta(days=7))
    if period == "month":
        return _day_start(today - timedelta(days=30))
    if period == "all":
        return None
    raise ValidationError(f"period must be one of {', '.join(PERIODS)}")


def list_sales(
    session,
    *,
    status: str | None = None,
    payment_method: str | None = None,
    start: date | None = None,
    end: date | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    if status and status != "all" and status not in VALID_SALE_STATUSES:
        raise ValidationError(f"Invalid status '{status}'")

    query = session.query(Sale)
    if status and status != "all":
        query = query.filter(Sale.status == status)
    if payment_method and payment_method != "all":
        query = query.filter(Sale.payment_method == payment_method)
    if start:
        query = query.filter(Sale.created_at >= _day_start(start))
    if end:
        query = query.filter(Sale.created_at < _day_start(end + timedelta(days=1)))

    total = query.count()
    rows = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "sales": rows,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }


def sales_summary(session, *, period: str = "today", today: date | None = None) -> dict:
    """Aggregates over completed sales only."""
    since = _period_start(period, today or utcnow().date())

    query = session.query(
        func.count(Sale.id).label("total_sales"),
        func.coalesce(func.sum(Sale.final_amount_cents), 0).label("total_revenue_cents"),
        func.coalesce(func.avg(Sale.final_amount_cents), 0).label("average_sale_cents"),
        func.coalesce(func.min(Sale.final_amount_cents), 0).label("min_sale_cents"),
        func.coalesce(func.max(Sale.final_amount_cents), 0).label("max_sale_cents"),
    ).filter(Sale.status == SALE_STATUS_COMPLETED)
    if since is not None:
        query = query.filter(Sale.created_at >= since)

    row = query.one()
    return {
        "period": period,
        "total_sales": int(row.total_sales or 0),
        "total_revenue_cents": int(row.total_revenue_cents or 0),
        "average_sale_cents": int(round(float(row.average_sale_cents or 0))),
        "min_sale_cents": int(row.min_sale_cents or 0),
        "max_sale_cents": int(row.max_sale_cents or 0),
    }


def daily_sales(session, *, days: int = 7, today: date | None = None) -> list[dict]:
    today = today or utcnow().date()
    since = _day_start(today - timedelta(days=days))
    sales = (
        session.query(Sale.created_at, Sale.final_amount_cents)
        .filter(Sale.status == SALE_STATUS_COMPLETED, Sale.created_at >= since)
        .all()
    )

    buckets: dict[date, list[int]] = {}
    for created_at, amount in sales:
        buckets.setdefault(created_at.date(), []).append(amount)

    return [
        {
            "date": day.isoformat(),
            "total_sales": len(amounts),
            "total_revenue_cents": sum(amounts),
        }
        for day, amounts in sorted(buckets.items())
    ]


def top_products(session, *, limit: int = 5) -> list[dict]:
    rows = (
        session.query(
            Product.id,
            Product.name,
            Product.sku,
            func.sum(SaleItem.quantity).label("total_sold"),
            func.sum(SaleItem.total_price_cents).label("total_revenue_cents"),
        )
        .join(SaleItem, SaleItem.product_id == Product.id)
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(Sale.status == SALE_STATUS_COMPLETED)
        .group_by(Product.id, Product.name, Product.sku)
        .order_by(func.sum(SaleItem.quantity).desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": row.id,
            "name": row.name,
            "sku": row.sku,
            "total_sold": int(row.total_sold or 0),
            "total_revenue_cents": int(row.total_revenue_cents or 0),
        }
        for row in rows
    ]


def low_stock_products(session) -> list[Product]:
    return (
        session.query(Product)
        .filter(
            Product.status != PRODUCT_STATUS_DISCONTINUED,
            Product.current_stock <= Product.min_stock_level,
        )
        .order_by(Product.current_stock.asc(), Product.id.asc())
        .all()
    )


def reconcile_stock(session, product_id: int | None = None) -> list[dict]:
    """
    Compare each product's counter with its ledger balance.

    Returns one entry per product where current_stock != SUM(signed movements);
    an empty list means the ledger reconciles.
    """
    balances = (
        session.query(
            StockMovement.product_id,
            func.sum(StockMovement.new_stock - StockMovement.previous_stock).label("balance"),
        )
        .group_by(StockMovement.product_id)
        .subquery()
    )
    query = session.query(
        Product.id,
        Product.sku,
        Product.current_stock,
        func.coalesce(balances.c.balance, 0).label("ledger_balance"),
    ).outerjoin(balances, balances.c.product_id == Product.id)
    if product_id is not None:
        query = query.filter(Product.id == product_id)

    discrepancies = []
    for row in query.order_by(Product.id.asc()).all():
        ledger = int(row.ledger_balance or 0)
        if ledger != row.current_stock:
            discrepancies.append({
                "product_id": row.id,
                "sku": row.sku,
                "current_stock": row.current_stock,
                "ledger_balance": ledger,
                "difference": row.current_stock - ledger,
            })
    return discrepancies
