# Overview: Service-layer operations for reporting; sales analytics and product performance.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Product, Sale, SaleItem, SalePayment
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow


DEFAULT_RANGE_DAYS = 30
TOP_PRODUCTS_LIMIT = 10


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


def _parse_range(start: str | None, end: str | None) -> tuple[datetime, datetime]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ReportError("start and end must be ISO-8601 datetimes")

    end_dt = end_dt or utcnow()
    start_dt = start_dt or (end_dt - timedelta(days=DEFAULT_RANGE_DAYS))
    if start_dt > end_dt:
        raise ReportError("start must be before end")
    return start_dt, end_dt


def sales_analytics(*, tenant_id: int, start: str | None = None, end: str | None = None) -> dict:
    """
    Completed-sale analytics over [start, end] (default: last 30 days).

    Refunded and cancelled sales are excluded from revenue; refunds are
    reported separately.
    """
    start_dt, end_dt = _parse_range(start, end)
    in_range = (
        Sale.tenant_id == tenant_id,
        Sale.sale_date >= start_dt,
        Sale.sale_date <= end_dt,
    )
    completed = in_range + (Sale.status == "completed",)

    count, revenue, discount, tax, credit = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total), 0.0),
        func.coalesce(func.sum(Sale.discount_amount), 0.0),
        func.coalesce(func.sum(Sale.tax_amount), 0.0),
        func.coalesce(func.sum(Sale.credit_amount), 0.0),
    ).filter(*completed).one()

    refunded_count, refunded_amount = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total), 0.0),
    ).filter(*in_range, Sale.status == "refunded").one()

    day = func.date(Sale.sale_date)
    daily_rows = (
        db.session.query(
            day.label("day"),
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total), 0.0),
        )
        .filter(*completed)
        .group_by(day)
        .order_by(day)
        .all()
    )

    method_rows = (
        db.session.query(
            SalePayment.method,
            func.count(func.distinct(SalePayment.sale_id)),
            func.coalesce(func.sum(SalePayment.amount), 0.0),
        )
        .join(Sale, Sale.id == SalePayment.sale_id)
        .filter(*completed)
        .group_by(SalePayment.method)
        .all()
    )

    product_rows = (
        db.session.query(
            SaleItem.product_id,
            SaleItem.product_name,
            func.coalesce(func.sum(SaleItem.quantity_base), 0.0).label("quantity"),
            func.coalesce(func.sum(SaleItem.total), 0.0).label("revenue"),
        )
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(*completed)
        .group_by(SaleItem.product_id, SaleItem.product_name)
        .order_by(func.sum(SaleItem.total).desc())
        .limit(TOP_PRODUCTS_LIMIT)
        .all()
    )

    revenue = float(revenue or 0.0)
    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "summary": {
            "total_sales": count,
            "total_revenue": revenue,
            "total_discount": float(discount or 0.0),
            "total_tax": float(tax or 0.0),
            "total_credit": float(credit or 0.0),
            "average_sale": revenue / count if count else 0.0,
            "refunded_sales": refunded_count,
            "refunded_amount": float(refunded_amount or 0.0),
        },
        "daily": [
            {"date": str(row[0]), "sales": row[1], "revenue": float(row[2] or 0.0)}
            for row in daily_rows
        ],
        "by_payment_method": {
            method: {"sales": sales_count, "amount": float(amount or 0.0)}
            for method, sales_count, amount in method_rows
        },
        "top_products": [
            {
                "product_id": row.product_id,
                "name": row.product_name,
                "quantity_sold": float(row.quantity or 0.0),
                "revenue": float(row.revenue or 0.0),
            }
            for row in product_rows
        ],
    }


def product_performance(*, tenant_id: int, limit: int = TOP_PRODUCTS_LIMIT) -> dict:
    """Lifetime product analytics plus stock health of the tenant's catalog."""
    limit = max(1, min(limit or TOP_PRODUCTS_LIMIT, 100))
    base = db.session.query(Product).filter(Product.tenant_id == tenant_id)

    def _row(product: Product) -> dict:
        return {
            "id": product.id,
            "name": product.name,
            "sku": product.sku,
            "base_unit": product.base_unit,
            "total_sold": product.total_sold or 0.0,
            "total_revenue": product.total_revenue or 0.0,
            "stock_quantity": product.stock_quantity,
            "profit_margin": product.profit_margin,
            "last_sold_date": to_utc_z(product.last_sold_date),
        }

    by_revenue = base.order_by(Product.total_revenue.desc(), Product.id.asc()).limit(limit).all()
    by_quantity = base.order_by(Product.total_sold.desc(), Product.id.asc()).limit(limit).all()
    never_sold = (
        base.filter(Product.is_active.is_(True), db.or_(Product.total_sold.is_(None), Product.total_sold <= 0))
        .order_by(Product.created_at.asc(), Product.id.asc())
        .limit(limit)
        .all()
    )

    active = base.filter(Product.is_active.is_(True))
    stock_value = db.session.query(
        func.coalesce(func.sum(Product.stock_quantity * Product.cost), 0.0)
    ).filter(Product.tenant_id == tenant_id, Product.is_active.is_(True)).scalar()

    return {
        "top_by_revenue": [_row(p) for p in by_revenue],
        "top_by_quantity": [_row(p) for p in by_quantity],
        "never_sold": [_row(p) for p in never_sold],
        "stock": {
            "active_products": active.count(),
            "low_stock": active.filter(Product.is_low_stock.is_(True)).count(),
            "out_of_stock": active.filter(Product.is_out_of_stock.is_(True)).count(),
            "stock_value": float(stock_value or 0.0),
        },
    }
