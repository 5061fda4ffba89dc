# Overview: Service-layer operations for sales history; listing, detail, cancellation and refunds.

"""
Sales History Service

Terminal transitions:
- cancel_sale: pending (held or retrieved) -> cancelled. No stock effect,
  pending sales never deducted stock.
- refund_sale: completed -> refunded. Each line's base quantity is returned
  to stock with a "return" movement, product analytics and the customer's
  purchase stats / loyalty points are reversed, and the credit the sale put
  on the customer's account is settled. One transaction.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import InvalidSaleState, PosError, SaleNotFound
from ..models import Customer, Product, Sale, User
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .pagination import paginate
from .pos_service import loyalty_points_for
from .stock_service import record_movement
from .tenant_service import scoped_get


def list_sales(
    *,
    tenant_id: int,
    page: int | None = None,
    per_page: int | None = None,
    status: str | None = None,
    start=None,
    end=None,
    customer_id: int | None = None,
    cashier_id: int | None = None,
    search: str | None = None,
) -> dict:
    query = db.session.query(Sale).filter(Sale.tenant_id == tenant_id)
    if status:
        query = query.filter(Sale.status == status)
    if start is not None:
        query = query.filter(Sale.sale_date >= start)
    if end is not None:
        query = query.filter(Sale.sale_date <= end)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if cashier_id is not None:
        query = query.filter(Sale.cashier_id == cashier_id)
    if search:
        query = query.filter(Sale.sale_number.ilike(f"%{search.strip()}%"))

    query = query.order_by(Sale.sale_date.desc(), Sale.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda s: s.to_dict(include_items=False))


def get_sale(*, tenant_id: int, sale_id: int) -> Sale:
    sale = scoped_get(Sale, sale_id, tenant_id)
    if sale is None:
        raise SaleNotFound("Sale not found", details={"sale_id": sale_id})
    return sale


def _locked_sale(tenant_id: int, sale_id: int) -> Sale:
    sale = lock_for_update(
        db.session.query(Sale).filter_by(id=sale_id, tenant_id=tenant_id)
    ).first()
    if sale is None:
        raise SaleNotFound("Sale not found", details={"sale_id": sale_id})
    return sale


def cancel_sale(*, tenant_id: int, sale_id: int, user: User, reason: str | None = None) -> Sale:
    def _op():
        try:
            sale = _locked_sale(tenant_id, sale_id)
            if sale.status != "pending":
                raise InvalidSaleState(
                    f"Cannot cancel a {sale.status} sale",
                    details={"sale_id": sale.id, "status": sale.status},
                )
            sale.status = "cancelled"
            sale.is_held = False
            sale.cancelled_at = utcnow()
            sale.cancelled_by_user_id = user.id
            if reason:
                sale.notes = f"{sale.notes}\n{reason}" if sale.notes else reason
            db.session.commit()
            return sale
        except PosError:
            db.session.rollback()
            raise

    sale = run_with_retry(_op)
    current_app.logger.info("Sale cancelled: tenant=%s sale=%s", tenant_id, sale.id)
    return sale


def refund_sale(*, tenant_id: int, sale_id: int, user: User, reason: str | None = None) -> Sale:
    def _op():
        try:
            sale = _locked_sale(tenant_id, sale_id)
            if sale.status != "completed":
                raise InvalidSaleState(
                    f"Cannot refund a {sale.status} sale",
                    details={"sale_id": sale.id, "status": sale.status},
                )

            product_ids = sorted({item.product_id for item in sale.items if item.product_id is not None})
            products = {}
            if product_ids:
                products = {
                    p.id: p
                    for p in lock_for_update(
                        db.session.query(Product).filter(
                            Product.tenant_id == tenant_id, Product.id.in_(product_ids)
                        )
                    ).all()
                }

            for item in sale.items:
                product = products.get(item.product_id)
                if product is None:
                    # Product was deleted; nothing to restock
                    continue
                change = product.add_stock(item.quantity_base, product.base_unit)
                record_movement(
                    product=product,
                    change=change,
                    movement_type="return",
                    reason="return",
                    quantity=item.quantity,
                    unit=item.unit,
                    sale_id=sale.id,
                    reference=sale.sale_number,
                    notes=reason,
                    user_id=user.id,
                )
                product.total_sold = max(0.0, (product.total_sold or 0.0) - item.quantity_base)
                product.total_revenue = max(0.0, (product.total_revenue or 0.0) - item.subtotal)

            if sale.customer_id is not None:
                customer = lock_for_update(
                    db.session.query(Customer).filter_by(id=sale.customer_id, tenant_id=tenant_id)
                ).first()
                if customer is not None:
                    customer.reverse_purchase_stats(sale.total)
                    customer.add_loyalty_points(-loyalty_points_for(sale.total))
                    if sale.credit_amount:
                        customer.pay_credit(sale.credit_amount)

            sale.status = "refunded"
            sale.payment_status = "refunded"
            sale.refunded_at = utcnow()
            sale.refunded_by_user_id = user.id
            sale.refund_reason = reason
            db.session.commit()
            return sale
        except PosError:
            db.session.rollback()
            raise

    sale = run_with_retry(_op)
    current_app.logger.info(
        "Sale refunded: tenant=%s sale=%s number=%s total=%.3f",
        tenant_id, sale.id, sale.sale_number, sale.total,
    )
    return sale
