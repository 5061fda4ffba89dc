# Overview: Service-layer operations for the stock ledger; manual stock-in/stock-out and movement history.

"""
Stock Ledger Service

Product.stock_quantity is the on-hand quantity in base units. Every change
made by a service goes through Product.add_stock / Product.deduct_stock and
is paired with one immutable StockMovement row written in the same
transaction:

    stock_after == stock_before + quantity_base

MULTI-TENANT: every function takes tenant_id; products of other tenants are
reported as ProductNotFound.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import PosError, ProductNotFound
from ..models import Product, StockMovement, StockChange
from ..time_utils import utcnow
from ..validation import ValidationError, coerce_number, parse_positive_quantity
from .concurrency import lock_for_update, run_with_retry


STOCK_OUT_REASONS = (
    "adjustment", "damage", "expiry", "theft", "loss", "correction", "transfer", "other",
)
MOVEMENTS_LIMIT = 100


def record_movement(
    *,
    product: Product,
    change: StockChange,
    movement_type: str,
    quantity: float,
    unit: str,
    reason: str | None = None,
    sale_id: int | None = None,
    unit_cost: float = 0.0,
    reference: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """Append the ledger row for a stock change already applied to `product`."""
    movement = StockMovement(
        tenant_id=product.tenant_id,
        product_id=product.id,
        product_name=product.name,
        sku=product.sku,
        type=movement_type,
        reason=reason,
        quantity=quantity,
        unit=unit,
        quantity_base=change.delta_base,
        shortfall_base=change.shortfall_base,
        stock_before=change.before,
        stock_after=change.after,
        sale_id=sale_id,
        unit_cost=unit_cost,
        total_cost=unit_cost * abs(quantity),
        reference=reference,
        notes=notes,
        movement_date=utcnow(),
        created_by_user_id=user_id,
    )
    db.session.add(movement)
    return movement


def _locked_product(tenant_id: int, product_id: int) -> Product:
    product = lock_for_update(
        db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id)
    ).first()
    if not product:
        raise ProductNotFound("Product not found", details={"product_id": product_id})
    return product


def stock_in(
    *,
    tenant_id: int,
    product_id: int,
    quantity,
    unit: str | None = None,
    unit_cost=None,
    reference: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> tuple[Product, StockMovement]:
    """
    Receive stock (purchase movement).

    unit_cost is the cost of one `unit`; it defaults to the product cost
    converted to that unit.
    """
    quantity = parse_positive_quantity(quantity)
    if unit_cost is not None:
        unit_cost = coerce_number("unit_cost", unit_cost)
        if unit_cost < 0:
            raise ValidationError("unit_cost must be >= 0")

    def _op():
        try:
            product = _locked_product(tenant_id, product_id)
            sold_unit = unit or product.base_unit
            change = product.add_stock(quantity, sold_unit)
            cost = unit_cost
            if cost is None:
                cost = (product.cost or 0.0) * product.to_base_units(1, sold_unit)
            movement = record_movement(
                product=product,
                change=change,
                movement_type="purchase",
                reason="purchase",
                quantity=quantity,
                unit=sold_unit,
                unit_cost=cost,
                reference=reference,
                notes=notes,
                user_id=user_id,
            )
            db.session.commit()
            return product, movement
        except PosError:
            db.session.rollback()
            raise

    product, movement = run_with_retry(_op)
    current_app.logger.info(
        "Stock in: tenant=%s product=%s +%s %s (now %s %s)",
        tenant_id, product.id, quantity, movement.unit, product.stock_quantity, product.base_unit,
    )
    return product, movement


def stock_out(
    *,
    tenant_id: int,
    product_id: int,
    quantity,
    unit: str | None = None,
    reason: str | None = None,
    notes: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> tuple[Product, StockMovement]:
    """
    Remove stock outside of a sale (adjustment movement).

    Strict unless STOCK_CLAMP_ON_OVERDRAW is enabled, in which case an
    over-deduction floors stock at 0 and the deficit is recorded as
    shortfall_base on the movement.
    """
    quantity = parse_positive_quantity(quantity)
    reason = (reason or "adjustment").strip().lower()
    if reason not in STOCK_OUT_REASONS:
        raise ValidationError(f"reason must be one of: {', '.join(STOCK_OUT_REASONS)}")
    clamp = bool(current_app.config.get("STOCK_CLAMP_ON_OVERDRAW", False))

    def _op():
        try:
            product = _locked_product(tenant_id, product_id)
            sold_unit = unit or product.base_unit
            change = product.deduct_stock(quantity, sold_unit, clamp=clamp)
            movement = record_movement(
                product=product,
                change=change,
                movement_type="adjustment",
                reason=reason,
                quantity=-quantity,
                unit=sold_unit,
                reference=reference,
                notes=notes,
                user_id=user_id,
            )
            db.session.commit()
            return product, movement
        except PosError:
            db.session.rollback()
            raise

    product, movement = run_with_retry(_op)
    if movement.shortfall_base:
        current_app.logger.warning(
            "Stock out clamped: tenant=%s product=%s shortfall=%s %s",
            tenant_id, product.id, movement.shortfall_base, product.base_unit,
        )
    current_app.logger.info(
        "Stock out: tenant=%s product=%s -%s %s reason=%s (now %s %s)",
        tenant_id, product.id, quantity, movement.unit, reason, product.stock_quantity, product.base_unit,
    )
    return product, movement


def list_movements(
    *,
    tenant_id: int,
    product_id: int | None = None,
    movement_type: str | None = None,
    start=None,
    end=None,
    limit: int = MOVEMENTS_LIMIT,
) -> list[StockMovement]:
    """Newest first, capped at `limit` (max 100)."""
    query = db.session.query(StockMovement).filter(StockMovement.tenant_id == tenant_id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type:
        query = query.filter(StockMovement.type == movement_type)
    if start is not None:
        query = query.filter(StockMovement.movement_date >= start)
    if end is not None:
        query = query.filter(StockMovement.movement_date <= end)

    limit = max(1, min(limit or MOVEMENTS_LIMIT, MOVEMENTS_LIMIT))
    return (
        query.order_by(StockMovement.movement_date.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
