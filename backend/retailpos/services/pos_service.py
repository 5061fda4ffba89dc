# Overview: Service-layer operations for the POS; cart pricing, checkout, held orders and daily summary.

"""
POS Sale Assembler

Turns a validated Cart into a persisted Sale.

CHECKOUT (create_sale):
1. Load every product of the cart under the tenant, row-locked
   (ProductNotFound if missing or inactive)
2. Price each line: subtotal = Product.calculate_price(quantity, unit),
   unit_price = subtotal / quantity, tax = subtotal * tax_rate / 100
   (0 for non-taxable products)
3. Check stock with quantities aggregated per product (InsufficientStock)
4. Totals: total = subtotal - discount_amount + tax_amount,
   change = amount_paid - total; an underpayment becomes credit_amount
   on the attached customer (CreditNotAllowed / CreditLimitExceeded)
5. Only then write: sale, items, payments, stock deductions, one
   StockMovement per line, product analytics, customer stats/loyalty/credit

Steps 1-4 never write. Step 5 runs in one transaction committed once; any
error rolls the whole sale back. Concurrent writers are detected by the
products' version_id (StaleDataError) and the whole checkout is retried from
fresh reads by run_with_retry.

HELD ORDERS:
hold_order parks a priced cart as a pending, is_held sale (no stock effect).
retrieve_held_order puts it back on a register (is_held=False). Checking out
with held_sale_id completes that pending sale in place. A held order keeps
its items, customer and sale discount unless the checkout cart sends new ones.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import (
    CreditNotAllowed,
    CustomerNotFound,
    InsufficientStock,
    InvalidSaleState,
    PosError,
    ProductNotFound,
    SaleNotFound,
)
from ..models import Customer, Product, Sale, SaleItem, SalePayment, User
from ..validation import Cart, CartLine, ValidationError
from ..time_utils import day_bounds, utcnow
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .stock_service import record_movement


SEARCH_LIMIT = 20

# Amount comparisons tolerate float noise below a thousandth of a millime
MONEY_EPSILON = 1e-6


@dataclass
class PricedLine:
    product: Product
    quantity: float
    unit: str
    quantity_base: float
    unit_price: float
    subtotal: float
    tax_rate: float
    tax_amount: float
    total: float
    notes: str | None = None


@dataclass
class SaleTotals:
    subtotal: float
    discount_amount: float
    tax_amount: float
    total: float
    amount_paid: float
    change: float
    credit_amount: float
    payment_status: str


# -- Pure pricing --

def price_line(product: Product, line: CartLine, at=None) -> PricedLine:
    """Price one cart line. Raises UnknownUnit for units the product does not sell in."""
    unit = line.unit or product.base_unit
    quantity_base = product.to_base_units(line.quantity, unit)
    subtotal = product.calculate_price(line.quantity, unit, at=at)
    if subtotal < 0:
        raise ValidationError(
            f"Line price for {product.name} is negative; check the product discount"
        )

    tax_rate = (product.tax_rate or 0.0) if product.taxable else 0.0
    tax_amount = subtotal * tax_rate / 100

    return PricedLine(
        product=product,
        quantity=line.quantity,
        unit=unit,
        quantity_base=quantity_base,
        unit_price=subtotal / line.quantity,
        subtotal=subtotal,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        total=subtotal + tax_amount,
        notes=line.notes,
    )


def compute_totals(lines: list[PricedLine], cart: Cart) -> SaleTotals:
    subtotal = sum(line.subtotal for line in lines)
    tax_amount = sum(line.tax_amount for line in lines)

    discount_amount = 0.0
    if cart.discount_type == "percentage":
        discount_amount = subtotal * cart.discount_value / 100
    elif cart.discount_type == "fixed":
        discount_amount = cart.discount_value
    if discount_amount > subtotal + MONEY_EPSILON:
        raise ValidationError("Discount cannot exceed the sale subtotal")

    total = subtotal - discount_amount + tax_amount
    amount_paid = sum(payment.amount for payment in cart.payments)
    change = amount_paid - total

    if change < -MONEY_EPSILON:
        credit_amount = -change
        payment_status = "pending"
    else:
        credit_amount = 0.0
        payment_status = "completed"

    return SaleTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total=total,
        amount_paid=amount_paid,
        change=change,
        credit_amount=credit_amount,
        payment_status=payment_status,
    )


def check_stock(lines: list[PricedLine]) -> None:
    """Aggregate base quantities per product, then compare with on-hand stock."""
    required: dict[int, float] = {}
    products: dict[int, Product] = {}
    for line in lines:
        required[line.product.id] = required.get(line.product.id, 0.0) + line.quantity_base
        products[line.product.id] = line.product

    for product_id, quantity_base in required.items():
        product = products[product_id]
        if not product.has_stock(quantity_base, product.base_unit):
            raise InsufficientStock(
                f"Insufficient stock for {product.name}",
                details={
                    "product_id": product.id,
                    "product_name": product.name,
                    "requested_base_quantity": quantity_base,
                    "available_base_quantity": product.stock_quantity,
                    "base_unit": product.base_unit,
                },
            )


# -- Loading --

def _load_products(tenant_id: int, product_ids, *, lock: bool) -> dict[int, Product]:
    ids = sorted(set(product_ids))
    query = db.session.query(Product).filter(Product.tenant_id == tenant_id, Product.id.in_(ids))
    if lock:
        query = lock_for_update(query)
    found = {product.id: product for product in query.all()}

    for product_id in ids:
        product = found.get(product_id)
        if product is None or not product.is_active:
            raise ProductNotFound(
                f"Product not found: {product_id}", details={"product_id": product_id}
            )
    return found


def _load_customer(tenant_id: int, customer_id: int | None, *, lock: bool) -> Customer | None:
    if customer_id is None:
        return None
    query = db.session.query(Customer).filter_by(id=customer_id, tenant_id=tenant_id)
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if customer is None:
        raise CustomerNotFound("Customer not found", details={"customer_id": customer_id})
    return customer


def _held_lines(sale: Sale) -> list[CartLine]:
    lines = []
    for item in sale.items:
        if item.product_id is None:
            raise ProductNotFound(
                f"Product no longer exists: {item.product_name}",
                details={"product_name": item.product_name},
            )
        lines.append(CartLine(
            product_id=item.product_id, quantity=item.quantity, unit=item.unit, notes=item.notes
        ))
    return lines


def _price_cart(tenant_id: int, lines: list[CartLine], *, lock: bool) -> list[PricedLine]:
    products = _load_products(tenant_id, [line.product_id for line in lines], lock=lock)
    now = utcnow()
    return [price_line(products[line.product_id], line, at=now) for line in lines]


# -- Writing --

def _fill_sale(
    sale: Sale,
    *,
    priced: list[PricedLine],
    totals: SaleTotals,
    cart: Cart,
    cashier: User,
    customer: Customer | None,
) -> None:
    sale.subtotal = totals.subtotal
    sale.discount_type = cart.discount_type
    sale.discount_value = cart.discount_value
    sale.discount_reason = cart.discount_reason
    sale.discount_amount = totals.discount_amount
    sale.tax_amount = totals.tax_amount
    sale.total = totals.total
    sale.amount_paid = totals.amount_paid
    sale.change = totals.change
    sale.credit_amount = totals.credit_amount
    sale.payment_status = totals.payment_status
    sale.cashier_id = cashier.id
    sale.cashier_name = cashier.full_name
    sale.customer_id = customer.id if customer else None
    sale.customer_name = customer.full_name if customer else None
    if cart.notes is not None:
        sale.notes = cart.notes

    sale.items = [
        SaleItem(
            product_id=line.product.id,
            product_name=line.product.name,
            sku=line.product.sku,
            quantity=line.quantity,
            unit=line.unit,
            quantity_base=line.quantity_base,
            unit_price=line.unit_price,
            tax_rate=line.tax_rate,
            tax_amount=line.tax_amount,
            subtotal=line.subtotal,
            total=line.total,
            notes=line.notes,
        )
        for line in priced
    ]
    sale.payments = [
        SalePayment(method=payment.method, amount=payment.amount, reference=payment.reference)
        for payment in cart.payments
    ]


def _checkout(tenant_id: int, cashier: User, cart: Cart) -> Sale:
    held = None
    lines = cart.lines
    if cart.held_sale_id is not None:
        held = lock_for_update(
            db.session.query(Sale).filter_by(id=cart.held_sale_id, tenant_id=tenant_id)
        ).first()
        if held is None:
            raise SaleNotFound("Sale not found", details={"sale_id": cart.held_sale_id})
        if held.status != "pending" or held.is_held:
            raise InvalidSaleState(
                "Only retrieved pending orders can be checked out",
                details={"sale_id": held.id, "status": held.status, "is_held": held.is_held},
            )
        if not lines:
            lines = _held_lines(held)
        if cart.discount_type is None and held.discount_type:
            cart = replace(
                cart,
                discount_type=held.discount_type,
                discount_value=held.discount_value,
                discount_reason=held.discount_reason,
            )
    if not lines:
        raise ValidationError("Cart must contain at least one item")

    # Validation phase: no writes
    priced = _price_cart(tenant_id, lines, lock=True)
    check_stock(priced)
    totals = compute_totals(priced, cart)

    customer_id = cart.customer_id if cart.customer_id is not None else (held.customer_id if held else None)
    customer = _load_customer(tenant_id, customer_id, lock=True)

    if totals.credit_amount > 0:
        if customer is None:
            raise CreditNotAllowed(
                "Incomplete payment requires a customer account with credit",
                details={"credit_amount": totals.credit_amount},
            )
        customer.check_credit(totals.credit_amount)

    # Write phase
    now = utcnow()
    if held is not None:
        sale = held
    else:
        sale = Sale(
            tenant_id=tenant_id,
            sale_number=next_document_number(tenant_id=tenant_id, document_type="sale"),
        )
        db.session.add(sale)

    _fill_sale(sale, priced=priced, totals=totals, cart=cart, cashier=cashier, customer=customer)
    sale.status = "completed"
    sale.is_held = False
    sale.sale_date = now
    db.session.flush()

    for line in priced:
        product = line.product
        change = product.deduct_stock(line.quantity, line.unit)
        record_movement(
            product=product,
            change=change,
            movement_type="sale",
            reason="sale",
            quantity=-line.quantity,
            unit=line.unit,
            sale_id=sale.id,
            reference=sale.sale_number,
            user_id=cashier.id,
        )
        product.total_sold = (product.total_sold or 0.0) + line.quantity_base
        product.total_revenue = (product.total_revenue or 0.0) + line.subtotal
        product.last_sold_date = now

    if customer is not None:
        customer.update_purchase_stats(totals.total, at=now)
        customer.add_loyalty_points(loyalty_points_for(totals.total))
        if totals.credit_amount > 0:
            customer.add_credit(totals.credit_amount)

    return sale


def loyalty_points_for(amount: float) -> int:
    per_unit = current_app.config.get("LOYALTY_POINTS_PER_UNIT", 1)
    return int(math.floor(max(amount, 0.0) * per_unit))


def create_sale(*, tenant_id: int, cashier: User, cart: Cart) -> Sale:
    """
    Commit a cart as a completed sale (see module docstring).

    Raises PosError subclasses or ValidationError; nothing is persisted when
    any of them is raised.
    """
    def _op():
        try:
            sale = _checkout(tenant_id, cashier, cart)
            db.session.commit()
            return sale
        except (PosError, ValidationError):
            db.session.rollback()
            raise

    sale = run_with_retry(_op)
    current_app.logger.info(
        "Sale completed: tenant=%s sale=%s number=%s total=%.3f payment_status=%s",
        tenant_id, sale.id, sale.sale_number, sale.total, sale.payment_status,
    )
    return sale


# -- Held orders --

def hold_order(*, tenant_id: int, cashier: User, cart: Cart) -> Sale:
    """
    Park a priced cart. Products and units must resolve; stock is neither
    checked nor touched.
    """
    if not cart.lines:
        raise ValidationError("Cart must contain at least one item")

    def _op():
        try:
            priced = _price_cart(tenant_id, cart.lines, lock=False)
            totals = compute_totals(priced, cart)
            customer = _load_customer(tenant_id, cart.customer_id, lock=False)

            sale = Sale(
                tenant_id=tenant_id,
                sale_number=next_document_number(tenant_id=tenant_id, document_type="sale"),
            )
            _fill_sale(sale, priced=priced, totals=totals, cart=cart, cashier=cashier, customer=customer)
            sale.status = "pending"
            sale.payment_status = "pending"
            sale.credit_amount = 0.0
            sale.is_held = True
            sale.held_at = utcnow()
            db.session.add(sale)
            db.session.commit()
            return sale
        except (PosError, ValidationError):
            db.session.rollback()
            raise

    sale = run_with_retry(_op)
    current_app.logger.info("Order held: tenant=%s sale=%s", tenant_id, sale.id)
    return sale


def list_held_orders(*, tenant_id: int) -> list[Sale]:
    return (
        db.session.query(Sale)
        .filter(Sale.tenant_id == tenant_id, Sale.status == "pending", Sale.is_held.is_(True))
        .order_by(Sale.held_at.desc(), Sale.id.desc())
        .all()
    )


def retrieve_held_order(*, tenant_id: int, sale_id: int) -> Sale:
    sale = (
        db.session.query(Sale)
        .filter_by(id=sale_id, tenant_id=tenant_id, status="pending", is_held=True)
        .first()
    )
    if sale is None:
        raise SaleNotFound("Held order not found", details={"sale_id": sale_id})

    sale.is_held = False
    sale.retrieved_at = utcnow()
    db.session.commit()
    return sale


# -- Lookups --

def search_products(*, tenant_id: int, q: str | None = None, barcode: str | None = None) -> list[Product]:
    """Active products matching an exact barcode, or name / Arabic name / SKU."""
    query = db.session.query(Product).filter(
        Product.tenant_id == tenant_id, Product.is_active.is_(True)
    )
    if barcode:
        query = query.filter(Product.barcode == barcode.strip())
    elif q:
        pattern = f"%{q.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(pattern),
            Product.name_ar.ilike(pattern),
            Product.sku.ilike(pattern),
        ))
    else:
        return []
    return query.order_by(Product.name.asc()).limit(SEARCH_LIMIT).all()


def daily_summary(*, tenant_id: int, day=None) -> dict:
    """Completed sales of one UTC day: counts, revenue, discount, tax, cash/card split."""
    start, end = day_bounds(day or utcnow())
    in_day = (
        Sale.tenant_id == tenant_id,
        Sale.status == "completed",
        Sale.sale_date >= start,
        Sale.sale_date < end,
    )

    count, revenue, discount, tax = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total), 0.0),
        func.coalesce(func.sum(Sale.discount_amount), 0.0),
        func.coalesce(func.sum(Sale.tax_amount), 0.0),
    ).filter(*in_day).one()

    by_method = {}
    rows = (
        db.session.query(
            SalePayment.method,
            func.count(func.distinct(SalePayment.sale_id)),
            func.coalesce(func.sum(SalePayment.amount), 0.0),
        )
        .join(Sale, Sale.id == SalePayment.sale_id)
        .filter(*in_day)
        .group_by(SalePayment.method)
        .all()
    )
    for method, sales_count, amount in rows:
        by_method[method] = {"sales": sales_count, "amount": float(amount or 0.0)}

    cash = by_method.get("cash", {"sales": 0, "amount": 0.0})
    card = by_method.get("card", {"sales": 0, "amount": 0.0})

    return {
        "date": start.date().isoformat(),
        "total_sales": count,
        "total_revenue": float(revenue or 0.0),
        "total_discount": float(discount or 0.0),
        "total_tax": float(tax or 0.0),
        "cash_sales": cash["sales"],
        "cash_amount": cash["amount"],
        "card_sales": card["sales"],
        "card_amount": card["amount"],
        "by_payment_method": by_method,
    }
