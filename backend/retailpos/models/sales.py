from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


SALE_STATUSES = ("completed", "pending", "cancelled", "refunded")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")
PAYMENT_METHODS = ("cash", "card", "d17", "flouci", "edinar", "bank_transfer", "credit")


class Sale(db.Model):
    """
    Checkout record with frozen line and payment snapshots.

    LIFECYCLE:
    - completed: committed at checkout; stock deducted, analytics updated
    - pending + is_held: parked cart, no stock effect
    - pending (retrieved): back on a register, awaiting checkout
    - cancelled: terminal, from pending only
    - refunded: terminal, from completed only (stock returned)

    TOTALS:
    total = subtotal - discount_amount + tax_amount
    change = amount_paid - total; a negative change is carried as credit_amount.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sale_number", name="uq_sales_tenant_number"),
        db.Index("ix_sales_tenant_status_date", "tenant_id", "status", "sale_date"),
        db.Index("ix_sales_tenant_held", "tenant_id", "is_held"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    # Human-readable number (e.g., "SL-000042")
    sale_number = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    # Amounts
    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Float, nullable=True)
    discount_reason = db.Column(db.String(255), nullable=True)
    discount_amount = db.Column(db.Float, nullable=False, default=0.0)
    tax_amount = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False, default=0.0)
    amount_paid = db.Column(db.Float, nullable=False, default=0.0)
    change = db.Column(db.Float, nullable=False, default=0.0)
    credit_amount = db.Column(db.Float, nullable=False, default=0.0)

    # Parties (names are snapshots)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    cashier_name = db.Column(db.String(255), nullable=True)

    # Held orders
    is_held = db.Column(db.Boolean, nullable=False, default=False)
    held_at = db.Column(db.DateTime(timezone=True), nullable=True)
    retrieved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    # Terminal transitions
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    refund_reason = db.Column(db.String(255), nullable=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    tenant = db.relationship("Tenant", backref=db.backref("sales", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    cashier = db.relationship("User", foreign_keys=[cashier_id])
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    payments = db.relationship(
        "SalePayment",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SalePayment.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} sale_number={self.sale_number!r} status={self.status!r}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sale_number": self.sale_number,
            "status": self.status,
            "payment_status": self.payment_status,
            "subtotal": self.subtotal,
            "discount": {
                "type": self.discount_type,
                "value": self.discount_value,
                "reason": self.discount_reason,
            },
            "discount_amount": self.discount_amount,
            "tax_amount": self.tax_amount,
            "total": self.total,
            "amount_paid": self.amount_paid,
            "change": self.change,
            "credit_amount": self.credit_amount,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name,
            "is_held": self.is_held,
            "held_at": to_utc_z(self.held_at),
            "retrieved_at": to_utc_z(self.retrieved_at),
            "notes": self.notes,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "refunded_at": to_utc_z(self.refunded_at),
            "refund_reason": self.refund_reason,
            "sale_date": to_utc_z(self.sale_date),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class SaleItem(db.Model):
    """Line snapshot: product identity and pricing frozen at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    quantity_base = db.Column(db.Float, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)

    tax_rate = db.Column(db.Float, nullable=False, default=0.0)
    tax_amount = db.Column(db.Float, nullable=False, default=0.0)
    subtotal = db.Column(db.Float, nullable=False)
    total = db.Column(db.Float, nullable=False)

    notes = db.Column(db.String(255), nullable=True)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product", backref=db.backref("sale_items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit": self.unit,
            "quantity_base": self.quantity_base,
            "unit_price": self.unit_price,
            "tax_rate": self.tax_rate,
            "tax_amount": self.tax_amount,
            "subtotal": self.subtotal,
            "total": self.total,
            "notes": self.notes,
        }


class SalePayment(db.Model):
    """
    Tender applied to a sale.

    Split tenders are separate rows; amount_paid on the sale is their sum.
    """
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    method = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "amount": self.amount,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }
